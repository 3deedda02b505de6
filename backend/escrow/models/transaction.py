import enum
import uuid

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, event, text
from sqlalchemy.orm import relationship

from .base import BaseModel
from .types import CaseInsensitiveEnum, Money


class TransactionType(str, enum.Enum):
    ESCROW_RELEASE = "escrow_release"
    REFUND = "refund"
    BOOKING_PAYMENT = "booking_payment"
    COMMISSION = "commission"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerParty(str, enum.Enum):
    PROVIDER = "provider"
    CLIENT = "client"
    PLATFORM = "platform"


_ONE_RELEASE_PER_BOOKING = "type = 'escrow_release' AND status = 'completed'"


def _new_reference() -> str:
    return uuid.uuid4().hex


class Transaction(BaseModel):
    """Append-only ledger entry."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(32), nullable=False, unique=True, default=_new_reference)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_type = Column(CaseInsensitiveEnum(LedgerParty), nullable=False)
    type = Column(CaseInsensitiveEnum(TransactionType), nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(CaseInsensitiveEnum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING)
    description = Column(String, nullable=True)
    # ``metadata`` is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    booking = relationship("Booking", back_populates="transactions")

    __table_args__ = (
        Index(
            "uq_transactions_one_escrow_release",
            "booking_id",
            unique=True,
            sqlite_where=text(_ONE_RELEASE_PER_BOOKING),
            postgresql_where=text(_ONE_RELEASE_PER_BOOKING),
        ),
    )


@event.listens_for(Transaction, "before_update")
def _refuse_update(mapper, connection, target):  # noqa: ANN001
    raise ValueError(f"transactions are append-only (reference={target.reference})")


@event.listens_for(Transaction, "before_delete")
def _refuse_delete(mapper, connection, target):  # noqa: ANN001
    raise ValueError(f"transactions are append-only (reference={target.reference})")
