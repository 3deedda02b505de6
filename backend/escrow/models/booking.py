# backend/escrow/models/booking.py

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ..core.config import settings
from .base import BaseModel
from .booking_status import BookingStatus
from .types import CaseInsensitiveEnum, Money


class Booking(BaseModel):
    __tablename__ = "bookings"

    id          = Column(Integer, primary_key=True, index=True)
    client_id   = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title       = Column(String, nullable=False, default="")
    status      = Column(
        CaseInsensitiveEnum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    total_amount      = Column(Money, nullable=False)
    commission_amount = Column(Money, nullable=True)
    # Net owed to the provider; falls back to total − commission when unset
    provider_amount   = Column(Money, nullable=True)
    currency          = Column(String(3), nullable=False, default=lambda: settings.DEFAULT_CURRENCY)

    is_paid         = Column(Boolean, nullable=False, default=False)
    escrow_released = Column(Boolean, nullable=False, default=False)

    completed_at            = Column(DateTime, nullable=True)
    client_confirm_deadline = Column(DateTime, nullable=True)
    client_confirmed_at     = Column(DateTime, nullable=True)

    cancelled_at        = Column(DateTime, nullable=True)
    cancelled_by        = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(String, nullable=True)

    client       = relationship("User", foreign_keys=[client_id])
    provider     = relationship("User", foreign_keys=[provider_id])
    dispute      = relationship("Dispute", back_populates="booking", uselist=False)
    transactions = relationship(
        "Transaction",
        back_populates="booking",
        order_by="Transaction.id",
    )

    __table_args__ = (
        # Auto-release selection scans on these three columns
        Index("ix_bookings_auto_release", "status", "escrow_released", "client_confirm_deadline"),
        CheckConstraint(
            "NOT escrow_released OR status = 'completed'",
            name="ck_bookings_released_implies_completed",
        ),
    )
