from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..core.config import settings
from .base import BaseModel
from .types import Money


class ProviderWallet(BaseModel):
    """Running balance per provider.

    Credited only by the settlement engine, and only through an atomic
    ``balance = balance + :amount`` update.
    """

    __tablename__ = "provider_wallets"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_provider_wallets_balance_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    balance = Column(Money, nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False, default=lambda: settings.DEFAULT_CURRENCY)
    can_withdraw = Column(Boolean, nullable=False, default=True)

    provider = relationship("User")
