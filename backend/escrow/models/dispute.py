import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import BaseModel
from .types import CaseInsensitiveEnum


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    NEEDS_INFO = "needs_info"
    RESOLVED = "resolved"
    CLOSED = "closed"


class DisputeParty(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


class Dispute(BaseModel):
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    # One dispute per booking; its presence alone blocks settlement
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True, index=True)
    raised_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    raised_by_type = Column(CaseInsensitiveEnum(DisputeParty), nullable=False)
    type = Column(String, nullable=False, default="service_quality")
    subject = Column(String, nullable=False, default="Service completion dispute")
    description = Column(String, nullable=True)
    status = Column(CaseInsensitiveEnum(DisputeStatus), nullable=False, default=DisputeStatus.OPEN)
    resolution = Column(String, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="dispute")
