from sqlalchemy import JSON, Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from ..utils.clock import utcnow


class NotificationType(str, enum.Enum):
    PAYMENT_RELEASED = "payment_released"
    BOOKING_CONFIRMED = "booking_confirmed"
    DISPUTE_CREATED = "dispute_created"
    BOOKING_STATUS_UPDATED = "booking_status_updated"


class Notification(BaseModel):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String, nullable=False, default="")
    message = Column(String, nullable=False)
    link = Column(String, nullable=False, default="")
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False)
    timestamp = Column(DateTime, default=utcnow)

    user = relationship("User")
