from pydantic import BaseModel, Field
from typing import Optional, Annotated
from datetime import datetime
from decimal import Decimal

from ..models.booking_status import BookingStatus


class BookingResponse(BaseModel):
    id: int
    client_id: int
    provider_id: int
    title: str
    status: BookingStatus
    total_amount: Annotated[Decimal, Field()]
    commission_amount: Optional[Decimal] = None
    provider_amount: Optional[Decimal] = None
    currency: str
    is_paid: bool
    escrow_released: bool
    completed_at: Optional[datetime] = None
    client_confirm_deadline: Optional[datetime] = None
    client_confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class BookingStatusUpdate(BaseModel):
    """Lifecycle change requested by a party to the booking.

    COMPLETED from a provider means "work is done" and moves the booking to
    AWAITING_CLIENT_CONFIRMATION.
    """

    status: BookingStatus
    cancellation_reason: Optional[str] = Field(default=None, max_length=500)
