import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud
from ..database import get_db
from ..models import User
from ..schemas import (
    BookingResponse,
    BookingStatusUpdate,
    ConfirmCompletionRequest,
    ConfirmCompletionResponse,
    DisputeResponse,
)
from ..services import booking_state
from ..services.settlement import SettlementEngine, confirm_completion, get_settlement_engine
from ..utils import BookingNotFound, PersistenceFailure, PreconditionFailed, error_response
from ..utils.notifications import notify_booking_status_update
from .dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


def _raise_http(exc: Exception, booking_id: int) -> None:
    """Translate settlement/lifecycle errors into API responses."""
    if isinstance(exc, BookingNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found.") from exc
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, PreconditionFailed):
        raise error_response(
            str(exc),
            {"status": exc.code},
            status.HTTP_400_BAD_REQUEST,
        ) from exc
    if isinstance(exc, PersistenceFailure):
        logger.error("Persistence failure on booking %s: %s", booking_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not save the booking. Please try again.",
        ) from exc
    raise exc


@router.get("/{booking_id}", response_model=BookingResponse)
def read_booking_details(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Return a booking to one of its parties or an admin."""
    booking = crud.booking.get_booking(db, booking_id)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found.")
    if booking_state.role_for(db, booking, current_user) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return booking


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    *,
    db: Session = Depends(get_db),
    booking_id: int,
    status_update: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Move a booking along its lifecycle. A provider marking the work
    COMPLETED hands it to the client for confirmation.
    """
    try:
        booking = booking_state.transition(
            db,
            booking_id,
            status_update.status,
            current_user,
            reason=status_update.cancellation_reason,
        )
    except (BookingNotFound, PermissionError, PreconditionFailed) as exc:
        _raise_http(exc, booking_id)

    counterpart = booking.client_id if current_user.id != booking.client_id else booking.provider_id
    notify_booking_status_update(
        db,
        booking,
        counterpart,
        f'Booking "{booking.title}" is now {booking.status.value.replace("_", " ")}.',
    )
    return booking


@router.post("/{booking_id}/confirm", response_model=ConfirmCompletionResponse)
def confirm_booking_completion(
    booking_id: int,
    payload: ConfirmCompletionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> Any:
    """Client accepts the completed work (releasing escrow) or disputes it."""
    try:
        result = confirm_completion(
            db,
            booking_id,
            current_user,
            payload.action,
            reason=payload.reason,
            engine=engine,
        )
    except (BookingNotFound, PermissionError, PreconditionFailed, PersistenceFailure) as exc:
        _raise_http(exc, booking_id)

    return ConfirmCompletionResponse(
        success=result.success,
        booking=BookingResponse.model_validate(result.booking),
        transaction_created=result.transaction_created,
        dispute=DisputeResponse.model_validate(result.dispute) if result.dispute else None,
        message=result.message,
    )
