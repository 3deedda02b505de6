from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Dict[str, str],
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    logger.error("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


class SettlementError(Exception):
    """Base class for booking settlement failures."""

    def __init__(self, message: str, booking_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.booking_id = booking_id


class BookingNotFound(SettlementError, LookupError):
    pass


class PreconditionFailed(SettlementError):
    """The booking is not in a state that allows the requested action.

    Nothing was written. ``code`` is one of ``wrong_status``, ``not_paid``,
    ``already_settled``, ``open_dispute``, ``state_changed`` or
    ``invalid_amount``.
    """

    WRONG_STATUS = "wrong_status"
    NOT_PAID = "not_paid"
    ALREADY_SETTLED = "already_settled"
    OPEN_DISPUTE = "open_dispute"
    STATE_CHANGED = "state_changed"
    INVALID_AMOUNT = "invalid_amount"

    def __init__(self, message: str, code: str, booking_id: Optional[int] = None) -> None:
        super().__init__(message, booking_id)
        self.code = code


class PersistenceFailure(SettlementError):
    """The atomic unit failed and was rolled back; safe to retry."""


class NotifierFailure(SettlementError):
    """Event delivery failed after commit."""
