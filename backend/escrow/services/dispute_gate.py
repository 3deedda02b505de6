"""Dispute gate: any dispute row on a booking blocks both settlement paths.

The dispute's own status is not consulted: a resolved dispute
still needs the administrative release path.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from .. import models


def no_dispute_clause(booking_id: Optional[int] = None):
    """SQL criterion that is true when the booking has no dispute row.

    With ``booking_id`` the subquery is bound to that id (for use inside a
    conditional UPDATE); without it the subquery correlates to ``bookings``.
    """
    if booking_id is not None:
        return ~select(models.Dispute.id).where(models.Dispute.booking_id == booking_id).exists()
    return ~exists().where(models.Dispute.booking_id == models.Booking.id)


def has_open_dispute(db: Session, booking_id: int) -> bool:
    """Return True if any dispute exists for this booking."""
    return bool(
        db.query(exists().where(models.Dispute.booking_id == booking_id)).scalar()
    )
