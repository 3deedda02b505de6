"""Booking lifecycle: who may move a booking where, and the guarded writes.

Transitions into COMPLETED and DISPUTED are owned by the settlement engine
(see ``services.settlement``); this module only exposes their guard.
"""

from __future__ import annotations

import enum
import logging
from datetime import timedelta
from typing import Dict, FrozenSet, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import Booking, BookingStatus
from ..utils.clock import Clock, SystemClock
from ..utils.errors import BookingNotFound, PreconditionFailed

logger = logging.getLogger(__name__)


class ActorRole(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"
    SYSTEM = "system"


_ANY_PARTY = frozenset({ActorRole.CLIENT, ActorRole.PROVIDER, ActorRole.ADMIN})
_PROVIDER_SIDE = frozenset({ActorRole.PROVIDER, ActorRole.ADMIN})

TRANSITIONS: Dict[BookingStatus, Dict[BookingStatus, FrozenSet[ActorRole]]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED: _PROVIDER_SIDE,
        BookingStatus.CANCELLED: _ANY_PARTY,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.IN_PROGRESS: _PROVIDER_SIDE,
        BookingStatus.CANCELLED: _ANY_PARTY,
    },
    BookingStatus.IN_PROGRESS: {
        BookingStatus.AWAITING_CLIENT_CONFIRMATION: _PROVIDER_SIDE,
        BookingStatus.CANCELLED: _PROVIDER_SIDE,
    },
    BookingStatus.AWAITING_CLIENT_CONFIRMATION: {
        BookingStatus.COMPLETED: frozenset({ActorRole.CLIENT, ActorRole.ADMIN, ActorRole.SYSTEM}),
        BookingStatus.DISPUTED: frozenset({ActorRole.CLIENT, ActorRole.ADMIN}),
    },
    BookingStatus.CANCELLED: {
        BookingStatus.REFUNDED: frozenset({ActorRole.ADMIN}),
    },
    BookingStatus.COMPLETED: {},
    BookingStatus.DISPUTED: {},
    BookingStatus.REFUNDED: {},
}

SETTLEMENT_TARGETS = frozenset({BookingStatus.COMPLETED, BookingStatus.DISPUTED})


def allowed_targets(current: BookingStatus, role: ActorRole) -> FrozenSet[BookingStatus]:
    return frozenset(
        target for target, roles in TRANSITIONS.get(current, {}).items() if role in roles
    )


def ensure_transition(booking: Booking, target: BookingStatus, role: ActorRole) -> None:
    """Raise unless ``role`` may move ``booking`` to ``target`` right now."""
    roles = TRANSITIONS.get(booking.status, {}).get(target)
    if roles is None:
        raise PreconditionFailed(
            f"Cannot transition from {booking.status.value} to {target.value}",
            PreconditionFailed.WRONG_STATUS,
            booking.id,
        )
    if role not in roles:
        raise PermissionError(
            f"{role.value} may not move a booking from {booking.status.value} to {target.value}"
        )


def ensure_awaiting_confirmation(booking: Booking) -> None:
    """Guard shared by both settlement outcomes (COMPLETED and DISPUTED)."""
    if booking.escrow_released:
        raise PreconditionFailed(
            "Escrow already released for this booking",
            PreconditionFailed.ALREADY_SETTLED,
            booking.id,
        )
    if booking.status != BookingStatus.AWAITING_CLIENT_CONFIRMATION:
        raise PreconditionFailed(
            "Booking is not awaiting client confirmation",
            PreconditionFailed.WRONG_STATUS,
            booking.id,
        )


def is_admin(db: Session, user: models.User) -> bool:
    return (
        db.query(models.AdminUser).filter(models.AdminUser.user_id == user.id).first()
        is not None
    )


def role_for(db: Session, booking: Booking, user: models.User) -> Optional[ActorRole]:
    """Resolve the acting role of ``user`` on ``booking`` (None if unrelated)."""
    if user.id == booking.client_id:
        return ActorRole.CLIENT
    if user.id == booking.provider_id:
        return ActorRole.PROVIDER
    if is_admin(db, user):
        return ActorRole.ADMIN
    return None


def transition(
    db: Session,
    booking_id: int,
    target: BookingStatus,
    actor: models.User,
    *,
    reason: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> Booking:
    """Apply a non-settlement lifecycle transition.

    The write is conditional on the status that was read, so two parties
    racing on the same booking cannot both succeed.
    """
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found", booking_id)

    role = role_for(db, booking, actor)
    if role is None:
        raise PermissionError("Access denied to this booking")

    # Providers "complete" work by handing it to the client for confirmation
    if target == BookingStatus.COMPLETED and booking.status == BookingStatus.IN_PROGRESS:
        target = BookingStatus.AWAITING_CLIENT_CONFIRMATION

    if target in SETTLEMENT_TARGETS:
        raise PreconditionFailed(
            f"{target.value} is reached through client confirmation or auto-release",
            PreconditionFailed.WRONG_STATUS,
            booking.id,
        )
    ensure_transition(booking, target, role)

    now = (clock or SystemClock()).now()
    previous = booking.status
    values: dict = {"status": target, "updated_at": now}
    criteria = [Booking.id == booking.id, Booking.status == previous]

    if target == BookingStatus.AWAITING_CLIENT_CONFIRMATION:
        values["completed_at"] = now
        values["client_confirm_deadline"] = now + timedelta(hours=settings.CLIENT_CONFIRM_WINDOW_HOURS)
        criteria.append(Booking.client_confirm_deadline.is_(None))
    elif target == BookingStatus.CANCELLED:
        values["cancelled_at"] = now
        values["cancelled_by"] = actor.id
        values["cancellation_reason"] = reason or f"Cancelled by {role.value}"

    stmt = update(Booking).where(*criteria).values(**values).execution_options(synchronize_session=False)
    if db.execute(stmt).rowcount != 1:
        db.rollback()
        raise PreconditionFailed(
            "Booking changed while the update was in flight",
            PreconditionFailed.STATE_CHANGED,
            booking.id,
        )
    db.commit()
    db.refresh(booking)
    logger.info(
        "booking_transition booking_id=%s from=%s to=%s actor_id=%s role=%s",
        booking.id,
        previous.value,
        target.value,
        actor.id,
        role.value,
    )
    return booking
