"""Settlement event delivery.

The settlement engine hands every committed outcome to a ``Notifier``.
``NotificationCenter`` is the default: it writes in-app notifications for
the affected parties and, when ``NOTIFIER_WEBHOOK_URL`` is set, posts the
event JSON from the background worker with retries. Delivery is
at-least-once; the engine never rolls back because of a failure here.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import NotificationType
from ..schemas.settlement import ReleaseReason, SettlementEvent, SettlementEventType
from . import background_worker
from .errors import NotifierFailure

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event: SettlementEvent) -> None:
        ...


def _booking_link(booking_id: int) -> str:
    return f"/bookings/{booking_id}"


def _post_webhook(url: str, payload: dict[str, Any], timeout: float) -> None:
    resp = httpx.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()
    logger.info(
        "notifier_webhook_delivered booking_id=%s event=%s status=%s",
        payload.get("booking_id"),
        payload.get("event_type"),
        resp.status_code,
    )


def _messages_for(
    event: SettlementEvent, title: str
) -> List[Tuple[int, NotificationType, str, str]]:
    """Return (user_id, type, title, message) rows for an event."""
    if event.event_type == SettlementEventType.PAYMENT_RELEASED:
        amount = f"{event.currency} {event.amount:.2f}" if event.amount is not None else event.currency
        if event.release_reason == ReleaseReason.AUTO_RELEASE_NO_CLIENT_RESPONSE:
            client_row = (
                event.client_id,
                NotificationType.BOOKING_CONFIRMED,
                "Service Auto-Confirmed",
                f'Your booking "{title}" has been automatically confirmed after '
                f"{settings.CLIENT_CONFIRM_WINDOW_HOURS} hours. "
                "The payment has been released to the provider.",
            )
        else:
            client_row = (
                event.client_id,
                NotificationType.BOOKING_CONFIRMED,
                "Service Confirmed",
                f'You confirmed completion of "{title}". '
                "The payment has been released to the provider.",
            )
        return [
            (
                event.provider_id,
                NotificationType.PAYMENT_RELEASED,
                "Funds Released!",
                f'Your payment of {amount} has been released for "{title}". '
                "The funds are now available in your wallet.",
            ),
            client_row,
        ]
    return [
        (
            event.provider_id,
            NotificationType.DISPUTE_CREATED,
            "Service Disputed",
            f'The client has disputed the completion of "{title}". Our team will review the case.',
        ),
        (
            event.client_id,
            NotificationType.DISPUTE_CREATED,
            "Dispute Created",
            f'Your dispute for "{title}" has been submitted. '
            "Our team will review and respond within 24-48 hours.",
        ),
    ]


class NotificationCenter:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        webhook_url: Optional[str] = None,
        webhook_timeout: Optional[float] = None,
    ) -> None:
        if session_factory is None:
            from ..database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self.webhook_url = settings.NOTIFIER_WEBHOOK_URL if webhook_url is None else webhook_url
        self.webhook_timeout = webhook_timeout or settings.NOTIFIER_WEBHOOK_TIMEOUT

    def _persist(self, event: SettlementEvent, payload: dict[str, Any]) -> None:
        from ..crud import crud_notification

        with self._session_factory() as db:
            booking = db.get(models.Booking, event.booking_id)
            title = (booking.title if booking else "") or f"booking #{event.booking_id}"
            for user_id, ntype, heading, message in _messages_for(event, title):
                crud_notification.create_notification(
                    db,
                    user_id=user_id,
                    type=ntype,
                    title=heading,
                    message=message,
                    link=_booking_link(event.booking_id),
                    data=payload,
                )

    def notify(self, event: SettlementEvent) -> None:
        payload = event.model_dump(mode="json")
        try:
            self._persist(event, payload)
        except SQLAlchemyError as exc:
            raise NotifierFailure(f"could not store notification: {exc}", event.booking_id) from exc
        if self.webhook_url:
            background_worker.enqueue(_post_webhook, self.webhook_url, payload, self.webhook_timeout)


def notify_booking_status_update(
    db: Session, booking: models.Booking, recipient_id: int, message: str
) -> None:
    """In-app notice for lifecycle changes outside settlement. Best-effort."""
    from ..crud import crud_notification

    try:
        crud_notification.create_notification(
            db,
            user_id=recipient_id,
            type=NotificationType.BOOKING_STATUS_UPDATED,
            title="Booking Updated",
            message=message,
            link=_booking_link(booking.id),
            data={"booking_id": booking.id, "status": booking.status.value},
        )
    except Exception as exc:
        db.rollback()
        logger.warning("status_notification_failed booking_id=%s err=%s", booking.id, exc)
