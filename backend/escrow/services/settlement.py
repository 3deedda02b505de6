"""Escrow settlement: paying a provider exactly once.

A booking in AWAITING_CLIENT_CONFIRMATION leaves that state either through
``release`` (client accept, or the auto-release scheduler once the
confirmation deadline has passed) or through ``dispute``. Both claim the
booking with a single conditional UPDATE, so whichever caller gets there
first wins and every other caller sees zero rows affected.

Release writes three things in one database transaction:

* the booking row (COMPLETED, ``escrow_released``, ``client_confirmed_at``)
* one ESCROW_RELEASE ledger row
* the provider wallet credit (atomic ``balance = balance + amount``)

The notifier is only called after commit and can never undo a settlement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..crud import crud_dispute, crud_transaction, crud_wallet
from ..models import Booking, BookingStatus, DisputeParty
from ..schemas.settlement import (
    AutoReleaseMetadata,
    ClientConfirmationMetadata,
    ConfirmAction,
    ReleaseReason,
    SettlementEvent,
    SettlementEventType,
)
from ..utils.clock import Clock, SystemClock
from ..utils.errors import (
    BookingNotFound,
    NotifierFailure,
    PersistenceFailure,
    PreconditionFailed,
)
from ..utils.notifications import Notifier
from .booking_state import ActorRole, ensure_awaiting_confirmation, role_for
from .dispute_gate import has_open_dispute, no_dispute_clause

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value: Union[Decimal, int, float, str]) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_provider_amount(booking: Booking, commission_rate: Optional[Decimal] = None) -> Decimal:
    """Net amount owed to the provider for ``booking``.

    ``provider_amount`` wins when stored; otherwise total minus the stored
    commission, or minus ``commission_rate`` of the total when no
    commission was recorded.
    """
    if booking.provider_amount is not None:
        return _money(booking.provider_amount)
    total = _money(booking.total_amount)
    if booking.commission_amount is not None:
        commission = _money(booking.commission_amount)
    else:
        rate = settings.DEFAULT_COMMISSION_RATE if commission_rate is None else commission_rate
        commission = _money(total * Decimal(str(rate)))
    return total - commission


@dataclass
class SettlementResult:
    booking: Booking
    released: bool
    already_settled: bool = False
    transaction: Optional[models.Transaction] = None
    amount: Optional[Decimal] = None


@dataclass
class DisputeResult:
    booking: Booking
    dispute: models.Dispute


@dataclass
class ConfirmationResult:
    success: bool
    booking: Booking
    transaction_created: bool = False
    dispute: Optional[models.Dispute] = None
    message: str = ""


class SettlementEngine:
    def __init__(
        self,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        commission_rate: Optional[Decimal] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.commission_rate = (
            settings.DEFAULT_COMMISSION_RATE if commission_rate is None else Decimal(str(commission_rate))
        )

    # ─── release ────────────────────────────────────────────────────────────

    def release(
        self,
        db: Session,
        booking_id: int,
        reason: ReleaseReason = ReleaseReason.IMMEDIATE_TWO_PARTY_CONFIRMATION,
        actor_id: Optional[int] = None,
    ) -> SettlementResult:
        """Settle ``booking_id`` and credit the provider.

        Raises ``PreconditionFailed`` when the booking cannot be settled and
        ``PersistenceFailure`` when the write failed (nothing persisted).
        A booking that is already settled is not an error.
        """
        booking = db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id)
        if booking.escrow_released:
            logger.info("release_noop booking_id=%s reason=already_settled", booking_id)
            return SettlementResult(booking=booking, released=False, already_settled=True)

        ensure_awaiting_confirmation(booking)
        if not booking.is_paid:
            raise PreconditionFailed(
                "Booking has not been paid", PreconditionFailed.NOT_PAID, booking_id
            )
        if has_open_dispute(db, booking_id):
            raise PreconditionFailed(
                "Booking has an open dispute", PreconditionFailed.OPEN_DISPUTE, booking_id
            )

        now = self.clock.now()
        total = _money(booking.total_amount)
        amount = compute_provider_amount(booking, self.commission_rate)
        if amount <= 0 or amount > total:
            raise PreconditionFailed(
                f"Provider amount {amount} is outside (0, {total}]",
                PreconditionFailed.INVALID_AMOUNT,
                booking_id,
            )
        metadata = self._release_metadata(booking, reason, now, total, amount, actor_id)
        provider_id = booking.provider_id
        currency = booking.currency

        try:
            if not self._claim(db, booking_id, now):
                db.rollback()
                db.refresh(booking)
                if booking.escrow_released:
                    logger.info("release_lost_race booking_id=%s", booking_id)
                    return SettlementResult(booking=booking, released=False, already_settled=True)
                raise PreconditionFailed(
                    "Booking changed while the release was in flight",
                    PreconditionFailed.STATE_CHANGED,
                    booking_id,
                )
            txn = crud_transaction.add_transaction(
                db,
                booking_id=booking_id,
                user_id=provider_id,
                user_type=models.LedgerParty.PROVIDER,
                type=models.TransactionType.ESCROW_RELEASE,
                amount=amount,
                currency=currency,
                status=models.TransactionStatus.COMPLETED,
                description=self._release_description(booking, reason),
                details=metadata.model_dump(mode="json"),
            )
            wallet_created = crud_wallet.credit_wallet(
                db, provider_id=provider_id, amount=amount, currency=currency, now=now
            )
            db.commit()
        except PreconditionFailed:
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("release_failed booking_id=%s reason=%s err=%s", booking_id, reason.value, exc)
            raise PersistenceFailure(f"Release failed: {exc}", booking_id) from exc
        except Exception:
            db.rollback()
            logger.exception("release_failed booking_id=%s reason=%s", booking_id, reason.value)
            raise

        db.refresh(booking)
        logger.info(
            "escrow_released booking_id=%s provider_id=%s amount=%s currency=%s reason=%s wallet_created=%s",
            booking_id,
            provider_id,
            amount,
            currency,
            reason.value,
            wallet_created,
        )
        self._emit(
            SettlementEvent(
                booking_id=booking_id,
                provider_id=provider_id,
                client_id=booking.client_id,
                event_type=SettlementEventType.PAYMENT_RELEASED,
                amount=amount,
                currency=currency,
                release_reason=reason,
                timestamp=now,
            )
        )
        return SettlementResult(booking=booking, released=True, transaction=txn, amount=amount)

    def _claim(self, db: Session, booking_id: int, now: datetime) -> bool:
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.AWAITING_CLIENT_CONFIRMATION,
                Booking.escrow_released.is_(False),
                Booking.is_paid.is_(True),
                no_dispute_clause(booking_id),
            )
            .values(
                status=BookingStatus.COMPLETED,
                escrow_released=True,
                client_confirmed_at=func.coalesce(Booking.client_confirmed_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount == 1

    @staticmethod
    def _release_metadata(
        booking: Booking,
        reason: ReleaseReason,
        now: datetime,
        total: Decimal,
        amount: Decimal,
        actor_id: Optional[int],
    ) -> Union[ClientConfirmationMetadata, AutoReleaseMetadata]:
        common = dict(
            original_amount=total,
            commission=total - amount,
            provider_amount=amount,
            provider_completed_at=booking.completed_at,
        )
        if reason == ReleaseReason.AUTO_RELEASE_NO_CLIENT_RESPONSE:
            return AutoReleaseMetadata(
                auto_accepted_at=now,
                deadline_passed=booking.client_confirm_deadline or now,
                **common,
            )
        return ClientConfirmationMetadata(
            client_confirmed_at=booking.client_confirmed_at or now,
            confirmed_by=actor_id,
            **common,
        )

    @staticmethod
    def _release_description(booking: Booking, reason: ReleaseReason) -> str:
        if reason == ReleaseReason.AUTO_RELEASE_NO_CLIENT_RESPONSE:
            return f"Auto-release: Client didn't respond within 48 hours - {booking.title}"
        return f'Immediate release - Client confirmed completion of "{booking.title}"'

    # ─── dispute ────────────────────────────────────────────────────────────

    def dispute(
        self,
        db: Session,
        booking_id: int,
        raised_by: int,
        raised_by_type: DisputeParty = DisputeParty.CLIENT,
        reason: Optional[str] = None,
    ) -> DisputeResult:
        """Move the booking to DISPUTED and open a dispute. No money moves."""
        booking = db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id)
        ensure_awaiting_confirmation(booking)
        if not booking.is_paid:
            raise PreconditionFailed(
                "Booking has not been paid", PreconditionFailed.NOT_PAID, booking_id
            )
        if has_open_dispute(db, booking_id):
            raise PreconditionFailed(
                "A dispute already exists for this booking",
                PreconditionFailed.OPEN_DISPUTE,
                booking_id,
            )

        now = self.clock.now()
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.AWAITING_CLIENT_CONFIRMATION,
                Booking.escrow_released.is_(False),
                no_dispute_clause(booking_id),
            )
            .values(status=BookingStatus.DISPUTED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            if db.execute(stmt).rowcount != 1:
                db.rollback()
                raise PreconditionFailed(
                    "Booking changed while the dispute was in flight",
                    PreconditionFailed.STATE_CHANGED,
                    booking_id,
                )
            dispute = crud_dispute.add_dispute(
                db,
                booking_id=booking_id,
                raised_by=raised_by,
                raised_by_type=raised_by_type,
                description=reason,
            )
            db.commit()
        except PreconditionFailed:
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("dispute_failed booking_id=%s err=%s", booking_id, exc)
            raise PersistenceFailure(f"Dispute failed: {exc}", booking_id) from exc
        except Exception:
            db.rollback()
            logger.exception("dispute_failed booking_id=%s", booking_id)
            raise

        db.refresh(booking)
        db.refresh(dispute)
        logger.info(
            "booking_disputed booking_id=%s dispute_id=%s raised_by=%s",
            booking_id,
            dispute.id,
            raised_by,
        )
        self._emit(
            SettlementEvent(
                booking_id=booking_id,
                provider_id=booking.provider_id,
                client_id=booking.client_id,
                event_type=SettlementEventType.DISPUTE_CREATED,
                currency=booking.currency,
                dispute_id=dispute.id,
                timestamp=now,
            )
        )
        return DisputeResult(booking=booking, dispute=dispute)

    def _emit(self, event: SettlementEvent) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(event)
        except NotifierFailure as exc:
            logger.warning(
                "notifier_failed booking_id=%s event=%s err=%s",
                event.booking_id,
                event.event_type.value,
                exc,
            )
        except Exception:
            logger.exception(
                "notifier_failed booking_id=%s event=%s",
                event.booking_id,
                event.event_type.value,
            )


_default_engine: Optional[SettlementEngine] = None


def get_settlement_engine() -> SettlementEngine:
    """Process-wide engine with the in-app notification center attached."""
    global _default_engine
    if _default_engine is None:
        from ..utils.notifications import NotificationCenter

        _default_engine = SettlementEngine(notifier=NotificationCenter())
    return _default_engine


def confirm_completion(
    db: Session,
    booking_id: int,
    actor: models.User,
    action: ConfirmAction,
    reason: Optional[str] = None,
    engine: Optional[SettlementEngine] = None,
) -> ConfirmationResult:
    """Client decision on work the provider marked as done."""
    engine = engine or get_settlement_engine()
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found", booking_id)
    role = role_for(db, booking, actor)
    if role not in (ActorRole.CLIENT, ActorRole.ADMIN):
        raise PermissionError("Only the client can confirm completion")

    if action == ConfirmAction.ACCEPT:
        result = engine.release(
            db,
            booking_id,
            reason=ReleaseReason.IMMEDIATE_TWO_PARTY_CONFIRMATION,
            actor_id=actor.id,
        )
        message = (
            "Booking already completed and payment released"
            if result.already_settled
            else "Service confirmed and payment released to the provider"
        )
        return ConfirmationResult(
            success=True,
            booking=result.booking,
            transaction_created=result.released,
            message=message,
        )

    outcome = engine.dispute(
        db,
        booking_id,
        raised_by=actor.id,
        raised_by_type=DisputeParty.CLIENT if role == ActorRole.CLIENT else DisputeParty.ADMIN,
        reason=reason,
    )
    return ConfirmationResult(
        success=True,
        booking=outcome.booking,
        dispute=outcome.dispute,
        message="Dispute submitted. Our team will review the case.",
    )
