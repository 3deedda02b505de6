"""Auto-release of escrow for bookings the client never confirmed.

Stateless: each run selects the bookings whose confirmation deadline has
passed and settles them one by one. Overlapping runs are safe because the
settlement claim is a conditional UPDATE; a booking already taken by
another run (or by a client accept) is simply counted as skipped.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models import Booking, BookingStatus
from ..schemas.settlement import (
    AutoReleaseCandidate,
    AutoReleasePreview,
    AutoReleaseSummary,
    ReleaseReason,
)
from ..utils.errors import PreconditionFailed
from .dispute_gate import no_dispute_clause
from .settlement import SettlementEngine, compute_provider_amount, get_settlement_engine

logger = logging.getLogger(__name__)


def clamp_batch_size(batch_size: Optional[int]) -> int:
    if batch_size is None:
        batch_size = settings.AUTO_RELEASE_BATCH_SIZE
    return max(1, min(int(batch_size), settings.AUTO_RELEASE_MAX_BATCH_SIZE))


def _eligible(db: Session, now: datetime):
    return db.query(Booking).filter(
        Booking.status == BookingStatus.AWAITING_CLIENT_CONFIRMATION,
        Booking.is_paid.is_(True),
        Booking.escrow_released.is_(False),
        Booking.client_confirm_deadline.isnot(None),
        Booking.client_confirm_deadline <= now,
        no_dispute_clause(),
    )


def select_eligible_bookings(db: Session, now: datetime, batch_size: int) -> List[int]:
    """Ids of bookings ready for auto-release, oldest deadline first.

    A deadline equal to ``now`` is eligible.
    """
    rows = (
        _eligible(db, now)
        .with_entities(Booking.id)
        .order_by(Booking.client_confirm_deadline.asc(), Booking.id.asc())
        .limit(batch_size)
        .all()
    )
    return [row[0] for row in rows]


def preview_auto_release(
    db: Session,
    now: datetime,
    batch_size: Optional[int] = None,
    commission_rate: Optional[Decimal] = None,
) -> AutoReleasePreview:
    """Report what the next run would release without touching anything.

    ``eligible_count`` covers every eligible booking; the per-booking report
    is limited to the next batch. Bookings whose computed amount falls
    outside ``(0, total]`` are listed as not releasable and left out of
    ``total_amount``.
    """
    size = clamp_batch_size(batch_size)
    eligible_count = _eligible(db, now).count()
    ids = select_eligible_bookings(db, now, size)
    bookings = {b.id: b for b in db.query(Booking).filter(Booking.id.in_(ids)).all()} if ids else {}

    preview = AutoReleasePreview(checked_at=now, eligible_count=eligible_count)
    total = Decimal("0.00")
    for booking_id in ids:
        booking = bookings[booking_id]
        amount = compute_provider_amount(booking, commission_rate)
        releasable = Decimal("0.00") < amount <= booking.total_amount
        if releasable:
            total += amount
        overdue = now - booking.client_confirm_deadline
        preview.bookings.append(
            AutoReleaseCandidate(
                booking_id=booking.id,
                title=booking.title,
                provider_name=booking.provider.display_name if booking.provider else "Unknown Provider",
                client_name=booking.client.display_name if booking.client else "Unknown Client",
                amount=amount,
                currency=booking.currency,
                completed_at=booking.completed_at,
                client_confirm_deadline=booking.client_confirm_deadline,
                hours_overdue=int(round(overdue.total_seconds() / 3600)),
                releasable=releasable,
            )
        )
    preview.total_amount = total
    return preview


@dataclass
class _Outcome:
    booking_id: int
    amount: Optional[Decimal] = None
    skipped: bool = False
    error: Optional[str] = None


def _release_one(
    booking_id: int,
    session_factory: Callable[[], Session],
    engine: SettlementEngine,
) -> _Outcome:
    with session_factory() as db:
        try:
            result = engine.release(
                db, booking_id, reason=ReleaseReason.AUTO_RELEASE_NO_CLIENT_RESPONSE
            )
        except PreconditionFailed as exc:
            logger.info(
                "auto_release_skipped booking_id=%s code=%s msg=%s", booking_id, exc.code, exc
            )
            return _Outcome(booking_id, skipped=True)
        except Exception as exc:
            logger.error("auto_release_failed booking_id=%s err=%s", booking_id, exc)
            return _Outcome(booking_id, error=f"Booking {booking_id}: {exc}")
    if not result.released:
        return _Outcome(booking_id, skipped=True)
    return _Outcome(booking_id, amount=result.amount)


def run_auto_release(
    batch_size: Optional[int] = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    engine: Optional[SettlementEngine] = None,
    max_workers: Optional[int] = None,
) -> AutoReleaseSummary:
    """Release every timed-out booking in one bounded batch.

    Failures are isolated per booking and reported in ``errors``; a failed
    booking stays eligible for the next run.
    """
    if session_factory is None:
        from ..database import SessionLocal

        session_factory = SessionLocal
    engine = engine or get_settlement_engine()
    size = clamp_batch_size(batch_size)
    workers = max_workers or settings.AUTO_RELEASE_MAX_WORKERS

    now = engine.clock.now()
    with session_factory() as db:
        booking_ids = select_eligible_bookings(db, now, size)

    summary = AutoReleaseSummary()
    if not booking_ids:
        logger.info("auto_release_run eligible=0")
        return summary

    if workers > 1:
        with ThreadPoolExecutor(
            max_workers=min(workers, len(booking_ids)), thread_name_prefix="auto-release"
        ) as pool:
            outcomes = list(
                pool.map(lambda bid: _release_one(bid, session_factory, engine), booking_ids)
            )
    else:
        outcomes = [_release_one(bid, session_factory, engine) for bid in booking_ids]

    total = Decimal("0.00")
    for outcome in outcomes:
        if outcome.error:
            summary.errors.append(outcome.error)
        elif outcome.skipped:
            summary.skipped_count += 1
        else:
            summary.released_count += 1
            total += outcome.amount or Decimal("0.00")
    summary.total_released = total

    logger.info(
        "auto_release_run eligible=%s released=%s total=%s skipped=%s errors=%s",
        len(booking_ids),
        summary.released_count,
        summary.total_released,
        summary.skipped_count,
        len(summary.errors),
    )
    return summary
