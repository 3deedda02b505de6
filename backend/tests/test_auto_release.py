from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from escrow.crud import crud_transaction, crud_wallet
from escrow.models import Booking, BookingStatus, Dispute, DisputeParty
from escrow.schemas import ConfirmAction
from escrow.services.auto_release import (
    clamp_batch_size,
    preview_auto_release,
    run_auto_release,
    select_eligible_bookings,
)
from escrow.services.settlement import SettlementEngine, confirm_completion
from escrow.utils.clock import FrozenClock

from conftest import NOW


def _run(Session, clock, **kwargs):
    return run_auto_release(session_factory=Session, engine=SettlementEngine(clock=clock), **kwargs)


def test_timed_out_booking_is_released(Session, db, clock, make_booking, parties):
    booking = make_booking()

    summary = _run(Session, clock)

    assert summary.released_count == 1
    assert summary.total_released == Decimal("95.00")
    assert summary.errors == []
    assert summary.skipped_count == 0
    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.COMPLETED
    assert stored.escrow_released is True
    assert crud_wallet.get_wallet(db, parties.provider.id).balance == Decimal("95.00")
    assert crud_transaction.count_completed_releases(db, booking.id) == 1


def test_disputed_booking_is_left_alone(Session, db, clock, make_booking, parties):
    booking = make_booking()
    db.add(Dispute(booking_id=booking.id, raised_by=parties.client.id, raised_by_type=DisputeParty.CLIENT))
    db.commit()

    summary = _run(Session, clock)

    assert summary.released_count == 0
    assert summary.errors == []
    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.AWAITING_CLIENT_CONFIRMATION
    assert stored.escrow_released is False
    assert crud_wallet.get_wallet(db, parties.provider.id) is None


def test_client_dispute_excludes_booking_from_later_runs(Session, db, clock, make_booking, parties):
    booking = make_booking(client_confirm_deadline=NOW + timedelta(hours=2))
    engine = SettlementEngine(clock=clock)
    confirm_completion(db, booking.id, parties.client, ConfirmAction.DISPUTE, reason="No show", engine=engine)

    clock.advance(hours=3)
    summary = run_auto_release(session_factory=Session, engine=engine)

    assert summary.released_count == 0
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.DISPUTED
    assert crud_wallet.get_wallet(db, parties.provider.id) is None


def test_deadline_boundary(db, make_booking):
    due_now = make_booking(client_confirm_deadline=NOW)
    make_booking(client_confirm_deadline=NOW + timedelta(seconds=1))

    assert select_eligible_bookings(db, NOW, 50) == [due_now.id]


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_paid": False},
        {"client_confirm_deadline": None},
        {"status": BookingStatus.IN_PROGRESS},
        {"status": BookingStatus.COMPLETED, "escrow_released": True},
        {"status": BookingStatus.CANCELLED},
    ],
)
def test_ineligible_bookings_are_not_selected(db, make_booking, overrides):
    make_booking(**overrides)

    assert select_eligible_bookings(db, NOW, 50) == []


def test_oldest_deadline_first_and_batch_bounded(Session, db, clock, make_booking):
    newest = make_booking(client_confirm_deadline=NOW - timedelta(minutes=5))
    oldest = make_booking(client_confirm_deadline=NOW - timedelta(days=2))
    middle = make_booking(client_confirm_deadline=NOW - timedelta(hours=3))

    assert select_eligible_bookings(db, NOW, 50) == [oldest.id, middle.id, newest.id]

    first = _run(Session, clock, batch_size=2)
    assert first.released_count == 2
    assert select_eligible_bookings(db, NOW, 50) == [newest.id]

    second = _run(Session, clock, batch_size=2)
    assert second.released_count == 1
    assert select_eligible_bookings(db, NOW, 50) == []


def test_clamp_batch_size():
    assert clamp_batch_size(None) == 50
    assert clamp_batch_size(0) == 1
    assert clamp_batch_size(75) == 75
    assert clamp_batch_size(5000) == 100


def test_failure_in_one_booking_does_not_stop_the_batch(Session, db, clock, make_booking, parties):
    bookings = [make_booking(), make_booking(), make_booking()]
    broken = bookings[1]
    real_add = crud_transaction.add_transaction

    def flaky_add(db, **kwargs):
        if kwargs["booking_id"] == broken.id:
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))
        return real_add(db, **kwargs)

    with patch("escrow.crud.crud_transaction.add_transaction", side_effect=flaky_add):
        summary = _run(Session, clock)

    assert summary.released_count == 2
    assert summary.total_released == Decimal("190.00")
    assert len(summary.errors) == 1
    assert summary.errors[0].startswith(f"Booking {broken.id}: ")

    db.expire_all()
    assert db.get(Booking, bookings[0].id).escrow_released is True
    assert db.get(Booking, bookings[2].id).escrow_released is True
    assert db.get(Booking, broken.id).status == BookingStatus.AWAITING_CLIENT_CONFIRMATION
    assert crud_wallet.get_wallet(db, parties.provider.id).balance == Decimal("190.00")

    # Still eligible, and the next run picks it up
    assert select_eligible_bookings(db, NOW, 50) == [broken.id]
    retry = _run(Session, clock)
    assert retry.released_count == 1
    assert retry.errors == []


def test_booking_changed_after_selection_is_skipped(Session, db, clock, make_booking):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)

    with patch(
        "escrow.services.auto_release.select_eligible_bookings", return_value=[booking.id]
    ):
        summary = _run(Session, clock)

    assert summary.released_count == 0
    assert summary.skipped_count == 1
    assert summary.errors == []


def test_already_settled_booking_counts_as_skipped(Session, db, clock, make_booking):
    booking = make_booking()
    SettlementEngine(clock=clock).release(db, booking.id)

    with patch(
        "escrow.services.auto_release.select_eligible_bookings", return_value=[booking.id]
    ):
        summary = _run(Session, clock)

    assert summary.skipped_count == 1
    assert summary.released_count == 0


def test_overlapping_runs_release_once(Session, db, clock, make_booking, parties):
    make_booking()
    make_booking()

    first = _run(Session, clock)
    second = _run(Session, clock)

    assert first.released_count == 2
    assert second.released_count == 0
    assert crud_wallet.get_wallet(db, parties.provider.id).balance == Decimal("190.00")


class _RecordingEngine:
    def __init__(self):
        self.clock = FrozenClock(NOW)
        self.seen = []

    def release(self, db, booking_id, reason=None):
        self.seen.append(booking_id)
        return SimpleNamespace(released=True, amount=Decimal("10.00"))


def test_parallel_workers_cover_every_booking(Session, make_booking):
    ids = [make_booking().id for _ in range(4)]
    engine = _RecordingEngine()

    summary = run_auto_release(session_factory=Session, engine=engine, max_workers=3)

    assert sorted(engine.seen) == sorted(ids)
    assert summary.released_count == 4
    assert summary.total_released == Decimal("40.00")


def test_empty_run(Session, clock):
    summary = _run(Session, clock)

    assert summary.released_count == 0
    assert summary.total_released == Decimal("0.00")
    assert summary.errors == []


def test_preview_reports_next_batch_without_releasing(db, make_booking, parties):
    due = make_booking(client_confirm_deadline=NOW - timedelta(hours=3))
    bad_amount = make_booking(
        client_confirm_deadline=NOW - timedelta(hours=1), commission_amount=Decimal("150.00")
    )
    make_booking(client_confirm_deadline=NOW + timedelta(hours=1))
    disputed = make_booking()
    db.add(Dispute(booking_id=disputed.id, raised_by=parties.client.id, raised_by_type=DisputeParty.CLIENT))
    db.commit()

    preview = preview_auto_release(db, NOW)

    assert preview.checked_at == NOW
    assert preview.eligible_count == 2
    assert [c.booking_id for c in preview.bookings] == [due.id, bad_amount.id]
    first, second = preview.bookings
    assert first.amount == Decimal("95.00")
    assert first.hours_overdue == 3
    assert first.provider_name == "Kofi Provider"
    assert first.client_name == "Ama Client"
    assert first.releasable is True
    assert second.releasable is False
    assert preview.total_amount == Decimal("95.00")

    db.expire_all()
    assert db.get(Booking, due.id).status == BookingStatus.AWAITING_CLIENT_CONFIRMATION
    assert crud_wallet.get_wallet(db, parties.provider.id) is None


def test_preview_report_is_bounded_by_batch(db, make_booking):
    make_booking()
    make_booking()

    preview = preview_auto_release(db, NOW, batch_size=1)

    assert preview.eligible_count == 2
    assert len(preview.bookings) == 1


def test_invalid_amount_is_skipped_by_the_run(Session, db, clock, make_booking, parties):
    booking = make_booking(provider_amount=Decimal("-5.00"))

    summary = _run(Session, clock)

    assert summary.released_count == 0
    assert summary.skipped_count == 1
    assert summary.errors == []
    db.expire_all()
    assert db.get(Booking, booking.id).escrow_released is False
    assert crud_wallet.get_wallet(db, parties.provider.id) is None
