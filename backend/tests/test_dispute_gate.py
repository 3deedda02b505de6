from escrow.models import Booking, Dispute, DisputeParty, DisputeStatus
from escrow.services.dispute_gate import has_open_dispute, no_dispute_clause


def _dispute(db, booking, user, status=DisputeStatus.OPEN):
    db.add(
        Dispute(
            booking_id=booking.id,
            raised_by=user.id,
            raised_by_type=DisputeParty.CLIENT,
            status=status,
        )
    )
    db.commit()


def test_no_dispute(db, make_booking):
    booking = make_booking()

    assert has_open_dispute(db, booking.id) is False


def test_open_dispute(db, make_booking, parties):
    booking = make_booking()
    _dispute(db, booking, parties.client)

    assert has_open_dispute(db, booking.id) is True


def test_resolved_dispute_still_blocks(db, make_booking, parties):
    booking = make_booking()
    _dispute(db, booking, parties.client, status=DisputeStatus.RESOLVED)

    assert has_open_dispute(db, booking.id) is True


def test_correlated_clause_filters_disputed_bookings(db, make_booking, parties):
    clean = make_booking()
    disputed = make_booking()
    _dispute(db, disputed, parties.client, status=DisputeStatus.CLOSED)

    ids = [row[0] for row in db.query(Booking.id).filter(no_dispute_clause()).all()]

    assert ids == [clean.id]
    bound = db.query(Booking.id).filter(Booking.id == disputed.id, no_dispute_clause(disputed.id))
    assert bound.all() == []
