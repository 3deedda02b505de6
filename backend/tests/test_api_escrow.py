from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from escrow.crud import crud_notification, crud_wallet
from escrow.database import get_db, get_session_factory
from escrow.main import app
from escrow.models import Booking, BookingStatus, Dispute, NotificationType
from escrow.services.settlement import SettlementEngine, get_settlement_engine
from escrow.utils.auth import create_access_token


@pytest.fixture
def api(Session, clock):
    notifier = Mock()
    engine = SettlementEngine(clock=clock, notifier=notifier)

    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_settlement_engine] = lambda: engine
    app.dependency_overrides[get_session_factory] = lambda: Session
    yield SimpleNamespace(client=TestClient(app), engine=engine, notifier=notifier)
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.email)}"}


def test_client_accept_releases_escrow(api, db, make_booking, parties):
    booking = make_booking()

    res = api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm",
        json={"action": "ACCEPT"},
        headers=auth(parties.client),
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["transaction_created"] is True
    assert body["dispute"] is None
    assert body["booking"]["status"] == "completed"
    assert body["booking"]["escrow_released"] is True
    assert crud_wallet.get_wallet(db, parties.provider.id).balance == Decimal("95.00")
    api.notifier.notify.assert_called_once()


def test_repeated_accept_is_idempotent(api, db, make_booking, parties):
    booking = make_booking()
    url = f"/api/v1/bookings/{booking.id}/confirm"

    first = api.client.post(url, json={"action": "ACCEPT"}, headers=auth(parties.client))
    second = api.client.post(url, json={"action": "ACCEPT"}, headers=auth(parties.client))

    assert first.status_code == second.status_code == 200
    assert second.json()["success"] is True
    assert second.json()["transaction_created"] is False
    db.expire_all()
    assert len(db.get(Booking, booking.id).transactions) == 1
    assert crud_wallet.get_wallet(db, parties.provider.id).balance == Decimal("95.00")


def test_client_dispute(api, db, make_booking, parties):
    booking = make_booking()

    res = api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm",
        json={"action": "DISPUTE", "reason": "Half the set was missing"},
        headers=auth(parties.client),
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["booking"]["status"] == "disputed"
    assert body["transaction_created"] is False
    assert body["dispute"]["description"] == "Half the set was missing"
    assert body["dispute"]["status"] == "open"
    assert db.query(Dispute).filter(Dispute.booking_id == booking.id).count() == 1
    assert crud_wallet.get_wallet(db, parties.provider.id) is None


def test_provider_cannot_confirm(api, make_booking, parties):
    booking = make_booking()

    res = api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm",
        json={"action": "ACCEPT"},
        headers=auth(parties.provider),
    )

    assert res.status_code == 403
    assert res.json()["detail"] == "Only the client can confirm completion"


def test_confirm_wrong_status_is_rejected(api, make_booking, parties):
    booking = make_booking(status=BookingStatus.IN_PROGRESS)

    res = api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm",
        json={"action": "ACCEPT"},
        headers=auth(parties.client),
    )

    assert res.status_code == 400
    detail = res.json()["detail"]
    assert detail["message"] == "Booking is not awaiting client confirmation"
    assert detail["field_errors"] == {"status": "wrong_status"}


def test_confirm_missing_booking(api, parties):
    res = api.client.post(
        "/api/v1/bookings/999/confirm", json={"action": "ACCEPT"}, headers=auth(parties.client)
    )

    assert res.status_code == 404


def test_confirm_invalid_action(api, make_booking, parties):
    booking = make_booking()

    res = api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm",
        json={"action": "MAYBE"},
        headers=auth(parties.client),
    )

    assert res.status_code == 422
    assert any(err["loc"][-1] == "action" for err in res.json()["detail"])


def test_confirm_requires_token(api, make_booking):
    booking = make_booking()

    res = api.client.post(f"/api/v1/bookings/{booking.id}/confirm", json={"action": "ACCEPT"})

    assert res.status_code == 401


def test_read_booking_limited_to_parties(api, make_booking, parties):
    booking = make_booking()
    url = f"/api/v1/bookings/{booking.id}"

    assert api.client.get(url, headers=auth(parties.client)).status_code == 200
    assert api.client.get(url, headers=auth(parties.admin)).status_code == 200
    assert api.client.get(url, headers=auth(parties.stranger)).status_code == 403
    assert api.client.get("/api/v1/bookings/999", headers=auth(parties.client)).status_code == 404


def test_provider_marks_work_done(api, db, clock, make_booking, parties):
    booking = make_booking(status=BookingStatus.IN_PROGRESS, completed_at=None, client_confirm_deadline=None)

    res = api.client.patch(
        f"/api/v1/bookings/{booking.id}/status",
        json={"status": "completed"},
        headers=auth(parties.provider),
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "awaiting_client_confirmation"
    assert body["client_confirm_deadline"] is not None
    rows = crud_notification.get_notifications_for_user(db, parties.client.id)
    assert len(rows) == 1
    assert rows[0].type == NotificationType.BOOKING_STATUS_UPDATED


def test_status_change_errors(api, make_booking, parties):
    pending = make_booking(status=BookingStatus.PENDING, client_confirm_deadline=None)
    awaiting = make_booking()

    forbidden = api.client.patch(
        f"/api/v1/bookings/{pending.id}/status",
        json={"status": "confirmed"},
        headers=auth(parties.client),
    )
    settlement = api.client.patch(
        f"/api/v1/bookings/{awaiting.id}/status",
        json={"status": "completed"},
        headers=auth(parties.client),
    )

    assert forbidden.status_code == 403
    assert settlement.status_code == 400


def test_provider_wallet_and_earnings(api, make_booking, parties):
    booking = make_booking()

    empty = api.client.get("/api/v1/provider/wallet", headers=auth(parties.provider))
    assert empty.status_code == 200
    assert Decimal(str(empty.json()["balance"])) == Decimal("0")
    assert empty.json()["can_withdraw"] is False

    api.client.post(
        f"/api/v1/bookings/{booking.id}/confirm", json={"action": "ACCEPT"}, headers=auth(parties.client)
    )

    wallet = api.client.get("/api/v1/provider/wallet", headers=auth(parties.provider)).json()
    assert Decimal(str(wallet["balance"])) == Decimal("95.00")
    assert wallet["currency"] == "GHS"
    assert wallet["can_withdraw"] is True

    earnings = api.client.get(
        "/api/v1/provider/earnings/transactions", headers=auth(parties.provider)
    ).json()
    assert earnings["total"] == 1
    item = earnings["items"][0]
    assert item["type"] == "escrow_release"
    assert item["booking_id"] == booking.id
    assert Decimal(str(item["amount"])) == Decimal("95.00")
    assert item["details"]["release_reason"] == "IMMEDIATE_TWO_PARTY_CONFIRMATION"


def test_wallet_is_provider_only(api, parties):
    res = api.client.get("/api/v1/provider/wallet", headers=auth(parties.client))

    assert res.status_code == 403


def test_ops_auto_release_requires_admin(api, db, make_booking, parties):
    booking = make_booking()

    denied = api.client.post("/api/v1/ops/escrow/auto-release", headers=auth(parties.client))
    assert denied.status_code == 403

    res = api.client.post("/api/v1/ops/escrow/auto-release?batch_size=10", headers=auth(parties.admin))
    assert res.status_code == 202, res.text
    body = res.json()
    assert body["status"] == "ok"
    assert body["released_count"] == 1
    assert Decimal(str(body["total_released"])) == Decimal("95.00")
    assert body["errors"] == []
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.COMPLETED


def test_ops_auto_release_preview(api, db, make_booking, parties):
    booking = make_booking()

    denied = api.client.get("/api/v1/ops/escrow/auto-release", headers=auth(parties.provider))
    assert denied.status_code == 403

    res = api.client.get("/api/v1/ops/escrow/auto-release", headers=auth(parties.admin))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["eligible_count"] == 1
    assert Decimal(str(body["total_amount"])) == Decimal("95.00")
    assert body["bookings"][0]["booking_id"] == booking.id
    assert body["bookings"][0]["hours_overdue"] == 1
    db.expire_all()
    assert db.get(Booking, booking.id).escrow_released is False
