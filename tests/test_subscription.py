from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import proof_file
from extensions import db
from models import Subscription, SubscriptionStatus, AuditLog, User
from utils import utcnow
import utils


def _request(client, headers, **form):
    data = {"paymentProof": proof_file()}
    data.update(form)
    return client.post("/api/subscription/request", headers=headers, data=data,
                       content_type="multipart/form-data")


def _approve(client, headers, subscription_id, token="TKN123"):
    return client.post(f"/api/subscription/admin/subscriptions/{subscription_id}/approve",
                       headers=headers, json={"apiToken": token})


def _create(app, user_id, status=SubscriptionStatus.PENDING, active_until=None, stock_id=None):
    with app.app_context():
        sub = Subscription(
            user_id=user_id,
            stock_id=stock_id or utils.generate_stock_id(),
            status=status,
            monthly_fee=Decimal("10.00"),
            active_until=active_until,
        )
        db.session.add(sub)
        db.session.commit()
        return sub.id


def test_request_then_approve_shows_token(client, app, user_id, admin_id, auth_headers):
    user_headers = auth_headers(user_id)
    res = _request(client, user_headers)
    assert res.status_code == 201
    created = res.get_json()["subscription"]
    assert created["status"] == "pending"
    assert created["stockId"].startswith("STOCK-")
    assert created["apiToken"] is None
    assert created["paymentProof"].startswith("/uploads/payment-proofs/proof-")

    res = _approve(client, auth_headers(admin_id), created["id"])
    assert res.status_code == 200

    mine = client.get("/api/subscription/my", headers=user_headers).get_json()["subscriptions"]
    assert len(mine) == 1
    assert mine[0]["status"] == "active"
    assert mine[0]["isActive"] is True
    assert mine[0]["apiToken"] == "TKN123"
    assert mine[0]["isExpired"] is False

    with app.app_context():
        sub = db.session.get(Subscription, created["id"])
        delta = sub.active_until - utcnow()
        assert timedelta(days=29, hours=23) < delta <= timedelta(days=30)
        assert sub.last_activated_at is not None
        assert AuditLog.query.filter_by(action="subscription.approve", target_id=sub.id).count() == 1


def test_request_requires_proof(client, user_id, auth_headers):
    res = client.post("/api/subscription/request", headers=auth_headers(user_id),
                      data={}, content_type="multipart/form-data")
    assert res.status_code == 400
    assert res.get_json()["message"] == "Payment proof is required"


def test_request_rejects_disallowed_extension(client, app, user_id, auth_headers):
    res = _request(client, auth_headers(user_id), paymentProof=proof_file("script.exe"))
    assert res.status_code == 400
    with app.app_context():
        assert Subscription.query.count() == 0


def test_stock_id_collision_retries(client, app, user_id, auth_headers, monkeypatch):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, stock_id="STOCK-TAKEN-000000")
    ids = iter(["STOCK-TAKEN-000000", "STOCK-TAKEN-000000", "STOCK-FRESH-111111"])
    monkeypatch.setattr(utils, "generate_stock_id", lambda: next(ids))

    res = _request(client, auth_headers(user_id))
    assert res.status_code == 201
    assert res.get_json()["subscription"]["stockId"] == "STOCK-FRESH-111111"


def test_stock_id_exhaustion_fails_without_writing(client, app, user_id, auth_headers, monkeypatch):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, stock_id="STOCK-TAKEN-000000")
    monkeypatch.setattr(utils, "generate_stock_id", lambda: "STOCK-TAKEN-000000")

    res = _request(client, auth_headers(user_id))
    assert res.status_code == 500
    with app.app_context():
        assert Subscription.query.count() == 1


def test_continuation_must_belong_to_caller(client, app, user_id, make_user, auth_headers):
    other_id = make_user()
    foreign = _create(app, other_id, status=SubscriptionStatus.EXPIRED)
    own_expired = _create(app, user_id, status=SubscriptionStatus.EXPIRED)
    own_pending = _create(app, user_id)

    headers = auth_headers(user_id)
    assert _request(client, headers, continuedFrom=str(foreign)).status_code == 404
    assert _request(client, headers, continuedFrom=str(own_pending)).status_code == 400

    res = _request(client, headers, continuedFrom=str(own_expired))
    assert res.status_code == 201
    assert res.get_json()["subscription"]["continuedFrom"] == own_expired


def test_reject_stores_reason_visible_to_owner(client, user_id, admin_id, auth_headers):
    created = _request(client, auth_headers(user_id)).get_json()["subscription"]

    res = client.post(f"/api/subscription/admin/subscriptions/{created['id']}/reject",
                      headers=auth_headers(admin_id), json={"reason": "duplicate payment"})
    assert res.status_code == 200

    mine = client.get("/api/subscription/my", headers=auth_headers(user_id)).get_json()["subscriptions"]
    assert mine[0]["status"] == "rejected"
    assert mine[0]["rejectionReason"] == "duplicate payment"
    assert mine[0]["apiToken"] is None


def test_approve_requires_token(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id)
    res = _approve(client, auth_headers(admin_id), sub_id, token="   ")
    assert res.status_code == 400
    with app.app_context():
        assert db.session.get(Subscription, sub_id).status == SubscriptionStatus.PENDING


def test_non_text_reason_or_token_is_a_validation_error(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id)
    headers = auth_headers(admin_id)

    res = client.post(f"/api/subscription/admin/subscriptions/{sub_id}/reject", headers=headers, json={"reason": 42})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Rejection reason must be a string"

    res = _approve(client, headers, sub_id, token={"a": 1})
    assert res.status_code == 400
    assert res.get_json()["message"] == "API token must be a string"

    with app.app_context():
        sub = db.session.get(Subscription, sub_id)
        assert sub.status == SubscriptionStatus.PENDING
        assert sub.api_token is None


def test_approve_unknown_subscription(client, admin_id, auth_headers):
    assert _approve(client, auth_headers(admin_id), 9999).status_code == 404


def test_admin_routes_reject_regular_users(client, app, user_id, auth_headers):
    sub_id = _create(app, user_id)
    assert _approve(client, auth_headers(user_id), sub_id).status_code == 403
    assert client.get("/api/subscription/admin/subscriptions/pending",
                      headers=auth_headers(user_id)).status_code == 403


def test_approving_active_subscription_is_a_conflict(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=3))
    res = _approve(client, auth_headers(admin_id), sub_id)
    assert res.status_code == 409


def test_rejecting_active_subscription_is_a_conflict(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=3))
    res = client.post(f"/api/subscription/admin/subscriptions/{sub_id}/reject",
                      headers=auth_headers(admin_id), json={"reason": "nope"})
    assert res.status_code == 409


def test_toggle_cycles_between_active_and_cancelled(client, app, user_id, admin_id, auth_headers):
    until = utcnow() + timedelta(days=10)
    sub_id = _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=until)
    url = f"/api/subscription/admin/subscriptions/{sub_id}/toggle"

    res = client.post(url, headers=auth_headers(admin_id))
    assert res.get_json()["subscription"]["status"] == "cancelled"
    assert res.get_json()["subscription"]["isActive"] is False

    res = client.post(url, headers=auth_headers(admin_id))
    assert res.get_json()["subscription"]["status"] == "active"
    with app.app_context():
        # an unexpired period is kept as-is
        assert db.session.get(Subscription, sub_id).active_until == until


def test_toggle_expired_subscription_gets_new_period(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.EXPIRED, active_until=utcnow() - timedelta(days=3))
    client.post(f"/api/subscription/admin/subscriptions/{sub_id}/toggle", headers=auth_headers(admin_id))
    with app.app_context():
        sub = db.session.get(Subscription, sub_id)
        assert sub.status == SubscriptionStatus.ACTIVE
        assert sub.active_until > utcnow() + timedelta(days=29)


def test_toggle_cancelled_without_period_gets_new_period(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.CANCELLED)
    client.post(f"/api/subscription/admin/subscriptions/{sub_id}/toggle", headers=auth_headers(admin_id))
    with app.app_context():
        sub = db.session.get(Subscription, sub_id)
        assert sub.status == SubscriptionStatus.ACTIVE
        assert sub.active_until > utcnow() + timedelta(days=29)


def test_toggle_pending_is_a_conflict(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id)
    res = client.post(f"/api/subscription/admin/subscriptions/{sub_id}/toggle", headers=auth_headers(admin_id))
    assert res.status_code == 409


def test_mark_expired_and_listing(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=1))
    res = client.post(f"/api/subscription/admin/subscriptions/{sub_id}/expire", headers=auth_headers(admin_id))
    assert res.status_code == 200

    listed = client.get("/api/subscription/admin/subscriptions/expired",
                        headers=auth_headers(admin_id)).get_json()["subscriptions"]
    assert [s["id"] for s in listed] == [sub_id]
    assert listed[0]["user"]["email"] == "alice@example.com"

    again = client.post(f"/api/subscription/admin/subscriptions/{sub_id}/expire", headers=auth_headers(admin_id))
    assert again.status_code == 409


def test_set_token_trims_and_keeps_status(client, app, user_id, admin_id, auth_headers):
    sub_id = _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=5))
    url = f"/api/subscription/admin/subscriptions/{sub_id}/token"

    assert client.put(url, headers=auth_headers(admin_id), json={"apiToken": ""}).status_code == 400
    res = client.put(url, headers=auth_headers(admin_id), json={"apiToken": "  NEWTOKEN  "})
    assert res.status_code == 200
    with app.app_context():
        sub = db.session.get(Subscription, sub_id)
        assert sub.api_token == "NEWTOKEN"
        assert sub.status == SubscriptionStatus.ACTIVE


def test_token_hidden_once_period_is_over(client, app, user_id, auth_headers):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() - timedelta(days=1))
    with app.app_context():
        sub = Subscription.query.first()
        sub.api_token = "SECRET"
        db.session.commit()

    mine = client.get("/api/subscription/my", headers=auth_headers(user_id)).get_json()["subscriptions"]
    assert mine[0]["isExpired"] is True
    assert mine[0]["apiToken"] is None
    assert mine[0]["hasApiToken"] is True


@pytest.mark.parametrize("kind", ["pending", "active", "all", "expired"])
def test_admin_listings_answer(client, admin_id, auth_headers, kind):
    res = client.get(f"/api/subscription/admin/subscriptions/{kind}", headers=auth_headers(admin_id))
    assert res.status_code == 200
    assert res.get_json()["subscriptions"] == []


def test_all_listing_carries_owner_totals(client, app, user_id, admin_id, auth_headers):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=10))
    _create(app, user_id, status=SubscriptionStatus.CANCELLED, active_until=utcnow() + timedelta(days=10))
    _create(app, user_id)

    listed = client.get("/api/subscription/admin/subscriptions/all",
                        headers=auth_headers(admin_id)).get_json()["subscriptions"]
    assert sorted(s["status"] for s in listed) == ["active", "cancelled"]
    for record in listed:
        assert record["activeStocks"] == 1
        assert record["stocksFee"] == 10.0
        assert record["bonus"] == 0.0
        assert record["netValue"] == 10.0


def test_users_stats(client, app, user_id, admin_id, auth_headers):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=10))
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() - timedelta(days=60))

    users = client.get("/api/subscription/admin/users/stats", headers=auth_headers(admin_id)).get_json()["users"]
    assert len(users) == 1
    assert users[0]["email"] == "alice@example.com"
    assert users[0]["activeStocks"] == 1
    assert users[0]["stocksFee"] == 10.0


def test_dashboard_summary(client, app, user_id, auth_headers):
    _create(app, user_id, status=SubscriptionStatus.ACTIVE, active_until=utcnow() + timedelta(days=10))
    _create(app, user_id)
    with app.app_context():
        db.session.get(User, user_id).withdrawable_balance = Decimal("7.50")
        db.session.commit()

    dashboard = client.get("/api/subscription/dashboard", headers=auth_headers(user_id)).get_json()["dashboard"]
    assert dashboard["hasActiveSubscription"] is True
    assert dashboard["stockCount"] == 2
    assert dashboard["activeStocksCount"] == 1
    assert dashboard["totalReferrals"] == 0
    assert dashboard["monthlyProfit"] == 0.0
    assert dashboard["netCost"] == 10.0
    assert dashboard["withdrawableBalance"] == 7.5


def test_toggle_role_refuses_self(client, user_id, admin_id, auth_headers, fetch):
    own = client.post(f"/api/subscription/admin/users/{admin_id}/toggle-role", headers=auth_headers(admin_id))
    assert own.status_code == 400

    res = client.post(f"/api/subscription/admin/users/{user_id}/toggle-role", headers=auth_headers(admin_id))
    assert res.status_code == 200
    assert fetch(User, user_id).role == "admin"


def test_uploaded_proof_served_to_admin_only(client, user_id, admin_id, auth_headers):
    created = _request(client, auth_headers(user_id)).get_json()["subscription"]
    url = "/api/subscription" + created["paymentProof"]

    assert client.get(url, headers=auth_headers(user_id)).status_code == 403
    res = client.get(url, headers=auth_headers(admin_id))
    assert res.status_code == 200
    assert res.data == b"\x89PNG fake image bytes"

    missing = client.get("/api/subscription/uploads/payment-proofs/nope.png", headers=auth_headers(admin_id))
    assert missing.status_code == 404
