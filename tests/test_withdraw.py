from decimal import Decimal
import io

from extensions import db
from models import User, Withdrawal, AuditLog


def _request(client, headers, amount):
    return client.post("/api/subscription/withdraw/request", headers=headers, json={"amount": amount})


def _receipt(name="receipt.pdf"):
    return (io.BytesIO(b"%PDF-1.4 receipt"), name)


def _approve(client, headers, withdrawal_id, with_receipt=True, note="paid"):
    data = {"note": note}
    if with_receipt:
        data["receipt"] = _receipt()
    return client.post(f"/api/subscription/admin/withdraw/{withdrawal_id}/approve",
                       headers=headers, data=data, content_type="multipart/form-data")


def test_request_up_to_balance_minus_fee(client, make_user, auth_headers):
    uid = make_user(balance="5.00")
    res = _request(client, auth_headers(uid), "4.00")
    assert res.status_code == 201
    body = res.get_json()["withdraw"]
    assert body["amount"] == 4.0
    assert body["fee"] == 1.0
    assert body["netAmount"] == 4.0
    assert body["status"] == "pending"


def test_one_cent_over_maximum_is_refused(client, app, make_user, auth_headers):
    uid = make_user(balance="5.00")
    res = _request(client, auth_headers(uid), "4.01")
    assert res.status_code == 400
    assert "4.00" in res.get_json()["message"]
    with app.app_context():
        assert Withdrawal.query.count() == 0


def test_amount_validation(client, make_user, auth_headers):
    uid = make_user(balance="50.00")
    headers = auth_headers(uid)
    assert _request(client, headers, "abc").status_code == 400
    assert _request(client, headers, None).status_code == 400
    assert _request(client, headers, "0.50").get_json()["message"] == "Minimum withdraw amount is $1.00"


def test_history_and_limits(client, make_user, auth_headers):
    uid = make_user(balance="12.00")
    headers = auth_headers(uid)
    _request(client, headers, 3)
    _request(client, headers, 2)

    history = client.get("/api/subscription/withdraw/history", headers=headers).get_json()["withdraws"]
    assert sorted(w["amount"] for w in history) == [2.0, 3.0]

    limits = client.get("/api/subscription/withdraw/limits", headers=headers).get_json()["limits"]
    assert limits == {"withdrawableBalance": 12.0, "fee": 1.0, "minWithdrawal": 1.0, "maxWithdrawable": 11.0}


def test_approve_debits_amount_plus_fee(client, app, make_user, admin_id, auth_headers, fetch):
    uid = make_user(balance="10.00")
    wid = _request(client, auth_headers(uid), "4.00").get_json()["withdraw"]["id"]

    res = _approve(client, auth_headers(admin_id), wid)
    assert res.status_code == 200
    body = res.get_json()["withdraw"]
    assert body["status"] == "approved"
    assert body["receipt"].startswith("/uploads/withdraw-receipts/receipt-")
    assert body["adminNote"] == "paid"

    assert fetch(User, uid).withdrawable_balance == Decimal("5.00")
    with app.app_context():
        withdrawal = db.session.get(Withdrawal, wid)
        assert withdrawal.processed_by_id == admin_id
        assert withdrawal.processed_at is not None
        assert AuditLog.query.filter_by(action="withdrawal.approve", target_id=wid).count() == 1


def test_approve_requires_receipt(client, make_user, admin_id, auth_headers, fetch):
    uid = make_user(balance="10.00")
    wid = _request(client, auth_headers(uid), "4.00").get_json()["withdraw"]["id"]

    res = _approve(client, auth_headers(admin_id), wid, with_receipt=False)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Receipt is required"
    assert fetch(Withdrawal, wid).status == "pending"
    assert fetch(User, uid).withdrawable_balance == Decimal("10.00")


def test_approve_rechecks_balance(client, app, make_user, admin_id, auth_headers, fetch):
    uid = make_user(balance="5.00")
    first = _request(client, auth_headers(uid), "4.00").get_json()["withdraw"]["id"]
    second = _request(client, auth_headers(uid), "4.00").get_json()["withdraw"]["id"]

    assert _approve(client, auth_headers(admin_id), first).status_code == 200
    res = _approve(client, auth_headers(admin_id), second)
    assert res.status_code == 400
    assert res.get_json()["message"] == "User has insufficient withdrawable balance"
    assert fetch(User, uid).withdrawable_balance == Decimal("0.00")
    assert fetch(Withdrawal, second).status == "pending"


def test_processed_request_is_immutable(client, make_user, admin_id, auth_headers):
    uid = make_user(balance="10.00")
    wid = _request(client, auth_headers(uid), "2.00").get_json()["withdraw"]["id"]
    _approve(client, auth_headers(admin_id), wid)

    assert _approve(client, auth_headers(admin_id), wid).status_code == 409
    res = client.post(f"/api/subscription/admin/withdraw/{wid}/reject",
                      headers=auth_headers(admin_id), json={"reason": "late"})
    assert res.status_code == 409


def test_reject_leaves_balance_untouched(client, make_user, admin_id, auth_headers, fetch):
    uid = make_user(balance="10.00")
    wid = _request(client, auth_headers(uid), "2.00").get_json()["withdraw"]["id"]

    res = client.post(f"/api/subscription/admin/withdraw/{wid}/reject",
                      headers=auth_headers(admin_id), json={"reason": "bank details missing"})
    assert res.status_code == 200
    assert res.get_json()["withdraw"]["adminNote"] == "bank details missing"
    assert fetch(User, uid).withdrawable_balance == Decimal("10.00")


def test_non_text_reason_is_a_validation_error(client, make_user, admin_id, auth_headers):
    uid = make_user(balance="10.00")
    wid = _request(client, auth_headers(uid), "2.00").get_json()["withdraw"]["id"]

    res = client.post(f"/api/subscription/admin/withdraw/{wid}/reject",
                      headers=auth_headers(admin_id), json={"reason": 7})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Rejection reason must be a string"

    history = client.get("/api/subscription/withdraw/history", headers=auth_headers(uid)).get_json()
    assert history["withdraws"][0]["status"] == "pending"


def test_unknown_withdrawal(client, admin_id, auth_headers):
    assert _approve(client, auth_headers(admin_id), 424242).status_code == 404


def test_admin_listing_with_status_filter(client, make_user, admin_id, auth_headers):
    uid = make_user(balance="20.00")
    keep = _request(client, auth_headers(uid), "2.00").get_json()["withdraw"]["id"]
    drop = _request(client, auth_headers(uid), "3.00").get_json()["withdraw"]["id"]
    client.post(f"/api/subscription/admin/withdraw/{drop}/reject", headers=auth_headers(admin_id), json={})

    url = "/api/subscription/admin/withdraw/requests"
    everything = client.get(url, headers=auth_headers(admin_id)).get_json()["withdraws"]
    assert len(everything) == 2

    pending = client.get(url + "?status=pending", headers=auth_headers(admin_id)).get_json()["withdraws"]
    assert [w["id"] for w in pending] == [keep]
    assert pending[0]["user"]["id"] == uid

    assert client.get(url + "?status=weird", headers=auth_headers(admin_id)).status_code == 400
    assert client.get(url, headers=auth_headers(uid)).status_code == 403
