from decimal import Decimal

from conftest import proof_file


def test_admin_data_summary(client, make_user, admin_id, auth_headers):
    uid = make_user(balance="6.00")
    client.post("/api/subscription/request", headers=auth_headers(uid),
                data={"paymentProof": proof_file()}, content_type="multipart/form-data")
    client.post("/api/subscription/withdraw/request", headers=auth_headers(uid), json={"amount": "2.00"})

    res = client.get("/api/admin/data", headers=auth_headers(admin_id))
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["total_users"] == 2
    assert data["admin_users"] == 1
    assert data["subscriptions"]["pending"] == 1
    assert data["subscriptions"]["active"] == 0
    assert data["pending_withdrawals"] == 1
    assert data["outstanding_balance"] == float(Decimal("6.00"))


def test_admin_search(client, make_user, admin_id, auth_headers):
    make_user(email="findme@example.com", referral_code="REF-FIND0001")
    headers = auth_headers(admin_id)

    res = client.get("/api/admin/search?q=findme", headers=headers)
    assert [u["email"] for u in res.get_json()["users"]] == ["findme@example.com"]

    by_code = client.get("/api/admin/search?q=REF-FIND", headers=headers)
    assert by_code.get_json()["total_results"] == 1

    assert client.get("/api/admin/search", headers=headers).status_code == 400


def test_audit_trail_lists_admin_actions(client, make_user, admin_id, auth_headers):
    uid = make_user()
    client.post(f"/api/subscription/admin/users/{uid}/toggle-role", headers=auth_headers(admin_id))

    logs = client.get("/api/admin/audit-logs", headers=auth_headers(admin_id)).get_json()["logs"]
    assert len(logs) == 1
    assert logs[0]["action"] == "user.toggle_role"
    assert logs[0]["actorId"] == admin_id
    assert logs[0]["targetType"] == "users"
    assert logs[0]["details"] == {"from": "user", "to": "admin"}


def test_admin_endpoints_need_admin(client, user_id, auth_headers):
    assert client.get("/api/admin/data").status_code == 401
    assert client.get("/api/admin/data", headers=auth_headers(user_id)).status_code == 403


def test_healthz(client):
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.get_json()["database"] == "ok"
