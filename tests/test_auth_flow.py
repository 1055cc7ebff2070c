from __future__ import annotations

from sqlalchemy import select

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, api, login_token, seed_admin
from db import SessionLocal
from models import CompanyLog, Session as DbSession, User


def test_login_by_email_and_by_login_id(app_client):
    _app, client = app_client
    login_id = seed_admin()
    assert login_id == "OIADUS20220001"

    for ident in (ADMIN_EMAIL, ADMIN_EMAIL.upper(), login_id, login_id.lower()):
        res = api(client, {"action": "LOGIN", "token": None, "data": {"loginIdOrEmail": ident, "password": ADMIN_PASSWORD}})
        assert res.status_code == 200, ident
        data = res.get_json()["data"]
        assert data["sessionToken"].startswith("ST-")
        assert data["me"]["loginId"] == login_id
        assert data["requiresPasswordChange"] is False


def test_login_sets_httponly_cookie(app_client):
    _app, client = app_client
    seed_admin()

    res = client.post("/api/auth/login", json={"loginIdOrEmail": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    cookie = res.headers.get("Set-Cookie", "")
    assert cookie.startswith("token=ST-")
    assert "HttpOnly" in cookie
    assert "SameSite=Strict" in cookie

    # The cookie alone authenticates.
    res = client.get("/api/auth/me")
    assert res.status_code == 200
    assert res.get_json()["data"]["user"]["email"] == ADMIN_EMAIL


def test_login_failures(app_client):
    _app, client = app_client
    seed_admin()

    res = api(client, {"action": "LOGIN", "data": {"loginIdOrEmail": ADMIN_EMAIL, "password": "Wrong@1234"}})
    assert res.status_code == 401
    assert res.get_json()["error"]["code"] == "AUTH_INVALID"

    res = api(client, {"action": "LOGIN", "data": {"loginIdOrEmail": "nobody@dayflow.com", "password": ADMIN_PASSWORD}})
    assert res.status_code == 401
    assert res.get_json()["error"]["message"] == "Invalid login ID/Email or password"

    res = api(client, {"action": "LOGIN", "data": {"loginIdOrEmail": ADMIN_EMAIL}})
    assert res.status_code == 400


def test_deactivated_account_is_blocked(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    with SessionLocal() as db:
        user = db.execute(select(User).where(User.email == ADMIN_EMAIL)).scalar_one()
        user.isActive = False
        db.commit()

    res = api(client, {"action": "LOGIN", "data": {"loginIdOrEmail": ADMIN_EMAIL, "password": ADMIN_PASSWORD}})
    assert res.status_code == 403
    assert res.get_json()["error"]["code"] == "FORBIDDEN"

    res = api(client, {"action": "GET_ME", "token": token, "data": {}})
    assert res.status_code == 403


def test_change_password_revokes_other_sessions(app_client):
    _app, client = app_client
    seed_admin()
    t1 = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    t2 = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = api(client, {"action": "CHANGE_PASSWORD", "token": t1, "data": {"currentPassword": "Nope@1234", "newPassword": "Newpass@123"}})
    assert res.status_code == 400
    assert res.get_json()["error"]["message"] == "Current password is incorrect"

    res = api(client, {"action": "CHANGE_PASSWORD", "token": t1, "data": {"currentPassword": ADMIN_PASSWORD, "newPassword": "weak"}})
    assert res.status_code == 400
    assert res.get_json()["error"]["message"] == "New password must be at least 8 characters long"

    res = api(client, {"action": "CHANGE_PASSWORD", "token": t1, "data": {"currentPassword": ADMIN_PASSWORD, "newPassword": "Newpass@123"}})
    assert res.status_code == 200
    assert res.get_json()["data"]["revokedSessions"] == 1

    assert api(client, {"action": "GET_ME", "token": t1, "data": {}}).status_code == 200
    assert api(client, {"action": "GET_ME", "token": t2, "data": {}}).status_code == 401

    login_token(client, ADMIN_EMAIL, "Newpass@123")
    with SessionLocal() as db:
        actions = db.execute(select(CompanyLog.action).where(CompanyLog.action == "PASSWORD_CHANGED")).scalars().all()
        assert actions == ["PASSWORD_CHANGED"]


def test_logout_revokes_session(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.get_json()["data"]["revoked"] is True

    with SessionLocal() as db:
        ses = db.execute(select(DbSession)).scalars().all()
        assert len(ses) == 1
        assert ses[0].revokedAt

    res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401

    # Logging out without a session is still fine.
    res = api(client, {"action": "LOGOUT", "token": None, "data": {}})
    assert res.status_code == 200
    assert res.get_json()["data"]["revoked"] is False


def test_unknown_action_and_bad_body(app_client):
    _app, client = app_client

    res = api(client, {"action": "DROP_TABLES", "data": {}})
    assert res.status_code == 400
    assert res.get_json()["error"]["code"] == "BAD_REQUEST"

    res = client.post("/api", data="{not json", content_type="text/plain")
    assert res.status_code == 400
    assert res.get_json()["ok"] is False


def test_login_is_rate_limited_per_ip(app_client):
    app, client = app_client
    seed_admin()
    app.config["CFG"].RATE_LIMIT_LOGIN = "2/60"

    payload = {"action": "LOGIN", "data": {"loginIdOrEmail": ADMIN_EMAIL, "password": "Wrong@1234"}}
    assert api(client, payload).status_code == 401
    assert api(client, payload).status_code == 401
    res = api(client, payload)
    assert res.status_code == 429
    assert res.get_json()["error"]["code"] == "RATE_LIMITED"

    app.extensions["rate_limiter"].reset()
    login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)
