from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

import models  # noqa: F401  (registers tables on Base.metadata)
from db import Base, SessionLocal, init_engine


ADMIN_EMAIL = "admin@dayflow.com"
ADMIN_PASSWORD = "Admin@123"


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("RATE_LIMIT_LOGIN", "1000/60")
    monkeypatch.setenv("RATE_LIMIT_GLOBAL", "10000/60")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    from server import create_app

    app = create_app()
    app.config["TESTING"] = True
    yield app, app.test_client()


@pytest.fixture()
def db_session(tmp_path):
    engine = init_engine(f"sqlite:///{tmp_path / 'core.db'}")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def seed_admin(*, role: str = "ADMIN", email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD, year: int = 2022):
    from actions.employees import create_employee_record

    with SessionLocal() as db:
        user, _emp, _pwd = create_employee_record(
            db,
            first_name="Admin" if role == "ADMIN" else "Staff",
            last_name="User",
            email=email,
            role=role,
            join_date=datetime(year, 1, 1, tzinfo=timezone.utc),
            password=password,
            password_changed=True,
            email_verified=True,
        )
        db.commit()
        return user.loginId


def login_token(client, login_id_or_email: str, password: str) -> str:
    res = api(client, {"action": "LOGIN", "token": None, "data": {"loginIdOrEmail": login_id_or_email, "password": password}})
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]["sessionToken"]
