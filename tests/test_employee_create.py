from __future__ import annotations

from sqlalchemy import func, select

import actions.employees
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, api, login_token, seed_admin
from db import SessionLocal
from models import CompanyLog, Employee, EmployeeProfile, LoginIdSerial, User
from passwords import hash_password
from utils import StorageError, iso_utc_now


def _create(client, token: str, **data):
    payload = {"firstName": "John", "lastName": "Doe", "email": "john.doe@dayflow.com", "dateOfJoin": "2024-03-15"}
    payload.update(data)
    return api(client, {"action": "EMPLOYEE_CREATE", "token": token, "data": payload})


def _user_count(email: str) -> int:
    with SessionLocal() as db:
        return db.execute(select(func.count()).select_from(User).where(User.email == email)).scalar_one()


def _serial(year: int):
    with SessionLocal() as db:
        row = db.execute(select(LoginIdSerial).where(LoginIdSerial.year == year)).scalar_one_or_none()
        return row.serial if row else None


def test_admin_creates_employee_with_login_id_and_temp_password(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = _create(client, token, department="Engineering", designation="Engineer", phone="+91-9000000000", city="Pune")
    assert res.status_code == 200
    body = res.get_json()
    assert body["ok"] is True
    data = body["data"]
    assert data["user"]["loginId"] == "OIJODO20240001"
    assert data["user"]["role"] == "EMPLOYEE"
    assert data["user"]["passwordChanged"] is False
    assert data["employee"]["employeeCode"] == "OIJODO20240001"
    assert data["employee"]["yearOfJoining"] == 2024
    assert data["employee"]["dateOfJoin"].startswith("2024-03-15T00:00:00")
    assert len(data["temporaryPassword"]) == 12

    with SessionLocal() as db:
        emp = db.execute(select(Employee).where(Employee.employeeCode == "OIJODO20240001")).scalar_one()
        assert emp.department == "Engineering"
        prof = db.execute(select(EmployeeProfile).where(EmployeeProfile.employeeId == emp.employeeId)).scalar_one()
        assert prof.city == "Pune"
        logs = db.execute(select(CompanyLog).where(CompanyLog.action == "EMPLOYEE_CREATED")).scalars().all()
        assert len(logs) == 1
        assert "temporaryPassword" not in logs[0].metaJson

    # Temporary password works and flags the required change.
    res = api(client, {"action": "LOGIN", "token": None, "data": {"loginIdOrEmail": "oijodo20240001", "password": data["temporaryPassword"]}})
    assert res.status_code == 200
    assert res.get_json()["data"]["requiresPasswordChange"] is True


def test_second_employee_same_year_gets_next_serial(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    assert _create(client, token).get_json()["data"]["user"]["loginId"] == "OIJODO20240001"
    res = _create(client, token, firstName="Jane", lastName="Smith", email="jane.smith@dayflow.com")
    assert res.get_json()["data"]["user"]["loginId"] == "OIJASM20240002"
    # The admin was issued from the 2022 counter.
    assert _serial(2022) == 1


def test_rest_create_employee_route(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = client.post(
        "/api/auth/create-employee",
        json={"firstName": "Sarah", "lastName": "Williams", "email": "sarah@dayflow.com", "dateOfJoin": "2023-01-15"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["user"]["loginId"] == "OISAWI20230001"


def test_employee_role_cannot_create(app_client):
    _app, client = app_client
    seed_admin(role="EMPLOYEE", email="staff@dayflow.com", password="Staff@1234")
    token = login_token(client, "staff@dayflow.com", "Staff@1234")

    res = _create(client, token)
    assert res.status_code == 403
    assert res.get_json()["error"]["code"] == "FORBIDDEN"
    assert _user_count("john.doe@dayflow.com") == 0
    assert _serial(2024) is None


def test_create_requires_session(app_client):
    _app, client = app_client
    res = _create(client, "ST-not-a-real-token")
    assert res.status_code == 401
    assert res.get_json()["error"]["code"] == "AUTH_INVALID"


def test_duplicate_email_conflicts(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    assert _create(client, token).status_code == 200
    res = _create(client, token, firstName="Johnny", email="JOHN.DOE@dayflow.com")
    assert res.status_code == 409
    assert res.get_json()["error"]["code"] == "CONFLICT"
    assert _serial(2024) == 1


def test_validation_errors(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    for bad in ({"firstName": ""}, {"email": "not-an-email"}, {"role": "OWNER"}, {"dateOfJoin": "not a date"}):
        res = _create(client, token, **bad)
        assert res.status_code == 400, bad
        assert res.get_json()["error"]["code"] == "BAD_REQUEST"
    assert _serial(2024) is None


def test_login_id_collision_aborts_without_side_effects(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    # An account that already holds the next ID the 2024 counter will hand out.
    now = iso_utc_now()
    with SessionLocal() as db:
        db.add(
            User(
                userId="USR-LEGACY",
                name="Legacy",
                email="legacy@dayflow.com",
                loginId="OIJODO20240001",
                passwordHash=hash_password("Legacy@123"),
                role="EMPLOYEE",
                createdAt=now,
                updatedAt=now,
            )
        )
        db.commit()

    res = _create(client, token)
    assert res.status_code == 500
    err = res.get_json()["error"]
    assert err["code"] == "INTERNAL"
    assert "collision" in err["message"].lower()
    assert _user_count("john.doe@dayflow.com") == 0
    assert _serial(2024) is None


def test_storage_failure_after_allocation_rolls_back_serial(app_client, monkeypatch):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    def _fail(_pwd):
        raise StorageError()

    monkeypatch.setattr(actions.employees, "hash_password", _fail)
    res = _create(client, token)
    assert res.status_code == 503
    assert res.get_json()["error"]["code"] == "STORAGE_ERROR"
    assert _user_count("john.doe@dayflow.com") == 0
    assert _serial(2024) is None

    monkeypatch.setattr(actions.employees, "hash_password", hash_password)
    res = _create(client, token)
    assert res.status_code == 200
    assert res.get_json()["data"]["user"]["loginId"] == "OIJODO20240001"


def test_users_list_requires_manager_role(app_client):
    _app, client = app_client
    seed_admin()
    seed_admin(role="EMPLOYEE", email="staff@dayflow.com", password="Staff@1234")
    admin_token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    staff_token = login_token(client, "staff@dayflow.com", "Staff@1234")

    res = client.get("/api/users", headers={"Authorization": f"Bearer {admin_token}"})
    assert res.status_code == 200
    emails = {u["email"] for u in res.get_json()["data"]["users"]}
    assert emails == {ADMIN_EMAIL, "staff@dayflow.com"}
    assert all("passwordHash" not in u for u in res.get_json()["data"]["users"])

    res = client.get("/api/users", headers={"Authorization": f"Bearer {staff_token}"})
    assert res.status_code == 403


def test_join_year_matches_stored_utc_date(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = _create(client, token, dateOfJoin="2022-12-31T23:00:00-05:00")
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["employee"]["dateOfJoin"] == "2023-01-01T04:00:00.000Z"
    assert data["employee"]["yearOfJoining"] == 2023
    assert data["user"]["loginId"] == "OIJODO20230001"
    assert _serial(2022) == 1


def test_out_of_range_join_date_is_bad_request(app_client):
    _app, client = app_client
    seed_admin()
    token = login_token(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    res = _create(client, token, dateOfJoin="0001-01-01T00:00:00+01:00")
    assert res.status_code == 400
    assert res.get_json()["error"]["message"] == "Invalid dateOfJoin"
    assert _user_count("john.doe@dayflow.com") == 0
