from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from actions.auth_actions import serialize_user
from actions.helpers import append_audit
from auth import ROLES
from login_ids import compose_login_id, generate_secret, user_login_id_exists
from models import Employee, EmployeeProfile, User
from passwords import hash_password
from utils import (
    ApiError,
    AuthContext,
    LoginIdCollisionError,
    as_utc,
    is_valid_email,
    iso_utc_now,
    new_uuid,
    normalize_role,
    parse_datetime_maybe,
    to_iso_utc,
)


_log = logging.getLogger("api")

PROFILE_FIELDS = ("phone", "addressLine", "city", "state", "country", "pincode")

TEMP_PASSWORD_NOTE = (
    "Please share the login ID and temporary password with the employee. They must change it on first login."
)


def _clean(data: dict, key: str) -> str:
    return str((data or {}).get(key) or "").strip()


def _resolve_join_date(raw: str) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    dt = parse_datetime_maybe(raw)
    if dt is None:
        raise ApiError("BAD_REQUEST", "Invalid dateOfJoin", http_status=400)
    try:
        return as_utc(dt)
    except OverflowError:
        raise ApiError("BAD_REQUEST", "Invalid dateOfJoin", http_status=400)


def create_employee_record(
    db,
    *,
    first_name: str,
    last_name: str,
    email: str,
    role: str,
    join_date: datetime,
    department: str = "",
    designation: str = "",
    manager_id: str = "",
    profile: dict | None = None,
    password: str = "",
    password_changed: bool = False,
    email_verified: bool = False,
    temp_password_length: int = 12,
) -> tuple[User, Employee, str]:
    """
    Issue a login ID and create the user + employee (+ profile) rows.

    Nothing is committed here; the caller owns the transaction so that a failure
    anywhere leaves neither a consumed serial nor an orphaned account behind.
    """

    join_date = as_utc(join_date)
    year = join_date.year
    login_id = compose_login_id(db, first_name, last_name, year)

    # Should never happen while the allocator is the only writer of serials.
    if user_login_id_exists(db, login_id):
        _log.error("login id collision login_id=%s", login_id)
        raise LoginIdCollisionError(login_id)

    plain_password = password or generate_secret(temp_password_length)
    now = iso_utc_now()

    user = User(
        userId="USR-" + new_uuid(),
        name=f"{first_name} {last_name}".strip(),
        email=email,
        loginId=login_id,
        passwordHash=hash_password(plain_password),
        role=role,
        passwordChanged=bool(password_changed),
        emailVerified=bool(email_verified),
        isActive=True,
        createdAt=now,
        updatedAt=now,
    )
    db.add(user)

    employee = Employee(
        employeeId="EMP-" + new_uuid(),
        employeeCode=login_id,
        userId=user.userId,
        department=department,
        designation=designation,
        dateOfJoin=to_iso_utc(join_date),
        yearOfJoining=year,
        managerId=manager_id,
        createdAt=now,
    )
    db.add(employee)

    profile = {k: str(v or "").strip() for k, v in (profile or {}).items()}
    if any(profile.values()):
        db.add(EmployeeProfile(profileId="PRF-" + new_uuid(), employeeId=employee.employeeId, updatedAt=now, **profile))

    db.flush()
    return user, employee, plain_password


def employee_create(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")

    first_name = _clean(data, "firstName")
    last_name = _clean(data, "lastName")
    email = _clean(data, "email").lower()
    role = normalize_role((data or {}).get("role") or "EMPLOYEE")

    if not first_name or not last_name or not email:
        raise ApiError("BAD_REQUEST", "First name, last name, and email are required", http_status=400)
    if not is_valid_email(email):
        raise ApiError("BAD_REQUEST", "Invalid email format", http_status=400)
    if role not in ROLES:
        raise ApiError("BAD_REQUEST", "Invalid role", http_status=400)

    existing = db.execute(select(User.userId).where(User.email == email)).first()
    if existing:
        raise ApiError("CONFLICT", "Email already exists", http_status=409)

    join_date = _resolve_join_date(_clean(data, "dateOfJoin"))

    user, employee, temp_password = create_employee_record(
        db,
        first_name=first_name,
        last_name=last_name,
        email=email,
        role=role,
        join_date=join_date,
        department=_clean(data, "department"),
        designation=_clean(data, "designation"),
        profile={k: _clean(data, k) for k in PROFILE_FIELDS},
        temp_password_length=cfg.TEMP_PASSWORD_LENGTH,
    )

    append_audit(
        db,
        entityType="Employee",
        entityId=employee.employeeId,
        action="EMPLOYEE_CREATED",
        actor=auth,
        meta={"loginId": user.loginId, "department": employee.department, "designation": employee.designation},
    )

    _log.info("employee created login_id=%s by=%s", user.loginId, auth.userId)

    return {
        "message": "Employee created successfully",
        "user": serialize_user(user),
        "employee": {
            "employeeId": employee.employeeId,
            "employeeCode": employee.employeeCode,
            "department": employee.department,
            "designation": employee.designation,
            "dateOfJoin": employee.dateOfJoin,
            "yearOfJoining": employee.yearOfJoining,
        },
        # Only ever returned here; the database keeps the hash.
        "temporaryPassword": temp_password,
        "note": TEMP_PASSWORD_NOTE,
    }


def users_list(data, auth: AuthContext | None, db, cfg):
    rows = db.execute(select(User).order_by(User.createdAt.desc())).scalars().all()
    return {"users": [serialize_user(u) for u in rows]}
