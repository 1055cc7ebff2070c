from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select

from models import Session as DbSession, User
from utils import ApiError, AuthContext, iso_utc_now, new_uuid, normalize_role, sha256_hex, to_iso_utc


ROLES = ("ADMIN", "HR", "EMPLOYEE")
MANAGER_ROLES = ["ADMIN", "HR"]

PUBLIC_ACTIONS = {
    "LOGIN",
    "LOGOUT",
}

STATIC_RBAC_PERMISSIONS: dict[str, list[str]] = {
    "LOGIN": ["PUBLIC"],
    "LOGOUT": ["PUBLIC"],
    "GET_ME": list(ROLES),
    "CHANGE_PASSWORD": list(ROLES),
    "EMPLOYEE_CREATE": MANAGER_ROLES,
    "USERS_LIST": MANAGER_ROLES,
}


def is_public_action(action: str) -> bool:
    return str(action or "").upper() in PUBLIC_ACTIONS


def _parse_iso_utc_maybe(value: str) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            return datetime.fromisoformat(s.replace("Z", "+00:00"))
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def uuid_hex_32() -> str:
    return new_uuid().replace("-", "")


def _invalid() -> AuthContext:
    return AuthContext(valid=False, userId="", email="", role="", expiresAt="")


def issue_session_token(db, *, user_id: str, role: str, session_ttl_minutes: int) -> dict[str, str]:
    token = "ST-" + uuid_hex_32() + uuid_hex_32()
    now = datetime.now(timezone.utc)
    issued_at = to_iso_utc(now)
    expires_at = to_iso_utc(now + timedelta(minutes=session_ttl_minutes))

    session_id = "SES-" + new_uuid()
    db.add(
        DbSession(
            sessionId=session_id,
            tokenHash=sha256_hex(token),
            tokenPrefix=token[:12],
            userId=str(user_id or ""),
            role=normalize_role(role),
            issuedAt=issued_at,
            expiresAt=expires_at,
            lastSeenAt=issued_at,
            revokedAt="",
            revokedBy="",
        )
    )
    return {"sessionToken": token, "sessionId": session_id, "expiresAt": expires_at}


def revoke_session(db, session_id: str, *, revoked_by: str) -> bool:
    sid = str(session_id or "").strip()
    if not sid:
        return False
    ses = db.execute(select(DbSession).where(DbSession.sessionId == sid)).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return False
    ses.revokedAt = iso_utc_now()
    ses.revokedBy = str(revoked_by or "")
    return True


def revoke_user_sessions(db, *, user_id: str, revoked_by: str, keep_session_id: str = "") -> int:
    """
    Revoke all active sessions for a user.

    Used on password change so that previously issued tokens stop working.
    """

    uid = str(user_id or "").strip()
    if not uid:
        return 0

    now = iso_utc_now()
    q = select(DbSession).where(DbSession.userId == uid).where(DbSession.revokedAt == "")
    if keep_session_id:
        q = q.where(DbSession.sessionId != keep_session_id)
    rows = db.execute(q).scalars().all()
    for s in rows:
        s.revokedAt = now
        s.revokedBy = str(revoked_by or "")
    return len(rows)


def validate_session_token(db, token: Any) -> AuthContext:
    if not token or not isinstance(token, str):
        return _invalid()

    ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return _invalid()

    exp_dt = _parse_iso_utc_maybe(ses.expiresAt)
    if exp_dt and exp_dt < datetime.now(timezone.utc):
        return _invalid()

    user = db.execute(select(User).where(User.userId == ses.userId)).scalar_one_or_none()
    if not user:
        return _invalid()
    if not bool(user.isActive):
        raise ApiError("FORBIDDEN", "Account is deactivated. Please contact HR.", http_status=403)

    # Avoid writing on every request: update lastSeenAt at most once per interval.
    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except ValueError:
        interval_s = 300

    last_dt = _parse_iso_utc_maybe(ses.lastSeenAt)
    if interval_s <= 0 or not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= interval_s:
        ses.lastSeenAt = iso_utc_now()

    return AuthContext(
        valid=True,
        userId=user.userId,
        email=user.email,
        # Role comes from the user row so demotions apply to live sessions.
        role=normalize_role(user.role),
        expiresAt=ses.expiresAt,
        sessionId=ses.sessionId,
    )


def assert_permission(role: str, action: str) -> None:
    role_u = normalize_role(role)
    action_u = str(action or "").upper().strip()

    allowed = STATIC_RBAC_PERMISSIONS.get(action_u)
    if allowed is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    if "PUBLIC" in allowed:
        return

    if not role_u or role_u == "PUBLIC":
        raise ApiError("AUTH_INVALID", "Login required")
    if role_u not in ROLES:
        raise ApiError("FORBIDDEN", f"Inactive or unknown role: {role_u}")
    if role_u not in allowed:
        raise ApiError("FORBIDDEN", "Access denied. Admin or HR role required.")


def role_or_public(auth: Optional[AuthContext]) -> str:
    if not auth or not auth.valid:
        return "PUBLIC"
    return normalize_role(auth.role) or "PUBLIC"
