from __future__ import annotations

from sqlalchemy import or_, select

from actions.helpers import append_audit
from auth import issue_session_token, revoke_session, revoke_user_sessions
from models import User
from passwords import MAX_PASSWORD_LENGTH, hash_password, verify_password
from utils import ApiError, AuthContext, iso_utc_now, normalize_role


_INVALID_LOGIN = "Invalid login ID/Email or password"


def serialize_user(user: User) -> dict:
    return {
        "userId": user.userId,
        "name": user.name or "",
        "email": user.email or "",
        "loginId": user.loginId or "",
        "role": normalize_role(user.role),
        "passwordChanged": bool(user.passwordChanged),
        "emailVerified": bool(user.emailVerified),
        "isActive": bool(user.isActive),
    }


def _find_user_by_login_id_or_email(db, value: str):
    s = str(value or "").strip()
    if not s:
        return None
    return (
        db.execute(select(User).where(or_(User.loginId == s.upper(), User.email == s.lower())))
        .scalars()
        .first()
    )


def _require_auth(auth: AuthContext | None) -> AuthContext:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Invalid or expired session")
    return auth


def login(data, auth: AuthContext | None, db, cfg):
    login_id_or_email = str((data or {}).get("loginIdOrEmail") or "").strip()
    password = str((data or {}).get("password") or "")
    if not login_id_or_email or not password:
        raise ApiError("BAD_REQUEST", "Login ID/Email and password are required", http_status=400)
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ApiError("BAD_REQUEST", "Password is too long", http_status=400)

    user = _find_user_by_login_id_or_email(db, login_id_or_email)
    if not user:
        raise ApiError("AUTH_INVALID", _INVALID_LOGIN)

    if not bool(user.isActive):
        raise ApiError("FORBIDDEN", "Account is deactivated. Please contact HR.", http_status=403)

    if not verify_password(password, user.passwordHash):
        raise ApiError("AUTH_INVALID", _INVALID_LOGIN)

    ses = issue_session_token(db, user_id=user.userId, role=user.role, session_ttl_minutes=cfg.SESSION_TTL_MINUTES)

    append_audit(
        db,
        entityType="User",
        entityId=user.userId,
        action="LOGIN",
        actor=AuthContext(valid=True, userId=user.userId, email=user.email, role=normalize_role(user.role), expiresAt=ses["expiresAt"]),
        meta={"via": "loginId" if login_id_or_email.upper() == (user.loginId or "") else "email"},
    )

    return {
        "sessionToken": ses["sessionToken"],
        "expiresAt": ses["expiresAt"],
        "me": serialize_user(user),
        "requiresPasswordChange": not bool(user.passwordChanged),
    }


def logout(data, auth: AuthContext | None, db, cfg):
    revoked = False
    if auth and auth.valid:
        revoked = revoke_session(db, auth.sessionId, revoked_by=auth.userId)
    return {"message": "logout successfully", "revoked": revoked}


def get_me(data, auth: AuthContext | None, db, cfg):
    auth = _require_auth(auth)
    user = db.execute(select(User).where(User.userId == auth.userId)).scalar_one_or_none()
    if not user:
        raise ApiError("NOT_FOUND", "User not found", http_status=404)
    return {"user": serialize_user(user)}


def change_password(data, auth: AuthContext | None, db, cfg):
    auth = _require_auth(auth)

    current_password = str((data or {}).get("currentPassword") or "")
    new_password = str((data or {}).get("newPassword") or "")
    if not current_password or not new_password:
        raise ApiError("BAD_REQUEST", "Current password and new password are required", http_status=400)
    if len(current_password) > MAX_PASSWORD_LENGTH:
        raise ApiError("BAD_REQUEST", "Password is too long", http_status=400)

    user = db.execute(select(User).where(User.userId == auth.userId).with_for_update(of=User)).scalar_one_or_none()
    if not user:
        raise ApiError("NOT_FOUND", "User not found", http_status=404)

    if not verify_password(current_password, user.passwordHash):
        raise ApiError("BAD_REQUEST", "Current password is incorrect", http_status=400)

    user.passwordHash = hash_password(new_password)
    user.passwordChanged = True
    user.updatedAt = iso_utc_now()

    revoked = revoke_user_sessions(db, user_id=user.userId, revoked_by=auth.userId, keep_session_id=auth.sessionId)

    append_audit(
        db,
        entityType="User",
        entityId=user.userId,
        action="PASSWORD_CHANGED",
        actor=auth,
        at=user.updatedAt,
        meta={"revokedSessions": int(revoked or 0)},
    )

    return {"message": "Password changed successfully", "revokedSessions": int(revoked or 0)}
