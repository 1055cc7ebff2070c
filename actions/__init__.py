from __future__ import annotations

from typing import Any, Callable

from actions.auth_actions import change_password, get_me, login, logout
from actions.employees import employee_create, users_list
from utils import ApiError, AuthContext


Handler = Callable[[dict, "AuthContext | None", Any, Any], dict]

ACTION_HANDLERS: dict[str, Handler] = {
    "LOGIN": login,
    "LOGOUT": logout,
    "GET_ME": get_me,
    "CHANGE_PASSWORD": change_password,
    "EMPLOYEE_CREATE": employee_create,
    "USERS_LIST": users_list,
}


def dispatch(action: str, data: dict, auth: AuthContext | None, db, cfg) -> dict:
    handler = ACTION_HANDLERS.get(str(action or "").upper().strip())
    if handler is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action}")
    return handler(data or {}, auth, db, cfg)
