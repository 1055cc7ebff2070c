from __future__ import annotations

import hashlib
import json
import re
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as dt_parser


_DEFAULT_HTTP_STATUS = {
    "BAD_REQUEST": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
    "STORAGE_ERROR": 503,
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_REDACT_KEYS = {"password", "currentpassword", "newpassword", "token", "temporarypassword"}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_HTTP_STATUS.get(self.code, 400))


class InvalidInputError(ApiError):
    def __init__(self, message: str):
        super().__init__("BAD_REQUEST", message, http_status=400)


class StorageError(ApiError):
    """Backing store unreachable, transaction aborted, or write failed."""

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__("STORAGE_ERROR", message, http_status=503)


class LoginIdCollisionError(ApiError):
    def __init__(self, login_id: str):
        super().__init__("INTERNAL", "Login ID collision. Please contact an administrator.", http_status=500)
        self.login_id = login_id


@dataclass(frozen=True)
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str
    sessionId: str = ""


def ok(data: Any) -> tuple[dict[str, Any], int]:
    return {"ok": True, "data": data}, 200


def err(code: str, message: str, http_status: int = 400) -> tuple[dict[str, Any], int]:
    return {"ok": False, "error": {"code": code, "message": message}}, http_status


def iso_utc_now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def as_utc(dt: datetime) -> datetime:
    """Naive values are taken as UTC. Raises OverflowError near datetime.min/max."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_utc(dt: datetime) -> str:
    return as_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime_maybe(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return dt_parser.isoparse(s)
    except (ValueError, OverflowError):
        pass
    try:
        return dt_parser.parse(s)
    except (ValueError, OverflowError):
        return None


def new_uuid() -> str:
    return str(uuid.uuid4())


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


def now_monotonic() -> float:
    return time.monotonic()


def normalize_role(role: Any) -> str:
    return str(role or "").upper().strip()


def is_valid_email(email: Any) -> bool:
    e = str(email or "").strip()
    if not e or len(e) > 254:
        return False
    return bool(_EMAIL_RE.fullmatch(e))


def parse_json_body(raw: str) -> dict[str, Any]:
    s = str(raw or "").strip()
    if not s:
        return {}
    try:
        body = json.loads(s)
    except json.JSONDecodeError:
        raise ApiError("BAD_REQUEST", "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object")
    return body


def redact_for_audit(data: Any) -> Any:
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(data, list):
        return [redact_for_audit(x) for x in data]
    return data


def _parse_rate(spec: str) -> tuple[int, int]:
    # "count/seconds", e.g. "10/60"
    try:
        count_s, window_s = str(spec or "").split("/", 1)
        return max(1, int(count_s)), max(1, int(window_s))
    except ValueError:
        return 60, 60


class SimpleRateLimiter:
    """In-process sliding window limiter keyed by caller-supplied strings."""

    def __init__(self):
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._max_window = 0
        self._last_sweep: Optional[float] = None

    def check(self, key: str, spec: str) -> None:
        limit, window = _parse_rate(spec)
        now = now_monotonic()
        with self._lock:
            self._max_window = max(self._max_window, window)
            if self._last_sweep is None:
                self._last_sweep = now
            elif now - self._last_sweep >= self._max_window:
                self._sweep(now)
            q = self._hits.setdefault(key, deque())
            while q and now - q[0] >= window:
                q.popleft()
            if len(q) >= limit:
                raise ApiError("RATE_LIMITED", "Too many requests. Please retry later.", http_status=429)
            q.append(now)

    def _sweep(self, now: float) -> None:
        # Keys with no hit inside the widest window seen can never limit again.
        stale = [k for k, q in self._hits.items() if not q or now - q[-1] >= self._max_window]
        for k in stale:
            del self._hits[k]
        self._last_sweep = now

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_sweep = None
