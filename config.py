from __future__ import annotations

import os
import re


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return list(default or [])
    return [x.strip() for x in raw.split(",") if x.strip()]


_RATE_RE = re.compile(r"^\d+/\d+$")


class Config:
    def __init__(self):
        self.ENV = _env_str("APP_ENV", "development").lower()
        self.IS_PRODUCTION = self.ENV == "production"
        self.APP_VERSION = _env_str("APP_VERSION", "1.0.0")

        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./dayflow.db")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5000)
        self.ALLOWED_ORIGINS = _env_list("ALLOWED_ORIGINS", ["http://localhost:5173"])

        # 7 days, same lifetime as the session cookie.
        self.SESSION_TTL_MINUTES = _env_int("SESSION_TTL_MINUTES", 7 * 24 * 60)
        self.SESSION_COOKIE_NAME = _env_str("SESSION_COOKIE_NAME", "token")

        self.RATE_LIMIT_LOGIN = _env_str("RATE_LIMIT_LOGIN", "10/60")
        self.RATE_LIMIT_GLOBAL = _env_str("RATE_LIMIT_GLOBAL", "300/60")

        self.TEMP_PASSWORD_LENGTH = _env_int("TEMP_PASSWORD_LENGTH", 12)

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is required")
        if self.SESSION_TTL_MINUTES <= 0:
            raise RuntimeError("SESSION_TTL_MINUTES must be positive")
        if self.TEMP_PASSWORD_LENGTH < 8:
            raise RuntimeError("TEMP_PASSWORD_LENGTH must be at least 8")
        for name in ("RATE_LIMIT_LOGIN", "RATE_LIMIT_GLOBAL"):
            if not _RATE_RE.fullmatch(getattr(self, name)):
                raise RuntimeError(f"{name} must look like COUNT/SECONDS")
        if self.IS_PRODUCTION and self.DATABASE_URL.startswith("sqlite"):
            raise RuntimeError("SQLite is not supported in production; set DATABASE_URL")
