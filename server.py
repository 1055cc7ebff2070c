from __future__ import annotations

import logging
import os
import re
from typing import Any

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, g, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from actions import ACTION_HANDLERS, dispatch
from auth import assert_permission, is_public_action, role_or_public, validate_session_token
from config import Config
from db import Base, SessionLocal, get_pool_stats, init_engine, ping_db
from utils import ApiError, SimpleRateLimiter, err, now_monotonic, ok, parse_json_body


rest_api = Blueprint("rest_api", __name__)

_LOGIN_ACTIONS = {"LOGIN"}


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _request_token(body: dict[str, Any] | None = None) -> str:
    token = str((body or {}).get("token") or "").strip()
    if token:
        return token
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    cfg: Config = current_app.config["CFG"]
    return (
        str(request.headers.get("X-Session-Token") or "").strip()
        or str(request.cookies.get(cfg.SESSION_COOKIE_NAME) or "").strip()
    )


def _client_ip() -> str:
    fwd = str(request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return fwd or str(request.remote_addr or "")


def _apply_session_cookie(resp, action: str, out: Any) -> None:
    cfg: Config = current_app.config["CFG"]
    if action == "LOGIN" and isinstance(out, dict) and out.get("sessionToken"):
        resp.set_cookie(
            cfg.SESSION_COOKIE_NAME,
            out["sessionToken"],
            max_age=cfg.SESSION_TTL_MINUTES * 60,
            httponly=True,
            secure=cfg.IS_PRODUCTION,
            samesite="None" if cfg.IS_PRODUCTION else "Strict",
        )
    elif action == "LOGOUT":
        resp.delete_cookie(cfg.SESSION_COOKIE_NAME)


def _error_message(cfg: Config, label: str, exc: Exception) -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if cfg.IS_PRODUCTION:
        return f"{label} (requestId: {request_id})" if request_id else label

    orig = getattr(exc, "orig", None)
    raw_msg = str(orig) if orig else ""
    debug_details = str(os.getenv("DEBUG_ERROR_DETAILS", "") or "").strip().lower() in {"1", "true", "yes", "y", "on"}
    if not raw_msg and debug_details:
        raw_msg = str(exc) or ""
    raw_msg = re.sub(r"\s+", " ", raw_msg).strip()
    if len(raw_msg) > 300:
        raw_msg = raw_msg[:300] + "..."
    detail = f": {raw_msg}" if raw_msg else f": {type(exc).__name__}"
    return f"{label}{detail} (requestId: {request_id})" if request_id else f"{label}{detail}"


def run_action(action: str, data: dict, token: str):
    """Validate the session, check the role, dispatch, and commit or roll back as one unit."""
    cfg: Config = current_app.config["CFG"]
    limiter: SimpleRateLimiter = current_app.extensions["rate_limiter"]
    action_u = str(action or "").upper().strip()
    log = logging.getLogger("api")

    db = None
    auth_ctx = None
    try:
        if not action_u:
            raise ApiError("BAD_REQUEST", "Missing action")
        if action_u not in ACTION_HANDLERS:
            raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")

        ip = _client_ip()
        if action_u in _LOGIN_ACTIONS:
            limiter.check(f"{ip}:LOGIN", cfg.RATE_LIMIT_LOGIN)
        else:
            limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)

        db = SessionLocal()

        if not is_public_action(action_u):
            auth_ctx = validate_session_token(db, token)
            if not auth_ctx.valid:
                raise ApiError("AUTH_INVALID", "Invalid or expired session")
        elif token:
            try:
                maybe = validate_session_token(db, token)
                auth_ctx = maybe if maybe.valid else None
            except ApiError:
                auth_ctx = None

        assert_permission(role_or_public(auth_ctx), action_u)

        out = dispatch(action_u, data or {}, auth_ctx, db, cfg)
        db.commit()

        latency_ms = int((now_monotonic() - g.start_ts) * 1000)
        log.info(
            "request_id=%s action=%s user=%s role=%s latency_ms=%s",
            g.request_id,
            action_u,
            (auth_ctx.userId if auth_ctx else "PUBLIC"),
            (auth_ctx.role if auth_ctx else "PUBLIC"),
            latency_ms,
        )

        body, status = ok(out)
        resp = jsonify(body)
        resp.status_code = status
        _apply_session_cookie(resp, action_u, out)
        return resp
    except ApiError as e:
        if db is not None:
            db.rollback()
        log.info("request_id=%s action=%s error=%s", g.request_id, action_u, e.code)
        body, status = err(e.code, e.message, http_status=e.http_status)
        return jsonify(body), status
    except IntegrityError:
        if db is not None:
            db.rollback()
        log.warning("request_id=%s action=%s integrity error", g.request_id, action_u)
        body, status = err("CONFLICT", "Conflicting record already exists", http_status=409)
        return jsonify(body), status
    except OperationalError as e:
        if db is not None:
            db.rollback()
        log.exception("request_id=%s action=%s", g.request_id, action_u)
        body, status = err("STORAGE_ERROR", _error_message(cfg, "Storage unavailable", e), http_status=503)
        return jsonify(body), status
    except DBAPIError as e:
        if db is not None:
            db.rollback()
        log.exception("request_id=%s action=%s", g.request_id, action_u)
        body, status = err("INTERNAL", _error_message(cfg, "Database error", e), http_status=500)
        return jsonify(body), status
    except Exception as e:
        if db is not None:
            db.rollback()
        log.exception("request_id=%s action=%s", g.request_id, action_u)
        body, status = err("INTERNAL", _error_message(cfg, "Unexpected error", e), http_status=500)
        return jsonify(body), status
    finally:
        if db is not None:
            db.close()


@rest_api.post("/api/auth/login")
def rest_login():
    body = request.get_json(silent=True) or {}
    return run_action("LOGIN", body, _request_token())


@rest_api.post("/api/auth/logout")
def rest_logout():
    return run_action("LOGOUT", {}, _request_token())


@rest_api.get("/api/auth/me")
def rest_me():
    return run_action("GET_ME", {}, _request_token())


@rest_api.post("/api/auth/change-password")
def rest_change_password():
    body = request.get_json(silent=True) or {}
    return run_action("CHANGE_PASSWORD", body, _request_token())


@rest_api.post("/api/auth/create-employee")
def rest_create_employee():
    body = request.get_json(silent=True) or {}
    return run_action("EMPLOYEE_CREATE", body, _request_token())


@rest_api.get("/api/users")
def rest_users_list():
    return run_action("USERS_LIST", {}, _request_token())


@rest_api.post("/api")
def api_route():
    try:
        body = parse_json_body(request.get_data(as_text=True))
    except ApiError as e:
        out, status = err(e.code, e.message, http_status=e.http_status)
        return jsonify(out), status
    data = body.get("data") or {}
    if not isinstance(data, dict):
        out, status = err("BAD_REQUEST", "data must be an object", http_status=400)
        return jsonify(out), status
    return run_action(str(body.get("action") or ""), data, _request_token(body))


def create_app() -> Flask:
    load_dotenv()
    cfg = Config()
    cfg.validate()
    _configure_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL)

    Base.metadata.create_all(bind=engine)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.config["JSON_SORT_KEYS"] = False
    app.extensions["rate_limiter"] = SimpleRateLimiter()

    CORS(
        app,
        origins=cfg.ALLOWED_ORIGINS,
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Session-Token"],
        expose_headers=["X-Request-ID"],
    )
    app.register_blueprint(rest_api)

    @app.before_request
    def _before():
        g.request_id = str(request.headers.get("X-Request-ID") or "").strip()[:64] or os.urandom(8).hex()
        g.start_ts = now_monotonic()

    @app.after_request
    def _after(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    @app.get("/health")
    def health():
        db_ok = ping_db()
        body = {
            "status": "ok" if db_ok else "degraded",
            "version": cfg.APP_VERSION,
            "checks": {"db": "ok" if db_ok else "error"},
            "db_pool": get_pool_stats(),
        }
        return jsonify(ok(body)[0]), (200 if db_ok else 503)

    @app.get("/")
    def index():
        return jsonify(
            ok(
                {
                    "status": "ok",
                    "message": "HR backend is running. Use /health for a quick check and POST /api for actions.",
                    "endpoints": {"health": "/health", "api": "/api", "auth": "/api/auth"},
                }
            )[0]
        )

    @app.errorhandler(404)
    def not_found(_e):
        body, status = err("NOT_FOUND", f"Unknown endpoint: {request.path}", http_status=404)
        return jsonify(body), status

    @app.errorhandler(405)
    def method_not_allowed(_e):
        body, status = err("BAD_REQUEST", "Method not allowed", http_status=405)
        return jsonify(body), status

    return app


if __name__ == "__main__":
    app = create_app()
    cfg = app.config["CFG"]
    app.run(host=cfg.HOST, port=cfg.PORT)
