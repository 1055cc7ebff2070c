from __future__ import annotations

import json
import os
from typing import Any, Optional

from flask import g, has_request_context

from models import CompanyLog
from utils import AuthContext, iso_utc_now, redact_for_audit


def _correlation_id() -> str:
    if not has_request_context():
        return ""
    return str(getattr(g, "request_id", "") or "")


def append_audit(
    db,
    *,
    entityType: str,
    entityId: str,
    action: str,
    actor: Optional[AuthContext],
    at: str = "",
    meta: Optional[dict[str, Any]] = None,
) -> CompanyLog:
    row = CompanyLog(
        logId=f"LOG-{os.urandom(16).hex()}",
        action=str(action or "").upper(),
        entity=str(entityType or ""),
        entityId=str(entityId or ""),
        actorUserId=str(actor.userId) if actor else "SYSTEM",
        actorRole=str(actor.role) if actor else "SYSTEM",
        at=at or iso_utc_now(),
        correlationId=_correlation_id(),
        metaJson=json.dumps(redact_for_audit(meta or {}), default=str),
    )
    db.add(row)
    return row
