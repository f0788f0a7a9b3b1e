from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError

from bookgarden.extensions import db
from bookgarden.models import AuditEvent
from bookgarden.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _safe_value(value: Any):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def log_event(
    event_type: str,
    *,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    actor_user_id: int | None = None,
    severity: str = "INFO",
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> AuditEvent | None:
    """Record an audit event inside the caller's transaction.

    The row is flushed in a savepoint so a failure here never aborts the
    surrounding order write; it is committed together with it.
    """
    key = (idempotency_key or "").strip()[:180] or None
    try:
        if key:
            existing = AuditEvent.query.filter_by(idempotency_key=key).first()
            if existing:
                return existing
        event = AuditEvent(
            event_type=(event_type or "unknown").strip()[:80],
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            subject_type=(subject_type or "").strip()[:40] or None,
            subject_id=str(subject_id)[:64] if subject_id is not None else None,
            request_id=(get_request_id() or "")[:80] or None,
            idempotency_key=key,
            severity=(severity or "INFO").strip().upper()[:16] or "INFO",
            metadata_json=json.dumps(_safe_value(metadata or {}), separators=(",", ":")),
        )
        with db.session.begin_nested():
            db.session.add(event)
        return event
    except IntegrityError:
        if key:
            return AuditEvent.query.filter_by(idempotency_key=key).first()
        return None
    except Exception:
        logger.warning("audit_event_failed event_type=%s", event_type, exc_info=True)
        return None
