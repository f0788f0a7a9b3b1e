from __future__ import annotations

import json
import logging

from bookgarden.extensions import db
from bookgarden.integrations.realtime import get_realtime_provider
from bookgarden.integrations.realtime.base import user_topic
from bookgarden.models import Notification

logger = logging.getLogger(__name__)


def notify(
    user_id: int,
    title: str,
    message: str,
    link: str | None = None,
    *,
    meta: dict | None = None,
) -> Notification | None:
    """Store an in-app notification. Runs after the order write has committed."""
    try:
        row = Notification(
            user_id=int(user_id),
            title=(title or "")[:160] or None,
            message=message or "",
            link=(link or "")[:1024] or None,
            status="sent",
            is_read=False,
            meta=json.dumps(meta or {}, default=str),
        )
        db.session.add(row)
        db.session.commit()
        return row
    except Exception:
        db.session.rollback()
        logger.warning("notification_store_failed user_id=%s", user_id, exc_info=True)
        return None


def publish_user_event(user_id: int, payload: dict) -> bool:
    topic = user_topic(user_id)
    try:
        result = get_realtime_provider().publish(topic=topic, payload=payload)
    except Exception:
        logger.warning("realtime_publish_failed topic=%s", topic, exc_info=True)
        return False
    if not result.ok:
        logger.warning("realtime_publish_rejected topic=%s code=%s", topic, result.code)
    return bool(result.ok)


def notify_and_push(user_id: int, title: str, message: str, link: str | None = None, *, meta: dict | None = None) -> Notification | None:
    row = notify(user_id, title, message, link, meta=meta)
    payload = row.to_dict() if row is not None else {
        "user_id": int(user_id),
        "title": title,
        "message": message,
        "link": link or "",
        "meta": meta or {},
    }
    publish_user_event(user_id, payload)
    return row
