from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from datetime import datetime

from flask import g, has_request_context, request


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    if not has_request_context():
        return ""
    return getattr(g, "request_id", "")


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        try:
            traces_rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip())
        except ValueError:
            traces_rate = 0.0

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("BOOKGARDEN_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=max(0.0, min(traces_rate, 1.0)),
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        if key.lower() in ("authorization", "cookie", "set-cookie"):
            headers[key] = "[REDACTED]"
    req["headers"] = headers
    event["request"] = req
    return event


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        rid = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = rid or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        rid = getattr(g, "request_id", "") or uuid.uuid4().hex
        response.headers["X-Request-Id"] = rid
        app.logger.info(json.dumps(_request_log_line(app, response, rid)))
        return response


def _error_code(response) -> str | None:
    if not response.is_json:
        return None
    body = response.get_json(silent=True)
    if isinstance(body, dict) and body.get("ok") is False:
        return str(body.get("error") or "") or None
    return None


def _request_log_line(app, response, rid: str) -> dict:
    """One JSON line per request. Order routes also carry the order id and the error code."""
    started = getattr(g, "request_started_at", None)
    latency_ms = None
    if started is not None:
        latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2)
    view_args = request.view_args or {}
    return {
        "ts": datetime.utcnow().isoformat(),
        "request_id": rid,
        "endpoint": request.endpoint,
        "method": request.method,
        "path": request.path,
        "status": int(response.status_code),
        "latency_ms": latency_ms,
        "user_id": getattr(g, "auth_user_id", None),
        "order_id": view_args.get("order_id", getattr(g, "order_id", None)),
        "job": view_args.get("job"),
        "error": _error_code(response),
        "ip_hash": _hash_ip(request.headers.get("X-Forwarded-For", request.remote_addr or ""), app.config.get("SECRET_KEY", "bookgarden")),
    }
