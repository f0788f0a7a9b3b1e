from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from bookgarden.errors import UPSTREAM_FAILURE
from bookgarden.extensions import db
from bookgarden.models import Order, PaymentCallback
from bookgarden.services.order_query_service import invalidate_order_views
from bookgarden.services.order_state_machine import (
    OrderStatus,
    apply_status_change,
    load_order_for_update,
    mark_order_paid,
)
from bookgarden.utils.events import log_event
from bookgarden.utils.identifiers import parse_id
from bookgarden.utils.observability import get_request_id
from bookgarden.utils.results import OperationResult, operation

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"

_REFERENCE_KEYS = ("transactionRef", "txnRef", "transaction_id", "reference")


def callback_event_id(order_id: int, response_code: str, payload: dict | None) -> str:
    """Stable id for one gateway notification; retries of the same notification share it."""
    data = payload if isinstance(payload, dict) else {}
    for key in _REFERENCE_KEYS:
        ref = str(data.get(key) or "").strip()
        if ref:
            return f"ref:{int(order_id)}:{ref}:{response_code}"[:128]
    raw = f"{int(order_id)}:{response_code}".encode("utf-8")
    return f"sha:{hashlib.sha256(raw).hexdigest()}"


def _failure_result(order_id: int, response_code: str) -> OperationResult:
    return OperationResult.failure(
        UPSTREAM_FAILURE,
        "Payment failed",
        status_code=200,
        data={"order_id": int(order_id), "response_code": response_code},
    )


def _replay(row: PaymentCallback) -> OperationResult:
    if row.status == "failed":
        return _failure_result(row.order_id, row.response_code)
    order = db.session.get(Order, int(row.order_id))
    data = order.to_dict() if order is not None else {"order_id": int(row.order_id)}
    return OperationResult.success("Payment processed successfully", data)


@operation("Failed to process payment callback")
def handle_payment_callback(order_id, response_code, payload: dict | None = None) -> OperationResult:
    oid = parse_id(order_id, "order")
    code = str(response_code if response_code is not None else "").strip()
    event_id = callback_event_id(oid, code, payload)

    seen = PaymentCallback.query.filter_by(event_id=event_id).first()
    # Truncated keys can collide across orders.
    if seen is not None and int(seen.order_id) != oid:
        seen = None
        raw = f"{oid}:{event_id}".encode("utf-8")
        event_id = f"sha:{hashlib.sha256(raw).hexdigest()}"
    if seen is not None and seen.status in ("processed", "failed"):
        logger.info("payment_callback_replayed order_id=%s event_id=%s", oid, event_id)
        return _replay(seen)

    order = load_order_for_update(oid)

    row = seen
    if row is None:
        row = PaymentCallback(
            event_id=event_id,
            order_id=oid,
            response_code=code[:16],
            status="received",
            request_id=(get_request_id() or "")[:80] or None,
            payload_json=json.dumps(payload or {}, default=str)[:8000],
        )
        try:
            with db.session.begin_nested():
                db.session.add(row)
        except IntegrityError:
            db.session.rollback()
            winner = PaymentCallback.query.filter_by(event_id=event_id).first()
            if winner is None:
                raise
            return _replay(winner)

    now = datetime.utcnow()
    if code != SUCCESS_CODE:
        row.status = "failed"
        row.error = f"response_code={code}"[:1000]
        row.processed_at = now
        log_event(
            "payment_failed",
            subject_type="order",
            subject_id=oid,
            metadata={"response_code": code, "event_id": event_id},
        )
        db.session.commit()
        return _failure_result(oid, code)

    mark_order_paid(order, actor_type="gateway", reason="payment_callback")
    if order.status == OrderStatus.PENDING:
        apply_status_change(order, OrderStatus.PROCESSING, actor_type="gateway", reason="payment_callback")
    elif order.status == OrderStatus.CANCELLED:
        log_event(
            "payment_after_cancel",
            subject_type="order",
            subject_id=oid,
            severity="WARNING",
            idempotency_key=f"payment_after_cancel:{oid}",
            metadata={"event_id": event_id},
        )
    row.status = "processed"
    row.processed_at = now
    db.session.commit()

    data = order.to_dict()
    invalidate_order_views(oid, int(order.user_id))
    return OperationResult.success("Payment processed successfully", data)
