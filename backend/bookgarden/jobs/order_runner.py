from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from sqlalchemy.orm.exc import StaleDataError

from bookgarden.errors import NotFound
from bookgarden.extensions import db
from bookgarden.models import Order
from bookgarden.services.notification_service import notify_and_push
from bookgarden.services.order_query_service import invalidate_order_views
from bookgarden.services.order_state_machine import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    apply_status_change,
    load_order_for_update,
)
from bookgarden.utils.job_runs import record_job_run
from bookgarden.utils.order_settings import (
    auto_confirm_enabled,
    delivered_order_grace_days,
    order_history_link,
    order_sweep_limit,
    unpaid_expiry_enabled,
    unpaid_order_timeout_minutes,
)

logger = logging.getLogger(__name__)

UNPAID_EXPIRY_JOB = "order_unpaid_expiry"
AUTO_CONFIRM_JOB = "order_auto_confirm"

_JOB_LOCKS = {
    UNPAID_EXPIRY_JOB: threading.Lock(),
    AUTO_CONFIRM_JOB: threading.Lock(),
}


def _now():
    return datetime.utcnow()


def _empty_summary(changed_key: str, now: datetime) -> dict:
    return {
        "ok": True,
        "processed": 0,
        changed_key: 0,
        "skipped": 0,
        "errors": 0,
        "ts": now.isoformat(),
    }


def _short_circuit(job_name: str, changed_key: str, now: datetime, *, reason: str) -> dict:
    summary = _empty_summary(changed_key, now)
    summary["ok"] = False
    summary[reason] = True
    if reason == "disabled":
        record_job_run(job_name=job_name, ok=False, started_at=now, error="disabled_by_flag", summary=summary)
    return summary


def _sweep(
    *,
    job_name: str,
    changed_key: str,
    candidate_ids: list[int],
    still_eligible,
    target: str,
    reason: str,
    notice,
    started_at: datetime,
) -> dict:
    summary = _empty_summary(changed_key, started_at)
    for oid in candidate_ids:
        summary["processed"] += 1
        try:
            order = load_order_for_update(oid)
            # Re-checked on the fresh row: a user or staff write may have moved it since the scan.
            if not still_eligible(order):
                db.session.rollback()
                summary["skipped"] += 1
                continue
            apply_status_change(order, target, actor_type="system", reason=reason, receipt=target == OrderStatus.CONFIRMED)
            db.session.commit()
        except NotFound:
            db.session.rollback()
            summary["skipped"] += 1
            continue
        except StaleDataError:
            db.session.rollback()
            summary["skipped"] += 1
            logger.info("%s_conflict order_id=%s", job_name, oid)
            continue
        except Exception:
            db.session.rollback()
            summary["errors"] += 1
            logger.exception("%s_order_failed order_id=%s", job_name, oid)
            continue

        summary[changed_key] += 1
        owner_id = int(order.user_id)
        invalidate_order_views(oid, owner_id)
        title, message = notice(oid)
        notify_and_push(owner_id, title, message, order_history_link(), meta={"order_id": oid, "status": target})

    summary["ok"] = summary["errors"] == 0
    record_job_run(job_name=job_name, ok=summary["ok"], started_at=started_at, summary=summary)
    logger.info("%s_done %s", job_name, summary)
    return summary


def cancel_unpaid_orders(*, now: datetime | None = None, limit: int | None = None) -> dict:
    """Cancel ONLINE orders left unpaid for the configured timeout (age is inclusive)."""
    started_at = now or _now()
    if not unpaid_expiry_enabled():
        return _short_circuit(UNPAID_EXPIRY_JOB, "cancelled", started_at, reason="disabled")
    lock = _JOB_LOCKS[UNPAID_EXPIRY_JOB]
    if not lock.acquire(blocking=False):
        return _short_circuit(UNPAID_EXPIRY_JOB, "cancelled", started_at, reason="already_running")
    try:
        cutoff = started_at - timedelta(minutes=unpaid_order_timeout_minutes())
        candidate_ids = [
            int(row.id)
            for row in db.session.query(Order.id)
            .filter(
                Order.payment_method == PaymentMethod.ONLINE,
                Order.payment_status == PaymentStatus.NOT_PAID,
                Order.status == OrderStatus.PENDING,
                Order.order_date <= cutoff,
            )
            .order_by(Order.order_date.asc(), Order.id.asc())
            .limit(int(limit or order_sweep_limit()))
            .all()
        ]
        db.session.rollback()

        def still_eligible(order: Order) -> bool:
            return (
                order.status == OrderStatus.PENDING
                and order.payment_status == PaymentStatus.NOT_PAID
                and order.order_date is not None
                and order.order_date <= cutoff
            )

        return _sweep(
            job_name=UNPAID_EXPIRY_JOB,
            changed_key="cancelled",
            candidate_ids=candidate_ids,
            still_eligible=still_eligible,
            target=OrderStatus.CANCELLED,
            reason="unpaid_timeout",
            notice=lambda oid: (
                "Order cancelled",
                f"Your order #{oid} was cancelled because payment was not completed in time",
            ),
            started_at=started_at,
        )
    finally:
        lock.release()


def auto_confirm_delivered_orders(*, now: datetime | None = None, limit: int | None = None) -> dict:
    """Confirm DELIVERED orders whose order date is past the grace period."""
    started_at = now or _now()
    if not auto_confirm_enabled():
        return _short_circuit(AUTO_CONFIRM_JOB, "confirmed", started_at, reason="disabled")
    lock = _JOB_LOCKS[AUTO_CONFIRM_JOB]
    if not lock.acquire(blocking=False):
        return _short_circuit(AUTO_CONFIRM_JOB, "confirmed", started_at, reason="already_running")
    try:
        cutoff = started_at - timedelta(days=delivered_order_grace_days())
        candidate_ids = [
            int(row.id)
            for row in db.session.query(Order.id)
            .filter(Order.status == OrderStatus.DELIVERED, Order.order_date <= cutoff)
            .order_by(Order.order_date.asc(), Order.id.asc())
            .limit(int(limit or order_sweep_limit()))
            .all()
        ]
        db.session.rollback()

        def still_eligible(order: Order) -> bool:
            return order.status == OrderStatus.DELIVERED and order.order_date is not None and order.order_date <= cutoff

        return _sweep(
            job_name=AUTO_CONFIRM_JOB,
            changed_key="confirmed",
            candidate_ids=candidate_ids,
            still_eligible=still_eligible,
            target=OrderStatus.CONFIRMED,
            reason="auto_confirm",
            notice=lambda oid: (
                "Order confirmed",
                f"Your order #{oid} was confirmed automatically after delivery",
            ),
            started_at=started_at,
        )
    finally:
        lock.release()


JOBS = {
    "unpaid-expiry": cancel_unpaid_orders,
    "auto-confirm": auto_confirm_delivered_orders,
}
