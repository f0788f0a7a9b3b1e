from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from bookgarden.jobs.order_runner import auto_confirm_delivered_orders, cancel_unpaid_orders


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": int(max(0.0, time.perf_counter() - float(started_at)) * 1000.0),
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload, default=str))


def _retry_countdown(retries: int) -> int:
    # Exponential backoff, capped at 15 minutes.
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


def _run_sweep(task, task_name: str, sweep, *, trace_id: str) -> dict:
    started = time.perf_counter()
    try:
        summary = sweep()
    except Exception as exc:
        retries = int(task.request.retries or 0)
        if retries < int(task.max_retries or 0):
            countdown = _retry_countdown(retries)
            _task_log(task_name, status="retrying", started_at=started, trace_id=trace_id, detail=str(exc), countdown=countdown)
            raise task.retry(exc=exc, countdown=countdown)
        _task_log(task_name, status="failed", started_at=started, trace_id=trace_id, detail=str(exc))
        raise
    _task_log(
        task_name,
        status="ok" if summary.get("ok") else "skipped" if summary.get("disabled") or summary.get("already_running") else "partial",
        started_at=started,
        trace_id=trace_id,
        summary=summary,
    )
    return summary


@shared_task(bind=True, name="bookgarden.tasks.order_tasks.cancel_unpaid_orders", max_retries=3)
def cancel_unpaid_orders_task(self, *, trace_id: str = ""):
    return _run_sweep(self, "cancel_unpaid_orders", cancel_unpaid_orders, trace_id=trace_id)


@shared_task(bind=True, name="bookgarden.tasks.order_tasks.auto_confirm_delivered_orders", max_retries=3)
def auto_confirm_delivered_orders_task(self, *, trace_id: str = ""):
    return _run_sweep(self, "auto_confirm_delivered_orders", auto_confirm_delivered_orders, trace_id=trace_id)
