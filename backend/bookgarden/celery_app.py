from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.signals import task_failure, task_retry

from bookgarden.utils.order_settings import (
    delivered_order_sweep_interval_seconds,
    unpaid_order_sweep_interval_seconds,
)

_SIGNALS_BOUND = False


def _broker_url() -> str:
    return (
        (os.getenv("CELERY_BROKER_URL") or "").strip()
        or (os.getenv("REDIS_URL") or "").strip()
        or "redis://localhost:6379/0"
    )


def _result_backend(broker_url: str) -> str:
    return (os.getenv("CELERY_RESULT_BACKEND") or "").strip() or broker_url


def _trace_id(kwargs) -> str:
    if isinstance(kwargs, dict):
        return str(kwargs.get("trace_id") or "").strip()
    return ""


def _bind_task_observers(flask_app) -> None:
    global _SIGNALS_BOUND
    if _SIGNALS_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
        flask_app.logger.error(
            json.dumps(
                {
                    "event": "celery_task_failure",
                    "task_name": getattr(sender, "name", "") if sender is not None else "",
                    "task_id": str(task_id or ""),
                    "trace_id": _trace_id(kwargs),
                    "exception": str(exception or ""),
                    "timestamp": datetime.utcnow().isoformat(),
                }
            )
        )

    @task_retry.connect(weak=False)
    def _on_task_retry(request=None, reason=None, einfo=None, **extra):
        flask_app.logger.warning(
            json.dumps(
                {
                    "event": "celery_task_retry",
                    "task_name": str(getattr(request, "task", "") or ""),
                    "task_id": str(getattr(request, "id", "") or ""),
                    "trace_id": _trace_id(getattr(request, "kwargs", None)),
                    "reason": str(reason or ""),
                    "retry_count": int(getattr(request, "retries", 0) or 0),
                    "timestamp": datetime.utcnow().isoformat(),
                }
            )
        )

    _SIGNALS_BOUND = True


def beat_schedule() -> dict:
    return {
        "order-unpaid-expiry": {
            "task": "bookgarden.tasks.order_tasks.cancel_unpaid_orders",
            "schedule": float(unpaid_order_sweep_interval_seconds()),
        },
        "order-auto-confirm": {
            "task": "bookgarden.tasks.order_tasks.auto_confirm_delivered_orders",
            "schedule": float(delivered_order_sweep_interval_seconds()),
        },
    }


def create_celery_app(flask_app) -> Celery:
    broker = _broker_url()
    celery = Celery(flask_app.import_name, broker=broker, backend=_result_backend(broker))
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=beat_schedule(),
    )

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    celery.autodiscover_tasks(["bookgarden.tasks"], related_name="order_tasks")
    _bind_task_observers(flask_app)
    return celery
