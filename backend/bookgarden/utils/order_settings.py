from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def client_host() -> str:
    return (os.getenv("CLIENT_HOST") or "http://localhost:3000").strip().rstrip("/")


def order_history_link() -> str:
    return f"{client_host()}/profile/order-history"


def unpaid_order_timeout_minutes() -> int:
    return _env_int("UNPAID_ORDER_TIMEOUT_MINUTES", 30, minimum=1, maximum=7 * 24 * 60)


def unpaid_order_sweep_interval_seconds() -> int:
    return _env_int("UNPAID_ORDER_SWEEP_INTERVAL_SECONDS", 300, minimum=30, maximum=86400)


def delivered_order_grace_days() -> int:
    return _env_int("DELIVERED_ORDER_GRACE_DAYS", 7, minimum=1, maximum=365)


def delivered_order_sweep_interval_seconds() -> int:
    return _env_int("DELIVERED_ORDER_SWEEP_INTERVAL_SECONDS", 86400, minimum=60, maximum=7 * 86400)


def order_sweep_limit() -> int:
    return _env_int("ORDER_SWEEP_LIMIT", 500, minimum=1, maximum=10000)


def top_customers_limit() -> int:
    return _env_int("TOP_CUSTOMERS_LIMIT", 10, minimum=1, maximum=100)


def unpaid_expiry_enabled() -> bool:
    return _env_bool("ORDER_JOBS_UNPAID_EXPIRY_ENABLED", True)


def auto_confirm_enabled() -> bool:
    return _env_bool("ORDER_JOBS_AUTO_CONFIRM_ENABLED", True)
