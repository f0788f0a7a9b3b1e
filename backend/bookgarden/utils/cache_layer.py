"""Read-through cache for order views, backed by Redis when ENABLE_CACHE is on.

Every helper degrades to a no-op when caching is disabled or Redis is
unreachable, so callers never branch on cache availability.
"""
from __future__ import annotations

import json
import os
import threading
from typing import Any

import redis

from bookgarden.utils.order_settings import _env_bool, _env_int

KEY_VERSION = "v1"

_LOCK = threading.Lock()
_CLIENT = None
_CLIENT_INIT_ATTEMPTED = False

_STATS = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "errors": 0}


def cache_enabled() -> bool:
    return _env_bool("ENABLE_CACHE", False)


def order_cache_ttl_seconds() -> int:
    return _env_int("ORDER_CACHE_TTL_SECONDS", 60, minimum=1, maximum=86400)


def _cache_redis_url() -> str:
    return (os.getenv("CACHE_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _bump(name: str, delta: int = 1) -> None:
    with _LOCK:
        _STATS[name] = int(_STATS.get(name, 0)) + int(delta)


def _get_client():
    global _CLIENT, _CLIENT_INIT_ATTEMPTED
    if not cache_enabled():
        return None
    with _LOCK:
        if _CLIENT_INIT_ATTEMPTED:
            return _CLIENT
        _CLIENT_INIT_ATTEMPTED = True
    url = _cache_redis_url()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=0.75, socket_connect_timeout=0.75)
        client.ping()
    except redis.RedisError:
        _bump("errors")
        return None
    with _LOCK:
        _CLIENT = client
    return client


def order_key(order_id: int) -> str:
    return f"{KEY_VERSION}:order:id={int(order_id)}"


def user_orders_prefix(user_id: int) -> str:
    return f"{KEY_VERSION}:user_orders:{int(user_id)}:"


def all_orders_prefix() -> str:
    return f"{KEY_VERSION}:all_orders:"


def top_customers_prefix() -> str:
    return f"{KEY_VERSION}:top_customers:"


def build_key(prefix: str, **params: Any) -> str:
    parts = [f"{k}={params[k]}" for k in sorted(params)]
    return prefix + "&".join(parts)


def get_json(key: str):
    client = _get_client()
    if client is None:
        return None
    try:
        raw = client.get(str(key))
    except redis.RedisError:
        _bump("errors")
        return None
    if not raw:
        _bump("misses")
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        _bump("errors")
        return None
    _bump("hits")
    return value


def set_json(key: str, value: Any, ttl_seconds: int | None = None) -> bool:
    client = _get_client()
    if client is None:
        return False
    ttl = int(ttl_seconds or order_cache_ttl_seconds())
    try:
        client.setex(str(key), ttl, json.dumps(value, separators=(",", ":"), default=str))
    except redis.RedisError:
        _bump("errors")
        return False
    _bump("sets")
    return True


def delete(key: str) -> int:
    client = _get_client()
    if client is None:
        return 0
    try:
        removed = int(client.delete(str(key)) or 0)
    except redis.RedisError:
        _bump("errors")
        return 0
    _bump("deletes", removed)
    return removed


def delete_prefix(prefix: str, *, scan_count: int = 200) -> int:
    client = _get_client()
    if client is None:
        return 0
    total = 0
    try:
        for key in client.scan_iter(match=f"{prefix}*", count=int(scan_count)):
            total += int(client.delete(key) or 0)
    except redis.RedisError:
        _bump("errors")
    _bump("deletes", total)
    return total


def cache_stats() -> dict:
    with _LOCK:
        stats = dict(_STATS)
    stats["enabled"] = bool(cache_enabled() and _CLIENT is not None)
    stats["url_configured"] = bool(_cache_redis_url())
    return stats


def _reset_cache_state_for_tests(client=None) -> None:
    global _CLIENT, _CLIENT_INIT_ATTEMPTED
    with _LOCK:
        _CLIENT = client
        _CLIENT_INIT_ATTEMPTED = client is not None
        for key in _STATS:
            _STATS[key] = 0
