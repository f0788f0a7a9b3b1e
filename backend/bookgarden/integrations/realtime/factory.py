from __future__ import annotations

import os
import threading

from bookgarden.integrations.common import IntegrationMisconfiguredError
from bookgarden.integrations.realtime.base import RealtimeProvider
from bookgarden.integrations.realtime.mock_provider import MockRealtimeProvider
from bookgarden.integrations.realtime.redis_provider import RedisRealtimeProvider

_LOCK = threading.Lock()
_PROVIDER: RealtimeProvider | None = None


def build_realtime_provider() -> RealtimeProvider:
    mode = (os.getenv("REALTIME_PROVIDER") or "mock").strip().lower()
    if mode == "mock":
        return MockRealtimeProvider()
    if mode == "redis":
        url = (os.getenv("REALTIME_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()
        if not url:
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing REALTIME_REDIS_URL")
        return RedisRealtimeProvider(url)
    raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:unknown realtime provider {mode}")


def get_realtime_provider() -> RealtimeProvider:
    global _PROVIDER
    with _LOCK:
        if _PROVIDER is None:
            _PROVIDER = build_realtime_provider()
        return _PROVIDER


def reset_realtime_provider() -> None:
    global _PROVIDER
    with _LOCK:
        _PROVIDER = None
