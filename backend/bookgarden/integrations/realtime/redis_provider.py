from __future__ import annotations

import json

import redis

from bookgarden.integrations.common import IntegrationResult
from bookgarden.integrations.realtime.base import RealtimeProvider


class RedisRealtimeProvider(RealtimeProvider):
    """Publishes onto Redis pub/sub; the socket gateway relays channels to browsers."""

    name = "redis"

    def __init__(self, url: str):
        self._client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=1.0, socket_connect_timeout=1.0)

    def publish(self, *, topic: str, payload: dict) -> IntegrationResult:
        try:
            receivers = int(self._client.publish(topic, json.dumps(payload, default=str)) or 0)
        except redis.RedisError as exc:
            return IntegrationResult(ok=False, code="REALTIME_DOWN", message=str(exc)[:200])
        return IntegrationResult(ok=True, code="OK", message="published", raw={"receivers": receivers})
