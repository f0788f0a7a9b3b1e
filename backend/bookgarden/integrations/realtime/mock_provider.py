from __future__ import annotations

import os

from bookgarden.integrations.common import IntegrationResult
from bookgarden.integrations.realtime.base import RealtimeProvider


class MockRealtimeProvider(RealtimeProvider):
    name = "mock"

    def __init__(self):
        self.published: list[dict] = []

    def _force_failure(self) -> bool:
        return (os.getenv("MOCK_REALTIME_FORCE_FAIL") or "").strip() == "1"

    def publish(self, *, topic: str, payload: dict) -> IntegrationResult:
        if self._force_failure():
            return IntegrationResult(ok=False, code="REALTIME_DOWN", message="mock forced failure")
        self.published.append({"topic": topic, "payload": dict(payload or {})})
        return IntegrationResult(ok=True, code="OK", message="mock_published", raw={"topic": topic})

    def clear(self) -> None:
        self.published.clear()
