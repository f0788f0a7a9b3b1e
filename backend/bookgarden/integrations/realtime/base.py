from __future__ import annotations

from bookgarden.integrations.common import IntegrationResult


def user_topic(user_id: int) -> str:
    return f"/topic/notifications/{int(user_id)}"


class RealtimeProvider:
    """Pushes a JSON payload to whoever listens on a topic."""

    name = "unknown"

    def publish(self, *, topic: str, payload: dict) -> IntegrationResult:
        raise NotImplementedError
