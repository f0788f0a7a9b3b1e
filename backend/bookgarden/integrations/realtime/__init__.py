from bookgarden.integrations.realtime.base import RealtimeProvider
from bookgarden.integrations.realtime.factory import get_realtime_provider, reset_realtime_provider

__all__ = ["RealtimeProvider", "get_realtime_provider", "reset_realtime_provider"]
