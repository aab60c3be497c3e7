from .event_bus import EventBus, Subscription
from .multiplexer import StreamingMultiplexer, Unsubscribe

__all__ = ["EventBus", "Subscription", "StreamingMultiplexer", "Unsubscribe"]
