from .bus import EventBus, EventHandler
from .events import EventTypes

__all__ = ["EventBus", "EventHandler", "EventTypes"]
