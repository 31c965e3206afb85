"""
EventBus - in-process events for the alert pipeline

Event types published by ccbell:
    alert.transition   a detector transition was observed
    alert.suppressed   gate or cooldown vetoed an alert
    alert.dispatched   a sound or chain was handed to playback
    chain.finished     a background chain reached Completed/Aborted
    error.occurred     ErrorHandler recorded a failure
"""

import inspect
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventPriority(Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class EventBus:
    """Async publish/subscribe with bounded history"""

    def __init__(self, max_history: int = 1000):
        self.subscribers: Dict[str, List[Dict[str, Any]]] = {}
        self.event_history: List[Dict[str, Any]] = []
        self.max_history = max_history

    async def subscribe(self, event_type: str, callback: Callable, priority: EventPriority = EventPriority.MEDIUM):
        subscriber = {
            "callback": callback,
            "priority": priority,
            "event_type": event_type,
        }
        self.subscribers.setdefault(event_type, []).append(subscriber)
        # high priority subscribers are called first
        self.subscribers[event_type].sort(key=lambda x: x["priority"].value, reverse=True)
        logger.debug(f"EventBus: subscribed to {event_type} (priority: {priority.name})")

    async def unsubscribe(self, event_type: str, callback: Callable):
        if event_type not in self.subscribers:
            return
        self.subscribers[event_type] = [
            sub for sub in self.subscribers[event_type]
            if sub["callback"] != callback
        ]
        if not self.subscribers[event_type]:
            del self.subscribers[event_type]

    async def publish(self, event_type: str, data: Optional[Dict[str, Any]] = None):
        """Deliver an event to every subscriber; a failing subscriber never stops delivery."""
        event = {
            "type": event_type,
            "data": data or {},
            "timestamp": time.time(),
        }

        self.event_history.append(event)
        if len(self.event_history) > self.max_history:
            self.event_history.pop(0)

        subscribers = list(self.subscribers.get(event_type, []))
        logger.debug(f"EventBus: dispatch '{event_type}' to {len(subscribers)} subscriber(s)")
        for subscriber in subscribers:
            cb = subscriber["callback"]
            try:
                if inspect.iscoroutinefunction(cb):
                    await cb(event)
                else:
                    cb(event)
            except Exception as e:
                logger.error(f"EventBus: handler for {event_type} failed: {e}")

    def get_event_history(self, event_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        if event_type:
            filtered_history = [e for e in self.event_history if e["type"] == event_type]
        else:
            filtered_history = self.event_history
        return filtered_history[-limit:]

    def get_subscribers_count(self, event_type: Optional[str] = None) -> int:
        if event_type:
            return len(self.subscribers.get(event_type, []))
        return sum(len(subs) for subs in self.subscribers.values())

    def get_status(self) -> Dict[str, Any]:
        return {
            "subscribers_count": self.get_subscribers_count(),
            "event_types": list(self.subscribers.keys()),
            "history_size": len(self.event_history),
            "max_history": self.max_history,
        }
