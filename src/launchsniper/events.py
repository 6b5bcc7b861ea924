"""Trade event emitter.

The execution pipeline owns persistence AND event emission. Anything that
wants to follow ledger changes (status snapshots, notifiers, tests)
subscribes here instead of polling the database.

    OrderExecutionPipeline --> events.py --> subscribers
             |
             v
        Database (persistence.py)
"""

import asyncio
from typing import Any, Callable, Dict, List

from .logging import get_logger

log = get_logger("events")


class TradeEventEmitter:
    """Simple event emitter for ledger updates.

    Usage:
        emitter.subscribe(my_callback)
        await emitter.emit(EventTypes.TRADE_CREATED, {"trade_id": 1, ...})
        emitter.unsubscribe(my_callback)
    """

    def __init__(self, max_log_size: int = 100):
        self._listeners: List[Callable] = []
        self._event_log: List[Dict[str, Any]] = []
        self._max_log_size = max_log_size

    def subscribe(self, callback: Callable) -> None:
        """Subscribe to trade events.

        Args:
            callback: Sync or async callable with signature
                      callback(event_type: str, data: dict)
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
            log.debug("Event subscriber added", total_subscribers=len(self._listeners))

    def unsubscribe(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
            log.debug("Event subscriber removed", total_subscribers=len(self._listeners))

    async def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        """Emit event to all listeners. Listener failures are logged, not raised."""
        self._event_log.append({"type": event_type, "data": data})
        if len(self._event_log) > self._max_log_size:
            self._event_log = self._event_log[-self._max_log_size:]

        for listener in list(self._listeners):
            try:
                if asyncio.iscoroutinefunction(listener):
                    await listener(event_type, data)
                else:
                    listener(event_type, data)
            except Exception as e:
                log.error(
                    "Event listener error",
                    event_type=event_type,
                    error=str(e),
                )

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    @property
    def recent_events(self) -> List[Dict[str, Any]]:
        """Recent events, oldest first."""
        return self._event_log.copy()


class EventTypes:
    """Event type constants."""

    TRADE_CREATED = "trade_created"
    TRADE_UPDATED = "trade_updated"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    STATS_UPDATED = "stats_updated"
