"""
Events emitted by liquidity pools after a state change is committed.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidityAdded:
    """A deposit of both assets was committed."""
    amount_low: int
    amount_high: int
    pool: bytes


@dataclass(frozen=True)
class Swapped:
    """
    A swap was committed.

    ``amount_low`` is always the low-asset side and ``amount_high`` the
    high-asset side, whichever asset went in.
    """
    amount_low: int
    amount_high: int
    pool: bytes


PoolEvent = Union[LiquidityAdded, Swapped]
EventListener = Callable[[PoolEvent], None]


class EventBus:
    """Delivers pool events to subscribed listeners."""

    def __init__(self):
        self._listeners: list[EventListener] = []
        self.lock = threading.Lock()

    def subscribe(self, listener: EventListener) -> EventListener:
        with self.lock:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: EventListener):
        with self.lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: PoolEvent):
        """
        Call every listener with the event.

        The operation that produced the event is already committed, so a
        failing listener is logged and the remaining listeners still run.
        Pools publish without holding their lock.
        """
        with self.lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener {listener!r} failed on {event}: {e}")
