"""
Progress Hub - Typed pipeline events and synchronous fan-out to listeners
"""

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, ClassVar, Dict, Optional, Union

from .state import JobStateStore, LogEntry, LOG_LEVELS


@dataclass(frozen=True)
class StartedEvent:
    type: ClassVar[str] = "started"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class ProgressEvent:
    type: ClassVar[str] = "progress"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class LogEvent:
    entry: LogEntry
    type: ClassVar[str] = "log"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.entry.to_dict()}


@dataclass(frozen=True)
class DoneEvent:
    type: ClassVar[str] = "done"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class ResetEvent:
    type: ClassVar[str] = "reset"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


PipelineEvent = Union[StartedEvent, ProgressEvent, LogEvent, DoneEvent, ResetEvent]

# Listener signature: (snapshot, event) -> None
Listener = Callable[[Dict[str, Any], PipelineEvent], None]


class Subscription:
    """Token returned by ProgressHub.subscribe(); hand it back to unsubscribe."""

    __slots__ = ("id", "_hub")

    def __init__(self, subscription_id: int, hub: "ProgressHub"):
        self.id = subscription_id
        self._hub = hub

    @property
    def active(self) -> bool:
        return self._hub.is_subscribed(self)

    def cancel(self) -> bool:
        return self._hub.unsubscribe(self)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, active={self.active})"


class ProgressHub:
    """
    Fan-out of (snapshot, event) pairs to registered listeners.

    - Delivery is synchronous and in subscription order, before broadcast() returns
    - A listener that raises is logged and skipped; the others still receive the event
    - Owns the bounded job log (high/low watermark eviction)
    - No timers, no business logic
    """

    def __init__(
        self,
        store: JobStateStore,
        clock: Callable[[], datetime],
        log_high: int = 200,
        log_low: int = 100,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.clock = clock
        self.log_high = log_high
        self.log_low = log_low
        self.logger = logger or logging.getLogger(__name__)

        # Insertion-ordered: dict preserves subscription order
        self._subscribers: Dict[int, Listener] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, listener: Listener) -> Subscription:
        subscription = Subscription(next(self._ids), self)
        self._subscribers[subscription.id] = listener
        self.logger.debug(f"Listener subscribed (id={subscription.id}, total={len(self._subscribers)})")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a listener. Returns False if it was already gone."""
        removed = self._subscribers.pop(subscription.id, None) is not None
        if removed:
            self.logger.debug(f"Listener unsubscribed (id={subscription.id}, total={len(self._subscribers)})")
        return removed

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription.id in self._subscribers

    def add_log(self, level: str, message: str) -> LogEntry:
        """
        Append a job log entry.

        When the buffer grows past log_high it is cut down to the most
        recent log_low entries.

        Returns:
            The appended entry (attach it to a LogEvent to broadcast it)
        """
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level!r} (expected one of {LOG_LEVELS})")

        entry = LogEntry(
            time=self.clock().strftime("%H:%M:%S"),
            level=level,
            message=message,
        )
        state = self.store.state
        state.logs.append(entry)
        if len(state.logs) > self.log_high:
            state.logs = state.logs[len(state.logs) - self.log_low:]
        return entry

    def broadcast(self, event: PipelineEvent) -> None:
        """Deliver one snapshot plus the event to every current listener."""
        snapshot = self.store.snapshot()

        # Copy so listeners can unsubscribe themselves mid-delivery
        for subscription_id, listener in list(self._subscribers.items()):
            try:
                listener(snapshot, event)
            except Exception:
                self.logger.exception(
                    f"Listener {subscription_id} failed on '{event.type}' event; continuing"
                )
