"""Batch progress state and its fan-out to live subscribers.

One :class:`ProgressBroadcaster` is shared by the batch worker (the only
writer) and any number of readers such as SSE streams.  Each reader holds a
:class:`Subscription`, a bounded mailbox.  Publishing never blocks: when a
mailbox is full the update is dropped for that subscriber only, so a stalled
client cannot hold up the scrape.
"""

from __future__ import annotations

import enum
import queue
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_BUFFER = 10


class ProgressStatus(str, enum.Enum):
    STARTING = "starting"
    AUTHENTICATING = "authenticating"
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.CANCELLED})

# Position in the run lifecycle; a status may only move to an equal or later rank.
_RANK = {
    ProgressStatus.STARTING: 0,
    ProgressStatus.AUTHENTICATING: 1,
    ProgressStatus.DISCOVERING: 2,
    ProgressStatus.EXTRACTING: 3,
    ProgressStatus.COMPLETED: 4,
    ProgressStatus.FAILED: 4,
    ProgressStatus.CANCELLED: 4,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProgressState:
    """Immutable snapshot of a batch's progress."""

    status: ProgressStatus = ProgressStatus.STARTING
    message: str = ""
    current_item: int = 0
    total_items: int = 0
    articles_added: int = 0
    new_article_id: Optional[int] = None
    timestamp: datetime = field(default_factory=_now)

    def to_event(self) -> dict[str, Any]:
        """Flat, JSON-serialisable record sent to progress consumers."""
        return {
            "status": self.status.value,
            "message": self.message,
            "current_item": self.current_item,
            "total_items": self.total_items,
            "articles_added": self.articles_added,
            "new_article_id": self.new_article_id,
        }


class SubscriptionClosed(Exception):
    """The subscription was closed and every queued update has been read."""


class Subscription:
    """A bounded mailbox of :class:`ProgressState` updates."""

    _POLL_INTERVAL = 0.1

    def __init__(self, maxsize: int = DEFAULT_BUFFER) -> None:
        self._queue: queue.Queue[ProgressState] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, state: ProgressState) -> bool:
        """Enqueue without blocking.  Returns ``False`` if closed or full."""
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(state)
        except queue.Full:
            return False
        return True

    def close(self) -> None:
        self._closed.set()

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressState]:
        """Return the next update, or ``None`` if *timeout* seconds pass first.

        Updates queued before :meth:`close` are still delivered.

        Raises:
            SubscriptionClosed: Closed and drained.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                return self._queue.get(timeout=self._POLL_INTERVAL)
            except queue.Empty:
                pass
            if self._closed.is_set():
                try:
                    return self._queue.get_nowait()
                except queue.Empty:
                    raise SubscriptionClosed() from None
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def drain(self) -> list[ProgressState]:
        """Return every update queued right now without waiting."""
        items: list[ProgressState] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items


class ProgressBroadcaster:
    """Thread-safe progress state machine with pub/sub fan-out."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER) -> None:
        self.buffer_size = buffer_size
        self._lock = threading.Lock()
        self._state = ProgressState()
        self._subscribers: list[Subscription] = []
        self._active = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> ProgressState:
        with self._lock:
            return self._state

    def is_active(self) -> bool:
        with self._lock:
            return self._active

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # ------------------------------------------------------------------
    # Run boundaries
    # ------------------------------------------------------------------

    def try_activate(self, message: str = "") -> bool:
        """Claim the broadcaster for a new batch.

        Atomically checks that no batch is active, marks one active, and
        publishes a fresh ``starting`` state.  Returns ``False`` (and changes
        nothing) if a batch is already running.
        """
        with self._lock:
            if self._active:
                return False
            self._active = True
            self._publish(ProgressState(status=ProgressStatus.STARTING, message=message))
            return True

    def deactivate(self) -> None:
        with self._lock:
            self._active = False

    def reset(self) -> None:
        """Close every subscription and return to the idle ``starting`` state."""
        with self._lock:
            for subscription in self._subscribers:
                subscription.close()
            self._subscribers = []
            self._state = ProgressState()
            self._active = False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_status(self, status: ProgressStatus, message: str) -> ProgressState:
        """Move to *status*.

        Raises:
            ValueError: *status* would move the run backwards, e.g. out of a
                terminal state.
        """
        with self._lock:
            current = self._state.status
            if current.is_terminal or _RANK[status] < _RANK[current]:
                raise ValueError(
                    f"invalid progress transition {current.value} -> {status.value}"
                )
            return self._publish(replace(self._state, status=status, message=message, new_article_id=None))

    def set_progress(self, current: int, total: int, message: str) -> ProgressState:
        """Update the item counters.

        Raises:
            ValueError: *current* is lower than the current item index.
        """
        with self._lock:
            if current < self._state.current_item:
                raise ValueError(
                    f"current_item may not decrease ({self._state.current_item} -> {current})"
                )
            return self._publish(
                replace(
                    self._state,
                    current_item=current,
                    total_items=total,
                    message=message,
                    new_article_id=None,
                )
            )

    def increment_persisted(self, article_id: Optional[int] = None, message: Optional[str] = None) -> ProgressState:
        """Count one more stored article and announce its id."""
        with self._lock:
            return self._publish(
                replace(
                    self._state,
                    articles_added=self._state.articles_added + 1,
                    new_article_id=article_id,
                    message=self._state.message if message is None else message,
                )
            )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """Register a subscriber; its first message is the current snapshot."""
        subscription = Subscription(maxsize or self.buffer_size)
        with self._lock:
            subscription.offer(self._state)
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove and close *subscription*.  Unknown subscriptions are ignored."""
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
            subscription.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _publish(self, state: ProgressState) -> ProgressState:
        """Store *state* and fan it out.  Caller holds ``self._lock``."""
        state = replace(state, timestamp=_now())
        self._state = state
        for subscription in self._subscribers:
            if not subscription.offer(state):
                logger.debug("progress.update_dropped", status=state.status.value)
        return state
