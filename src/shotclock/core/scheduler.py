"""Schedulers that serialize all clock work onto one timeline."""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from shotclock.core.reactive import Disposable

logger = logging.getLogger(__name__)

# Items due at the same moment run in priority order (lower first)
PRIORITY_COMMIT = 0
PRIORITY_TICK = 1


class ScheduledItem(Disposable):
    """A queued action; disposing it before it runs cancels it."""

    def __init__(self, action: Callable[[], None]):
        super().__init__()
        self.action = action


class Scheduler(ABC):
    """Ordered queue of timed actions.

    Items run by (due time, priority, submission order).
    """

    def __init__(self) -> None:
        self._queue: List[Tuple[float, int, int, ScheduledItem]] = []
        self._sequence = itertools.count()
        self._lock = threading.Condition()

    @abstractmethod
    def now(self) -> datetime:
        """Current time as seen by work running on this scheduler."""

    @abstractmethod
    def _clock(self) -> float:
        """Monotonic seconds used for due times."""

    def schedule(
        self, action: Callable[[], None], delay: float = 0.0, priority: int = 0
    ) -> Disposable:
        """Run an action once after a delay.

        Args:
            action: Callable to run
            delay: Seconds to wait before running
            priority: Tie-breaker for items due at the same time

        Returns:
            Disposable that cancels the action if it has not run yet
        """
        return self._schedule_at(self._clock() + max(0.0, delay), action, priority)

    def schedule_periodic(
        self,
        period: float,
        action: Callable[[], None],
        delay: float = 0.0,
        priority: int = 0,
    ) -> Disposable:
        """Run an action after `delay`, then every `period` seconds.

        Due times are computed from the previous due time, not from when the
        action finished, so the period does not drift. An action that raises
        is still rescheduled.
        """
        current: List[Disposable] = []
        handle = Disposable(lambda: current[0].dispose() if current else None)

        def run(due: float) -> None:
            if handle.is_disposed:
                return
            try:
                action()
            finally:
                if not handle.is_disposed:
                    next_due = due + period
                    current[:] = [self._schedule_at(next_due, lambda: run(next_due), priority)]

        first_due = self._clock() + max(0.0, delay)
        current.append(self._schedule_at(first_due, lambda: run(first_due), priority))
        return handle

    def _schedule_at(self, due: float, action: Callable[[], None], priority: int) -> ScheduledItem:
        item = ScheduledItem(action)
        with self._lock:
            heapq.heappush(self._queue, (due, priority, next(self._sequence), item))
            self._lock.notify()
        return item

    def _invoke(self, item: ScheduledItem) -> None:
        if item.is_disposed:
            return
        try:
            item.action()
        except Exception:
            logger.exception("Scheduled action failed")

    @property
    def pending_count(self) -> int:
        """Number of queued items that have not been cancelled."""
        with self._lock:
            return sum(1 for entry in self._queue if not entry[3].is_disposed)


class EventLoopScheduler(Scheduler):
    """Runs every scheduled item on one dedicated background thread."""

    def __init__(self, name: str = "shotclock-scheduler"):
        super().__init__()
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    def now(self) -> datetime:
        return datetime.now().astimezone()

    def _clock(self) -> float:
        return time.monotonic()

    def _schedule_at(self, due: float, action: Callable[[], None], priority: int) -> ScheduledItem:
        if self._stopped:
            item = ScheduledItem(action)
            item.dispose()
            return item
        self._ensure_thread()
        return super()._schedule_at(due, action, priority)

    def _ensure_thread(self) -> None:
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()

    def _run(self) -> None:
        logger.debug("Scheduler loop started")
        while True:
            item = self._next_due_item()
            if item is None:
                break
            self._invoke(item)
        logger.debug("Scheduler loop stopped")

    def _next_due_item(self) -> Optional[ScheduledItem]:
        with self._lock:
            while not self._stopped:
                if not self._queue:
                    self._lock.wait()
                    continue
                wait = self._queue[0][0] - self._clock()
                if wait <= 0:
                    return heapq.heappop(self._queue)[3]
                self._lock.wait(wait)
            return None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def dispose(self, timeout: float = 5.0) -> None:
        """Stop the loop, drop queued items and join the thread."""
        with self._lock:
            self._stopped = True
            self._queue.clear()
            self._lock.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)


class VirtualScheduler(Scheduler):
    """Scheduler driven by a virtual clock, for deterministic tests.

    Nothing runs until advance_by() or run_pending() is called.
    """

    def __init__(self, start: Optional[datetime] = None):
        super().__init__()
        self._start = start or datetime(2000, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def _clock(self) -> float:
        return self._elapsed

    def advance_by(self, seconds: float) -> None:
        """Move the clock forward, running every item due on the way."""
        target = self._elapsed + seconds
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, _, item = heapq.heappop(self._queue)
            self._elapsed = max(self._elapsed, due)
            self._invoke(item)
        self._elapsed = max(self._elapsed, target)

    def run_pending(self) -> None:
        """Run every item due now without moving the clock."""
        self.advance_by(0.0)
