"""Minimal push-based observables with explicit subscription lifetimes.

Every subscription returns a Disposable; disposing it is the only way to
stop receiving values. Subjects and properties are owned by one writer and
observed by any number of readers.
"""

import threading
from typing import TYPE_CHECKING, Any, Callable, Generic, List, Optional, TypeVar

if TYPE_CHECKING:
    from shotclock.core.scheduler import Scheduler

T = TypeVar("T")
R = TypeVar("R")

OnNext = Callable[[Any], None]


class Disposable:
    """Runs a release action at most once."""

    def __init__(self, action: Optional[Callable[[], None]] = None):
        """Initialize disposable.

        Args:
            action: Release action to run on first dispose()
        """
        self._action = action
        self._disposed = False
        self._lock = threading.Lock()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            action, self._action = self._action, None
        if action is not None:
            action()


class CompositeDisposable(Disposable):
    """Group of disposables released together."""

    def __init__(self, *items: Disposable):
        super().__init__()
        self._items: List[Disposable] = list(items)

    def add(self, item: Disposable) -> None:
        """Add a disposable to the group.

        Items added after the group was disposed are disposed immediately.
        """
        with self._lock:
            if not self._disposed:
                self._items.append(item)
                return
        item.dispose()

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            items, self._items = self._items, []
        for item in items:
            item.dispose()

    def __len__(self) -> int:
        return len(self._items)


class Observable(Generic[T]):
    """A source of values delivered to subscribers."""

    def __init__(self, subscribe: Optional[Callable[[OnNext], Disposable]] = None):
        self._subscribe_fn = subscribe

    @classmethod
    def create(cls, subscribe: Callable[[OnNext], Disposable]) -> "Observable[Any]":
        """Create an observable from a subscribe function.

        The function runs once per subscriber, which makes the observable
        lazy and restartable.
        """
        return cls(subscribe)

    def subscribe(self, on_next: Callable[[T], None]) -> Disposable:
        if self._subscribe_fn is None:
            return Disposable()
        return self._subscribe_fn(on_next)

    def map(self, selector: Callable[[T], R]) -> "Observable[R]":
        return Observable.create(lambda on_next: self.subscribe(lambda value: on_next(selector(value))))

    def filter(self, predicate: Callable[[T], bool]) -> "Observable[T]":
        def subscribe(on_next: OnNext) -> Disposable:
            def handle(value: T) -> None:
                if predicate(value):
                    on_next(value)

            return self.subscribe(handle)

        return Observable.create(subscribe)

    def observe_on(self, scheduler: "Scheduler", priority: int = 0) -> "Observable[T]":
        """Deliver every value on the given scheduler.

        Values queued before the subscription is disposed are dropped.
        """

        def subscribe(on_next: OnNext) -> Disposable:
            active = Disposable()

            def deliver(value: T) -> None:
                if not active.is_disposed:
                    on_next(value)

            def handle(value: T) -> None:
                if not active.is_disposed:
                    scheduler.schedule(lambda: deliver(value), priority=priority)

            upstream = self.subscribe(handle)
            return CompositeDisposable(upstream, active)

        return Observable.create(subscribe)

    def debounce(
        self, seconds: float, scheduler: "Scheduler", priority: int = 0
    ) -> "Observable[T]":
        """Emit the last value of a burst once `seconds` pass without a new one."""

        def subscribe(on_next: OnNext) -> Disposable:
            lock = threading.Lock()
            pending: List[Disposable] = []
            stopped = threading.Event()

            def emit(value: T) -> None:
                if not stopped.is_set():
                    on_next(value)

            def handle(value: T) -> None:
                with lock:
                    if stopped.is_set():
                        return
                    for item in pending:
                        item.dispose()
                    pending[:] = [scheduler.schedule(lambda: emit(value), seconds, priority)]

            def release() -> None:
                stopped.set()
                with lock:
                    for item in pending:
                        item.dispose()
                    pending.clear()

            upstream = self.subscribe(handle)
            return CompositeDisposable(upstream, Disposable(release))

        return Observable.create(subscribe)


class Subject(Observable[T]):
    """Hot observable that multicasts on_next to every current subscriber."""

    def __init__(self) -> None:
        super().__init__()
        self._observers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()
        self._disposed = False

    @property
    def has_observers(self) -> bool:
        return bool(self._observers)

    def subscribe(self, on_next: Callable[[T], None]) -> Disposable:
        with self._lock:
            if self._disposed:
                return Disposable()
            self._observers.append(on_next)

        def remove() -> None:
            with self._lock:
                if on_next in self._observers:
                    self._observers.remove(on_next)

        return Disposable(remove)

    def on_next(self, value: T) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(value)

    def dispose(self) -> None:
        """Release every observer; later subscriptions receive nothing."""
        with self._lock:
            self._disposed = True
            self._observers.clear()


class ReactiveProperty(Generic[T]):
    """A current value plus a stream of its distinct changes.

    Only the owner calls publish(); everyone else reads `value` or
    subscribes.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._changed: Subject[T] = Subject()

    @property
    def value(self) -> T:
        return self._value

    @property
    def changed(self) -> Observable[T]:
        """Observable of new values, without replaying the current one."""
        return self._changed

    def subscribe(self, on_next: Callable[[T], None]) -> Disposable:
        """Receive the current value now and every change afterwards."""
        on_next(self._value)
        return self._changed.subscribe(on_next)

    def publish(self, value: T) -> bool:
        """Set a new value and notify subscribers if it differs.

        Returns:
            True if the value changed
        """
        if value == self._value:
            return False
        self._value = value
        self._changed.on_next(value)
        return True

    def dispose(self) -> None:
        self._changed.dispose()

    def __repr__(self) -> str:
        return f"ReactiveProperty({self._value!r})"


def merge(*sources: Observable[Any]) -> Observable[Any]:
    """Interleave the values of several observables."""

    def subscribe(on_next: OnNext) -> Disposable:
        return CompositeDisposable(*(source.subscribe(on_next) for source in sources))

    return Observable.create(subscribe)


def never() -> Observable[Any]:
    """Observable that never emits."""
    return Observable.create(lambda on_next: Disposable())


def timer(
    due: float, period: float, scheduler: "Scheduler", priority: int = 0
) -> Observable[int]:
    """Emit 0 after `due` seconds, then an increasing count every `period`."""

    def subscribe(on_next: OnNext) -> Disposable:
        count = [0]

        def tick() -> None:
            value = count[0]
            count[0] += 1
            on_next(value)

        return scheduler.schedule_periodic(period, tick, delay=due, priority=priority)

    return Observable.create(subscribe)
