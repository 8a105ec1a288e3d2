"""The shot clock's signal composer.

Merges window focus, repository refresh, a heartbeat tick and OS idle
samples into three derived values:

- latest_commit: authorship time of HEAD, re-read on focus or refresh
- earliest_active_time: when the user last came back from being idle
- commit_age: now - max(earliest_active_time, latest_commit)

All derivation runs on one scheduler, so readers always see the values of
a single settled sampling step.
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from shotclock.core.models import MIN_TIMESTAMP, CommitSnapshot, DerivedClock, RepositoryContext
from shotclock.core.reactive import CompositeDisposable, Observable, ReactiveProperty, merge, never, timer
from shotclock.core.repository import fetch_latest_commit
from shotclock.core.scheduler import PRIORITY_COMMIT, PRIORITY_TICK, EventLoopScheduler, Scheduler

if TYPE_CHECKING:
    from shotclock.core.config import ConfigManager

logger = logging.getLogger(__name__)

IdleSampleFn = Callable[[], timedelta]
RepositoryReader = Callable[[Path], Optional[CommitSnapshot]]


@dataclass
class ComposerOptions:
    """Overridable sources and timing for a SignalComposer.

    Any source left as None is replaced by its production implementation.
    """

    focus_source: Optional[Observable[Any]] = None
    refresh_source: Optional[Observable[Any]] = None
    idle_sampler: Optional[IdleSampleFn] = None
    repository_reader: Optional[RepositoryReader] = None
    read_executor: Optional[Executor] = None
    scheduler: Optional[Scheduler] = None
    start_directory: Optional[Path] = None
    marker: str = ".git"
    tick_interval: float = 1.0
    debounce_seconds: float = 1.2
    poll_interval: float = 0.5
    exclude_dirs: Sequence[str] = field(default_factory=lambda: ("objects",))
    watch_enabled: bool = True
    active_threshold: timedelta = timedelta(seconds=5)
    idle_threshold: timedelta = timedelta(seconds=30)
    refresh_on_start: bool = True

    @classmethod
    def from_config(cls, config: "ConfigManager", **overrides: Any) -> "ComposerOptions":
        """Build options from configuration.

        Args:
            config: Configuration manager
            **overrides: Fields that take precedence over the configuration

        Returns:
            ComposerOptions instance
        """
        options = cls(
            marker=config.get("repository.marker", ".git"),
            refresh_on_start=config.get("repository.refresh_on_start", True),
            tick_interval=float(config.get("clock.tick_interval", 1.0)),
            active_threshold=config.get_seconds("clock.active_threshold", 5),
            idle_threshold=config.get_seconds("clock.idle_threshold", 30),
            watch_enabled=config.get("watch.enabled", True),
            debounce_seconds=float(config.get("watch.debounce", 1.2)),
            poll_interval=float(config.get("watch.poll_interval", 0.5)),
            exclude_dirs=tuple(config.get("watch.exclude_dirs", ["objects"])),
        )
        return replace(options, **overrides)


class IdleTransitionDetector:
    """Spot the moment a user comes back after being away.

    Compares each idle sample with the one before it: a transition is a
    sample under `active_threshold` right after one over `idle_threshold`.
    """

    def __init__(
        self,
        active_threshold: timedelta = timedelta(seconds=5),
        idle_threshold: timedelta = timedelta(seconds=30),
    ):
        self.active_threshold = active_threshold
        self.idle_threshold = idle_threshold
        self._previous: Optional[timedelta] = None

    def observe(self, sample: timedelta) -> bool:
        """Record a sample.

        Args:
            sample: Idle duration as of now

        Returns:
            True if this sample completes an idle -> active transition
        """
        previous, self._previous = self._previous, sample
        if previous is None:
            return False
        return sample < self.active_threshold and previous > self.idle_threshold

    @property
    def previous(self) -> Optional[timedelta]:
        return self._previous


class SignalComposer:
    """Derive the shot clock values from focus, refresh, tick and idle inputs.

    When the start directory is not under version control the composer
    still constructs, but subscribes to nothing: the derived values keep
    their initial values and neither the repository nor the idle sampler
    is ever called.
    """

    def __init__(self, options: Optional[ComposerOptions] = None):
        """Initialize composer and start listening to its inputs.

        Args:
            options: Sources and timing (default: production sources)
        """
        self.options = options or ComposerOptions()
        self._owns_scheduler = self.options.scheduler is None
        self.scheduler: Scheduler = self.options.scheduler or EventLoopScheduler()

        start = self.options.start_directory or Path.cwd()
        self.repository = RepositoryContext.resolve(start, marker=self.options.marker)

        now = self.scheduler.now()
        self.latest_commit: ReactiveProperty[datetime] = ReactiveProperty(MIN_TIMESTAMP)
        self.earliest_active_time: ReactiveProperty[datetime] = ReactiveProperty(now)
        self.commit_age: ReactiveProperty[timedelta] = ReactiveProperty(timedelta(0))
        self.clock: ReactiveProperty[DerivedClock] = ReactiveProperty(
            DerivedClock(
                latest_commit=MIN_TIMESTAMP,
                earliest_active_time=now,
                commit_age=timedelta(0),
                sampled_at=now,
            )
        )

        self.got_focus: Observable[Any] = self.options.focus_source or never()
        self.refresh: Observable[Any] = never()

        self._read_repository: RepositoryReader = self.options.repository_reader or fetch_latest_commit
        self._owns_executor = self.options.read_executor is None
        self._read_executor: Executor = self.options.read_executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="shotclock-repo"
        )
        self._sample_idle: Optional[IdleSampleFn] = self.options.idle_sampler
        self._idle_detector = IdleTransitionDetector(
            self.options.active_threshold, self.options.idle_threshold
        )
        self._sampler_failing = False
        self._subscriptions = CompositeDisposable()
        # Guards _disposed and every publish; dispose() waits for a running step
        self._lock = threading.RLock()
        self._disposed = False

        if not self.is_version_controlled:
            logger.info(f"{start} is not version controlled, clock stays idle")
            return

        logger.info(f"Watching repository at {self.repository_root}")
        self.refresh = self._create_refresh_source()
        self._connect()

    @property
    def is_version_controlled(self) -> bool:
        return self.repository.is_version_controlled

    @property
    def repository_root(self) -> Optional[Path]:
        return self.repository.repository_root

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _create_refresh_source(self) -> Observable[Any]:
        if self.options.refresh_source is not None:
            return self.options.refresh_source
        if not self.options.watch_enabled:
            return never()

        from shotclock.automation.file_watcher import watch

        assert self.repository_root is not None
        return watch(
            self.repository_root / self.options.marker,
            self.scheduler,
            debounce=self.options.debounce_seconds,
            poll_interval=self.options.poll_interval,
            exclude_dirs=self.options.exclude_dirs,
            priority=PRIORITY_COMMIT,
        )

    def _connect(self) -> None:
        focus = self.got_focus.observe_on(self.scheduler, PRIORITY_COMMIT)
        refresh = self.refresh.observe_on(self.scheduler, PRIORITY_COMMIT)
        tick = timer(0.0, self.options.tick_interval, self.scheduler, PRIORITY_TICK)

        self._subscriptions.add(merge(focus, refresh).subscribe(self._on_refresh))

        should_sample = merge(focus, self.latest_commit.changed, tick)
        self._subscriptions.add(should_sample.subscribe(self._on_sample))

        if self.options.refresh_on_start:
            self._subscriptions.add(
                self.scheduler.schedule(lambda: self._on_refresh(None), priority=PRIORITY_COMMIT)
            )

    def _on_refresh(self, _: Any) -> None:
        """Start a repository read on the read executor.

        The read never runs on the scheduler, so a slow git call cannot
        hold up the heartbeat.
        """
        if self._disposed or self.repository_root is None:
            return

        try:
            self._read_executor.submit(self._read_latest_commit, self.repository_root)
        except RuntimeError:
            # Executor shut down by a concurrent dispose()
            logger.debug("Repository read dropped, composer is shutting down")

    def _read_latest_commit(self, root: Path) -> None:
        if self._disposed:
            return

        try:
            snapshot = self._read_repository(root)
        except Exception:
            logger.exception(f"Couldn't read repository at {root}")
            return

        if snapshot is None:
            logger.debug("No commit read, keeping last known value")
            return

        timestamp = snapshot.timestamp
        self.scheduler.schedule(lambda: self._publish_commit(timestamp), priority=PRIORITY_COMMIT)

    def _publish_commit(self, timestamp: datetime) -> None:
        with self._lock:
            if self._disposed:
                return
            if self.latest_commit.publish(timestamp):
                logger.info(f"Latest commit at {timestamp.isoformat()}")

    def _on_sample(self, _: Any) -> None:
        with self._lock:
            if not self._disposed:
                self._sample_step()

    def _sample_step(self) -> None:
        now = self.scheduler.now()
        sample = self._take_idle_sample()
        if sample is not None and self._idle_detector.observe(sample):
            logger.info("User active again after being idle")
            self.earliest_active_time.publish(now)

        latest_commit = self.latest_commit.value
        earliest_active = self.earliest_active_time.value
        # A commit stamped ahead of the local clock counts as "just now"
        age = max(timedelta(0), now - max(earliest_active, latest_commit))
        self.commit_age.publish(age)
        self.clock.publish(
            DerivedClock(
                latest_commit=latest_commit,
                earliest_active_time=earliest_active,
                commit_age=age,
                sampled_at=now,
            )
        )

    def _take_idle_sample(self) -> Optional[timedelta]:
        if self._sample_idle is None:
            from shotclock.automation.idle_detector import get_idle_sampler

            self._sample_idle = get_idle_sampler()

        try:
            sample = self._sample_idle()
        except Exception as e:
            if not self._sampler_failing:
                logger.warning(f"Idle time unavailable, skipping samples: {e}")
            else:
                logger.debug(f"Idle sample skipped: {e}")
            self._sampler_failing = True
            return None

        if self._sampler_failing:
            logger.info("Idle time available again")
            self._sampler_failing = False
        return sample

    def dispose(self) -> None:
        """Stop listening to every input and release the watcher and heartbeat.

        After this returns no property changes and no repository or idle
        calls happen. A sampling step already running on another thread
        finishes first.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._subscriptions.dispose()
        for prop in (self.latest_commit, self.earliest_active_time, self.commit_age, self.clock):
            prop.dispose()
        if self._owns_executor:
            # Waits for an in-flight read; its result is dropped
            self._read_executor.shutdown(wait=True, cancel_futures=True)
        if self._owns_scheduler and isinstance(self.scheduler, EventLoopScheduler):
            self.scheduler.dispose()
        logger.debug("Composer disposed")

    def __enter__(self) -> "SignalComposer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()
