"""Filesystem change notifications for a watched directory."""

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from shotclock.core.reactive import Disposable, Observable
from shotclock.core.scheduler import Scheduler

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """Kinds of filesystem change."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangeEvent:
    """A single path change.

    Attributes:
        kind: What happened to the path
        path: Path affected (the new path for renames)
        src_path: Previous path for renames, None otherwise
    """

    kind: ChangeKind
    path: Path
    src_path: Optional[Path] = None


@dataclass(frozen=True)
class FileState:
    """Stat fields compared between polls."""

    mtime_ns: int
    size: int
    inode: int


class DirectorySnapshot:
    """Stat information for every file below a directory at one instant."""

    def __init__(self, root: Path, entries: Dict[Path, FileState]):
        self.root = root
        self.entries = entries

    @classmethod
    def take(cls, root: Path, exclude_dirs: Iterable[str] = ()) -> "DirectorySnapshot":
        """Walk a directory tree and record each file.

        Args:
            root: Directory to walk
            exclude_dirs: Directory names to skip at any depth

        Returns:
            DirectorySnapshot instance
        """
        excluded = set(exclude_dirs)
        entries: Dict[Path, FileState] = {}

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in excluded]
            for name in filenames:
                path = Path(dirpath) / name
                try:
                    st = os.lstat(path)
                except OSError:
                    # Removed between listing and stat
                    continue
                entries[path] = FileState(st.st_mtime_ns, st.st_size, st.st_ino)

        return cls(root, entries)

    def diff(self, newer: "DirectorySnapshot") -> List[ChangeEvent]:
        """List the changes from this snapshot to a newer one.

        A deleted path whose inode shows up again under a new path is
        reported as a single RENAMED event.

        Args:
            newer: Later snapshot of the same directory

        Returns:
            Change events, renames and deletions first
        """
        old_paths = set(self.entries)
        new_paths = set(newer.entries)
        created = new_paths - old_paths
        deleted = old_paths - new_paths

        created_by_inode = {
            newer.entries[path].inode: path for path in created if newer.entries[path].inode
        }

        events: List[ChangeEvent] = []
        renamed_to = set()
        for path in sorted(deleted):
            target = created_by_inode.get(self.entries[path].inode)
            if self.entries[path].inode and target is not None and target not in renamed_to:
                renamed_to.add(target)
                events.append(ChangeEvent(ChangeKind.RENAMED, target, src_path=path))
            else:
                events.append(ChangeEvent(ChangeKind.DELETED, path))

        for path in sorted(created - renamed_to):
            events.append(ChangeEvent(ChangeKind.CREATED, path))

        for path in sorted(old_paths & new_paths):
            before, after = self.entries[path], newer.entries[path]
            if before.mtime_ns != after.mtime_ns or before.size != after.size:
                events.append(ChangeEvent(ChangeKind.MODIFIED, path))

        return events

    def __len__(self) -> int:
        return len(self.entries)


class FileChangeWatch:
    """Poll a directory tree for changes.

    Every subscription to changes() gets its own polling thread, started on
    subscribe and stopped when the subscription is disposed.
    """

    def __init__(
        self,
        root: Path,
        poll_interval: float = 0.5,
        exclude_dirs: Iterable[str] = (),
    ):
        """Initialize file change watch.

        Args:
            root: Directory to watch
            poll_interval: Seconds between polls
            exclude_dirs: Directory names to skip at any depth
        """
        self.root = Path(root)
        self.poll_interval = poll_interval
        self.exclude_dirs = tuple(exclude_dirs)

    def changes(self) -> Observable[ChangeEvent]:
        """Lazy stream of change events."""
        return Observable.create(self._subscribe)

    def _subscribe(self, on_next: Callable[[ChangeEvent], None]) -> Disposable:
        if not self.root.is_dir():
            logger.warning(f"Cannot watch {self.root}: not a directory, refresh disabled")
            return Disposable()

        baseline = DirectorySnapshot.take(self.root, self.exclude_dirs)
        stop = threading.Event()
        thread = threading.Thread(
            target=self._poll_loop,
            args=(baseline, on_next, stop),
            name=f"shotclock-watch-{self.root.name}",
            daemon=True,
        )
        thread.start()
        logger.debug(f"Watching {self.root} ({len(baseline)} files)")

        def release() -> None:
            stop.set()
            if thread is not threading.current_thread():
                thread.join(timeout=max(5.0, self.poll_interval * 2))
            logger.debug(f"Stopped watching {self.root}")

        return Disposable(release)

    def _poll_loop(
        self,
        snapshot: DirectorySnapshot,
        on_next: Callable[[ChangeEvent], None],
        stop: threading.Event,
    ) -> None:
        while not stop.wait(self.poll_interval):
            try:
                current = DirectorySnapshot.take(self.root, self.exclude_dirs)
            except OSError as e:
                logger.warning(f"Failed to scan {self.root}: {e}")
                continue

            for event in snapshot.diff(current):
                if stop.is_set():
                    return
                logger.debug(f"{event.kind.value}: {event.path}")
                try:
                    on_next(event)
                except Exception:
                    logger.exception("Change handler failed")
            snapshot = current


def watch(
    path: Path,
    scheduler: Scheduler,
    debounce: float = 1.2,
    poll_interval: float = 0.5,
    exclude_dirs: Iterable[str] = (),
    priority: int = 0,
) -> Observable[ChangeEvent]:
    """Debounced change stream for a directory, delivered on `scheduler`.

    A burst of changes collapses into its last event once `debounce` seconds
    pass without another one.
    """
    source = FileChangeWatch(path, poll_interval=poll_interval, exclude_dirs=exclude_dirs)
    return source.changes().debounce(debounce, scheduler, priority)
