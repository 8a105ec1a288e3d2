"""Core data models for the shot clock."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

# Value of latest_commit before any commit has been read
MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RepositoryContext:
    """Where the watched working directory lives in version control.

    Attributes:
        repository_root: Nearest ancestor holding the version-control marker,
            or None when there is none up to the filesystem root
    """

    repository_root: Optional[Path] = None

    @property
    def is_version_controlled(self) -> bool:
        """Check whether a repository root was found."""
        return self.repository_root is not None

    @classmethod
    def resolve(cls, start: Path, marker: str = ".git") -> "RepositoryContext":
        """Build the context by walking up from a starting directory.

        Args:
            start: Directory to start the search from
            marker: Name of the version-control marker directory

        Returns:
            RepositoryContext instance
        """
        from shotclock.core.repository import find_repository_root

        return cls(repository_root=find_repository_root(start, marker=marker))


@dataclass(frozen=True)
class CommitSnapshot:
    """Authorship time of the current HEAD commit."""

    timestamp: datetime


@dataclass(frozen=True)
class DerivedClock:
    """Consistent view of the three derived clock values.

    Attributes:
        latest_commit: Authorship time of HEAD (MIN_TIMESTAMP until read)
        earliest_active_time: Start of the current active-work period
        commit_age: now - max(earliest_active_time, latest_commit)
        sampled_at: Scheduler time at which the values were computed
    """

    latest_commit: datetime
    earliest_active_time: datetime
    commit_age: timedelta
    sampled_at: datetime

    @property
    def has_commit(self) -> bool:
        """Check whether a commit timestamp has been read."""
        return self.latest_commit != MIN_TIMESTAMP

    def to_dict(self) -> dict[str, Any]:
        """Convert clock to a JSON-friendly dictionary.

        Returns:
            Dictionary with ISO timestamps and the age in seconds
        """
        return {
            "latest_commit": self.latest_commit.isoformat() if self.has_commit else None,
            "earliest_active_time": self.earliest_active_time.isoformat(),
            "commit_age_seconds": int(self.commit_age.total_seconds()),
            "sampled_at": self.sampled_at.isoformat(),
        }
