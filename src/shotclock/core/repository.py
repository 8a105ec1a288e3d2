"""Repository discovery and HEAD commit reads."""

import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional

from shotclock.core.models import CommitSnapshot

logger = logging.getLogger(__name__)


def find_repository_root(
    start: Path, marker: str = ".git", max_depth: int = 256
) -> Optional[Path]:
    """Find the nearest directory at or above `start` containing `marker`.

    Args:
        start: Directory to start from
        marker: Name of the version-control marker directory
        max_depth: Maximum number of parent directories to visit

    Returns:
        Repository root, or None when no marker exists up to the filesystem root
    """
    current = Path(start).expanduser().resolve()

    for _ in range(max_depth):
        if (current / marker).is_dir():
            return current

        parent = current.parent
        if parent == current or not parent.exists():
            return None
        current = parent

    logger.warning(f"Gave up looking for {marker} after {max_depth} levels above {start}")
    return None


def fetch_latest_commit(root: Path, timeout: float = 5.0) -> Optional[CommitSnapshot]:
    """Read the authorship time of the HEAD commit.

    Each call runs a short-lived `git` process; no handle is kept open
    between calls. Failures are logged and reported as None.

    Args:
        root: Repository root
        timeout: Seconds to wait for git

    Returns:
        CommitSnapshot, or None if there is no commit or git cannot be read
    """
    try:
        result = subprocess.run(
            ["git", "log", "-1", "--format=%aI", "HEAD"],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.error("Couldn't read repository: git executable not found")
        return None
    except subprocess.TimeoutExpired:
        logger.error(f"Couldn't read repository {root}: git timed out after {timeout}s")
        return None
    except OSError as e:
        logger.error(f"Couldn't open repository {root}: {e}")
        return None

    if result.returncode != 0:
        # Fresh repositories have no HEAD commit yet
        logger.warning(f"No commit found in {root}: {result.stderr.strip()}")
        return None

    output = result.stdout.strip()
    if not output:
        return None

    try:
        timestamp = datetime.fromisoformat(output)
    except ValueError:
        logger.error(f"Unexpected commit date from git: {output!r}")
        return None

    return CommitSnapshot(timestamp=timestamp)
