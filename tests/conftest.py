"""Pytest configuration and shared fixtures."""

import os
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest  # type: ignore[import-not-found]

from shotclock.core.scheduler import VirtualScheduler

START = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


@pytest.fixture
def scheduler() -> VirtualScheduler:
    """Virtual-time scheduler starting at a fixed UTC moment."""
    return VirtualScheduler(start=START)


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Directory with an (empty) .git marker directory."""
    repo = tmp_path / "repo"
    (repo / ".git").mkdir(parents=True)
    return repo


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Real git repository with one commit. Skipped without git."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "gitrepo"
    repo.mkdir()

    def git(*args: str) -> None:
        subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True)

    git("init", "-q")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev")
    git("config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("hello\n")
    git("add", "README.md")
    subprocess.run(
        ["git", "commit", "-q", "-m", "initial"],
        cwd=repo,
        check=True,
        capture_output=True,
        env={
            **os.environ,
            "GIT_AUTHOR_DATE": "2024-02-29T10:00:00+00:00",
            "GIT_COMMITTER_DATE": "2024-02-29T10:00:00+00:00",
        },
    )
    return repo
