"""Tests for repository discovery and commit reads."""

import subprocess
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest  # type: ignore[import-not-found]

from shotclock.core.models import RepositoryContext
from shotclock.core.repository import fetch_latest_commit, find_repository_root


class TestFindRepositoryRoot:
    """Test find_repository_root."""

    def test_finds_marker_in_ancestor(self, tmp_path: Path) -> None:
        """Test resolution from /a/b/c/d with the marker at /a/b/.vcs."""
        (tmp_path / "a" / "b" / ".vcs").mkdir(parents=True)
        start = tmp_path / "a" / "b" / "c" / "d"
        start.mkdir(parents=True)

        root = find_repository_root(start, marker=".vcs")

        assert root == (tmp_path / "a" / "b").resolve()

    def test_start_directory_is_inclusive(self, repo_dir: Path) -> None:
        """Test that the start directory itself can be the root."""
        assert find_repository_root(repo_dir) == repo_dir.resolve()

    def test_nearest_marker_wins(self, tmp_path: Path) -> None:
        """Test that the closest ancestor with a marker is returned."""
        (tmp_path / "outer" / ".vcs").mkdir(parents=True)
        (tmp_path / "outer" / "inner" / ".vcs").mkdir(parents=True)
        start = tmp_path / "outer" / "inner" / "src"
        start.mkdir()

        assert find_repository_root(start, marker=".vcs") == (tmp_path / "outer" / "inner").resolve()

    def test_absent_up_to_filesystem_root(self, tmp_path: Path) -> None:
        """Test that a tree without a marker resolves to None."""
        start = tmp_path / "x" / "y"
        start.mkdir(parents=True)

        assert find_repository_root(start, marker=".no-such-vcs-marker") is None

    def test_marker_file_is_not_a_directory(self, tmp_path: Path) -> None:
        """Test that a marker that is a plain file does not count."""
        (tmp_path / ".vcs-file").write_text("gitdir: elsewhere\n")

        assert find_repository_root(tmp_path, marker=".vcs-file") is None

    def test_max_depth_caps_the_walk(self, tmp_path: Path) -> None:
        """Test that the walk gives up after max_depth levels."""
        (tmp_path / ".vcs").mkdir()
        start = tmp_path / "1" / "2" / "3"
        start.mkdir(parents=True)

        assert find_repository_root(start, marker=".vcs", max_depth=2) is None
        assert find_repository_root(start, marker=".vcs", max_depth=4) == tmp_path.resolve()

    def test_repository_context(self, repo_dir: Path, tmp_path: Path) -> None:
        """Test RepositoryContext.resolve for both outcomes."""
        context = RepositoryContext.resolve(repo_dir / ".git")
        assert context.is_version_controlled
        assert context.repository_root == repo_dir.resolve()

        outside = RepositoryContext.resolve(tmp_path, marker=".no-such-vcs-marker")
        assert not outside.is_version_controlled
        assert outside.repository_root is None


class TestFetchLatestCommit:
    """Test fetch_latest_commit."""

    def test_parses_author_date(self, tmp_path: Path) -> None:
        """Test parsing git's ISO 8601 author date."""
        with patch("shotclock.core.repository.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            mock_run.return_value.stdout = "2024-02-29T10:00:00+01:00\n"

            snapshot = fetch_latest_commit(tmp_path)

        assert snapshot is not None
        assert snapshot.timestamp == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
        args, kwargs = mock_run.call_args
        assert args[0][:2] == ["git", "log"]
        assert kwargs["cwd"] == str(tmp_path)

    def test_no_commits(self, tmp_path: Path) -> None:
        """Test that a repository without HEAD yields None."""
        with patch("shotclock.core.repository.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 128
            mock_run.return_value.stdout = ""
            mock_run.return_value.stderr = "fatal: bad default revision 'HEAD'"

            assert fetch_latest_commit(tmp_path) is None

    def test_git_missing(self, tmp_path: Path) -> None:
        """Test that a missing git binary is reported as None."""
        with patch("shotclock.core.repository.subprocess.run", side_effect=FileNotFoundError):
            assert fetch_latest_commit(tmp_path) is None

    def test_timeout(self, tmp_path: Path) -> None:
        """Test that a hung git is reported as None."""
        with patch(
            "shotclock.core.repository.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="git", timeout=5),
        ):
            assert fetch_latest_commit(tmp_path) is None

    def test_garbage_output(self, tmp_path: Path) -> None:
        """Test that unparsable output is reported as None."""
        with patch("shotclock.core.repository.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            mock_run.return_value.stdout = "not a date"

            assert fetch_latest_commit(tmp_path) is None

    @pytest.mark.integration
    def test_real_repository(self, git_repo: Path) -> None:
        """Test reading HEAD from a real repository."""
        snapshot = fetch_latest_commit(git_repo)

        assert snapshot is not None
        assert snapshot.timestamp == datetime(2024, 2, 29, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.integration
    def test_real_empty_repository(self, tmp_path: Path) -> None:
        """Test that an initialised repository without commits yields None."""
        import shutil

        if shutil.which("git") is None:
            pytest.skip("git is not installed")
        subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)

        assert fetch_latest_commit(tmp_path) is None
