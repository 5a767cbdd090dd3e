"""
Pytest configuration and shared fixtures for Backlog Worktrees tests.
"""

import shutil
import subprocess
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Generator, Optional, Sequence, Union
from unittest.mock import MagicMock

import pytest

from backlog_worktrees.config import Config
from backlog_worktrees.core.git import CommandResult
from backlog_worktrees.core.storage import WorktreeStore
from backlog_worktrees.core.worktree import WorktreeOrchestrator
from backlog_worktrees.models.worktree import Worktree, WorktreeMetadata, WorktreeStatus, utc_now

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class FakeGit:
    """
    Stands in for GitExecutor.

    Responses are registered per argument vector, optionally per cwd.
    Several responses for the same key are returned in order; the last
    one repeats. Unregistered commands succeed with empty output.
    """

    def __init__(self):
        self.calls: list[tuple[tuple[str, ...], Optional[str]]] = []
        self._responses: dict[tuple, list[CommandResult]] = {}

    def on(
        self,
        *args: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        cwd: Optional[Union[str, Path]] = None,
    ) -> "FakeGit":
        key = (tuple(args), str(cwd) if cwd is not None else None)
        result = CommandResult(success=exit_code == 0, stdout=stdout, stderr=stderr, exit_code=exit_code)
        self._responses.setdefault(key, []).append(result)
        return self

    def run(self, args: Sequence[str], cwd: Optional[Union[str, Path]] = None) -> CommandResult:
        args = tuple(args)
        cwd_key = str(cwd) if cwd is not None else None
        self.calls.append((args, cwd_key))

        for key in ((args, cwd_key), (args, None)):
            queue = self._responses.get(key)
            if queue:
                return queue.pop(0) if len(queue) > 1 else queue[0]

        return CommandResult(success=True, stdout="", stderr="", exit_code=0)

    def commands(self) -> list[tuple[str, ...]]:
        return [args for args, _ in self.calls]

    def was_called(self, *args: str) -> bool:
        return tuple(args) in self.commands()

    def called_with_prefix(self, *prefix: str) -> bool:
        return any(args[: len(prefix)] == prefix for args in self.commands())


@pytest.fixture
def temp_directory() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def repo_root(temp_directory: Path) -> Path:
    """An empty directory standing in for the main working copy."""
    root = temp_directory / "repo"
    root.mkdir()
    return root


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def orchestrator(repo_root: Path, fake_git: FakeGit) -> WorktreeOrchestrator:
    return WorktreeOrchestrator(repo_root, Config(), git=fake_git)


@pytest.fixture
def worktree_dir(temp_directory: Path) -> Path:
    """An existing directory to point worktree operations at."""
    path = temp_directory / "wt"
    path.mkdir()
    return path


@pytest.fixture
def store(temp_directory: Path) -> WorktreeStore:
    return WorktreeStore(temp_directory / "project")


@pytest.fixture
def mock_orchestrator() -> MagicMock:
    """A WorktreeOrchestrator mock that lists no live worktrees."""
    orchestrator = MagicMock(spec=WorktreeOrchestrator)
    orchestrator.list_worktrees.return_value = []
    orchestrator.get_status.return_value = WorktreeStatus()
    return orchestrator


def make_worktree(
    worktree_id: str = "wt-feature-1",
    path: Union[str, Path] = "/tmp/does-not-matter",
    days_old: int = 0,
    **overrides,
) -> Worktree:
    """Build a Worktree record for tests."""
    when = utc_now() - timedelta(days=days_old)
    data = {
        "id": worktree_id,
        "name": worktree_id,
        "path": str(path),
        "branch": f"feature/{worktree_id}",
        "base_branch": "main",
        "created_date": when,
        "last_accessed_date": when,
        "is_active": True,
        "metadata": WorktreeMetadata(),
    }
    data.update(overrides)
    return Worktree(**data)


@pytest.fixture
def git_repo(temp_directory: Path) -> Generator[Path, None, None]:
    """Create a temporary git repository on branch main with one commit."""
    repo_path = temp_directory / "test-repo"
    repo_path.mkdir()

    commands = [
        ["git", "init"],
        ["git", "symbolic-ref", "HEAD", "refs/heads/main"],
        ["git", "config", "user.email", "test@example.com"],
        ["git", "config", "user.name", "Test User"],
        ["git", "config", "commit.gpgsign", "false"],
    ]
    for command in commands:
        subprocess.run(command, cwd=repo_path, capture_output=True, check=True)

    readme = repo_path / "README.md"
    readme.write_text("# Test Repository\n")

    subprocess.run(["git", "add", "."], cwd=repo_path, capture_output=True, check=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"],
        cwd=repo_path,
        capture_output=True,
        check=True,
    )

    yield repo_path
