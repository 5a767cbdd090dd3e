"""
End-to-end tests against a real git repository.
"""

import subprocess
from pathlib import Path

import pytest

from backlog_worktrees.config import Config, WorktreeConfig
from backlog_worktrees.core.repository import WorktreeRepository
from backlog_worktrees.core.worktree import (
    InvalidWorktreeNameError,
    UncommittedChangesError,
    WorktreeNotFoundError,
)
from backlog_worktrees.models.worktree import CreateWorktreeDto

from conftest import requires_git


def git(*args: str, cwd: Path) -> None:
    subprocess.run(["git", *args], cwd=cwd, capture_output=True, check=True)


@requires_git
class TestWorktreeLifecycle:
    """Create, inspect, merge and remove worktrees in a real repository."""

    @pytest.fixture
    def repository(self, git_repo: Path, temp_directory: Path) -> WorktreeRepository:
        config = Config(worktree=WorktreeConfig(base_directory=str(temp_directory / "trees")))
        return WorktreeRepository(git_repo, config)

    @pytest.fixture
    def created(self, repository: WorktreeRepository):
        return repository.create(CreateWorktreeDto(name="feature-a", branch="feature-a", task_id="task-1"))

    def test_create(self, repository, created, temp_directory):
        assert Path(created.path).is_dir()
        assert created.path == str(temp_directory / "trees" / "feature-a")
        assert created.base_branch == "main"
        assert created.task_ids == ["task-1"]

        [found] = repository.find_all()

        assert found.id == created.id
        assert found.is_active is True
        assert found.status.is_clean is True

    def test_invalid_name_creates_nothing(self, repository):
        with pytest.raises(InvalidWorktreeNameError):
            repository.create(CreateWorktreeDto(name="bad name", branch="bad"))

        assert repository.find_all() == []

    def test_status_reflects_changes(self, repository, created):
        (Path(created.path) / "new.txt").write_text("hello\n")
        (Path(created.path) / "README.md").write_text("changed\n")

        worktree = repository.get_worktree_status(created.id)

        assert worktree.status.is_clean is False
        assert worktree.status.untracked_files == 1
        assert worktree.status.modified_files == 1

    def test_dirty_worktree_needs_force(self, repository, created):
        (Path(created.path) / "README.md").write_text("changed\n")

        with pytest.raises(UncommittedChangesError):
            repository.orchestrator.delete(created.path)

        repository.delete(created.id, force=True)

        assert not Path(created.path).exists()
        assert repository.find_by_id(created.id) is None

    def test_removed_outside_becomes_inactive(self, repository, created, git_repo):
        git("worktree", "remove", "--force", created.path, cwd=git_repo)

        worktree = repository.find_by_id(created.id)

        assert worktree.is_active is False
        with pytest.raises(WorktreeNotFoundError):
            repository.merge_worktree(created.id, "main")

    def test_stale_cleanup(self, repository, created, git_repo):
        git("worktree", "remove", "--force", created.path, cwd=git_repo)

        result = repository.cleanup_stale_worktrees()

        assert result.cleaned == 1
        assert repository.store.load(created.id).is_active is False

    def test_merge(self, repository, created, git_repo):
        worktree_path = Path(created.path)
        (worktree_path / "feature.txt").write_text("feature\n")
        git("add", "feature.txt", cwd=worktree_path)
        git("commit", "-m", "Add feature", cwd=worktree_path)

        result = repository.merge_worktree(created.id, "main")

        assert result.success is True, result.message
        assert result.merged_files == ["feature.txt"]
        assert (git_repo / "feature.txt").read_text() == "feature\n"

    def test_merge_into_itself(self, repository, created):
        result = repository.merge_worktree(created.id, "feature-a")

        assert result.success is False
        assert result.message == "Cannot merge branch into itself: feature-a"

    def test_push_without_upstream_commits(self, repository, created):
        result = repository.push_worktree(created.id)

        assert result.success is True
        assert result.message == "No changes to push - worktree is up to date"
