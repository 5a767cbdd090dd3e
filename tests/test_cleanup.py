"""
Unit tests for the CleanupService.

Tests cover:
- Expiry from each record's retention period
- Protection rules for uncommitted and unpushed work
- Dry run and actual cleanup
- Error collection
"""

from unittest.mock import MagicMock

import pytest

from backlog_worktrees.config import CleanupConfig, Config, WorktreeConfig
from backlog_worktrees.core.cleanup import CleanupService
from backlog_worktrees.core.repository import WorktreeRepository
from backlog_worktrees.core.worktree import GitCommandFailedError
from backlog_worktrees.models.worktree import WorktreeMetadata, WorktreeStatus

from conftest import make_worktree


def auto(days: int = None) -> WorktreeMetadata:
    return WorktreeMetadata(auto_cleanup=True, cleanup_after_days=days)


@pytest.fixture
def repository() -> MagicMock:
    repository = MagicMock(spec=WorktreeRepository)
    repository.config = Config()
    repository.find_all.return_value = []
    return repository


@pytest.fixture
def service(repository) -> CleanupService:
    return CleanupService(repository)


class TestExpiry:
    """Tests for expired worktree detection."""

    def test_opted_out_worktrees_never_expire(self, service):
        worktree = make_worktree("wt-old", days_old=365)

        assert service.is_expired(worktree) is False

    def test_default_threshold(self, service):
        assert service.is_expired(make_worktree("wt-old", days_old=15, metadata=auto())) is True
        assert service.is_expired(make_worktree("wt-new", days_old=13, metadata=auto())) is False

    def test_configured_threshold(self, repository):
        service = CleanupService(repository, Config(worktree=WorktreeConfig(auto_cleanup_days=3)))

        assert service.is_expired(make_worktree("wt-a", days_old=4, metadata=auto())) is True

    def test_record_retention_wins(self, service):
        worktree = make_worktree("wt-a", days_old=5, metadata=auto(days=2))

        assert service.is_expired(worktree, threshold_days=30) is True

    def test_threshold_override(self, service):
        worktree = make_worktree("wt-a", days_old=5, metadata=auto())

        assert service.is_expired(worktree, threshold_days=3) is True
        assert service.is_expired(worktree, threshold_days=7) is False

    def test_falls_back_to_created_date(self, service):
        worktree = make_worktree("wt-a", days_old=20, metadata=auto(), last_accessed_date=None)

        assert service.is_expired(worktree) is True

    def test_get_expired_worktrees(self, service, repository):
        repository.find_all.return_value = [
            make_worktree("wt-old", days_old=30, metadata=auto()),
            make_worktree("wt-new", days_old=1, metadata=auto()),
            make_worktree("wt-manual", days_old=30),
        ]

        assert [wt.id for wt in service.get_expired_worktrees()] == ["wt-old"]


class TestProtection:
    """Tests for protection rules."""

    def test_clean_worktree_not_protected(self, service):
        assert service.should_protect(make_worktree()) == (False, "")

    def test_uncommitted_changes(self, service):
        worktree = make_worktree(status=WorktreeStatus(is_clean=False, modified_files=1))

        assert service.should_protect(worktree) == (True, "has uncommitted changes")

    def test_inactive_dirty_record_not_protected(self, service):
        worktree = make_worktree(is_active=False, status=WorktreeStatus(is_clean=False))

        assert service.should_protect(worktree) == (False, "")

    def test_unpushed_commits(self, service):
        worktree = make_worktree(status=WorktreeStatus(ahead_count=2))

        assert service.should_protect(worktree) == (True, "has unpushed commits")

    def test_protection_can_be_disabled(self, repository):
        config = Config(cleanup=CleanupConfig(protect_uncommitted=False, protect_unpushed=False))
        service = CleanupService(repository, config)
        worktree = make_worktree(status=WorktreeStatus(is_clean=False, ahead_count=2))

        assert service.should_protect(worktree) == (False, "")


class TestCleanup:
    """Tests for the cleanup run."""

    @pytest.fixture
    def populated(self, repository):
        repository.find_all.return_value = [
            make_worktree("wt-expired", days_old=30, metadata=auto()),
            make_worktree(
                "wt-dirty",
                days_old=30,
                metadata=auto(),
                status=WorktreeStatus(is_clean=False, modified_files=1),
            ),
            make_worktree("wt-fresh", days_old=1, metadata=auto()),
        ]
        return repository

    def test_dry_run(self, service, populated):
        report = service.cleanup(dry_run=True)

        assert report.dry_run is True
        assert report.worktrees_scanned == 3
        assert report.expired_found == 2
        assert report.worktrees_cleaned == 1
        assert report.cleaned_ids == ["wt-expired"]
        assert report.worktrees_skipped == 1
        assert report.skipped_ids == ["wt-dirty (has uncommitted changes)"]
        populated.delete.assert_not_called()

    def test_actual_cleanup(self, service, populated):
        report = service.cleanup(dry_run=False)

        populated.delete.assert_called_once_with("wt-expired", force=True)
        assert report.cleaned_ids == ["wt-expired"]

    def test_force_ignores_protection(self, service, populated):
        report = service.cleanup(dry_run=False, force=True)

        assert report.worktrees_cleaned == 2
        assert report.worktrees_skipped == 0

    def test_errors_are_collected(self, service, populated):
        populated.delete.side_effect = GitCommandFailedError("boom")

        report = service.cleanup(dry_run=False, force=True)

        assert report.worktrees_cleaned == 0
        assert len(report.errors) == 2
        assert report.errors[0] == "Failed to delete wt-expired: boom"

    def test_empty_repository(self, service):
        report = service.cleanup(dry_run=False)

        assert report.worktrees_scanned == 0
        assert report.expired_found == 0
