"""
Cleanup service for expired worktrees.

Worktrees opted into auto cleanup (metadata.auto_cleanup) expire after a
period without access. This module:
- Finds expired worktrees using each record's retention period
- Protects worktrees with uncommitted or unpushed work
- Deletes them through the repository, with dry-run support
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from backlog_worktrees.config import Config
from backlog_worktrees.core.repository import WorktreeRepository
from backlog_worktrees.core.worktree import WorktreeError
from backlog_worktrees.models.results import CleanupReport
from backlog_worktrees.models.worktree import Worktree, utc_now

logger = logging.getLogger(__name__)


class CleanupService:
    """
    Service for cleaning up expired worktrees.

    Expiry and protection are decided from reconciled records, so an entry
    that git no longer lists is never treated as having live changes.
    """

    def __init__(self, repository: WorktreeRepository, config: Optional[Config] = None):
        self.repository = repository
        self.config = config or repository.config

    def _retention_days(self, worktree: Worktree, threshold_days: Optional[int]) -> int:
        if worktree.metadata.cleanup_after_days:
            return worktree.metadata.cleanup_after_days
        return threshold_days or self.config.worktree.auto_cleanup_days

    def is_expired(
        self,
        worktree: Worktree,
        threshold_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether an auto-cleanup worktree has gone unused past its retention period."""
        if not worktree.metadata.auto_cleanup:
            return False

        cutoff = (now or utc_now()) - timedelta(days=self._retention_days(worktree, threshold_days))
        return worktree.last_activity < cutoff

    def get_expired_worktrees(self, threshold_days: Optional[int] = None) -> list[Worktree]:
        """
        Identify worktrees past their retention period.

        Args:
            threshold_days: Override the configured default retention. A
                record's own cleanup_after_days still takes precedence.

        Returns:
            Expired worktrees, oldest first.
        """
        now = utc_now()
        return [wt for wt in self.repository.find_all() if self.is_expired(wt, threshold_days, now)]

    def should_protect(self, worktree: Worktree) -> tuple[bool, str]:
        """
        Determine if a worktree should be protected from cleanup.

        Returns:
            Tuple of (should_protect, reason)
        """
        cleanup = self.config.cleanup

        if cleanup.protect_uncommitted and worktree.is_active and not worktree.status.is_clean:
            return True, "has uncommitted changes"

        if cleanup.protect_unpushed and worktree.status.ahead_count > 0:
            return True, "has unpushed commits"

        return False, ""

    def cleanup(
        self,
        dry_run: bool = True,
        threshold_days: Optional[int] = None,
        force: bool = False,
    ) -> CleanupReport:
        """
        Clean up expired worktrees.

        Args:
            dry_run: If True, don't actually delete anything
            threshold_days: Override the default retention period
            force: If True, ignore protection rules

        Returns:
            CleanupReport with details of the operation
        """
        worktrees = self.repository.find_all()
        now = utc_now()
        expired = [wt for wt in worktrees if self.is_expired(wt, threshold_days, now)]

        report = CleanupReport(
            dry_run=dry_run,
            worktrees_scanned=len(worktrees),
            expired_found=len(expired),
        )

        for worktree in expired:
            protect, reason = self.should_protect(worktree)

            if protect and not force:
                report.worktrees_skipped += 1
                report.skipped_ids.append(f"{worktree.id} ({reason})")
                continue

            if dry_run:
                report.worktrees_cleaned += 1
                report.cleaned_ids.append(worktree.id)
                continue

            try:
                self.repository.delete(worktree.id, force=True)
                report.worktrees_cleaned += 1
                report.cleaned_ids.append(worktree.id)
            except (WorktreeError, OSError, ValueError) as e:
                report.errors.append(f"Failed to delete {worktree.id}: {e}")

        logger.info(
            f"Cleanup {'dry run ' if dry_run else ''}scanned {report.worktrees_scanned}, "
            f"cleaned {report.worktrees_cleaned}, skipped {report.worktrees_skipped}"
        )

        return report
