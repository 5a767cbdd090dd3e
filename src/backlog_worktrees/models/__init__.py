"""
Pydantic models for backlog-worktrees.

This package contains data models for:
- Worktree records, metadata and status snapshots
- Creation requests and live git worktree entries
- Merge, push, pull, validation and cleanup results
"""

from backlog_worktrees.models.results import (
    CleanupReport,
    ConflictDetail,
    MergeResult,
    PullResult,
    PushResult,
    StaleCleanupResult,
    ValidationResult,
)
from backlog_worktrees.models.worktree import (
    CreateWorktreeDto,
    GitWorktreeEntry,
    Worktree,
    WorktreeMetadata,
    WorktreeStatus,
)

__all__ = [
    "CleanupReport",
    "ConflictDetail",
    "CreateWorktreeDto",
    "GitWorktreeEntry",
    "MergeResult",
    "PullResult",
    "PushResult",
    "StaleCleanupResult",
    "ValidationResult",
    "Worktree",
    "WorktreeMetadata",
    "WorktreeStatus",
]
