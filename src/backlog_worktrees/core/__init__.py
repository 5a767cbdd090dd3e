"""
Core modules for Backlog Worktrees.

This package contains the core business logic for:
- Running git and parsing its output
- Worktree lifecycle and synchronization
- Metadata storage and reconciliation
- Retention cleanup
"""

from backlog_worktrees.core.cleanup import CleanupService
from backlog_worktrees.core.git import CommandResult, GitExecutor
from backlog_worktrees.core.repository import WorktreeRepository
from backlog_worktrees.core.storage import WorktreeStore
from backlog_worktrees.core.worktree import (
    BranchNotFoundError,
    GitCommandFailedError,
    InvalidPathError,
    InvalidWorktreeNameError,
    NetworkError,
    PathAlreadyExistsError,
    PermissionDeniedError,
    UncommittedChangesError,
    WorktreeError,
    WorktreeErrorCode,
    WorktreeNotFoundError,
    WorktreeOrchestrator,
    WorktreeValidationError,
)

__all__ = [
    "BranchNotFoundError",
    "CleanupService",
    "CommandResult",
    "GitCommandFailedError",
    "GitExecutor",
    "InvalidPathError",
    "InvalidWorktreeNameError",
    "NetworkError",
    "PathAlreadyExistsError",
    "PermissionDeniedError",
    "UncommittedChangesError",
    "WorktreeError",
    "WorktreeErrorCode",
    "WorktreeNotFoundError",
    "WorktreeOrchestrator",
    "WorktreeRepository",
    "WorktreeStore",
    "WorktreeValidationError",
]
