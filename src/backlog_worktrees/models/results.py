"""
Pydantic models for operation results.

Expected day-to-day outcomes (merge conflicts, rejected pushes, pull
conflicts) are reported through these models instead of exceptions, so
a terminal or web surface can render the message and suggestions as-is.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from backlog_worktrees.models.worktree import CamelModel, utc_now


class ValidationResult(CamelModel):
    """Result of validating a worktree name or path."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors)


class ConflictDetail(CamelModel):
    """One conflicting file and a human-readable conflict label."""

    file: str
    status: str


class MergeResult(CamelModel):
    """Result of merging a worktree branch into a target branch."""

    success: bool
    message: str
    conflicts: Optional[list[str]] = None
    conflict_details: Optional[list[ConflictDetail]] = None
    suggestions: Optional[list[str]] = None
    uncommitted_changes: Optional[bool] = None
    merged_files: Optional[list[str]] = None


class PushResult(CamelModel):
    """Result of pushing a worktree branch."""

    success: bool
    message: str
    suggestions: Optional[list[str]] = None
    commits_pushed: int = Field(default=0, ge=0)


class PullResult(CamelModel):
    """Result of pulling into a worktree."""

    success: bool
    message: str
    conflicts: Optional[list[str]] = None
    suggestions: Optional[list[str]] = None
    commits_pulled: int = Field(default=0, ge=0)


class StaleCleanupResult(CamelModel):
    """Result of deactivating records whose worktree git no longer knows."""

    cleaned: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)


class CleanupReport(CamelModel):
    """Report generated after a retention cleanup run."""

    timestamp: datetime = Field(default_factory=utc_now, description="When the cleanup ran")
    dry_run: bool = Field(..., description="Whether this was a dry run")
    worktrees_scanned: int = Field(default=0, ge=0)
    expired_found: int = Field(default=0, ge=0)
    worktrees_cleaned: int = Field(default=0, ge=0)
    worktrees_skipped: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    cleaned_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(
        default_factory=list,
        description="Ids skipped by protection rules, with the reason",
    )
