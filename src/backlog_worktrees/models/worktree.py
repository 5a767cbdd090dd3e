"""
Pydantic models for worktree records.

This module provides data models for:
- The persisted worktree record and its metadata
- The point-in-time git status snapshot of a worktree
- The DTO callers use to request a new worktree
- Entries of the live `git worktree list` output

Records serialize with camelCase keys so stored files and transport
payloads keep the field names the dashboard reads.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases and populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize using the camelCase wire names."""
        return self.model_dump_json(by_alias=True, indent=2)


class WorktreeStatus(CamelModel):
    """Point-in-time git status of a worktree.

    Instances are immutable: a refresh produces a new snapshot, so every
    field always comes from the same check.
    """

    model_config = ConfigDict(frozen=True)

    is_clean: bool = Field(default=True, description="No modified, staged or untracked files")
    modified_files: int = Field(default=0, ge=0, description="Files changed in the working tree")
    staged_files: int = Field(default=0, ge=0, description="Files with staged changes")
    untracked_files: int = Field(default=0, ge=0, description="Untracked files")
    ahead_count: int = Field(default=0, ge=0, description="Commits not on the remote-tracking branch")
    behind_count: int = Field(default=0, ge=0, description="Commits missing from the local branch")
    has_conflicts: bool = Field(default=False, description="Unmerged paths are present")
    last_status_check: datetime = Field(
        default_factory=utc_now,
        description="When this snapshot was taken",
    )

    @classmethod
    def unknown(cls) -> "WorktreeStatus":
        """Conservative snapshot used when the real status cannot be read."""
        return cls(is_clean=False)


class WorktreeMetadata(CamelModel):
    """Free-form attributes attached to a worktree."""

    created_by: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    auto_cleanup: bool = Field(default=False, description="Remove automatically once expired")
    cleanup_after_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Retention in days; falls back to the configured default",
    )


class Worktree(CamelModel):
    """Persisted record of one worktree."""

    id: str = Field(..., min_length=1, description="Unique, never reused identifier")
    name: str = Field(..., description="Human-chosen label")
    path: str = Field(..., description="Absolute path of the working copy")
    branch: str = Field(..., description="Branch checked out in the worktree")
    base_branch: str = Field(default="", description="Branch the worktree was forked from")
    task_ids: list[str] = Field(default_factory=list, description="Linked task identifiers")
    status: WorktreeStatus = Field(default_factory=WorktreeStatus)
    created_date: datetime = Field(default_factory=utc_now)
    last_accessed_date: Optional[datetime] = None
    is_active: bool = Field(default=True, description="Still registered with git")
    metadata: WorktreeMetadata = Field(default_factory=WorktreeMetadata)

    @field_validator("task_ids")
    @classmethod
    def _dedupe_task_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("created_date", "last_accessed_date")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Records written without an offset are UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def link_task(self, task_id: str) -> bool:
        """Link a task. Returns True if the link was added."""
        if task_id in self.task_ids:
            return False
        self.task_ids.append(task_id)
        return True

    def unlink_task(self, task_id: str) -> bool:
        """Unlink a task. Returns True if a link was removed."""
        if task_id not in self.task_ids:
            return False
        self.task_ids.remove(task_id)
        return True

    def touch(self) -> None:
        """Record an access."""
        self.last_accessed_date = utc_now()

    @property
    def last_activity(self) -> datetime:
        """Most recent known activity, falling back to the creation date."""
        return self.last_accessed_date or self.created_date


class CreateWorktreeDto(CamelModel):
    """Request to create a worktree."""

    name: str
    branch: str
    base_branch: str = ""
    base_path: Optional[str] = None
    task_id: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[list[str]] = None


class GitWorktreeEntry(CamelModel):
    """One worktree as reported by `git worktree list --porcelain`."""

    name: str
    path: str
    branch: Optional[str] = None
    head: Optional[str] = None
    is_bare: bool = False
    is_detached: bool = False
