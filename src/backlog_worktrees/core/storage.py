"""
File-based storage for worktree metadata.

Each worktree record is one JSON file, <id>.json, inside
<project>/backlog/worktrees. There is no index file: listing scans the
directory. Records are written atomically so a reader never sees a
half-written file.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from backlog_worktrees.config import Config
from backlog_worktrees.models.worktree import (
    CreateWorktreeDto,
    Worktree,
    WorktreeMetadata,
    WorktreeStatus,
    utc_now,
)
from backlog_worktrees.utils.ids import generate_worktree_id
from backlog_worktrees.utils.io import atomic_write_text

logger = logging.getLogger(__name__)


class WorktreeStore:
    """Persists Worktree records, one file per record, keyed by id."""

    FILE_EXTENSION = ".json"

    def __init__(self, project_root: Path, config: Optional[Config] = None):
        self.project_root = Path(project_root)
        self.config = config or Config()
        storage = self.config.storage
        self.worktrees_dir = self.project_root / storage.data_directory / storage.worktrees_directory

    @staticmethod
    def is_valid_id(worktree_id: str) -> bool:
        """True if the id names a file directly inside the worktrees directory."""
        if not worktree_id or worktree_id in (".", ".."):
            return False
        return os.sep not in worktree_id and "/" not in worktree_id

    def _record_path(self, worktree_id: str) -> Path:
        if not self.is_valid_id(worktree_id):
            raise ValueError(f"Invalid worktree id: {worktree_id!r}")
        return self.worktrees_dir / f"{worktree_id}{self.FILE_EXTENSION}"

    def ensure_directory(self) -> None:
        """Create the worktrees directory if it does not exist."""
        self.worktrees_dir.mkdir(parents=True, exist_ok=True)

    def save(self, worktree: Worktree) -> None:
        """Write a record, replacing any previous version."""
        self.ensure_directory()
        atomic_write_text(self._record_path(worktree.id), worktree.to_json() + "\n")

    def _read(self, path: Path) -> Worktree:
        return Worktree.model_validate_json(path.read_text(encoding="utf-8"))

    def load(self, worktree_id: str) -> Optional[Worktree]:
        """
        Load a record by id.

        Returns:
            The Worktree, or None if there is no readable record for the id.
        """
        path = self._record_path(worktree_id)
        if not path.exists():
            return None

        try:
            return self._read(path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load worktree {worktree_id}: {e}")
            return None

    def list_all(self) -> list[Worktree]:
        """All readable records, oldest first. Corrupt files are skipped."""
        if not self.worktrees_dir.exists():
            return []

        worktrees = []
        for path in self.worktrees_dir.glob(f"*{self.FILE_EXTENSION}"):
            try:
                worktree = self._read(path)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable worktree file {path.name}: {e}")
                continue

            if not self.is_valid_id(worktree.id):
                logger.warning(f"Skipping worktree file {path.name} with invalid id {worktree.id!r}")
                continue
            worktrees.append(worktree)

        return sorted(worktrees, key=lambda wt: wt.created_date)

    def delete(self, worktree_id: str) -> bool:
        """Remove a record. Returns True if a record existed."""
        path = self._record_path(worktree_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def find_by_task_id(self, task_id: str) -> list[Worktree]:
        """Records linked to a task."""
        return [wt for wt in self.list_all() if task_id in wt.task_ids]

    def link_task(self, worktree_id: str, task_id: str) -> bool:
        """
        Link a task to a record.

        Returns:
            False if the record does not exist, True otherwise.
        """
        worktree = self.load(worktree_id)
        if worktree is None:
            return False

        if worktree.link_task(task_id):
            self.save(worktree)
        return True

    def unlink_task(self, worktree_id: str, task_id: str) -> bool:
        """
        Unlink a task from a record.

        Returns:
            False if the record does not exist, True otherwise.
        """
        worktree = self.load(worktree_id)
        if worktree is None:
            return False

        if worktree.unlink_task(task_id):
            self.save(worktree)
        return True

    def update(self, worktree_id: str, **changes: Any) -> Optional[Worktree]:
        """
        Apply field changes to a record and save it.

        Args:
            worktree_id: Record to update.
            **changes: Field values by attribute name. The id cannot change.

        Returns:
            The updated Worktree, or None if the record does not exist.
        """
        if "id" in changes and changes["id"] != worktree_id:
            raise ValueError("A worktree id cannot be changed")

        worktree = self.load(worktree_id)
        if worktree is None:
            return None

        data = worktree.model_dump()
        data.update(changes)
        updated = Worktree.model_validate(data)
        self.save(updated)
        return updated

    def create_from_dto(self, dto: CreateWorktreeDto) -> Worktree:
        """
        Build a new, unsaved record from a creation request.

        The id is always freshly generated, so two records built from the
        same request never collide.
        """
        now = utc_now()
        if dto.base_path:
            path = Path(dto.base_path) / dto.name
        else:
            path = self.project_root / self.config.worktree.base_directory / dto.name

        return Worktree(
            id=generate_worktree_id(dto.name),
            name=dto.name,
            path=str(path),
            branch=dto.branch,
            base_branch=dto.base_branch,
            task_ids=[dto.task_id] if dto.task_id else [],
            status=WorktreeStatus(last_status_check=now),
            created_date=now,
            last_accessed_date=now,
            is_active=True,
            metadata=WorktreeMetadata(
                description=dto.description,
                tags=list(dto.tags or []),
                auto_cleanup=False,
            ),
        )
