"""
Repository combining worktree metadata storage and git operations.

Reads go through one reconcile step: every record returned to a caller
has had its is_active flag and status checked against what git reports,
and the corrected record has been written back to the store.
"""

import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from backlog_worktrees.config import Config, load_config
from backlog_worktrees.core.storage import WorktreeStore
from backlog_worktrees.core.worktree import (
    WorktreeError,
    WorktreeNotFoundError,
    WorktreeOrchestrator,
    WorktreeValidationError,
)
from backlog_worktrees.models.results import (
    MergeResult,
    PullResult,
    PushResult,
    StaleCleanupResult,
    ValidationResult,
)
from backlog_worktrees.models.worktree import CreateWorktreeDto, Worktree

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Canonical form of a path for comparing stored and git-reported locations."""
    return os.path.normcase(os.path.realpath(path))


class WorktreeRepository:
    """
    Single entry point for worktree records.

    Operations on the same worktree id are serialized with a per-id lock;
    operations on different ids run independently.
    """

    def __init__(
        self,
        project_root: Path,
        config: Optional[Config] = None,
        store: Optional[WorktreeStore] = None,
        orchestrator: Optional[WorktreeOrchestrator] = None,
    ):
        self.project_root = Path(project_root)
        self.config = config or Config()
        self.store = store or WorktreeStore(self.project_root, self.config)
        self.orchestrator = orchestrator or WorktreeOrchestrator(self.project_root, self.config)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_project(cls, project_root: Path, config_path: Optional[str] = None) -> "WorktreeRepository":
        """Build a repository using the configuration found for project_root."""
        return cls(project_root, load_config(config_path, project_root=Path(project_root)))

    @contextmanager
    def _locked(self, worktree_id: str) -> Iterator[None]:
        if not self.store.is_valid_id(worktree_id):
            raise WorktreeValidationError([f"Invalid worktree id: {worktree_id!r}"])
        with self._locks_guard:
            lock = self._locks.setdefault(worktree_id, threading.RLock())
        with lock:
            yield

    def _live_paths(self) -> set[str]:
        return {normalize_path(entry.path) for entry in self.orchestrator.list_worktrees()}

    def _reconcile(self, worktree: Worktree, live_paths: set[str]) -> Worktree:
        """Correct is_active and status from live git state, then persist."""
        if normalize_path(worktree.path) in live_paths:
            try:
                worktree.status = self.orchestrator.get_status(worktree.path)
                worktree.is_active = True
            except WorktreeError as e:
                logger.warning(f"Failed to update status for worktree {worktree.id}: {e}")
                worktree.is_active = False
        else:
            if worktree.is_active:
                logger.info(
                    f"Worktree {worktree.id} at {worktree.path} is no longer registered with git, "
                    f"marking inactive"
                )
            worktree.is_active = False

        self.store.save(worktree)
        return worktree

    def _require_active(self, worktree_id: str) -> Worktree:
        worktree = self.store.load(worktree_id)
        if worktree is None or not worktree.is_active:
            raise WorktreeNotFoundError(
                f"Worktree {worktree_id} not found or inactive",
                details={"id": worktree_id},
            )
        return worktree

    # Create / read

    def create(self, dto: CreateWorktreeDto) -> Worktree:
        """
        Create the git worktree, then its metadata record.

        Identity fields (id, path, base branch, status) come from what the
        orchestrator actually created; the rest comes from the DTO.

        Raises:
            WorktreeError: If the git worktree cannot be created.
        """
        created = self.orchestrator.create(dto.name, dto.branch, dto.base_path)

        worktree = self.store.create_from_dto(dto)
        worktree.id = created.id
        worktree.path = created.path
        worktree.base_branch = created.base_branch
        worktree.status = created.status

        with self._locked(worktree.id):
            self.store.save(worktree)

        logger.info(f"Created worktree record {worktree.id} for '{worktree.name}'")
        return worktree

    def find_all(self) -> list[Worktree]:
        """
        All records, reconciled against the live worktree list.

        Each record is re-read under its lock, so a record deleted or
        changed after the directory scan is not written back stale.

        Raises:
            GitCommandFailedError: If git cannot list worktrees.
        """
        live_paths = self._live_paths()
        synced = []

        for stored in self.store.list_all():
            with self._locked(stored.id):
                current = self.store.load(stored.id)
                if current is None:
                    continue
                synced.append(self._reconcile(current, live_paths))

        return synced

    def find_by_id(self, worktree_id: str) -> Optional[Worktree]:
        """
        One record reconciled against the live worktree list, or None.

        Inactive records are returned as stored.

        Raises:
            WorktreeValidationError: If the id is not a valid record id.
            GitCommandFailedError: If git cannot list worktrees.
        """
        with self._locked(worktree_id):
            worktree = self.store.load(worktree_id)
            if worktree is None or not worktree.is_active:
                return worktree
            return self._reconcile(worktree, self._live_paths())

    def find_by_task_id(self, task_id: str) -> list[Worktree]:
        """Records linked to a task, as stored."""
        return self.store.find_by_task_id(task_id)

    def get_worktree_status(self, worktree_id: str) -> Optional[Worktree]:
        """
        Refresh one record's status from git and record the access.

        Inactive records are returned unchanged. A status failure marks the
        record inactive.
        """
        with self._locked(worktree_id):
            worktree = self.store.load(worktree_id)
            if worktree is None or not worktree.is_active:
                return worktree

            try:
                worktree.status = self.orchestrator.get_status(worktree.path)
                worktree.touch()
            except WorktreeError as e:
                logger.warning(f"Failed to get status for worktree {worktree_id}: {e}")
                worktree.is_active = False

            self.store.save(worktree)
            return worktree

    # Update / delete

    def update(self, worktree_id: str, **changes: Any) -> Optional[Worktree]:
        """
        Apply field changes to a record. Returns None if it does not exist.

        Raises:
            WorktreeValidationError: If the id would change or a value is invalid.
        """
        with self._locked(worktree_id):
            try:
                return self.store.update(worktree_id, **changes)
            except ValueError as e:
                raise WorktreeValidationError([str(e)]) from e

    def link_to_task(self, worktree_id: str, task_id: str) -> None:
        """
        Link a task to a worktree. Linking twice is a no-op.

        Raises:
            WorktreeNotFoundError: If the record does not exist.
        """
        with self._locked(worktree_id):
            if not self.store.link_task(worktree_id, task_id):
                raise WorktreeNotFoundError(
                    f"Failed to link worktree {worktree_id} to task {task_id}: worktree not found",
                    details={"id": worktree_id, "taskId": task_id},
                )

    def unlink_from_task(self, worktree_id: str, task_id: str) -> None:
        """
        Unlink a task from a worktree. Unlinking an unlinked task is a no-op.

        Raises:
            WorktreeNotFoundError: If the record does not exist.
        """
        with self._locked(worktree_id):
            if not self.store.unlink_task(worktree_id, task_id):
                raise WorktreeNotFoundError(
                    f"Failed to unlink worktree {worktree_id} from task {task_id}: worktree not found",
                    details={"id": worktree_id, "taskId": task_id},
                )

    def delete(self, worktree_id: str, force: bool = False) -> None:
        """
        Delete a worktree and its record.

        The record is removed even when git cannot remove the working copy;
        cleanup can still find a dangling worktree later, but not a lost record.

        Raises:
            WorktreeNotFoundError: If the record does not exist.
        """
        with self._locked(worktree_id):
            worktree = self.store.load(worktree_id)
            if worktree is None:
                raise WorktreeNotFoundError(
                    f"Worktree with ID {worktree_id} not found",
                    details={"id": worktree_id},
                )

            if worktree.is_active:
                try:
                    self.orchestrator.delete(worktree.path, force)
                except WorktreeError as e:
                    logger.warning(f"Failed to delete git worktree at {worktree.path}: {e}")

            self.store.delete(worktree_id)

        logger.info(f"Deleted worktree record {worktree_id}")

    def cleanup_stale_worktrees(self) -> StaleCleanupResult:
        """
        Mark active records whose worktree git no longer lists as inactive.

        Raises:
            GitCommandFailedError: If git cannot list worktrees.
        """
        live_paths = self._live_paths()
        result = StaleCleanupResult()

        for stored in self.store.list_all():
            if not stored.is_active or normalize_path(stored.path) in live_paths:
                continue

            try:
                with self._locked(stored.id):
                    current = self.store.load(stored.id)
                    if current is None or not current.is_active:
                        continue
                    if normalize_path(current.path) in live_paths:
                        continue
                    current.is_active = False
                    self.store.save(current)
                result.cleaned += 1
            except (OSError, ValueError) as e:
                result.errors.append(f"Failed to cleanup worktree {stored.id}: {e}")

        if result.cleaned:
            logger.info(f"Marked {result.cleaned} stale worktree(s) inactive")

        return result

    # Git synchronization

    def merge_worktree(self, worktree_id: str, target_branch: str) -> MergeResult:
        """
        Merge a worktree's branch into target_branch.

        Raises:
            WorktreeNotFoundError: If the record is missing or inactive.
        """
        with self._locked(worktree_id):
            worktree = self._require_active(worktree_id)
            return self.orchestrator.merge(worktree.path, target_branch)

    def push_worktree(self, worktree_id: str) -> PushResult:
        """
        Push a worktree's branch and record the access.

        Raises:
            WorktreeNotFoundError: If the record is missing or inactive.
        """
        with self._locked(worktree_id):
            worktree = self._require_active(worktree_id)
            result = self.orchestrator.push(worktree.path)

            worktree.touch()
            self.store.save(worktree)
            return result

    def pull_worktree(self, worktree_id: str) -> PullResult:
        """
        Pull into a worktree, record the access and refresh its status.

        Raises:
            WorktreeNotFoundError: If the record is missing or inactive.
        """
        with self._locked(worktree_id):
            worktree = self._require_active(worktree_id)
            result = self.orchestrator.pull(worktree.path)

            worktree.touch()
            try:
                worktree.status = self.orchestrator.get_status(worktree.path)
            except WorktreeError as e:
                logger.warning(f"Failed to update status for worktree {worktree_id}: {e}")
            self.store.save(worktree)
            return result

    # Validation

    def validate_worktree_name(self, name: str) -> ValidationResult:
        return self.orchestrator.validate_name(name)

    def validate_worktree_path(self, path: str) -> ValidationResult:
        return self.orchestrator.validate_path(path)
