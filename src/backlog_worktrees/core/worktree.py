"""Git worktree management operations."""

import logging
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from backlog_worktrees.config import Config
from backlog_worktrees.core.git import CommandResult, GitExecutor
from backlog_worktrees.core.parsing import (
    parse_ahead_behind,
    parse_conflicts,
    parse_status_output,
    parse_worktree_list,
)
from backlog_worktrees.models.results import MergeResult, PullResult, PushResult, ValidationResult
from backlog_worktrees.models.worktree import GitWorktreeEntry, Worktree, WorktreeStatus, utc_now
from backlog_worktrees.utils.ids import generate_worktree_id

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MAX_NAME_LENGTH = 100
_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")

_NETWORK_MARKERS = (
    "could not resolve host",
    "unable to access",
    "could not read from remote repository",
    "connection timed out",
    "connection refused",
)
_MISSING_REF_MARKERS = (
    "invalid reference",
    "not a valid object name",
    "did not match any",
)


class WorktreeErrorCode(str, Enum):
    """Kinds of worktree failures."""

    GIT_COMMAND_FAILED = "GIT_COMMAND_FAILED"
    PATH_ALREADY_EXISTS = "PATH_ALREADY_EXISTS"
    UNCOMMITTED_CHANGES = "UNCOMMITTED_CHANGES"
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    WORKTREE_NOT_FOUND = "WORKTREE_NOT_FOUND"
    INVALID_WORKTREE_NAME = "INVALID_WORKTREE_NAME"
    INVALID_PATH = "INVALID_PATH"


RECOVERABLE_CODES = frozenset(
    {
        WorktreeErrorCode.VALIDATION_ERROR,
        WorktreeErrorCode.PATH_ALREADY_EXISTS,
        WorktreeErrorCode.BRANCH_NOT_FOUND,
        WorktreeErrorCode.INVALID_WORKTREE_NAME,
        WorktreeErrorCode.INVALID_PATH,
    }
)

DEFAULT_SUGGESTIONS = {
    WorktreeErrorCode.PATH_ALREADY_EXISTS: [
        "Choose a different name or path",
        "Remove the existing directory first",
    ],
    WorktreeErrorCode.BRANCH_NOT_FOUND: [
        "Create the branch first",
        "Check the branch name spelling",
    ],
    WorktreeErrorCode.UNCOMMITTED_CHANGES: [
        "Commit or stash changes first",
        "Use force delete if changes are not needed",
    ],
}


class WorktreeError(Exception):
    """Base exception for worktree operations."""

    code = WorktreeErrorCode.GIT_COMMAND_FAILED

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        suggestions: Optional[list[str]] = None,
        code: Optional[WorktreeErrorCode] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details
        if suggestions is None:
            suggestions = DEFAULT_SUGGESTIONS.get(self.code, [])
        self.suggestions = list(suggestions)
        super().__init__(message)

    @property
    def recoverable(self) -> bool:
        """Whether the caller can fix the input and retry."""
        return self.code in RECOVERABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form for transport."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
        }


class GitCommandFailedError(WorktreeError):
    """Raised when git could not be run or exited non-zero."""

    code = WorktreeErrorCode.GIT_COMMAND_FAILED


class PathAlreadyExistsError(WorktreeError):
    """Raised when the target path of a new worktree already exists."""

    code = WorktreeErrorCode.PATH_ALREADY_EXISTS


class UncommittedChangesError(WorktreeError):
    """Raised when a worktree with uncommitted changes would be removed."""

    code = WorktreeErrorCode.UNCOMMITTED_CHANGES

    def __init__(self, modified_files: int, staged_files: int, message: Optional[str] = None):
        self.modified_files = modified_files
        self.staged_files = staged_files
        super().__init__(
            message or "Worktree has uncommitted changes. Use force=True to delete anyway.",
            details={"modifiedFiles": modified_files, "stagedFiles": staged_files},
        )


class BranchNotFoundError(WorktreeError):
    """Raised when a branch does not exist."""

    code = WorktreeErrorCode.BRANCH_NOT_FOUND


class PermissionDeniedError(WorktreeError):
    """Raised when git or the filesystem refuses access."""

    code = WorktreeErrorCode.PERMISSION_DENIED


class NetworkError(WorktreeError):
    """Raised when the remote cannot be reached."""

    code = WorktreeErrorCode.NETWORK_ERROR


class WorktreeNotFoundError(WorktreeError):
    """Raised when a worktree cannot be found."""

    code = WorktreeErrorCode.WORKTREE_NOT_FOUND


class WorktreeValidationError(WorktreeError):
    """Raised when input fails validation. Carries every violation."""

    code = WorktreeErrorCode.VALIDATION_ERROR

    def __init__(self, violations: list[str], message: Optional[str] = None):
        self.violations = list(violations)
        super().__init__(
            message or ", ".join(self.violations),
            details={"errors": self.violations},
        )


class InvalidWorktreeNameError(WorktreeValidationError):
    """Raised when a worktree name is not filesystem and branch safe."""

    code = WorktreeErrorCode.INVALID_WORKTREE_NAME


class InvalidPathError(WorktreeValidationError):
    """Raised when a worktree path is unusable."""

    code = WorktreeErrorCode.INVALID_PATH


class WorktreeOrchestrator:
    """
    Manages git worktree operations for a repository.

    All git access goes through a GitExecutor. Precondition failures raise
    WorktreeError subclasses; merge, push and pull report their outcome
    as result models instead.
    """

    def __init__(
        self,
        repo_root: PathLike,
        config: Optional[Config] = None,
        git: Optional[GitExecutor] = None,
    ):
        """
        Initialize the WorktreeOrchestrator.

        Args:
            repo_root: Root of the main working copy of the repository.
            config: Loaded configuration. Defaults to built-in defaults.
            git: Executor to run git with. Defaults to a GitExecutor for repo_root.
        """
        self.repo_root = Path(repo_root)
        self.config = config or Config()
        self.git = git or GitExecutor(self.repo_root, self.config.git)

    # Validation

    def validate_name(self, name: str) -> ValidationResult:
        """
        Check that a worktree name is filesystem and branch safe.

        Args:
            name: Proposed worktree name.

        Returns:
            ValidationResult listing every violated rule.
        """
        errors = []

        if not name or not name.strip():
            errors.append("Worktree name cannot be empty")

        if len(name) > MAX_NAME_LENGTH:
            errors.append(f"Worktree name cannot exceed {MAX_NAME_LENGTH} characters")

        if not _NAME_RE.fullmatch(name):
            errors.append("Worktree name can only contain letters, numbers, hyphens, and underscores")

        if name.startswith("-") or name.endswith("-"):
            errors.append("Worktree name cannot start or end with a hyphen")

        return ValidationResult.from_errors(errors)

    def validate_path(self, path: PathLike) -> ValidationResult:
        """
        Check that a worktree path is usable: non-empty and not already present.

        Args:
            path: Proposed worktree location.

        Returns:
            ValidationResult listing every problem found.
        """
        if not str(path).strip():
            return ValidationResult.from_errors(["Worktree path cannot be empty"])

        errors = []
        target = Path(path).expanduser()

        try:
            if target.is_dir():
                errors.append("Directory already exists at the specified path")
            elif target.exists() or target.is_symlink():
                errors.append("A file already exists at the specified path")
        except OSError as e:
            errors.append(f"Invalid path: {e}")

        return ValidationResult.from_errors(errors)

    def resolve_worktree_path(self, name: str, base_path: Optional[PathLike] = None) -> Path:
        """
        Work out where a worktree called name should live.

        Pattern: {base_path}/{name}, else {repo}/{worktree.base_directory}/{name}.
        Relative base paths are taken relative to the repository root.
        """
        base = Path(base_path) if base_path else Path(self.config.worktree.base_directory)
        base = base.expanduser()
        if not base.is_absolute():
            base = self.repo_root / base
        return Path(os.path.normpath(base / name))

    # Lifecycle

    def create(self, name: str, branch: str, base_path: Optional[PathLike] = None) -> Worktree:
        """
        Create a new worktree, creating the branch when it does not exist yet.

        Args:
            name: Worktree name, also the directory name.
            branch: Branch to check out in the worktree.
            base_path: Directory to create the worktree in.

        Returns:
            Fully populated Worktree with fresh status and is_active=True.

        Raises:
            InvalidWorktreeNameError: If the name is not valid.
            InvalidPathError: If the path is not usable.
            PathAlreadyExistsError: If something already exists at the path.
            WorktreeError: If git fails to create the worktree.
        """
        name_validation = self.validate_name(name)
        if not name_validation.is_valid:
            raise InvalidWorktreeNameError(name_validation.errors)

        worktree_path = self.resolve_worktree_path(name, base_path)
        path_validation = self.validate_path(worktree_path)
        if not path_validation.is_valid:
            if worktree_path.exists():
                raise PathAlreadyExistsError(
                    f"Path already exists: {worktree_path}",
                    details={"path": str(worktree_path), "errors": path_validation.errors},
                )
            raise InvalidPathError(path_validation.errors)

        if self.branch_exists(branch):
            args = ["worktree", "add", str(worktree_path), branch]
        else:
            logger.info(f"Branch '{branch}' does not exist, creating it with worktree")
            args = ["worktree", "add", "-b", branch, str(worktree_path)]

        result = self.git.run(args)
        if not result.success:
            raise self._command_error(result, "Failed to create worktree")

        base_branch = self.get_current_branch()
        status = self.get_status(worktree_path)
        now = utc_now()

        logger.info(f"Created worktree '{name}' for branch '{branch}' at {worktree_path}")

        return Worktree(
            id=generate_worktree_id(name),
            name=name,
            path=str(worktree_path),
            branch=branch,
            base_branch=base_branch,
            status=status,
            created_date=now,
            last_accessed_date=now,
            is_active=True,
        )

    def delete(self, path: PathLike, force: bool = False) -> None:
        """
        Remove a worktree.

        Args:
            path: Path of the worktree.
            force: Remove even with uncommitted changes.

        Raises:
            UncommittedChangesError: If not forced and the worktree is dirty.
            WorktreeNotFoundError: If not forced and the path does not exist.
            WorktreeError: If git fails to remove the worktree.
        """
        if not force:
            status = self.get_status(path)
            if not status.is_clean:
                raise UncommittedChangesError(status.modified_files, status.staged_files)

        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))

        result = self.git.run(args)
        if not result.success:
            raise self._command_error(result, "Failed to delete worktree")

        logger.info(f"Removed worktree at {path}")

    def list_worktrees(self) -> list[GitWorktreeEntry]:
        """
        List all worktrees git knows about, including the main working copy.

        Raises:
            GitCommandFailedError: If git cannot list worktrees.
        """
        result = self.git.run(["worktree", "list", "--porcelain"])
        if not result.success:
            raise GitCommandFailedError(
                f"Failed to list worktrees: {result.stderr or 'unknown error'}",
                details={"exitCode": result.exit_code, "stderr": result.stderr},
            )

        return parse_worktree_list(result.stdout)

    # Inspection

    def get_status(self, path: PathLike) -> WorktreeStatus:
        """
        Compute a fresh status snapshot of a worktree.

        Args:
            path: Path of the worktree.

        Returns:
            WorktreeStatus. If the output cannot be interpreted, a
            conservative snapshot (is_clean=False, zero counts).

        Raises:
            WorktreeNotFoundError: If the path does not exist.
            GitCommandFailedError: If git status fails.
        """
        if not Path(path).exists():
            raise WorktreeNotFoundError(
                f"Worktree path does not exist: {path}",
                details={"path": str(path)},
            )

        result = self.git.run(["status", "--porcelain"], cwd=path)
        if not result.success:
            raise GitCommandFailedError(
                "Failed to get worktree status",
                details={"path": str(path), "exitCode": result.exit_code, "stderr": result.stderr},
            )

        try:
            counts = parse_status_output(result.stdout)
            ahead, behind = self._get_ahead_behind(path)
            return WorktreeStatus(
                is_clean=counts.is_clean,
                modified_files=counts.modified_files,
                staged_files=counts.staged_files,
                untracked_files=counts.untracked_files,
                ahead_count=ahead,
                behind_count=behind,
                has_conflicts=counts.has_conflicts,
                last_status_check=utc_now(),
            )
        except (ValueError, OSError) as e:
            logger.warning(f"Could not read status of {path}, assuming dirty: {e}")
            return WorktreeStatus.unknown()

    def branch_exists(self, branch: str) -> bool:
        """Check if a local branch exists."""
        result = self.git.run(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"])
        return result.success

    def get_current_branch(self, cwd: Optional[PathLike] = None) -> str:
        """
        Get the branch checked out at cwd (the repository root by default).

        Raises:
            GitCommandFailedError: If git cannot report the branch.
        """
        result = self.git.run(["branch", "--show-current"], cwd=cwd)
        if not result.success:
            raise GitCommandFailedError(
                "Failed to get current branch",
                details={"exitCode": result.exit_code, "stderr": result.stderr},
            )
        return result.stdout.strip()

    def _get_ahead_behind(self, path: PathLike) -> tuple[int, int]:
        result = self.git.run(["status", "--porcelain=v1", "--branch"], cwd=path)
        if not result.success:
            return 0, 0
        return parse_ahead_behind(result.stdout)

    # Synchronization

    def merge(self, path: PathLike, target_branch: str) -> MergeResult:
        """
        Merge the worktree's branch into target_branch in the main repository.

        Preconditions are checked before anything is changed: the branches
        must differ, the target must exist and the worktree must be clean.
        The merge is --no-ff so the branch history stays visible.

        Args:
            path: Path of the worktree whose branch is merged.
            target_branch: Branch to merge into.

        Returns:
            MergeResult. Conflicts and failed preconditions are reported
            with success=False; this method does not raise for them.
        """
        try:
            current_branch = self.get_current_branch(path)
            if not current_branch:
                return MergeResult(
                    success=False,
                    message="Worktree is in detached HEAD state; check out a branch before merging",
                )

            if current_branch == target_branch:
                return MergeResult(
                    success=False,
                    message=f"Cannot merge branch into itself: {current_branch}",
                )

            if not self.branch_exists(target_branch):
                return MergeResult(
                    success=False,
                    message=f"Target branch '{target_branch}' does not exist",
                )

            status = self.get_status(path)
            if not status.is_clean:
                return MergeResult(
                    success=False,
                    message="Worktree has uncommitted changes. Please commit or stash changes before merging.",
                    conflicts=[],
                    uncommitted_changes=True,
                )

            pre_merge_commit = self._rev_parse(target_branch)

            checkout = self.git.run(["checkout", target_branch])
            if not checkout.success:
                return MergeResult(
                    success=False,
                    message=f"Failed to checkout target branch '{target_branch}': {checkout.stderr}",
                )

            fetch = self.git.run(["fetch"])
            if not fetch.success:
                logger.warning(f"Failed to fetch from remote, merging local state: {fetch.stderr}")

            merge = self.git.run(
                [
                    "merge",
                    "--no-ff",
                    current_branch,
                    "-m",
                    f"Merge branch '{current_branch}' into {target_branch}",
                ]
            )

            if not merge.success:
                return self._merge_failure(current_branch, target_branch, merge)

            logger.info(f"Merged '{current_branch}' into '{target_branch}'")

            return MergeResult(
                success=True,
                message=f"Successfully merged '{current_branch}' into '{target_branch}'",
                merged_files=self._changed_files(pre_merge_commit, target_branch),
            )

        except WorktreeError as e:
            return MergeResult(
                success=False,
                message=f"Merge operation failed: {e.message}",
                suggestions=[
                    "Check if both branches exist",
                    "Ensure you have proper permissions",
                    "Verify the repository is in a clean state",
                ],
            )

    def push(self, path: PathLike) -> PushResult:
        """
        Push the worktree's branch to its remote.

        Args:
            path: Path of the worktree.

        Returns:
            PushResult; rejected and failed pushes carry a message and suggestions.
        """
        try:
            status = self.get_status(path)
        except WorktreeError as e:
            return PushResult(
                success=False,
                message=f"Push operation failed: {e.message}",
                suggestions=[
                    "Check if the worktree path exists",
                    "Verify Git is properly configured",
                    "Ensure you have network connectivity",
                ],
            )

        if status.ahead_count == 0:
            return PushResult(
                success=True,
                message="No changes to push - worktree is up to date",
            )

        result = self.git.run(["push"], cwd=path)
        if not result.success:
            return self._push_failure(result)

        logger.info(f"Pushed {status.ahead_count} commit(s) from {path}")

        return PushResult(
            success=True,
            message=f"Successfully pushed {status.ahead_count} commit(s) to remote",
            commits_pushed=status.ahead_count,
        )

    def pull(self, path: PathLike) -> PullResult:
        """
        Fetch and pull remote changes into a clean worktree.

        Args:
            path: Path of the worktree.

        Returns:
            PullResult; conflicts, divergence and dirty worktrees are reported
            with success=False.
        """
        try:
            status_before = self.get_status(path)
        except WorktreeError as e:
            return self._pull_error(e)

        if not status_before.is_clean:
            return PullResult(
                success=False,
                message="Cannot pull: Worktree has uncommitted changes",
                suggestions=[
                    'Commit your changes: git add . && git commit -m "message"',
                    "Or stash them: git stash",
                    "Then try pulling again",
                ],
            )

        fetch = self.git.run(["fetch"], cwd=path)
        if not fetch.success:
            return PullResult(
                success=False,
                message=f"Failed to fetch from remote: {fetch.stderr}",
                suggestions=[
                    "Check your internet connection",
                    "Verify remote repository configuration",
                    "Check if remote repository exists",
                ],
            )

        try:
            status_after_fetch = self.get_status(path)
        except WorktreeError as e:
            return self._pull_error(e)

        if status_after_fetch.behind_count == 0:
            return PullResult(
                success=True,
                message="Already up to date - no changes to pull",
            )

        pull = self.git.run(["pull"], cwd=path)
        if not pull.success:
            return self._pull_failure(path, pull)

        commits = status_after_fetch.behind_count
        logger.info(f"Pulled {commits} commit(s) into {path}")

        return PullResult(
            success=True,
            message=f"Successfully pulled {commits} commit(s) from remote",
            commits_pulled=commits,
        )

    # Helpers

    def _rev_parse(self, ref: str) -> Optional[str]:
        result = self.git.run(["rev-parse", "--verify", "--quiet", ref])
        return result.stdout.strip() if result.success else None

    def _changed_files(self, before: Optional[str], after: str) -> list[str]:
        """Files that differ between two commits of a branch."""
        start = before or f"{after}~1"
        result = self.git.run(["diff", "--name-only", start, after])
        if not result.success:
            logger.warning(f"Could not list merged files: {result.stderr}")
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _merge_failure(self, source: str, target: str, merge: CommandResult) -> MergeResult:
        status = self.git.run(["status", "--porcelain"])
        conflicts = parse_conflicts(status.stdout) if status.success else []
        files = [conflict.file for conflict in conflicts]

        if conflicts:
            message = f"Merge failed with {len(conflicts)} conflict(s): {', '.join(files)}"
        else:
            message = f"Merge of '{source}' into '{target}' failed: {merge.stderr or merge.stdout}"

        logger.warning(message)

        return MergeResult(
            success=False,
            message=message,
            conflicts=files,
            conflict_details=conflicts,
            suggestions=[
                "Resolve conflicts manually in the affected files",
                "Use git status to see detailed conflict information",
                "After resolving, use git add <file> and git commit to complete the merge",
                "Or use git merge --abort to cancel the merge",
            ],
        )

    def _push_failure(self, result: CommandResult) -> PushResult:
        error = result.stderr
        lowered = error.lower()

        if "rejected" in lowered and "non-fast-forward" in lowered:
            return PushResult(
                success=False,
                message="Push rejected: Remote has changes that conflict with local changes",
                suggestions=[
                    "Pull the latest changes first: git pull",
                    "Then try pushing again",
                    "Or force push if you're sure: git push --force-with-lease",
                ],
            )

        if "rejected" in lowered and "fetch first" in lowered:
            return PushResult(
                success=False,
                message="Push rejected: Remote branch has new commits",
                suggestions=[
                    "Pull the latest changes first: git pull",
                    "Resolve any conflicts if they occur",
                    "Then try pushing again",
                ],
            )

        if "permission denied" in lowered or "authentication failed" in lowered:
            return PushResult(
                success=False,
                message="Push failed: Authentication or permission error",
                suggestions=[
                    "Check your Git credentials",
                    "Verify you have push access to the repository",
                    "Try: git config --list to check your configuration",
                ],
            )

        if "repository not found" in lowered:
            return PushResult(
                success=False,
                message="Push failed: Remote repository not found",
                suggestions=[
                    "Check if the remote URL is correct",
                    "Verify the repository exists and you have access",
                    "Try: git remote -v to check remote configuration",
                ],
            )

        return PushResult(
            success=False,
            message=f"Push failed: {error}",
            suggestions=[
                "Check your internet connection",
                "Verify remote repository configuration",
                "Try pulling latest changes first",
            ],
        )

    def _pull_failure(self, path: PathLike, pull: CommandResult) -> PullResult:
        output = pull.output

        if "CONFLICT" in output or "Automatic merge failed" in output:
            status = self.git.run(["status", "--porcelain"], cwd=path)
            conflicts = [c.file for c in parse_conflicts(status.stdout)] if status.success else []
            return PullResult(
                success=False,
                message=f"Pull completed with merge conflicts in {len(conflicts)} file(s)",
                conflicts=conflicts,
                suggestions=[
                    "Resolve conflicts in the affected files",
                    "Use git status to see detailed conflict information",
                    "After resolving, use: git add <file> && git commit",
                    "Or abort the merge: git merge --abort",
                ],
            )

        if "divergent branches" in output:
            return PullResult(
                success=False,
                message="Pull failed: Local and remote branches have diverged",
                suggestions=[
                    "Choose merge strategy: git config pull.rebase false",
                    "Or use rebase: git config pull.rebase true",
                    "Or specify strategy: git pull --no-rebase or git pull --rebase",
                ],
            )

        return PullResult(
            success=False,
            message=f"Pull failed: {pull.stderr}",
            suggestions=[
                "Check if you have uncommitted changes",
                "Verify remote branch exists",
                "Try fetching first: git fetch",
            ],
        )

    def _pull_error(self, error: WorktreeError) -> PullResult:
        return PullResult(
            success=False,
            message=f"Pull operation failed: {error.message}",
            suggestions=[
                "Check if the worktree path exists",
                "Verify Git is properly configured",
                "Ensure you have network connectivity",
            ],
        )

    def _command_error(self, result: CommandResult, message: str) -> WorktreeError:
        """Turn a failed git command into the most specific WorktreeError."""
        error_text = result.stderr or result.stdout
        lowered = error_text.lower()
        full_message = f"{message}: {error_text}" if error_text else message
        details = {"exitCode": result.exit_code, "stderr": result.stderr}

        if "permission denied" in lowered:
            return PermissionDeniedError(full_message, details=details)
        if any(marker in lowered for marker in _NETWORK_MARKERS):
            return NetworkError(full_message, details=details)
        if any(marker in lowered for marker in _MISSING_REF_MARKERS):
            return BranchNotFoundError(full_message, details=details)
        if "already exists" in lowered and "branch" not in lowered:
            return PathAlreadyExistsError(full_message, details=details)
        return GitCommandFailedError(full_message, details=details)
