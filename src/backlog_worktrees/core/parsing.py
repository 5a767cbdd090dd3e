"""
Parsers for git's machine-readable output.

Every function here is pure: text in, structured data out. They never
run git, so edge cases are tested against literal fixture strings.
"""

import re
from dataclasses import dataclass
from pathlib import PurePath

from backlog_worktrees.models.results import ConflictDetail
from backlog_worktrees.models.worktree import GitWorktreeEntry

CONFLICT_LABELS = {
    "UU": "both modified",
    "AA": "both added",
    "DD": "both deleted",
    "AU": "added by us",
    "UA": "added by them",
    "DU": "deleted by us",
    "UD": "deleted by them",
}

_AHEAD_RE = re.compile(r"ahead (\d+)")
_BEHIND_RE = re.compile(r"behind (\d+)")


@dataclass(frozen=True)
class StatusCounts:
    """File counts parsed from `git status --porcelain`."""

    entries: int = 0
    modified_files: int = 0
    staged_files: int = 0
    untracked_files: int = 0
    has_conflicts: bool = False

    @property
    def is_clean(self) -> bool:
        return self.entries == 0


def _status_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.strip() and not line.startswith("##")]


def is_conflict_code(code: str) -> bool:
    """Whether a two-character porcelain code marks an unmerged path."""
    return code in CONFLICT_LABELS


def describe_conflict(code: str) -> str:
    """Human label for a conflict code."""
    return CONFLICT_LABELS.get(code, "unknown conflict")


def parse_status_output(output: str) -> StatusCounts:
    """
    Count entries of `git status --porcelain` output.

    Per two-character code XY: X not blank and not "?" counts as staged;
    Y of "?" counts as untracked, any other non-blank Y as modified.
    Unmerged codes (UU, AA, DD, AU, UA, DU, UD) set has_conflicts.

    Args:
        output: Raw porcelain output. Leading spaces are significant.

    Returns:
        StatusCounts for the output.
    """
    lines = _status_lines(output)
    modified = staged = untracked = 0
    has_conflicts = False

    for line in lines:
        code = line[:2].ljust(2)
        index_status, worktree_status = code[0], code[1]

        if is_conflict_code(code):
            has_conflicts = True
        if index_status not in (" ", "?"):
            staged += 1
        if worktree_status == "?":
            untracked += 1
        elif worktree_status != " ":
            modified += 1

    return StatusCounts(
        entries=len(lines),
        modified_files=modified,
        staged_files=staged,
        untracked_files=untracked,
        has_conflicts=has_conflicts,
    )


def parse_ahead_behind(output: str) -> tuple[int, int]:
    """
    Extract (ahead, behind) from the branch line of `git status --porcelain=v1 --branch`.

    The branch line looks like "## main...origin/main [ahead 2, behind 1]".
    A missing word means zero.
    """
    lines = output.splitlines()
    branch_line = lines[0] if lines else ""

    ahead = _AHEAD_RE.search(branch_line)
    behind = _BEHIND_RE.search(branch_line)

    return (
        int(ahead.group(1)) if ahead else 0,
        int(behind.group(1)) if behind else 0,
    )


def parse_conflicts(output: str) -> list[ConflictDetail]:
    """
    Extract conflicting files from `git status --porcelain` output.

    Args:
        output: Raw porcelain output taken after a failed merge or pull.

    Returns:
        One ConflictDetail per unmerged path, in output order.
    """
    conflicts = []

    for line in _status_lines(output):
        code = line[:2]
        if is_conflict_code(code):
            conflicts.append(ConflictDetail(file=line[3:], status=describe_conflict(code)))

    return conflicts


def parse_worktree_list(output: str) -> list[GitWorktreeEntry]:
    """
    Parse `git worktree list --porcelain` output.

    A block starts at a "worktree <path>" line and runs until the next one.
    "branch refs/heads/<name>" gives the branch; the name is the last
    path segment.
    """
    worktrees: list[GitWorktreeEntry] = []
    current: dict = {}

    def flush() -> None:
        if current.get("path"):
            worktrees.append(
                GitWorktreeEntry(
                    name=PurePath(current["path"]).name,
                    path=current["path"],
                    branch=current.get("branch"),
                    head=current.get("head"),
                    is_bare=current.get("bare", False),
                    is_detached=current.get("detached", False),
                )
            )

    for raw_line in output.splitlines():
        line = raw_line.strip()

        if line.startswith("worktree "):
            flush()
            current = {"path": line[len("worktree "):]}
        elif line.startswith("HEAD "):
            current["head"] = line[len("HEAD "):]
        elif line.startswith("branch "):
            branch_ref = line[len("branch "):]
            if branch_ref.startswith("refs/heads/"):
                branch_ref = branch_ref[len("refs/heads/"):]
            current["branch"] = branch_ref
        elif line == "detached":
            current["detached"] = True
        elif line == "bare":
            current["bare"] = True

    flush()

    return worktrees
