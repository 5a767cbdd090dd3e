"""
Backlog Worktrees - git worktree orchestration for a task backlog.

This package creates, tracks and synchronizes git worktrees linked to
backlog tasks, keeping a JSON metadata record per worktree in step with
what git actually reports.
"""

__version__ = "0.1.0"

from backlog_worktrees.config import Config, load_config
from backlog_worktrees.core.repository import WorktreeRepository

__all__ = [
    "__version__",
    "Config",
    "WorktreeRepository",
    "load_config",
]
