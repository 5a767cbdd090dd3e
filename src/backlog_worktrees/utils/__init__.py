"""Utility helpers for backlog-worktrees."""

from backlog_worktrees.utils.ids import generate_worktree_id, slugify
from backlog_worktrees.utils.io import atomic_write_text

__all__ = [
    "atomic_write_text",
    "generate_worktree_id",
    "slugify",
]
