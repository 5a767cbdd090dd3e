"""
Configuration management for backlog-worktrees.

Loads configuration from .worktreerc files in the following priority:
1. Path passed explicitly by the caller
2. .worktreerc in the project root
3. .worktreerc.toml in the project root
4. ~/.config/backlog-worktrees/config.toml
5. ~/.worktreerc
"""

import logging
from pathlib import Path
from typing import Optional

import toml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class WorktreeConfig(BaseModel):
    """Configuration for worktree placement and retention."""

    base_directory: str = Field(
        default=".tree",
        description="Directory for new worktrees when no base path is given (relative to repo root)",
    )
    auto_cleanup_days: int = Field(
        default=14,
        ge=1,
        description="Days of inactivity before an auto-cleanup worktree is considered expired",
    )


class StorageConfig(BaseModel):
    """Configuration for the worktree metadata store."""

    data_directory: str = Field(
        default="backlog",
        description="Project data directory (relative to project root)",
    )
    worktrees_directory: str = Field(
        default="worktrees",
        description="Subdirectory of the data directory holding one JSON file per worktree",
    )


class GitConfig(BaseModel):
    """Configuration for running the git executable."""

    executable: str = Field(
        default="git",
        description="Name or path of the git executable",
    )
    command_timeout_seconds: float = Field(
        default=60,
        gt=0,
        description="Seconds before a git command is killed and reported as failed",
    )


class CleanupConfig(BaseModel):
    """Protection rules for retention cleanup."""

    protect_uncommitted: bool = Field(
        default=True,
        description="Never clean up worktrees with uncommitted changes",
    )
    protect_unpushed: bool = Field(
        default=True,
        description="Never clean up worktrees with commits not pushed to the remote",
    )


class Config(BaseModel):
    """Main configuration model for backlog-worktrees."""

    worktree: WorktreeConfig = Field(default_factory=WorktreeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)


def load_config(
    config_path: Optional[str] = None,
    project_root: Optional[Path] = None,
) -> Config:
    """
    Load configuration from file or use defaults.

    Args:
        config_path: Optional explicit path to config file.
        project_root: Directory searched for .worktreerc files. Defaults to cwd.

    Returns:
        Config instance with loaded or default values.
    """
    root = project_root or Path.cwd()
    search_paths = [
        Path(config_path) if config_path else None,
        root / ".worktreerc",
        root / ".worktreerc.toml",
        Path.home() / ".config" / "backlog-worktrees" / "config.toml",
        Path.home() / ".worktreerc",
    ]

    for path in search_paths:
        if path and path.exists():
            try:
                data = toml.load(path)
                return Config(**data)
            except (OSError, toml.TomlDecodeError, ValueError) as e:
                logger.warning(f"Ignoring invalid config file {path}: {e}")
                continue

    return Config()


def save_config(config: Config, path: Path) -> None:
    """
    Save configuration to a TOML file.

    Args:
        config: Configuration to save.
        path: Path to save the config file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        toml.dump(config.model_dump(), f)


def get_default_config_path(project_root: Optional[Path] = None) -> Path:
    """Get the default configuration file path."""
    return (project_root or Path.cwd()) / ".worktreerc"
