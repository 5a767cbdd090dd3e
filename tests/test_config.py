"""Tests for configuration loading."""

from pathlib import Path

import pytest

from backlog_worktrees.config import (
    Config,
    GitConfig,
    get_default_config_path,
    load_config,
    save_config,
)


@pytest.fixture(autouse=True)
def isolated_home(temp_directory: Path, monkeypatch) -> Path:
    """Point HOME at an empty directory so user config files are not read."""
    home = temp_directory / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


class TestConfig:
    """Test suite for Config and its loaders."""

    def test_defaults(self, temp_directory: Path):
        config = load_config(project_root=temp_directory)

        assert config.worktree.base_directory == ".tree"
        assert config.worktree.auto_cleanup_days == 14
        assert config.storage.data_directory == "backlog"
        assert config.storage.worktrees_directory == "worktrees"
        assert config.git.executable == "git"
        assert config.git.command_timeout_seconds == 60
        assert config.cleanup.protect_uncommitted is True

    def test_project_file(self, temp_directory: Path):
        (temp_directory / ".worktreerc").write_text(
            '[worktree]\nbase_directory = "../trees"\n\n[git]\ncommand_timeout_seconds = 5\n'
        )

        config = load_config(project_root=temp_directory)

        assert config.worktree.base_directory == "../trees"
        assert config.git.command_timeout_seconds == 5
        assert config.storage.data_directory == "backlog"

    def test_explicit_path_wins(self, temp_directory: Path):
        (temp_directory / ".worktreerc").write_text('[worktree]\nbase_directory = "project"\n')
        explicit = temp_directory / "custom.toml"
        explicit.write_text('[worktree]\nbase_directory = "explicit"\n')

        config = load_config(str(explicit), project_root=temp_directory)

        assert config.worktree.base_directory == "explicit"

    def test_user_file(self, temp_directory: Path, isolated_home: Path):
        user_config = isolated_home / ".config" / "backlog-worktrees" / "config.toml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text("[worktree]\nauto_cleanup_days = 30\n")

        config = load_config(project_root=temp_directory)

        assert config.worktree.auto_cleanup_days == 30

    def test_invalid_toml_falls_back(self, temp_directory: Path):
        (temp_directory / ".worktreerc").write_text("this is [not toml")

        config = load_config(project_root=temp_directory)

        assert config == Config()

    def test_invalid_values_fall_back(self, temp_directory: Path):
        (temp_directory / ".worktreerc").write_text("[git]\ncommand_timeout_seconds = -1\n")
        (temp_directory / ".worktreerc.toml").write_text("[git]\nexecutable = \"/usr/bin/git\"\n")

        config = load_config(project_root=temp_directory)

        assert config.git == GitConfig(executable="/usr/bin/git")

    def test_save_and_reload(self, temp_directory: Path):
        config = Config()
        config.worktree.auto_cleanup_days = 7
        path = get_default_config_path(temp_directory)

        save_config(config, path)

        assert path == temp_directory / ".worktreerc"
        assert load_config(project_root=temp_directory).worktree.auto_cleanup_days == 7
