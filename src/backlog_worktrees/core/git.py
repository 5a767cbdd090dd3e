"""Git command execution.

The single seam between this package and the git executable: an argument
vector goes in, a CommandResult comes out. Nothing here interprets git
output, and a non-zero exit is an ordinary result rather than an error.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from git.cmd import Git
from git.exc import GitCommandNotFound

from backlog_worktrees.config import GitConfig

logger = logging.getLogger(__name__)

LAUNCH_FAILURE_EXIT_CODE = -1


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one git invocation."""

    success: bool
    stdout: str
    stderr: str
    exit_code: int

    @property
    def output(self) -> str:
        """stdout and stderr together, for matching git's human-readable messages."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class GitExecutor:
    """
    Runs the git executable for one repository.

    Commands run through GitPython's Git.execute with exceptions disabled,
    so exit codes come back as data. Commands that outlive the configured
    timeout are killed and reported as failed.
    """

    def __init__(self, repo_root: Path, config: Optional[GitConfig] = None):
        self.repo_root = Path(repo_root)
        self.config = config or GitConfig()

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Union[str, Path]] = None,
    ) -> CommandResult:
        """
        Run git with the given arguments.

        Args:
            args: Arguments after the executable, e.g. ["status", "--porcelain"].
            cwd: Working directory. Defaults to the repository root.

        Returns:
            CommandResult. Launch failures have exit_code -1 and the reason in stderr.
        """
        workdir = str(cwd or self.repo_root)
        command = [self.config.executable, *args]
        logger.debug(f"Running {' '.join(command)} in {workdir}")

        try:
            status, stdout, stderr = Git(workdir).execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
                kill_after_timeout=self.config.command_timeout_seconds,
            )
        except GitCommandNotFound as e:
            logger.debug(f"Could not launch {command[0]}: {e}")
            return CommandResult(
                success=False,
                stdout="",
                stderr=f"Could not run {command[0]}: {e}",
                exit_code=LAUNCH_FAILURE_EXIT_CODE,
            )
        except OSError as e:
            logger.debug(f"Could not launch {command[0]}: {e}")
            return CommandResult(
                success=False,
                stdout="",
                stderr=f"Could not run {command[0]}: {e.strerror or e}",
                exit_code=LAUNCH_FAILURE_EXIT_CODE,
            )

        if status != 0 and "did not complete in" in stderr:
            logger.warning(f"git {' '.join(args)} timed out after {self.config.command_timeout_seconds}s")
            status = LAUNCH_FAILURE_EXIT_CODE

        if status != 0:
            logger.debug(f"git {' '.join(args)} exited with {status}: {stderr.strip()}")

        return CommandResult(
            success=status == 0,
            stdout=stdout,
            stderr=stderr.strip(),
            exit_code=status,
        )
