from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import List, Optional

from .config import ResticRunnerError, ResticRunnerWarning, RunContext
from .repository import RepositoryConfig
from .restic import INSECURE_TLS_FLAG, CommandResult, ResticClient, build_backup_args, has_meaningful_content

LOG = logging.getLogger(__name__)


class RepositoryInitError(ResticRunnerError):
    """Raised when the repository is unreachable and cannot be initialised."""

    def __init__(self, repository: Optional[str], password_file: Optional[Path]) -> None:
        self.repository = repository
        self.password_file = password_file
        super().__init__(
            "Failed to initialize repository "
            f"(repository: {repository or 'not set'}, password file: {password_file or 'not set'})"
        )


class BackupError(ResticRunnerError):
    """Raised when ``restic backup`` exits non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class CleanupWarning(ResticRunnerWarning):
    """Snapshot pruning failed; the completed backup is kept."""


class StatsWarning(ResticRunnerWarning):
    """Repository statistics could not be collected."""


class BackupRunner:
    """Drives the restic operations of one run in order."""

    def __init__(self, client: ResticClient, context: RunContext, repository: RepositoryConfig) -> None:
        self._client = client
        self._context = context
        self._repository = repository

    def ensure_repository(self) -> None:
        LOG.info("Checking repository initialization...")
        if self._context.ignore_cert:
            LOG.info("Using --insecure-tls for certificate validation")

        if self._client.list_snapshots().success:
            LOG.info("Repository already initialized")
            return

        LOG.info("Repository not initialized. Initializing...")
        result = self._client.init_repository()
        if result.success:
            LOG.info("Repository initialized successfully")
            return

        _log_stderr(result, logging.ERROR)
        LOG.error("Repository initialization failed. Check your repository URL and credentials.")
        LOG.error("Repository URL: %s", self._repository.repository or "not set")
        LOG.error("Password file: %s", self._repository.password_file or "not set")
        raise RepositoryInitError(self._repository.repository, self._repository.password_file)

    def backup(self) -> CommandResult:
        LOG.info("Starting backup process...")
        files_from = self.backup_files_from()
        exclude_file = self._context.exclude_file if self._context.exclude_file.is_file() else None
        if exclude_file is not None:
            LOG.info("Using exclude file: %s", exclude_file)

        LOG.info("Executing backup command: %s", _describe(self._context, build_backup_args(files_from, exclude_file)))
        result = self._client.run_backup(files_from, exclude_file)
        if not result.success:
            _log_stderr(result, logging.ERROR)
            raise BackupError(f"Backup failed (exit code {result.returncode})", returncode=result.returncode)

        LOG.info("Backup completed successfully")
        return result

    def backup_files_from(self) -> Optional[Path]:
        include_file = self._context.include_file
        if has_meaningful_content(include_file):
            LOG.info("Using include file: %s", include_file)
            return include_file
        LOG.warning("Include file is empty or contains only comments. Backup may not include expected files.")
        return None

    def cleanup(self) -> None:
        policy = self._repository.retention
        LOG.info("Starting cleanup of old snapshots...")
        LOG.info("Retention policy: %s", policy.describe())

        result = self._client.prune_snapshots(policy)
        if not result.success:
            _log_stderr(result, logging.WARNING)
            raise CleanupWarning(f"Cleanup failed or no snapshots to clean (exit code {result.returncode})")
        LOG.info("Cleanup completed successfully")

    def stats(self) -> List[str]:
        LOG.info("Backup statistics:")
        result = self._client.get_stats()
        lines = result.output_lines()
        for line in lines:
            LOG.info("  %s", line)
        _log_stderr(result, logging.WARNING)
        if not result.success:
            raise StatsWarning(f"Unable to collect repository statistics (exit code {result.returncode})")
        return lines


def _describe(context: RunContext, args: List[str]) -> str:
    cmd = [context.restic_binary]
    if context.ignore_cert:
        cmd.append(INSECURE_TLS_FLAG)
    return shlex.join(cmd + args)


def _log_stderr(result: CommandResult, level: int) -> None:
    for line in result.stderr.splitlines():
        if line.strip():
            LOG.log(level, "restic: %s", line)
