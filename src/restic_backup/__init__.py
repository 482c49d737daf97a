"""Restic backup runner package."""

from __future__ import annotations

from .config import RunContext, resolve_run_context  # noqa: F401
from .pipeline import BackupRun, RunResult  # noqa: F401
from .repository import RepositoryConfig, load_repository_config  # noqa: F401
