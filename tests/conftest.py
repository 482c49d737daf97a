from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from restic_backup.config import RunnerSettings, resolve_run_context
from restic_backup.logger import PACKAGE_LOGGER
from restic_backup.repository import RetentionPolicy
from restic_backup.restic import CommandResult

REPO_FILE = """\
# Repository settings
RESTIC_REPOSITORY=rest:https://backup.example.com/host
RESTIC_PASSWORD_FILE=password.txt
RESTIC_REST_USERNAME=backup
RESTIC_REST_PASSWORD="s3cr3t value"
"""


class FakeResticClient:
    """Records calls and answers with preset return codes."""

    def __init__(self, stats_output: str = "Total Size: 1.000 KiB\nTotal Blob Count: 3\n", **returncodes: int) -> None:
        self.returncodes: Dict[str, int] = returncodes
        self.stats_output = stats_output
        self.calls: List[Tuple] = []

    def _result(self, name: str, stdout: str = "") -> CommandResult:
        code = self.returncodes.get(name, 0)
        return CommandResult(args=["restic", name], returncode=code, stdout=stdout, stderr="boom" if code else "")

    def list_snapshots(self) -> CommandResult:
        self.calls.append(("snapshots",))
        return self._result("snapshots")

    def init_repository(self) -> CommandResult:
        self.calls.append(("init",))
        return self._result("init")

    def run_backup(self, files_from: Optional[Path], exclude_file: Optional[Path]) -> CommandResult:
        self.calls.append(("backup", files_from, exclude_file))
        return self._result("backup")

    def prune_snapshots(self, policy: RetentionPolicy) -> CommandResult:
        self.calls.append(("forget", policy))
        return self._result("forget")

    def get_stats(self) -> CommandResult:
        self.calls.append(("stats",))
        return self._result("stats", stdout=self.stats_output)

    @property
    def commands(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "test.include").write_text("# paths\n/home/user\n", encoding="utf-8")
    (tmp_path / "exclude.patterns").write_text("*.tmp\n", encoding="utf-8")
    (tmp_path / "test.repo").write_text(REPO_FILE, encoding="utf-8")
    (tmp_path / "password.txt").write_text("hunter2\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(workspace: Path) -> RunnerSettings:
    return RunnerSettings(base_dir=workspace, log_dir=workspace / "logs")


@pytest.fixture
def context(settings: RunnerSettings):
    return resolve_run_context({}, settings)
