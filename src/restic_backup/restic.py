from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Protocol, Sequence

from .repository import RetentionPolicy

LOG = logging.getLogger(__name__)

INSECURE_TLS_FLAG = "--insecure-tls"
COMMAND_NOT_FOUND = 127


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def output_lines(self) -> List[str]:
        return self.stdout.splitlines()


class ResticClient(Protocol):
    def list_snapshots(self) -> CommandResult:
        ...

    def init_repository(self) -> CommandResult:
        ...

    def run_backup(self, files_from: Optional[Path], exclude_file: Optional[Path]) -> CommandResult:
        ...

    def prune_snapshots(self, policy: RetentionPolicy) -> CommandResult:
        ...

    def get_stats(self) -> CommandResult:
        ...


def has_meaningful_content(path: Path) -> bool:
    """True when ``path`` exists, is non-empty and lists at least one non-comment line."""
    if not path.is_file() or path.stat().st_size == 0:
        return False
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                return True
    return False


def build_backup_args(files_from: Optional[Path], exclude_file: Optional[Path]) -> List[str]:
    args = ["backup"]
    if files_from is not None:
        args.extend(["--files-from", str(files_from)])
    if exclude_file is not None:
        args.append(f"--exclude-file={exclude_file}")
    args.extend(["--verbose", "--one-file-system"])
    return args


class ResticCLI:
    """Runs the restic binary with an explicit child environment."""

    def __init__(
        self,
        binary: str,
        environment: Mapping[str, str],
        *,
        insecure_tls: bool = False,
        cwd: Optional[Path] = None,
    ) -> None:
        self._binary = binary
        self._environment = environment
        self._insecure_tls = insecure_tls
        self._cwd = cwd

    def command(self, args: Sequence[str]) -> List[str]:
        cmd = [self._binary]
        if self._insecure_tls:
            cmd.append(INSECURE_TLS_FLAG)
        cmd.extend(args)
        return cmd

    def list_snapshots(self) -> CommandResult:
        return self._run(["snapshots"], capture=True)

    def init_repository(self) -> CommandResult:
        return self._run(["init"])

    def run_backup(self, files_from: Optional[Path], exclude_file: Optional[Path]) -> CommandResult:
        return self._run(build_backup_args(files_from, exclude_file))

    def prune_snapshots(self, policy: RetentionPolicy) -> CommandResult:
        return self._run(["forget", *policy.forget_args(), "--prune"])

    def get_stats(self) -> CommandResult:
        return self._run(["stats", "--mode", "raw-data"], capture=True)

    def _run(self, args: Sequence[str], capture: bool = False) -> CommandResult:
        cmd = self.command(args)
        LOG.debug("Running: %s", shlex.join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                env=dict(self._environment),
                cwd=self._cwd,
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            LOG.error("restic binary not found: %s", self._binary)
            return CommandResult(args=cmd, returncode=COMMAND_NOT_FOUND, stderr=str(exc))

        return CommandResult(
            args=cmd,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
