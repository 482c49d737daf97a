from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, MutableMapping, Optional

from .config import ResticRunnerError, ResticRunnerWarning, RunContext, validate_required_files
from .environment import EnvironmentScrubber
from .repository import load_repository_config
from .restic import ResticCLI, ResticClient
from .runner import BackupRunner

LOG = logging.getLogger(__name__)

ClientFactory = Callable[[RunContext, Mapping[str, str]], ResticClient]


def create_client(context: RunContext, environment: Mapping[str, str]) -> ResticClient:
    return ResticCLI(
        context.restic_binary,
        environment,
        insecure_tls=context.ignore_cert,
        cwd=context.base_dir,
    )


@dataclass
class RunResult:
    status: str
    started_at: datetime
    completed_at: datetime
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class BackupRun:
    """One pass of validate, load, init, backup, cleanup and stats.

    The scrubber always runs before :meth:`run` returns, whatever the outcome.
    """

    DEFAULT_STATUS = "success"

    def __init__(
        self,
        context: RunContext,
        environ: MutableMapping[str, str],
        client_factory: ClientFactory = create_client,
        scrubber: Optional[EnvironmentScrubber] = None,
    ) -> None:
        self._context = context
        self._environ = environ
        self._client_factory = client_factory
        self._scrubber = scrubber or EnvironmentScrubber()

    def run(self) -> RunResult:
        started_at = datetime.now()
        status = self.DEFAULT_STATUS
        errors: List[str] = []
        warnings: List[str] = []
        context = self._context
        self._scrubber.track(self._environ)

        try:
            self._log_banner()
            validate_required_files(context)
            repository, context = load_repository_config(context)

            child_environment: Dict[str, str] = dict(self._environ)
            child_environment.update(repository.to_environment())
            self._scrubber.track(child_environment, extra_keys=repository.environment_keys())

            runner = BackupRunner(self._client_factory(context, child_environment), context, repository)
            runner.ensure_repository()
            runner.backup()
            for step in (runner.cleanup, runner.stats):
                try:
                    step()
                except ResticRunnerWarning as exc:
                    LOG.warning("%s", exc)
                    warnings.append(str(exc))

            LOG.info("=== Restic Backup Completed Successfully ===")
        except ResticRunnerError as exc:
            status = "failed"
            errors.append(str(exc))
            LOG.error("%s", exc)
        except Exception as exc:  # noqa: BLE001
            status = "failed"
            errors.append(str(exc))
            LOG.error("Unexpected error: %s", exc)
            LOG.debug("Traceback:\n%s", "".join(traceback.format_exc()))
        finally:
            self._scrubber.scrub()

        return RunResult(
            status=status,
            started_at=started_at,
            completed_at=datetime.now(),
            errors=errors,
            warnings=warnings,
        )

    def _log_banner(self) -> None:
        context = self._context
        LOG.info("=== Restic Backup Started ===")
        LOG.info("Base directory: %s", context.base_dir)
        LOG.info("Include file: %s", context.include_file)
        LOG.info("Exclude file: %s", context.exclude_file)
        LOG.info("Repository file: %s", context.repo_file)
        LOG.info("Log file: %s", context.log_file)
        LOG.info("Ignore certificates: %s", str(context.ignore_cert).lower())
