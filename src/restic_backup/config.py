from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LOG_DIR = Path("/var/log/restic")
DEFAULT_INCLUDE_NAME = "test.include"
DEFAULT_EXCLUDE_NAME = "exclude.patterns"
DEFAULT_REPO_NAME = "test.repo"
DEFAULT_RESTIC_BINARY = "restic"

TRUTHY_VALUES = ("true", "1")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ResticRunnerError(Exception):
    """Base class for fatal errors; the run stops and exits non-zero."""

    exit_code = 1


class ResticRunnerWarning(Exception):
    """Base class for non-fatal problems; logged and the run continues."""


class ConfigError(ResticRunnerError):
    """Raised when settings or repository configuration cannot be used."""


class MissingFileError(ConfigError):
    """Raised when one or more required input files are absent."""

    def __init__(self, missing: List[Path]) -> None:
        self.missing = list(missing)
        super().__init__("Missing required files: " + " ".join(str(path) for path in self.missing))


def is_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in TRUTHY_VALUES


def normalise_log_level(value: str) -> str:
    level = value.strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{value}'")
    return level


# --- Settings file -----------------------------------------------------------


class RunnerSettings(BaseModel):
    """Defaults read from an optional YAML settings file."""

    model_config = ConfigDict(extra="forbid")

    base_dir: Optional[Path] = Field(default=None, description="Directory relative defaults resolve against.")
    log_dir: Path = DEFAULT_LOG_DIR
    log_level: str = "INFO"
    restic_binary: str = DEFAULT_RESTIC_BINARY
    include_file: Optional[Path] = None
    exclude_file: Optional[Path] = None
    repo_file: Optional[Path] = None
    ignore_cert: bool = False

    @field_validator("base_dir", "log_dir", "include_file", "exclude_file", "repo_file")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return normalise_log_level(value)


def load_settings(path: Optional[Path], *, required: bool = False) -> RunnerSettings:
    if path is None:
        return RunnerSettings()
    if not path.exists():
        if required:
            raise ConfigError(f"Settings file not found: {path}")
        return RunnerSettings()

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read settings file {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")

    try:
        settings = RunnerSettings.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(str(exc)) from exc

    if settings.base_dir is None:
        settings = settings.model_copy(update={"base_dir": path.parent.absolute()})
    return settings


# --- Run context ---------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class RunContext:
    base_dir: Path
    include_file: Path
    exclude_file: Path
    repo_file: Path
    log_file: Path
    ignore_cert: bool = False
    restic_binary: str = DEFAULT_RESTIC_BINARY

    def with_ignore_cert(self, ignore_cert: bool) -> "RunContext":
        return dataclasses.replace(self, ignore_cert=ignore_cert)


def resolve_run_context(
    environ: Mapping[str, str],
    settings: Optional[RunnerSettings] = None,
    *,
    log_dir: Optional[Path] = None,
    restic_binary: Optional[str] = None,
) -> RunContext:
    settings = settings or RunnerSettings()
    base_dir = (settings.base_dir or Path.cwd()).absolute()

    include_file = _resolve_path(
        environ.get("RESTIC_INCLUDE_FILE"), settings.include_file, base_dir / DEFAULT_INCLUDE_NAME, base_dir
    )
    exclude_file = _resolve_path(
        environ.get("RESTIC_EXCLUDE_FILE"), settings.exclude_file, base_dir / DEFAULT_EXCLUDE_NAME, base_dir
    )
    repo_file = _resolve_path(
        environ.get("RESTIC_REPO_FILE"), settings.repo_file, base_dir / DEFAULT_REPO_NAME, base_dir
    )

    resolved_log_dir = log_dir or _env_path(environ.get("RESTIC_LOG_DIR")) or settings.log_dir
    if not resolved_log_dir.is_absolute():
        resolved_log_dir = base_dir / resolved_log_dir
    log_file = resolved_log_dir / f"{include_file.stem}.log"

    env_ignore_cert = environ.get("RESTIC_IGNORE_CERT")
    ignore_cert = is_truthy(env_ignore_cert) if env_ignore_cert else settings.ignore_cert

    return RunContext(
        base_dir=base_dir,
        include_file=include_file,
        exclude_file=exclude_file,
        repo_file=repo_file,
        log_file=log_file,
        ignore_cert=ignore_cert,
        restic_binary=restic_binary or settings.restic_binary,
    )


def validate_required_files(context: RunContext) -> None:
    missing = [
        path
        for path in (context.repo_file, context.include_file, context.exclude_file)
        if not path.is_file()
    ]
    if missing:
        raise MissingFileError(missing)


def _env_path(value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    return Path(value).expanduser()


def _resolve_path(env_value: Optional[str], configured: Optional[Path], fallback: Path, base_dir: Path) -> Path:
    env_path = _env_path(env_value)
    if env_path is not None:
        # Relative env values follow the caller's working directory, like a shell would.
        return env_path.absolute()
    if configured is not None:
        return configured if configured.is_absolute() else base_dir / configured
    return fallback


def settings_path_from_env(environ: Mapping[str, str] = os.environ) -> Optional[Path]:
    value = environ.get("RESTIC_RUNNER_SETTINGS")
    return Path(value).expanduser() if value else None
