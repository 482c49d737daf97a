from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .config import ConfigError, RunContext, is_truthy

LOG = logging.getLogger(__name__)

DEFAULT_KEEP_DAILY = 7
DEFAULT_KEEP_WEEKLY = 4
DEFAULT_KEEP_MONTHLY = 12
DEFAULT_KEEP_YEARLY = 7

# Every key the loader understands; all of them are scrubbed at exit.
REPOSITORY_ENV_KEYS: Tuple[str, ...] = (
    "RESTIC_REPOSITORY",
    "RESTIC_PASSWORD_FILE",
    "RESTIC_REST_USERNAME",
    "RESTIC_REST_PASSWORD",
    "RESTIC_READ_CONCURRENCY",
    "RESTIC_IGNORE_CERT",
    "RESTIC_KEEP_DAILY",
    "RESTIC_KEEP_WEEKLY",
    "RESTIC_KEEP_MONTHLY",
    "RESTIC_KEEP_YEARLY",
)


class RetentionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    daily: int = Field(default=DEFAULT_KEEP_DAILY, ge=0)
    weekly: int = Field(default=DEFAULT_KEEP_WEEKLY, ge=0)
    monthly: int = Field(default=DEFAULT_KEEP_MONTHLY, ge=0)
    yearly: int = Field(default=DEFAULT_KEEP_YEARLY, ge=0)

    def forget_args(self) -> List[str]:
        return [
            "--keep-daily", str(self.daily),
            "--keep-weekly", str(self.weekly),
            "--keep-monthly", str(self.monthly),
            "--keep-yearly", str(self.yearly),
        ]

    def describe(self) -> str:
        return f"daily={self.daily}, weekly={self.weekly}, monthly={self.monthly}, yearly={self.yearly}"


class RepositoryConfig(BaseModel):
    """Settings loaded from a repository file such as ``test.repo``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    repository: Optional[str] = Field(default=None, alias="RESTIC_REPOSITORY")
    password_file: Optional[Path] = Field(default=None, alias="RESTIC_PASSWORD_FILE")
    rest_username: Optional[str] = Field(default=None, alias="RESTIC_REST_USERNAME")
    rest_password: Optional[SecretStr] = Field(default=None, alias="RESTIC_REST_PASSWORD")
    read_concurrency: Optional[int] = Field(default=None, alias="RESTIC_READ_CONCURRENCY", gt=0)
    ignore_cert: Optional[str] = Field(default=None, alias="RESTIC_IGNORE_CERT")
    retention: RetentionPolicy = RetentionPolicy()
    extra_environment: Dict[str, str] = Field(default_factory=dict)

    @property
    def ignore_cert_enabled(self) -> bool:
        return is_truthy(self.ignore_cert)

    def environment_keys(self) -> List[str]:
        return list(REPOSITORY_ENV_KEYS) + sorted(self.extra_environment)

    def to_environment(self) -> Dict[str, str]:
        """Environment entries handed to the restic child process."""
        env: Dict[str, str] = dict(self.extra_environment)
        if self.repository:
            env["RESTIC_REPOSITORY"] = self.repository
        if self.password_file:
            env["RESTIC_PASSWORD_FILE"] = str(self.password_file)
        if self.rest_username:
            env["RESTIC_REST_USERNAME"] = self.rest_username
        if self.rest_password is not None:
            env["RESTIC_REST_PASSWORD"] = self.rest_password.get_secret_value()
        if self.read_concurrency:
            env["RESTIC_READ_CONCURRENCY"] = str(self.read_concurrency)
        if self.ignore_cert:
            env["RESTIC_IGNORE_CERT"] = self.ignore_cert
        env["RESTIC_KEEP_DAILY"] = str(self.retention.daily)
        env["RESTIC_KEEP_WEEKLY"] = str(self.retention.weekly)
        env["RESTIC_KEEP_MONTHLY"] = str(self.retention.monthly)
        env["RESTIC_KEEP_YEARLY"] = str(self.retention.yearly)
        return env


def parse_repository_file(path: Path) -> Dict[str, str]:
    """Read shell-style ``KEY=VALUE`` assignments, dropping empty values."""
    if not path.is_file():
        raise ConfigError(f"Repository file {path} not found")
    try:
        raw = dotenv_values(path, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Unable to read repository file {path}: {exc}") from exc
    return {key: value for key, value in raw.items() if value}


def build_repository_config(values: Mapping[str, str], base_dir: Path) -> RepositoryConfig:
    known = {key: values[key] for key in REPOSITORY_ENV_KEYS if key in values}
    extra = {key: value for key, value in values.items() if key not in REPOSITORY_ENV_KEYS}

    retention_fields = {
        "daily": known.pop("RESTIC_KEEP_DAILY", None),
        "weekly": known.pop("RESTIC_KEEP_WEEKLY", None),
        "monthly": known.pop("RESTIC_KEEP_MONTHLY", None),
        "yearly": known.pop("RESTIC_KEEP_YEARLY", None),
    }

    try:
        retention = RetentionPolicy.model_validate(
            {name: value for name, value in retention_fields.items() if value is not None}
        )
        config = RepositoryConfig.model_validate(
            {**known, "retention": retention, "extra_environment": extra}
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid repository configuration: {exc}") from exc

    if config.password_file and not config.password_file.is_absolute():
        config = config.model_copy(update={"password_file": base_dir / config.password_file})
    return config


def load_repository_config(context: RunContext) -> Tuple[RepositoryConfig, RunContext]:
    """Load the repository file and return it with the (possibly updated) run context."""
    LOG.info("Loading repository configuration from %s", context.repo_file)
    values = parse_repository_file(context.repo_file)
    config = build_repository_config(values, context.base_dir)

    if config.ignore_cert:
        context = context.with_ignore_cert(config.ignore_cert_enabled)
        LOG.info("Certificate validation setting from repo file: %s", config.ignore_cert)

    LOG.info("Loaded RESTIC_REPOSITORY: %s", config.repository or "not set")
    LOG.info("Loaded RESTIC_PASSWORD_FILE: %s", config.password_file or "not set")
    LOG.info("Loaded RESTIC_REST_USERNAME: %s", config.rest_username or "not set")

    if config.password_file:
        if config.password_file.is_file():
            LOG.info("Password file exists: %s", config.password_file)
        else:
            LOG.warning("Password file not found: %s", config.password_file)

    LOG.info("Repository configuration loaded successfully")
    return config, context
