from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import MutableMapping, Optional, Sequence

from .config import (
    ConfigError,
    RunnerSettings,
    load_settings,
    normalise_log_level,
    resolve_run_context,
    settings_path_from_env,
)
from .environment import EnvironmentScrubber
from .logger import configure_logging, get_logger
from .pipeline import BackupRun

LOG = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Back up the paths of an include file to a restic repository.",
        epilog=(
            "Input files come from RESTIC_INCLUDE_FILE, RESTIC_EXCLUDE_FILE and RESTIC_REPO_FILE, "
            "falling back to test.include, exclude.patterns and test.repo in the base directory."
        ),
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to an optional YAML settings file (default: $RESTIC_RUNNER_SETTINGS).",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL"),
        help="Log level (default INFO).",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for <include-name>.log files (default: $RESTIC_LOG_DIR or /var/log/restic).",
    )
    parser.add_argument(
        "--restic-binary",
        default=None,
        help="restic executable to invoke (default: restic from PATH).",
    )
    return parser.parse_args(argv)


def load_run_settings(args: argparse.Namespace, environ: MutableMapping[str, str]) -> RunnerSettings:
    if args.settings:
        return load_settings(Path(args.settings).expanduser(), required=True)
    return load_settings(settings_path_from_env(environ), required=True)


def resolve_log_level(args: argparse.Namespace, settings: RunnerSettings) -> str:
    if not args.log_level:
        return settings.log_level
    try:
        return normalise_log_level(args.log_level)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def main(argv: Optional[Sequence[str]] = None, environ: Optional[MutableMapping[str, str]] = None) -> int:
    args = parse_args(argv)
    environ = os.environ if environ is None else environ
    scrubber = EnvironmentScrubber()
    scrubber.track(environ)

    try:
        return run(args, environ, scrubber)
    finally:
        scrubber.scrub()


def run(args: argparse.Namespace, environ: MutableMapping[str, str], scrubber: EnvironmentScrubber) -> int:
    try:
        settings = load_run_settings(args, environ)
        log_level = resolve_log_level(args, settings)
    except ConfigError as exc:
        configure_logging("INFO")
        LOG.error("Configuration error: %s", exc)
        return exc.exit_code

    context = resolve_run_context(
        environ,
        settings,
        log_dir=Path(args.log_dir).expanduser() if args.log_dir else None,
        restic_binary=args.restic_binary,
    )
    configure_logging(log_level, context.log_file)

    result = BackupRun(context, environ, scrubber=scrubber).run()
    if not result.success:
        LOG.error("Backup run failed: %s", "; ".join(result.errors))
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
