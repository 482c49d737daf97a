from pathlib import Path

import pytest

from restic_backup.config import (
    ConfigError,
    MissingFileError,
    RunnerSettings,
    is_truthy,
    load_settings,
    resolve_run_context,
    validate_required_files,
)


class TestResolveRunContext:
    def test_defaults_relative_to_base_dir(self, tmp_path):
        context = resolve_run_context({}, RunnerSettings(base_dir=tmp_path))

        assert context.include_file == tmp_path / "test.include"
        assert context.exclude_file == tmp_path / "exclude.patterns"
        assert context.repo_file == tmp_path / "test.repo"
        assert context.log_file == Path("/var/log/restic/test.log")
        assert context.ignore_cert is False
        assert context.restic_binary == "restic"

    def test_environment_overrides_paths(self, tmp_path):
        environ = {
            "RESTIC_INCLUDE_FILE": str(tmp_path / "web.include"),
            "RESTIC_EXCLUDE_FILE": str(tmp_path / "web.exclude"),
            "RESTIC_REPO_FILE": str(tmp_path / "offsite.repo"),
            "RESTIC_LOG_DIR": str(tmp_path / "logs"),
        }
        context = resolve_run_context(environ, RunnerSettings(base_dir=tmp_path / "elsewhere"))

        assert context.include_file == tmp_path / "web.include"
        assert context.exclude_file == tmp_path / "web.exclude"
        assert context.repo_file == tmp_path / "offsite.repo"
        assert context.log_file == tmp_path / "logs" / "web.log"

    def test_relative_environment_paths_follow_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        context = resolve_run_context({"RESTIC_INCLUDE_FILE": "jobs/db.include"}, RunnerSettings(base_dir=Path("/srv")))

        assert context.include_file == tmp_path / "jobs" / "db.include"
        assert context.include_file.is_absolute()

    def test_settings_paths_relative_to_base_dir(self, tmp_path):
        settings = RunnerSettings(base_dir=tmp_path, include_file=Path("jobs/db.include"), log_dir=Path("logs"))
        context = resolve_run_context({}, settings)

        assert context.include_file == tmp_path / "jobs" / "db.include"
        assert context.log_file == tmp_path / "logs" / "db.log"

    def test_explicit_log_dir_and_binary_win(self, tmp_path):
        context = resolve_run_context(
            {"RESTIC_LOG_DIR": "/ignored"},
            RunnerSettings(base_dir=tmp_path),
            log_dir=tmp_path / "cli-logs",
            restic_binary="/opt/restic/bin/restic",
        )

        assert context.log_file == tmp_path / "cli-logs" / "test.log"
        assert context.restic_binary == "/opt/restic/bin/restic"

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("1", True), ("TRUE", True), ("false", False), ("0", False), ("yes", False)],
    )
    def test_ignore_cert_from_environment(self, tmp_path, value, expected):
        context = resolve_run_context({"RESTIC_IGNORE_CERT": value}, RunnerSettings(base_dir=tmp_path))
        assert context.ignore_cert is expected

    def test_ignore_cert_falls_back_to_settings(self, tmp_path):
        context = resolve_run_context({}, RunnerSettings(base_dir=tmp_path, ignore_cert=True))
        assert context.ignore_cert is True

    def test_with_ignore_cert_returns_new_context(self, context):
        updated = context.with_ignore_cert(True)

        assert updated.ignore_cert is True
        assert context.ignore_cert is False
        assert updated.repo_file == context.repo_file


class TestValidateRequiredFiles:
    def test_all_present(self, context):
        validate_required_files(context)

    def test_lists_every_missing_file(self, tmp_path):
        context = resolve_run_context({}, RunnerSettings(base_dir=tmp_path))
        (tmp_path / "test.include").write_text("/etc\n", encoding="utf-8")

        with pytest.raises(MissingFileError) as excinfo:
            validate_required_files(context)

        assert excinfo.value.missing == [tmp_path / "test.repo", tmp_path / "exclude.patterns"]
        assert str(tmp_path / "test.repo") in str(excinfo.value)
        assert str(tmp_path / "exclude.patterns") in str(excinfo.value)

    def test_directory_does_not_count_as_file(self, workspace, context):
        (workspace / "exclude.patterns").unlink()
        (workspace / "exclude.patterns").mkdir()

        with pytest.raises(MissingFileError) as excinfo:
            validate_required_files(context)
        assert excinfo.value.missing == [workspace / "exclude.patterns"]


class TestLoadSettings:
    def test_none_returns_defaults(self):
        settings = load_settings(None)
        assert settings.log_dir == Path("/var/log/restic")
        assert settings.log_level == "INFO"

    def test_missing_optional_file_returns_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.yaml") == RunnerSettings()

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Settings file not found"):
            load_settings(tmp_path / "absent.yaml", required=True)

    def test_yaml_values_and_base_dir_default(self, tmp_path):
        path = tmp_path / "runner.yaml"
        path.write_text(
            "log_dir: /srv/logs\nlog_level: debug\nrestic_binary: /usr/local/bin/restic\nignore_cert: true\n",
            encoding="utf-8",
        )

        settings = load_settings(path)

        assert settings.base_dir == tmp_path
        assert settings.log_dir == Path("/srv/logs")
        assert settings.log_level == "DEBUG"
        assert settings.restic_binary == "/usr/local/bin/restic"
        assert settings.ignore_cert is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "runner.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path).base_dir == tmp_path

    @pytest.mark.parametrize(
        "content",
        ["log_level: chatty\n", "unknown_key: 1\n", "- just\n- a list\n", "log_dir: [unclosed\n"],
    )
    def test_invalid_settings(self, tmp_path, content):
        path = tmp_path / "runner.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(path)


def test_is_truthy():
    assert is_truthy(" true ")
    assert not is_truthy(None)
    assert not is_truthy("")
