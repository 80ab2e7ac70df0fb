"""Smoke tests for the CLI.

These tests verify CLI wiring without running any external tools; the
pipeline itself is replaced where a build is requested.
"""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from wlanpi_kernel_builder import __version__
from wlanpi_kernel_builder.cli import app
from wlanpi_kernel_builder.pipeline import PipelineResult
from wlanpi_kernel_builder.types import PipelineStage, StageResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Keep handlers installed by `build` from leaking between tests."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "WLAN Pi kernel builder" in result.stdout

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self):
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_build_help(self):
        result = runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        assert "--custom-config" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_sections(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Build:" in result.stdout
        assert "Timeouts (seconds):" in result.stdout
        assert "Parallel jobs" in result.stdout
        assert "Version stamp" in result.stdout

    def test_config_json(self, monkeypatch):
        monkeypatch.setenv("WLANPI_KBUILD_JOBS", "7")
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["jobs"] == 7


class TestCLIProfile:
    """Test profile subcommands."""

    def test_show_default(self):
        result = runner.invoke(app, ["profile", "show"])
        assert result.exit_code == 0
        assert "rpi-6.12.y" in result.stdout
        assert "bcm2711_defconfig" in result.stdout

    def test_show_json(self, tmp_path):
        path = tmp_path / "p.yaml"
        path.write_text("name: test\nbranch: rpi-6.6.y\n")
        result = runner.invoke(app, ["profile", "show", str(path), "--json"])
        assert result.exit_code == 0
        assert '"branch": "rpi-6.6.y"' in result.stdout

    def test_show_missing(self, tmp_path):
        result = runner.invoke(app, ["profile", "show", str(tmp_path / "x.yaml")])
        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_validate_valid(self, tmp_path, custom_config):
        path = tmp_path / "p.yaml"
        path.write_text(f"name: good\ncustom_config: {custom_config.name}\n")
        result = runner.invoke(app, ["profile", "validate", str(path)])
        assert result.exit_code == 0
        assert "Valid profile: good" in result.stdout
        assert "Warning" not in result.stdout

    def test_validate_warns_missing_fragment(self, tmp_path):
        path = tmp_path / "p.yaml"
        path.write_text("name: good\n")
        result = runner.invoke(app, ["profile", "validate", str(path)])
        assert result.exit_code == 0
        assert "custom config not found" in result.stdout

    def test_validate_invalid(self, tmp_path):
        path = tmp_path / "p.yaml"
        path.write_text("name: bad\nimage_name: a/b.img\n")
        result = runner.invoke(app, ["profile", "validate", str(path)])
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout

    def test_validate_missing(self, tmp_path):
        result = runner.invoke(app, ["profile", "validate", str(tmp_path / "x.yaml")])
        assert result.exit_code == 1


class TestCLIBuild:
    """Test the build command with the pipeline replaced."""

    def _invoke(self, tmp_path, pipeline_result, *extra):
        with patch(
            "wlanpi_kernel_builder.pipeline.run_pipeline",
            return_value=pipeline_result,
        ) as mock_run:
            result = runner.invoke(
                app,
                [
                    "build",
                    "--workspace",
                    str(tmp_path / "work"),
                    "--output",
                    str(tmp_path / "out"),
                    "--log-file",
                    str(tmp_path / "build.log"),
                    *extra,
                ],
            )
        return result, mock_run

    def test_success(self, tmp_path):
        deb = tmp_path / "out" / "wlanpi-kernel-bookworm_6.12.1-20250101_arm64.deb"
        outcome = PipelineResult(
            success=True, packages=[deb], version="6.12.1-20250101"
        )

        result, mock_run = self._invoke(tmp_path, outcome, "--jobs", "3")

        assert result.exit_code == 0
        assert "Package version 6.12.1-20250101" in result.stdout
        profile, settings = mock_run.call_args.args
        assert settings.jobs == 3
        assert settings.output_dir == tmp_path / "out"
        assert settings.workspace_dir == tmp_path / "work"
        assert profile.branch == "rpi-6.12.y"

    def test_profile_overrides(self, tmp_path, custom_config):
        outcome = PipelineResult(success=True, version="v")

        result, mock_run = self._invoke(
            tmp_path,
            outcome,
            "--branch",
            "rpi-6.6.y",
            "--custom-config",
            str(custom_config),
            "--headers",
        )

        assert result.exit_code == 0
        profile, _ = mock_run.call_args.args
        assert profile.branch == "rpi-6.6.y"
        assert profile.custom_config == custom_config.resolve()
        assert profile.headers is True

    def test_failure_exit_code(self, tmp_path):
        outcome = PipelineResult(
            success=False,
            stages=[
                StageResult(
                    stage=PipelineStage.BUILD,
                    success=False,
                    message="Kernel image not found",
                    code="artifact_missing",
                )
            ],
        )

        result, _ = self._invoke(tmp_path, outcome)

        assert result.exit_code == 1
        assert "Stage build failed: Kernel image not found" in result.stdout

    def test_json_output(self, tmp_path):
        outcome = PipelineResult(
            success=True,
            version="6.12.1-20250101",
            stages=[
                StageResult(stage=PipelineStage.PACKAGE, success=True, message="ok")
            ],
        )

        result, _ = self._invoke(tmp_path, outcome, "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["stages"][0]["stage"] == "package"

    def test_invalid_profile(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("unknown_key: 1\n")
        result, mock_run = self._invoke(tmp_path, None, "--profile", str(path))
        assert result.exit_code == 1
        assert "Invalid profile" in result.stdout
        mock_run.assert_not_called()

    def test_log_file_configured(self, tmp_path):
        outcome = PipelineResult(success=True, version="v")
        self._invoke(tmp_path, outcome)
        assert (tmp_path / "build.log").exists()


class TestCLIBuildWithFakeTools:
    """Run the build command through the real pipeline and fake tools."""

    def test_json_stdout_is_parseable(self, fake_build, tmp_path, custom_config):
        """Log records go to stderr and the log file, never into the JSON."""
        log_file = tmp_path / "build.log"
        result = runner.invoke(
            app,
            [
                "build",
                "--workspace",
                str(tmp_path / "work"),
                "--output",
                str(tmp_path / "out"),
                "--log-file",
                str(log_file),
                "--custom-config",
                str(custom_config),
                "--patches-dir",
                str(tmp_path / "patches"),
                "--json",
            ],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["release"] == fake_build.release
        assert [s["stage"] for s in data["stages"]] == [
            stage.value for stage in PipelineStage
        ]
        assert len(data["packages"]) == 1
        assert Path(data["packages"][0]).is_file()
        assert "==> preflight" in log_file.read_text()
