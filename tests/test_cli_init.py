"""Unit tests for formpilot.cli.init_cmd — the 'formpilot init' command."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from formpilot.cli.app import app
from formpilot.cli.init_cmd import _SAMPLE_CONFIG, _SAMPLE_PROFILE, init
from formpilot.config import FormPilotConfig, load_profile


# ---------------------------------------------------------------------------
# 1. Sample files
# ---------------------------------------------------------------------------


class TestSampleFiles:
    """The inline templates parse and load as a working project."""

    def test_sample_config_is_valid_yaml(self):
        data = yaml.safe_load(_SAMPLE_CONFIG)
        assert isinstance(data, dict)
        assert data["profile"] == "profile.yaml"
        assert data["pass_budget"] == 2

    def test_sample_profile_has_basics_and_documents(self):
        data = yaml.safe_load(_SAMPLE_PROFILE)
        assert data["basics"]["firstName"]
        assert "resume_path" in data
        assert "legal" in data


# ---------------------------------------------------------------------------
# 2. init()
# ---------------------------------------------------------------------------


class TestInit:
    """init creates .formpilot/ and never overwrites existing files."""

    def test_creates_project_tree(self, tmp_path: Path):
        init(dir=tmp_path)
        project_dir = tmp_path / ".formpilot"
        assert (project_dir / "config.yaml").is_file()
        assert (project_dir / "profile.yaml").is_file()
        assert (project_dir / "logs").is_dir()

    def test_created_project_loads(self, tmp_path: Path):
        init(dir=tmp_path)
        config = FormPilotConfig.from_file(tmp_path / ".formpilot" / "config.yaml")
        assert config.profile_path == tmp_path / ".formpilot" / "profile.yaml"
        assert load_profile(config.profile_path)["basics"]["lastName"] == "Doe"

    def test_existing_files_are_kept(self, tmp_path: Path):
        project_dir = tmp_path / ".formpilot"
        project_dir.mkdir()
        (project_dir / "profile.yaml").write_text("basics:\n  firstName: Sam\n", encoding="utf-8")

        init(dir=tmp_path)

        assert "Sam" in (project_dir / "profile.yaml").read_text(encoding="utf-8")
        assert (project_dir / "config.yaml").is_file()

    def test_running_twice_is_harmless(self, tmp_path: Path):
        init(dir=tmp_path)
        before = (tmp_path / ".formpilot" / "config.yaml").read_text(encoding="utf-8")
        init(dir=tmp_path)
        assert (tmp_path / ".formpilot" / "config.yaml").read_text(encoding="utf-8") == before


# ---------------------------------------------------------------------------
# 3. Through the CLI
# ---------------------------------------------------------------------------


class TestInitCommand:
    def test_cli_init(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-key-123")
        result = CliRunner().invoke(app, ["init", "--dir", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / ".formpilot" / "config.yaml").is_file()

    def test_version(self):
        result = CliRunner().invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "FormPilot" in result.output

    def test_version_lists_dependency_stack(self):
        result = CliRunner().invoke(app, ["--version"])
        assert "playwright" in result.output
        assert "anthropic" in result.output
