"""Unit tests for formpilot.credentials — API key lookup and masking."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from formpilot.config import FormPilotConfigError
from formpilot.credentials import (
    ApiKey,
    _parse_env_file,
    _parse_yaml_key,
    find_api_key,
    mask_key,
    resolve_api_key,
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """No env var, an empty working directory, and an empty home."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "fakehome")
    return workdir


# ---------------------------------------------------------------------------
# 1. Source priority
# ---------------------------------------------------------------------------


class TestSourcePriority:
    """find_api_key() returns the first source that has a key."""

    def test_environment_wins(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-from-env")
        (clean_env / ".env").write_text("ANTHROPIC_API_KEY=sk-ant-from-dotenv\n", encoding="utf-8")
        key = find_api_key(config_key="sk-ant-from-config")
        assert key == ApiKey("sk-ant-from-env", "environment")

    def test_loaded_config_key_beats_files(self, clean_env: Path):
        (clean_env / ".env").write_text("ANTHROPIC_API_KEY=sk-ant-from-dotenv\n", encoding="utf-8")
        key = find_api_key(config_key="sk-ant-from-config")
        assert key.source == "config"
        assert key.value == "sk-ant-from-config"

    def test_dotenv(self, clean_env: Path):
        (clean_env / ".env").write_text("ANTHROPIC_API_KEY='sk-ant-quoted'\n", encoding="utf-8")
        key = find_api_key()
        assert key == ApiKey("sk-ant-quoted", ".env")

    def test_project_config(self, clean_env: Path, tmp_path: Path):
        project = tmp_path / ".formpilot"
        project.mkdir()
        (project / "config.yaml").write_text(yaml.dump({"anthropic_api_key": "sk-ant-project"}), encoding="utf-8")
        key = find_api_key(project_dir=project)
        assert key == ApiKey("sk-ant-project", "project config")

    def test_global_config(self, clean_env: Path, tmp_path: Path):
        global_dir = tmp_path / "fakehome" / ".formpilot"
        global_dir.mkdir(parents=True)
        (global_dir / "config.yaml").write_text(yaml.dump({"api_key": "sk-ant-global"}), encoding="utf-8")
        assert find_api_key() == ApiKey("sk-ant-global", "global config")

    def test_no_key_raises(self, clean_env: Path):
        with pytest.raises(FormPilotConfigError, match="ANTHROPIC_API_KEY not set"):
            find_api_key()

    def test_resolve_api_key_returns_value(self, clean_env: Path):
        assert resolve_api_key(config_key="sk-ant-from-config") == "sk-ant-from-config"


# ---------------------------------------------------------------------------
# 2. Masking
# ---------------------------------------------------------------------------


class TestMaskKey:
    """mask_key() partially redacts keys for display."""

    def test_mask_preserves_prefix_and_suffix(self):
        assert mask_key("sk-ant-REDACTED") == "sk-ant-...345"

    def test_short_keys_fully_masked(self):
        assert mask_key("short") == "***"
        assert mask_key("exactly10c") == "***"
        assert mask_key("") == "***"

    def test_api_key_masked_and_hidden_from_repr(self):
        key = ApiKey("sk-ant-REDACTED", "environment")
        assert key.masked == "sk-ant-...999"
        assert "secret" not in repr(key)


# ---------------------------------------------------------------------------
# 3. File parsers
# ---------------------------------------------------------------------------


class TestParseEnvFile:
    """_parse_env_file() reads dotenv-style assignments."""

    def test_extracts_key_value(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\nFOO=bar\nBAZ=\"qux\"\n", encoding="utf-8")
        assert _parse_env_file(env_file, "FOO") == "bar"
        assert _parse_env_file(env_file, "BAZ") == "qux"

    def test_export_prefix(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("export ANTHROPIC_API_KEY=sk-ant-exported\n", encoding="utf-8")
        assert _parse_env_file(env_file, "ANTHROPIC_API_KEY") == "sk-ant-exported"

    def test_missing_or_empty_key(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("OTHER=value\nEMPTY=\n", encoding="utf-8")
        assert _parse_env_file(env_file, "MISSING") is None
        assert _parse_env_file(env_file, "EMPTY") is None


class TestParseYamlKey:
    """_parse_yaml_key() reads the key from a YAML config."""

    def test_extracts_key_and_alias(self, tmp_path: Path):
        first = tmp_path / "a.yaml"
        first.write_text(yaml.dump({"anthropic_api_key": "sk-ant-yaml"}), encoding="utf-8")
        second = tmp_path / "b.yaml"
        second.write_text(yaml.dump({"api_key": "sk-ant-alias"}), encoding="utf-8")
        assert _parse_yaml_key(first) == "sk-ant-yaml"
        assert _parse_yaml_key(second) == "sk-ant-alias"

    def test_invalid_or_non_mapping_yaml(self, tmp_path: Path):
        broken = tmp_path / "broken.yaml"
        broken.write_text("key: [unclosed\n", encoding="utf-8")
        listing = tmp_path / "list.yaml"
        listing.write_text("- a\n- b\n", encoding="utf-8")
        assert _parse_yaml_key(broken) is None
        assert _parse_yaml_key(listing) is None
