"""Anthropic API key lookup for FormPilot.

The planner is the only component that talks to a paid API, so the key is
looked up once per run.  Sources are tried in order and the first non-empty
value wins:

1. ``ANTHROPIC_API_KEY`` environment variable
2. ``anthropic_api_key`` already loaded into the session's FormPilotConfig
3. ``.env`` file in the working directory
4. Project config (``.formpilot/config.yaml``)
5. Global config (``~/.formpilot/config.yaml``)
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

import yaml

from formpilot.config import FormPilotConfigError

logger = logging.getLogger("formpilot.credentials")

ENV_KEY = "ANTHROPIC_API_KEY"


@dataclasses.dataclass(frozen=True)
class ApiKey:
    """A resolved key and a short description of where it was found."""

    value: str = dataclasses.field(repr=False)
    source: str

    @property
    def masked(self) -> str:
        return mask_key(self.value)


def find_api_key(project_dir: Path | None = None, config_key: str = "") -> ApiKey:
    """Return the first API key found, tagged with its source.

    Raises FormPilotConfigError when no source provides a key.
    """
    if value := os.environ.get(ENV_KEY):
        return ApiKey(value, "environment")

    if config_key:
        return ApiKey(config_key, "config")

    env_path = Path(".env")
    if env_path.is_file() and (value := _parse_env_file(env_path, ENV_KEY)):
        return ApiKey(value, ".env")

    candidates: list[tuple[Path, str]] = []
    if project_dir is not None:
        candidates.append((project_dir / "config.yaml", "project config"))
    candidates.append((Path.home() / ".formpilot" / "config.yaml", "global config"))
    for path, source in candidates:
        if path.is_file() and (value := _parse_yaml_key(path)):
            return ApiKey(value, source)

    raise FormPilotConfigError(
        f"{ENV_KEY} not set\n\n"
        "FormPilot needs an Anthropic API key to plan form actions.\n\n"
        "To fix:\n"
        f"  export {ENV_KEY}=sk-ant-your-key-here\n"
        "  or add anthropic_api_key to .formpilot/config.yaml"
    )


def resolve_api_key(project_dir: Path | None = None, config_key: str = "") -> str:
    """Return the API key value only.  See find_api_key()."""
    return find_api_key(project_dir, config_key).value


def mask_key(key: str) -> str:
    """Mask an API key for display. Shows first 7 and last 3 chars."""
    if len(key) <= 10:
        return "***"
    return f"{key[:7]}...{key[-3:]}"


def _parse_env_file(path: Path, key_name: str) -> str | None:
    """Read *key_name* from a dotenv-style file, stripping surrounding quotes."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line.startswith("export "):
                    line = line[len("export ") :].lstrip()
                if line.startswith("#") or "=" not in line:
                    continue
                k, _, v = line.partition("=")
                if k.strip() == key_name:
                    return v.strip().strip("'\"") or None
    except OSError as exc:
        logger.debug("Could not read %s: %s", path, exc)
    return None


def _parse_yaml_key(path: Path) -> str | None:
    """Read ``anthropic_api_key`` (or its ``api_key`` alias) from a YAML config."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.debug("Could not read %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("anthropic_api_key") or data.get("api_key")
    return str(value) if value else None
