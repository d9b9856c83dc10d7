"""FormPilot configuration management."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from formpilot.models import (
    DEFAULT_BUDGET_USD,
    DEFAULT_DROPDOWN_OPEN_MS,
    DEFAULT_FOLD_FROM_PASS,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_OPTION_WAIT_MS,
    DEFAULT_PACING_MS,
    DEFAULT_PASS_BUDGET,
    DEFAULT_POST_CLICK_MS,
    DEFAULT_QUIESCENCE_TIMEOUT_MS,
    DEFAULT_SETTLE_MS,
    DEFAULT_VIEWPORT,
    MODELS,
)


class FormPilotConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ProfileError(FormPilotConfigError):
    """Raised when the applicant profile cannot be loaded."""

    pass


@dataclass
class FormPilotConfig:
    """Configuration for a FormPilot session."""

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".formpilot"))
    logs_dir: Path | None = None
    profile_path: Path | None = None

    # API
    # repr=False keeps the key out of debug logs and tracebacks.
    anthropic_api_key: str = field(default="", repr=False)
    model: str = MODELS["planner"]

    # Reconciliation loop
    pass_budget: int = DEFAULT_PASS_BUDGET
    fold_from_pass: int = DEFAULT_FOLD_FROM_PASS

    # Timings (ms)
    settle_ms: int = DEFAULT_SETTLE_MS
    post_click_ms: int = DEFAULT_POST_CLICK_MS
    pacing_ms: int = DEFAULT_PACING_MS
    dropdown_open_ms: int = DEFAULT_DROPDOWN_OPEN_MS
    option_wait_ms: int = DEFAULT_OPTION_WAIT_MS
    quiescence_timeout_ms: int = DEFAULT_QUIESCENCE_TIMEOUT_MS

    # Matching
    match_threshold: float = DEFAULT_MATCH_THRESHOLD

    # Browser
    budget: float = DEFAULT_BUDGET_USD
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    headless: bool = False
    keep_open: bool = True

    @classmethod
    def from_file(cls, config_path: Path) -> FormPilotConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise FormPilotConfigError(f"Config file not found: {config_path}\n\nTo fix: formpilot init")
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise FormPilotConfigError(f"Config file must contain a mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> FormPilotConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        if "logs_dir" in data:
            config.logs_dir = project_dir / data["logs_dir"]
        else:
            config.logs_dir = project_dir / "logs"

        if "profile" in data:
            config.profile_path = project_dir / data["profile"]

        if "model" in data:
            config.model = str(data["model"])
        if "anthropic_api_key" in data:
            config.anthropic_api_key = str(data["anthropic_api_key"])

        if "pass_budget" in data:
            config.pass_budget = int(data["pass_budget"])
        if "fold_from_pass" in data:
            config.fold_from_pass = int(data["fold_from_pass"])

        timings = data.get("timings", {})
        if isinstance(timings, dict):
            for key in (
                "settle_ms",
                "post_click_ms",
                "pacing_ms",
                "dropdown_open_ms",
                "option_wait_ms",
                "quiescence_timeout_ms",
            ):
                if key in timings:
                    setattr(config, key, int(timings[key]))

        if "match_threshold" in data:
            config.match_threshold = float(data["match_threshold"])
        if "budget" in data:
            config.budget = float(data["budget"])
        if "headless" in data:
            config.headless = bool(data["headless"])
        if "keep_open" in data:
            config.keep_open = bool(data["keep_open"])
        if "viewport" in data:
            vp = data["viewport"]
            if isinstance(vp, dict):
                config.viewport = (vp.get("width", DEFAULT_VIEWPORT[0]), vp.get("height", DEFAULT_VIEWPORT[1]))

        config.validate()
        return config

    def validate(self) -> None:
        """Raise FormPilotConfigError if any loop or matching setting is out of range."""
        if self.pass_budget < 1:
            raise FormPilotConfigError(f"pass_budget must be at least 1, got {self.pass_budget}")
        if self.fold_from_pass < 1:
            raise FormPilotConfigError(f"fold_from_pass must be at least 1, got {self.fold_from_pass}")
        if not 0.0 <= self.match_threshold <= 1.0:
            raise FormPilotConfigError(f"match_threshold must be within [0, 1], got {self.match_threshold}")
        if self.budget < 0:
            raise FormPilotConfigError(f"budget must not be negative, got {self.budget}")


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load an applicant profile from a YAML or JSON file.

    The profile is opaque to the engine -- it is handed to the planner as-is.
    """
    if not profile_path.is_file():
        raise ProfileError(
            f"Profile not found: {profile_path}\n\n"
            "To fix: formpilot init  (then edit .formpilot/profile.yaml)"
        )
    text = profile_path.read_text(encoding="utf-8")
    try:
        if profile_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ProfileError(f"Profile could not be parsed: {profile_path}\n\n{exc}") from exc
    if not isinstance(data, dict):
        raise ProfileError(f"Profile must contain a mapping at the top level: {profile_path}")
    return data


def describe_profile(profile: dict[str, Any]) -> list[str]:
    """Return display lines summarizing who is applying and which documents are attached."""
    basics = profile.get("basics") or {}
    name = " ".join(p for p in (basics.get("firstName", ""), basics.get("lastName", "")) if p) or "(unknown)"
    return [
        f"User: {name}",
        f"Resume Path: {profile.get('resume_path') or 'UNDEFINED'}",
        f"Cover Letter Path: {profile.get('cover_letter_path') or 'UNDEFINED'}",
    ]
