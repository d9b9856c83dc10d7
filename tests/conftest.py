"""Shared fixtures for FormPilot unit tests."""

from __future__ import annotations

import copy
import itertools
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from formpilot.engine.dom_tree import ANNOTATE_SCRIPT, CAPTURE_SCRIPT, ID_ATTR, UIElementNode, node_from_dict
from formpilot.engine.protocols import ActionResult, Plan


# ---------------------------------------------------------------------------
# Tree builders: the same dict shape CAPTURE_SCRIPT returns
# ---------------------------------------------------------------------------


def el(tag: str, *children: Any, attrs: dict[str, str] | None = None, **state: Any) -> dict[str, Any]:
    """Build a captured-element dict.  String children become text nodes."""
    node: dict[str, Any] = {
        "tag": tag,
        "attrs": dict(attrs or {}),
        "visible": state.pop("visible", True),
        "children": [{"text": c} if isinstance(c, str) else c for c in children],
    }
    shadow = state.pop("shadow", None)
    if shadow is not None:
        node["shadow_children"] = [{"text": c} if isinstance(c, str) else c for c in shadow]
    node.update(state)
    return node


def build(data: dict[str, Any]) -> UIElementNode:
    """Convert a captured-element dict into a UIElementNode tree."""
    root = node_from_dict(data)
    assert isinstance(root, UIElementNode)
    return root


@pytest.fixture
def make_el() -> Callable[..., dict[str, Any]]:
    return el


@pytest.fixture
def make_tree() -> Callable[[dict[str, Any]], UIElementNode]:
    return build


# ---------------------------------------------------------------------------
# Fake live page: answers the capture/annotate scripts from a dict tree
# ---------------------------------------------------------------------------


class FakeFormPage:
    """Stands in for a Playwright page during distillation.

    Holds the "live DOM" as captured-element dicts.  Annotations written
    back by the distiller land on those dicts, so the next capture sees them,
    just as on a real page.
    """

    def __init__(self, body: dict[str, Any]) -> None:
        self.body = body
        self.timeouts: list[int] = []
        self.annotate_calls: list[list[dict[str, Any]]] = []
        self._assign_refs()

    def _assign_refs(self) -> None:
        counter = itertools.count(1)
        for node in self.walk():
            node.setdefault("ref", next(counter))

    def walk(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []

        def visit(node: dict[str, Any]) -> None:
            if "tag" not in node:
                return
            out.append(node)
            for child in node.get("shadow_children") or []:
                visit(child)
            for child in node.get("children") or []:
                visit(child)

        visit(self.body)
        return out

    def find(self, sme_id: str) -> dict[str, Any]:
        for node in self.walk():
            if node["attrs"].get(ID_ATTR) == sme_id:
                return node
        raise KeyError(sme_id)

    def find_by_name(self, name: str) -> dict[str, Any]:
        for node in self.walk():
            if node["attrs"].get("name") == name:
                return node
        raise KeyError(name)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == CAPTURE_SCRIPT:
            return copy.deepcopy(self.body)
        if script == ANNOTATE_SCRIPT:
            self.annotate_calls.append(arg)
            by_ref = {n["ref"]: n for n in self.walk()}
            applied = 0
            for update in arg:
                node = by_ref.get(update["ref"])
                if node is not None:
                    node["attrs"].update(update["attrs"])
                    applied += 1
            return applied
        raise AssertionError(f"unexpected script: {script[:40]!r}")

    def wait_for_timeout(self, ms: int) -> None:
        self.timeouts.append(ms)


@pytest.fixture
def fake_page_factory() -> Callable[[dict[str, Any]], FakeFormPage]:
    return FakeFormPage


# ---------------------------------------------------------------------------
# Scripted collaborators for the reconciliation loop
# ---------------------------------------------------------------------------


class ScriptedPlanner:
    """FormPlanner double: returns a scripted Plan per call and records inputs."""

    def __init__(self, respond: Callable[[str, dict[str, Any], str], Plan]) -> None:
        self._respond = respond
        self.calls: list[tuple[str, str]] = []

    def propose(self, serialized_tree: str, profile: dict[str, Any], mode: str) -> Plan:
        self.calls.append((serialized_tree, mode))
        return self._respond(serialized_tree, profile, mode)


class RecordingExecutor:
    """Executor double that applies fills/checks directly to a FakeFormPage."""

    def __init__(self, page: FakeFormPage, on_action: Callable[[FakeFormPage, Any], None] | None = None) -> None:
        self._page = page
        self._on_action = on_action
        self.executed: list[list[str]] = []

    def execute_plan(self, plan: Plan) -> list[ActionResult]:
        self.executed.append([a.id for a in plan.actions])
        results = []
        for action in plan.actions:
            if action.needs_human:
                results.append(
                    ActionResult(action.id, action.type, action.label, success=True, skipped=True, detail="human_check")
                )
                continue
            node = self._page.find(action.id)
            if action.type == "fill":
                node["value"] = action.value
            elif action.type in ("radio", "checkbox"):
                node["checked"] = True
            if self._on_action is not None:
                self._on_action(self._page, action)
            results.append(ActionResult(action.id, action.type, action.label, success=True))
        return results


@pytest.fixture
def scripted_planner() -> type[ScriptedPlanner]:
    return ScriptedPlanner


@pytest.fixture
def recording_executor() -> type[RecordingExecutor]:
    return RecordingExecutor


# ---------------------------------------------------------------------------
# Fixture: temporary project directory with .formpilot/ structure
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .formpilot/ project directory with config and profile."""
    project_dir = tmp_path / ".formpilot"
    (project_dir / "logs").mkdir(parents=True)

    config_data = {
        "budget": 1.50,
        "headless": True,
        "profile": "profile.yaml",
        "viewport": {"width": 1280, "height": 720},
    }
    (project_dir / "config.yaml").write_text(yaml.dump(config_data, default_flow_style=False), encoding="utf-8")
    (project_dir / "profile.yaml").write_text(
        yaml.dump(
            {
                "basics": {"firstName": "Jordan", "lastName": "Doe", "email": "jordan@example.com"},
                "resume_path": "/tmp/resume.pdf",
            }
        ),
        encoding="utf-8",
    )
    return project_dir


# ---------------------------------------------------------------------------
# Fixture: sample config YAML string
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid FormPilot config.yaml as a string."""
    return """\
profile: me.yaml
budget: 3.00
headless: true
keep_open: false
pass_budget: 3
fold_from_pass: 2
match_threshold: 0.5
viewport:
  width: 1920
  height: 1080
timings:
  settle_ms: 1500
  pacing_ms: 250
logs_dir: out
"""


@pytest.fixture
def sample_profile() -> dict[str, Any]:
    return {
        "basics": {"firstName": "Jordan", "lastName": "Doe", "email": "jordan@example.com"},
        "legal": {"authorized_to_work": True, "sponsorship_needed": False},
        "resume_path": "/Users/jordan/resume.pdf",
        "cover_letter_path": "",
    }
