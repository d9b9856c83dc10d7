"""Unit tests for formpilot.engine.differ — diff_fields()."""

from __future__ import annotations

from formpilot.engine.differ import diff_fields
from formpilot.engine.distiller import OPTION_STATUS_READY, FieldDescriptor


def _field(field_id: str, content: str = "") -> FieldDescriptor:
    return FieldDescriptor(
        id=field_id,
        type="text",
        inferred_label=f"Label {field_id}",
        current_content=content,
        option_status=OPTION_STATUS_READY,
    )


class TestDiffFields:
    """Only identifiers never seen before are reported as new."""

    def test_first_pass_everything_is_new(self):
        new, seen = diff_fields([_field("sme-0"), _field("sme-1")], set())
        assert [f.id for f in new] == ["sme-0", "sme-1"]
        assert seen == {"sme-0", "sme-1"}

    def test_seen_fields_are_excluded_even_if_content_changed(self):
        new, _ = diff_fields([_field("sme-0", content="Jordan"), _field("sme-2")], {"sme-0", "sme-1"})
        assert [f.id for f in new] == ["sme-2"]

    def test_seen_set_is_not_mutated(self):
        seen = {"sme-0"}
        _, updated = diff_fields([_field("sme-1")], seen)
        assert seen == {"sme-0"}
        assert updated == {"sme-0", "sme-1"}

    def test_vanished_fields_stay_seen(self):
        _, updated = diff_fields([], {"sme-0", "sme-1"})
        assert updated == {"sme-0", "sme-1"}

    def test_duplicate_ids_reported_once(self):
        new, _ = diff_fields([_field("sme-3"), _field("sme-3")], set())
        assert len(new) == 1

    def test_order_follows_input(self):
        new, _ = diff_fields([_field("sme-5"), _field("sme-4")], set())
        assert [f.id for f in new] == ["sme-5", "sme-4"]
