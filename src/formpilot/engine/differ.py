"""FormPilot Snapshot Differ -- which fields are new since earlier passes.

Used for incremental reporting only.  Action deduplication is the ledger's
job (see reconciler.SessionContext), not the differ's.
"""

from __future__ import annotations

from collections.abc import Iterable

from formpilot.engine.distiller import FieldDescriptor


def diff_fields(
    fields: Iterable[FieldDescriptor],
    seen: set[str],
) -> tuple[list[FieldDescriptor], set[str]]:
    """Split off the descriptors whose identifier has never been seen.

    A field already in *seen* is excluded even if its content changed.
    Returns ``(new_fields, updated_seen)``; *seen* itself is not mutated.
    """
    updated = set(seen)
    new_fields: list[FieldDescriptor] = []
    for field in fields:
        if field.id in updated:
            continue
        updated.add(field.id)
        new_fields.append(field)
    return new_fields, updated
