"""FormPilot Distiller -- Reduces the live DOM to a minimal semantic snapshot.

One pre-order pass over the captured tree:

1. Prune non-content tags and invisible subtrees.
2. Classify interactive elements (form controls and interactive ARIA roles).
3. Give each interactive element a stable ``data-sme-id``, reusing the one
   already attached by an earlier pass.
4. Infer a human label and persist it as ``data-sme-label``.
5. In fold mode, replace already-filled fields with a ``<filled-field>``
   marker that carries only the identifier and label.
6. Copy a fixed whitelist of attributes onto the serialized counterpart.
7. Keep a node only if it is interactive, has surviving content, or is a
   structural container.

A second scan then extracts one FieldDescriptor per tagged element from its
live state, for reporting and for diffing between passes.

The identifier and label annotations are written back onto the live page so
that later passes, and the executor, can target the same elements.
"""

from __future__ import annotations

import dataclasses
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from formpilot.engine.dom_tree import (
    ID_ATTR,
    LABEL_ATTR,
    TextNode,
    UIElementNode,
    capture_tree,
    write_annotations,
)

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("formpilot.engine.distiller")

# Dropped outright, with their subtree
NON_CONTENT_TAGS = frozenset({"script", "style", "svg", "noscript", "iframe", "link", "meta"})

# Native form controls; <input type="hidden"> is excluded separately
FORM_CONTROL_TAGS = frozenset({"input", "select", "textarea", "button"})

INTERACTIVE_ROLES = frozenset({"listbox", "combobox", "checkbox", "radio", "textbox", "searchbox"})

# Kept in the output even when they end up empty
STRUCTURAL_TAGS = frozenset({"form", "label", "h1", "h2", "h3", "h4", "h5", "h6", "legend", "p", "fieldset", "div"})

# Only these attributes survive onto the serialized tree
ALLOWED_ATTRS = (
    "type",
    "name",
    "placeholder",
    "aria-label",
    "aria-labelledby",
    "role",
    "value",
    "for",
    "checked",
    "disabled",
    "required",
    "aria-expanded",
    "aria-haspopup",
)

# Labels too generic to identify a field on their own (compared lower-cased)
WEAK_LABELS = frozenset({"", "attach", "select", "select...", "toggle flyout"})

ID_PREFIX = "sme-"
FILLED_TAG = "filled-field"
FILLED_PLACEHOLDER = "[FILLED]"
SHADOW_TAG = "shadow-root"

# Text nodes longer than this are shortened in the snapshot
MAX_TEXT_LENGTH = 150
TEXT_KEEP_LENGTH = 50
OMITTED_SUFFIX = "...[omitted]"

# Descriptor display limits
MAX_LABEL_CHARS = 60
MAX_CONTENT_CHARS = 30
NO_LABEL = "(No Label)"

OPTION_STATUS_READY = "Ready"
OPTION_STATUS_RUNTIME = "[Runtime Fetch Required]"


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """Flat per-field summary extracted from one distillation pass."""

    id: str
    type: str
    inferred_label: str
    current_content: str
    option_status: str
    folded: bool = False
    filled: bool = False


@dataclasses.dataclass
class SemanticSnapshot:
    """Result of one distillation pass."""

    serialized_tree: str
    fields: list[FieldDescriptor]
    fold_filled: bool = False

    @property
    def field_ids(self) -> set[str]:
        return {f.id for f in self.fields}


class IdentifierAllocator:
    """Mints session-scoped sequential identifiers (``sme-0``, ``sme-1``, ...).

    Never hands out an identifier that is already attached somewhere in the
    tree, even if that identifier was minted by a different allocator.
    """

    def __init__(self, prefix: str = ID_PREFIX) -> None:
        self._prefix = prefix
        self._next = 0

    def mint(self, taken: set[str]) -> str:
        while True:
            candidate = f"{self._prefix}{self._next}"
            self._next += 1
            if candidate not in taken:
                taken.add(candidate)
                return candidate


# -- Field classification ------------------------------------------------------


def is_interactive(node: UIElementNode) -> bool:
    """Form-control tags and interactive ARIA roles; hidden inputs never count."""
    if node.tag == "input" and node.input_type == "hidden":
        return False
    if node.tag in FORM_CONTROL_TAGS:
        return True
    return node.role in INTERACTIVE_ROLES


def is_field_filled(node: UIElementNode) -> bool:
    """Return True if the field already holds a user-visible answer."""
    if node.tag == "input":
        input_type = node.input_type
        if input_type in ("checkbox", "radio"):
            return node.checked
        if input_type == "file":
            return node.file_count > 0
        return bool((node.value or "").strip())
    if node.tag == "textarea":
        return bool((node.value or "").strip())
    if node.tag == "select":
        return bool((node.value or "").strip()) and node.selected_index != -1
    # Custom ARIA checkboxes / switches
    return node.get("aria-checked") == "true"


# -- Label inference -------------------------------------------------------------


@dataclasses.dataclass
class LabelContext:
    """Document-wide lookups shared by the label sources during one pass."""

    labels_for: dict[str, UIElementNode]
    elements_by_id: dict[str, UIElementNode]

    @classmethod
    def build(cls, root: UIElementNode) -> LabelContext:
        labels_for: dict[str, UIElementNode] = {}
        elements_by_id: dict[str, UIElementNode] = {}
        for node in root.iter_elements():
            if node.tag == "label" and node.get("for"):
                labels_for.setdefault(node.attrs["for"], node)
            if node.get("id"):
                elements_by_id.setdefault(node.attrs["id"], node)
        return cls(labels_for=labels_for, elements_by_id=elements_by_id)


LabelSource = Callable[[UIElementNode, LabelContext], str | None]


def _own_label_text(node: UIElementNode, ctx: LabelContext) -> str | None:
    if node.tag == "label":
        return node.text_content.strip()
    return None


def _associated_label(node: UIElementNode, ctx: LabelContext) -> str | None:
    element_id = node.get("id")
    if not element_id:
        return None
    label = ctx.labels_for.get(element_id)
    return label.text_content.strip() if label is not None else None


def _aria_label(node: UIElementNode, ctx: LabelContext) -> str | None:
    return node.get("aria-label")


def _fieldset_heading(node: UIElementNode, ctx: LabelContext) -> str | None:
    fieldset = node.closest(lambda n: n.tag == "fieldset")
    if fieldset is None:
        return None
    legend = fieldset.find_first(lambda n: n.tag == "legend")
    if legend is None:
        return None
    return legend.text_content.strip()


def _group_heading(node: UIElementNode, ctx: LabelContext) -> str | None:
    group = node.closest(lambda n: n.role == "group")
    if group is None:
        return None
    heading = group.get("aria-label")
    if not heading and group.element_children:
        heading = group.element_children[0].text_content.strip()
    return heading or None


def _button_text(node: UIElementNode, ctx: LabelContext) -> str | None:
    if node.tag == "button":
        return node.text_content.strip()
    return None


# Direct sources, in priority order; the first non-weak result wins
LABEL_SOURCES: tuple[LabelSource, ...] = (_own_label_text, _associated_label, _aria_label)

# Containers whose heading prefixes a weak label ("Resume/CV > Attach")
CONTEXT_SOURCES: tuple[LabelSource, ...] = (_fieldset_heading, _group_heading)

# Used only when nothing else produced a label
FALLBACK_SOURCES: tuple[LabelSource, ...] = (_button_text,)


def infer_label(
    node: UIElementNode,
    ctx: LabelContext,
    weak_labels: Iterable[str] = WEAK_LABELS,
) -> str:
    """Run the label cascade for *node* and return the best label ("" if none)."""
    weak = {w.lower() for w in weak_labels}

    label = ""
    for source in LABEL_SOURCES:
        candidate = (source(node, ctx) or "").strip()
        if not candidate:
            continue
        if candidate.lower() not in weak:
            return candidate
        if not label:
            label = candidate

    for source in CONTEXT_SOURCES:
        heading = source(node, ctx)
        if heading:
            return f"{heading} > {label}"

    if not label:
        for source in FALLBACK_SOURCES:
            candidate = (source(node, ctx) or "").strip()
            if candidate:
                return candidate

    return label


# -- Distiller -------------------------------------------------------------------


class Distiller:
    """Turns a captured UI tree into a SemanticSnapshot.

    One Distiller belongs to one form-filling session: its allocator is the
    session's identifier counter.
    """

    def __init__(
        self,
        allocator: IdentifierAllocator | None = None,
        weak_labels: Iterable[str] = WEAK_LABELS,
    ) -> None:
        self._allocator = allocator or IdentifierAllocator()
        self._weak_labels = frozenset(w.lower() for w in weak_labels)

    def distill_page(self, page: Page, fold_filled: bool = False) -> SemanticSnapshot:
        """Capture the live page, distill it, and write new annotations back."""
        root = capture_tree(page)
        if root is None:
            return SemanticSnapshot(serialized_tree="", fields=[], fold_filled=fold_filled)
        snapshot = self.distill(root, fold_filled=fold_filled)
        written = write_annotations(page, root)
        logger.debug("Distilled %d fields, annotated %d elements", len(snapshot.fields), written)
        return snapshot

    def distill(self, root: UIElementNode, fold_filled: bool = False) -> SemanticSnapshot:
        """Distill *root*, annotating interactive nodes in place.

        Deterministic for the same tree and flag, except for identifiers
        minted for elements seen for the first time.
        """
        ctx = LabelContext.build(root)
        taken = {n.attrs[ID_ATTR] for n in root.iter_elements() if n.get(ID_ATTR)}

        clean = self._process(root, fold_filled, ctx, taken)
        if isinstance(clean, ET.Element):
            serialized = ET.tostring(clean, encoding="unicode", method="html")
        else:
            serialized = ""

        fields = self._extract_fields(root, fold_filled, ctx)
        return SemanticSnapshot(serialized_tree=serialized, fields=fields, fold_filled=fold_filled)

    # -- Tree walk ---------------------------------------------------------------

    def _process(
        self,
        node: UIElementNode | TextNode,
        fold_filled: bool,
        ctx: LabelContext,
        taken: set[str],
    ) -> ET.Element | str | None:
        if isinstance(node, TextNode):
            text = node.text.strip()
            if not text:
                return None
            if len(text) > MAX_TEXT_LENGTH:
                return text[:TEXT_KEEP_LENGTH] + OMITTED_SUFFIX
            return text

        if node.tag in NON_CONTENT_TAGS:
            return None
        if not node.visible:
            return None

        sme_id: str | None = None
        if is_interactive(node):
            sme_id = self._assign_id(node, taken)
            self._assign_label(node, ctx)

            if fold_filled and is_field_filled(node):
                return self._filled_marker(node, sme_id)

        clean = ET.Element(node.tag)
        if sme_id:
            clean.set(ID_ATTR, sme_id)
            if node.get(LABEL_ATTR):
                clean.set(LABEL_ATTR, node.attrs[LABEL_ATTR])

        for attr in ALLOWED_ATTRS:
            if node.has(attr):
                clean.set(attr, node.attrs[attr])

        has_content = False
        if node.shadow_children is not None:
            container = ET.Element(SHADOW_TAG)
            for child in node.shadow_children:
                if _append(container, self._process(child, fold_filled, ctx, taken)):
                    has_content = True
            if has_content:
                clean.append(container)

        for child in node.children:
            if _append(clean, self._process(child, fold_filled, ctx, taken)):
                has_content = True

        if sme_id:
            return clean
        if has_content or node.tag in STRUCTURAL_TAGS:
            return clean
        return None

    def _assign_id(self, node: UIElementNode, taken: set[str]) -> str:
        existing = node.get(ID_ATTR)
        if existing:
            return existing
        sme_id = self._allocator.mint(taken)
        node.annotate(ID_ATTR, sme_id)
        return sme_id

    def _assign_label(self, node: UIElementNode, ctx: LabelContext) -> None:
        if node.get(LABEL_ATTR):
            return
        label = infer_label(node, ctx, self._weak_labels)
        if label:
            node.annotate(LABEL_ATTR, label)

    @staticmethod
    def _filled_marker(node: UIElementNode, sme_id: str) -> ET.Element:
        marker = ET.Element(FILLED_TAG)
        marker.set(ID_ATTR, sme_id)
        if node.get(LABEL_ATTR):
            marker.set(LABEL_ATTR, node.attrs[LABEL_ATTR])
        marker.text = FILLED_PLACEHOLDER
        return marker

    # -- Descriptors -------------------------------------------------------------

    def _extract_fields(
        self,
        root: UIElementNode,
        fold_filled: bool,
        ctx: LabelContext,
    ) -> list[FieldDescriptor]:
        fields: list[FieldDescriptor] = []
        for node in root.iter_elements():
            sme_id = node.get(ID_ATTR)
            if not sme_id:
                continue

            field_type = describe_type(node)
            question = node.get(LABEL_ATTR) or NO_LABEL

            filled = is_interactive(node) and is_field_filled(node)
            folded = fold_filled and filled
            if folded:
                content = ""
            elif node.tag == "button":
                content = node.text_content.strip()
            else:
                content = node.value or ""

            fields.append(
                FieldDescriptor(
                    id=sme_id,
                    type=field_type,
                    inferred_label=question[:MAX_LABEL_CHARS],
                    current_content=content[:MAX_CONTENT_CHARS],
                    option_status=_option_status(node, field_type, ctx),
                    folded=folded,
                    filled=filled,
                )
            )
        return fields


def describe_type(node: UIElementNode) -> str:
    """Map an element to the field type shown in descriptors."""
    field_type = node.tag
    if node.tag == "input":
        field_type = node.get("type") or "text"
    if node.role == "combobox":
        field_type = "combobox"
    if node.role == "checkbox":
        field_type = "checkbox"
    if field_type == "file":
        field_type = "file_upload"
    return field_type


def _option_status(node: UIElementNode, field_type: str, ctx: LabelContext) -> str:
    """What can be said about a dropdown's options without opening it."""
    if field_type != "combobox":
        return OPTION_STATUS_READY
    controls = node.get("aria-controls")
    listbox = ctx.elements_by_id.get(controls) if controls else None
    if listbox is not None and listbox.element_children:
        return f"[Visible: {len(listbox.element_children)}]"
    return OPTION_STATUS_RUNTIME


def _append(parent: ET.Element, child: ET.Element | str | None) -> bool:
    """Append a processed child (element or text) to *parent*; return True if anything was added."""
    if child is None:
        return False
    if isinstance(child, str):
        if len(parent):
            last = parent[-1]
            last.tail = (last.tail or "") + child
        else:
            parent.text = (parent.text or "") + child
        return True
    parent.append(child)
    return True
