"""FormPilot DOM Tree -- Python view of the live page.

The live DOM is read in one round trip: CAPTURE_SCRIPT walks ``document.body``
inside the page and returns a JSON tree of elements and text nodes, including
layout visibility, live fill state, and open shadow roots.  Every element gets
a transient ``ref`` index that stays valid until the next capture, so
annotations computed in Python can be written back onto the exact live
element with ANNOTATE_SCRIPT.

Annotations are the only writes this module makes to the page.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("formpilot.engine.dom_tree")

# Stable identifier and inferred-label annotations persisted in the live DOM
ID_ATTR = "data-sme-id"
LABEL_ATTR = "data-sme-label"

# Tags whose subtree carries no form content; the capture script does not
# descend into them.
SKIP_DESCENT_TAGS = ("SCRIPT", "STYLE", "NOSCRIPT", "SVG", "svg", "TEMPLATE")

CAPTURE_SCRIPT = """() => {
    const refs = [];
    window.__formpilotRefs = refs;
    const skip = new Set(%s);

    const isVisible = (el) => {
        const style = el.style;
        if (style && (style.display === 'none' || style.visibility === 'hidden')) return false;
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    };

    const walk = (node) => {
        if (node.nodeType === Node.TEXT_NODE) {
            return { text: node.textContent || '' };
        }
        if (node.nodeType !== Node.ELEMENT_NODE) return null;
        const el = node;
        const ref = refs.length;
        refs.push(el);
        const attrs = {};
        for (const a of Array.from(el.attributes)) attrs[a.name] = a.value;
        const out = {
            ref: ref,
            tag: el.tagName.toLowerCase(),
            attrs: attrs,
            visible: isVisible(el),
        };
        if (typeof el.value === 'string') out.value = el.value;
        if (el.tagName === 'INPUT') {
            out.checked = !!el.checked;
            out.file_count = el.files ? el.files.length : 0;
        }
        if (el.tagName === 'SELECT') out.selected_index = el.selectedIndex;
        if (skip.has(el.tagName)) {
            out.children = [];
            return out;
        }
        out.children = Array.from(el.childNodes).map(walk).filter(Boolean);
        if (el.shadowRoot) {
            out.shadow_children = Array.from(el.shadowRoot.childNodes).map(walk).filter(Boolean);
        }
        return out;
    };

    return document.body ? walk(document.body) : null;
}""" % (list(SKIP_DESCENT_TAGS),)

ANNOTATE_SCRIPT = """(updates) => {
    const refs = window.__formpilotRefs || [];
    let applied = 0;
    for (const update of updates) {
        const el = refs[update.ref];
        if (!el || !el.isConnected) continue;
        for (const [name, value] of Object.entries(update.attrs)) {
            el.setAttribute(name, value);
        }
        applied++;
    }
    return applied;
}"""


@dataclasses.dataclass(eq=False)
class TextNode:
    """A text node of the live tree."""

    text: str
    parent: UIElementNode | None = dataclasses.field(default=None, repr=False)


@dataclasses.dataclass(eq=False)
class UIElementNode:
    """An element of the live tree: tag, attribute bag, visibility, and fill state.

    ``value``/``checked``/``file_count``/``selected_index`` mirror the live
    DOM *properties*, not the attributes -- an input the user typed into has a
    non-empty ``value`` even when its ``value`` attribute is absent.
    """

    tag: str
    attrs: dict[str, str] = dataclasses.field(default_factory=dict)
    visible: bool = True
    value: str | None = None
    checked: bool = False
    file_count: int = 0
    selected_index: int = -1
    children: list[Node] = dataclasses.field(default_factory=list)
    shadow_children: list[Node] | None = None
    ref: int | None = None
    parent: UIElementNode | None = dataclasses.field(default=None, repr=False)
    # True when this node sits directly inside its parent's shadow root
    in_shadow_root: bool = dataclasses.field(default=False, repr=False)
    pending_annotations: dict[str, str] = dataclasses.field(default_factory=dict, repr=False)

    # -- Attribute access ----------------------------------------------------

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name, default)

    def has(self, name: str) -> bool:
        return name in self.attrs

    @property
    def role(self) -> str:
        return self.attrs.get("role") or ""

    @property
    def input_type(self) -> str:
        """Effective input type, defaulting to "text" like the DOM ``type`` property."""
        return (self.attrs.get("type") or "text").strip().lower()

    def annotate(self, name: str, value: str) -> None:
        """Attach an annotation attribute, queueing it for write-back if it changed."""
        if self.attrs.get(name) == value:
            return
        self.attrs[name] = value
        self.pending_annotations[name] = value

    # -- Tree navigation -----------------------------------------------------

    @property
    def element_children(self) -> list[UIElementNode]:
        return [c for c in self.children if isinstance(c, UIElementNode)]

    @property
    def text_content(self) -> str:
        """Concatenated text of all light-DOM descendants (DOM ``textContent``)."""
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, TextNode):
                parts.append(child.text)
            else:
                parts.append(child.text_content)
        return "".join(parts)

    def ancestors(self) -> Iterator[UIElementNode]:
        """Yield enclosing elements, nearest first, stopping at a shadow-root boundary."""
        node = self
        while node.parent is not None and not node.in_shadow_root:
            node = node.parent
            yield node

    def closest(self, predicate: Callable[[UIElementNode], bool]) -> UIElementNode | None:
        """Return self or the nearest ancestor matching *predicate* (DOM ``closest``)."""
        if predicate(self):
            return self
        for ancestor in self.ancestors():
            if predicate(ancestor):
                return ancestor
        return None

    def iter_elements(self) -> Iterator[UIElementNode]:
        """Pre-order walk over this element and every descendant, shadow trees included."""
        yield self
        if self.shadow_children:
            for child in self.shadow_children:
                if isinstance(child, UIElementNode):
                    yield from child.iter_elements()
        for child in self.children:
            if isinstance(child, UIElementNode):
                yield from child.iter_elements()

    def find_first(self, predicate: Callable[[UIElementNode], bool]) -> UIElementNode | None:
        """Return the first descendant (excluding self) matching *predicate* in document order."""
        for node in self.iter_elements():
            if node is not self and predicate(node):
                return node
        return None


Node = UIElementNode | TextNode


def node_from_dict(data: dict[str, Any], parent: UIElementNode | None = None, in_shadow_root: bool = False) -> Node:
    """Build a node tree from the JSON structure returned by CAPTURE_SCRIPT."""
    if "text" in data and "tag" not in data:
        return TextNode(text=str(data["text"]), parent=parent)

    raw_value = data.get("value")
    node = UIElementNode(
        tag=str(data.get("tag", "")).lower(),
        attrs={str(k): str(v) for k, v in (data.get("attrs") or {}).items()},
        visible=bool(data.get("visible", True)),
        value=None if raw_value is None else str(raw_value),
        checked=bool(data.get("checked", False)),
        file_count=int(data.get("file_count", 0) or 0),
        selected_index=int(data.get("selected_index", -1)),
        ref=data.get("ref"),
        parent=parent,
        in_shadow_root=in_shadow_root,
    )
    node.children = [node_from_dict(c, parent=node) for c in data.get("children") or []]
    if data.get("shadow_children") is not None:
        node.shadow_children = [node_from_dict(c, parent=node, in_shadow_root=True) for c in data["shadow_children"]]
    return node


def capture_tree(page: Page) -> UIElementNode | None:
    """Capture the live ``document.body`` as a UIElementNode tree.

    Returns None when the page has no body yet.
    """
    raw = page.evaluate(CAPTURE_SCRIPT)
    if not raw:
        logger.warning("Page has no <body>; nothing to capture")
        return None
    root = node_from_dict(raw)
    if not isinstance(root, UIElementNode):
        return None
    return root


def write_annotations(page: Page, root: UIElementNode) -> int:
    """Write queued annotations back onto the live elements they were captured from.

    Returns the number of elements updated.  Nodes without a ``ref`` (built
    outside a capture) keep their annotations locally only.
    """
    updates: list[dict[str, Any]] = []
    touched: list[UIElementNode] = []
    for node in root.iter_elements():
        if node.pending_annotations and node.ref is not None:
            updates.append({"ref": node.ref, "attrs": dict(node.pending_annotations)})
            touched.append(node)
    if not updates:
        return 0

    applied = page.evaluate(ANNOTATE_SCRIPT, updates)
    for node in touched:
        node.pending_annotations.clear()
    if applied != len(updates):
        logger.warning(
            "Annotated %s of %d elements; the page changed during distillation",
            applied,
            len(updates),
        )
    return int(applied or 0)
