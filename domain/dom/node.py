"""In-process element tree for one scanned page.

Adapters build the tree (from a live browser snapshot or a static HTML
document) and the detection services only ever read it. Every element
gets an integer handle; fields refer back to their element through that
handle instead of holding the node itself.
"""

from __future__ import annotations

import re
from typing import Callable, Iterator
from urllib.parse import urlparse

TEXT_TAG = "#text"

_WHITESPACE = re.compile(r"\s+")
_NON_TEXT_TAGS = frozenset({"script", "style", "noscript", "template"})

NodePredicate = Callable[["DomNode"], bool]


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


class DomNode:
    """One element (or text run) of the scanned page.

    ``value``, ``checked``, ``selected`` and ``visible`` mirror the live
    element state at snapshot time, which markup attributes alone do not
    carry once a user or a script has touched the control.
    """

    __slots__ = (
        "tag",
        "attrs",
        "children",
        "parent",
        "handle",
        "text",
        "value",
        "checked",
        "selected",
        "visible",
    )

    def __init__(
        self,
        tag: str,
        attrs: dict[str, str] | None = None,
        *,
        text: str = "",
        handle: int = 0,
    ) -> None:
        self.tag = tag.lower()
        self.attrs: dict[str, str] = dict(attrs or {})
        self.children: list[DomNode] = []
        self.parent: DomNode | None = None
        self.handle = handle
        self.text = text
        self.value = ""
        self.checked = False
        self.selected = False
        self.visible = True

    def __repr__(self) -> str:
        if self.is_text:
            return f"DomNode(#text {self.text[:20]!r})"
        return f"DomNode(<{self.tag}> handle={self.handle})"

    # -- attributes ---------------------------------------------------------

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name.lower(), default)

    def has(self, name: str) -> bool:
        return name.lower() in self.attrs

    def attr_lower(self, name: str) -> str:
        return (self.attrs.get(name.lower()) or "").strip().lower()

    @property
    def id(self) -> str:
        return self.attrs.get("id", "")

    @property
    def role(self) -> str:
        return self.attr_lower("role")

    @property
    def input_type(self) -> str:
        """Declared ``type`` of an ``<input>``; browsers default it to text."""
        if self.tag != "input":
            return ""
        return self.attr_lower("type") or "text"

    @property
    def class_list(self) -> list[str]:
        return (self.attrs.get("class") or "").split()

    @property
    def disabled(self) -> bool:
        return self.has("disabled") or self.attr_lower("aria-disabled") == "true"

    # -- tree structure -----------------------------------------------------

    def append(self, child: DomNode) -> DomNode:
        child.parent = self
        self.children.append(child)
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    def elements(self) -> list[DomNode]:
        return [child for child in self.children if not child.is_text]

    def iter_descendants(self) -> Iterator[DomNode]:
        """Descendant elements in document order, excluding ``self``."""
        stack = list(reversed(self.elements()))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.elements()))

    def find_all(self, predicate: NodePredicate) -> list[DomNode]:
        return [node for node in self.iter_descendants() if predicate(node)]

    def find(self, predicate: NodePredicate) -> DomNode | None:
        for node in self.iter_descendants():
            if predicate(node):
                return node
        return None

    def ancestors(self) -> Iterator[DomNode]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def closest(self, predicate: NodePredicate) -> DomNode | None:
        """Like ``Element.closest``: ``self`` first, then its ancestors."""
        if predicate(self):
            return self
        for node in self.ancestors():
            if predicate(node):
                return node
        return None

    def contains(self, other: DomNode) -> bool:
        return other is self or any(node is self for node in other.ancestors())

    def next_sibling(self) -> DomNode | None:
        if self.parent is None:
            return None
        siblings = self.parent.children
        index = siblings.index(self)
        return siblings[index + 1] if index + 1 < len(siblings) else None

    def root(self) -> DomNode:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    # -- text ---------------------------------------------------------------

    def text_content(self, *, exclude: NodePredicate | None = None) -> str:
        """Concatenated text of the subtree.

        ``exclude`` drops whole subtrees, e.g. a control nested inside the
        label being read.
        """
        parts: list[str] = []
        self._collect_text(parts, exclude)
        return "".join(parts)

    def _collect_text(self, parts: list[str], exclude: NodePredicate | None) -> None:
        if self.is_text:
            parts.append(self.text)
            return
        if self.tag in _NON_TEXT_TAGS:
            return
        for child in self.children:
            if exclude is not None and not child.is_text and exclude(child):
                continue
            child._collect_text(parts, exclude)

    def clean_text(self) -> str:
        return collapse_whitespace(self.text_content())

    def markup_text(self) -> str:
        """Lower-cased text plus attribute values, standing in for innerHTML."""
        parts = [self.text_content()]
        for node in self.iter_descendants():
            parts.extend(node.attrs.values())
        return " ".join(parts).lower()

    # -- state --------------------------------------------------------------

    def is_visible(self) -> bool:
        if not self.visible:
            return False
        return all(node.visible for node in self.ancestors())


class PageSnapshot:
    """A scanned page: the element tree plus its handle table."""

    def __init__(self, root: DomNode, *, url: str, title: str = "") -> None:
        self.root = root
        self.url = url
        self.title = title
        self._by_handle: dict[int, DomNode] = {}
        self.reindex()

    def reindex(self) -> None:
        self._by_handle = {self.root.handle: self.root}
        for node in self.root.iter_descendants():
            self._by_handle[node.handle] = node

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"

    @property
    def domain(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def body(self) -> DomNode:
        if self.root.tag == "body":
            return self.root
        return self.root.find(lambda node: node.tag == "body") or self.root

    def element(self, handle: int) -> DomNode | None:
        """Resolve a handle; ``None`` once the element left the document."""
        node = self._by_handle.get(handle)
        if node is None or node.root() is not self.root:
            return None
        return node

    def get_element_by_id(self, element_id: str) -> DomNode | None:
        if not element_id:
            return None
        return self.root.find(lambda node: node.id == element_id)

    def find_all(self, predicate: NodePredicate) -> list[DomNode]:
        return self.root.find_all(predicate)

    def find(self, predicate: NodePredicate) -> DomNode | None:
        return self.root.find(predicate)
