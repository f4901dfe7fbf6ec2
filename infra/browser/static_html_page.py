from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from domain.dom import TEXT_TAG, DomNode, PageSnapshot
from domain.models import FILLED_MARKER_ATTRIBUTE
from infra.dom.html_snapshot import HtmlSnapshotParser, option_value

ADVISORY_ATTRIBUTE = "data-autofill-advisory"

PageListener = Callable[["StaticHtmlPage", DomNode], None]


@dataclass(frozen=True)
class PageAction:
    kind: str
    handle: int
    detail: str = ""


class StaticHtmlPage:
    """
    Deterministic page adapter over an in-memory HTML document.

    Writes mutate the element tree the way a browser would and every call
    is recorded in ``actions``. Listeners registered with ``on`` stand in
    for page scripts (validation messages, wizard navigation).
    """

    def __init__(
        self,
        html: str,
        *,
        url: str,
        title: str | None = None,
        parser: HtmlSnapshotParser | None = None,
    ) -> None:
        self._parser = parser or HtmlSnapshotParser()
        self._snapshot = self._parser.parse(html, url=url, title=title)
        self._next_handle = self._max_handle() + 1
        self._listeners: dict[tuple[int, str], list[PageListener]] = defaultdict(list)
        self._mutation_callbacks: list[Callable[[], None]] = []
        self.actions: list[PageAction] = []

    @property
    def url(self) -> str:
        return self._snapshot.url

    # -- scripting helpers ---------------------------------------------------

    def element_by_id(self, element_id: str) -> DomNode:
        node = self._snapshot.get_element_by_id(element_id)
        if node is None:
            raise KeyError(f"No element with id {element_id!r}")
        return node

    def on(self, element_id: str, event_type: str, listener: PageListener) -> None:
        self._listeners[(self.element_by_id(element_id).handle, event_type)].append(listener)

    def set_attribute(self, element_id: str, name: str, value: str | None) -> None:
        node = self.element_by_id(element_id)
        if value is None:
            node.attrs.pop(name, None)
        else:
            node.attrs[name] = value
        self._mutated()

    def set_visible(self, element_id: str, visible: bool) -> None:
        self.element_by_id(element_id).visible = visible
        self._mutated()

    def replace_inner_html(self, element_id: str, html: str) -> None:
        target = self.element_by_id(element_id)
        for child in list(target.children):
            child.remove()
        for node in self._parse_fragment(html):
            target.append(node)
        self._mutated()

    def remove_element(self, element_id: str) -> None:
        self.element_by_id(element_id).remove()
        self._mutated()

    def navigate(self, html: str, *, url: str | None = None, title: str | None = None) -> None:
        """Replace the whole document; handles of the old one stop resolving."""
        self._snapshot = self._parser.parse(
            html,
            url=url or self._snapshot.url,
            title=title,
            first_handle=self._next_handle,
        )
        self._next_handle = max(self._next_handle, self._max_handle() + 1)
        self._listeners.clear()
        self._mutated()

    def events_for(self, handle: int) -> list[str]:
        return [a.detail for a in self.actions if a.kind == "event" and a.handle == handle]

    # -- PagePort ------------------------------------------------------------

    async def snapshot(self) -> PageSnapshot:
        self._snapshot.reindex()
        return self._snapshot

    async def is_attached(self, handle: int) -> bool:
        self._snapshot.reindex()
        return self._snapshot.element(handle) is not None

    async def focus(self, handle: int) -> None:
        self._record("focus", handle)

    async def blur(self, handle: int) -> None:
        self._record("blur", handle)

    async def set_value(self, handle: int, value: str) -> None:
        node = self._element(handle)
        if node is None:
            return
        node.value = value
        self._record("set_value", handle, value)

    async def select_index(self, handle: int, index: int) -> None:
        node = self._element(handle)
        if node is None:
            return
        options = node.find_all(lambda n: n.tag == "option")
        for position, option in enumerate(options):
            option.selected = position == index
        if 0 <= index < len(options):
            node.value = option_value(options[index])
        self._record("select_index", handle, str(index))

    async def is_checked(self, handle: int) -> bool:
        node = self._element(handle)
        return node.checked if node is not None else False

    async def set_checked(self, handle: int, checked: bool) -> None:
        node = self._element(handle)
        if node is None:
            return
        self._check(node, checked)
        self._record("set_checked", handle, "true" if checked else "false")

    async def dispatch_event(self, handle: int, event_type: str, event_class: str = "Event") -> None:
        node = self._element(handle)
        if node is None:
            return
        self._record("event", handle, event_type if event_class == "Event" else f"{event_class}:{event_type}")
        self._fire(node, event_type)

    async def click(self, handle: int) -> None:
        node = self._element(handle)
        if node is None:
            return
        self._record("click", handle)
        if node.tag == "input" and node.input_type == "checkbox":
            self._check(node, not node.checked)
        elif node.tag == "input" and node.input_type == "radio":
            self._check(node, True)
        elif node.role == "option":
            self._choose_option(node)
        self._fire(node, "click")

    async def mark_filled(self, handle: int) -> None:
        node = self._element(handle)
        if node is None:
            return
        node.attrs[FILLED_MARKER_ATTRIBUTE] = "true"
        self._record("mark_filled", handle)

    async def flag_upload(self, handle: int, message: str) -> None:
        node = self._element(handle)
        if node is None or node.parent is None:
            return
        advisory = DomNode("div", {ADVISORY_ATTRIBUTE: "true", "class": "autofill-upload-advisory"})
        advisory.handle = self._allocate_handle()
        advisory.append(DomNode(TEXT_TAG, text=message))
        siblings = node.parent.children
        siblings.insert(siblings.index(node) + 1, advisory)
        advisory.parent = node.parent
        self._record("flag_upload", handle, message)
        self._mutated()

    async def clear_highlights(self) -> None:
        for node in self._snapshot.find_all(lambda n: n.has(FILLED_MARKER_ATTRIBUTE)):
            node.attrs.pop(FILLED_MARKER_ATTRIBUTE, None)
        for node in self._snapshot.find_all(lambda n: n.has(ADVISORY_ATTRIBUTE)):
            node.remove()
        self._record("clear_highlights", 0)
        self._mutated()

    # -- MutationSourcePort --------------------------------------------------

    async def observe_mutations(self, callback: Callable[[], None]) -> None:
        self._mutation_callbacks.append(callback)

    async def stop_observing(self) -> None:
        self._mutation_callbacks.clear()

    # -- internal helpers ----------------------------------------------------

    def _element(self, handle: int) -> DomNode | None:
        self._snapshot.reindex()
        return self._snapshot.element(handle)

    def _record(self, kind: str, handle: int, detail: str = "") -> None:
        self.actions.append(PageAction(kind=kind, handle=handle, detail=detail))

    def _fire(self, node: DomNode, event_type: str) -> None:
        for listener in list(self._listeners.get((node.handle, event_type), ())):
            listener(self, node)

    def _check(self, node: DomNode, checked: bool) -> None:
        node.checked = checked
        name = node.get("name")
        if checked and node.input_type == "radio" and name:
            scope = node.closest(lambda n: n.tag == "form") or self._snapshot.root
            for other in scope.find_all(
                lambda n: n.tag == "input" and n.input_type == "radio" and n.get("name") == name
            ):
                if other is not node:
                    other.checked = False

    def _choose_option(self, option: DomNode) -> None:
        listbox = option.closest(lambda n: n.role == "listbox")
        if listbox is not None:
            for other in listbox.find_all(lambda n: n.role == "option"):
                other.attrs["aria-selected"] = "false"
        option.attrs["aria-selected"] = "true"
        if listbox is None or not listbox.id:
            return
        control = self._snapshot.find(lambda n: n.get("aria-controls") == listbox.id)
        if control is None:
            return
        label = option.clean_text()
        if control.tag == "input":
            control.value = label
        else:
            control.attrs["aria-valuetext"] = label

    def _parse_fragment(self, html: str) -> list[DomNode]:
        fragment = self._parser.parse(html, url=self._snapshot.url, first_handle=self._next_handle)
        nodes = list(fragment.root.children)
        for node in nodes:
            node.parent = None
        fragment.root.children.clear()
        self._next_handle = max(
            [self._next_handle] + [n.handle + 1 for top in nodes for n in [top, *top.iter_descendants()]]
        )
        return nodes

    def _allocate_handle(self) -> int:
        handle = self._next_handle
        self._next_handle += 1
        return handle

    def _max_handle(self) -> int:
        self._snapshot.reindex()
        return max((n.handle for n in self._snapshot.root.iter_descendants()), default=0)

    def _mutated(self) -> None:
        self._snapshot.reindex()
        for callback in list(self._mutation_callbacks):
            callback()
