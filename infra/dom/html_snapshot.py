from __future__ import annotations

import re

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from domain.dom import TEXT_TAG, DomNode, PageSnapshot

STATE_PREFIX = "data-jf-"
HANDLE_ATTRIBUTE = "data-jf-handle"
VALUE_ATTRIBUTE = "data-jf-value"
CHECKED_ATTRIBUTE = "data-jf-checked"
SELECTED_ATTRIBUTE = "data-jf-selected"
VISIBLE_ATTRIBUTE = "data-jf-visible"

_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)


class HtmlSnapshotParser:
    """
    Turns an HTML document into a ``PageSnapshot``.

    Live element state captured by the browser adapter travels as
    ``data-jf-*`` attributes; without them (a static document) the state is
    derived from markup the way a freshly loaded page would show it.
    """

    def __init__(self, *, parser: str = "html.parser") -> None:
        self._parser = parser

    def parse(
        self,
        html: str,
        *,
        url: str,
        title: str | None = None,
        first_handle: int = 1,
    ) -> PageSnapshot:
        """Parse a document; new handles start at ``first_handle``."""
        soup = BeautifulSoup(html, self._parser)
        root = DomNode("#document", handle=0)
        next_handle = [max(self._max_handle(soup) + 1, first_handle)]
        for child in soup.children:
            self._convert(child, root, next_handle)
        self._default_select_state(root)
        if title is None:
            title = soup.title.get_text(strip=True) if soup.title is not None else ""
        return PageSnapshot(root, url=url, title=title)

    @staticmethod
    def _max_handle(soup: BeautifulSoup) -> int:
        highest = 0
        for tag in soup.find_all(attrs={HANDLE_ATTRIBUTE: True}):
            raw = tag.get(HANDLE_ATTRIBUTE)
            if isinstance(raw, str) and raw.isdigit():
                highest = max(highest, int(raw))
        return highest

    def _convert(self, source: object, parent: DomNode, next_handle: list[int]) -> None:
        if isinstance(source, PreformattedString):
            return
        if isinstance(source, NavigableString):
            parent.append(DomNode(TEXT_TAG, text=str(source)))
            return
        if not isinstance(source, Tag):
            return

        attrs: dict[str, str] = {}
        for key, raw in source.attrs.items():
            attrs[key.lower()] = " ".join(raw) if isinstance(raw, list) else str(raw)

        handle_raw = attrs.get(HANDLE_ATTRIBUTE, "")
        if handle_raw.isdigit():
            handle = int(handle_raw)
        else:
            handle = next_handle[0]
            next_handle[0] += 1

        state = {k: attrs.pop(k) for k in list(attrs) if k.startswith(STATE_PREFIX)}
        node = DomNode(source.name, attrs, handle=handle)
        parent.append(node)
        for child in source.children:
            self._convert(child, node, next_handle)
        self._apply_state(node, state)

    @staticmethod
    def _apply_state(node: DomNode, state: dict[str, str]) -> None:
        if VALUE_ATTRIBUTE in state:
            node.value = state[VALUE_ATTRIBUTE]
        elif node.tag == "input":
            node.value = node.get("value") or ""
        elif node.tag == "textarea":
            node.value = node.text_content()

        if CHECKED_ATTRIBUTE in state:
            node.checked = state[CHECKED_ATTRIBUTE] == "true"
        else:
            node.checked = node.has("checked")

        if SELECTED_ATTRIBUTE in state:
            node.selected = state[SELECTED_ATTRIBUTE] == "true"
        else:
            node.selected = node.has("selected")

        if VISIBLE_ATTRIBUTE in state:
            node.visible = state[VISIBLE_ATTRIBUTE] != "false"
        else:
            node.visible = not (
                node.has("hidden")
                or _HIDDEN_STYLE.search(node.get("style") or "") is not None
                or node.input_type == "hidden"
            )

    @staticmethod
    def _default_select_state(root: DomNode) -> None:
        for select in root.find_all(lambda n: n.tag == "select"):
            options = select.find_all(lambda n: n.tag == "option")
            if not options:
                continue
            if not any(option.selected for option in options) and not select.has("multiple"):
                options[0].selected = True
            if select.value:
                continue
            chosen = next((option for option in options if option.selected), None)
            if chosen is not None:
                select.value = option_value(chosen)


def option_value(option: DomNode) -> str:
    value = option.get("value")
    return value if value is not None else option.clean_text()


def parse_html(html: str, *, url: str, title: str | None = None) -> PageSnapshot:
    return HtmlSnapshotParser().parse(html, url=url, title=title)
