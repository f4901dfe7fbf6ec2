"""Predicates over elements shared by extraction, injection and validation."""

from __future__ import annotations

from typing import Callable, Sequence

from domain.dom import DomNode

NATIVE_CONTROL_TAGS = frozenset({"input", "textarea", "select"})
BUTTON_INPUT_TYPES = frozenset({"submit", "button", "reset", "image"})
TEXT_LIKE_INPUT_TYPES = frozenset({"text", "search", ""})
PSEUDO_CONTROL_ROLES = frozenset({"combobox", "listbox"})


def is_native_control(node: DomNode) -> bool:
    return node.tag in NATIVE_CONTROL_TAGS


def is_text_like_input(node: DomNode) -> bool:
    return node.tag == "input" and node.attr_lower("type") in TEXT_LIKE_INPUT_TYPES


def is_candidate_control(node: DomNode) -> bool:
    """Native controls plus ARIA pseudo-controls."""
    if is_native_control(node):
        return True
    return node.role in PSEUDO_CONTROL_ROLES or node.attr_lower("aria-haspopup") == "listbox"


def count_controls(container: DomNode) -> int:
    return sum(1 for node in container.iter_descendants() if is_native_control(node))


# -- custom dropdown capability chain -----------------------------------------


def _has_dropdown_role(node: DomNode) -> bool:
    return node.role in PSEUDO_CONTROL_ROLES


def _opens_listbox(node: DomNode) -> bool:
    return node.attr_lower("aria-haspopup") == "listbox"


def _inside_combobox(node: DomNode) -> bool:
    nearest = next((a for a in node.ancestors() if a.has("role")), None)
    return nearest is not None and nearest.role == "combobox"


def _list_autocomplete(node: DomNode) -> bool:
    return is_text_like_input(node) and node.attr_lower("aria-autocomplete") in ("list", "both")


def _controls_expandable_popup(node: DomNode) -> bool:
    return is_text_like_input(node) and bool(node.get("aria-controls")) and node.has("aria-expanded")


def _automation_id_mentions_dropdown(node: DomNode) -> bool:
    automation_id = node.attr_lower("data-automation-id")
    return "select" in automation_id or "dropdown" in automation_id


def _class_mentions_dropdown(node: DomNode) -> bool:
    class_name = node.attr_lower("class")
    return "combobox" in class_name or "dropdown" in class_name


CUSTOM_DROPDOWN_CHECKS: Sequence[tuple[str, Callable[[DomNode], bool]]] = (
    ("dropdown_role", _has_dropdown_role),
    ("listbox_popup", _opens_listbox),
    ("inside_combobox", _inside_combobox),
    ("list_autocomplete", _list_autocomplete),
    ("controls_expandable_popup", _controls_expandable_popup),
    ("automation_id", _automation_id_mentions_dropdown),
    ("class_name", _class_mentions_dropdown),
)


def custom_dropdown_reason(node: DomNode) -> str | None:
    """Name of the first capability check the element passes, if any.

    Native ``<select>`` and ``<textarea>`` are never custom dropdowns, and
    neither are inputs whose declared type is not text-like.
    """
    if node.tag in ("select", "textarea"):
        return None
    if node.tag == "input" and node.input_type not in ("text", "search"):
        return None
    for name, check in CUSTOM_DROPDOWN_CHECKS:
        if check(node):
            return name
    return None


def is_custom_dropdown(node: DomNode) -> bool:
    return custom_dropdown_reason(node) is not None


__all__ = [
    "NATIVE_CONTROL_TAGS",
    "BUTTON_INPUT_TYPES",
    "CUSTOM_DROPDOWN_CHECKS",
    "is_native_control",
    "is_text_like_input",
    "is_candidate_control",
    "count_controls",
    "custom_dropdown_reason",
    "is_custom_dropdown",
]
