from __future__ import annotations

from domain.dom import DomNode, PageSnapshot
from domain.models import DetectedForm, FieldType, FormField, ValidationDelta
from domain.ports import LoggerPort

MAX_GROUP_DEPTH = 3

_INVALID_CLASS_FRAGMENTS = ("invalid", "error")


def _has_error_class(node: DomNode) -> bool:
    return any(fragment in token.lower() for token in node.class_list for fragment in _INVALID_CLASS_FRAGMENTS)


def _is_error_element(node: DomNode) -> bool:
    if node.role == "alert":
        return True
    return _has_error_class(node) or "error" in node.id.lower()


def _member_handles(form_field: FormField) -> set[int]:
    handles = {form_field.element_handle}
    if form_field.type is FieldType.RADIO_GROUP:
        handles.update(o.element_handle for o in form_field.options if o.element_handle is not None)
    return handles


class ValidationInspector:
    """
    Computes which fields of a freshly detected container still fail
    validation after an injection pass.
    """

    def __init__(self, *, logger: LoggerPort) -> None:
        self._logger = logger

    def inspect(self, form: DetectedForm, snapshot: PageSnapshot) -> ValidationDelta:
        handles_by_field = {f.id: _member_handles(f) for f in form.fields}
        field_ids: list[str] = []
        required_ids: list[str] = []
        messages: list[str] = []

        for form_field in form.fields:
            members = [
                node
                for node in (snapshot.element(h) for h in sorted(handles_by_field[form_field.id]))
                if node is not None
            ]
            if not members:
                continue
            other_handles = set().union(
                *(handles for field_id, handles in handles_by_field.items() if field_id != form_field.id)
            )

            field_messages = self._error_messages(members, snapshot, other_handles)
            required_empty = (
                form_field.required
                and not form_field.value
                and any(node.is_visible() for node in members)
            )
            invalid = any(self._has_invalid_marker(node) for node in members)

            if not (required_empty or invalid or field_messages):
                continue
            field_ids.append(form_field.id)
            if form_field.required:
                required_ids.append(form_field.id)
            if not field_messages and required_empty:
                field_messages = [f"{form_field.label}: required field is empty"]
            for message in field_messages:
                if message not in messages:
                    messages.append(message)

        delta = ValidationDelta(
            field_ids=tuple(field_ids),
            required_field_ids=tuple(required_ids),
            messages=tuple(messages),
        )
        if not delta.is_clean:
            self._logger.info(
                "validation_delta_computed",
                unresolved=list(delta.field_ids),
                required_unresolved=list(delta.required_field_ids),
            )
        return delta

    @staticmethod
    def _has_invalid_marker(node: DomNode) -> bool:
        if node.attr_lower("aria-invalid") == "true" or node.attr_lower("data-invalid") == "true":
            return True
        return _has_error_class(node)

    def _error_messages(
        self,
        members: list[DomNode],
        snapshot: PageSnapshot,
        other_handles: set[int],
    ) -> list[str]:
        found: list[str] = []

        def add(node: DomNode | None, *, require_error_look: bool) -> None:
            if node is None or not node.is_visible():
                return
            if require_error_look and not _is_error_element(node):
                return
            text = node.clean_text()
            if text and text not in found:
                found.append(text)

        for member in members:
            for element_id in (member.get("aria-errormessage") or "").split():
                add(snapshot.get_element_by_id(element_id), require_error_look=False)
            for element_id in (member.get("aria-describedby") or "").split():
                add(snapshot.get_element_by_id(element_id), require_error_look=True)

        group = self._question_group(members, snapshot, other_handles)
        if group is not None:
            member_ids = {id(node) for node in members}
            for node in group.find_all(_is_error_element):
                if id(node) in member_ids or any(node.contains(m) for m in members):
                    continue
                add(node, require_error_look=False)
        return found

    @staticmethod
    def _question_group(
        members: list[DomNode],
        snapshot: PageSnapshot,
        other_handles: set[int],
    ) -> DomNode | None:
        """Highest ancestor, at most three levels up, holding no other field."""
        others = [node for node in (snapshot.element(h) for h in other_handles) if node is not None]
        group: DomNode | None = None
        candidate = members[0]
        for _ in range(MAX_GROUP_DEPTH):
            candidate = candidate.parent
            if candidate is None or candidate.tag in ("form", "body", "html"):
                break
            if not all(candidate.contains(m) for m in members):
                continue
            if any(candidate.contains(other) for other in others):
                break
            group = candidate
        return group


__all__ = ["ValidationInspector"]
