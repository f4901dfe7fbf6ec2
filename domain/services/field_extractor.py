from __future__ import annotations

import re
from dataclasses import replace
from typing import Callable, Sequence

from domain.dom import DomNode, PageSnapshot, collapse_whitespace
from domain.models import (
    FILLED_MARKER_ATTRIBUTE,
    UNNAMED_FIELD_LABEL,
    FieldType,
    FormField,
    SelectOption,
    ValidationRules,
)
from domain.services.control_checks import (
    BUTTON_INPUT_TYPES,
    is_candidate_control,
    is_custom_dropdown,
    is_native_control,
)
from domain.utils import humanize_name

_INPUT_TYPES: dict[str, FieldType] = {
    "text": FieldType.SHORT_TEXT,
    "search": FieldType.SHORT_TEXT,
    "password": FieldType.SHORT_TEXT,
    "email": FieldType.EMAIL,
    "tel": FieldType.PHONE,
    "url": FieldType.URL,
    "number": FieldType.NUMERIC,
    "range": FieldType.NUMERIC,
    "date": FieldType.DATE,
    "datetime-local": FieldType.DATE,
    "month": FieldType.DATE,
    "week": FieldType.DATE,
    "time": FieldType.DATE,
    "checkbox": FieldType.CHECKBOX,
    "radio": FieldType.RADIO_GROUP,
    "file": FieldType.FILE,
    "color": FieldType.OTHER,
}

_SKIPPED_NAME_FRAGMENTS = ("csrf", "token", "_method", "authenticity_token")
_GENERATED_ID = re.compile(r"^\d{10,}-[a-z0-9]{6,}$", re.IGNORECASE)
_REJECTED_LABELS = frozenset({"required", "optional", "select one", "select one required", "no required"})
_GENERIC_LABELS = frozenset({"", "unnamed field", "select one", "select one required", "required"})
_PROMPT_TAGS = frozenset({"label", "p", "h3", "h4", "span"})


def normalize_label(value: str) -> str:
    return collapse_whitespace(value.replace("*", ""))


def is_useful_label(value: str) -> bool:
    lowered = normalize_label(value).lower()
    if not lowered or lowered in _REJECTED_LABELS:
        return False
    return not lowered.startswith("select one")


def _dedupe_normalize(value: str) -> str:
    return collapse_whitespace(value).lower()


def _is_generic_label(label: str) -> bool:
    return _dedupe_normalize(label) in _GENERIC_LABELS


def descriptive_score(form_field: FormField) -> int:
    """How much a field says about its question; the richer duplicate wins."""
    score = 0
    if form_field.type is FieldType.SINGLE_SELECT:
        score += 5
    if form_field.options:
        score += 4
    if form_field.required:
        score += 2
    if not _is_generic_label(form_field.label):
        score += 2
    if form_field.name:
        score += 1
    if form_field.type is FieldType.SHORT_TEXT:
        score -= 1
    return score


def dedupe_fields(fields: Sequence[FormField]) -> list[FormField]:
    """Collapse logical duplicates, keeping the first-seen position of each key."""
    best: dict[str, FormField] = {}
    for form_field in fields:
        key_label = "" if _is_generic_label(form_field.label) else _dedupe_normalize(form_field.label)
        key = key_label or _dedupe_normalize(form_field.name) or _dedupe_normalize(form_field.id)
        existing = best.get(key)
        if existing is None or descriptive_score(form_field) > descriptive_score(existing):
            best[key] = form_field
    return list(best.values())


def _is_prompt_candidate(node: DomNode) -> bool:
    if node.tag in _PROMPT_TAGS:
        return True
    automation_id = node.get("data-automation-id") or ""
    if "label" in automation_id or "prompt" in automation_id:
        return True
    element_id = node.id
    return "label" in element_id or "prompt" in element_id


class FieldExtractor:
    """
    Walks one container and produces its deduplicated logical fields.

    Field ids are unique within one call; handles point back into the
    snapshot the container belongs to.
    """

    def extract(self, container: DomNode, snapshot: PageSnapshot) -> list[FormField]:
        candidates = [node for node in container.iter_descendants() if is_candidate_control(node)]
        popup_ids = {
            node.get("aria-controls")
            for node in candidates
            if node.get("aria-controls")
        }
        seen_radio_groups: set[str] = set()
        fields: list[FormField] = []

        for node in candidates:
            if not is_native_control(node) and node.role == "listbox" and node.id in popup_ids:
                continue
            if node.tag == "input" and node.input_type == "radio":
                group_key = node.get("name") or f"#{node.handle}"
                if group_key in seen_radio_groups:
                    continue
                seen_radio_groups.add(group_key)
                form_field = self._radio_group_field(node, container, snapshot)
            else:
                form_field = self._control_field(node, snapshot)
            if form_field is not None and not self._should_skip(form_field):
                fields.append(form_field)

        return self._with_unique_ids(dedupe_fields(fields))

    # -- single controls -----------------------------------------------------

    def _control_field(self, node: DomNode, snapshot: PageSnapshot) -> FormField | None:
        field_type = self.classify(node)
        if field_type is None:
            return None
        name = self._name_of(node)
        required = self._is_required(node)
        label = self.resolve_label(node, snapshot)
        placeholder = node.get("placeholder") or node.get("aria-placeholder") or ""
        if field_type is FieldType.CHECKBOX:
            value = "true" if node.checked else ""
        elif is_native_control(node):
            value = node.value
        else:
            value = self._pseudo_control_value(node, snapshot, label=label, placeholder=placeholder)
        options: tuple[SelectOption, ...] = ()
        if node.tag == "select":
            options = self._native_options(node)
        elif field_type is FieldType.SINGLE_SELECT:
            options = self._custom_options(node, snapshot, current=value)

        return FormField(
            id=node.id or node.get("name") or f"field-{node.handle}",
            name=name,
            label=label,
            type=field_type,
            element_handle=node.handle,
            required=required,
            placeholder=placeholder,
            options=options,
            value=value,
            validation=self._validation_of(node, required),
            attributes=dict(node.attrs),
            autofilled=node.get(FILLED_MARKER_ATTRIBUTE) == "true",
            tag=node.tag,
        )

    @staticmethod
    def classify(node: DomNode) -> FieldType | None:
        """Semantic type of a control; ``None`` for controls that are not questions."""
        if node.tag == "textarea":
            return FieldType.LONG_TEXT
        if node.tag == "input":
            input_type = node.input_type
            if input_type == "hidden" or input_type in BUTTON_INPUT_TYPES:
                return None
        if is_custom_dropdown(node) or node.tag == "select":
            return FieldType.SINGLE_SELECT
        if node.tag == "input":
            return _INPUT_TYPES.get(node.input_type, FieldType.SHORT_TEXT)
        return FieldType.SHORT_TEXT

    @staticmethod
    def _name_of(node: DomNode) -> str:
        return node.get("name") or node.get("data-automation-id") or ""

    @staticmethod
    def _is_required(node: DomNode) -> bool:
        return node.has("required") or node.attr_lower("aria-required") == "true"

    @staticmethod
    def _pseudo_control_value(
        node: DomNode,
        snapshot: PageSnapshot,
        *,
        label: str,
        placeholder: str,
    ) -> str:
        """Chosen text of an ARIA widget; prompts and boilerplate read as empty."""
        prompts = {
            normalize_label(text).lower()
            for text in (label, placeholder, node.get("aria-label") or "")
            if text
        }

        def chosen(text: str) -> str:
            text = normalize_label(text)
            if not is_useful_label(text) or text.lower() in prompts:
                return ""
            return text

        value = chosen(node.get("aria-valuetext") or "")
        if value:
            return value
        listbox = snapshot.get_element_by_id(node.get("aria-controls") or "")
        if listbox is not None:
            selected = listbox.find(
                lambda n: (n.role == "option" or n.tag == "option") and n.attr_lower("aria-selected") == "true"
            )
            if selected is not None:
                value = chosen(selected.clean_text())
                if value:
                    return value
        # widgets that render the choice as their own text
        return chosen(node.text_content(exclude=lambda n: n.role == "listbox"))

    @staticmethod
    def _validation_of(node: DomNode, required: bool) -> ValidationRules:
        def number(attr: str) -> float | None:
            raw = node.get(attr)
            try:
                return float(raw) if raw else None
            except ValueError:
                return None

        def integer(attr: str) -> int | None:
            value = number(attr)
            return int(value) if value is not None else None

        return ValidationRules(
            pattern=node.get("pattern") or None,
            min=number("min"),
            max=number("max"),
            min_length=integer("minlength"),
            max_length=integer("maxlength"),
            required=required,
        )

    # -- options -------------------------------------------------------------

    @staticmethod
    def _native_options(select: DomNode) -> tuple[SelectOption, ...]:
        options = []
        for option in select.find_all(lambda n: n.tag == "option"):
            text = option.clean_text()
            value = option.get("value")
            if value is None:
                value = text
            options.append(
                SelectOption(
                    value=value,
                    label=text or value,
                    selected=option.selected,
                    element_handle=option.handle,
                )
            )
        return tuple(options)

    @staticmethod
    def _custom_options(node: DomNode, snapshot: PageSnapshot, *, current: str) -> tuple[SelectOption, ...]:
        option_nodes: list[DomNode] = []
        controlled = snapshot.get_element_by_id(node.get("aria-controls") or "")
        if controlled is not None:
            option_nodes = controlled.find_all(lambda n: n.role == "option" or n.tag == "option")
        if not option_nodes:
            option_nodes = snapshot.find_all(
                lambda n: n.role == "option"
                or n.tag == "option"
                or "option" in (n.get("data-automation-id") or "")
            )

        current = current.lower()
        options = []
        for index, option in enumerate(option_nodes):
            label = option.clean_text() or (option.get("aria-label") or "").strip()
            if not label:
                continue
            options.append(
                SelectOption(
                    value=option.get("data-value") or label,
                    label=label,
                    selected=(
                        option.attr_lower("aria-selected") == "true"
                        or label.lower() == current
                        or index == 0
                    ),
                    element_handle=option.handle,
                )
            )
        return tuple(options)

    # -- radio groups --------------------------------------------------------

    def _radio_group_field(
        self,
        first: DomNode,
        container: DomNode,
        snapshot: PageSnapshot,
    ) -> FormField:
        name = first.get("name") or ""
        if name:
            members = container.find_all(
                lambda n: n.tag == "input" and n.input_type == "radio" and n.get("name") == name
            )
        else:
            members = [first]

        options = tuple(
            SelectOption(
                value=member.get("value") or "on",
                label=self._option_label(member, snapshot),
                selected=member.checked,
                element_handle=member.handle,
            )
            for member in members
        )
        checked = next((option for option in options if option.selected), None)
        required = any(self._is_required(member) for member in members)

        return FormField(
            id=first.id or name or f"field-{first.handle}",
            name=name or first.get("data-automation-id") or "",
            label=self._radio_group_label(first, members, snapshot),
            type=FieldType.RADIO_GROUP,
            element_handle=first.handle,
            required=required,
            options=options,
            value=checked.value if checked else "",
            validation=ValidationRules(required=required),
            attributes=dict(first.attrs),
            autofilled=any(m.get(FILLED_MARKER_ATTRIBUTE) == "true" for m in members),
        )

    def _option_label(self, member: DomNode, snapshot: PageSnapshot) -> str:
        for text in (
            self._label_for(member, snapshot),
            self._enclosing_label(member),
            member.get("aria-label") or "",
        ):
            if normalize_label(text):
                return normalize_label(text)
        sibling = member.next_sibling()
        if sibling is not None and sibling.is_text and sibling.text.strip():
            return normalize_label(sibling.text)
        return member.get("value") or "on"

    def _radio_group_label(
        self,
        first: DomNode,
        members: Sequence[DomNode],
        snapshot: PageSnapshot,
    ) -> str:
        radiogroup = first.closest(lambda n: n.role == "radiogroup")
        steps: list[Callable[[], str]] = []
        if radiogroup is not None:
            steps.append(lambda: self._labelled_by(radiogroup, snapshot))
            steps.append(lambda: radiogroup.get("aria-label") or "")
        steps.extend(
            [
                lambda: self._labelled_by(first, snapshot),
                lambda: self._legend(first),
                lambda: self._group_prompt(first, members),
                lambda: first.get("aria-label") or "",
                lambda: humanize_name(first.get("name") or ""),
            ]
        )
        return self._first_useful(steps)

    # -- labels --------------------------------------------------------------

    def resolve_label(self, node: DomNode, snapshot: PageSnapshot) -> str:
        """First usable text of the label chain, else ``UNNAMED_FIELD_LABEL``."""
        return self._first_useful(
            [
                lambda: self._labelled_by(node, snapshot),
                lambda: self._label_for(node, snapshot),
                lambda: self._enclosing_label(node),
                lambda: self._legend(node),
                lambda: self._group_prompt(node, [node]),
                lambda: node.get("aria-label") or "",
                lambda: node.get("placeholder") or "",
                lambda: humanize_name(node.get("name") or "") if is_native_control(node) else "",
            ]
        )

    @staticmethod
    def _first_useful(steps: Sequence[Callable[[], str]]) -> str:
        for step in steps:
            text = step()
            if text and is_useful_label(text):
                return normalize_label(text)
        return UNNAMED_FIELD_LABEL

    @staticmethod
    def _labelled_by(node: DomNode, snapshot: PageSnapshot) -> str:
        ids = (node.get("aria-labelledby") or "").split()
        parts = []
        for element_id in ids:
            target = snapshot.get_element_by_id(element_id)
            if target is not None and target.clean_text():
                parts.append(target.clean_text())
        return " ".join(parts)

    @staticmethod
    def _label_for(node: DomNode, snapshot: PageSnapshot) -> str:
        if not node.id:
            return ""
        label = snapshot.find(lambda n: n.tag == "label" and n.get("for") == node.id)
        return label.text_content(exclude=is_native_control) if label is not None else ""

    @staticmethod
    def _enclosing_label(node: DomNode) -> str:
        label = next((a for a in node.ancestors() if a.tag == "label"), None)
        if label is None:
            return ""
        return label.text_content(exclude=is_native_control)

    @staticmethod
    def _legend(node: DomNode) -> str:
        fieldset = next((a for a in node.ancestors() if a.tag == "fieldset"), None)
        if fieldset is None:
            return ""
        legend = fieldset.find(lambda n: n.tag == "legend")
        return legend.text_content() if legend is not None else ""

    @staticmethod
    def _group_prompt(node: DomNode, members: Sequence[DomNode]) -> str:
        group = node.closest(lambda n: "question" in (n.get("data-automation-id") or ""))
        group = group or node.closest(lambda n: "formField" in (n.get("data-automation-id") or ""))
        group = group or node.closest(lambda n: n.role == "group")
        if group is None:
            group = next(
                (a for a in node.ancestors() if all(a.contains(m) for m in members)),
                None,
            )
        if group is None:
            return ""

        def is_prompt(candidate: DomNode) -> bool:
            if not _is_prompt_candidate(candidate):
                return False
            # an option's own label does not name the question
            return len(members) == 1 or not any(candidate.contains(m) for m in members)

        prompt = group.find(is_prompt)
        return prompt.text_content() if prompt is not None else ""

    # -- policy --------------------------------------------------------------

    @staticmethod
    def _should_skip(form_field: FormField) -> bool:
        lowered_name = form_field.name.lower()
        if any(fragment in lowered_name for fragment in _SKIPPED_NAME_FRAGMENTS):
            return True
        anonymous = _GENERATED_ID.match(form_field.id) is not None and not form_field.attributes.get("name")
        unlabeled = not form_field.has_label and not form_field.placeholder
        return anonymous and unlabeled

    @staticmethod
    def _with_unique_ids(fields: Sequence[FormField]) -> list[FormField]:
        seen: dict[str, int] = {}
        unique: list[FormField] = []
        for form_field in fields:
            count = seen.get(form_field.id, 0) + 1
            seen[form_field.id] = count
            if count > 1:
                candidate = f"{form_field.id}-{count}"
                while candidate in seen:
                    count += 1
                    candidate = f"{form_field.id}-{count}"
                seen[candidate] = 1
                form_field = replace(form_field, id=candidate)
            unique.append(form_field)
        return unique


__all__ = [
    "FieldExtractor",
    "dedupe_fields",
    "descriptive_score",
    "normalize_label",
    "is_useful_label",
]
