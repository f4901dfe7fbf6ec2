from __future__ import annotations

import asyncio
import re
from typing import Awaitable, Callable, Mapping, Sequence

from domain.errors import (
    ElementDetachedError,
    InjectionError,
    NoMatchingOptionError,
    UnsupportedFieldTypeError,
)
from domain.models import (
    TEXT_LIKE_TYPES,
    AutofillTimings,
    FieldType,
    FillSummary,
    FormField,
    InjectionResult,
    InjectionStatus,
    SelectOption,
)
from domain.ports import LoggerPort, PagePort

TRUTHY_VALUES = frozenset({"true", "yes", "1", "on", "checked"})

_WORD = re.compile(r"[a-z0-9']+")

Sleep = Callable[[float], Awaitable[None]]


def match_option(options: Sequence[SelectOption], value: str) -> int | None:
    """Index of the option an answer designates: exact first, then containment."""
    for index, option in enumerate(options):
        if option.value == value or option.label == value:
            return index
    lowered = value.lower()
    for index, option in enumerate(options):
        if lowered in option.label.lower() or lowered in option.value.lower():
            return index
    return None


def match_radio(options: Sequence[SelectOption], value: str) -> int | None:
    """Index of the radio an answer designates.

    Passes, in order: exact value or label, case-insensitive equality,
    label containment, every word of the answer present in the label.
    """
    for index, option in enumerate(options):
        if option.value == value or option.label == value:
            return index
    lowered = value.strip().lower()
    for index, option in enumerate(options):
        if option.value.lower() == lowered or option.label.lower() == lowered:
            return index
    for index, option in enumerate(options):
        if lowered and lowered in option.label.lower():
            return index
    words = set(_WORD.findall(lowered))
    if words:
        for index, option in enumerate(options):
            if words <= set(_WORD.findall(option.label.lower())):
                return index
    return None


class FieldInjector:
    """
    Writes answers into page controls the way a framework-rendered page
    expects a user to: focus, set through the native setter, fire the
    events frameworks listen to, blur.
    """

    def __init__(
        self,
        *,
        page: PagePort,
        logger: LoggerPort,
        timings: AutofillTimings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._page = page
        self._logger = logger
        self._timings = timings or AutofillTimings()
        self._sleep = sleep

    async def inject_answers(
        self,
        fields: Sequence[FormField],
        answers: Mapping[str, str],
    ) -> FillSummary:
        results: list[InjectionResult] = []
        for form_field in fields:
            answer = answers.get(form_field.id) or (answers.get(form_field.name) if form_field.name else None)
            if not answer:
                results.append(InjectionResult(field_id=form_field.id, status=InjectionStatus.SKIPPED))
                continue

            try:
                status = await self.inject_field(form_field, answer)
                results.append(InjectionResult(field_id=form_field.id, status=status, value=answer))
            except InjectionError as exc:
                self._logger.warning(
                    "field_injection_failed",
                    field_id=form_field.id,
                    field_type=form_field.type.value,
                    error=str(exc),
                )
                results.append(
                    InjectionResult(field_id=form_field.id, status=InjectionStatus.FAILED, error=str(exc))
                )

            await self._sleep(self._timings.inter_field_delay)

        summary = FillSummary.from_results(results, total=len(fields))
        self._logger.info(
            "answers_injected",
            total=summary.total,
            filled=summary.filled,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    async def inject_field(self, form_field: FormField, value: str) -> InjectionStatus:
        """Write one answer; raises ``InjectionError`` subclasses on failure.

        File fields never raise: they get an upload advisory and report
        ``SKIPPED``.
        """
        if form_field.type is FieldType.FILE:
            return await self._flag_upload(form_field, value)

        await self._ensure_attached(form_field, form_field.element_handle)
        if form_field.type in TEXT_LIKE_TYPES:
            await self._set_text(form_field, value, ("input", "change", "blur"), extended=True)
        elif form_field.type is FieldType.LONG_TEXT:
            await self._set_text(form_field, value, ("input", "change", "blur"), extended=False)
        elif form_field.type is FieldType.SINGLE_SELECT and form_field.tag == "select":
            await self._set_native_select(form_field, value)
        elif form_field.type is FieldType.SINGLE_SELECT:
            await self._set_custom_dropdown(form_field, value)
        elif form_field.type is FieldType.RADIO_GROUP:
            await self._set_radio(form_field, value)
            return InjectionStatus.FILLED
        elif form_field.type is FieldType.CHECKBOX:
            await self._set_checkbox(form_field, value)
        else:
            raise UnsupportedFieldTypeError(form_field.type.value)

        await self._page.mark_filled(form_field.element_handle)
        return InjectionStatus.FILLED

    async def clear_highlights(self) -> None:
        await self._page.clear_highlights()

    # -- per-type writers ----------------------------------------------------

    async def _set_text(
        self,
        form_field: FormField,
        value: str,
        events: Sequence[str],
        *,
        extended: bool,
    ) -> None:
        handle = form_field.element_handle
        await self._focus_and_settle(form_field, handle)
        await self._page.set_value(handle, "")
        await self._page.set_value(handle, value)
        for event_type in events:
            await self._page.dispatch_event(handle, event_type)
        if extended:
            await self._page.dispatch_event(handle, "input", "InputEvent")
            await self._page.dispatch_event(handle, "focusout", "FocusEvent")
        await self._settle_and_blur(form_field, handle)

    async def _set_native_select(self, form_field: FormField, value: str) -> None:
        handle = form_field.element_handle
        await self._focus_and_settle(form_field, handle)
        index = match_option(form_field.options, value)
        if index is None:
            raise NoMatchingOptionError(value)
        await self._page.select_index(handle, index)
        await self._page.dispatch_event(handle, "change")
        await self._page.dispatch_event(handle, "blur")
        await self._settle_and_blur(form_field, handle)

    async def _set_custom_dropdown(self, form_field: FormField, value: str) -> None:
        handle = form_field.element_handle
        index = match_option(form_field.options, value)
        if index is None:
            raise NoMatchingOptionError(value)
        option = form_field.options[index]

        await self._page.click(handle)
        await self._sleep(self._timings.focus_delay)
        await self._ensure_attached(form_field, handle)

        if option.element_handle is not None and await self._page.is_attached(option.element_handle):
            await self._page.click(option.element_handle)
        else:
            await self._page.set_value(handle, option.label)
            await self._page.dispatch_event(handle, "input")
            await self._page.dispatch_event(handle, "change")
        await self._sleep(self._timings.focus_delay)
        await self._ensure_attached(form_field, handle)

    async def _set_radio(self, form_field: FormField, value: str) -> None:
        index = match_radio(form_field.options, value)
        if index is None:
            raise NoMatchingOptionError(value, kind="radio button")
        member = form_field.options[index].element_handle
        if member is None:
            member = form_field.element_handle
        await self._ensure_attached(form_field, member)

        await self._focus_and_settle(form_field, member)
        await self._page.set_checked(member, True)
        await self._page.dispatch_event(member, "change")
        await self._page.dispatch_event(member, "click", "MouseEvent")
        await self._settle_and_blur(form_field, member)
        await self._page.mark_filled(member)

    async def _set_checkbox(self, form_field: FormField, value: str) -> None:
        handle = form_field.element_handle
        await self._focus_and_settle(form_field, handle)
        should_check = value.strip().lower() in TRUTHY_VALUES
        if await self._page.is_checked(handle) != should_check:
            await self._page.set_checked(handle, should_check)
            await self._page.dispatch_event(handle, "change")
            await self._page.dispatch_event(handle, "click", "MouseEvent")
        await self._settle_and_blur(form_field, handle)

    async def _flag_upload(self, form_field: FormField, value: str) -> InjectionStatus:
        if await self._page.is_attached(form_field.element_handle):
            await self._page.flag_upload(form_field.element_handle, f"Please upload: {value}")
        self._logger.info("file_upload_required", field_id=form_field.id, label=form_field.label)
        return InjectionStatus.SKIPPED

    # -- suspend points ------------------------------------------------------

    async def _ensure_attached(self, form_field: FormField, handle: int) -> None:
        if not await self._page.is_attached(handle):
            raise ElementDetachedError(form_field.id)

    async def _focus_and_settle(self, form_field: FormField, handle: int) -> None:
        await self._page.focus(handle)
        await self._sleep(self._timings.focus_delay)
        await self._ensure_attached(form_field, handle)

    async def _settle_and_blur(self, form_field: FormField, handle: int) -> None:
        await self._sleep(self._timings.focus_delay)
        await self._ensure_attached(form_field, handle)
        await self._page.blur(handle)


__all__ = ["FieldInjector", "TRUTHY_VALUES", "match_option", "match_radio"]
