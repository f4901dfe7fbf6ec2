from __future__ import annotations

import asyncio
import re
from typing import Awaitable, Callable, Sequence

from domain.dom import DomNode, PageSnapshot, collapse_whitespace
from domain.models import AdvanceResult, AdvanceVocabulary, AutofillTimings
from domain.ports import LoggerPort, PagePort

_HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})


def normalize_control_label(value: str) -> str:
    return collapse_whitespace(value.replace("&", " and ")).lower()


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(normalize_control_label(phrase))}\b")


def control_label(node: DomNode) -> str:
    if node.tag == "input":
        raw = node.get("value") or node.get("aria-label") or ""
    else:
        raw = node.clean_text() or node.get("aria-label") or node.get("value") or ""
    return normalize_control_label(raw)


def _is_clickable(node: DomNode) -> bool:
    if node.tag == "button":
        return True
    if node.tag == "input":
        return node.input_type in ("submit", "button")
    return node.role == "button"


def step_signature(snapshot: PageSnapshot) -> str:
    """Path plus the first visible heading; changes when a wizard moves on."""
    heading = snapshot.find(
        lambda n: (n.tag in _HEADING_TAGS or n.role == "heading") and n.is_visible() and bool(n.clean_text())
    )
    return f"{snapshot.path}|{heading.clean_text() if heading is not None else ''}"


class AdvanceVocabularyMatcher:
    """Decides whether a control label is a safe "next step" control."""

    def __init__(self, vocabulary: AdvanceVocabulary) -> None:
        self._allowed = [_phrase_pattern(p) for p in vocabulary.allowed]
        self._blocked = [_phrase_pattern(p) for p in vocabulary.blocked]
        self._preferred = _phrase_pattern(vocabulary.preferred)

    def is_blocked(self, label: str) -> bool:
        return any(p.search(label) for p in self._blocked)

    def is_allowed(self, label: str) -> bool:
        if not label or self.is_blocked(label):
            return False
        return any(p.search(label) for p in self._allowed)

    def is_preferred(self, label: str) -> bool:
        return self._preferred.search(label) is not None


class StepAdvancer:
    """
    Clicks a safe advance control and reports whether the step changed.

    Never clicks anything whose label carries a blocked word, even when it
    also carries an allowed one.
    """

    def __init__(
        self,
        *,
        page: PagePort,
        logger: LoggerPort,
        vocabulary: AdvanceVocabulary | None = None,
        timings: AutofillTimings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._page = page
        self._logger = logger
        self._matcher = AdvanceVocabularyMatcher(vocabulary or AdvanceVocabulary())
        self._timings = timings or AutofillTimings()
        self._sleep = sleep

    def find_advance_control(
        self,
        snapshot: PageSnapshot,
        container_handle: int | None = None,
    ) -> tuple[DomNode, str] | None:
        scopes: list[DomNode] = []
        container = snapshot.element(container_handle) if container_handle is not None else None
        if container is not None:
            scopes.append(container)
        scopes.append(snapshot.root)

        for scope in scopes:
            candidates = self._candidates(scope)
            if candidates:
                preferred = next((c for c in candidates if self._matcher.is_preferred(c[1])), None)
                return preferred or candidates[0]
        return None

    def _candidates(self, scope: DomNode) -> Sequence[tuple[DomNode, str]]:
        found = []
        for node in scope.iter_descendants():
            if not _is_clickable(node) or node.disabled or not node.is_visible():
                continue
            label = control_label(node)
            if self._matcher.is_allowed(label):
                found.append((node, label))
        return found

    async def advance(self, container_handle: int | None = None) -> AdvanceResult:
        snapshot = await self._page.snapshot()
        before = step_signature(snapshot)
        choice = self.find_advance_control(snapshot, container_handle)
        if choice is None:
            self._logger.info("advance_control_not_found", url=snapshot.url)
            return AdvanceResult(
                clicked=False,
                moved=False,
                reason="No safe advance control found",
                signature_before=before,
                signature_after=before,
            )

        control, label = choice
        await self._page.click(control.handle)
        self._logger.info("advance_clicked", label=label, url=snapshot.url)

        after = before
        for _ in range(max(self._timings.advance_poll_attempts, 1)):
            await self._sleep(self._timings.advance_poll_interval)
            after = step_signature(await self._page.snapshot())
            if after != before:
                return AdvanceResult(
                    clicked=True,
                    moved=True,
                    reason="Moved to the next step",
                    label=label,
                    signature_before=before,
                    signature_after=after,
                )

        self._logger.warning("advance_step_unchanged", label=label, signature=before)
        return AdvanceResult(
            clicked=True,
            moved=False,
            reason="Clicked but the step did not change",
            label=label,
            signature_before=before,
            signature_after=after,
        )


__all__ = [
    "StepAdvancer",
    "AdvanceVocabularyMatcher",
    "step_signature",
    "control_label",
    "normalize_control_label",
]
