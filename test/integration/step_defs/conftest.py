"""Shared fixtures and context for BDD step definitions."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from domain.models import AdvanceResult, AnswerBatch, AutofillReport, AutofillTimings
from domain.services import (
    AutofillOrchestrator,
    FieldInjector,
    FormDetector,
    PreferenceService,
    SessionOptions,
    StepAdvancer,
    ValidationInspector,
)
from infra.browser import StaticHtmlPage
from test.mocks import (
    FixedClock,
    InMemoryKeyValueStore,
    InMemoryLogger,
    ScriptedAnswerService,
    SequentialIdGenerator,
)

PAGE_URL = "https://careers.example.test/apply"


@dataclass
class AutofillCtx:
    """Holds mutable state shared across BDD steps."""

    page: StaticHtmlPage | None = None
    script: list[AnswerBatch] = field(default_factory=list)
    max_rounds: int = 2
    logger: InMemoryLogger = field(default_factory=InMemoryLogger)
    service: ScriptedAnswerService | None = None
    report: AutofillReport | None = None
    advance: AdvanceResult | None = None


@pytest.fixture()
def ctx() -> AutofillCtx:
    return AutofillCtx()


def field_id_for(label: str) -> str:
    return label.strip().lower().replace(" ", "_")


def form_page(labels: list[str]) -> StaticHtmlPage:
    rows = "\n".join(
        f'<div><label for="{field_id_for(label)}">{label}</label>'
        f'<input type="text" id="{field_id_for(label)}" required>'
        f'<span id="{field_id_for(label)}-error" class="field-error" hidden></span></div>'
        for label in labels
    )
    html = (
        f'<html><body><form id="apply"><h2>Your details</h2>{rows}'
        '<button type="button" id="next">Next</button></form></body></html>'
    )
    return StaticHtmlPage(html, url=PAGE_URL)


def build_advancer(ctx: AutofillCtx) -> StepAdvancer:
    assert ctx.page is not None
    return StepAdvancer(page=ctx.page, logger=ctx.logger, timings=AutofillTimings.immediate())


def run_session(ctx: AutofillCtx, *, advance: bool = False) -> None:
    """Run one orchestrated session synchronously for tests."""
    assert ctx.page is not None
    page = ctx.page
    clock = FixedClock(datetime(2025, 6, 1, tzinfo=timezone.utc))
    timings = AutofillTimings.immediate()
    detector = FormDetector(clock=clock, logger=ctx.logger)
    ctx.service = ScriptedAnswerService(ctx.script)
    orchestrator = AutofillOrchestrator(
        page=page,
        answer_service=ctx.service,
        detector=detector,
        injector=FieldInjector(page=page, logger=ctx.logger, timings=timings),
        inspector=ValidationInspector(logger=ctx.logger),
        advancer=build_advancer(ctx),
        preferences=PreferenceService(store=InMemoryKeyValueStore(), clock=clock),
        id_generator=SequentialIdGenerator(),
        logger=ctx.logger,
        timings=timings,
        max_rounds=ctx.max_rounds,
    )

    async def _run() -> AutofillReport:
        snapshot = await page.snapshot()
        detection = detector.detect(snapshot)
        assert detection is not None
        return await orchestrator.run(
            detection.primary,
            page_path=snapshot.path,
            options=SessionOptions(user_id="user-1", advance=advance),
        )

    ctx.report = asyncio.run(_run())
