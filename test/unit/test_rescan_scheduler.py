from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from app import build_facade
from domain.errors import ServiceUnavailableError
from domain.models import AppConfig, AutofillTimings
from domain.services.preferences import PREFERENCES_KEY, USER_PROFILE_KEY
from infra.browser import StaticHtmlPage
from test.mocks import (
    FixedClock,
    InMemoryKeyValueStore,
    InMemoryLogger,
    ScriptedAnswerService,
    SequentialIdGenerator,
    batch,
)

URL = "https://careers.example.test/apply"

FORM = """
<html><body>
<form id="apply">
  <div><label for="full_name">Full name</label><input type="text" id="full_name" required></div>
  <div><label for="email">Email</label><input type="email" id="email" required></div>
  <div id="extra"></div>
</form>
</body></html>
"""


def _setup(script=(), *, auto_fill: bool = True, user_id: str | None = "user-7"):
    page = StaticHtmlPage(FORM, url=URL)
    initial = {PREFERENCES_KEY: {"autoFill": auto_fill}}
    if user_id:
        initial[USER_PROFILE_KEY] = {"id": user_id, "name": "Ada"}
    store = InMemoryKeyValueStore(initial)
    service = ScriptedAnswerService(list(script))
    logger = InMemoryLogger()
    facade = build_facade(
        page=page,
        answer_service=service,
        store=store,
        config=AppConfig(answer_service_url="https://answers.test", timings=AutofillTimings.immediate()),
        clock=FixedClock(datetime(2025, 6, 1, tzinfo=timezone.utc)),
        id_generator=SequentialIdGenerator(),
        logger=logger,
        mutations=page,
    )
    return page, service, logger, facade


def test_start_fills_each_new_form_once() -> None:
    page, service, logger, facade = _setup([batch({"full_name": "Ada Lovelace", "email": "ada@example.com"})])
    scheduler = facade.scheduler

    async def _run():
        await scheduler.start()
        await scheduler.wait_idle()
        scheduler.notify()
        await scheduler.wait_idle()

    asyncio.run(_run())

    assert service.call_count == 1
    assert service.requests[0].user_id == "user-7"
    assert service.requests[0].user_profile == {"id": "user-7", "name": "Ada"}
    assert page.element_by_id("full_name").value == "Ada Lovelace"
    assert "autofill_session_completed" in logger.messages()


def test_disabled_auto_fill_only_detects() -> None:
    page, service, logger, facade = _setup(auto_fill=False)
    scheduler = facade.scheduler

    async def _run():
        result = await scheduler.start()
        await scheduler.wait_idle()
        return result

    result = asyncio.run(_run())

    assert result is not None
    assert service.call_count == 0


def test_missing_user_skips_session() -> None:
    page, service, logger, facade = _setup(user_id=None)

    async def _run():
        await facade.scheduler.start()
        await facade.scheduler.wait_idle()

    asyncio.run(_run())

    assert service.call_count == 0
    assert ("warning", "autofill_skipped_no_user") in [(level, msg) for level, msg, _ in logger.events]


def test_scan_is_skipped_while_a_session_runs() -> None:
    page, service, logger, facade = _setup()

    async def _run():
        claimed = facade._state.claim()
        await facade.scheduler.scan()
        facade._state.release()
        return claimed

    assert asyncio.run(_run())
    assert service.call_count == 0
    assert "rescan_skipped_in_progress" in logger.messages()


def test_page_mutation_triggers_rescan() -> None:
    page, service, logger, facade = _setup(auto_fill=False)
    scheduler = facade.scheduler

    async def _run():
        await scheduler.start()
        page.replace_inner_html(
            "extra", '<label for="city">City</label><input type="text" id="city">'
        )
        assert scheduler.has_pending_scan
        await scheduler.wait_idle()

    asyncio.run(_run())

    detection = facade._state.last_detection
    assert [f.id for f in detection.primary.fields] == ["full_name", "email", "city"]


def test_reset_allows_the_same_form_to_be_filled_again() -> None:
    page, service, logger, facade = _setup([batch({"full_name": "Ada"}), batch({"full_name": "Ada"})])
    scheduler = facade.scheduler

    async def _run():
        await scheduler.start()
        await scheduler.wait_idle()
        response = await facade.handle("reset_processed_forms")
        scheduler.notify()
        await scheduler.wait_idle()
        return response

    response = asyncio.run(_run())

    assert response.success
    assert "processed_forms_reset" in logger.messages()
    assert service.call_count == 2
    assert sum(1 for m in logger.messages() if m == "autofill_session_started") == 2


def test_failed_session_is_logged_and_releases_the_page() -> None:
    page, service, logger, facade = _setup([ServiceUnavailableError("Answer service unreachable: down")])

    async def _run():
        await facade.scheduler.start()
        await facade.scheduler.wait_idle()

    asyncio.run(_run())

    assert "auto_fill_session_failed" in logger.messages()
    assert not facade._state.in_progress
    assert len(facade._state.processed_signatures) == 1


def test_close_stops_observing_and_ignores_later_mutations() -> None:
    page, service, logger, facade = _setup(auto_fill=False)
    scheduler = facade.scheduler

    async def _run():
        await scheduler.start()
        await scheduler.close()
        page.set_attribute("full_name", "placeholder", "Jane Doe")
        scheduler.notify()
        return scheduler.has_pending_scan

    assert asyncio.run(_run()) is False


def test_unexpected_session_error_is_logged_and_scanning_continues() -> None:
    page, service, logger, facade = _setup([RuntimeError("renderer crashed")])

    async def _run():
        await facade.scheduler.start()
        await facade.scheduler.wait_idle()

    asyncio.run(_run())

    crashed = [fields for level, msg, fields in logger.events if msg == "auto_fill_session_crashed"]
    assert crashed == [{"error": "renderer crashed", "error_type": "RuntimeError"}]
    assert not facade._state.in_progress
    assert logger.messages().count("forms_detected") == 2
