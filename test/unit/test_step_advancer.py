from __future__ import annotations

import asyncio

from domain.models import AdvanceVocabulary, AutofillTimings
from domain.services import AdvanceVocabularyMatcher, StepAdvancer, step_signature
from infra.browser import StaticHtmlPage
from infra.dom import parse_html
from test.fixtures import load_page
from test.mocks import InMemoryLogger

URL = "https://globex.wd5.myworkdayjobs.test/apply"


def _advancer(page: StaticHtmlPage, logger: InMemoryLogger | None = None) -> StepAdvancer:
    return StepAdvancer(page=page, logger=logger or InMemoryLogger(), timings=AutofillTimings.immediate())


def test_blocked_words_always_win() -> None:
    matcher = AdvanceVocabularyMatcher(AdvanceVocabulary())
    assert not matcher.is_allowed("submit and continue")
    assert not matcher.is_allowed("apply and continue")
    assert matcher.is_allowed("continue")
    assert matcher.is_allowed("save and continue")
    assert not matcher.is_allowed("continued reading")
    assert not matcher.is_allowed("")


def test_preferred_control_is_chosen_over_blocked_and_plain_matches() -> None:
    snapshot = parse_html(load_page("wizard_step.html"), url=URL)
    page = StaticHtmlPage(load_page("wizard_step.html"), url=URL)
    container = snapshot.get_element_by_id("wizard")

    node, label = _advancer(page).find_advance_control(snapshot, container.handle)

    assert node.id == "save-continue"
    assert label == "save and continue"


def test_disabled_and_hidden_controls_are_skipped() -> None:
    snapshot = parse_html(
        """
        <html><body>
          <button id="a" disabled>Next</button>
          <button id="b" style="display:none">Continue</button>
          <div role="button" id="c">Next step</div>
        </body></html>
        """,
        url=URL,
    )
    page = StaticHtmlPage("<html></html>", url=URL)
    node, label = _advancer(page).find_advance_control(snapshot)
    assert node.id == "c"
    assert label == "next step"


def test_input_controls_use_their_value_as_label() -> None:
    snapshot = parse_html('<html><body><input type="submit" id="go" value="Continue"></body></html>', url=URL)
    page = StaticHtmlPage("<html></html>", url=URL)
    node, _ = _advancer(page).find_advance_control(snapshot)
    assert node.id == "go"


def test_advance_reports_move_when_step_changes() -> None:
    page = StaticHtmlPage(load_page("wizard_step.html"), url=URL)
    page.on("save-continue", "click", lambda p, node: p.navigate(load_page("review_step.html")))
    logger = InMemoryLogger()

    result = asyncio.run(_advancer(page, logger).advance(page.element_by_id("wizard").handle))

    assert result.clicked and result.moved
    assert result.label == "save and continue"
    assert result.signature_before == "/apply|My Information"
    assert result.signature_after == "/apply|Review"
    assert "advance_clicked" in logger.messages()


def test_advance_reports_unchanged_step() -> None:
    page = StaticHtmlPage(load_page("wizard_step.html"), url=URL)
    logger = InMemoryLogger()

    result = asyncio.run(_advancer(page, logger).advance())

    assert result.clicked
    assert not result.moved
    assert result.reason == "Clicked but the step did not change"
    assert "advance_step_unchanged" in logger.messages()


def test_review_step_has_no_safe_control() -> None:
    page = StaticHtmlPage(load_page("review_step.html"), url=URL)

    result = asyncio.run(_advancer(page).advance())

    assert not result.clicked
    assert result.reason == "No safe advance control found"
    assert not any(a.kind == "click" for a in page.actions)


def test_step_signature_uses_first_visible_heading() -> None:
    snapshot = parse_html(
        "<html><body><h1 hidden>Old</h1><h2>Contact</h2></body></html>",
        url="https://example.test/apply/step-2?x=1",
    )
    assert step_signature(snapshot) == "/apply/step-2|Contact"
