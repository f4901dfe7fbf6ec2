"""Step definitions for safe step advancing.

Checks that only navigation controls (Next, Continue, Save & Continue) are
clicked and that submit-like controls are never chosen.
"""
from __future__ import annotations

import asyncio

from pytest_bdd import given, when, then, scenarios, parsers

from infra.browser import StaticHtmlPage
from test.fixtures import load_page

from .conftest import PAGE_URL, AutofillCtx, build_advancer

scenarios("../features/advance_safety.feature")


# -- Given ------------------------------------------------------------------


@given(parsers.parse('a step whose only button reads "{label}"'))
def given_single_button(ctx: AutofillCtx, label: str) -> None:
    ctx.page = StaticHtmlPage(
        f'<div role="main"><h2>Step one</h2><button type="button" id="only">{label}</button></div>',
        url=PAGE_URL,
    )


@given(parsers.parse('the "{name}" page'))
def given_fixture_page(ctx: AutofillCtx, name: str) -> None:
    ctx.page = StaticHtmlPage(load_page(name), url=PAGE_URL)


@given(parsers.parse('clicking "{element_id}" opens "{name}"'))
def given_navigation(ctx: AutofillCtx, element_id: str, name: str) -> None:
    ctx.page.on(element_id, "click", lambda page, node: page.navigate(load_page(name)))


# -- When -------------------------------------------------------------------


@when("the advancer looks for a control", target_fixture="choice")
def when_find(ctx: AutofillCtx):
    snapshot = asyncio.run(ctx.page.snapshot())
    return build_advancer(ctx).find_advance_control(snapshot)


@when("the step is advanced")
def when_advanced(ctx: AutofillCtx) -> None:
    ctx.advance = asyncio.run(build_advancer(ctx).advance())


# -- Then -------------------------------------------------------------------


@then(parsers.parse("the control is {verdict}"))
def then_verdict(choice, verdict: str) -> None:
    if verdict == "chosen":
        assert choice is not None
        assert choice[0].id == "only"
    else:
        assert choice is None


@then(parsers.parse('"{label}" is chosen'))
def then_label_chosen(choice, label: str) -> None:
    assert choice is not None
    assert choice[1] == label


@then(parsers.parse('the step moved from "{before}" to "{after}"'))
def then_moved(ctx: AutofillCtx, before: str, after: str) -> None:
    assert ctx.advance.moved
    assert ctx.advance.signature_before.endswith(f"|{before}")
    assert ctx.advance.signature_after.endswith(f"|{after}")


@then("the step did not move")
def then_not_moved(ctx: AutofillCtx) -> None:
    assert ctx.advance.clicked
    assert not ctx.advance.moved


@then("nothing was clicked")
def then_nothing_clicked(ctx: AutofillCtx) -> None:
    assert not ctx.advance.clicked
    assert not any(a.kind == "click" for a in ctx.page.actions)


@then(parsers.parse('the reason is "{reason}"'))
def then_reason(ctx: AutofillCtx, reason: str) -> None:
    assert ctx.advance.reason == reason
