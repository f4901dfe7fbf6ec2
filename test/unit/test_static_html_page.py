from __future__ import annotations

import asyncio

from domain.models import FILLED_MARKER_ATTRIBUTE
from infra.browser import StaticHtmlPage
from infra.browser.static_html_page import ADVISORY_ATTRIBUTE

URL = "https://jobs.example.com/apply"

PAGE = """
<html><body>
<form id="f">
  <input type="text" id="name">
  <input type="checkbox" id="terms">
  <input type="radio" name="remote" id="remote-yes" checked>
  <input type="radio" name="remote" id="remote-no">
  <select id="size"><option value="s">Small</option><option value="l">Large</option></select>
  <div><input type="file" id="cv"></div>
  <input type="text" id="team" role="combobox" aria-controls="teams">
  <ul id="teams" role="listbox"><li role="option" id="t-core">Core</li><li role="option" id="t-web">Web</li></ul>
</form>
</body></html>
"""


def _page() -> StaticHtmlPage:
    return StaticHtmlPage(PAGE, url=URL)


def test_writes_update_state_and_are_recorded() -> None:
    page = _page()
    name = page.element_by_id("name")

    async def _run():
        await page.focus(name.handle)
        await page.set_value(name.handle, "Ada")
        await page.dispatch_event(name.handle, "input", "InputEvent")
        await page.dispatch_event(name.handle, "change")

    asyncio.run(_run())

    assert name.value == "Ada"
    assert [a.kind for a in page.actions] == ["focus", "set_value", "event", "event"]
    assert page.events_for(name.handle) == ["InputEvent:input", "change"]


def test_clicks_toggle_checkboxes_and_radio_groups() -> None:
    page = _page()
    terms = page.element_by_id("terms")
    yes, no = page.element_by_id("remote-yes"), page.element_by_id("remote-no")

    async def _run():
        await page.click(terms.handle)
        await page.click(no.handle)
        return await page.is_checked(terms.handle)

    assert asyncio.run(_run()) is True
    assert no.checked and not yes.checked


def test_select_index_moves_the_selection() -> None:
    page = _page()
    size = page.element_by_id("size")
    asyncio.run(page.select_index(size.handle, 1))
    assert size.value == "l"
    assert [o.selected for o in size.find_all(lambda n: n.tag == "option")] == [False, True]


def test_option_click_updates_the_controlling_combobox() -> None:
    page = _page()
    asyncio.run(page.click(page.element_by_id("t-web").handle))
    assert page.element_by_id("team").value == "Web"
    assert page.element_by_id("t-web").get("aria-selected") == "true"
    assert page.element_by_id("t-core").get("aria-selected") == "false"


def test_markers_and_advisories_are_cleared() -> None:
    page = _page()
    name, cv = page.element_by_id("name"), page.element_by_id("cv")

    async def _run():
        await page.mark_filled(name.handle)
        await page.flag_upload(cv.handle, "Please upload: resume.pdf")
        snapshot = await page.snapshot()
        advisories = snapshot.find_all(lambda n: n.has(ADVISORY_ATTRIBUTE))
        await page.clear_highlights()
        after = await page.snapshot()
        return advisories, after

    advisories, after = asyncio.run(_run())

    assert [a.clean_text() for a in advisories] == ["Please upload: resume.pdf"]
    assert advisories[0].parent is None
    assert not after.find_all(lambda n: n.has(ADVISORY_ATTRIBUTE) or n.has(FILLED_MARKER_ATTRIBUTE))


def test_navigation_detaches_old_handles_and_drops_listeners() -> None:
    page = _page()
    old = page.element_by_id("name")
    clicks = []
    page.on("name", "click", lambda p, node: clicks.append(node.id))

    page.navigate('<html><body><input id="name"></body></html>', url="https://jobs.example.com/apply/2")

    async def _run():
        await page.click(old.handle)
        return await page.is_attached(old.handle), (await page.snapshot()).path

    attached, path = asyncio.run(_run())
    assert not attached
    assert path == "/apply/2"
    assert page.element_by_id("name").handle > old.handle
    assert clicks == []
    assert not any(a.kind == "click" for a in page.actions)


def test_mutations_reach_observers_until_stopped() -> None:
    page = _page()
    seen = []

    async def _run():
        await page.observe_mutations(lambda: seen.append("mutated"))
        page.remove_element("cv")
        page.set_visible("name", False)
        await page.stop_observing()
        page.set_attribute("name", "aria-invalid", "true")

    asyncio.run(_run())
    assert seen == ["mutated", "mutated"]
    assert page.element_by_id("name").get("aria-invalid") == "true"
