from __future__ import annotations

from typing import Any, Callable

from domain.dom import PageSnapshot
from infra.dom.html_snapshot import HtmlSnapshotParser

# Handle registry shared by every script below. Elements are tagged lazily
# on snapshot and resolved through a WeakRef, so a handle never keeps an
# element alive and stops resolving once the element leaves the document.
_REGISTRY_JS = """
window.__autofill = window.__autofill || { ids: new WeakMap(), els: new Map(), next: 1 };
window.__autofillResolve = window.__autofillResolve || ((id) => {
  const ref = window.__autofill.els.get(id);
  const el = ref ? ref.deref() : undefined;
  return el && el.isConnected ? el : null;
});
"""

_SNAPSHOT_JS = """
() => {
  const state = window.__autofill;
  const root = document.documentElement;
  const clone = root.cloneNode(true);
  const originals = [root, ...root.querySelectorAll('*')];
  const copies = [clone, ...clone.querySelectorAll('*')];
  originals.forEach((el, i) => {
    let id = state.ids.get(el);
    if (id === undefined) {
      id = state.next++;
      state.ids.set(el, id);
      state.els.set(id, new WeakRef(el));
    }
    const copy = copies[i];
    copy.setAttribute('data-jf-handle', String(id));
    const tag = el.tagName;
    if (tag === 'INPUT' || tag === 'TEXTAREA' || tag === 'SELECT') {
      copy.setAttribute('data-jf-value', el.value ?? '');
    }
    if (tag === 'INPUT') copy.setAttribute('data-jf-checked', el.checked ? 'true' : 'false');
    if (tag === 'OPTION') copy.setAttribute('data-jf-selected', el.selected ? 'true' : 'false');
    if (tag !== 'OPTION') {
      const visible = typeof el.checkVisibility === 'function'
        ? el.checkVisibility({ checkVisibilityCSS: true })
        : !!(el.offsetWidth || el.offsetHeight || el.getClientRects().length);
      copy.setAttribute('data-jf-visible', visible ? 'true' : 'false');
    }
  });
  return { html: clone.outerHTML, url: location.href, title: document.title };
}
"""

_IS_ATTACHED_JS = "(id) => window.__autofillResolve(id) !== null"
_FOCUS_JS = "(id) => { const el = window.__autofillResolve(id); if (el) el.focus(); }"
_BLUR_JS = "(id) => { const el = window.__autofillResolve(id); if (el) el.blur(); }"
_IS_CHECKED_JS = "(id) => { const el = window.__autofillResolve(id); return !!(el && el.checked); }"

_SET_VALUE_JS = """
([id, value]) => {
  const el = window.__autofillResolve(id);
  if (!el) return;
  const proto = el instanceof HTMLTextAreaElement ? HTMLTextAreaElement.prototype
    : el instanceof HTMLSelectElement ? HTMLSelectElement.prototype
    : HTMLInputElement.prototype;
  const setter = Object.getOwnPropertyDescriptor(proto, 'value')?.set;
  if ('value' in el && setter) {
    setter.call(el, value);
  } else if ('value' in el) {
    el.value = value;
  } else {
    el.textContent = value;
  }
}
"""

_SELECT_INDEX_JS = """
([id, index]) => {
  const el = window.__autofillResolve(id);
  if (el) el.selectedIndex = index;
}
"""

_SET_CHECKED_JS = """
([id, checked]) => {
  const el = window.__autofillResolve(id);
  if (el) el.checked = checked;
}
"""

_DISPATCH_JS = """
([id, type, eventClass]) => {
  const el = window.__autofillResolve(id);
  if (!el) return;
  const Ctor = typeof window[eventClass] === 'function' ? window[eventClass] : Event;
  const init = type === 'focusout' ? { bubbles: true } : { bubbles: true, cancelable: true };
  el.dispatchEvent(new Ctor(type, init));
}
"""

_CLICK_FALLBACK_JS = "(id) => { const el = window.__autofillResolve(id); if (el) el.click(); }"

_MARK_FILLED_JS = """
(id) => {
  const el = window.__autofillResolve(id);
  if (!el) return;
  el.style.backgroundColor = '#D1FAE5';
  el.style.border = '2px solid #10B981';
  el.setAttribute('data-autofill-filled', 'true');
  const mark = document.createElement('span');
  mark.setAttribute('data-autofill-check', 'true');
  mark.textContent = '\\u2713';
  mark.style.cssText = 'position:absolute;color:#10B981;font-weight:bold;margin-left:-20px;z-index:1000;';
  el.parentElement?.appendChild(mark);
}
"""

_FLAG_UPLOAD_JS = """
([id, message]) => {
  const el = window.__autofillResolve(id);
  if (!el) return;
  const notice = document.createElement('div');
  notice.setAttribute('data-autofill-advisory', 'true');
  notice.textContent = message;
  const rect = el.getBoundingClientRect();
  notice.style.cssText = 'position:absolute;background:#FEF3C7;border:1px solid #F59E0B;'
    + 'border-radius:4px;padding:8px 12px;font-size:12px;color:#92400E;z-index:10000;';
  notice.style.top = `${rect.bottom + window.scrollY + 5}px`;
  notice.style.left = `${rect.left + window.scrollX}px`;
  document.body.appendChild(notice);
  setTimeout(() => notice.remove(), 5000);
  el.style.border = '2px solid #F59E0B';
  el.style.backgroundColor = '#FEF3C7';
}
"""

_CLEAR_HIGHLIGHTS_JS = """
() => {
  document.querySelectorAll('[data-autofill-filled="true"]').forEach((el) => {
    el.style.backgroundColor = '';
    el.style.border = '';
    el.removeAttribute('data-autofill-filled');
  });
  document.querySelectorAll('[data-autofill-check], [data-autofill-advisory]').forEach((el) => el.remove());
}
"""

_OBSERVER_JS = """
(() => {
  const install = () => {
    if (!document.body || window.__autofillObserver) return;
    window.__autofillObserver = new MutationObserver(() => window.__autofillMutated());
    window.__autofillObserver.observe(document.body, { childList: true, subtree: true });
  };
  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', install);
  } else {
    install();
  }
})();
"""

_DISCONNECT_JS = """
() => {
  if (window.__autofillObserver) {
    window.__autofillObserver.disconnect();
    window.__autofillObserver = undefined;
  }
}
"""


class PlaywrightPage:
    """
    Playwright-backed implementation of ``PagePort`` and ``MutationSourcePort``.

    Requires ``playwright`` to be installed and browsers set up via
    ``playwright install chromium``.

    The adapter drives a single Chromium page. Call ``close()`` when
    finished.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        parser: HtmlSnapshotParser | None = None,
        click_timeout_ms: int = 5_000,
    ) -> None:
        self._headless = headless
        self._parser = parser or HtmlSnapshotParser()
        self._click_timeout_ms = click_timeout_ms
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None
        self._mutation_callback: Callable[[], None] | None = None
        self._exposed = False

    async def launch(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self._headless)
        self._page = await self._browser.new_page()
        await self._page.add_init_script(_REGISTRY_JS)

    async def close(self) -> None:
        if self._page:
            await self._page.close()
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()

    def _ensure_page(self) -> Any:
        if self._page is None:
            raise RuntimeError("Browser not launched. Call launch() first.")
        return self._page

    # -- navigation ---------------------------------------------------------

    async def goto(self, url: str) -> None:
        page = self._ensure_page()
        await page.goto(url, wait_until="domcontentloaded")

    async def wait_for_load(self) -> None:
        page = self._ensure_page()
        await page.wait_for_load_state("networkidle", timeout=15_000)

    async def _evaluate(self, script: str, arg: Any = None) -> Any:
        page = self._ensure_page()
        # pages opened before launch() finished have no registry yet
        await page.evaluate(f"() => {{ {_REGISTRY_JS} }}")
        return await page.evaluate(script, arg)

    # -- PagePort -----------------------------------------------------------

    async def snapshot(self) -> PageSnapshot:
        payload = await self._evaluate(_SNAPSHOT_JS)
        return self._parser.parse(payload["html"], url=payload["url"], title=payload["title"])

    async def is_attached(self, handle: int) -> bool:
        return bool(await self._evaluate(_IS_ATTACHED_JS, handle))

    async def focus(self, handle: int) -> None:
        await self._evaluate(_FOCUS_JS, handle)

    async def blur(self, handle: int) -> None:
        await self._evaluate(_BLUR_JS, handle)

    async def set_value(self, handle: int, value: str) -> None:
        await self._evaluate(_SET_VALUE_JS, [handle, value])

    async def select_index(self, handle: int, index: int) -> None:
        await self._evaluate(_SELECT_INDEX_JS, [handle, index])

    async def is_checked(self, handle: int) -> bool:
        return bool(await self._evaluate(_IS_CHECKED_JS, handle))

    async def set_checked(self, handle: int, checked: bool) -> None:
        await self._evaluate(_SET_CHECKED_JS, [handle, checked])

    async def dispatch_event(self, handle: int, event_type: str, event_class: str = "Event") -> None:
        await self._evaluate(_DISPATCH_JS, [handle, event_type, event_class])

    async def click(self, handle: int) -> None:
        from playwright.async_api import Error as PlaywrightError

        page = self._ensure_page()
        js_handle = await page.evaluate_handle("(id) => window.__autofillResolve(id)", handle)
        element = js_handle.as_element()
        if element is None:
            await js_handle.dispose()
            return
        try:
            await element.click(timeout=self._click_timeout_ms)
        except PlaywrightError:
            # covered or animating widgets still accept a synthetic click
            await self._evaluate(_CLICK_FALLBACK_JS, handle)
        finally:
            await js_handle.dispose()

    async def mark_filled(self, handle: int) -> None:
        await self._evaluate(_MARK_FILLED_JS, handle)

    async def flag_upload(self, handle: int, message: str) -> None:
        await self._evaluate(_FLAG_UPLOAD_JS, [handle, message])

    async def clear_highlights(self) -> None:
        await self._evaluate(_CLEAR_HIGHLIGHTS_JS)

    # -- MutationSourcePort ---------------------------------------------------

    async def observe_mutations(self, callback: Callable[[], None]) -> None:
        page = self._ensure_page()
        self._mutation_callback = callback
        if not self._exposed:
            await page.expose_function("__autofillMutated", self._on_mutation)
            await page.add_init_script(_OBSERVER_JS)
            self._exposed = True
        await page.evaluate(_OBSERVER_JS)

    async def stop_observing(self) -> None:
        self._mutation_callback = None
        if self._page is not None:
            await self._page.evaluate(_DISCONNECT_JS)

    def _on_mutation(self) -> None:
        if self._mutation_callback is not None:
            self._mutation_callback()
