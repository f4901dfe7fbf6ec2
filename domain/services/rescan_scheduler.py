from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from domain.errors import AutofillError
from domain.models import AutofillTimings, DetectedForm, DetectionResult, PageAutofillState
from domain.ports import ClockPort, LoggerPort, MutationSourcePort, PagePort
from domain.services.autofill_orchestrator import AutofillOrchestrator, SessionOptions
from domain.services.form_detector import FormDetector
from domain.services.form_signature import form_signature
from domain.services.preferences import PreferenceService

Sleep = Callable[[float], Awaitable[None]]


class RescanScheduler:
    """
    Re-runs detection when the page mutates and, with auto-fill on, starts
    a session for each form instance it has not processed yet.

    Notifications are coalesced: a scan starts once the page has been quiet
    for the debounce window and at least the minimum interval has passed
    since the previous scan.
    """

    def __init__(
        self,
        *,
        page: PagePort,
        mutations: MutationSourcePort,
        detector: FormDetector,
        orchestrator: AutofillOrchestrator,
        preferences: PreferenceService,
        state: PageAutofillState,
        clock: ClockPort,
        logger: LoggerPort,
        timings: AutofillTimings | None = None,
        advance: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._page = page
        self._mutations = mutations
        self._detector = detector
        self._orchestrator = orchestrator
        self._preferences = preferences
        self._state = state
        self._clock = clock
        self._logger = logger
        self._timings = timings or AutofillTimings()
        self._advance = advance
        self._sleep = sleep
        self._last_notification = 0.0
        self._last_scan: float | None = None
        self._pending: asyncio.Task[None] | None = None
        self._session_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def has_pending_scan(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def start(self) -> DetectionResult | None:
        await self._mutations.observe_mutations(self.notify)
        return await self.scan()

    def notify(self) -> None:
        """Mutation callback; schedules at most one pending scan."""
        if self._closed:
            return
        self._last_notification = self._clock.monotonic()
        if self.has_pending_scan:
            return
        self._pending = asyncio.get_running_loop().create_task(self._scan_when_quiet())

    async def _scan_when_quiet(self) -> None:
        while True:
            wait = self._last_notification + self._timings.rescan_debounce - self._clock.monotonic()
            if wait > 0:
                await self._sleep(wait)
                continue
            if self._last_scan is not None:
                remaining = self._last_scan + self._timings.min_rescan_interval - self._clock.monotonic()
                if remaining > 0:
                    await self._sleep(remaining)
            started = self._clock.monotonic()
            await self.scan()
            # mutations that arrived while scanning get one more pass
            if self._last_notification <= started:
                return

    async def scan(self) -> DetectionResult | None:
        self._last_scan = self._clock.monotonic()
        snapshot = await self._page.snapshot()
        result = self._detector.detect(snapshot)
        self._state.last_detection = result
        if result is None or not self._preferences.is_auto_fill_enabled():
            return result

        if self._state.in_progress:
            self._logger.info("rescan_skipped_in_progress", url=snapshot.url)
            return result

        for form in result.forms:
            signature = form_signature(form, snapshot.path)
            if signature in self._state.processed_signatures:
                continue
            self._start_session(form, signature, snapshot.path)
            break
        return result

    def _start_session(self, form: DetectedForm, signature: str, path: str) -> None:
        user_id = self._preferences.get_user_id()
        if not user_id:
            self._logger.warning("autofill_skipped_no_user", form_signature=signature)
            return
        if not self._state.claim():
            self._logger.info("rescan_skipped_in_progress", form_signature=signature)
            return
        self._state.processed_signatures.add(signature)
        options = SessionOptions(
            user_id=user_id,
            user_profile=self._preferences.get_user_profile(),
            advance=self._advance,
        )
        self._session_task = asyncio.get_running_loop().create_task(
            self._run_session(form, path, options)
        )

    async def _run_session(self, form: DetectedForm, path: str, options: SessionOptions) -> None:
        try:
            await self._orchestrator.run(form, page_path=path, options=options)
        except AutofillError as exc:
            self._logger.error("auto_fill_session_failed", error=str(exc))
        except Exception as exc:
            self._logger.error(
                "auto_fill_session_crashed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
        finally:
            self._state.release()
        # the session itself mutated the page; look again for a next step
        self.notify()

    async def wait_idle(self) -> None:
        """Wait for the pending scan and any running session to finish."""
        while self.has_pending_scan or (self._session_task is not None and not self._session_task.done()):
            for task in (self._pending, self._session_task):
                if task is not None and not task.done():
                    await asyncio.wait({task})

    def reset(self) -> None:
        self._state.processed_signatures.clear()
        self._logger.info("processed_forms_reset")

    async def close(self) -> None:
        self._closed = True
        for task in (self._pending, self._session_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._pending = None
        self._session_task = None
        await self._mutations.stop_observing()


__all__ = ["RescanScheduler"]
