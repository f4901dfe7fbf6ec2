from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from domain.errors import AutofillAbortedError, AutofillError, SessionInProgressError
from domain.models import (
    AppConfig,
    AutofillReport,
    CommandResponse,
    DetectedForm,
    DetectionResult,
    PageAutofillState,
)
from domain.ports import (
    AnswerServicePort,
    ClockPort,
    IdGeneratorPort,
    KeyValueStorePort,
    LoggerPort,
    MutationSourcePort,
    PagePort,
)
from domain.services import (
    AutofillOrchestrator,
    FieldInjector,
    FormDetector,
    PreferenceService,
    RescanScheduler,
    SessionOptions,
    StepAdvancer,
    ValidationInspector,
    form_signature,
)
from domain.utils import to_plain_data

NO_FORM_ERROR = "No application form detected"
NO_PROFILE_ERROR = "User profile not found"

CommandHandler = Callable[[Mapping[str, Any]], Awaitable[CommandResponse]]


class AutofillFacade:
    """
    Host-facing command channel for one page context.

    Every command returns a ``CommandResponse``; domain errors never cross
    this boundary as exceptions.
    """

    def __init__(
        self,
        *,
        page: PagePort,
        detector: FormDetector,
        injector: FieldInjector,
        orchestrator: AutofillOrchestrator,
        advancer: StepAdvancer,
        preferences: PreferenceService,
        state: PageAutofillState,
        logger: LoggerPort,
        scheduler: RescanScheduler | None = None,
    ) -> None:
        self._page = page
        self._detector = detector
        self._injector = injector
        self._orchestrator = orchestrator
        self._advancer = advancer
        self._preferences = preferences
        self._state = state
        self._logger = logger
        self._scheduler = scheduler
        self._commands: dict[str, CommandHandler] = {
            "ping": self._ping,
            "get_forms": self._get_forms,
            "detect_forms": self._detect_forms,
            "fill_application": self._fill_application,
            "fill_with_retry": self._fill_with_retry,
            "advance_step": self._advance_step,
            "toggle_auto_fill": self._toggle_auto_fill,
            "enable_auto_fill": self._enable_auto_fill,
            "disable_auto_fill": self._disable_auto_fill,
            "reset_processed_forms": self._reset_processed_forms,
            "inject_answers": self._inject_answers,
            "inject_field": self._inject_field,
            "clear_highlights": self._clear_highlights,
        }

    @property
    def commands(self) -> tuple[str, ...]:
        return tuple(self._commands)

    @property
    def scheduler(self) -> RescanScheduler | None:
        return self._scheduler

    async def handle(self, command: str, payload: Mapping[str, Any] | None = None) -> CommandResponse:
        handler = self._commands.get(command)
        if handler is None:
            return CommandResponse.fail(f"Unknown command: {command}")
        try:
            return await handler(payload or {})
        except AutofillAbortedError as exc:
            self._logger.error("command_failed", command=command, error=str(exc))
            return CommandResponse.fail(str(exc), data=to_plain_data(exc.report))
        except (AutofillError, ValueError) as exc:
            self._logger.error("command_failed", command=command, error=str(exc))
            return CommandResponse.fail(str(exc))

    # -- detection -------------------------------------------------------------

    async def _ping(self, payload: Mapping[str, Any]) -> CommandResponse:
        return CommandResponse.ok()

    async def _get_forms(self, payload: Mapping[str, Any]) -> CommandResponse:
        return CommandResponse.ok(to_plain_data(self._state.last_detection))

    async def _detect_forms(self, payload: Mapping[str, Any]) -> CommandResponse:
        return CommandResponse.ok(to_plain_data(await self._detect()))

    async def _detect(self) -> DetectionResult | None:
        snapshot = await self._page.snapshot()
        result = self._detector.detect(snapshot)
        self._state.last_detection = result
        return result

    # -- sessions --------------------------------------------------------------

    async def _fill_application(self, payload: Mapping[str, Any]) -> CommandResponse:
        report = await self._run_session(payload, validate=False, advance=False)
        return CommandResponse.ok(to_plain_data(report))

    async def _fill_with_retry(self, payload: Mapping[str, Any]) -> CommandResponse:
        report = await self._run_session(
            payload,
            validate=True,
            advance=bool(payload.get("advance", False)),
        )
        return CommandResponse.ok(to_plain_data(report))

    async def _run_session(
        self,
        payload: Mapping[str, Any],
        *,
        validate: bool,
        advance: bool,
    ) -> AutofillReport:
        user_id = payload.get("user_id") or self._preferences.get_user_id()
        if not user_id:
            raise AutofillError(NO_PROFILE_ERROR)

        snapshot = await self._page.snapshot()
        result = self._detector.detect(snapshot)
        self._state.last_detection = result
        if result is None or result.primary is None:
            raise AutofillError(NO_FORM_ERROR)

        if not self._state.claim():
            raise SessionInProgressError()
        form = result.primary
        try:
            self._state.processed_signatures.add(form_signature(form, snapshot.path))
            return await self._orchestrator.run(
                form,
                page_path=snapshot.path,
                options=SessionOptions(
                    user_id=str(user_id),
                    job_id=payload.get("job_id"),
                    user_profile=self._preferences.get_user_profile(),
                    validate=validate,
                    advance=advance,
                ),
            )
        finally:
            self._state.release()

    async def _advance_step(self, payload: Mapping[str, Any]) -> CommandResponse:
        detection = await self._detect()
        container = detection.primary.element_handle if detection and detection.primary else None
        result = await self._advancer.advance(container)
        return CommandResponse.ok(to_plain_data(result))

    # -- auto-fill preference ----------------------------------------------------

    async def _toggle_auto_fill(self, payload: Mapping[str, Any]) -> CommandResponse:
        prefs = self._preferences.toggle_auto_fill()
        return self._auto_fill_changed(prefs.auto_fill_enabled)

    async def _enable_auto_fill(self, payload: Mapping[str, Any]) -> CommandResponse:
        prefs = self._preferences.set_auto_fill(True)
        return self._auto_fill_changed(prefs.auto_fill_enabled)

    async def _disable_auto_fill(self, payload: Mapping[str, Any]) -> CommandResponse:
        prefs = self._preferences.set_auto_fill(False)
        return self._auto_fill_changed(prefs.auto_fill_enabled)

    def _auto_fill_changed(self, enabled: bool) -> CommandResponse:
        self._logger.info("auto_fill_changed", enabled=enabled)
        if enabled and self._scheduler is not None:
            self._scheduler.notify()
        return CommandResponse.ok({"auto_fill_enabled": enabled})

    async def _reset_processed_forms(self, payload: Mapping[str, Any]) -> CommandResponse:
        if self._scheduler is not None:
            self._scheduler.reset()
        else:
            self._state.processed_signatures.clear()
        return CommandResponse.ok()

    # -- direct injection --------------------------------------------------------

    async def _inject_answers(self, payload: Mapping[str, Any]) -> CommandResponse:
        form = await self._current_form()
        answers: dict[str, str] = {}
        for item in payload.get("answers") or ():
            if isinstance(item, Mapping) and item.get("field_id"):
                answers[str(item["field_id"])] = str(item.get("answer") or "")
        summary = await self._injector.inject_answers(form.fields, answers)
        return CommandResponse.ok(to_plain_data(summary))

    async def _inject_field(self, payload: Mapping[str, Any]) -> CommandResponse:
        field_id = payload.get("field_id")
        if not field_id:
            raise ValueError("inject_field requires a field_id")
        form = await self._current_form()
        target = form.field_by_id(str(field_id))
        if target is None:
            return CommandResponse.fail(f"Field not found: {field_id}")
        status = await self._injector.inject_field(target, str(payload.get("value") or ""))
        return CommandResponse.ok({"field_id": target.id, "status": status.value})

    async def _clear_highlights(self, payload: Mapping[str, Any]) -> CommandResponse:
        await self._injector.clear_highlights()
        return CommandResponse.ok()

    async def _current_form(self) -> DetectedForm:
        detection = self._state.last_detection or await self._detect()
        if detection is None or detection.primary is None:
            raise AutofillError(NO_FORM_ERROR)
        return detection.primary


def build_facade(
    *,
    page: PagePort,
    answer_service: AnswerServicePort,
    store: KeyValueStorePort,
    config: AppConfig,
    clock: ClockPort,
    id_generator: IdGeneratorPort,
    logger: LoggerPort,
    mutations: MutationSourcePort | None = None,
    advance: bool = False,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AutofillFacade:
    """Wire the services for one page context."""
    extra: dict[str, Any] = {"sleep": sleep} if sleep is not None else {}
    state = PageAutofillState()
    preferences = PreferenceService(store=store, clock=clock)
    detector = FormDetector(clock=clock, logger=logger)
    injector = FieldInjector(page=page, logger=logger, timings=config.timings, **extra)
    advancer = StepAdvancer(
        page=page,
        logger=logger,
        vocabulary=config.vocabulary,
        timings=config.timings,
        **extra,
    )
    orchestrator = AutofillOrchestrator(
        page=page,
        answer_service=answer_service,
        detector=detector,
        injector=injector,
        inspector=ValidationInspector(logger=logger),
        advancer=advancer,
        preferences=preferences,
        id_generator=id_generator,
        logger=logger,
        timings=config.timings,
        max_rounds=config.max_retry_rounds,
        **extra,
    )
    scheduler = None
    if mutations is not None:
        scheduler = RescanScheduler(
            page=page,
            mutations=mutations,
            detector=detector,
            orchestrator=orchestrator,
            preferences=preferences,
            state=state,
            clock=clock,
            logger=logger,
            timings=config.timings,
            advance=advance,
            **extra,
        )
    return AutofillFacade(
        page=page,
        detector=detector,
        injector=injector,
        orchestrator=orchestrator,
        advancer=advancer,
        preferences=preferences,
        state=state,
        logger=logger,
        scheduler=scheduler,
    )


__all__ = ["AutofillFacade", "build_facade", "NO_FORM_ERROR", "NO_PROFILE_ERROR"]
