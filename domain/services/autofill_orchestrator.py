from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from domain.errors import AnswerServiceError, AutofillAbortedError
from domain.models import (
    AnswerRequest,
    AutofillReport,
    AutofillSession,
    AutofillTimings,
    DetectedForm,
    FieldDescriptor,
    FormField,
    SessionState,
)
from domain.ports import AnswerServicePort, IdGeneratorPort, LoggerPort, PagePort
from domain.services.field_injector import FieldInjector
from domain.services.form_detector import FormDetector
from domain.services.form_signature import form_signature
from domain.services.preferences import PreferenceService
from domain.services.step_advancer import StepAdvancer
from domain.services.validation_inspector import ValidationInspector

DEFAULT_MAX_ROUNDS = 2

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class SessionOptions:
    user_id: str
    job_id: str | None = None
    user_profile: Mapping[str, Any] | None = None
    validate: bool = True
    advance: bool = False


class AutofillOrchestrator:
    """
    Runs one form instance through fill -> inject -> validate -> retry ->
    advance.

    Each state has one handler returning the next state; the loop stops at a
    terminal state or when the transition budget runs out, so no page can
    keep a session alive forever.
    """

    def __init__(
        self,
        *,
        page: PagePort,
        answer_service: AnswerServicePort,
        detector: FormDetector,
        injector: FieldInjector,
        inspector: ValidationInspector,
        advancer: StepAdvancer,
        preferences: PreferenceService,
        id_generator: IdGeneratorPort,
        logger: LoggerPort,
        timings: AutofillTimings | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._page = page
        self._answer_service = answer_service
        self._detector = detector
        self._injector = injector
        self._inspector = inspector
        self._advancer = advancer
        self._preferences = preferences
        self._id_generator = id_generator
        self._logger = logger
        self._timings = timings or AutofillTimings()
        self._max_rounds = max_rounds
        self._sleep = sleep
        self._handlers: dict[
            SessionState,
            Callable[[AutofillSession, SessionOptions], Awaitable[SessionState]],
        ] = {
            SessionState.IDLE: self._start,
            SessionState.FILLING: self._fill,
            SessionState.INJECTING: self._inject,
            SessionState.VALIDATING: self._validate,
            SessionState.RETRYING: self._retry,
            SessionState.ADVANCING: self._advance,
        }

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    @property
    def transition_budget(self) -> int:
        # each round visits at most four states, plus start / advance / stop
        return 4 * (self._max_rounds + 1) + 3

    async def run(
        self,
        form: DetectedForm,
        *,
        page_path: str,
        options: SessionOptions,
    ) -> AutofillReport:
        """Drive a session to completion.

        Raises ``AutofillAbortedError`` (carrying the partial report) when the
        answer service fails; every other problem ends up in the report.
        """
        session = AutofillSession(
            session_id=self._id_generator.new_session_id(),
            form_signature=form_signature(form, page_path),
            container=form,
        )
        self._logger.info(
            "autofill_session_started",
            session_id=session.session_id,
            form_signature=session.form_signature,
            field_count=len(form.fields),
            validate=options.validate,
            advance=options.advance,
        )

        transitions = 0
        while session.state not in (SessionState.DONE, SessionState.FAILED):
            if transitions >= self.transition_budget:
                session.error = "Transition budget exhausted"
                session.state = SessionState.FAILED
                break
            handler = self._handlers[session.state]
            session.state = await handler(session, options)
            transitions += 1

        report = session.to_report()
        if session.state is SessionState.FAILED:
            self._logger.error(
                "autofill_session_aborted",
                session_id=session.session_id,
                error=session.error,
                fill_attempts=session.fill_attempts,
            )
            raise AutofillAbortedError(session.error or "Autofill session failed", report)

        self._logger.info(
            "autofill_session_completed",
            session_id=session.session_id,
            rounds=report.rounds,
            filled=report.summary.filled,
            failed=report.summary.failed,
            unresolved=list(report.unresolved_field_ids),
        )
        return report

    # -- state handlers ------------------------------------------------------

    async def _start(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        return SessionState.FILLING

    async def _fill(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        fields = self._scoped_fields(session)
        session.fill_attempts += 1
        request = AnswerRequest(
            fields=tuple(FieldDescriptor.from_field(f) for f in fields),
            user_id=options.user_id,
            job_id=options.job_id,
            user_profile=options.user_profile,
        )
        try:
            batch = await self._answer_service.fill_application(request)
        except AnswerServiceError as exc:
            session.error = str(exc)
            session.add_diagnostic(f"Answer service failed: {exc}")
            return SessionState.FAILED

        min_confidence = self._preferences.get_preferences().min_confidence
        session.pending_answers = batch.answer_map(min_confidence)
        dropped = len(batch.answers) - len(session.pending_answers)
        self._preferences.cache_answers(batch, options.job_id)
        self._logger.info(
            "answers_received",
            session_id=session.session_id,
            round=session.round,
            requested=len(fields),
            received=len(batch.answers),
            below_confidence=dropped,
            overall_confidence=batch.overall_confidence,
        )
        return SessionState.INJECTING

    async def _inject(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        summary = await self._injector.inject_answers(
            self._scoped_fields(session),
            session.pending_answers,
        )
        session.summaries.append(summary)
        session.applied_answers.update(session.pending_answers)
        session.pending_answers = {}
        if not options.validate:
            return SessionState.DONE
        return SessionState.VALIDATING

    async def _validate(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        await self._sleep(self._timings.validation_settle)
        snapshot = await self._page.snapshot()
        detection = self._detector.detect(snapshot)
        if detection is None:
            session.add_diagnostic("Form no longer detected after injection")
            return SessionState.DONE

        same = next(
            (f for f in detection.forms if f.element_handle == session.container.element_handle),
            None,
        )
        session.container = same or detection.forms[0]
        delta = self._inspector.inspect(session.container, snapshot)
        for message in delta.messages:
            session.add_diagnostic(message)
        session.unresolved_field_ids = tuple(delta.field_ids)
        session.required_unresolved_field_ids = tuple(delta.required_field_ids)

        retry_ids = tuple(i for i in delta.field_ids if i not in session.applied_answers)
        if retry_ids and session.round < self._max_rounds:
            session.scoped_field_ids = retry_ids
            return SessionState.RETRYING

        if options.advance and not delta.required_field_ids:
            return SessionState.ADVANCING
        if options.advance:
            self._logger.info(
                "advance_withheld",
                session_id=session.session_id,
                required_unresolved=list(delta.required_field_ids),
            )
        return SessionState.DONE

    async def _retry(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        session.round += 1
        self._logger.info(
            "autofill_retry_round",
            session_id=session.session_id,
            round=session.round,
            field_ids=list(session.scoped_field_ids or ()),
        )
        return SessionState.FILLING

    async def _advance(self, session: AutofillSession, options: SessionOptions) -> SessionState:
        result = await self._advancer.advance(session.container.element_handle)
        session.advance = result
        if not result.moved:
            session.add_diagnostic(result.reason)
        return SessionState.DONE

    # -- internal helpers ------------------------------------------------------

    @staticmethod
    def _scoped_fields(session: AutofillSession) -> tuple[FormField, ...]:
        fields = tuple(session.container.fields)
        if session.scoped_field_ids is None:
            return fields
        scope = set(session.scoped_field_ids)
        return tuple(f for f in fields if f.id in scope)


__all__ = ["AutofillOrchestrator", "SessionOptions", "DEFAULT_MAX_ROUNDS"]
