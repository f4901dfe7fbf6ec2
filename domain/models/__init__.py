from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

UNNAMED_FIELD_LABEL = "Unnamed Field"
FILLED_MARKER_ATTRIBUTE = "data-autofill-filled"


class FieldType(str, Enum):
    """Semantic kind of a logical field; values are the answer-service wire names."""

    SHORT_TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    NUMERIC = "number"
    DATE = "date"
    LONG_TEXT = "textarea"
    SINGLE_SELECT = "select"
    RADIO_GROUP = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"
    OTHER = "other"


TEXT_LIKE_TYPES = frozenset(
    {
        FieldType.SHORT_TEXT,
        FieldType.EMAIL,
        FieldType.PHONE,
        FieldType.URL,
        FieldType.NUMERIC,
        FieldType.DATE,
    }
)


@dataclass(frozen=True)
class SelectOption:
    """One choice of a select, custom dropdown or radio group.

    ``element_handle`` points at the option element when it can be clicked
    (custom dropdown options, radio inputs).
    """

    value: str
    label: str
    selected: bool = False
    element_handle: int | None = None


@dataclass(frozen=True)
class ValidationRules:
    pattern: str | None = None
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    required: bool = False


@dataclass(frozen=True)
class FormField:
    """
    One logical question of a detected form.

    ``element_handle`` is a non-owning reference into the page's handle
    table: the field is a view over one scan and never keeps the element
    alive. Injection re-validates the handle before every write.
    """

    id: str
    name: str
    label: str
    type: FieldType
    element_handle: int
    required: bool = False
    placeholder: str = ""
    options: Sequence[SelectOption] = field(default_factory=tuple)
    value: str = ""
    validation: ValidationRules = field(default_factory=ValidationRules)
    attributes: Mapping[str, str] = field(default_factory=dict)
    autofilled: bool = False
    tag: str = "input"

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def has_label(self) -> bool:
        return self.label != UNNAMED_FIELD_LABEL

    @property
    def selected_option(self) -> SelectOption | None:
        return next((option for option in self.options if option.selected), None)


@dataclass(frozen=True)
class FormIndicators:
    has_resume_upload: bool = False
    has_text_area: bool = False
    has_work_history: bool = False
    keywords: Sequence[str] = field(default_factory=tuple)
    field_count: int = 0

    @property
    def has_keywords(self) -> bool:
        return len(self.keywords) > 0


@dataclass(frozen=True)
class FormScore:
    """Additive application-form likelihood, always clamped to [0, 1]."""

    score: float
    reasons: Sequence[str] = field(default_factory=tuple)
    indicators: FormIndicators = field(default_factory=FormIndicators)

    @property
    def is_application_form(self) -> bool:
        return self.score >= 0.5


class FormOrigin(str, Enum):
    NATIVE = "native"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class DetectedForm:
    """A container considered as one form instance."""

    element_handle: int
    origin: FormOrigin
    fields: Sequence[FormField]
    form_score: FormScore
    submit_handle: int | None = None
    action: str = ""
    method: str = "get"

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))

    @property
    def score(self) -> float:
        return self.form_score.score

    def field_by_id(self, field_id: str) -> FormField | None:
        return next((f for f in self.fields if f.id == field_id), None)


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one page scan; ``forms[0]`` is the primary form."""

    url: str
    domain: str
    title: str
    detected_at: datetime
    forms: Sequence[DetectedForm]
    company: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "forms", tuple(self.forms))

    @property
    def primary(self) -> DetectedForm | None:
        return self.forms[0] if self.forms else None


class InjectionStatus(str, Enum):
    FILLED = "filled"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class InjectionResult:
    field_id: str
    status: InjectionStatus
    value: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is InjectionStatus.FILLED


@dataclass(frozen=True)
class FillSummary:
    total: int
    filled: int
    failed: int
    skipped: int
    results: Sequence[InjectionResult] = field(default_factory=tuple)

    @classmethod
    def from_results(cls, results: Sequence[InjectionResult], total: int | None = None) -> "FillSummary":
        return cls(
            total=len(results) if total is None else total,
            filled=sum(1 for r in results if r.status is InjectionStatus.FILLED),
            failed=sum(1 for r in results if r.status is InjectionStatus.FAILED),
            skipped=sum(1 for r in results if r.status is InjectionStatus.SKIPPED),
            results=tuple(results),
        )

    @classmethod
    def empty(cls) -> "FillSummary":
        return cls(total=0, filled=0, failed=0, skipped=0)

    def merge(self, other: "FillSummary") -> "FillSummary":
        return FillSummary(
            total=self.total + other.total,
            filled=self.filled + other.filled,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            results=tuple(self.results) + tuple(other.results),
        )


# -- answer service -------------------------------------------------------------


@dataclass(frozen=True)
class FieldDescriptor:
    """What the answer service sees of one field."""

    id: str
    label: str
    type: FieldType
    required: bool = False
    placeholder: str = ""
    options: Sequence[str] = field(default_factory=tuple)
    value: str = ""
    validation: ValidationRules = field(default_factory=ValidationRules)

    @classmethod
    def from_field(cls, form_field: FormField) -> "FieldDescriptor":
        return cls(
            id=form_field.id,
            label=form_field.label,
            type=form_field.type,
            required=form_field.required,
            placeholder=form_field.placeholder,
            options=tuple(option.label for option in form_field.options),
            value=form_field.value,
            validation=form_field.validation,
        )


@dataclass(frozen=True)
class AnswerRequest:
    fields: Sequence[FieldDescriptor]
    user_id: str
    job_id: str | None = None
    user_profile: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class GeneratedAnswer:
    field_id: str
    answer: str
    confidence: float
    question: str = ""
    sources: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class AnswerBatch:
    answers: Sequence[GeneratedAnswer]
    overall_confidence: float = 0.0

    def answer_map(self, min_confidence: float = 0.0) -> dict[str, str]:
        return {
            a.field_id: a.answer
            for a in self.answers
            if a.answer and a.confidence >= min_confidence
        }


# -- validation / advancing ---------------------------------------------------


@dataclass(frozen=True)
class ValidationDelta:
    """Fields still failing validation after an injection pass."""

    field_ids: Sequence[str] = field(default_factory=tuple)
    required_field_ids: Sequence[str] = field(default_factory=tuple)
    messages: Sequence[str] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.field_ids) == 0


@dataclass(frozen=True)
class AdvanceResult:
    clicked: bool
    moved: bool
    reason: str
    label: str | None = None
    signature_before: str = ""
    signature_after: str = ""


# -- sessions -----------------------------------------------------------------


class SessionState(str, Enum):
    IDLE = "idle"
    FILLING = "filling"
    INJECTING = "injecting"
    VALIDATING = "validating"
    RETRYING = "retrying"
    ADVANCING = "advancing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AutofillReport:
    """What a caller learns about a finished (or aborted) session."""

    session_id: str
    form_signature: str
    state: SessionState
    rounds: int
    fill_attempts: int
    summary: FillSummary
    unresolved_field_ids: Sequence[str] = field(default_factory=tuple)
    required_unresolved_field_ids: Sequence[str] = field(default_factory=tuple)
    diagnostics: Sequence[str] = field(default_factory=tuple)
    applied_answers: Mapping[str, str] = field(default_factory=dict)
    advance: AdvanceResult | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is SessionState.DONE and self.error is None


@dataclass
class AutofillSession:
    """Mutable state of one validation-retry run over one form instance."""

    session_id: str
    form_signature: str
    container: DetectedForm
    state: SessionState = SessionState.IDLE
    round: int = 0
    fill_attempts: int = 0
    applied_answers: dict[str, str] = field(default_factory=dict)
    pending_answers: dict[str, str] = field(default_factory=dict)
    scoped_field_ids: tuple[str, ...] | None = None
    diagnostics: list[str] = field(default_factory=list)
    unresolved_field_ids: tuple[str, ...] = ()
    required_unresolved_field_ids: tuple[str, ...] = ()
    summaries: list[FillSummary] = field(default_factory=list)
    advance: AdvanceResult | None = None
    error: str | None = None

    def add_diagnostic(self, message: str) -> None:
        if message and message not in self.diagnostics:
            self.diagnostics.append(message)

    def to_report(self) -> AutofillReport:
        summary = FillSummary.empty()
        for item in self.summaries:
            summary = summary.merge(item)
        return AutofillReport(
            session_id=self.session_id,
            form_signature=self.form_signature,
            state=self.state,
            rounds=self.round,
            fill_attempts=self.fill_attempts,
            summary=summary,
            unresolved_field_ids=self.unresolved_field_ids,
            required_unresolved_field_ids=self.required_unresolved_field_ids,
            diagnostics=tuple(self.diagnostics),
            applied_answers=MappingProxyType(dict(self.applied_answers)),
            advance=self.advance,
            error=self.error,
        )


@dataclass
class PageAutofillState:
    """
    Per-page-context trackers shared by the scheduler and the facade.

    Only one session may write to a page at a time; ``claim`` / ``release``
    guard that.
    """

    processed_signatures: set[str] = field(default_factory=set)
    in_progress: bool = False
    last_detection: DetectionResult | None = None

    def claim(self) -> bool:
        if self.in_progress:
            return False
        self.in_progress = True
        return True

    def release(self) -> None:
        self.in_progress = False


@dataclass(frozen=True)
class CommandResponse:
    """Reply to one host-channel command."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "CommandResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "CommandResponse":
        return cls(success=False, data=data, error=error)


# -- configuration ------------------------------------------------------------


@dataclass(frozen=True)
class AutofillTimings:
    """Delays and polling bounds, in seconds."""

    focus_delay: float = 0.05
    inter_field_delay: float = 0.1
    validation_settle: float = 0.5
    advance_poll_interval: float = 0.25
    advance_poll_attempts: int = 8
    rescan_debounce: float = 1.0
    min_rescan_interval: float = 2.0

    @classmethod
    def immediate(cls) -> "AutofillTimings":
        return cls(
            focus_delay=0.0,
            inter_field_delay=0.0,
            validation_settle=0.0,
            advance_poll_interval=0.0,
            advance_poll_attempts=2,
            rescan_debounce=0.0,
            min_rescan_interval=0.0,
        )

    def with_milliseconds(self, overrides: Mapping[str, Any]) -> "AutofillTimings":
        changes: dict[str, Any] = {}
        for key, raw in overrides.items():
            if key == "advance_poll_attempts":
                changes[key] = int(raw)
            elif hasattr(self, key):
                changes[key] = float(raw) / 1000.0
        return replace(self, **changes)


DEFAULT_ADVANCE_LABELS = (
    "next",
    "continue",
    "save and continue",
    "next step",
    "sign in",
    "log in",
    "login",
)
DEFAULT_BLOCKED_LABELS = (
    "submit",
    "apply",
    "send application",
    "finish",
    "complete application",
)


@dataclass(frozen=True)
class AdvanceVocabulary:
    """Labels that may / may never be clicked automatically."""

    allowed: Sequence[str] = DEFAULT_ADVANCE_LABELS
    blocked: Sequence[str] = DEFAULT_BLOCKED_LABELS
    preferred: str = "save and continue"


@dataclass(frozen=True)
class AutofillPreferences:
    auto_fill_enabled: bool = False
    min_confidence: float = 0.5


@dataclass(frozen=True)
class AppConfig:
    """Application-level configuration loaded from config.json."""

    answer_service_url: str
    answer_service_key: str | None = None
    request_timeout: int = 60
    max_retry_rounds: int = 2
    timings: AutofillTimings = field(default_factory=AutofillTimings)
    vocabulary: AdvanceVocabulary = field(default_factory=AdvanceVocabulary)


__all__ = [
    "UNNAMED_FIELD_LABEL",
    "FILLED_MARKER_ATTRIBUTE",
    "FieldType",
    "TEXT_LIKE_TYPES",
    "SelectOption",
    "ValidationRules",
    "FormField",
    "FormIndicators",
    "FormScore",
    "FormOrigin",
    "DetectedForm",
    "DetectionResult",
    "InjectionStatus",
    "InjectionResult",
    "FillSummary",
    "FieldDescriptor",
    "AnswerRequest",
    "GeneratedAnswer",
    "AnswerBatch",
    "ValidationDelta",
    "AdvanceResult",
    "SessionState",
    "AutofillReport",
    "AutofillSession",
    "PageAutofillState",
    "CommandResponse",
    "AutofillTimings",
    "AdvanceVocabulary",
    "DEFAULT_ADVANCE_LABELS",
    "DEFAULT_BLOCKED_LABELS",
    "AutofillPreferences",
    "AppConfig",
]
