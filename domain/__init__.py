"""
Domain layer package.

This package contains the element tree, models, ports and services of the
form autofill engine. Nothing here depends on a browser, the network or a
database; adapters for those live in ``infra``.
"""

from .errors import (  # noqa: F401
    AnswerRejectedError,
    AnswerServiceError,
    AutofillAbortedError,
    AutofillError,
    ElementDetachedError,
    InjectionError,
    NoMatchingOptionError,
    ServiceUnavailableError,
    SessionInProgressError,
    UnsupportedFieldTypeError,
)
from .models import (  # noqa: F401
    AdvanceResult,
    AnswerBatch,
    AnswerRequest,
    AppConfig,
    AutofillReport,
    AutofillTimings,
    DetectedForm,
    DetectionResult,
    FieldType,
    FillSummary,
    FormField,
    GeneratedAnswer,
    InjectionResult,
    InjectionStatus,
    SessionState,
)
from .ports import (  # noqa: F401
    AnswerServicePort,
    ClockPort,
    IdGeneratorPort,
    KeyValueStorePort,
    LoggerPort,
    MutationSourcePort,
    PagePort,
)

__all__ = [
    # Models
    "FieldType",
    "FormField",
    "DetectedForm",
    "DetectionResult",
    "InjectionStatus",
    "InjectionResult",
    "FillSummary",
    "AnswerRequest",
    "GeneratedAnswer",
    "AnswerBatch",
    "AdvanceResult",
    "SessionState",
    "AutofillReport",
    "AutofillTimings",
    "AppConfig",
    # Ports
    "PagePort",
    "MutationSourcePort",
    "AnswerServicePort",
    "KeyValueStorePort",
    "ClockPort",
    "IdGeneratorPort",
    "LoggerPort",
    # Errors
    "AutofillError",
    "AnswerServiceError",
    "ServiceUnavailableError",
    "AnswerRejectedError",
    "InjectionError",
    "ElementDetachedError",
    "NoMatchingOptionError",
    "UnsupportedFieldTypeError",
    "AutofillAbortedError",
    "SessionInProgressError",
]
