from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models import AutofillReport


class AutofillError(Exception):
    """Base class for every error raised by the autofill core."""


# -- answer service -----------------------------------------------------------


class AnswerServiceError(AutofillError):
    """The answer service could not produce answers for a fill attempt."""


class ServiceUnavailableError(AnswerServiceError):
    """Network failure, timeout or a server-side (5xx) error."""


class AnswerRejectedError(AnswerServiceError):
    """The service understood the request and refused it (4xx)."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"Answer service rejected the request ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


# -- injection ----------------------------------------------------------------


class InjectionError(AutofillError):
    """Writing one answer into one field failed; never aborts a batch."""


class ElementDetachedError(InjectionError):
    def __init__(self, field_id: str) -> None:
        super().__init__(f"Field element not found in DOM: {field_id}")
        self.field_id = field_id


class NoMatchingOptionError(InjectionError):
    def __init__(self, value: str, kind: str = "option") -> None:
        super().__init__(f"No matching {kind} found for value: {value}")
        self.value = value


class UnsupportedFieldTypeError(InjectionError):
    def __init__(self, field_type: str) -> None:
        super().__init__(f"Unsupported field type: {field_type}")
        self.field_type = field_type


# -- sessions -----------------------------------------------------------------


class AutofillAbortedError(AutofillError):
    """A session stopped on a hard failure; ``report`` keeps the partial state."""

    def __init__(self, message: str, report: AutofillReport) -> None:
        super().__init__(message)
        self.report = report


class SessionInProgressError(AutofillError):
    def __init__(self) -> None:
        super().__init__("An autofill session is already running on this page")


__all__ = [
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
