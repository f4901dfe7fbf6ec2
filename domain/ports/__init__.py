from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Any, Callable, Protocol, runtime_checkable

from domain.dom import PageSnapshot
from domain.models import AnswerBatch, AnswerRequest


@runtime_checkable
class PagePort(Protocol):
    """
    One page context, addressed through element handles.

    ``snapshot`` returns a fresh element tree whose handles stay stable for
    the lifetime of the page: the same live element always maps to the same
    handle. Writes never raise for a detached element; callers check
    ``is_attached`` around every suspend point instead.
    """

    async def snapshot(self) -> PageSnapshot:
        ...

    async def is_attached(self, handle: int) -> bool:
        ...

    async def focus(self, handle: int) -> None:
        ...

    async def blur(self, handle: int) -> None:
        ...

    async def set_value(self, handle: int, value: str) -> None:
        """Write through the platform value setter; fires no events."""
        ...

    async def select_index(self, handle: int, index: int) -> None:
        ...

    async def is_checked(self, handle: int) -> bool:
        ...

    async def set_checked(self, handle: int, checked: bool) -> None:
        ...

    async def dispatch_event(
        self,
        handle: int,
        event_type: str,
        event_class: str = "Event",
    ) -> None:
        ...

    async def click(self, handle: int) -> None:
        ...

    async def mark_filled(self, handle: int) -> None:
        ...

    async def flag_upload(self, handle: int, message: str) -> None:
        ...

    async def clear_highlights(self) -> None:
        ...


@runtime_checkable
class MutationSourcePort(Protocol):
    """Subtree mutation notifications for a page context."""

    async def observe_mutations(self, callback: Callable[[], None]) -> None:
        ...

    async def stop_observing(self) -> None:
        ...


@runtime_checkable
class AnswerServicePort(Protocol):
    """Remote generation of answers for a batch of form fields."""

    async def fill_application(self, request: AnswerRequest) -> AnswerBatch:
        ...


@runtime_checkable
class KeyValueStorePort(Protocol):
    """Persistence for JSON-serializable preference values."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...


@runtime_checkable
class ClockPort(Protocol):
    """Time source for deterministic and easily testable code."""

    def now(self) -> datetime:
        ...

    def monotonic(self) -> float:
        ...


@runtime_checkable
class IdGeneratorPort(Protocol):
    """Generation of session identifiers."""

    def new_session_id(self) -> str:
        ...


@runtime_checkable
class LoggerPort(Protocol):
    """Structured, testable logging abstraction."""

    def info(self, message: str, **fields: Any) -> None:
        ...

    def warning(self, message: str, **fields: Any) -> None:
        ...

    def error(self, message: str, **fields: Any) -> None:
        ...


__all__ = [
    "PagePort",
    "MutationSourcePort",
    "AnswerServicePort",
    "KeyValueStorePort",
    "ClockPort",
    "IdGeneratorPort",
    "LoggerPort",
]
