"""Infrastructure adapters – concrete implementations of domain ports."""

from .answers import HttpAnswerService
from .browser import PlaywrightPage, StaticHtmlPage
from .config import FileSystemConfigProvider
from .dom import HtmlSnapshotParser
from .persistence import SQLiteKeyValueStore
from .runtime import StructuredLogger, SystemClock, UuidIdGenerator

__all__ = [
    "HttpAnswerService",
    "PlaywrightPage",
    "StaticHtmlPage",
    "FileSystemConfigProvider",
    "HtmlSnapshotParser",
    "SQLiteKeyValueStore",
    "SystemClock",
    "UuidIdGenerator",
    "StructuredLogger",
]
