"""
Reusable fakes and in-memory implementations for tests.
"""

from .fake_key_value_store import InMemoryKeyValueStore
from .fake_runtime import FixedClock, InMemoryLogger, SequentialIdGenerator
from .scripted_answer_service import ScriptedAnswerService, batch

__all__ = [
    "InMemoryKeyValueStore",
    "FixedClock",
    "SequentialIdGenerator",
    "InMemoryLogger",
    "ScriptedAnswerService",
    "batch",
]
