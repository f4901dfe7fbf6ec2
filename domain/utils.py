from __future__ import annotations

import dataclasses
import re
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

_NAME_SEPARATORS = re.compile(r"[_\-.\[\]]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_DERIVED_PROPERTIES = ("success", "score", "is_application_form")


def split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def humanize_name(name: str) -> str:
    """``first_name`` / ``firstName`` -> ``First Name``."""
    spaced = _CAMEL_BOUNDARY.sub(" ", _NAME_SEPARATORS.sub(" ", name))
    return " ".join(word.capitalize() for word in spaced.split())


def to_plain_data(value: Any) -> Any:
    """Convert models into JSON-serializable builtins."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        data = {f.name: to_plain_data(getattr(value, f.name)) for f in dataclasses.fields(value)}
        for name in _DERIVED_PROPERTIES:
            if isinstance(getattr(type(value), name, None), property):
                data[name] = to_plain_data(getattr(value, name))
        return data
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_plain_data(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain_data(v) for v in value]
    return value
