from __future__ import annotations

import json
from typing import Any

from domain.models import AnswerBatch, AutofillPreferences
from domain.ports import ClockPort, KeyValueStorePort

USER_PROFILE_KEY = "userProfile"
PREFERENCES_KEY = "preferences"
ANSWERS_CACHE_KEY = "answersCache"
ANSWERS_CACHE_LIMIT = 50


class PreferenceService:
    """Typed access to the values the autofill engine keeps in the key-value store."""

    def __init__(self, *, store: KeyValueStorePort, clock: ClockPort) -> None:
        self._store = store
        self._clock = clock

    # -- preferences ---------------------------------------------------------

    def get_preferences(self) -> AutofillPreferences:
        raw = self._raw_preferences()
        defaults = AutofillPreferences()
        return AutofillPreferences(
            auto_fill_enabled=bool(raw.get("autoFill", defaults.auto_fill_enabled)),
            min_confidence=float(raw.get("minConfidence", defaults.min_confidence)),
        )

    def is_auto_fill_enabled(self) -> bool:
        return self.get_preferences().auto_fill_enabled

    def set_auto_fill(self, enabled: bool) -> AutofillPreferences:
        self._update_preferences(autoFill=bool(enabled))
        return self.get_preferences()

    def toggle_auto_fill(self) -> AutofillPreferences:
        return self.set_auto_fill(not self.is_auto_fill_enabled())

    def set_min_confidence(self, value: float) -> AutofillPreferences:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"min_confidence must be between 0 and 1, got {value}")
        self._update_preferences(minConfidence=float(value))
        return self.get_preferences()

    # -- user profile ----------------------------------------------------------

    def get_user_profile(self) -> dict[str, Any] | None:
        profile = self._store.get(USER_PROFILE_KEY)
        return profile if isinstance(profile, dict) else None

    def get_user_id(self) -> str | None:
        profile = self.get_user_profile()
        user_id = profile.get("id") if profile else None
        return str(user_id) if user_id else None

    def set_user_id(self, user_id: str) -> None:
        profile = dict(self.get_user_profile() or {})
        profile["id"] = user_id
        self._store.set(USER_PROFILE_KEY, profile)

    # -- answers cache ---------------------------------------------------------

    def cache_answers(self, batch: AnswerBatch, job_id: str | None = None) -> None:
        now = self._clock.now()
        entries = self.recent_answers()
        entries.append(
            {
                "questionHash": f"{job_id or 'unknown'}-{int(now.timestamp() * 1000)}",
                "question": "Application Form",
                "answer": json.dumps(
                    [
                        {"field_id": a.field_id, "answer": a.answer, "confidence": a.confidence}
                        for a in batch.answers
                    ]
                ),
                "confidence": batch.overall_confidence,
                "cachedAt": now.isoformat(),
            }
        )
        self._store.set(ANSWERS_CACHE_KEY, entries[-ANSWERS_CACHE_LIMIT:])

    def recent_answers(self) -> list[dict[str, Any]]:
        entries = self._store.get(ANSWERS_CACHE_KEY)
        return list(entries) if isinstance(entries, list) else []

    def clear_answers_cache(self) -> None:
        self._store.remove(ANSWERS_CACHE_KEY)

    # -- internal helpers ------------------------------------------------------

    def _raw_preferences(self) -> dict[str, Any]:
        raw = self._store.get(PREFERENCES_KEY)
        return dict(raw) if isinstance(raw, dict) else {}

    def _update_preferences(self, **changes: Any) -> None:
        raw = self._raw_preferences()
        raw.update(changes)
        self._store.set(PREFERENCES_KEY, raw)


__all__ = [
    "PreferenceService",
    "USER_PROFILE_KEY",
    "PREFERENCES_KEY",
    "ANSWERS_CACHE_KEY",
    "ANSWERS_CACHE_LIMIT",
]
