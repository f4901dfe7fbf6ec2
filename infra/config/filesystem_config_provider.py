from __future__ import annotations

import json
import urllib.parse
from pathlib import Path
from typing import Any

from domain.models import AdvanceVocabulary, AppConfig, AutofillTimings
from domain.utils import split_csv

_REQUIRED_CONFIG_KEYS = {"ANSWER_SERVICE_URL"}
_LOCAL_HOSTS = {"localhost", "127.0.0.1"}
_MAX_RETRY_ROUNDS_LIMIT = 5
_DEFAULT_TIMEOUT_SECONDS = 60
_DEFAULT_MAX_RETRY_ROUNDS = 2


class FileSystemConfigProvider:
    """Reads config.json from a config directory.

    Every public method re-reads from disk so that edits
    to the JSON file take effect without restarting the app.
    """

    def __init__(self, config_dir: str) -> None:
        self._config_dir = Path(config_dir)

    @property
    def config_path(self) -> Path:
        return self._config_dir / "config.json"

    def validate(self) -> list[str]:
        errors: list[str] = []
        data = self._validate_json_file(self.config_path, _REQUIRED_CONFIG_KEYS, errors)
        if data is not None:
            errors.extend(self._validate_config_formats(data))
        return errors

    @staticmethod
    def _validate_config_formats(data: dict) -> list[str]:
        errors: list[str] = []
        url = str(data.get("ANSWER_SERVICE_URL", ""))
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme == "http" and parsed.hostname in _LOCAL_HOSTS:
            pass
        elif parsed.scheme != "https" or not parsed.netloc:
            errors.append(
                "ANSWER_SERVICE_URL must start with 'https://' "
                "(plain http is only allowed for localhost)."
            )

        key = data.get("ANSWER_SERVICE_KEY")
        if key is not None and not isinstance(key, str):
            errors.append("ANSWER_SERVICE_KEY must be a string.")

        timeout = data.get("REQUEST_TIMEOUT_SECONDS")
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
        ):
            errors.append("REQUEST_TIMEOUT_SECONDS must be a positive number.")

        rounds = data.get("max_retry_rounds")
        if rounds is not None and (
            isinstance(rounds, bool)
            or not isinstance(rounds, int)
            or not 0 <= rounds <= _MAX_RETRY_ROUNDS_LIMIT
        ):
            errors.append(f"max_retry_rounds must be an integer between 0 and {_MAX_RETRY_ROUNDS_LIMIT}.")

        timings = data.get("timings")
        if timings is not None:
            if not isinstance(timings, dict):
                errors.append("timings must be an object of millisecond values.")
            else:
                known = set(AutofillTimings.__dataclass_fields__)
                for name, value in timings.items():
                    if name not in known:
                        errors.append(f"timings.{name} is not a known timing.")
                    elif isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                        errors.append(f"timings.{name} must be a non-negative number.")

        for key_name in ("advance_labels", "blocked_labels"):
            labels = data.get(key_name)
            if labels is None:
                continue
            if not isinstance(labels, (list, str)) or (
                isinstance(labels, list) and not all(isinstance(x, str) for x in labels)
            ):
                errors.append(f"{key_name} must be a list of strings or a comma-separated string.")

        return errors

    def get_config(self) -> AppConfig:
        data = self._read_json("config.json")
        defaults = AdvanceVocabulary()
        return AppConfig(
            answer_service_url=data["ANSWER_SERVICE_URL"],
            answer_service_key=data.get("ANSWER_SERVICE_KEY") or None,
            request_timeout=int(data.get("REQUEST_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS)),
            max_retry_rounds=int(data.get("max_retry_rounds", _DEFAULT_MAX_RETRY_ROUNDS)),
            timings=AutofillTimings().with_milliseconds(data.get("timings") or {}),
            vocabulary=AdvanceVocabulary(
                allowed=self._labels(data.get("advance_labels"), defaults.allowed),
                blocked=self._labels(data.get("blocked_labels"), defaults.blocked),
                preferred=defaults.preferred,
            ),
        )

    # -- internal helpers ---------------------------------------------------

    @staticmethod
    def _labels(raw: Any, default: tuple[str, ...] | Any) -> tuple[str, ...]:
        if raw is None:
            return tuple(default)
        if isinstance(raw, str):
            return tuple(label.lower() for label in split_csv(raw))
        return tuple(str(label).strip().lower() for label in raw if str(label).strip())

    def _read_json(self, filename: str) -> dict:
        path = self._config_dir / filename
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _validate_json_file(
        path: Path,
        required_keys: set[str],
        errors: list[str],
    ) -> dict | None:
        """Validate a JSON file exists and has required keys.

        Returns the parsed dict on success, or None if the file
        is missing or unparseable.
        """
        if not path.is_file():
            errors.append(f"Missing file: {path}")
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            errors.append(f"Cannot read {path}: {exc}")
            return None
        if not isinstance(data, dict):
            errors.append(f"{path.name} must contain a JSON object")
            return None
        missing = required_keys - set(data.keys())
        if missing:
            errors.append(f"{path.name} missing keys: {', '.join(sorted(missing))}")
            return None
        return data
