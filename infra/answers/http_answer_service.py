"""HTTP client for the remote answer-generation service.

Uses ``urllib.request`` for HTTP calls run on a worker thread, matching the
pattern used elsewhere in the codebase.
"""

from __future__ import annotations

import asyncio
import json
import socket
import urllib.error
import urllib.request
from typing import Any, Mapping

from domain.errors import AnswerRejectedError, ServiceUnavailableError
from domain.models import AnswerBatch, AnswerRequest, FieldDescriptor, GeneratedAnswer
from domain.ports import LoggerPort

DEFAULT_FILL_PATH = "/api/flash/fill-application-form"
_PROFILE_REJECTED_STATUSES = frozenset({400, 422})


class HttpAnswerService:
    """Implements ``AnswerServicePort`` over a JSON POST endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        logger: LoggerPort,
        api_key: str | None = None,
        fill_path: str = DEFAULT_FILL_PATH,
        timeout: int = 60,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._logger = logger
        self._api_key = api_key
        self._fill_path = fill_path if fill_path.startswith("/") else f"/{fill_path}"
        self._timeout = timeout

    async def fill_application(self, request: AnswerRequest) -> AnswerBatch:
        payload: dict[str, Any] = {
            "questions": [self._descriptor_payload(d) for d in request.fields],
            "user_id": request.user_id,
            "job_id": request.job_id,
        }
        if request.user_profile:
            try:
                data = await asyncio.to_thread(
                    self._post, {**payload, "user_profile": dict(request.user_profile)}
                )
            except AnswerRejectedError as exc:
                if exc.status_code not in _PROFILE_REJECTED_STATUSES:
                    raise
                self._logger.warning(
                    "answer_service_rejected_profile",
                    status_code=exc.status_code,
                    detail=exc.detail,
                )
                data = await asyncio.to_thread(self._post, payload)
        else:
            data = await asyncio.to_thread(self._post, payload)
        return self._parse_batch(data)

    # -- internal helpers ---------------------------------------------------

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}{self._fill_path}"
        body = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(url, data=body, method="POST")
        req.add_header("Content-Type", "application/json")
        if self._api_key:
            req.add_header("Authorization", f"Bearer {self._api_key}")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            detail = self._error_detail(exc)
            if exc.code >= 500:
                raise ServiceUnavailableError(f"Answer service error ({exc.code}): {detail}") from exc
            raise AnswerRejectedError(exc.code, detail) from exc
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as exc:
            raise ServiceUnavailableError(f"Answer service unreachable: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ServiceUnavailableError("Answer service returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise ServiceUnavailableError("Answer service returned an unexpected payload")
        return data

    @staticmethod
    def _error_detail(exc: urllib.error.HTTPError) -> str:
        try:
            data = json.loads(exc.read().decode("utf-8"))
        except (ValueError, OSError, AttributeError):
            return str(exc.reason or f"HTTP {exc.code} Error")
        if isinstance(data, dict):
            for key in ("detail", "message", "error"):
                if data.get(key):
                    value = data[key]
                    return value if isinstance(value, str) else json.dumps(value)
        return f"HTTP {exc.code} Error"

    @staticmethod
    def _descriptor_payload(descriptor: FieldDescriptor) -> dict[str, Any]:
        rules = descriptor.validation
        validation = {
            "pattern": rules.pattern,
            "min": rules.min,
            "max": rules.max,
            "min_length": rules.min_length,
            "max_length": rules.max_length,
            "required": rules.required,
        }
        return {
            "id": descriptor.id,
            "label": descriptor.label,
            "type": descriptor.type.value,
            "required": descriptor.required,
            "placeholder": descriptor.placeholder,
            "options": list(descriptor.options),
            "value": descriptor.value,
            "validation": {k: v for k, v in validation.items() if v is not None},
        }

    @staticmethod
    def _parse_batch(data: Mapping[str, Any]) -> AnswerBatch:
        answers = []
        for item in data.get("answers") or []:
            if not isinstance(item, dict) or not item.get("field_id"):
                continue
            raw_answer = item.get("answer")
            if isinstance(raw_answer, bool):
                answer = "true" if raw_answer else "false"
            elif raw_answer is None:
                answer = ""
            else:
                answer = str(raw_answer)
            answers.append(
                GeneratedAnswer(
                    field_id=str(item["field_id"]),
                    answer=answer,
                    confidence=float(item.get("confidence") or 0.0),
                    question=str(item.get("question") or ""),
                    sources=tuple(str(s) for s in item.get("sources") or ()),
                )
            )
        return AnswerBatch(
            answers=tuple(answers),
            overall_confidence=float(data.get("overall_confidence") or 0.0),
        )
