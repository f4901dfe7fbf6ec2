from __future__ import annotations

import http.server
import json
import threading
from typing import Any, Generator

import pytest

from infra.answers import DEFAULT_FILL_PATH


class AnswerServiceStub(http.server.HTTPServer):
    """Local answer service: answers every question whose label it knows."""

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _AnswerHandler)
        self.answers_by_label: dict[str, Any] = {}
        self.requests: list[dict[str, Any]] = []

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.server_address[1]}"


class _AnswerHandler(http.server.BaseHTTPRequestHandler):
    server: AnswerServiceStub

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        payload = json.loads(self.rfile.read(length).decode("utf-8"))
        self.server.requests.append(payload)
        if self.path != DEFAULT_FILL_PATH:
            self._reply(404, {"detail": f"Unknown path {self.path}"})
            return
        answers = [
            {"field_id": q["id"], "answer": self.server.answers_by_label[q["label"]], "confidence": 0.9}
            for q in payload.get("questions", [])
            if q["label"] in self.server.answers_by_label
        ]
        self._reply(200, {"answers": answers, "overall_confidence": 0.9})

    def _reply(self, status: int, body: dict[str, Any]) -> None:
        raw = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def log_message(self, *_args: object) -> None:
        pass


@pytest.fixture()
def answer_server() -> Generator[AnswerServiceStub, None, None]:
    """Start a local HTTP answer service for one test."""
    server = AnswerServiceStub()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
