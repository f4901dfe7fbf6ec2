from __future__ import annotations

import uuid


class UuidIdGenerator:
    def new_session_id(self) -> str:
        return f"session-{uuid.uuid4().hex[:12]}"
