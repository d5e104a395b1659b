"""Structured event emission and timing."""

from __future__ import annotations

import json
import sys
import time
from datetime import datetime, timezone
from typing import Any


class Timer:
    """Simple context-manager timer for measuring duration_ms."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)


class EventEmitter:
    """Emits NDJSON lifecycle events to stderr.

    Events are also kept in ``history`` so callers can inspect what happened
    during a save without parsing stderr.
    """

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self.history: list[dict[str, Any]] = []

    def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data or {},
        }
        self.history.append(payload)
        if not self.enabled:
            return
        sys.stderr.write(json.dumps(payload, default=str) + "\n")
        sys.stderr.flush()

    def names(self) -> list[str]:
        return [entry["event"] for entry in self.history]
