from __future__ import annotations

import threading
import time
from typing import Dict


class AssistStats:
    """
    Rolling counters for how questions were resolved, safe to update from
    several request threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._status = {
            "questions": 0,
            "direct_answers": 0,
            "fallback_answers": 0,
            "cache_hits": 0,
            "errors": 0,
            "last_latency_ms": 0.0,
            "updated_at": time.time(),
        }

    def record(self, outcome: str, latency_ms: float = 0.0):
        """Count one question; outcome is "direct", "fallback", "cache" or "error"."""
        key = {
            "direct": "direct_answers",
            "fallback": "fallback_answers",
            "cache": "cache_hits",
            "error": "errors",
        }.get(outcome)
        with self._lock:
            self._status["questions"] += 1
            if key:
                self._status[key] += 1
            self._status["last_latency_ms"] = round(latency_ms, 2)
            self._status["updated_at"] = time.time()

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._status)
