from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Any


DEFAULT_DEDUP_CAPACITY = 1000


def event_fingerprint(
    timestamp: Any,
    subject: str | None,
    *,
    received_at_ms: int | None = None,
) -> str:
    """`{timestamp-or-receipt-ms}_{subject-or-unknown}`."""
    if timestamp is None or timestamp == "":
        timestamp = received_at_ms if received_at_ms is not None else int(time.time() * 1000)
    return f"{timestamp}_{subject or 'unknown'}"


class EventDeduplicator:
    """
    Bounded recency set of processed event fingerprints.

    Lives for the process lifetime only; a restart forgets every fingerprint.
    Eviction is strict FIFO on insertion order once `capacity` is exceeded.
    """

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = Lock()

    def check_and_record(self, fingerprint: str) -> bool:
        """Record `fingerprint`; return False if it was already recorded."""
        with self._lock:
            if fingerprint in self._seen:
                return False
            self._seen[fingerprint] = None
            while len(self._seen) > self.capacity:
                self._seen.popitem(last=False)
            return True

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
