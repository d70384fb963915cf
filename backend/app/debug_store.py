"""
Bounded capture of raw webhook payloads for /webhook-debug.

Used while onboarding a provider to see exactly what it sends. Holds at most
`capacity` entries (oldest dropped first) and lives only as long as the
process. reset() empties it.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional


@dataclass(frozen=True)
class CapturedPayload:
    received_at: str
    payload: Any
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"receivedAt": self.received_at, "payload": self.payload, "headers": self.headers}


class DebugPayloadStore:
    """Thread-safe ring buffer of captured payloads."""

    def __init__(self, capacity: int = 10):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._entries: Deque[CapturedPayload] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, payload: Any, headers: Optional[Dict[str, str]] = None) -> CapturedPayload:
        entry = CapturedPayload(
            received_at=datetime.now(timezone.utc).isoformat(),
            payload=payload,
            headers=dict(headers or {}),
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def latest(self) -> Optional[CapturedPayload]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def snapshot(self) -> List[CapturedPayload]:
        """Entries newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def reset(self) -> int:
        """Drop everything. Returns how many entries were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
