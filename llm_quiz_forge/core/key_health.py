"""In-memory health tracking for API credentials.

One registry is constructed per process and shared by the rotation executor
and the monitoring endpoints. Records are created lazily the first time a
credential is seen and are never evicted.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Union

from .types import Credential, FailureKind, KeyHealthRecord, KeyStatus

DEFAULT_COOLDOWN_SECONDS = 60.0


def _iso(ts: Union[float, None]) -> Union[str, None]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class KeyHealthRegistry:
    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._records: dict[str, KeyHealthRecord] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, credential: Credential) -> KeyHealthRecord:
        record = self._records.get(credential.value)
        if record is None:
            record = KeyHealthRecord(masked_id=credential.masked, origin=credential.origin)
            self._records[credential.value] = record
        return record

    def ensure(self, credential: Credential) -> None:
        with self._lock:
            self._get_or_create(credential)

    def record_success(self, credential: Credential) -> None:
        with self._lock:
            record = self._get_or_create(credential)
            record.usage_count += 1
            record.last_used_at = self._clock()
            record.status = KeyStatus.ACTIVE
            record.error_count = 0

    def record_failure(self, credential: Credential, kind: FailureKind) -> None:
        with self._lock:
            record = self._get_or_create(credential)
            record.error_count += 1
            record.last_error_at = self._clock()
            if kind is FailureKind.THROTTLED:
                record.status = KeyStatus.RATE_LIMITED
            else:
                record.status = KeyStatus.ERROR

    def is_cooling_down(
        self,
        credential: Credential,
        now: Union[float, None] = None,
        window: Union[float, None] = None,
    ) -> bool:
        now = self._clock() if now is None else now
        window = self.cooldown_seconds if window is None else window
        with self._lock:
            record = self._records.get(credential.value)
            if record is None or record.status is not KeyStatus.RATE_LIMITED:
                return False
            if record.last_error_at is None:
                return False
            return (now - record.last_error_at) < window

    def get(self, credential: Credential) -> Union[KeyHealthRecord, None]:
        """Copy of the record for ``credential``, or None if never observed."""
        with self._lock:
            record = self._records.get(credential.value)
            if record is None:
                return None
            return KeyHealthRecord(**vars(record))

    def snapshot(self) -> list[dict]:
        with self._lock:
            return [
                {
                    "masked_id": r.masked_id,
                    "usage_count": r.usage_count,
                    "error_count": r.error_count,
                    "last_used_at": _iso(r.last_used_at),
                    "last_error_at": _iso(r.last_error_at),
                    "status": r.status.value,
                    "origin": r.origin.value,
                }
                for r in self._records.values()
            ]

    def summary(self) -> dict:
        rows = self.snapshot()
        by_status = {status.value: 0 for status in KeyStatus}
        for row in rows:
            by_status[row["status"]] += 1
        return {
            "pool_size": len(rows),
            "total_usage": sum(r["usage_count"] for r in rows),
            "total_errors": sum(r["error_count"] for r in rows),
            "by_status": by_status,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
