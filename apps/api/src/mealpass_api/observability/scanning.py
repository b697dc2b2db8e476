from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class ScanSnapshot:
    outcomes: Dict[str, int]
    reasons: Dict[str, int]
    batches: Dict[str, int]
    notifications: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "outcomes": dict(self.outcomes),
            "reasons": dict(self.reasons),
            "batches": dict(self.batches),
            "notifications": dict(self.notifications),
        }


class ScanObservabilityStore:
    """Collect redemption pipeline telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._outcomes: Dict[str, int] = defaultdict(int)
        self._reasons: Dict[str, int] = defaultdict(int)
        self._batches: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)

    def record_redemption(self, status: str, reason: str | None = None, *, idempotent: bool = False) -> None:
        with self._lock:
            self._outcomes[status] += 1
            if idempotent:
                self._outcomes["idempotent_replays"] += 1
            if reason:
                self._reasons[reason] += 1

    def record_race_lost(self) -> None:
        with self._lock:
            self._outcomes["race_lost"] += 1

    def record_batch(self, *, size: int, success: int, blocked: int, failed: int) -> None:
        with self._lock:
            self._batches["runs"] += 1
            self._batches["scans"] += size
            self._batches["success"] += success
            self._batches["blocked"] += blocked
            self._batches["failed"] += failed

    def record_notification(self, delivered: bool) -> None:
        with self._lock:
            self._notifications["delivered" if delivered else "failed"] += 1

    def snapshot(self) -> ScanSnapshot:
        with self._lock:
            return ScanSnapshot(
                outcomes=dict(self._outcomes),
                reasons=dict(self._reasons),
                batches=dict(self._batches),
                notifications=dict(self._notifications),
            )

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
            self._reasons.clear()
            self._batches.clear()
            self._notifications.clear()


_STORE = ScanObservabilityStore()


def get_scan_store() -> ScanObservabilityStore:
    return _STORE


__all__ = ["get_scan_store", "ScanObservabilityStore", "ScanSnapshot"]
