"""Chronological replay of scans captured offline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from loguru import logger

from mealpass_api.observability.scanning import ScanObservabilityStore, get_scan_store
from mealpass_api.services.scanning.coordinator import RedemptionCoordinator
from mealpass_api.services.scanning.repository import StorageError
from mealpass_api.services.scanning.results import (
    RedemptionReason,
    RedemptionResult,
    RedemptionStatus,
    ScanMetadata,
)


@dataclass(frozen=True)
class BatchScan:
    credential: str
    client_timestamp: datetime | None = None
    client_id: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    client_id: str | None
    result: RedemptionResult

    def as_dict(self) -> dict[str, Any]:
        return {"clientId": self.client_id, **self.result.as_dict()}


@dataclass
class BatchRedemptionSummary:
    success_count: int = 0
    blocked_count: int = 0
    failed_count: int = 0
    results: list[BatchItemResult] = field(default_factory=list)

    def add(self, client_id: str | None, result: RedemptionResult) -> None:
        self.results.append(BatchItemResult(client_id=client_id, result=result))
        if result.idempotent or result.status is RedemptionStatus.BLOCKED:
            self.blocked_count += 1
        elif result.status is RedemptionStatus.SUCCESS:
            self.success_count += 1
        else:
            self.failed_count += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "successCount": self.success_count,
            "blockedCount": self.blocked_count,
            "failedCount": self.failed_count,
            "results": [item.as_dict() for item in self.results],
        }


def _sort_key(indexed: tuple[int, BatchScan]) -> tuple[int, float, int]:
    index, scan = indexed
    if scan.client_timestamp is None:
        return (1, 0.0, index)
    stamp = scan.client_timestamp
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return (0, stamp.timestamp(), index)


def order_scans(scans: Sequence[BatchScan]) -> list[BatchScan]:
    """Oldest first; scans without a timestamp keep submission order at the end."""

    return [scan for _, scan in sorted(enumerate(scans), key=_sort_key)]


class BatchRedemptionDriver:
    """Replay a batch through the coordinator one scan at a time."""

    def __init__(
        self,
        coordinator: RedemptionCoordinator,
        *,
        clock: Callable[[], datetime] | None = None,
        observability: ScanObservabilityStore | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observability = observability or get_scan_store()

    async def redeem_batch(
        self,
        scans: Sequence[BatchScan],
        scanner_id: str,
        metadata: ScanMetadata | None = None,
    ) -> BatchRedemptionSummary:
        base = metadata or ScanMetadata()
        summary = BatchRedemptionSummary()
        recorded = []

        # One at a time so each scan sees the ledger rows of its earlier siblings.
        for scan in order_scans(scans):
            item_metadata = replace(
                base,
                client_id=scan.client_id,
                client_timestamp=scan.client_timestamp,
                batch=True,
            )
            try:
                result = await self._coordinator.redeem(scan.credential, scanner_id, item_metadata)
            except Exception as exc:
                logger.exception(
                    "Batch scan raised; continuing with remaining scans",
                    scanner_id=scanner_id,
                    client_id=scan.client_id,
                    error=str(exc),
                )
                await self._coordinator.repository.rollback()
                result = RedemptionResult.denied(RedemptionReason.SYSTEM_ERROR)
            summary.add(scan.client_id, result)
            if result.transaction_id is not None and not result.idempotent:
                recorded.append(result.transaction_id)

        if recorded:
            try:
                await self._coordinator.repository.mark_synced(recorded, self._clock())
            except StorageError as exc:
                await self._coordinator.repository.rollback()
                logger.warning("Failed to stamp synced_at on batch transactions", count=len(recorded), error=str(exc))

        self._observability.record_batch(
            size=len(scans),
            success=summary.success_count,
            blocked=summary.blocked_count,
            failed=summary.failed_count,
        )
        logger.info(
            "Offline batch replayed",
            scanner_id=scanner_id,
            size=len(scans),
            success=summary.success_count,
            blocked=summary.blocked_count,
            failed=summary.failed_count,
        )
        return summary


__all__ = [
    "BatchItemResult",
    "BatchRedemptionDriver",
    "BatchRedemptionSummary",
    "BatchScan",
    "order_scans",
]
