"""Scanner-facing meal redemption endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from mealpass_api.api.dependencies.scanning import get_batch_driver, get_redemption_coordinator
from mealpass_api.api.dependencies.security import ScannerContext, require_scanner, require_scanner_api_key
from mealpass_api.core.settings import settings
from mealpass_api.models.meal_type import MealType
from mealpass_api.observability.scanning import get_scan_store
from mealpass_api.services.scanning import (
    BatchRedemptionDriver,
    BatchScan,
    RedemptionCoordinator,
    RedemptionReason,
    RedemptionResult,
    ScanMetadata,
)


router = APIRouter(
    prefix="/scan",
    tags=["Scan"],
    dependencies=[Depends(require_scanner_api_key)],
)


class RedeemRequest(BaseModel):
    credential: str = Field(..., min_length=1, description="Signed QR or deep-link credential")
    clientId: Optional[str] = Field(default=None, max_length=128)
    clientTimestamp: Optional[datetime] = None
    mealType: Optional[str] = Field(default=None, description="Admin-only meal type override")
    deviceId: Optional[str] = None
    scanLocation: Optional[str] = None


class RedemptionResponse(BaseModel):
    status: Literal["success", "blocked", "failed"]
    mealType: Optional[str] = None
    balanceRemaining: Optional[int] = None
    transactionId: Optional[UUID] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False
    idempotent: bool = False
    duplicateOfTransactionId: Optional[UUID] = None


class BatchScanRequestItem(BaseModel):
    credential: str = Field(..., min_length=1)
    clientTimestamp: Optional[datetime] = None
    clientId: Optional[str] = Field(default=None, max_length=128)


class BatchRedeemRequest(BaseModel):
    scans: List[BatchScanRequestItem]
    deviceId: Optional[str] = None
    scanLocation: Optional[str] = None


class BatchItemResponse(RedemptionResponse):
    clientId: Optional[str] = None


class BatchRedeemResponse(BaseModel):
    successCount: int
    blockedCount: int
    failedCount: int
    results: List[BatchItemResponse]


def _to_response(result: RedemptionResult) -> RedemptionResponse:
    return RedemptionResponse(
        status=result.status.value,
        mealType=result.meal_type.value if result.meal_type else None,
        balanceRemaining=result.balance_remaining,
        transactionId=result.transaction_id,
        reason=result.reason.value if result.reason else None,
        message=result.message,
        retryable=result.retryable,
        idempotent=result.idempotent,
        duplicateOfTransactionId=result.duplicate_of_transaction_id,
    )


def _resolve_forced_meal_type(raw: str | None, scanner: ScannerContext) -> MealType | None:
    if raw is None:
        return None
    if not scanner.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Meal type override requires an admin scanner",
        )
    meal_type = MealType.parse(raw)
    if meal_type is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown meal type '{raw}'",
        )
    return meal_type


@router.post(
    "/redeem",
    response_model=RedemptionResponse,
    response_model_exclude_none=True,
    summary="Redeem one meal for a scanned credential",
)
async def redeem_meal(
    payload: RedeemRequest,
    response: Response,
    scanner: ScannerContext = Depends(require_scanner),
    coordinator: RedemptionCoordinator = Depends(get_redemption_coordinator),
) -> RedemptionResponse:
    metadata = ScanMetadata(
        tenant_id=scanner.tenant_id,
        client_id=payload.clientId,
        client_timestamp=payload.clientTimestamp,
        forced_meal_type=_resolve_forced_meal_type(payload.mealType, scanner),
        device_id=payload.deviceId,
        scan_location=payload.scanLocation,
    )
    result = await coordinator.redeem(payload.credential, scanner.scanner_id, metadata)
    if result.reason is RedemptionReason.SYSTEM_ERROR:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return _to_response(result)


@router.post(
    "/batch",
    response_model=BatchRedeemResponse,
    response_model_exclude_none=True,
    summary="Replay scans captured while the scanner was offline",
)
async def redeem_batch(
    payload: BatchRedeemRequest,
    scanner: ScannerContext = Depends(require_scanner),
    driver: BatchRedemptionDriver = Depends(get_batch_driver),
) -> BatchRedeemResponse:
    if not payload.scans:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Batch contains no scans",
        )
    if len(payload.scans) > settings.batch_max_scans:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Batch exceeds {settings.batch_max_scans} scans",
        )

    summary = await driver.redeem_batch(
        [
            BatchScan(credential=item.credential, client_timestamp=item.clientTimestamp, client_id=item.clientId)
            for item in payload.scans
        ],
        scanner.scanner_id,
        ScanMetadata(
            tenant_id=scanner.tenant_id,
            device_id=payload.deviceId,
            scan_location=payload.scanLocation,
        ),
    )
    return BatchRedeemResponse(
        successCount=summary.success_count,
        blockedCount=summary.blocked_count,
        failedCount=summary.failed_count,
        results=[
            BatchItemResponse(clientId=item.client_id, **_to_response(item.result).model_dump())
            for item in summary.results
        ],
    )


@router.get("/metrics", summary="Redemption pipeline counters")
async def scan_metrics() -> Dict[str, Any]:
    return get_scan_store().snapshot().as_dict()
