from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealpass_api.core.settings import settings
from mealpass_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({error.__class__.__name__})")
        status = "error"

    sweep_worker = getattr(request.app.state, "subscription_sweep_worker", None)
    if settings.subscription_sweep_worker_enabled and sweep_worker is not None:
        running = bool(getattr(sweep_worker, "is_running", False))
        components["subscription_sweep"] = ComponentStatus(
            status="ready" if running else "starting",
            detail=None if running else "Subscription sweep worker not running",
        )
        if not running and status == "ready":
            status = "degraded"
    else:
        components["subscription_sweep"] = ComponentStatus(
            status="disabled",
            detail="Subscription sweep worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
