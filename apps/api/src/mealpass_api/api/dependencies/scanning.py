"""Wiring for the redemption pipeline's collaborators."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mealpass_api.db.session import get_session
from mealpass_api.services.scanning import (
    BatchRedemptionDriver,
    NonceRegistry,
    RedemptionCoordinator,
    RedemptionNotifier,
    TenantSettingsProvider,
)


def get_scan_settings_provider(request: Request) -> TenantSettingsProvider:
    return request.app.state.scan_settings_provider


def get_nonce_registry(request: Request) -> NonceRegistry:
    return request.app.state.nonce_registry


def get_redemption_notifier(request: Request) -> RedemptionNotifier:
    return request.app.state.redemption_notifier


async def get_redemption_coordinator(
    db: AsyncSession = Depends(get_session),
    settings_provider: TenantSettingsProvider = Depends(get_scan_settings_provider),
    nonce_registry: NonceRegistry = Depends(get_nonce_registry),
    notifier: RedemptionNotifier = Depends(get_redemption_notifier),
) -> RedemptionCoordinator:
    return RedemptionCoordinator(
        db,
        settings_provider=settings_provider,
        notifier=notifier,
        nonce_registry=nonce_registry,
    )


async def get_batch_driver(
    coordinator: RedemptionCoordinator = Depends(get_redemption_coordinator),
) -> BatchRedemptionDriver:
    return BatchRedemptionDriver(coordinator)
