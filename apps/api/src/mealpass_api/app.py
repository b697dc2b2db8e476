from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from mealpass_api.core.settings import settings
from mealpass_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.scanning import (
    NonceRegistry,
    TenantSettingsProvider,
    build_expiring_store,
    build_notifier,
    drain_in_flight_notifications,
)
from .workers import SubscriptionSweepWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_worker = SubscriptionSweepWorker(
        session_factory=_session_factory,
        interval_seconds=settings.subscription_sweep_interval_seconds,
        batch_size=settings.subscription_sweep_batch_size,
    )
    app.state.subscription_sweep_worker = sweep_worker

    sweep_enabled = settings.subscription_sweep_worker_enabled
    if sweep_enabled:
        sweep_worker.start()
        logger.info(
            "Subscription sweep worker enabled",
            interval_seconds=sweep_worker.interval_seconds,
            batch_size=settings.subscription_sweep_batch_size,
        )
    else:
        logger.info(
            "Subscription sweep worker disabled",
            reason="subscription_sweep_worker_enabled is false",
        )

    try:
        yield
    finally:
        if sweep_enabled and sweep_worker.is_running:
            await sweep_worker.stop()
        drained = await drain_in_flight_notifications(settings.notification_drain_timeout_seconds)
        if drained:
            logger.info("Drained redemption notifications on shutdown", count=drained)


def _install_scan_services(app: FastAPI) -> None:
    store = build_expiring_store(settings)
    app.state.shared_store = store
    app.state.nonce_registry = NonceRegistry(store)
    app.state.scan_settings_provider = TenantSettingsProvider(async_session, store)
    app.state.redemption_notifier = build_notifier(settings)
    logger.info(
        "Scan services configured",
        shared_state_backend=settings.shared_state_backend,
        notifier_backend=settings.notifier_backend,
    )


def create_app() -> FastAPI:
    """Application factory for the MealPass FastAPI service."""
    configure_logging(
        service_name="mealpass-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    if settings.environment == "production" and settings.qr_signing_secret == "change-me":
        logger.warning("QR signing secret is the development default")

    app = FastAPI(
        title="MealPass API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="mealpass-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    _install_scan_services(app)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
