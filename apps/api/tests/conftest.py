import sys
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from mealpass_api.api.dependencies.scanning import (  # noqa: E402
    get_nonce_registry,
    get_redemption_notifier,
    get_scan_settings_provider,
)
from mealpass_api.app import create_app  # noqa: E402
from mealpass_api.db.base import Base  # noqa: E402
from mealpass_api.db.session import get_session  # noqa: E402
from scan_support import MutableClock, ScanHarness  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def scan_harness(session_factory):
    return ScanHarness(session_factory, MutableClock())


@pytest_asyncio.fixture
async def app_with_db(session_factory, scan_harness):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_scan_settings_provider] = lambda: scan_harness.settings_provider
    app.dependency_overrides[get_nonce_registry] = lambda: scan_harness.nonce_registry
    app.dependency_overrides[get_redemption_notifier] = lambda: scan_harness.notifier

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
