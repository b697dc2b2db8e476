"""Seed a development mess with one customer, a plan and an active subscription."""

from __future__ import annotations

import asyncio
import os
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mealpass_api.core.settings import settings
from mealpass_api.db.base import Base
from mealpass_api.models import Customer, MealPlan, MealSubscription, TenantScanSettings
from mealpass_api.services.scanning import CredentialPayload, CredentialType, encode_credential

DEV_TENANT_ID = UUID(os.getenv("DEV_TENANT_ID", "00000000-0000-4000-8000-000000000001"))
DEV_CUSTOMER_PHONE = os.getenv("DEV_CUSTOMER_PHONE", "+910000000001")
DEV_MEALS_PER_TYPE = int(os.getenv("DEV_MEALS_PER_TYPE", "30"))


async def seed_tenant(session: AsyncSession) -> Customer:
    with session.no_autoflush:
        existing = await session.execute(
            select(Customer).where(Customer.tenant_id == DEV_TENANT_ID, Customer.phone == DEV_CUSTOMER_PHONE)
        )
    customer = existing.scalar_one_or_none()
    if customer is not None:
        return customer

    settings_row = TenantScanSettings(
        tenant_id=DEV_TENANT_ID,
        meal_windows=settings.default_meal_windows,
        double_scan_window_seconds=settings.default_double_scan_window_seconds,
        timezone=os.getenv("DEV_TENANT_TIMEZONE", "Asia/Kolkata"),
    )
    plan = MealPlan(
        tenant_id=DEV_TENANT_ID,
        name="Three meals daily",
        meal_types=["breakfast", "lunch", "dinner"],
        breakfast_allocation=DEV_MEALS_PER_TYPE,
        lunch_allocation=DEV_MEALS_PER_TYPE,
        dinner_allocation=DEV_MEALS_PER_TYPE,
        duration_days=30,
    )
    customer = Customer(tenant_id=DEV_TENANT_ID, name="Dev Customer", phone=DEV_CUSTOMER_PHONE, room_no="101")
    session.add_all([settings_row, plan, customer])
    await session.flush()

    today = date.today()
    session.add(
        MealSubscription(
            tenant_id=DEV_TENANT_ID,
            customer_id=customer.id,
            plan_id=plan.id,
            meals_total=DEV_MEALS_PER_TYPE * 3,
            meals_remaining=DEV_MEALS_PER_TYPE * 3,
            breakfast_remaining=DEV_MEALS_PER_TYPE,
            lunch_remaining=DEV_MEALS_PER_TYPE,
            dinner_remaining=DEV_MEALS_PER_TYPE,
            start_date=today,
            end_date=today + timedelta(days=plan.duration_days),
        )
    )
    await session.commit()
    return customer


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        if settings.database_url.startswith("sqlite"):
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            customer = await seed_tenant(session)
        credential = encode_credential(
            CredentialPayload(
                customer_id=str(customer.id),
                tenant_id=str(customer.tenant_id),
                qr_id=customer.qr_code_id,
                credential_type=CredentialType.QR_SCAN,
            ),
            settings.qr_signing_secret,
        )
        print(f"Tenant {DEV_TENANT_ID} ready")
        print(f"Customer {customer.id} QR credential:\n{credential}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
