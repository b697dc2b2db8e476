"""Builders and fakes shared by the redemption tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from mealpass_api.models import (
    Customer,
    MealPlan,
    MealSubscription,
    MealTransaction,
    TenantScanSettings,
)
from mealpass_api.observability.scanning import ScanObservabilityStore
from mealpass_api.services.scanning import (
    CredentialPayload,
    CredentialType,
    InMemoryExpiringStore,
    NonceRegistry,
    RedemptionCoordinator,
    TenantSettingsProvider,
    encode_credential,
)

TEST_SECRET = "test-signing-secret"
# A Monday lunchtime under the default windows.
DEFAULT_NOW = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.events: list[Any] = []
        self.fail = fail

    async def notify(self, event) -> None:
        if self.fail:
            raise RuntimeError("socket gateway unavailable")
        self.events.append(event)


@dataclass(frozen=True)
class SeededCustomer:
    tenant_id: UUID
    customer_id: UUID
    qr_code_id: str
    subscription_id: UUID | None = None
    plan_id: UUID | None = None


async def seed_customer(
    session_factory,
    *,
    tenant_id: UUID | None = None,
    breakfast: int = 10,
    lunch: int = 10,
    dinner: int = 10,
    snack: int = 0,
    meals_remaining: int | None = None,
    tracks_meal_balances: bool = True,
    plan_meal_types: list[str] | None = None,
    with_subscription: bool = True,
    subscription_active: bool = True,
    start_date: date = date(2026, 10, 1),
    end_date: date = date(2026, 11, 30),
    paused_at: datetime | None = None,
    customer_active: bool = True,
    scan_settings: dict[str, Any] | None = None,
) -> SeededCustomer:
    tenant_id = tenant_id or uuid4()
    async with session_factory() as session:
        if scan_settings is not None:
            existing = (
                await session.execute(select(TenantScanSettings).where(TenantScanSettings.tenant_id == tenant_id))
            ).scalar_one_or_none()
            if existing is None:
                session.add(TenantScanSettings(tenant_id=tenant_id, **scan_settings))

        customer = Customer(tenant_id=tenant_id, name="Asha Rao", active=customer_active)
        session.add(customer)

        plan = None
        if plan_meal_types is not None:
            plan = MealPlan(tenant_id=tenant_id, name="Test plan", meal_types=plan_meal_types)
            session.add(plan)
        await session.flush()

        subscription = None
        if with_subscription:
            per_type = breakfast + lunch + dinner + snack
            remaining = meals_remaining if meals_remaining is not None else per_type
            subscription = MealSubscription(
                tenant_id=tenant_id,
                customer_id=customer.id,
                plan_id=plan.id if plan else None,
                meals_total=remaining,
                meals_remaining=remaining,
                breakfast_remaining=breakfast,
                lunch_remaining=lunch,
                dinner_remaining=dinner,
                snack_remaining=snack,
                tracks_meal_balances=tracks_meal_balances,
                active=subscription_active,
                start_date=start_date,
                end_date=end_date,
                paused_at=paused_at,
            )
            session.add(subscription)
            await session.flush()

        await session.commit()
        return SeededCustomer(
            tenant_id=tenant_id,
            customer_id=customer.id,
            qr_code_id=customer.qr_code_id,
            subscription_id=subscription.id if subscription else None,
            plan_id=plan.id if plan else None,
        )


def issue_qr(
    seeded: SeededCustomer,
    *,
    secret: str = TEST_SECRET,
    qr_id: str | None = None,
    tenant_id: UUID | str | None = None,
    **kwargs: Any,
) -> str:
    return encode_credential(
        CredentialPayload(
            customer_id=str(seeded.customer_id),
            tenant_id=str(tenant_id or seeded.tenant_id),
            qr_id=qr_id or seeded.qr_code_id,
            credential_type=CredentialType.QR_SCAN,
        ),
        secret,
        **kwargs,
    )


async def load_subscription(session_factory, subscription_id: UUID) -> MealSubscription:
    async with session_factory() as session:
        return (
            await session.execute(select(MealSubscription).where(MealSubscription.id == subscription_id))
        ).scalar_one()


async def load_transactions(session_factory, customer_id: UUID) -> list[MealTransaction]:
    async with session_factory() as session:
        return list(
            (
                await session.execute(
                    select(MealTransaction)
                    .where(MealTransaction.customer_id == customer_id)
                    .order_by(MealTransaction.created_at.asc())
                )
            ).scalars()
        )


class ScanHarness:
    """Coordinator collaborators wired against a test database."""

    def __init__(self, session_factory, clock: MutableClock) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.store = InMemoryExpiringStore()
        self.settings_provider = TenantSettingsProvider(
            session_factory,
            self.store,
            ttl_seconds=60,
            timeout_seconds=5,
        )
        self.nonce_registry = NonceRegistry(self.store)
        self.notifier = RecordingNotifier()
        self.observability = ScanObservabilityStore()

    def coordinator(self, session, **overrides: Any) -> RedemptionCoordinator:
        options: dict[str, Any] = {
            "settings_provider": self.settings_provider,
            "notifier": self.notifier,
            "nonce_registry": self.nonce_registry,
            "signing_secret": TEST_SECRET,
            "enforce_qr_expiry": True,
            "clock": self.clock,
            "observability": self.observability,
        }
        options.update(overrides)
        return RedemptionCoordinator(session, **options)

    async def redeem(self, credential: str, scanner_id: str = "scanner-1", metadata=None, **overrides: Any):
        async with self.session_factory() as session:
            coordinator = self.coordinator(session, **overrides)
            result = await coordinator.redeem(credential, scanner_id, metadata)
            await coordinator.drain_notifications()
        return result
