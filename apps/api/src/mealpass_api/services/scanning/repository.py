"""Storage access for meal redemption.

Every call is bounded by ``timeout_seconds``; timeouts and driver failures are
re-raised as :class:`StorageError` so the coordinator can map them to a
retryable response. The only write that touches balances is
:meth:`RedemptionRepository.decrement_balance`, a single conditional UPDATE.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Iterable, TypeVar
from uuid import UUID

from loguru import logger
from sqlalchemy import DateTime, and_, case, literal, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealpass_api.core.settings import settings
from mealpass_api.models.customer import Customer
from mealpass_api.models.meal_transaction import MealTransaction, MealTransactionStatus
from mealpass_api.models.meal_type import MealType
from mealpass_api.models.subscription import MealSubscription
from mealpass_api.services.scanning.eligibility import (
    CustomerSnapshot,
    SubscriptionSnapshot,
    TransactionRef,
)

T = TypeVar("T")


class StorageError(Exception):
    """Storage was unavailable or rejected a statement."""


class StorageTimeoutError(StorageError):
    """A storage call exceeded its time budget."""


class IdempotencyConflictError(StorageError):
    """Another request already recorded a transaction with this idempotency key."""


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values (SQLite reads) are assumed UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DecrementOutcome:
    subscription_id: UUID
    balance_before: int
    balance_after: int
    meals_remaining: int


def _customer_snapshot(row: Customer) -> CustomerSnapshot:
    return CustomerSnapshot(
        id=row.id,
        tenant_id=row.tenant_id,
        active=bool(row.active),
        qr_code_id=row.qr_code_id,
        name=row.name,
    )


def _subscription_snapshot(row: MealSubscription) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        id=row.id,
        tenant_id=row.tenant_id,
        customer_id=row.customer_id,
        plan_id=row.plan_id,
        meals_total=int(row.meals_total or 0),
        meals_remaining=int(row.meals_remaining or 0),
        balances=row.meal_balances(),
        tracks_meal_balances=bool(row.tracks_meal_balances),
        active=bool(row.active),
        start_date=row.start_date,
        end_date=row.end_date,
        paused_at=row.paused_at,
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
    )


def _transaction_ref(row: MealTransaction) -> TransactionRef:
    return TransactionRef(
        id=row.id,
        customer_id=row.customer_id,
        status=row.status,
        scanned_at=as_utc(row.scanned_at),
        meal_type=row.meal_type,
        subscription_id=row.subscription_id,
        balance_after=row.balance_after,
        idempotency_key=row.idempotency_key,
        failure_reason=row.failure_reason,
        duplicate_of_transaction_id=row.duplicate_of_transaction_id,
    )


class RedemptionRepository:
    """Tenant-scoped reads and the writes a redemption performs."""

    def __init__(self, session: AsyncSession, *, timeout_seconds: float | None = None) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds or settings.storage_timeout_seconds

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("Storage call timed out", operation=operation, timeout_seconds=self._timeout_seconds)
            raise StorageTimeoutError(operation) from exc
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Storage call failed", operation=operation, error=str(exc))
            raise StorageError(operation) from exc

    async def get_customer(self, tenant_id: UUID, customer_id: UUID) -> CustomerSnapshot | None:
        stmt = select(Customer).where(Customer.tenant_id == tenant_id, Customer.id == customer_id)
        result = await self._bounded("get_customer", self._session.execute(stmt))
        row = result.scalar_one_or_none()
        return _customer_snapshot(row) if row is not None else None

    async def get_active_subscription(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        on: date,
    ) -> SubscriptionSnapshot | None:
        """Pick the current subscription, preferring the most recently updated."""

        stmt = (
            select(MealSubscription)
            .where(
                MealSubscription.tenant_id == tenant_id,
                MealSubscription.customer_id == customer_id,
                MealSubscription.active.is_(True),
                MealSubscription.start_date <= on,
                MealSubscription.end_date >= on,
            )
            .order_by(
                MealSubscription.updated_at.desc(),
                MealSubscription.created_at.desc(),
                MealSubscription.id.desc(),
            )
            .limit(1)
        )
        result = await self._bounded("get_active_subscription", self._session.execute(stmt))
        row = result.scalar_one_or_none()
        return _subscription_snapshot(row) if row is not None else None

    async def find_success_between(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        meal_type: MealType,
        start: datetime,
        end: datetime,
    ) -> TransactionRef | None:
        """Latest successful redemption of ``meal_type`` in ``[start, end]``."""

        stmt = (
            select(MealTransaction)
            .where(
                MealTransaction.tenant_id == tenant_id,
                MealTransaction.customer_id == customer_id,
                MealTransaction.meal_type == meal_type,
                MealTransaction.status == MealTransactionStatus.SUCCESS,
                MealTransaction.scanned_at >= as_utc(start),
                MealTransaction.scanned_at <= as_utc(end),
            )
            .order_by(MealTransaction.scanned_at.desc(), MealTransaction.created_at.desc())
            .limit(1)
        )
        result = await self._bounded("find_success_between", self._session.execute(stmt))
        row = result.scalar_one_or_none()
        return _transaction_ref(row) if row is not None else None

    async def find_by_idempotency_key(self, tenant_id: UUID, idempotency_key: str) -> TransactionRef | None:
        stmt = select(MealTransaction).where(
            MealTransaction.tenant_id == tenant_id,
            MealTransaction.idempotency_key == idempotency_key,
        )
        result = await self._bounded("find_by_idempotency_key", self._session.execute(stmt))
        row = result.scalar_one_or_none()
        return _transaction_ref(row) if row is not None else None

    async def decrement_balance(
        self,
        subscription: SubscriptionSnapshot,
        meal_type: MealType,
        *,
        scanned_at: datetime,
        duplicate_scope: tuple[datetime, datetime],
    ) -> DecrementOutcome | None:
        """Consume one meal if, at write time, the balance is still positive
        and no other scan consumed ``meal_type`` inside ``duplicate_scope``.

        Returns ``None`` when the precondition no longer holds (another scan
        consumed the last meal or this meal, or the subscription was
        deactivated).
        """

        scanned_at = as_utc(scanned_at)
        scope_start, scope_end = (as_utc(value) for value in duplicate_scope)
        last_redeemed = MealSubscription.last_redeemed_column(meal_type)
        conditions = [
            MealSubscription.id == subscription.id,
            MealSubscription.tenant_id == subscription.tenant_id,
            MealSubscription.active.is_(True),
            MealSubscription.meals_remaining > 0,
            or_(
                last_redeemed.is_(None),
                last_redeemed < scope_start,
                last_redeemed > scope_end,
            ),
        ]
        scanned_param = literal(scanned_at, type_=DateTime(timezone=True))
        values: dict[Any, Any] = {
            MealSubscription.meals_remaining: MealSubscription.meals_remaining - 1,
            # Offline replays can arrive out of order; the marker only moves forward.
            last_redeemed: case(
                (or_(last_redeemed.is_(None), last_redeemed < scanned_param), scanned_param),
                else_=last_redeemed,
            ),
        }
        returning = [MealSubscription.id, MealSubscription.meals_remaining]
        if subscription.tracks_meal_balances:
            column = MealSubscription.balance_column(meal_type)
            conditions.append(column > 0)
            values[column] = column - 1
            returning.append(column)

        stmt = (
            update(MealSubscription)
            .where(*conditions)
            .values(values)
            .returning(*returning)
            .execution_options(synchronize_session=False)
        )
        result = await self._bounded("decrement_balance", self._session.execute(stmt))
        row = result.first()
        if row is None:
            return None

        meals_remaining = int(row[1])
        balance_after = int(row[2]) if subscription.tracks_meal_balances else meals_remaining
        return DecrementOutcome(
            subscription_id=row[0],
            balance_before=balance_after + 1,
            balance_after=balance_after,
            meals_remaining=meals_remaining,
        )

    async def deactivate_if_exhausted(self, tenant_id: UUID, subscription_id: UUID) -> bool:
        """Mark an exhausted subscription inactive and due for renewal."""

        exhausted = or_(
            MealSubscription.meals_remaining <= 0,
            and_(
                MealSubscription.tracks_meal_balances.is_(True),
                MealSubscription.breakfast_remaining <= 0,
                MealSubscription.lunch_remaining <= 0,
                MealSubscription.dinner_remaining <= 0,
                MealSubscription.snack_remaining <= 0,
            ),
        )
        stmt = (
            update(MealSubscription)
            .where(
                MealSubscription.id == subscription_id,
                MealSubscription.tenant_id == tenant_id,
                MealSubscription.active.is_(True),
                exhausted,
            )
            .values(active=False, needs_renewal=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._bounded("deactivate_if_exhausted", self._session.execute(stmt))
        return bool(result.rowcount)

    async def record_transaction(self, **fields: Any) -> TransactionRef:
        """Append a ledger row and flush it inside the current unit of work."""

        for key in ("scanned_at", "client_timestamp", "synced_at"):
            if fields.get(key) is not None:
                fields[key] = as_utc(fields[key])
        transaction = MealTransaction(**fields)
        self._session.add(transaction)
        try:
            await self._bounded("record_transaction", self._session.flush())
        except IntegrityError as exc:
            if fields.get("idempotency_key"):
                raise IdempotencyConflictError(fields["idempotency_key"]) from exc
            logger.error("Ledger insert rejected", error=str(exc))
            raise StorageError("record_transaction") from exc
        return _transaction_ref(transaction)

    async def mark_synced(self, transaction_ids: Iterable[UUID], synced_at: datetime) -> int:
        ids = list(transaction_ids)
        if not ids:
            return 0
        stmt = (
            update(MealTransaction)
            .where(MealTransaction.id.in_(ids))
            .values(synced_at=as_utc(synced_at))
            .execution_options(synchronize_session=False)
        )
        result = await self._bounded("mark_synced", self._session.execute(stmt))
        await self.commit()
        return int(result.rowcount or 0)

    async def commit(self) -> None:
        await self._bounded("commit", self._session.commit())

    async def rollback(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError as exc:
            logger.error("Rollback failed", error=str(exc))


__all__ = [
    "DecrementOutcome",
    "IdempotencyConflictError",
    "RedemptionRepository",
    "StorageError",
    "StorageTimeoutError",
    "as_utc",
]
