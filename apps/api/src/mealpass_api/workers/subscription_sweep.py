"""Worker that retires exhausted and lapsed subscriptions."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mealpass_api.core.settings import settings
from mealpass_api.models.subscription import MealSubscription

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class SubscriptionSweepWorker:
    """Periodically deactivates subscriptions the redemption path left active.

    Redemption deactivates a subscription when its last meal is consumed, but
    that step is best-effort; this sweep also catches subscriptions whose
    validity window ended without any scan.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.subscription_sweep_interval_seconds
        self._batch_size = batch_size or settings.subscription_sweep_batch_size
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Subscription sweep worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Subscription sweep worker stopped")

    async def run_once(self) -> Dict[str, int]:
        """Deactivate one batch of exhausted or expired subscriptions."""

        today = self._today()
        summary: Dict[str, int] = {"exhausted": 0, "expired": 0}

        session = await self._ensure_session()
        async with session as managed_session:
            exhausted_filter = or_(
                MealSubscription.meals_remaining <= 0,
                and_(
                    MealSubscription.tracks_meal_balances.is_(True),
                    MealSubscription.breakfast_remaining <= 0,
                    MealSubscription.lunch_remaining <= 0,
                    MealSubscription.dinner_remaining <= 0,
                    MealSubscription.snack_remaining <= 0,
                ),
            )
            rows = (
                await managed_session.execute(
                    select(MealSubscription.id, MealSubscription.end_date)
                    .where(
                        MealSubscription.active.is_(True),
                        or_(exhausted_filter, MealSubscription.end_date < today),
                    )
                    .order_by(MealSubscription.end_date.asc(), MealSubscription.id.asc())
                    .limit(self._batch_size)
                )
            ).all()
            if not rows:
                return summary

            exhausted_ids = [row.id for row in rows if row.end_date >= today]
            expired_ids = [row.id for row in rows if row.end_date < today]

            try:
                if exhausted_ids:
                    result = await managed_session.execute(
                        update(MealSubscription)
                        .where(MealSubscription.id.in_(exhausted_ids), MealSubscription.active.is_(True))
                        .values(active=False, needs_renewal=True)
                        .execution_options(synchronize_session=False)
                    )
                    summary["exhausted"] = int(result.rowcount or 0)
                if expired_ids:
                    result = await managed_session.execute(
                        update(MealSubscription)
                        .where(MealSubscription.id.in_(expired_ids), MealSubscription.active.is_(True))
                        .values(active=False)
                        .execution_options(synchronize_session=False)
                    )
                    summary["expired"] = int(result.rowcount or 0)
                await managed_session.commit()
            except Exception as exc:
                await managed_session.rollback()
                logger.exception("Subscription sweep failed", error=str(exc))
                raise

        logger.info(
            "Subscription sweep completed",
            exhausted=summary["exhausted"],
            expired=summary["expired"],
        )
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged and retried next interval
                logger.exception("Subscription sweep iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session
