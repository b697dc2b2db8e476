"""Meal redemption: credential in, one meal consumed (or a typed denial) out.

The only statement that mutates a balance is the conditional decrement in
:class:`RedemptionRepository`. It also refuses a second debit of the same meal
inside the tenant's duplicate scope, so concurrent scans for the same customer
are serialized by that statement alone. The coordinator holds no locks and is
safe to run on any number of instances.

Live scans are judged at server time. Offline batch replays are judged at the
device's timestamp when it is no older than ``max_offline_scan_age_seconds``.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import replace
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Callable, Protocol
from uuid import UUID

from loguru import logger
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from mealpass_api.core.settings import settings as app_settings
from mealpass_api.models.meal_transaction import MealTransactionStatus
from mealpass_api.models.meal_type import MealType
from mealpass_api.models.tenant_settings import DuplicatePolicy
from mealpass_api.observability.scanning import ScanObservabilityStore, get_scan_store
from mealpass_api.observability.tracing import annotate_span, get_scan_tracer
from mealpass_api.services.scanning.eligibility import (
    CustomerSnapshot,
    SubscriptionSnapshot,
    TransactionRef,
    evaluate_eligibility,
)
from mealpass_api.services.scanning.meal_windows import resolve_meal_type
from mealpass_api.services.scanning.notifier import MealRedeemedEvent, RedemptionNotifier
from mealpass_api.services.scanning.repository import (
    IdempotencyConflictError,
    RedemptionRepository,
    StorageError,
    as_utc,
)
from mealpass_api.services.scanning.results import (
    RedemptionReason,
    RedemptionResult,
    RedemptionStage,
    ScanMetadata,
)
from mealpass_api.services.scanning.settings_provider import ScanSettings
from mealpass_api.services.scanning.shared_state import NonceRegistry
from mealpass_api.services.scanning.token_codec import (
    CredentialError,
    CredentialPayload,
    CredentialType,
    DecodedCredential,
    decode_credential,
)

Clock = Callable[[], datetime]

# Strong references for notifier tasks that outlive the request-scoped coordinator.
_IN_FLIGHT: set[asyncio.Task[None]] = set()

_FORCED_NOTE = "meal type set by admin override"

_CREDENTIAL_REASONS = {
    CredentialError.INVALID_FORMAT: RedemptionReason.INVALID_FORMAT,
    CredentialError.INVALID_SIGNATURE: RedemptionReason.INVALID_SIGNATURE,
    CredentialError.EXPIRED: RedemptionReason.EXPIRED,
    CredentialError.WRONG_TYPE: RedemptionReason.WRONG_TYPE,
}


class SettingsProvider(Protocol):
    async def get_settings(self, tenant_id: UUID | str) -> ScanSettings: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def drain_in_flight_notifications(timeout_seconds: float | None = None) -> int:
    """Wait for notifier tasks scheduled by any coordinator; returns how many were pending."""

    loop = asyncio.get_running_loop()
    pending = [task for task in _IN_FLIGHT if not task.done() and task.get_loop() is loop]
    if not pending:
        return 0
    done, still_running = await asyncio.wait(pending, timeout=timeout_seconds)
    if still_running:
        logger.warning("Redemption notifications still pending at shutdown", pending=len(still_running))
    return len(done) + len(still_running)


def idempotency_key(tenant_id: UUID, customer_id: UUID, credential: str, client_id: str) -> str:
    """Stable key for one client-side scan attempt."""

    material = "|".join((str(tenant_id), str(customer_id), credential, client_id))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def duplicate_scope(
    policy: DuplicatePolicy,
    scanned_at: datetime,
    window_seconds: int,
    tz: tzinfo,
) -> tuple[datetime, datetime]:
    """Inclusive UTC range in which an earlier success makes a scan a duplicate."""

    if policy is DuplicatePolicy.SAME_DAY:
        local_day = scanned_at.astimezone(tz).date()
        start = datetime.combine(local_day, time.min, tzinfo=tz)
        end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz) - timedelta(microseconds=1)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    window = timedelta(seconds=max(int(window_seconds), 0))
    return scanned_at - window, scanned_at + window


def transaction_status_for(reason: RedemptionReason) -> MealTransactionStatus:
    if reason is RedemptionReason.DUPLICATE_SCAN:
        return MealTransactionStatus.DUPLICATE
    if reason.is_credential_error or reason is RedemptionReason.SYSTEM_ERROR:
        return MealTransactionStatus.FAILED
    return MealTransactionStatus.BLOCKED


def replay_result(existing: TransactionRef) -> RedemptionResult:
    """Answer a retried scan with the outcome already on the ledger."""

    if existing.status is MealTransactionStatus.SUCCESS and existing.meal_type is not None:
        return RedemptionResult.success(
            meal_type=existing.meal_type,
            balance_remaining=int(existing.balance_after or 0),
            transaction_id=existing.id,
            customer_id=existing.customer_id,
            idempotent=True,
        )
    try:
        reason = RedemptionReason(existing.failure_reason)
    except ValueError:
        reason = RedemptionReason.DUPLICATE_SCAN
    denial = RedemptionResult.denied(
        reason,
        meal_type=existing.meal_type,
        transaction_id=existing.id,
        duplicate_of_transaction_id=existing.duplicate_of_transaction_id,
        customer_id=existing.customer_id,
    )
    return replace(denial, idempotent=True)


class RedemptionCoordinator:
    """Run one scan through verification, eligibility and the atomic debit."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        settings_provider: SettingsProvider,
        notifier: RedemptionNotifier,
        nonce_registry: NonceRegistry,
        signing_secret: str | None = None,
        deep_link_secret: str | None = None,
        enforce_qr_expiry: bool | None = None,
        deep_link_ttl_seconds: int | None = None,
        max_offline_scan_age_seconds: int | None = None,
        clock: Clock | None = None,
        repository: RedemptionRepository | None = None,
        observability: ScanObservabilityStore | None = None,
    ) -> None:
        self._repository = repository or RedemptionRepository(db_session)
        self._settings_provider = settings_provider
        self._notifier = notifier
        self._nonce_registry = nonce_registry
        self._signing_secret = signing_secret or app_settings.qr_signing_secret
        self._deep_link_secret = deep_link_secret or app_settings.resolved_deep_link_secret
        self._enforce_qr_expiry = (
            app_settings.enforce_qr_expiry if enforce_qr_expiry is None else enforce_qr_expiry
        )
        self._deep_link_ttl_seconds = deep_link_ttl_seconds or app_settings.deep_link_ttl_seconds
        self._max_offline_age = timedelta(
            seconds=max_offline_scan_age_seconds or app_settings.max_offline_scan_age_seconds
        )
        self._clock = clock or _utcnow
        self._observability = observability or get_scan_store()
        self._pending_notifications: set[asyncio.Task[None]] = set()
        # Last stage reached by the attempt in progress; a coordinator serves
        # one scan at a time.
        self._stage = RedemptionStage.RECEIVED

    @property
    def repository(self) -> RedemptionRepository:
        return self._repository

    async def redeem(
        self,
        credential: str,
        scanner_id: str,
        metadata: ScanMetadata | None = None,
    ) -> RedemptionResult:
        """Redeem one meal for the holder of ``credential``.

        Denials come back as typed results. Storage failures are rolled back
        and reported as a retryable ``system_error``; a retry carrying the same
        ``client_id`` resolves through the idempotency key.
        """

        metadata = metadata or ScanMetadata()
        self._stage = RedemptionStage.RECEIVED
        with get_scan_tracer().start_as_current_span("scan.redeem"):
            annotate_span({"scan.scanner_id": scanner_id, "scan.batch": metadata.batch})
            try:
                result = await self._redeem(credential, scanner_id, metadata)
            except StorageError as exc:
                await self._repository.rollback()
                logger.warning(
                    "Redemption aborted by storage failure",
                    scanner_id=scanner_id,
                    client_id=metadata.client_id,
                    last_stage=self._stage.value,
                    error=exc.__class__.__name__,
                )
                result = RedemptionResult.denied(RedemptionReason.SYSTEM_ERROR, stage=self._stage)
            annotate_span(
                {
                    "scan.status": result.status.value,
                    "scan.reason": result.reason.value if result.reason else None,
                    "scan.stage": result.stage.value,
                    "scan.idempotent": result.idempotent,
                }
            )

        self._observability.record_redemption(
            result.status.value,
            result.reason.value if result.reason else None,
            idempotent=result.idempotent,
        )
        return result

    async def drain_notifications(self) -> None:
        """Wait for the notifier tasks this coordinator scheduled."""

        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

    def _scan_time(self, metadata: ScanMetadata, now: datetime) -> tuple[datetime, bool]:
        """Time the scan is judged at, and whether it is too old to replay.

        Only batch replays may carry the device's clock into the decision;
        live scans are always judged at server time.
        """

        if not metadata.batch or metadata.client_timestamp is None:
            return now, False
        client_time = as_utc(metadata.client_timestamp)
        # Device clocks running ahead are clamped to server time.
        if client_time >= now:
            return now, False
        if now - client_time > self._max_offline_age:
            return now, True
        return client_time, False

    def _decode(self, credential: str, at: datetime) -> DecodedCredential:
        decoded = decode_credential(credential, self._signing_secret, now=at)
        if (
            decoded.error is CredentialError.INVALID_SIGNATURE
            and self._deep_link_secret
            and self._deep_link_secret != self._signing_secret
        ):
            decoded = decode_credential(
                credential,
                self._deep_link_secret,
                expected_types=(CredentialType.DEEP_LINK_SCAN,),
                now=at,
            )
        if (
            decoded.error is CredentialError.EXPIRED
            and decoded.payload is not None
            and decoded.payload.credential_type is CredentialType.QR_SCAN
            and not self._enforce_qr_expiry
        ):
            return DecodedCredential(valid=True, payload=decoded.payload)
        return decoded

    async def _redeem(self, credential: str, scanner_id: str, metadata: ScanMetadata) -> RedemptionResult:
        now = self._clock()
        scan_time, stale = self._scan_time(metadata, now)
        repo = self._repository

        decoded = self._decode(credential, scan_time)
        if (
            decoded.valid
            and decoded.payload is not None
            and decoded.payload.credential_type is CredentialType.DEEP_LINK_SCAN
            and scan_time != now
        ):
            # Deep links are single-use online credentials; offline replay does not extend them.
            decoded = self._decode(credential, now)
        payload = decoded.payload
        tenant_id, customer_id = self._identity(payload)

        if not decoded.valid:
            reason = _CREDENTIAL_REASONS[decoded.error or CredentialError.INVALID_FORMAT]
            if tenant_id is None or customer_id is None or self._foreign_tenant(tenant_id, metadata):
                return self._deny_unrecorded(reason, scanner_id)
            customer = await repo.get_customer(tenant_id, customer_id)
            return await self._deny(reason, scanner_id, metadata, scan_time, tenant_id, customer)

        self._stage = RedemptionStage.TOKEN_VERIFIED
        assert payload is not None
        if tenant_id is None or customer_id is None:
            return self._deny_unrecorded(RedemptionReason.CUSTOMER_NOT_FOUND, scanner_id)
        if self._foreign_tenant(tenant_id, metadata):
            return self._deny_unrecorded(RedemptionReason.WRONG_TENANT, scanner_id)

        customer = await repo.get_customer(tenant_id, customer_id)
        if customer is None:
            return self._deny_unrecorded(RedemptionReason.CUSTOMER_NOT_FOUND, scanner_id)
        self._stage = RedemptionStage.CUSTOMER_RESOLVED
        annotate_span({"scan.tenant_id": str(tenant_id), "scan.customer_id": str(customer_id)})

        key = (
            idempotency_key(tenant_id, customer_id, credential, metadata.client_id)
            if metadata.client_id
            else None
        )
        if key is not None:
            existing = await repo.find_by_idempotency_key(tenant_id, key)
            if existing is not None:
                logger.info(
                    "Replayed scan answered from ledger",
                    tenant_id=str(tenant_id),
                    transaction_id=str(existing.id),
                    client_id=metadata.client_id,
                )
                return replay_result(existing)

        if stale:
            logger.warning(
                "Offline scan exceeded the replay age limit",
                tenant_id=str(tenant_id),
                client_id=metadata.client_id,
                client_timestamp=metadata.client_timestamp.isoformat() if metadata.client_timestamp else None,
            )
            return await self._deny(
                RedemptionReason.STALE_SCAN, scanner_id, metadata, scan_time, tenant_id, customer, key=key
            )

        if payload.qr_id is not None and customer.qr_code_id and payload.qr_id != customer.qr_code_id:
            return await self._deny(
                RedemptionReason.CREDENTIAL_REVOKED, scanner_id, metadata, scan_time, tenant_id, customer, key=key
            )

        claimed_nonce: str | None = None
        if payload.credential_type is CredentialType.DEEP_LINK_SCAN and payload.nonce:
            try:
                claimed = await self._nonce_registry.claim(payload.nonce, self._nonce_ttl(payload, scan_time))
            except (RedisError, OSError) as exc:
                raise StorageError("nonce_claim") from exc
            if not claimed:
                return await self._deny(
                    RedemptionReason.CREDENTIAL_REPLAYED, scanner_id, metadata, scan_time, tenant_id, customer, key=key
                )
            claimed_nonce = payload.nonce

        try:
            return await self._evaluate_and_consume(
                customer, scanner_id=scanner_id, metadata=metadata, scan_time=scan_time, key=key
            )
        except StorageError:
            # The scan never completed, so the link stays usable for a retry.
            if claimed_nonce is not None:
                await self._nonce_registry.release(claimed_nonce)
            raise

    async def _evaluate_and_consume(
        self,
        customer: CustomerSnapshot,
        *,
        scanner_id: str,
        metadata: ScanMetadata,
        scan_time: datetime,
        key: str | None,
    ) -> RedemptionResult:
        repo = self._repository
        tenant_id, customer_id = customer.tenant_id, customer.id
        scan_settings = await self._settings_provider.get_settings(tenant_id)
        tz = scan_settings.tzinfo
        local_time = scan_time.astimezone(tz)

        subscription = await repo.get_active_subscription(tenant_id, customer_id, local_time.date())
        if subscription is not None:
            self._stage = RedemptionStage.SUBSCRIPTION_RESOLVED

        forced = metadata.forced_meal_type is not None
        meal_type = metadata.forced_meal_type if forced else resolve_meal_type(local_time, scan_settings.meal_windows)
        if meal_type is not None and subscription is not None:
            self._stage = RedemptionStage.MEAL_TYPE_RESOLVED

        allowed = scan_settings.allowed_meal_types_for(subscription.plan_id if subscription else None)
        decision = evaluate_eligibility(
            customer, subscription, meal_type, local_time, None, allowed_meal_types=allowed
        )
        if decision.allowed:
            assert meal_type is not None
            start, end = duplicate_scope(
                scan_settings.duplicate_policy, scan_time, scan_settings.double_scan_window_seconds, tz
            )
            recent = await repo.find_success_between(tenant_id, customer_id, meal_type, start, end)
            decision = evaluate_eligibility(
                customer, subscription, meal_type, local_time, recent, allowed_meal_types=allowed
            )
        if not decision.allowed:
            assert decision.reason is not None
            return await self._deny(
                decision.reason,
                scanner_id,
                metadata,
                scan_time,
                tenant_id,
                customer,
                subscription=subscription,
                meal_type=meal_type,
                duplicate_of=decision.duplicate_of,
                key=key,
            )
        self._stage = RedemptionStage.ELIGIBILITY_CHECKED
        assert subscription is not None and meal_type is not None

        return await self._consume(
            customer,
            subscription,
            meal_type,
            scan_settings,
            scanner_id=scanner_id,
            metadata=metadata,
            scan_time=scan_time,
            key=key,
            forced=forced,
        )

    async def _consume(
        self,
        customer: CustomerSnapshot,
        subscription: SubscriptionSnapshot,
        meal_type: MealType,
        scan_settings: ScanSettings,
        *,
        scanner_id: str,
        metadata: ScanMetadata,
        scan_time: datetime,
        key: str | None,
        forced: bool,
    ) -> RedemptionResult:
        repo = self._repository
        tenant_id = customer.tenant_id
        scope = duplicate_scope(
            scan_settings.duplicate_policy,
            scan_time,
            scan_settings.double_scan_window_seconds,
            scan_settings.tzinfo,
        )
        try:
            outcome = await repo.decrement_balance(
                subscription, meal_type, scanned_at=scan_time, duplicate_scope=scope
            )
            if outcome is None:
                await repo.rollback()
                self._observability.record_race_lost()
                return await self._resolve_lost_race(
                    customer, subscription, meal_type, scope, scanner_id, metadata, scan_time, key
                )
            self._stage = RedemptionStage.BALANCE_DECREMENTED

            exhausted = False
            if outcome.balance_after == 0 or outcome.meals_remaining == 0:
                exhausted = await repo.deactivate_if_exhausted(tenant_id, subscription.id)

            transaction = await repo.record_transaction(
                **self._ledger_fields(customer, scanner_id, metadata, scan_time, key),
                subscription_id=subscription.id,
                meal_type=meal_type,
                status=MealTransactionStatus.SUCCESS,
                balance_before=outcome.balance_before,
                balance_after=outcome.balance_after,
                notes=_FORCED_NOTE if forced else None,
            )
            self._stage = RedemptionStage.TRANSACTION_RECORDED
            await repo.commit()
            self._stage = RedemptionStage.COMPLETED
        except IdempotencyConflictError:
            await repo.rollback()
            assert key is not None
            existing = await repo.find_by_idempotency_key(tenant_id, key)
            if existing is None:
                raise
            logger.info("Concurrent replay converged on existing transaction", transaction_id=str(existing.id))
            return replay_result(existing)

        logger.info(
            "Meal redeemed",
            tenant_id=str(tenant_id),
            customer_id=str(customer.id),
            transaction_id=str(transaction.id),
            meal_type=meal_type.value,
            balance_remaining=outcome.balance_after,
            subscription_exhausted=exhausted,
            forced=forced,
        )
        if exhausted:
            logger.info(
                "Subscription exhausted and deactivated",
                tenant_id=str(tenant_id),
                subscription_id=str(subscription.id),
            )

        threshold = scan_settings.alert_threshold_meals_remaining
        self._schedule_notification(
            MealRedeemedEvent(
                tenant_id=tenant_id,
                customer_id=customer.id,
                subscription_id=subscription.id,
                transaction_id=transaction.id,
                meal_type=meal_type,
                balance_remaining=outcome.balance_after,
                meals_remaining=outcome.meals_remaining,
                scanner_id=scanner_id,
                scanned_at=scan_time,
                low_balance=threshold is not None and outcome.meals_remaining <= threshold,
                subscription_exhausted=exhausted,
            )
        )
        return RedemptionResult.success(
            meal_type=meal_type,
            balance_remaining=outcome.balance_after,
            transaction_id=transaction.id,
            customer_id=customer.id,
        )

    async def _resolve_lost_race(
        self,
        customer: CustomerSnapshot,
        subscription: SubscriptionSnapshot,
        meal_type: MealType,
        scope: tuple[datetime, datetime],
        scanner_id: str,
        metadata: ScanMetadata,
        scan_time: datetime,
        key: str | None,
    ) -> RedemptionResult:
        """Explain a decrement that matched nothing.

        A sibling carrying the same idempotency key is replayed; a sibling
        success for this meal inside ``scope`` makes this scan a duplicate;
        anything else means the balance ran out underneath us.
        """

        repo = self._repository
        tenant_id = customer.tenant_id
        if key is not None:
            sibling = await repo.find_by_idempotency_key(tenant_id, key)
            if sibling is not None:
                return replay_result(sibling)

        start, end = scope
        sibling = await repo.find_success_between(tenant_id, customer.id, meal_type, start, end)
        reason = RedemptionReason.DUPLICATE_SCAN if sibling is not None else RedemptionReason.NO_MEALS_REMAINING
        logger.info(
            "Conditional decrement lost the race",
            tenant_id=str(tenant_id),
            subscription_id=str(subscription.id),
            meal_type=meal_type.value,
            reason=reason.value,
        )
        return await self._deny(
            reason,
            scanner_id,
            metadata,
            scan_time,
            tenant_id,
            customer,
            subscription=subscription,
            meal_type=meal_type,
            duplicate_of=sibling.id if sibling else None,
            key=key,
        )

    async def _deny(
        self,
        reason: RedemptionReason,
        scanner_id: str,
        metadata: ScanMetadata,
        scan_time: datetime,
        tenant_id: UUID,
        customer: CustomerSnapshot | None,
        *,
        subscription: SubscriptionSnapshot | None = None,
        meal_type: MealType | None = None,
        duplicate_of: UUID | None = None,
        key: str | None = None,
    ) -> RedemptionResult:
        """Record the denial on the ledger when a customer is known, then report it."""

        if customer is None:
            return self._deny_unrecorded(reason, scanner_id)

        repo = self._repository
        transaction_id: UUID | None = None
        try:
            transaction = await repo.record_transaction(
                **self._ledger_fields(customer, scanner_id, metadata, scan_time, key),
                subscription_id=subscription.id if subscription else None,
                meal_type=meal_type,
                status=transaction_status_for(reason),
                failure_reason=reason.value,
                duplicate_of_transaction_id=duplicate_of,
            )
            await repo.commit()
            transaction_id = transaction.id
        except IdempotencyConflictError:
            await repo.rollback()
            assert key is not None
            existing = await repo.find_by_idempotency_key(tenant_id, key)
            if existing is not None:
                return replay_result(existing)
        except StorageError as exc:
            await repo.rollback()
            logger.warning("Failed to record denied scan", reason=reason.value, error=exc.__class__.__name__)

        logger.info(
            "Redemption denied",
            tenant_id=str(tenant_id),
            customer_id=str(customer.id),
            reason=reason.value,
            last_stage=self._stage.value,
            scanner_id=scanner_id,
        )
        return RedemptionResult.denied(
            reason,
            stage=self._stage,
            meal_type=meal_type,
            transaction_id=transaction_id,
            duplicate_of_transaction_id=duplicate_of,
            customer_id=customer.id,
        )

    def _deny_unrecorded(
        self,
        reason: RedemptionReason,
        scanner_id: str,
    ) -> RedemptionResult:
        logger.info(
            "Redemption denied before customer resolution",
            reason=reason.value,
            last_stage=self._stage.value,
            scanner_id=scanner_id,
        )
        return RedemptionResult.denied(reason, stage=self._stage)

    def _ledger_fields(
        self,
        customer: CustomerSnapshot,
        scanner_id: str,
        metadata: ScanMetadata,
        scan_time: datetime,
        key: str | None,
    ) -> dict[str, Any]:
        return {
            "tenant_id": customer.tenant_id,
            "customer_id": customer.id,
            "scanner_id": scanner_id,
            "scanned_at": scan_time,
            "idempotency_key": key,
            "qr_code_id": customer.qr_code_id,
            "client_id": metadata.client_id,
            "client_timestamp": metadata.client_timestamp,
            "device_id": metadata.device_id,
            "scan_location": metadata.scan_location,
        }

    @staticmethod
    def _identity(payload: CredentialPayload | None) -> tuple[UUID | None, UUID | None]:
        if payload is None:
            return None, None
        try:
            return UUID(payload.tenant_id), UUID(payload.customer_id)
        except ValueError:
            return None, None

    @staticmethod
    def _foreign_tenant(tenant_id: UUID, metadata: ScanMetadata) -> bool:
        return metadata.tenant_id is not None and metadata.tenant_id != tenant_id

    def _nonce_ttl(self, payload: CredentialPayload, scan_time: datetime) -> int:
        if payload.expires_at is not None:
            return max(payload.expires_at - int(scan_time.timestamp()), 0) + 1
        return self._deep_link_ttl_seconds

    def _schedule_notification(self, event: MealRedeemedEvent) -> None:
        task = asyncio.create_task(self._notify(event))
        self._pending_notifications.add(task)
        _IN_FLIGHT.add(task)
        task.add_done_callback(_IN_FLIGHT.discard)
        task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, event: MealRedeemedEvent) -> None:
        try:
            await self._notifier.notify(event)
        except Exception as exc:
            self._observability.record_notification(False)
            logger.exception(
                "Redemption notification failed",
                tenant_id=str(event.tenant_id),
                transaction_id=str(event.transaction_id),
                error=str(exc),
            )
            return
        self._observability.record_notification(True)


__all__ = [
    "RedemptionCoordinator",
    "SettingsProvider",
    "drain_in_flight_notifications",
    "duplicate_scope",
    "idempotency_key",
    "replay_result",
    "transaction_status_for",
]
