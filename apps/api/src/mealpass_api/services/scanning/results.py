"""Typed redemption outcomes returned to scanning clients."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from mealpass_api.models.meal_type import MealType


class RedemptionReason(str, Enum):
    """Stable denial codes that client UIs branch on."""

    # Credential errors
    INVALID_FORMAT = "invalid_format"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"
    WRONG_TENANT = "wrong_tenant"
    CREDENTIAL_REPLAYED = "credential_replayed"
    CREDENTIAL_REVOKED = "credential_revoked"
    # Resolution errors
    CUSTOMER_NOT_FOUND = "customer_not_found"
    CUSTOMER_INACTIVE = "customer_inactive"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    SUBSCRIPTION_PAUSED = "subscription_paused"
    # Policy denials
    OUTSIDE_MEAL_WINDOW = "outside_meal_window"
    MEAL_TYPE_NOT_ALLOWED = "meal_type_not_allowed"
    DUPLICATE_SCAN = "duplicate_scan"
    NO_MEALS_REMAINING = "no_meals_remaining"
    STALE_SCAN = "stale_scan"
    # System errors
    SYSTEM_ERROR = "system_error"

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self]

    @property
    def is_credential_error(self) -> bool:
        return self in CREDENTIAL_REASONS


REASON_MESSAGES: dict[RedemptionReason, str] = {
    RedemptionReason.INVALID_FORMAT: "This QR code could not be read.",
    RedemptionReason.INVALID_SIGNATURE: "This QR code is not valid.",
    RedemptionReason.EXPIRED: "This QR code has expired. Please generate a new one.",
    RedemptionReason.WRONG_TYPE: "This QR code cannot be used for meal scans.",
    RedemptionReason.WRONG_TENANT: "This QR code belongs to a different mess.",
    RedemptionReason.CREDENTIAL_REPLAYED: "This scan link has already been used.",
    RedemptionReason.CREDENTIAL_REVOKED: "This QR code has been replaced. Please use the latest card.",
    RedemptionReason.CUSTOMER_NOT_FOUND: "Customer not found.",
    RedemptionReason.CUSTOMER_INACTIVE: "Customer account is inactive.",
    RedemptionReason.NO_ACTIVE_SUBSCRIPTION: "No active subscription found.",
    RedemptionReason.SUBSCRIPTION_PAUSED: "Subscription is paused.",
    RedemptionReason.OUTSIDE_MEAL_WINDOW: "No meal is being served right now.",
    RedemptionReason.MEAL_TYPE_NOT_ALLOWED: "This meal is not included in the customer's plan.",
    RedemptionReason.DUPLICATE_SCAN: "This meal has already been redeemed.",
    RedemptionReason.NO_MEALS_REMAINING: "No meals remaining for this meal type.",
    RedemptionReason.STALE_SCAN: "This offline scan is too old to sync.",
    RedemptionReason.SYSTEM_ERROR: "Something went wrong. Please try again.",
}

CREDENTIAL_REASONS = frozenset(
    {
        RedemptionReason.INVALID_FORMAT,
        RedemptionReason.INVALID_SIGNATURE,
        RedemptionReason.EXPIRED,
        RedemptionReason.WRONG_TYPE,
        RedemptionReason.WRONG_TENANT,
        RedemptionReason.CREDENTIAL_REPLAYED,
        RedemptionReason.CREDENTIAL_REVOKED,
    }
)


class RedemptionStatus(str, Enum):
    SUCCESS = "success"
    BLOCKED = "blocked"
    FAILED = "failed"


class RedemptionStage(str, Enum):
    """Progress markers for one redemption attempt.

    Denials report the last stage the attempt reached before failing.
    """

    RECEIVED = "received"
    TOKEN_VERIFIED = "token_verified"
    CUSTOMER_RESOLVED = "customer_resolved"
    SUBSCRIPTION_RESOLVED = "subscription_resolved"
    MEAL_TYPE_RESOLVED = "meal_type_resolved"
    ELIGIBILITY_CHECKED = "eligibility_checked"
    BALANCE_DECREMENTED = "balance_decremented"
    TRANSACTION_RECORDED = "transaction_recorded"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanMetadata:
    """Scanner-supplied context accompanying a credential."""

    tenant_id: UUID | None = None
    client_id: str | None = None
    client_timestamp: datetime | None = None
    forced_meal_type: MealType | None = None
    device_id: str | None = None
    scan_location: str | None = None
    batch: bool = False


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of one redemption.

    Successful results carry ``meal_type``, ``balance_remaining`` and
    ``transaction_id``; denials carry ``reason`` and ``message``.
    """

    status: RedemptionStatus
    meal_type: MealType | None = None
    balance_remaining: int | None = None
    transaction_id: UUID | None = None
    reason: RedemptionReason | None = None
    message: str | None = None
    retryable: bool = False
    idempotent: bool = False
    duplicate_of_transaction_id: UUID | None = None
    customer_id: UUID | None = None
    stage: RedemptionStage = RedemptionStage.COMPLETED

    @property
    def succeeded(self) -> bool:
        return self.status is RedemptionStatus.SUCCESS

    @classmethod
    def success(
        cls,
        *,
        meal_type: MealType,
        balance_remaining: int,
        transaction_id: UUID,
        customer_id: UUID | None = None,
        idempotent: bool = False,
    ) -> "RedemptionResult":
        return cls(
            status=RedemptionStatus.SUCCESS,
            meal_type=meal_type,
            balance_remaining=balance_remaining,
            transaction_id=transaction_id,
            customer_id=customer_id,
            idempotent=idempotent,
        )

    @classmethod
    def denied(
        cls,
        reason: RedemptionReason,
        *,
        stage: RedemptionStage = RedemptionStage.FAILED,
        meal_type: MealType | None = None,
        transaction_id: UUID | None = None,
        duplicate_of_transaction_id: UUID | None = None,
        customer_id: UUID | None = None,
    ) -> "RedemptionResult":
        status = RedemptionStatus.BLOCKED if reason is RedemptionReason.DUPLICATE_SCAN else RedemptionStatus.FAILED
        return cls(
            status=status,
            reason=reason,
            message=reason.message,
            retryable=reason is RedemptionReason.SYSTEM_ERROR,
            meal_type=meal_type,
            transaction_id=transaction_id,
            duplicate_of_transaction_id=duplicate_of_transaction_id,
            customer_id=customer_id,
            stage=stage,
        )

    def as_dict(self) -> dict[str, Any]:
        if self.succeeded:
            return {
                "status": self.status.value,
                "mealType": self.meal_type.value if self.meal_type else None,
                "balanceRemaining": self.balance_remaining,
                "transactionId": str(self.transaction_id) if self.transaction_id else None,
                "idempotent": self.idempotent,
            }
        payload: dict[str, Any] = {
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.meal_type is not None:
            payload["mealType"] = self.meal_type.value
        if self.transaction_id is not None:
            payload["transactionId"] = str(self.transaction_id)
        if self.duplicate_of_transaction_id is not None:
            payload["duplicateOfTransactionId"] = str(self.duplicate_of_transaction_id)
        return payload


__all__ = [
    "CREDENTIAL_REASONS",
    "REASON_MESSAGES",
    "RedemptionReason",
    "RedemptionResult",
    "RedemptionStage",
    "RedemptionStatus",
    "ScanMetadata",
]
