"""Meal-scan redemption exports."""

from .batch import (  # noqa: F401
    BatchItemResult,
    BatchRedemptionDriver,
    BatchRedemptionSummary,
    BatchScan,
)
from .coordinator import RedemptionCoordinator, drain_in_flight_notifications  # noqa: F401
from .eligibility import (  # noqa: F401
    CustomerSnapshot,
    EligibilityDecision,
    SubscriptionSnapshot,
    TransactionRef,
    evaluate_eligibility,
)
from .meal_windows import MealWindowConfigError, resolve_meal_type, validate_meal_windows  # noqa: F401
from .notifier import (  # noqa: F401
    LoggingRedemptionNotifier,
    MealRedeemedEvent,
    RedemptionNotifier,
    RedisRedemptionNotifier,
    build_notifier,
)
from .repository import RedemptionRepository, StorageError, StorageTimeoutError  # noqa: F401
from .results import (  # noqa: F401
    RedemptionReason,
    RedemptionResult,
    RedemptionStage,
    RedemptionStatus,
    ScanMetadata,
)
from .settings_provider import ScanSettings, TenantSettingsProvider  # noqa: F401
from .shared_state import (  # noqa: F401
    ExpiringStore,
    InMemoryExpiringStore,
    NonceRegistry,
    RedisExpiringStore,
    build_expiring_store,
)
from .token_codec import (  # noqa: F401
    CredentialError,
    CredentialPayload,
    CredentialType,
    DecodedCredential,
    decode_credential,
    encode_credential,
    mint_deep_link_credential,
)
