"""SQLAlchemy models package."""

from .customer import Customer  # noqa: F401
from .meal_plan import MealPlan  # noqa: F401
from .meal_transaction import MealTransaction, MealTransactionStatus  # noqa: F401
from .meal_type import MEAL_TYPE_PRIORITY, MealType  # noqa: F401
from .subscription import MealSubscription  # noqa: F401
from .tenant_settings import DuplicatePolicy, TenantScanSettings  # noqa: F401
