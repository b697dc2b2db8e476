"""Background workers supporting async processing."""

from .subscription_sweep import SubscriptionSweepWorker

__all__ = ["SubscriptionSweepWorker"]
