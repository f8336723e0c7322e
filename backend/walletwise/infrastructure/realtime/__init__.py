"""
Realtime Module

Per-user event delivery for subscription changes.
"""

from walletwise.infrastructure.realtime.notifier import (
    SUBSCRIPTION_UPDATED,
    EventBroker,
    SubscriptionNotifier,
    get_event_broker,
)

__all__ = [
    "SUBSCRIPTION_UPDATED",
    "EventBroker",
    "SubscriptionNotifier",
    "get_event_broker",
]
