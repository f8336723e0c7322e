"""
Payments Infrastructure Module

Gateway adapters for Stripe (card) and Xendit (regional payment methods),
with cached providers for dependency injection.
"""

from functools import lru_cache

from walletwise.domain.subscription import PaymentGateway
from walletwise.infrastructure.payments.base import (
    CheckoutResult,
    PaymentGatewayAdapter,
    WebhookEvent,
)
from walletwise.infrastructure.payments.stripe_gateway import StripeGateway
from walletwise.infrastructure.payments.xendit_gateway import XenditGateway


@lru_cache
def get_stripe_gateway() -> StripeGateway:
    """Cached Stripe adapter instance."""
    return StripeGateway()


@lru_cache
def get_xendit_gateway() -> XenditGateway:
    """Cached Xendit adapter instance."""
    return XenditGateway()


def get_gateways() -> dict[PaymentGateway, PaymentGatewayAdapter]:
    """All configured adapters keyed by gateway."""
    return {
        PaymentGateway.STRIPE: get_stripe_gateway(),
        PaymentGateway.XENDIT: get_xendit_gateway(),
    }


__all__ = [
    "CheckoutResult",
    "PaymentGatewayAdapter",
    "WebhookEvent",
    "StripeGateway",
    "XenditGateway",
    "get_stripe_gateway",
    "get_xendit_gateway",
    "get_gateways",
]
