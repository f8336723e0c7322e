"""
Application Services

Orchestrate repositories, gateways and domain rules for the API layer.
"""

from walletwise.infrastructure.services.payment_service import PaymentService
from walletwise.infrastructure.services.webhook_activator import (
    Activation,
    SubscriptionActivator,
)
from walletwise.infrastructure.services.subscription_service import (
    SubscriptionService,
    get_plans,
)
from walletwise.infrastructure.services.wallet_service import WalletService

__all__ = [
    "PaymentService",
    "Activation",
    "SubscriptionActivator",
    "SubscriptionService",
    "get_plans",
    "WalletService",
]
