# API Routes Module
from walletwise.api.routes import (
    payments,
    webhooks,
    subscriptions,
    wallets,
    events,
)

__all__ = [
    "payments",
    "webhooks",
    "subscriptions",
    "wallets",
    "events",
]
