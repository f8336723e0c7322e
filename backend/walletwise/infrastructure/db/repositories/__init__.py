"""
Repository Layer for WalletWise

Exports all repository classes for dependency injection.
"""

from walletwise.infrastructure.db.repositories.base_repository import BaseRepository
from walletwise.infrastructure.db.repositories.user_repository import UserRepository
from walletwise.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from walletwise.infrastructure.db.repositories.payment_repository import PaymentRepository
from walletwise.infrastructure.db.repositories.wallet_repository import WalletRepository


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "UserRepository",
    "SubscriptionRepository",
    "PaymentRepository",
    "WalletRepository",
]
