"""
SQLModel ORM Models for WalletWise

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from walletwise.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from walletwise.infrastructure.db.models.user import UserModel
from walletwise.infrastructure.db.models.subscription import SubscriptionModel
from walletwise.infrastructure.db.models.payment import PaymentModel
from walletwise.infrastructure.db.models.wallet import WalletModel


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    # Tables
    "UserModel",
    "SubscriptionModel",
    "PaymentModel",
    "WalletModel",
]
