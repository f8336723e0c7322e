"""
Subscription Database Model

SQLModel table for per-user subscription state. One row per user.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from walletwise.infrastructure.db.models.base import BaseModel


class SubscriptionModel(BaseModel, table=True):
    """
    Subscription table for storing user subscription data.

    Maps to the 'subscriptions' table. `version` is bumped on every write
    so a stale compare-and-set write can be detected.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(foreign_key="users.id", unique=True, index=True, nullable=False)

    tier: str = Field(default="free", max_length=20, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    start_date: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    end_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Durable single-use marker for pro_trial
    has_used_trial: bool = Field(default=False, nullable=False)
    version: int = Field(default=0, nullable=False)
