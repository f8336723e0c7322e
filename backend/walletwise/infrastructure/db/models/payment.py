"""
Payment Database Model

Append-mostly ledger of payment attempts, unique by gateway reference.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Column, DateTime, Index, Numeric
from sqlmodel import Field

from walletwise.infrastructure.db.models.base import BaseModel


class PaymentModel(BaseModel, table=True):
    """Maps to the 'payments' table."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_status_expires_at", "status", "expires_at"),
    )

    user_id: UUID = Field(foreign_key="users.id", index=True, nullable=False)

    gateway: str = Field(max_length=20, nullable=False)
    # Idempotency key for the whole payment flow
    gateway_ref: str = Field(max_length=255, unique=True, index=True, nullable=False)
    method: str = Field(max_length=20, nullable=False)
    status: str = Field(default="pending", max_length=20, nullable=False)

    amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    currency: str = Field(max_length=3, nullable=False)
    target_tier: str = Field(max_length=20, nullable=False)
    billing_period: str = Field(max_length=20, nullable=False)

    redirect_url: Optional[str] = Field(default=None)
    invoice_url: Optional[str] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Audit payloads, never read by business logic
    raw_request: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    raw_response: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    raw_webhook: Optional[dict] = Field(default=None, sa_column=Column(JSON))
