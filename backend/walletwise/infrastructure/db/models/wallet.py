"""
Wallet Database Model

Only the columns the tier gate and wallet creation need.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Column, Numeric, UniqueConstraint
from sqlmodel import Field

from walletwise.infrastructure.db.models.base import BaseModel


class WalletModel(BaseModel, table=True):
    """Maps to the 'wallets' table."""

    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_wallets_user_id_name"),
    )

    user_id: UUID = Field(foreign_key="users.id", index=True, nullable=False)
    name: str = Field(max_length=100, nullable=False)
    balance: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(14, 2), nullable=False))
    currency: str = Field(default="USD", max_length=3, nullable=False)
