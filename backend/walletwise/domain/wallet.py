"""
Wallet Domain Models

Request/response DTOs for tier-gated wallet creation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from walletwise.domain.subscription import CamelModel


class CreateWalletRequest(CamelModel):
    """Request DTO for POST /wallets."""
    name: str = Field(..., min_length=1, max_length=100)
    balance: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class WalletResponse(CamelModel):
    id: str
    name: str
    balance: Decimal
    currency: str
    created_at: Optional[datetime] = None
