"""
Wallet Repository

Just enough wallet persistence for tier-gated wallet creation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.infrastructure.db.models.wallet import WalletModel
from walletwise.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    to_uuid,
)


class WalletRepository(BaseRepository[WalletModel]):
    """Repository for wallets."""

    def __init__(self, session: AsyncSession):
        super().__init__(WalletModel, session)

    async def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count(WalletModel.id)).where(WalletModel.user_id == to_uuid(user_id))
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get_by_name(self, user_id: str, name: str) -> Optional[WalletModel]:
        stmt = select(WalletModel).where(
            WalletModel.user_id == to_uuid(user_id),
            WalletModel.name == name,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        name: str,
        balance: Decimal,
        currency: str,
    ) -> WalletModel:
        now = datetime.now(timezone.utc)
        wallet = WalletModel(
            user_id=to_uuid(user_id),
            name=name,
            balance=balance,
            currency=currency,
            created_at=now,
            updated_at=now,
        )
        self.session.add(wallet)
        await self.session.flush()
        return wallet
