"""
User Repository

User directory lookups. Registration also opens the user's free subscription.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.infrastructure.db.models.user import UserModel
from walletwise.infrastructure.db.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[UserModel]):
    """Repository for users."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserModel, session)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, email: str) -> UserModel:
        now = datetime.now(timezone.utc)
        user = UserModel(email=email.lower(), created_at=now, updated_at=now)
        self.session.add(user)
        await self.session.flush()
        return user
