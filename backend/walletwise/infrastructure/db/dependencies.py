"""
Dependency Injection Providers for WalletWise

FastAPI dependencies for database sessions and repositories.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.infrastructure.db.database import get_session
from walletwise.infrastructure.db.repositories import SubscriptionRepository


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_subscription_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionRepository, None]:
    """
    Dependency provider for SubscriptionRepository.

    Usage:
        @router.get("/feature")
        async def feature(repo: SubscriptionRepoDep):
            ...
    """
    yield SubscriptionRepository(session)


SubscriptionRepoDep = Annotated[
    SubscriptionRepository,
    Depends(get_subscription_repository)
]
