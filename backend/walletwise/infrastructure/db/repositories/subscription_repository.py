"""
Subscription Repository

Data access layer for subscription persistence.
One row per user; writes go through atomic upserts or version-checked updates.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.domain.clock import as_utc
from walletwise.domain.subscription import Subscription, SubscriptionTier
from walletwise.infrastructure.db.database import dialect_insert
from walletwise.infrastructure.db.models.subscription import SubscriptionModel
from walletwise.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    to_uuid,
)
from walletwise.infrastructure.exceptions import DatabaseError


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription data access.

    Returns domain `Subscription` objects; tiers are validated on the way out
    so an unknown stored value fails loudly instead of being coerced.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str, for_update: bool = False) -> Optional[Subscription]:
        """
        Get subscription by user ID.

        Args:
            user_id: Internal user ID
            for_update: Lock the row until the transaction ends (no-op on SQLite)

        Returns:
            Subscription domain model or None
        """
        statement = (
            select(SubscriptionModel)
            .where(SubscriptionModel.user_id == to_uuid(user_id))
            .execution_options(populate_existing=True)
        )
        if for_update:
            statement = statement.with_for_update()
        result = await self.session.execute(statement)
        model = result.scalar_one_or_none()

        if model:
            return self._to_domain(model)

        return None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create_free(self, user_id: str, now: Optional[datetime] = None) -> Subscription:
        """Open the free subscription every user starts with (no-op if one exists)."""
        now = now or datetime.now(timezone.utc)
        stmt = dialect_insert(self.session, SubscriptionModel).values(
            id=uuid4(),
            user_id=to_uuid(user_id),
            tier=SubscriptionTier.FREE.value,
            is_active=True,
            start_date=now,
            end_date=None,
            has_used_trial=False,
            version=0,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
        await self.session.execute(stmt)
        return await self.get_by_user_id(user_id)

    async def upsert_activation(
        self,
        user_id: str,
        tier: SubscriptionTier,
        start_date: datetime,
        end_date: Optional[datetime],
    ) -> Subscription:
        """
        Create or overwrite the user's subscription unconditionally.

        Used by webhook activation, which is authoritative for paid tiers.
        `has_used_trial` is preserved; `version` is bumped.
        """
        now = datetime.now(timezone.utc)
        stmt = dialect_insert(self.session, SubscriptionModel).values(
            id=uuid4(),
            user_id=to_uuid(user_id),
            tier=tier.value,
            is_active=True,
            start_date=start_date,
            end_date=end_date,
            has_used_trial=tier == SubscriptionTier.PRO_TRIAL,
            version=1,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                "tier": stmt.excluded.tier,
                "is_active": stmt.excluded.is_active,
                "start_date": stmt.excluded.start_date,
                "end_date": stmt.excluded.end_date,
                "version": SubscriptionModel.version + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

        logger.info(f"Upserted {tier.value} subscription for user {user_id}")
        return await self.get_by_user_id(user_id)

    async def activate_trial(
        self,
        user_id: str,
        expected_version: Optional[int],
        start_date: datetime,
        end_date: datetime,
    ) -> bool:
        """
        Compare-and-set the trial onto the subscription.

        Writes only if the row still has `expected_version` (or, with None,
        only if no row exists yet). Returns False when another writer got
        there first, so a slow trial write cannot clobber a paid activation.
        """
        now = datetime.now(timezone.utc)

        if expected_version is None:
            stmt = dialect_insert(self.session, SubscriptionModel).values(
                id=uuid4(),
                user_id=to_uuid(user_id),
                tier=SubscriptionTier.PRO_TRIAL.value,
                is_active=True,
                start_date=start_date,
                end_date=end_date,
                has_used_trial=True,
                version=1,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
        else:
            stmt = (
                update(SubscriptionModel)
                .where(
                    SubscriptionModel.user_id == to_uuid(user_id),
                    SubscriptionModel.version == expected_version,
                )
                .values(
                    tier=SubscriptionTier.PRO_TRIAL.value,
                    is_active=True,
                    start_date=start_date,
                    end_date=end_date,
                    has_used_trial=True,
                    version=expected_version + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        try:
            tier = SubscriptionTier(model.tier)
        except ValueError as e:
            raise DatabaseError(
                f"Unknown subscription tier stored for user {model.user_id}: {model.tier!r}",
                operation="read",
                table="subscriptions",
                original_error=e,
            )

        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            tier=tier,
            is_active=model.is_active,
            start_date=as_utc(model.start_date),
            end_date=as_utc(model.end_date),
            has_used_trial=model.has_used_trial,
            version=model.version,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
