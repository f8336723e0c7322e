"""
Subscription Service

Read side of subscriptions (status, plans catalogue) and user registration,
which opens the free subscription every user starts on.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.config.settings import get_settings
from walletwise.domain.clock import Clock, utcnow
from walletwise.domain.subscription import (
    BillingPeriod,
    FeatureFlags,
    PlanInfo,
    PlanPrices,
    PlansResponse,
    Subscription,
    SubscriptionStatusResponse,
    SubscriptionTier,
    TIER_FEATURES,
    WALLET_LIMITS,
    get_price,
)
from walletwise.domain.tier_policy import (
    features_for,
    is_trial_expired,
    wallet_limit,
)
from walletwise.infrastructure.db.repositories import (
    SubscriptionRepository,
    UserRepository,
)
from walletwise.infrastructure.exceptions import ConflictError, ValidationError


logger = logging.getLogger(__name__)

PLAN_NAMES = {
    SubscriptionTier.FREE: "Free",
    SubscriptionTier.PRO: "Pro",
    SubscriptionTier.PRO_PLUS: "Pro+",
}


class SubscriptionService:
    """User registration and subscription queries."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self._session = session
        self._users = UserRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._clock = clock

    async def register_user(self, email: str) -> Subscription:
        """
        Create a user together with its free subscription.

        Raises:
            ValidationError: email is blank
            ConflictError: email already registered
        """
        email = (email or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")

        if await self._users.get_by_email(email):
            raise ConflictError("Email already registered", operation="register", table="users")

        try:
            user = await self._users.create(email)
        except IntegrityError as e:
            raise ConflictError(
                "Email already registered", operation="register", table="users", original_error=e
            )

        subscription = await self._subscriptions.create_free(str(user.id), now=self._clock())
        logger.info(f"Registered user {user.id} on the free plan")
        return subscription

    async def get_subscription(self, user_id: str) -> Subscription:
        """The user's subscription, or an implicit free one if none is stored."""
        subscription = await self._subscriptions.get_by_user_id(user_id)
        if subscription is None:
            return Subscription(user_id=user_id, tier=SubscriptionTier.FREE, is_active=True)
        return subscription

    async def get_status(self, user_id: str) -> SubscriptionStatusResponse:
        subscription = await self.get_subscription(user_id)
        now = self._clock()
        limit = wallet_limit(subscription.tier, subscription.end_date, now)
        features = features_for(subscription.tier, subscription.end_date, now)

        return SubscriptionStatusResponse(
            tier=subscription.tier,
            effective_tier=limit.effective_tier,
            is_active=subscription.is_active,
            start_date=subscription.start_date,
            end_date=subscription.end_date,
            has_used_trial=subscription.has_used_trial,
            trial_expired=is_trial_expired(subscription.tier, subscription.end_date, now),
            wallet_limit=limit.limit,
            features=FeatureFlags(
                analytics=features.analytics,
                export=features.export,
                custom_categories=features.custom_categories,
            ),
        )


def get_plans(trial_days: Optional[int] = None) -> PlansResponse:
    """Public pricing catalogue. The Pro trial length defaults to the configured one."""
    if trial_days is None:
        trial_days = get_settings().pro_trial_days
    plans = []
    for tier in (SubscriptionTier.FREE, SubscriptionTier.PRO, SubscriptionTier.PRO_PLUS):
        prices = None
        if tier != SubscriptionTier.FREE:
            prices = PlanPrices(
                monthly=get_price(tier, BillingPeriod.MONTHLY),
                yearly=get_price(tier, BillingPeriod.YEARLY),
            )
        plans.append(
            PlanInfo(
                tier=tier,
                name=PLAN_NAMES[tier],
                max_wallets=WALLET_LIMITS[tier],
                features=TIER_FEATURES[tier],
                analytics=tier == SubscriptionTier.PRO_PLUS,
                export=tier == SubscriptionTier.PRO_PLUS,
                prices=prices,
                trial_days=trial_days if tier == SubscriptionTier.PRO else None,
            )
        )
    return PlansResponse(plans=plans)
