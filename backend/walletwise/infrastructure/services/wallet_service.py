"""
Wallet Service

Wallet creation behind the tier gate: free users get three wallets, Pro
tiers are unlimited, and an expired trial falls back to the free limit with
its own error so the client can show a "trial ended" message.

The limit check counts wallets and then inserts. Two concurrent creates could
both pass the count, so the subscription row is read FOR UPDATE first and
concurrent creates for one user queue behind it until commit. SQLite has no
row locks but serializes writers on the database lock. A user without a
subscription row has nothing to lock; registration always creates one.
"""

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.domain.clock import Clock, utcnow
from walletwise.domain.subscription import SubscriptionTier
from walletwise.domain.tier_policy import WalletLimit, wallet_limit
from walletwise.infrastructure.db.models.wallet import WalletModel
from walletwise.infrastructure.db.repositories import (
    SubscriptionRepository,
    WalletRepository,
)
from walletwise.infrastructure.exceptions import (
    ConflictError,
    TrialExpiredError,
    WalletLimitError,
)


logger = logging.getLogger(__name__)


class WalletService:
    """Creates wallets within the user's tier limit."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self._session = session
        self._wallets = WalletRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._clock = clock

    async def get_wallet_limit(self, user_id: str, for_update: bool = False) -> WalletLimit:
        subscription = await self._subscriptions.get_by_user_id(user_id, for_update=for_update)
        if subscription is None:
            return wallet_limit(SubscriptionTier.FREE, None, self._clock())
        return wallet_limit(subscription.tier, subscription.end_date, self._clock())

    async def create_wallet(
        self,
        user_id: str,
        name: str,
        balance: Decimal = Decimal("0"),
        currency: str = "USD",
    ) -> WalletModel:
        """
        Create a wallet if the user's tier allows another one.

        Raises:
            TrialExpiredError: expired Pro trial and the free limit is used up
            WalletLimitError: free limit reached
            ConflictError: a wallet with this name already exists
        """
        limit = await self.get_wallet_limit(user_id, for_update=True)
        count = await self._wallets.count_for_user(user_id)

        if not limit.allows(count):
            logger.info(
                f"Wallet limit hit for user {user_id}: {count}/{limit.limit} "
                f"(trial_expired={limit.trial_expired})"
            )
            if limit.trial_expired:
                raise TrialExpiredError()
            raise WalletLimitError(limit.limit)

        if await self._wallets.get_by_name(user_id, name):
            raise ConflictError("Wallet with this name already exists", operation="create", table="wallets")

        try:
            wallet = await self._wallets.create(user_id, name, balance, currency.upper())
        except IntegrityError as e:
            raise ConflictError(
                "Wallet with this name already exists",
                operation="create",
                table="wallets",
                original_error=e,
            )

        logger.info(f"Created wallet {wallet.id} for user {user_id}")
        return wallet
