"""
Tier Policy

Pure subscription rules: which tier transitions are legal, which limits and
features a tier grants, and how subscription periods are computed.
No I/O; every function takes `now` explicitly.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from walletwise.domain.subscription import (
    BillingPeriod,
    SubscriptionTier,
    WALLET_LIMITS,
    PRO_TRIAL_DAYS,
)


TRIAL_REQUIRES_FREE = "Pro trial requires free plan"
TRIAL_ALREADY_USED = "Pro trial already used. Upgrade to Pro for unlimited wallets."
ALREADY_AT_OR_ABOVE = "Already at or above target tier"
ALREADY_AT_PRO_PLUS = "Already at pro_plus"
NOT_PURCHASABLE = "Free tier cannot be purchased"

# pro_trial is pro-level access for a limited time, not above pro
TIER_RANK = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PRO_TRIAL: 1,
    SubscriptionTier.PRO: 1,
    SubscriptionTier.PRO_PLUS: 2,
}


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of validate_transition."""
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "TransitionDecision":
        return cls(allowed=True)

    @classmethod
    def rejected(cls, reason: str) -> "TransitionDecision":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class WalletLimit:
    """Effective wallet limit for a subscription at a point in time."""
    limit: Optional[int]
    effective_tier: SubscriptionTier
    trial_expired: bool = False

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    def allows(self, wallet_count: int) -> bool:
        """Whether one more wallet may be created on top of `wallet_count`."""
        return self.limit is None or wallet_count < self.limit


@dataclass(frozen=True)
class FeatureAccess:
    analytics: bool
    export: bool
    custom_categories: bool


def validate_transition(
    current_tier: SubscriptionTier,
    target_tier: SubscriptionTier,
    has_used_trial: bool = False,
) -> TransitionDecision:
    """
    Decide whether moving from `current_tier` to `target_tier` is legal.

    `has_used_trial` is the durable single-use marker: tier alone cannot tell
    "never trialed" apart from "trial expired back to free".
    """
    if target_tier == SubscriptionTier.PRO_TRIAL:
        if current_tier == SubscriptionTier.PRO_TRIAL:
            return TransitionDecision.rejected(TRIAL_ALREADY_USED)
        if current_tier != SubscriptionTier.FREE:
            return TransitionDecision.rejected(TRIAL_REQUIRES_FREE)
        if has_used_trial:
            return TransitionDecision.rejected(TRIAL_ALREADY_USED)
        return TransitionDecision.ok()

    if target_tier == SubscriptionTier.PRO:
        if current_tier in (SubscriptionTier.PRO, SubscriptionTier.PRO_PLUS):
            return TransitionDecision.rejected(ALREADY_AT_OR_ABOVE)
        return TransitionDecision.ok()

    if target_tier == SubscriptionTier.PRO_PLUS:
        if current_tier == SubscriptionTier.PRO_PLUS:
            return TransitionDecision.rejected(ALREADY_AT_PRO_PLUS)
        return TransitionDecision.ok()

    return TransitionDecision.rejected(NOT_PURCHASABLE)


def is_trial_expired(
    tier: SubscriptionTier,
    trial_end_date: Optional[datetime],
    now: datetime,
) -> bool:
    """A trial without an end date never expires."""
    if tier != SubscriptionTier.PRO_TRIAL or trial_end_date is None:
        return False
    return trial_end_date <= now


def effective_tier(
    tier: SubscriptionTier,
    end_date: Optional[datetime],
    now: datetime,
) -> SubscriptionTier:
    """Tier used for gating: an expired trial counts as free."""
    if is_trial_expired(tier, end_date, now):
        return SubscriptionTier.FREE
    return tier


def wallet_limit(
    tier: SubscriptionTier,
    trial_end_date: Optional[datetime],
    now: datetime,
) -> WalletLimit:
    """
    Wallet limit for a tier.

    free -> 3, pro/pro_plus -> unlimited. pro_trial is unlimited until its
    end date passes, then falls back to the free limit with
    `trial_expired=True` so callers can show a dedicated message.
    """
    expired = is_trial_expired(tier, trial_end_date, now)
    gated = SubscriptionTier.FREE if expired else tier
    return WalletLimit(
        limit=WALLET_LIMITS.get(gated, WALLET_LIMITS[SubscriptionTier.FREE]),
        effective_tier=gated,
        trial_expired=expired,
    )


def features_for(
    tier: SubscriptionTier,
    end_date: Optional[datetime],
    now: datetime,
) -> FeatureAccess:
    """Analytics and export are pro_plus only; custom categories need pro-level access."""
    gated = effective_tier(tier, end_date, now)
    return FeatureAccess(
        analytics=gated == SubscriptionTier.PRO_PLUS,
        export=gated == SubscriptionTier.PRO_PLUS,
        custom_categories=TIER_RANK[gated] >= TIER_RANK[SubscriptionTier.PRO],
    )


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_trial_end(now: datetime, days: int = PRO_TRIAL_DAYS) -> datetime:
    return now + timedelta(days=days)


def compute_period_end(now: datetime, billing_period: BillingPeriod) -> datetime:
    """End of a paid period: 12 months for yearly, otherwise 1 month."""
    months = 12 if billing_period == BillingPeriod.YEARLY else 1
    return add_months(now, months)
