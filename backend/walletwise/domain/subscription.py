"""
Subscription Domain Models

Domain models for the subscription and payment bounded context.
Enums, entities, request/response DTOs and tier configuration.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class SubscriptionTier(str, Enum):
    """Subscription tier levels."""
    FREE = "free"
    PRO_TRIAL = "pro_trial"
    PRO = "pro"
    PRO_PLUS = "pro_plus"


class BillingPeriod(str, Enum):
    """Billing period for paid tiers."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentGateway(str, Enum):
    """External payment providers."""
    STRIPE = "stripe"  # card gateway
    XENDIT = "xendit"  # regional gateway


class PaymentMethod(str, Enum):
    """How the end user pays at the gateway."""
    CARD = "card"
    INVOICE = "invoice"
    VA = "va"
    EWALLET = "ewallet"
    QRIS = "qris"


class PaymentStatus(str, Enum):
    """Payment attempt lifecycle status."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


# Tiers a user can ask for through POST /payments/create
PURCHASABLE_TIERS = (
    SubscriptionTier.PRO_TRIAL,
    SubscriptionTier.PRO,
    SubscriptionTier.PRO_PLUS,
)


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Per-user subscription record, the source of truth for feature gating."""
    id: Optional[str] = None
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    has_used_trial: bool = False
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Payment(BaseModel):
    """One payment attempt in the ledger, keyed by gateway reference."""
    id: str
    user_id: str
    gateway: PaymentGateway
    gateway_ref: str
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    amount: Decimal
    currency: str
    target_tier: SubscriptionTier
    billing_period: BillingPeriod
    redirect_url: Optional[str] = None
    invoice_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    raw_request: Optional[dict[str, Any]] = None
    raw_response: Optional[dict[str, Any]] = None
    raw_webhook: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CamelModel(BaseModel):
    """DTO base that speaks camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePaymentRequest(CamelModel):
    """Request DTO for POST /payments/create."""
    target_tier: SubscriptionTier = Field(..., description="Tier to move to")
    billing_period: BillingPeriod = Field(
        default=BillingPeriod.MONTHLY,
        description="Billing period (monthly or yearly)"
    )
    gateway: PaymentGateway = Field(..., description="stripe or xendit")
    method: PaymentMethod = Field(..., description="Payment method at the gateway")

    @model_validator(mode="after")
    def validate_combination(self) -> "CreatePaymentRequest":
        if self.target_tier not in PURCHASABLE_TIERS:
            raise ValueError("targetTier must be one of pro_trial, pro, pro_plus")
        if self.gateway == PaymentGateway.STRIPE and self.method != PaymentMethod.CARD:
            raise ValueError("Stripe only supports the card method")
        return self


class SubscriptionSummary(CamelModel):
    """Short subscription view embedded in responses."""
    tier: SubscriptionTier
    is_active: bool
    end_date: Optional[datetime] = None


class PaymentResult(CamelModel):
    """Response DTO for payment creation."""
    payment_id: str
    gateway_ref: str
    status: PaymentStatus
    redirect_url: Optional[str] = None
    invoice_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    idempotent_replay: bool = False
    subscription: Optional[SubscriptionSummary] = None


class FeatureFlags(CamelModel):
    """Features unlocked by the effective tier."""
    analytics: bool
    export: bool
    custom_categories: bool


class SubscriptionStatusResponse(CamelModel):
    """Response DTO for GET /subscriptions/me."""
    tier: SubscriptionTier
    effective_tier: SubscriptionTier
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    has_used_trial: bool
    trial_expired: bool
    wallet_limit: Optional[int] = Field(description="None means unlimited")
    features: FeatureFlags


class PlanPrices(CamelModel):
    monthly: Decimal
    yearly: Decimal


class PlanInfo(CamelModel):
    """Pricing and limits for a single tier."""
    tier: SubscriptionTier
    name: str
    max_wallets: Optional[int] = None
    features: list[str]
    analytics: bool = False
    export: bool = False
    prices: Optional[PlanPrices] = None
    trial_days: Optional[int] = None


class PlansResponse(CamelModel):
    """Response DTO for the plans catalogue."""
    currency: str = "USD"
    plans: list[PlanInfo]


# =============================================================================
# Tier Configuration (Business Logic)
# =============================================================================

PRO_TRIAL_DAYS = 7

# None means unlimited
WALLET_LIMITS: dict[SubscriptionTier, Optional[int]] = {
    SubscriptionTier.FREE: 3,
    SubscriptionTier.PRO_TRIAL: None,
    SubscriptionTier.PRO: None,
    SubscriptionTier.PRO_PLUS: None,
}

# USD list prices
SUBSCRIPTION_PRICES: dict[SubscriptionTier, dict[BillingPeriod, Decimal]] = {
    SubscriptionTier.PRO: {
        BillingPeriod.MONTHLY: Decimal("9.99"),
        BillingPeriod.YEARLY: Decimal("99.99"),
    },
    SubscriptionTier.PRO_PLUS: {
        BillingPeriod.MONTHLY: Decimal("19.99"),
        BillingPeriod.YEARLY: Decimal("199.99"),
    },
}

TIER_FEATURES: dict[SubscriptionTier, list[str]] = {
    SubscriptionTier.FREE: [
        "Up to 3 wallets",
        "Transaction tracking",
        "Basic summary",
    ],
    SubscriptionTier.PRO: [
        "Unlimited wallets",
        "Custom categories",
        "Transaction tracking",
        "Basic summary",
        "7-day free trial",
    ],
    SubscriptionTier.PRO_PLUS: [
        "Unlimited wallets",
        "Custom categories",
        "Advanced analytics",
        "Data export (CSV/Excel)",
        "Transaction tracking",
    ],
}


def get_price(tier: SubscriptionTier, billing_period: BillingPeriod) -> Decimal:
    """Get the USD list price for a paid tier. Raises KeyError for unpriced tiers."""
    return SUBSCRIPTION_PRICES[tier][billing_period]
