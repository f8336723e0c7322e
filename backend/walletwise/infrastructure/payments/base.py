"""
Payment Gateway Interface

Abstraction shared by the Stripe (card) and Xendit (regional) adapters.
Adapters talk to the provider and normalize results; they never persist.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from walletwise.domain.subscription import (
    BillingPeriod,
    PaymentGateway,
    PaymentStatus,
    SubscriptionTier,
)
from walletwise.infrastructure.exceptions import UnsupportedOperationError


@dataclass
class CheckoutResult:
    """Normalized result of creating a checkout session or invoice."""
    payment_id: str
    gateway_ref: str
    status: PaymentStatus = PaymentStatus.PENDING
    redirect_url: Optional[str] = None
    invoice_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    raw_request: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """A verified, parsed gateway callback."""
    gateway: PaymentGateway
    event_kind: str
    gateway_ref: Optional[str]
    is_paid: bool
    # Terminal non-paid outcome reported by the gateway, if any
    closed_status: Optional[PaymentStatus] = None
    payload: dict[str, Any] = field(default_factory=dict)


class PaymentGatewayAdapter(ABC):
    """Contract every payment provider adapter implements."""

    gateway: PaymentGateway
    currency: str

    @abstractmethod
    async def create_checkout(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutResult:
        """Create the external payment resource. One outbound call, no persistence."""

    @abstractmethod
    def verify_and_parse_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
    ) -> WebhookEvent:
        """Verify a callback against the shared secret and parse it. No side effects."""

    def known_reference(self, user_id: str, idempotency_key: Optional[str]) -> Optional[str]:
        """
        Gateway reference a checkout will get, when it is known before the call.

        Adapters whose reference is derived from the idempotency key return
        it so an existing ledger row can be found without calling out again.
        """
        return None

    def convert_amount(self, usd_amount: Decimal) -> Decimal:
        """Amount to record in this gateway's currency, given the USD list price."""
        return usd_amount

    def _reject_trial(self, target_tier: SubscriptionTier) -> None:
        if target_tier == SubscriptionTier.PRO_TRIAL:
            raise UnsupportedOperationError(
                f"Pro trial does not use {self.gateway.value}; it is activated directly",
                details={"gateway": self.gateway.value},
            )
