"""
Stripe Payment Gateway

Card payments through Stripe Hosted Checkout, plus verification of
Stripe-signed webhook deliveries.

- Hosted Checkout for minimal PCI burden
- The checkout session id is the gateway reference
- Webhook signatures are checked over the raw, unparsed body
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from stripe import SignatureVerificationError, StripeError

from walletwise.config.settings import Settings, get_settings
from walletwise.domain.subscription import (
    BillingPeriod,
    PaymentGateway,
    PaymentStatus,
    SubscriptionTier,
)
from walletwise.infrastructure.exceptions import (
    ConfigurationError,
    GatewayError,
    SignatureInvalidError,
    WebhookNotConfiguredError,
)
from walletwise.infrastructure.payments.base import (
    CheckoutResult,
    PaymentGatewayAdapter,
    WebhookEvent,
)


logger = logging.getLogger(__name__)


# Stripe event type -> (is_paid, closed status)
CHECKOUT_EVENTS = {
    "checkout.session.completed": (True, None),
    "checkout.session.async_payment_succeeded": (True, None),
    "checkout.session.async_payment_failed": (False, PaymentStatus.FAILED),
    "checkout.session.expired": (False, PaymentStatus.EXPIRED),
}


class StripeGateway(PaymentGatewayAdapter):
    """
    Stripe Checkout adapter (card gateway).

    The SDK is synchronous, so calls run in a worker thread bounded by
    `gateway_timeout_seconds`.
    """

    gateway = PaymentGateway.STRIPE
    currency = "USD"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._frontend_url = settings.frontend_url.rstrip("/")
        self._timeout = settings.gateway_timeout_seconds

        # Price ID mapping: (tier, period) -> stripe_price_id
        self._price_map = {
            (SubscriptionTier.PRO, BillingPeriod.MONTHLY): settings.stripe_price_pro_monthly,
            (SubscriptionTier.PRO, BillingPeriod.YEARLY): settings.stripe_price_pro_yearly,
            (SubscriptionTier.PRO_PLUS, BillingPeriod.MONTHLY): settings.stripe_price_pro_plus_monthly,
            (SubscriptionTier.PRO_PLUS, BillingPeriod.YEARLY): settings.stripe_price_pro_plus_yearly,
        }

    def _get_price_id(self, tier: SubscriptionTier, billing_period: BillingPeriod) -> str:
        """Get Stripe Price ID for given tier/period combination."""
        price_id = self._price_map.get((tier, billing_period))

        if not price_id:
            key = f"STRIPE_PRICE_{tier.value}_{billing_period.value}".upper()
            raise ConfigurationError(
                f"Stripe price not configured for {tier.value}_{billing_period.value}",
                missing_keys=[key],
            )

        return price_id

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a Stripe Checkout Session for a subscription.

        Args:
            user_id: Internal user ID (client_reference_id + metadata)
            target_tier: pro or pro_plus
            billing_period: monthly or yearly
            idempotency_key: Forwarded to Stripe so a retry returns the same session

        Returns:
            CheckoutResult with the session id as gateway_ref and the hosted URL
        """
        self._reject_trial(target_tier)

        if not self._api_key:
            raise ConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )

        price_id = self._get_price_id(target_tier, billing_period)

        params = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": (
                f"{self._frontend_url}/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}"
            ),
            "cancel_url": f"{self._frontend_url}/billing?canceled=true",
            "client_reference_id": user_id,
            "metadata": {
                "userId": user_id,
                "targetTier": target_tier.value,
                "billingPeriod": billing_period.value,
            },
        }
        request_options = {"api_key": self._api_key}
        if idempotency_key:
            request_options["idempotency_key"] = f"checkout_{user_id}_{idempotency_key}"

        try:
            session = await asyncio.wait_for(
                asyncio.to_thread(stripe.checkout.Session.create, **params, **request_options),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Stripe checkout timed out after {self._timeout}s for user {user_id}")
            raise GatewayError(
                "Stripe checkout creation timed out",
                gateway=self.gateway.value,
                original_error=e,
            )
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise GatewayError(
                f"Failed to create checkout: {e.user_message or e}",
                gateway=self.gateway.value,
                status_code=e.http_status,
                original_error=e,
            )

        session_id = getattr(session, "id", None)
        session_url = getattr(session, "url", None)
        if not session_id or not session_url:
            raise GatewayError(
                "Stripe returned a checkout session without id or url",
                gateway=self.gateway.value,
            )

        expires_at = None
        if getattr(session, "expires_at", None):
            expires_at = datetime.fromtimestamp(session.expires_at, tz=timezone.utc)

        logger.info(
            f"Created checkout session {session_id} for user {user_id}, "
            f"tier={target_tier.value}, period={billing_period.value}"
        )

        return CheckoutResult(
            payment_id=session_id,
            gateway_ref=session_id,
            status=PaymentStatus.PENDING,
            redirect_url=session_url,
            expires_at=expires_at,
            raw_request={
                "userId": user_id,
                "targetTier": target_tier.value,
                "billingPeriod": billing_period.value,
                "priceId": price_id,
            },
            raw_response={"sessionId": session_id, "url": session_url},
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_and_parse_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
    ) -> WebhookEvent:
        """
        Verify webhook signature and parse the event.

        Args:
            raw_body: Raw request body, exactly as received
            signature: Stripe-Signature header

        Returns:
            WebhookEvent for the checkout session the event refers to

        Raises:
            WebhookNotConfiguredError if no webhook secret is configured
            SignatureInvalidError if the signature is absent or invalid
        """
        if not self._webhook_secret:
            raise WebhookNotConfiguredError(
                "Stripe webhook secret not configured",
                gateway=self.gateway.value,
            )

        if not raw_body or not signature:
            raise SignatureInvalidError("Missing signature or body", gateway=self.gateway.value)

        try:
            stripe.Webhook.construct_event(raw_body, signature, self._webhook_secret)
        except ValueError as e:
            raise SignatureInvalidError(
                f"Invalid payload: {e}", gateway=self.gateway.value, original_error=e
            )
        except SignatureVerificationError as e:
            raise SignatureInvalidError(
                f"Webhook signature verification failed: {e}",
                gateway=self.gateway.value,
                original_error=e,
            )

        payload = json.loads(raw_body)
        event_type = payload.get("type", "")
        data_object = (payload.get("data") or {}).get("object") or {}

        is_paid, closed_status = CHECKOUT_EVENTS.get(event_type, (False, None))
        if event_type == "checkout.session.completed" and data_object.get("payment_status") == "unpaid":
            # Delayed methods complete first and pay later (async_payment_succeeded)
            is_paid = False

        return WebhookEvent(
            gateway=self.gateway,
            event_kind=event_type,
            gateway_ref=data_object.get("id") if event_type in CHECKOUT_EVENTS else None,
            is_paid=is_paid,
            closed_status=closed_status,
            payload=payload,
        )
