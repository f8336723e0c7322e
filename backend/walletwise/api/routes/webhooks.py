"""
Payment Webhook Handlers

Callbacks from Stripe and Xendit. Both are unauthenticated at the HTTP layer
and verified inside: the Stripe signature over the raw body, the Xendit
callback token header. Verification failures are rejected before any
business logic runs; every verified delivery is acknowledged with
`{"received": true}` so gateways do not retry events that were handled,
ignored or unknown.

Handled Events:
- Stripe checkout.session.completed / async_payment_succeeded: activate
- Stripe checkout.session.expired / async_payment_failed: close payment
- Xendit invoice PAID / SETTLED: activate
- Xendit invoice EXPIRED: close payment
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from walletwise.api.dependencies import get_subscription_activator
from walletwise.infrastructure.payments import (
    StripeGateway,
    XenditGateway,
    get_stripe_gateway,
    get_xendit_gateway,
)
from walletwise.infrastructure.services import SubscriptionActivator


logger = logging.getLogger(__name__)

router = APIRouter()

ACKNOWLEDGED = {"received": True}


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    activator: SubscriptionActivator = Depends(get_subscription_activator),
):
    """
    Handle Stripe webhook events.

    Raises SignatureInvalidError (400) or WebhookNotConfiguredError (500)
    before anything is read from or written to the database.
    """
    raw_body = await request.body()
    event = gateway.verify_and_parse_webhook(raw_body, stripe_signature)

    logger.info(f"Stripe webhook received: type={event.event_kind}, ref={event.gateway_ref}")
    await activator.handle_event(event)
    return ACKNOWLEDGED


@router.post("/webhook/xendit")
async def xendit_webhook(
    request: Request,
    callback_token: Optional[str] = Header(default=None, alias="x-callback-token"),
    gateway: XenditGateway = Depends(get_xendit_gateway),
    activator: SubscriptionActivator = Depends(get_subscription_activator),
):
    """Handle Xendit invoice callbacks (x-callback-token verified)."""
    raw_body = await request.body()
    event = gateway.verify_and_parse_webhook(raw_body, callback_token)

    logger.info(
        f"Xendit webhook received: status={event.payload.get('status')}, ref={event.gateway_ref}"
    )
    await activator.handle_event(event)
    return ACKNOWLEDGED
