"""
Payment API Routes

Unified payment creation for Stripe (card) and Xendit (regional methods).
Subscriptions are only activated later, by the gateway webhook.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from walletwise.api.dependencies import CurrentUserId, get_payment_service
from walletwise.domain.subscription import CreatePaymentRequest, PaymentResult
from walletwise.infrastructure.services import PaymentService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/create", response_model=PaymentResult)
async def create_payment(
    request: CreatePaymentRequest,
    user_id: CurrentUserId,
    service: PaymentService = Depends(get_payment_service),
    idempotency_key: Optional[str] = Header(
        default=None,
        alias="Idempotency-Key",
        max_length=64,
        pattern=r"^[A-Za-z0-9_-]+$",
    ),
):
    """
    Start a tier change.

    pro_trial is activated immediately (status=paid, no redirect); pro and
    pro_plus return a redirect (Stripe) or invoice URL (Xendit) to present
    to the user. Sending the same Idempotency-Key again returns the
    existing payment instead of creating a new one.
    """
    return await service.create_payment(
        user_id,
        target_tier=request.target_tier,
        billing_period=request.billing_period,
        gateway=request.gateway,
        method=request.method,
        idempotency_key=idempotency_key,
    )
