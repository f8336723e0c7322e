"""
Subscription API Routes

Current subscription status and the public plans catalogue.
"""

import logging

from fastapi import APIRouter, Depends

from walletwise.api.dependencies import CurrentUserId, get_subscription_service
from walletwise.domain.subscription import PlansResponse, SubscriptionStatusResponse
from walletwise.infrastructure.services import SubscriptionService, get_plans


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/subscriptions/me", response_model=SubscriptionStatusResponse)
async def get_my_subscription(
    user_id: CurrentUserId,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Get the current user's subscription.

    Includes the effective tier (an expired trial counts as free), the
    wallet limit it grants and the feature flags.
    """
    return await service.get_status(user_id)


@router.get("/billing/plans", response_model=PlansResponse)
async def list_plans():
    """Public pricing: free, pro and pro_plus with limits and USD prices."""
    return get_plans()
