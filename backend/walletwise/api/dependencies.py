"""
API Dependencies

FastAPI dependency injection for authentication, feature gating and services.

Security: access tokens are HS256 JWTs signed with JWT_SECRET by the auth
service. Never decode without verification.
"""

import logging
from typing import Annotated, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from walletwise.config.settings import get_settings
from walletwise.domain.clock import utcnow
from walletwise.domain.subscription import SubscriptionTier
from walletwise.domain.tier_policy import features_for
from walletwise.infrastructure.db.dependencies import SessionDep, SubscriptionRepoDep
from walletwise.infrastructure.exceptions import AuthorizationError
from walletwise.infrastructure.payments import get_gateways
from walletwise.infrastructure.realtime import EventBroker, get_event_broker
from walletwise.infrastructure.services import (
    PaymentService,
    SubscriptionActivator,
    SubscriptionService,
    WalletService,
)


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

PRO_PLUS_REQUIRED = "Pro+ subscription required for this feature. Please upgrade at /billing."


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify user ID from a bearer JWT.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = get_settings()
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured: rejecting all bearer tokens")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return user_id


CurrentUserId = Annotated[str, Depends(get_current_user_id)]


async def require_pro_plus(
    user_id: CurrentUserId,
    repo: SubscriptionRepoDep,
) -> str:
    """
    Gate a route on Pro+ access (analytics, export).

    An expired trial is gated as free. Returns the user ID for convenience.
    """
    subscription = await repo.get_by_user_id(user_id)
    tier = subscription.tier if subscription else SubscriptionTier.FREE
    end_date = subscription.end_date if subscription else None

    if not features_for(tier, end_date, utcnow()).analytics:
        raise AuthorizationError(PRO_PLUS_REQUIRED, details={"required_tier": "pro_plus"})
    return user_id


# =============================================================================
# Service Providers
# =============================================================================

def get_payment_service(
    session: SessionDep,
    gateways: dict = Depends(get_gateways),
) -> PaymentService:
    return PaymentService(session, gateways, trial_days=get_settings().pro_trial_days)


def get_subscription_activator(
    session: SessionDep,
    broker: EventBroker = Depends(get_event_broker),
) -> SubscriptionActivator:
    return SubscriptionActivator(session, notifier=broker)


def get_subscription_service(session: SessionDep) -> SubscriptionService:
    return SubscriptionService(session)


def get_wallet_service(session: SessionDep) -> WalletService:
    return WalletService(session)
