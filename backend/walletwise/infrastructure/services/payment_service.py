"""
Payment Service

Single entry point for "start becoming tier X". The Pro trial is activated
directly on the subscription; paid tiers go through a gateway checkout and
are recorded in the payment ledger. Paid tiers are only ever activated by
the webhook path (see webhook_activator.py).
"""

import logging
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.domain.clock import Clock, utcnow
from walletwise.domain.subscription import (
    BillingPeriod,
    Payment,
    PaymentGateway,
    PaymentMethod,
    PaymentResult,
    PaymentStatus,
    PRO_TRIAL_DAYS,
    SubscriptionSummary,
    SubscriptionTier,
    get_price,
)
from walletwise.domain.tier_policy import compute_trial_end, validate_transition
from walletwise.infrastructure.db.repositories import (
    PaymentRepository,
    SubscriptionRepository,
    UserRepository,
)
from walletwise.infrastructure.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from walletwise.infrastructure.payments.base import PaymentGatewayAdapter


logger = logging.getLogger(__name__)


class PaymentService:
    """
    Payment orchestrator.

    Stateless apart from the injected session, adapters and clock; every
    concurrency guarantee comes from the database (unique gateway_ref,
    version-checked trial write).
    """

    def __init__(
        self,
        session: AsyncSession,
        gateways: Mapping[PaymentGateway, PaymentGatewayAdapter],
        clock: Clock = utcnow,
        trial_days: int = PRO_TRIAL_DAYS,
    ):
        self._users = UserRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._payments = PaymentRepository(session)
        self._gateways = gateways
        self._clock = clock
        self._trial_days = trial_days

    async def create_payment(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        gateway: PaymentGateway,
        method: PaymentMethod,
        idempotency_key: Optional[str] = None,
    ) -> PaymentResult:
        """
        Start a tier change for a user.

        Args:
            user_id: Authenticated user ID
            target_tier: pro_trial, pro or pro_plus
            billing_period: monthly or yearly (ignored for the trial)
            gateway: stripe or xendit (ignored for the trial)
            method: payment method at the gateway
            idempotency_key: Optional caller key making retries land on one ledger row

        Returns:
            PaymentResult; for the trial a synthetic paid result without redirect

        Raises:
            NotFoundError: user does not exist
            ValidationError: tier transition not allowed
            ConflictError: subscription changed while the trial was being written, or
                the idempotency key was already used for a different purchase
            GatewayError: the gateway call failed (nothing was persisted)
        """
        logger.info(
            f"Payment create: user={user_id}, gateway={gateway.value}, "
            f"method={method.value}, target_tier={target_tier.value}"
        )

        await self._require_user(user_id)
        subscription = await self._subscriptions.get_by_user_id(user_id)
        current_tier = subscription.tier if subscription else SubscriptionTier.FREE
        has_used_trial = subscription.has_used_trial if subscription else False

        decision = validate_transition(current_tier, target_tier, has_used_trial)
        if not decision.allowed:
            logger.info(
                f"Rejected {current_tier.value} -> {target_tier.value} for user {user_id}: "
                f"{decision.reason}"
            )
            raise ValidationError(
                decision.reason,
                details={"current_tier": current_tier.value, "target_tier": target_tier.value},
            )

        if target_tier == SubscriptionTier.PRO_TRIAL:
            return await self._activate_trial(
                user_id, subscription.version if subscription else None
            )

        return await self._create_checkout(
            user_id, target_tier, billing_period, gateway, method, idempotency_key
        )

    # =========================================================================
    # Trial Path
    # =========================================================================

    async def _activate_trial(
        self,
        user_id: str,
        expected_version: Optional[int],
    ) -> PaymentResult:
        now = self._clock()
        end_date = compute_trial_end(now, self._trial_days)

        written = await self._subscriptions.activate_trial(
            user_id, expected_version, start_date=now, end_date=end_date
        )
        if not written:
            logger.warning(f"Trial activation lost a race for user {user_id}")
            raise ConflictError(
                "Subscription changed while activating the trial, please retry",
                operation="activate_trial",
                table="subscriptions",
            )

        logger.info(f"Activated Pro trial for user {user_id} until {end_date.isoformat()}")

        trial_ref = f"trial_{user_id}"
        return PaymentResult(
            payment_id=trial_ref,
            gateway_ref=trial_ref,
            status=PaymentStatus.PAID,
            subscription=SubscriptionSummary(
                tier=SubscriptionTier.PRO_TRIAL,
                is_active=True,
                end_date=end_date,
            ),
        )

    # =========================================================================
    # Gateway Path
    # =========================================================================

    async def _create_checkout(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        gateway: PaymentGateway,
        method: PaymentMethod,
        idempotency_key: Optional[str],
    ) -> PaymentResult:
        adapter = self._gateways.get(gateway)
        if adapter is None:
            raise ConfigurationError(f"Payment gateway {gateway.value} is not available")

        known_ref = adapter.known_reference(user_id, idempotency_key)
        if known_ref:
            existing = await self._payments.get_by_gateway_ref(known_ref)
            if existing is not None:
                return self._replay(existing, target_tier, billing_period, gateway)

        # Nothing is written before the gateway answers, so a failure here
        # leaves no ledger row and the whole call can be retried.
        checkout = await adapter.create_checkout(
            user_id, target_tier, billing_period, idempotency_key=idempotency_key
        )

        payment, created = await self._payments.insert_if_absent(
            user_id=user_id,
            gateway=gateway,
            gateway_ref=checkout.gateway_ref,
            method=method,
            amount=adapter.convert_amount(get_price(target_tier, billing_period)),
            currency=adapter.currency,
            target_tier=target_tier,
            billing_period=billing_period,
            redirect_url=checkout.redirect_url,
            invoice_url=checkout.invoice_url,
            expires_at=checkout.expires_at,
            raw_request=checkout.raw_request,
            raw_response=checkout.raw_response,
        )

        if not created:
            return self._replay(payment, target_tier, billing_period, gateway)

        logger.info(
            f"Recorded pending {gateway.value} payment {checkout.gateway_ref} "
            f"({payment.amount} {payment.currency}) for user {user_id}"
        )
        return PaymentResult(
            payment_id=payment.id,
            gateway_ref=payment.gateway_ref,
            status=payment.status,
            redirect_url=payment.redirect_url,
            invoice_url=payment.invoice_url,
            expires_at=payment.expires_at,
        )

    def _replay(
        self,
        payment: Payment,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        gateway: PaymentGateway,
    ) -> PaymentResult:
        """Return the stored payment for a repeated request, if it is the same purchase."""
        if (
            payment.target_tier != target_tier
            or payment.billing_period != billing_period
            or payment.gateway != gateway
        ):
            logger.warning(
                f"Idempotency key reused for a different purchase: ref={payment.gateway_ref}, "
                f"stored={payment.gateway.value}/{payment.target_tier.value}/{payment.billing_period.value}, "
                f"requested={gateway.value}/{target_tier.value}/{billing_period.value}"
            )
            raise ConflictError(
                "Idempotency key was already used for a different purchase",
                operation="create_payment",
                table="payments",
            )

        logger.info(
            f"Payment already created for {payment.gateway_ref} (idempotent replay), "
            f"status={payment.status.value}"
        )
        return PaymentResult(
            payment_id=payment.id,
            gateway_ref=payment.gateway_ref,
            status=payment.status,
            redirect_url=payment.redirect_url,
            invoice_url=payment.invoice_url,
            expires_at=payment.expires_at,
            idempotent_replay=True,
        )

    async def _require_user(self, user_id: str) -> None:
        try:
            user = await self._users.get_by_id(user_id)
        except ValueError:
            user = None
        if user is None:
            raise NotFoundError(f"User {user_id} not found", operation="create_payment", table="users")
