"""
Webhook Activator

The only code path that marks a paid subscription active. Gateways deliver
at least once, so activation is idempotent: the ledger row is flipped to
paid with a conditional update and only the caller that wins that update
touches the subscription and notifies.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.domain.clock import Clock, utcnow
from walletwise.domain.subscription import PaymentGateway, PaymentStatus, SubscriptionTier
from walletwise.domain.tier_policy import compute_period_end
from walletwise.infrastructure.db.repositories import (
    PaymentRepository,
    SubscriptionRepository,
)
from walletwise.infrastructure.payments.base import WebhookEvent
from walletwise.infrastructure.realtime.notifier import (
    SUBSCRIPTION_UPDATED,
    SubscriptionNotifier,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Activation:
    """A subscription change made by a webhook."""
    user_id: str
    tier: SubscriptionTier


class SubscriptionActivator:
    """
    Applies verified gateway events to the ledger and subscription.

    Args:
        session: Async session; the activator commits it before notifying
        notifier: Receives `subscription:updated` after a successful commit
        clock: Time source for period computation
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[SubscriptionNotifier] = None,
        clock: Clock = utcnow,
    ):
        self._session = session
        self._payments = PaymentRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._notifier = notifier
        self._clock = clock

    async def handle_event(self, event: WebhookEvent) -> Optional[Activation]:
        """Dispatch a verified event. Events that change nothing return None."""
        if not event.gateway_ref:
            logger.info(f"Ignoring {event.gateway.value} event {event.event_kind}: no payment reference")
            return None

        if event.is_paid:
            return await self.activate_from_webhook(
                event.gateway_ref, event.gateway, event.payload
            )

        if event.closed_status is not None:
            await self.close_payment(
                event.gateway_ref, event.gateway, event.closed_status, event.payload
            )
            return None

        logger.info(
            f"Ignoring {event.gateway.value} event {event.event_kind} for {event.gateway_ref}"
        )
        return None

    async def activate_from_webhook(
        self,
        gateway_ref: str,
        gateway: PaymentGateway,
        raw_webhook: Optional[dict[str, Any]] = None,
    ) -> Optional[Activation]:
        """
        Mark the payment paid and activate its target tier, exactly once.

        Returns:
            Activation for the first delivery; None for unknown references,
            duplicate deliveries and gateway mismatches.
        """
        payment = await self._payments.get_by_gateway_ref(gateway_ref)
        if payment is None:
            logger.warning(f"Webhook: payment not found for {gateway.value} ref {gateway_ref}")
            return None

        if payment.gateway != gateway:
            logger.warning(
                f"Webhook: {gateway.value} event for {payment.gateway.value} payment {gateway_ref}"
            )
            return None

        if payment.status == PaymentStatus.PAID:
            logger.info(f"Webhook: payment {gateway_ref} already processed (idempotent)")
            return None

        now = self._clock()
        paid = await self._payments.mark_paid(gateway_ref, raw_webhook, now)
        if paid is None:
            # A concurrent delivery won the conditional update
            logger.info(f"Webhook: payment {gateway_ref} already processed (idempotent)")
            return None

        end_date = compute_period_end(now, paid.billing_period)
        await self._subscriptions.upsert_activation(
            paid.user_id, paid.target_tier, start_date=now, end_date=end_date
        )
        await self._session.commit()

        logger.info(
            f"Subscription activated via webhook: user={paid.user_id}, "
            f"tier={paid.target_tier.value}, ref={gateway_ref}, until={end_date.isoformat()}"
        )

        activation = Activation(user_id=paid.user_id, tier=paid.target_tier)
        await self._notify(activation)
        return activation

    async def close_payment(
        self,
        gateway_ref: str,
        gateway: PaymentGateway,
        status: PaymentStatus,
        raw_webhook: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Record a gateway-reported failure or expiry on a pending payment."""
        payment = await self._payments.get_by_gateway_ref(gateway_ref)
        if payment is None:
            logger.warning(f"Webhook: payment not found for {gateway.value} ref {gateway_ref}")
            return False
        if payment.gateway != gateway:
            logger.warning(
                f"Webhook: {gateway.value} event for {payment.gateway.value} payment {gateway_ref}"
            )
            return False

        changed = await self._payments.mark_closed(gateway_ref, status, raw_webhook, self._clock())
        if changed:
            await self._session.commit()
            logger.info(f"Payment {gateway_ref} marked {status.value}")
        else:
            logger.info(f"Payment {gateway_ref} is {payment.status.value}; not marking {status.value}")
        return changed

    async def _notify(self, activation: Activation) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(
                activation.user_id,
                SUBSCRIPTION_UPDATED,
                {"tier": activation.tier.value, "isActive": True},
            )
        except Exception as e:
            # Activation is already committed
            logger.warning(f"Failed to notify user {activation.user_id} of subscription update: {e}")
