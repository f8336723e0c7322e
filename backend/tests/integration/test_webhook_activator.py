"""
Integration tests for webhook-driven activation.

Covers at-least-once delivery, closing events and notification.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from walletwise.domain.subscription import (
    BillingPeriod,
    PaymentGateway,
    PaymentMethod,
    PaymentStatus,
    SubscriptionTier,
)
from walletwise.infrastructure.db.repositories import (
    PaymentRepository,
    SubscriptionRepository,
)
from walletwise.infrastructure.payments.base import WebhookEvent
from walletwise.infrastructure.realtime import SUBSCRIPTION_UPDATED
from walletwise.infrastructure.services import Activation, SubscriptionActivator


NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def pending_payment(session_factory, create_user):
    """Create a user with a pending checkout and return (user_id, gateway_ref)."""

    async def _create(
        gateway_ref: str = "cs_pending_1",
        gateway: PaymentGateway = PaymentGateway.STRIPE,
        target_tier: SubscriptionTier = SubscriptionTier.PRO,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    ):
        user_id = await create_user()
        async with session_factory() as session:
            await PaymentRepository(session).insert_if_absent(
                user_id=user_id,
                gateway=gateway,
                gateway_ref=gateway_ref,
                method=PaymentMethod.CARD if gateway == PaymentGateway.STRIPE else PaymentMethod.QRIS,
                amount=Decimal("9.99"),
                currency="USD",
                target_tier=target_tier,
                billing_period=billing_period,
                expires_at=NOW + timedelta(days=1),
            )
            await session.commit()
        return user_id, gateway_ref

    return _create


async def _subscription(session_factory, user_id):
    async with session_factory() as session:
        return await SubscriptionRepository(session).get_by_user_id(user_id)


async def _payment(session_factory, gateway_ref):
    async with session_factory() as session:
        return await PaymentRepository(session).get_by_gateway_ref(gateway_ref)


class TestActivateFromWebhook:
    """Tests for SubscriptionActivator.activate_from_webhook."""

    @pytest.mark.asyncio
    async def test_first_delivery_activates(self, session_factory, pending_payment, make_notifier):
        user_id, ref = await pending_payment()
        notifier = make_notifier()

        async with session_factory() as session:
            activation = await SubscriptionActivator(session, notifier, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE, {"type": "checkout.session.completed"}
            )

        assert activation == Activation(user_id=user_id, tier=SubscriptionTier.PRO)

        subscription = await _subscription(session_factory, user_id)
        assert subscription.tier == SubscriptionTier.PRO
        assert subscription.start_date == NOW
        # Jan 31 plus one month clamps to Feb 28
        assert subscription.end_date == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)

        payment = await _payment(session_factory, ref)
        assert payment.status == PaymentStatus.PAID
        assert payment.raw_webhook == {"type": "checkout.session.completed"}

        assert notifier.events == [
            (user_id, SUBSCRIPTION_UPDATED, {"tier": "pro", "isActive": True})
        ]

    @pytest.mark.asyncio
    async def test_yearly_period(self, session_factory, pending_payment):
        user_id, ref = await pending_payment(
            target_tier=SubscriptionTier.PRO_PLUS, billing_period=BillingPeriod.YEARLY
        )
        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )

        subscription = await _subscription(session_factory, user_id)
        assert subscription.tier == SubscriptionTier.PRO_PLUS
        assert subscription.end_date == NOW.replace(year=2027)

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_noop(self, session_factory, pending_payment, make_notifier):
        user_id, ref = await pending_payment()
        notifier = make_notifier()

        async with session_factory() as session:
            await SubscriptionActivator(session, notifier, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )
        first = await _subscription(session_factory, user_id)

        later = lambda: NOW + timedelta(days=3)
        async with session_factory() as session:
            again = await SubscriptionActivator(session, notifier, clock=later).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )

        second = await _subscription(session_factory, user_id)
        assert again is None
        assert second.end_date == first.end_date
        assert second.version == first.version
        assert len(notifier.events) == 1

    @pytest.mark.asyncio
    async def test_unknown_reference_is_noop(self, session_factory, create_user, make_notifier):
        user_id = await create_user()
        notifier = make_notifier()

        async with session_factory() as session:
            result = await SubscriptionActivator(session, notifier, clock=lambda: NOW).activate_from_webhook(
                "cs_unknown", PaymentGateway.STRIPE
            )

        assert result is None
        assert notifier.events == []
        assert (await _subscription(session_factory, user_id)).tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_gateway_mismatch_is_noop(self, session_factory, pending_payment):
        user_id, ref = await pending_payment(gateway_ref="wlw_ref_1", gateway=PaymentGateway.XENDIT)

        async with session_factory() as session:
            result = await SubscriptionActivator(session, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )

        assert result is None
        assert (await _payment(session_factory, ref)).status == PaymentStatus.PENDING
        assert (await _subscription(session_factory, user_id)).tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_notifier_failure_keeps_activation(self, session_factory, pending_payment, make_notifier):
        user_id, ref = await pending_payment()
        notifier = make_notifier(error=RuntimeError("socket closed"))

        async with session_factory() as session:
            activation = await SubscriptionActivator(session, notifier, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )

        assert activation is not None
        assert (await _subscription(session_factory, user_id)).tier == SubscriptionTier.PRO

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_activate_once(self, session_factory, pending_payment, make_notifier):
        user_id, ref = await pending_payment()
        notifier = make_notifier()

        async def deliver():
            async with session_factory() as session:
                return await SubscriptionActivator(session, notifier, clock=lambda: NOW).activate_from_webhook(
                    ref, PaymentGateway.STRIPE
                )

        results = await asyncio.gather(*(deliver() for _ in range(4)))

        assert sum(1 for r in results if r is not None) == 1
        assert len(notifier.events) == 1
        assert (await _subscription(session_factory, user_id)).version == 1

    @pytest.mark.asyncio
    async def test_webhook_overrides_trial(self, session_factory, pending_payment):
        user_id, ref = await pending_payment()
        async with session_factory() as session:
            await SubscriptionRepository(session).activate_trial(user_id, 0, NOW, NOW + timedelta(days=7))
            await session.commit()

        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).activate_from_webhook(
                ref, PaymentGateway.STRIPE
            )

        subscription = await _subscription(session_factory, user_id)
        assert subscription.tier == SubscriptionTier.PRO
        assert subscription.has_used_trial


class TestHandleEvent:
    """Tests for SubscriptionActivator.handle_event dispatch."""

    def _event(self, ref, is_paid=False, closed_status=None, gateway=PaymentGateway.STRIPE):
        return WebhookEvent(
            gateway=gateway,
            event_kind="test.event",
            gateway_ref=ref,
            is_paid=is_paid,
            closed_status=closed_status,
            payload={"ref": ref},
        )

    @pytest.mark.asyncio
    async def test_paid_event_activates(self, session_factory, pending_payment):
        user_id, ref = await pending_payment()
        async with session_factory() as session:
            result = await SubscriptionActivator(session, clock=lambda: NOW).handle_event(
                self._event(ref, is_paid=True)
            )
        assert result.user_id == user_id

    @pytest.mark.asyncio
    async def test_event_without_reference_ignored(self, session):
        assert await SubscriptionActivator(session).handle_event(self._event(None, is_paid=True)) is None

    @pytest.mark.asyncio
    async def test_unpaid_open_event_ignored(self, session_factory, pending_payment):
        _, ref = await pending_payment()
        async with session_factory() as session:
            assert await SubscriptionActivator(session).handle_event(self._event(ref)) is None
        assert (await _payment(session_factory, ref)).status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PaymentStatus.EXPIRED, PaymentStatus.FAILED])
    async def test_closing_event_marks_payment(self, session_factory, pending_payment, status):
        user_id, ref = await pending_payment()
        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).handle_event(
                self._event(ref, closed_status=status)
            )

        assert (await _payment(session_factory, ref)).status == status
        assert (await _subscription(session_factory, user_id)).tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_late_payment_after_expiry_still_activates(self, session_factory, pending_payment):
        user_id, ref = await pending_payment()
        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).handle_event(
                self._event(ref, closed_status=PaymentStatus.EXPIRED)
            )
        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).handle_event(
                self._event(ref, is_paid=True)
            )

        assert (await _payment(session_factory, ref)).status == PaymentStatus.PAID
        assert (await _subscription(session_factory, user_id)).tier == SubscriptionTier.PRO

    @pytest.mark.asyncio
    async def test_expiry_after_payment_ignored(self, session_factory, pending_payment):
        user_id, ref = await pending_payment()
        async with session_factory() as session:
            await SubscriptionActivator(session, clock=lambda: NOW).handle_event(
                self._event(ref, is_paid=True)
            )
        async with session_factory() as session:
            changed = await SubscriptionActivator(session, clock=lambda: NOW).close_payment(
                ref, PaymentGateway.STRIPE, PaymentStatus.EXPIRED
            )

        assert not changed
        assert (await _payment(session_factory, ref)).status == PaymentStatus.PAID
