"""
Integration tests for the WalletWise API endpoints.

Tests the full request/response cycle against a SQLite database with fake
checkout creation and real Stripe webhook signatures.
"""

import json
from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from walletwise.api.dependencies import PRO_PLUS_REQUIRED, require_pro_plus
from walletwise.domain.clock import utcnow
from walletwise.domain.subscription import SubscriptionTier
from walletwise.infrastructure.db.database import get_session
from walletwise.infrastructure.db.repositories import SubscriptionRepository
from walletwise.infrastructure.exceptions import AuthorizationError
from walletwise.infrastructure.payments import StripeGateway, get_stripe_gateway


def _checkout_completed(session_id: str) -> bytes:
    return json.dumps({
        "id": "evt_e2e_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "object": "checkout.session", "payment_status": "paid"}},
    }).encode("utf-8")


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client: TestClient):
        """Root endpoint should return welcome message."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "WalletWise API"

    def test_health_endpoint(self, client: TestClient):
        """Health endpoint should return healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "walletwise"}


class TestAuthentication:
    """Tests for bearer token handling."""

    def test_payment_requires_token(self, client: TestClient):
        response = client.post("/api/v1/payments/create", json={
            "targetTier": "pro", "gateway": "stripe", "method": "card",
        })
        assert response.status_code == 401

    def test_invalid_token_rejected(self, client: TestClient):
        response = client.get(
            "/api/v1/subscriptions/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or unverifiable token"

    def test_plans_are_public(self, client: TestClient):
        response = client.get("/api/v1/billing/plans")
        assert response.status_code == 200
        data = response.json()
        assert [p["tier"] for p in data["plans"]] == ["free", "pro", "pro_plus"]
        assert data["plans"][0]["maxWallets"] == 3


class TestPaymentEndpoints:
    """Tests for POST /api/v1/payments/create."""

    @pytest.mark.asyncio
    async def test_stripe_requires_card(self, async_client, create_user, auth_headers):
        user_id = await create_user()
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "gateway": "stripe", "method": "qris"},
            headers=auth_headers(user_id),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_free_is_not_a_valid_target(self, async_client, create_user, auth_headers):
        user_id = await create_user()
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "free", "gateway": "stripe", "method": "card"},
            headers=auth_headers(user_id),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_trial_activates_immediately(self, async_client, create_user, auth_headers, stripe_fake):
        user_id = await create_user()
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro_trial", "gateway": "stripe", "method": "card"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "paid"
        assert data["redirectUrl"] is None
        assert data["subscription"]["tier"] == "pro_trial"
        assert stripe_fake.calls == []

        second = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro_trial", "gateway": "stripe", "method": "card"},
            headers=auth_headers(user_id),
        )
        assert second.status_code == 400
        assert second.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_xendit_returns_invoice_url(self, async_client, create_user, auth_headers):
        user_id = await create_user()
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro_plus", "billingPeriod": "yearly", "gateway": "xendit", "method": "qris"},
            headers={**auth_headers(user_id), "Idempotency-Key": "order-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["invoiceUrl"].endswith(f"fake_{user_id}_order-1")
        assert data["idempotentReplay"] is False

        replay = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro_plus", "billingPeriod": "yearly", "gateway": "xendit", "method": "qris"},
            headers={**auth_headers(user_id), "Idempotency-Key": "order-1"},
        )
        assert replay.json()["paymentId"] == data["paymentId"]
        assert replay.json()["idempotentReplay"] is True

    @pytest.mark.asyncio
    async def test_reused_key_for_other_plan_is_409(self, async_client, create_user, auth_headers, xendit_fake):
        user_id = await create_user()
        headers = {**auth_headers(user_id), "Idempotency-Key": "order-2"}
        first = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "billingPeriod": "monthly", "gateway": "xendit", "method": "va"},
            headers=headers,
        )
        reused = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro_plus", "billingPeriod": "yearly", "gateway": "xendit", "method": "va"},
            headers=headers,
        )

        assert first.status_code == 200
        assert reused.status_code == 409
        assert reused.json()["error"] == "ConflictError"
        assert len(xendit_fake.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_idempotency_key_rejected(self, async_client, create_user, auth_headers):
        user_id = await create_user()
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "gateway": "stripe", "method": "card"},
            headers={**auth_headers(user_id), "Idempotency-Key": "has spaces!"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "gateway": "stripe", "method": "card"},
            headers=auth_headers("11111111-2222-3333-4444-555555555555"),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_gateway_failure_is_502(self, async_client, create_user, auth_headers, stripe_fake):
        from walletwise.infrastructure.exceptions import GatewayError

        user_id = await create_user()
        stripe_fake.error = GatewayError("Stripe checkout creation timed out", gateway="stripe")
        response = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "gateway": "stripe", "method": "card"},
            headers=auth_headers(user_id),
        )
        assert response.status_code == 502


class TestWalletLimitScenario:
    """A free user hits the wallet limit, pays, and the webhook lifts it."""

    @pytest.mark.asyncio
    async def test_upgrade_lifts_wallet_limit(
        self, app, async_client, create_user, auth_headers, stripe_fake, test_settings, sign_stripe_payload
    ):
        app.dependency_overrides[get_stripe_gateway] = lambda: StripeGateway(settings=test_settings)
        stripe_fake.fixed_ref = "cs_e2e_1"
        user_id = await create_user()
        headers = auth_headers(user_id)

        for name in ("Cash", "Bank", "Savings"):
            response = await async_client.post("/api/v1/wallets", json={"name": name}, headers=headers)
            assert response.status_code == 201

        blocked = await async_client.post("/api/v1/wallets", json={"name": "Travel"}, headers=headers)
        assert blocked.status_code == 403
        assert blocked.json()["error"] == "WalletLimitError"

        checkout = await async_client.post(
            "/api/v1/payments/create",
            json={"targetTier": "pro", "billingPeriod": "monthly", "gateway": "stripe", "method": "card"},
            headers=headers,
        )
        assert checkout.status_code == 200
        assert checkout.json()["redirectUrl"] == "https://pay.example.com/cs_e2e_1"

        # Still free until the webhook arrives
        me = await async_client.get("/api/v1/subscriptions/me", headers=headers)
        assert me.json()["tier"] == "free"

        body = _checkout_completed("cs_e2e_1")
        webhook = await async_client.post(
            "/api/v1/webhook/stripe",
            content=body,
            headers={"stripe-signature": sign_stripe_payload(body), "content-type": "application/json"},
        )
        assert webhook.status_code == 200
        assert webhook.json() == {"received": True}

        allowed = await async_client.post("/api/v1/wallets", json={"name": "Travel"}, headers=headers)
        assert allowed.status_code == 201
        assert allowed.json()["name"] == "Travel"

        me = await async_client.get("/api/v1/subscriptions/me", headers=headers)
        data = me.json()
        assert data["tier"] == "pro"
        assert data["walletLimit"] is None
        assert data["features"]["customCategories"] is True

    @pytest.mark.asyncio
    async def test_duplicate_wallet_name_is_409(self, async_client, create_user, auth_headers):
        user_id = await create_user()
        headers = auth_headers(user_id)
        await async_client.post("/api/v1/wallets", json={"name": "Cash"}, headers=headers)

        response = await async_client.post("/api/v1/wallets", json={"name": "Cash"}, headers=headers)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_expired_trial_gets_trial_error(self, async_client, create_user, auth_headers, session_factory):
        user_id = await create_user()
        headers = auth_headers(user_id)
        now = utcnow()
        async with session_factory() as session:
            await SubscriptionRepository(session).activate_trial(
                user_id, 0, now - timedelta(days=7), now + timedelta(days=1)
            )
            await session.commit()

        for name in ("A", "B", "C", "D"):
            assert (await async_client.post("/api/v1/wallets", json={"name": name}, headers=headers)).status_code == 201

        async with session_factory() as session:
            await SubscriptionRepository(session).upsert_activation(
                user_id, SubscriptionTier.PRO_TRIAL, now - timedelta(days=8), now - timedelta(days=1)
            )
            await session.commit()

        response = await async_client.post("/api/v1/wallets", json={"name": "E"}, headers=headers)
        assert response.status_code == 403
        assert response.json()["error"] == "TrialExpiredError"
        assert response.json()["details"]["code"] == "PRO_TRIAL_EXPIRED"


class TestProPlusGate:
    """Tests for the require_pro_plus dependency."""

    @pytest.fixture
    def gated_app(self, session_factory):
        gated = FastAPI()

        @gated.exception_handler(AuthorizationError)
        async def _forbidden(request: Request, exc: AuthorizationError):
            return JSONResponse(status_code=403, content=exc.to_dict())

        @gated.get("/analytics")
        async def analytics(user_id: str = Depends(require_pro_plus)):
            return {"userId": user_id}

        async def _session_override():
            async with session_factory() as session:
                yield session

        gated.dependency_overrides[get_session] = _session_override
        return gated

    async def _get(self, gated_app, headers):
        async with AsyncClient(transport=ASGITransport(app=gated_app), base_url="http://test") as ac:
            return await ac.get("/analytics", headers=headers)

    @pytest.mark.asyncio
    async def test_pro_is_forbidden(self, gated_app, create_user, auth_headers, session_factory):
        user_id = await create_user()
        async with session_factory() as session:
            await SubscriptionRepository(session).upsert_activation(user_id, SubscriptionTier.PRO, utcnow(), None)
            await session.commit()

        response = await self._get(gated_app, auth_headers(user_id))
        assert response.status_code == 403
        assert response.json()["message"] == PRO_PLUS_REQUIRED

    @pytest.mark.asyncio
    async def test_pro_plus_is_allowed(self, gated_app, create_user, auth_headers, session_factory):
        user_id = await create_user()
        async with session_factory() as session:
            await SubscriptionRepository(session).upsert_activation(
                user_id, SubscriptionTier.PRO_PLUS, utcnow(), utcnow() + timedelta(days=30)
            )
            await session.commit()

        response = await self._get(gated_app, auth_headers(user_id))
        assert response.status_code == 200
        assert response.json() == {"userId": user_id}
