"""
Test configuration and fixtures for WalletWise.

Provides shared fixtures for unit and integration tests: a throwaway SQLite
database per test, fake payment gateways, a recording notifier and auth helpers.
"""

import hashlib
import hmac
import os
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from uuid import uuid4

# Settings are read once at import time; pin test credentials first.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("XENDIT_WEBHOOK_TOKEN", "xendit-callback-token")

import jwt
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from walletwise.config.settings import Settings, get_settings
from walletwise.domain.subscription import (
    BillingPeriod,
    PaymentGateway,
    PaymentStatus,
    SubscriptionTier,
)
from walletwise.infrastructure.payments.base import (
    CheckoutResult,
    PaymentGatewayAdapter,
    WebhookEvent,
)


FIXED_NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Fakes
# =============================================================================

class FakeGateway(PaymentGatewayAdapter):
    """In-memory gateway recording every checkout it is asked for."""

    def __init__(
        self,
        gateway: PaymentGateway = PaymentGateway.STRIPE,
        currency: str = "USD",
        fixed_ref: Optional[str] = None,
    ):
        self.gateway = gateway
        self.currency = currency
        self.fixed_ref = fixed_ref
        self.error: Optional[Exception] = None
        self.calls: list[dict] = []

    async def create_checkout(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutResult:
        self._reject_trial(target_tier)
        self.calls.append({
            "user_id": user_id,
            "target_tier": target_tier,
            "billing_period": billing_period,
            "idempotency_key": idempotency_key,
        })
        if self.error:
            raise self.error

        if self.fixed_ref:
            ref = self.fixed_ref
        elif idempotency_key:
            ref = f"fake_{user_id}_{idempotency_key}"
        else:
            ref = f"fake_{uuid4().hex}"

        url = f"https://pay.example.com/{ref}"
        return CheckoutResult(
            payment_id=ref,
            gateway_ref=ref,
            status=PaymentStatus.PENDING,
            redirect_url=url if self.gateway == PaymentGateway.STRIPE else None,
            invoice_url=url if self.gateway == PaymentGateway.XENDIT else None,
            expires_at=FIXED_NOW + timedelta(days=1),
            raw_request={"userId": user_id, "targetTier": target_tier.value},
            raw_response={"ref": ref},
        )

    def known_reference(self, user_id: str, idempotency_key: Optional[str]) -> Optional[str]:
        if self.fixed_ref or not idempotency_key:
            return None
        return f"fake_{user_id}_{idempotency_key}"

    def verify_and_parse_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookEvent:
        raise NotImplementedError


class RecordingNotifier:
    """SubscriptionNotifier that remembers what it was told."""

    def __init__(self, error: Optional[Exception] = None):
        self.events: list[tuple[str, str, dict]] = []
        self.error = error

    async def notify(self, user_id: str, event: str, payload: dict) -> None:
        if self.error:
            raise self.error
        self.events.append((user_id, event, payload))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits."""
    import walletwise.infrastructure.db.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'walletwise.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_user(session_factory):
    """Register a user (with its free subscription) and return the user ID."""
    from walletwise.infrastructure.services import SubscriptionService

    async def _create(email: Optional[str] = None) -> str:
        async with session_factory() as session:
            subscription = await SubscriptionService(session, clock=lambda: FIXED_NOW).register_user(
                email or f"{uuid4().hex[:12]}@example.com"
            )
            await session.commit()
            return subscription.user_id

    return _create


# =============================================================================
# Gateway / Notifier Fixtures
# =============================================================================

@pytest.fixture
def make_notifier():
    return RecordingNotifier


@pytest.fixture
def stripe_fake():
    return FakeGateway(PaymentGateway.STRIPE, "USD")


@pytest.fixture
def xendit_fake():
    return FakeGateway(PaymentGateway.XENDIT, "IDR")


@pytest.fixture
def gateways(stripe_fake, xendit_fake):
    return {PaymentGateway.STRIPE: stripe_fake, PaymentGateway.XENDIT: xendit_fake}


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test_secret",
        stripe_price_pro_monthly="price_pro_monthly",
        stripe_price_pro_yearly="price_pro_yearly",
        stripe_price_pro_plus_monthly="price_pro_plus_monthly",
        stripe_price_pro_plus_yearly="price_pro_plus_yearly",
        xendit_secret_key="xnd_development_123",
        xendit_webhook_token="xendit-callback-token",
        frontend_url="https://app.walletwise.test",
    )


@pytest.fixture
def sign_stripe_payload():
    """Build a valid Stripe-Signature header for a payload."""

    def _sign(payload: bytes, secret: str = "whsec_test_secret", timestamp: Optional[int] = None) -> str:
        timestamp = timestamp or int(time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    return _sign


@pytest.fixture
def auth_headers():
    """Bearer headers for a user, signed with the configured JWT secret."""

    def _headers(user_id: str) -> dict:
        settings = get_settings()
        token = jwt.encode(
            {"sub": user_id, "exp": int(time.time()) + 3600},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from walletwise.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client (no database)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
async def async_client(app, session_factory, gateways) -> AsyncGenerator[AsyncClient, None]:
    """Async client wired to the test database and fake gateways."""
    from walletwise.infrastructure.db.database import get_session
    from walletwise.infrastructure.payments import get_gateways
    from walletwise.infrastructure.realtime import EventBroker, get_event_broker

    async def _session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    broker = EventBroker()
    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_gateways] = lambda: gateways
    app.dependency_overrides[get_event_broker] = lambda: broker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
