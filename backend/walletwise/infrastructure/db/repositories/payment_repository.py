"""
Payment Repository

Ledger access for payment attempts. The gateway reference is the idempotency
key: inserts are insert-or-ignore on it and status changes are conditional
updates, so concurrent callers never double-insert or double-activate.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from walletwise.domain.clock import as_utc
from walletwise.domain.subscription import (
    BillingPeriod,
    Payment,
    PaymentGateway,
    PaymentMethod,
    PaymentStatus,
    SubscriptionTier,
)
from walletwise.infrastructure.db.database import dialect_insert
from walletwise.infrastructure.db.models.payment import PaymentModel
from walletwise.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    to_uuid,
)


logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[PaymentModel]):
    """Repository for the payment ledger."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentModel, session)

    async def get_by_gateway_ref(self, gateway_ref: str) -> Optional[Payment]:
        """Get a payment by its gateway reference."""
        stmt = (
            select(PaymentModel)
            .where(PaymentModel.gateway_ref == gateway_ref)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def insert_if_absent(
        self,
        *,
        user_id: str,
        gateway: PaymentGateway,
        gateway_ref: str,
        method: PaymentMethod,
        amount: Decimal,
        currency: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        redirect_url: Optional[str] = None,
        invoice_url: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        raw_request: Optional[dict[str, Any]] = None,
        raw_response: Optional[dict[str, Any]] = None,
    ) -> Tuple[Payment, bool]:
        """
        Insert a pending payment unless one with `gateway_ref` already exists.

        Returns:
            (payment, created) where `payment` is the stored row, which is the
            pre-existing one when `created` is False.
        """
        now = datetime.now(timezone.utc)
        stmt = dialect_insert(self.session, PaymentModel).values(
            id=uuid4(),
            user_id=to_uuid(user_id),
            gateway=gateway.value,
            gateway_ref=gateway_ref,
            method=method.value,
            status=PaymentStatus.PENDING.value,
            amount=amount,
            currency=currency,
            target_tier=target_tier.value,
            billing_period=billing_period.value,
            redirect_url=redirect_url,
            invoice_url=invoice_url,
            expires_at=expires_at,
            raw_request=raw_request,
            raw_response=raw_response,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["gateway_ref"])
        result = await self.session.execute(stmt)
        created = result.rowcount == 1

        payment = await self.get_by_gateway_ref(gateway_ref)
        return payment, created

    async def mark_paid(
        self,
        gateway_ref: str,
        raw_webhook: Optional[dict[str, Any]],
        now: datetime,
    ) -> Optional[Payment]:
        """
        Flip a payment to paid, only if it is not paid already.

        Returns the updated payment, or None if no row changed (unknown
        reference or already paid).
        """
        stmt = (
            update(PaymentModel)
            .where(
                PaymentModel.gateway_ref == gateway_ref,
                PaymentModel.status != PaymentStatus.PAID.value,
            )
            .values(
                status=PaymentStatus.PAID.value,
                raw_webhook=raw_webhook,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self.get_by_gateway_ref(gateway_ref)

    async def mark_closed(
        self,
        gateway_ref: str,
        status: PaymentStatus,
        raw_webhook: Optional[dict[str, Any]],
        now: datetime,
    ) -> bool:
        """Move a pending payment to failed or expired. Never touches paid rows."""
        if status not in (PaymentStatus.FAILED, PaymentStatus.EXPIRED):
            raise ValueError(f"mark_closed does not handle status {status.value}")

        stmt = (
            update(PaymentModel)
            .where(
                PaymentModel.gateway_ref == gateway_ref,
                PaymentModel.status == PaymentStatus.PENDING.value,
            )
            .values(status=status.value, raw_webhook=raw_webhook, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def expire_stale(self, now: datetime) -> int:
        """Mark pending payments whose checkout has expired. Returns rows changed."""
        stmt = (
            update(PaymentModel)
            .where(
                PaymentModel.status == PaymentStatus.PENDING.value,
                PaymentModel.expires_at.is_not(None),
                PaymentModel.expires_at < now,
            )
            .values(status=PaymentStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        logger.info(f"Expired {result.rowcount} stale pending payments")
        return result.rowcount

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: PaymentModel) -> Payment:
        """Convert database model to domain entity."""
        return Payment(
            id=str(model.id),
            user_id=str(model.user_id),
            gateway=PaymentGateway(model.gateway),
            gateway_ref=model.gateway_ref,
            method=PaymentMethod(model.method),
            status=PaymentStatus(model.status),
            amount=Decimal(model.amount),
            currency=model.currency,
            target_tier=SubscriptionTier(model.target_tier),
            billing_period=BillingPeriod(model.billing_period),
            redirect_url=model.redirect_url,
            invoice_url=model.invoice_url,
            expires_at=as_utc(model.expires_at),
            raw_request=model.raw_request,
            raw_response=model.raw_response,
            raw_webhook=model.raw_webhook,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
