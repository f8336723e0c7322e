"""
Xendit Payment Gateway

Regional payment methods (invoice, VA, e-wallet, QRIS) through the Xendit
Invoice API. Xendit needs the caller to choose the external reference up
front, so the gateway reference is generated here.

API Docs: https://developers.xendit.co/api-reference/#create-invoice
"""

import hmac
import json
import logging
import secrets
import string
import time
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import httpx

from walletwise.config.settings import Settings, get_settings
from walletwise.domain.subscription import (
    BillingPeriod,
    PaymentGateway,
    PaymentStatus,
    SubscriptionTier,
    get_price,
)
from walletwise.infrastructure.exceptions import (
    ConfigurationError,
    GatewayError,
    SignatureInvalidError,
    TokenInvalidError,
)
from walletwise.infrastructure.payments.base import (
    CheckoutResult,
    PaymentGatewayAdapter,
    WebhookEvent,
)


logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "wlw"
_REF_ALPHABET = string.ascii_lowercase + string.digits

# Invoice callback status -> (is_paid, closed status)
INVOICE_STATUSES = {
    "PAID": (True, None),
    "SETTLED": (True, None),
    "EXPIRED": (False, PaymentStatus.EXPIRED),
}


def build_gateway_ref(user_id: str, idempotency_key: Optional[str] = None) -> str:
    """
    External reference for a Xendit invoice.

    With a caller idempotency key the reference is deterministic, so a retried
    create maps onto the same ledger row; otherwise it is
    `wlw_<userId>_<timestampMs>_<random>`.
    """
    if idempotency_key:
        return f"{REFERENCE_PREFIX}_{user_id}_{idempotency_key}"
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(7))
    return f"{REFERENCE_PREFIX}_{user_id}_{int(time.time() * 1000)}_{suffix}"


class XenditGateway(PaymentGatewayAdapter):
    """
    Xendit Invoice adapter (regional gateway).

    Amounts are charged in IDR, converted from the USD list price.
    """

    gateway = PaymentGateway.XENDIT
    currency = "IDR"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self._secret_key = settings.xendit_secret_key
        self._webhook_token = settings.xendit_webhook_token
        self._base_url = settings.xendit_api_base_url.rstrip("/")
        self._invoice_duration = settings.xendit_invoice_duration_seconds
        self._usd_to_idr = settings.usd_to_idr_rate
        self._frontend_url = settings.frontend_url.rstrip("/")
        self._timeout = settings.gateway_timeout_seconds
        self._transport = transport

        if not self._webhook_token:
            logger.warning("XENDIT_WEBHOOK_TOKEN not configured: callback token check is skipped")

    def convert_amount(self, usd_amount: Decimal) -> Decimal:
        """USD list price to whole rupiah."""
        return (usd_amount * self._usd_to_idr).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    def known_reference(self, user_id: str, idempotency_key: Optional[str]) -> Optional[str]:
        """The external id is deterministic once the caller supplies a key."""
        if not idempotency_key:
            return None
        return build_gateway_ref(user_id, idempotency_key)

    # =========================================================================
    # Invoice Creation
    # =========================================================================

    async def create_checkout(
        self,
        user_id: str,
        target_tier: SubscriptionTier,
        billing_period: BillingPeriod,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a Xendit invoice for the requested tier.

        Returns:
            CheckoutResult with the locally generated external id as gateway_ref
        """
        self._reject_trial(target_tier)

        if not self._secret_key:
            raise ConfigurationError(
                "XENDIT_SECRET_KEY is not configured",
                missing_keys=["XENDIT_SECRET_KEY"],
            )

        try:
            usd_amount = get_price(target_tier, billing_period)
        except KeyError as e:
            raise ConfigurationError(
                f"No price configured for {target_tier.value}_{billing_period.value}",
                original_error=e,
            )

        gateway_ref = build_gateway_ref(user_id, idempotency_key)
        body: dict[str, Any] = {
            "external_id": gateway_ref,
            "amount": int(self.convert_amount(usd_amount)),
            "currency": self.currency,
            "description": f"WalletWise {target_tier.value} - {billing_period.value}",
            "invoice_duration": self._invoice_duration,
            "reminder_time": 1,
        }
        if self._frontend_url:
            body["success_redirect_url"] = (
                f"{self._frontend_url}/transactions?xenditPayment=success&tier={target_tier.value}"
            )

        invoice = await self._post("/v2/invoices", body)

        invoice_url = invoice.get("invoice_url")
        if not invoice_url:
            raise GatewayError(
                "Xendit returned an invoice without invoice_url",
                gateway=self.gateway.value,
            )

        expires_at = None
        if invoice.get("expiry_date"):
            expires_at = datetime.fromisoformat(invoice["expiry_date"].replace("Z", "+00:00"))

        logger.info(
            f"Created Xendit invoice {invoice.get('id')} ({gateway_ref}) for user {user_id}, "
            f"tier={target_tier.value}, period={billing_period.value}"
        )

        return CheckoutResult(
            payment_id=invoice.get("id") or gateway_ref,
            gateway_ref=invoice.get("external_id") or gateway_ref,
            status=PaymentStatus.PENDING,
            invoice_url=invoice_url,
            expires_at=expires_at,
            raw_request={
                "userId": user_id,
                "targetTier": target_tier.value,
                "billingPeriod": billing_period.value,
                "amount": body["amount"],
            },
            raw_response={"invoiceId": invoice.get("id"), "invoiceUrl": invoice_url, "externalId": gateway_ref},
        )

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST to the Xendit API with basic auth (secret key as username)."""
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                auth=(self._secret_key, ""),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=body)
        except httpx.TimeoutException as e:
            logger.error(f"Xendit request to {path} timed out after {self._timeout}s")
            raise GatewayError(
                "Xendit request timed out", gateway=self.gateway.value, original_error=e
            )
        except httpx.HTTPError as e:
            logger.error(f"Xendit request to {path} failed: {e}")
            raise GatewayError(
                f"Xendit request failed: {e}", gateway=self.gateway.value, original_error=e
            )

        if response.status_code >= 400:
            logger.error(f"Xendit {path} returned {response.status_code}: {response.text[:500]}")
            raise GatewayError(
                f"Xendit rejected the request ({response.status_code})",
                gateway=self.gateway.value,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(
                "Xendit returned a non-JSON response",
                gateway=self.gateway.value,
                original_error=e,
            )
        if not isinstance(data, dict):
            raise GatewayError("Xendit returned an unexpected response shape", gateway=self.gateway.value)
        return data

    # =========================================================================
    # Callback Verification
    # =========================================================================

    def verify_and_parse_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
    ) -> WebhookEvent:
        """
        Verify the x-callback-token header and parse an invoice callback.

        Without a configured token the check is skipped (local development).
        """
        if self._webhook_token:
            if not signature or not hmac.compare_digest(signature, self._webhook_token):
                raise TokenInvalidError("Invalid callback token", gateway=self.gateway.value)

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as e:
            raise SignatureInvalidError(
                f"Invalid payload: {e}", gateway=self.gateway.value, original_error=e
            )
        if not isinstance(payload, dict):
            raise SignatureInvalidError("Invalid payload: expected an object", gateway=self.gateway.value)

        status = str(payload.get("status", "")).upper()
        is_paid, closed_status = INVOICE_STATUSES.get(status, (False, None))

        return WebhookEvent(
            gateway=self.gateway,
            event_kind=f"invoice.{status.lower()}" if status else "invoice.unknown",
            gateway_ref=payload.get("external_id"),
            is_paid=is_paid,
            closed_status=closed_status,
            payload=payload,
        )
