"""
Payment Service
MercadoPago checkout preferences, payment lookups and notification signature checks
"""
import hashlib
import hmac
import time
from typing import Any, Dict, Optional

import httpx

from app.core.config import Settings
from app.core.exceptions import PaymentInitiationError, PaymentProviderError
from app.core.logging_config import EnhancedLoggerMixin
from app.models.dto import PaymentCheckoutRequestDTO, PaymentCheckoutResultDTO

PREFERENCES_ENDPOINT = "/checkout/preferences"
PAYMENTS_ENDPOINT = "/v1/payments/{payment_id}"
STATEMENT_DESCRIPTOR_MAX_LENGTH = 22


def parse_signature_header(x_signature: str) -> Dict[str, str]:
    """Split ``ts=...,v1=...`` into its parts"""
    parts = {}
    for part in (x_signature or "").split(","):
        key, sep, value = part.partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def sign_notification(secret: str, data_id: str, request_id: str, ts: str) -> str:
    """HMAC-SHA256 hex digest of the provider's notification manifest"""
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


class PaymentService(EnhancedLoggerMixin):
    """Talks to the MercadoPago REST API with one shared async client"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.MERCADOPAGO_API_URL,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.settings.MERCADOPAGO_TIMEOUT_SECONDS),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_preference(self, request: PaymentCheckoutRequestDTO) -> Dict[str, Any]:
        """Preference payload for the provider's checkout API"""
        payer: Dict[str, Any] = {"name": request.payer_name}
        if request.payer_email:
            payer["email"] = request.payer_email
        if request.payer_phone:
            payer["phone"] = {"number": request.payer_phone}

        preference = {
            "items": [
                {
                    "title": line.title,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "currency_id": self.settings.CURRENCY_ID,
                }
                for line in request.items
            ],
            "payer": payer,
            "external_reference": request.order_id,
            "back_urls": {
                "success": request.success_url,
                "failure": request.failure_url,
                "pending": request.pending_url,
            },
            "auto_return": "approved",
            "notification_url": f"{self.settings.PAYMENT_WEBHOOK_URL}?orderId={request.order_id}",
        }
        if request.tenant_name:
            preference["statement_descriptor"] = request.tenant_name[:STATEMENT_DESCRIPTOR_MAX_LENGTH]
        return preference

    async def create_checkout(self, request: PaymentCheckoutRequestDTO) -> PaymentCheckoutResultDTO:
        """
        Ask the provider for a checkout link.

        A tenant without provider credentials gets a demo result with no link.
        Transport failures and non-2xx answers raise PaymentInitiationError.
        """
        if not request.access_token:
            self.log_operation("create_checkout_demo", tenant_id=request.tenant_id, order_id=request.order_id)
            return PaymentCheckoutResultDTO(demo=True)

        try:
            response = await self.client.post(
                PREFERENCES_ENDPOINT,
                json=self.build_preference(request),
                headers={"Authorization": f"Bearer {request.access_token}"},
            )
        except httpx.HTTPError as e:
            raise PaymentInitiationError(f"Payment provider unreachable: {e}") from e

        if response.status_code == 401:
            raise PaymentInitiationError("Payment provider rejected the tenant credentials", 401)
        if response.status_code >= 400:
            raise PaymentInitiationError(
                f"Payment provider returned HTTP {response.status_code}", response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise PaymentInitiationError("Payment provider returned an unreadable response") from e

        if not body.get("id") or not body.get("init_point"):
            raise PaymentInitiationError("Payment provider response has no checkout link")

        self.log_operation("create_checkout", tenant_id=request.tenant_id,
                           order_id=request.order_id, preference_id=body["id"])
        return PaymentCheckoutResultDTO(
            preference_id=str(body["id"]),
            checkout_url=body["init_point"],
            sandbox_url=body.get("sandbox_init_point"),
        )

    async def fetch_payment(self, access_token: str, payment_id: str) -> Dict[str, Any]:
        """Current state of a provider payment"""
        try:
            response = await self.client.get(
                PAYMENTS_ENDPOINT.format(payment_id=payment_id),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise PaymentProviderError(
                f"Could not fetch payment {payment_id}: HTTP {response.status_code}", response.status_code
            )
        return response.json()

    def verify_webhook_signature(
        self,
        x_signature: Optional[str],
        x_request_id: Optional[str],
        data_id: Optional[str],
        secret: str,
        now: Optional[float] = None,
    ) -> bool:
        """Check a notification's ``x-signature`` against the shared secret"""
        if not x_signature or not x_request_id:
            self.logger.warning("Payment notification without signature headers")
            return False

        parts = parse_signature_header(x_signature)
        ts, received = parts.get("ts"), parts.get("v1")
        if not ts or not received:
            self.logger.warning("Payment notification with malformed signature header")
            return False

        try:
            signed_at = int(ts)
        except ValueError:
            return False

        now = time.time() if now is None else now
        if abs(now - signed_at) > self.settings.MERCADOPAGO_SIGNATURE_TOLERANCE_SECONDS:
            self.logger.warning("Payment notification signature expired")
            return False

        expected = sign_notification(secret, data_id or "", x_request_id, ts)
        return hmac.compare_digest(expected, received)
