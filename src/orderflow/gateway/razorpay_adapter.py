"""Razorpay payment gateway adapter.

Talks to the Razorpay Orders and Refunds REST APIs with basic auth. Amounts
are sent in paise. Checkout callbacks carry ``razorpay_order_id``,
``razorpay_payment_id`` and ``razorpay_signature``; the signature is the
hex HMAC-SHA256 of ``"<order id>|<payment id>"`` keyed by the key secret.
"""

import os

import httpx
import structlog

from orderflow.gateway.port import CallbackVerification, PaymentGateway, ProviderOrder, RefundResult, refund_reference
from orderflow.gateway.signing import hmac_sha256_hex, signatures_match
from orderflow.utils.http import build_client, error_message, provider_timeout

logger = structlog.get_logger(__name__)

RAZORPAY_BASE_URL = "https://api.razorpay.com"


def _to_paise(amount: float) -> int:
    return int(round(amount * 100))


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders API adapter."""

    name = "razorpay"

    def __init__(self, key_id: str, key_secret: str, timeout: float | None = None) -> None:
        if not key_id or not key_secret:
            raise ValueError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required")
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout if timeout is not None else provider_timeout()

    @classmethod
    def from_env(cls) -> "RazorpayGateway":
        return cls(
            key_id=os.environ.get("RAZORPAY_KEY_ID", ""),
            key_secret=os.environ.get("RAZORPAY_KEY_SECRET", ""),
        )

    def _client(self) -> httpx.Client:
        return build_client(RAZORPAY_BASE_URL, timeout=self.timeout, auth=(self.key_id, self.key_secret))

    def _post(self, path: str, body: dict) -> tuple[dict | None, str | None]:
        """POST to Razorpay, returning (response body, error message)."""
        try:
            with self._client() as client:
                response = client.post(path, json=body)
        except httpx.TimeoutException:
            logger.warning("Razorpay request timed out", path=path, timeout=self.timeout)
            return None, f"Razorpay did not respond within {self.timeout} seconds"
        except httpx.HTTPError as exc:
            logger.warning("Razorpay request failed", path=path, error=str(exc))
            return None, f"Razorpay request failed: {exc}"

        if not response.is_success:
            message = error_message(response)
            logger.warning("Razorpay rejected request", path=path, status_code=response.status_code, error=message)
            return None, message
        return response.json(), None

    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        customer: dict | None = None,
    ) -> ProviderOrder:
        data, error = self._post(
            "/v1/orders",
            {"amount": _to_paise(amount), "currency": currency, "receipt": receipt},
        )
        if error:
            return ProviderOrder(success=False, failure_reason=error)

        return ProviderOrder(
            success=True,
            provider_order_id=data["id"],
            checkout={
                "provider": self.name,
                "key_id": self.key_id,
                "order_id": data["id"],
                "amount": data.get("amount", _to_paise(amount)),
                "currency": data.get("currency", currency),
            },
        )

    def verify_callback(self, payload: dict) -> CallbackVerification:
        order_id = payload.get("razorpay_order_id")
        payment_id = payload.get("razorpay_payment_id")
        if not order_id or not payment_id:
            return CallbackVerification(signature_valid=False, failure_reason="Callback is missing payment identifiers")

        expected = hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}")
        if not signatures_match(expected, payload.get("razorpay_signature")):
            return CallbackVerification(signature_valid=False, failure_reason="Signature mismatch")

        # Razorpay only signs successful checkouts; the amount is never part of the payload.
        return CallbackVerification(
            signature_valid=True,
            provider_order_id=order_id,
            provider_payment_id=payment_id,
        )

    def refund(
        self,
        provider_order_id: str,
        provider_payment_id: str | None,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        if not provider_payment_id:
            return RefundResult(success=False, failure_reason="Razorpay refunds need the payment id")

        body = {"amount": _to_paise(amount), "receipt": refund_reference(provider_order_id)}
        if reason:
            body["notes"] = {"reason": reason}
        data, error = self._post(f"/v1/payments/{provider_payment_id}/refund", body)
        if error:
            return RefundResult(success=False, failure_reason=error)
        return RefundResult(success=True, refund_id=data["id"])
