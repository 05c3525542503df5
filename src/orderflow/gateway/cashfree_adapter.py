"""Cashfree payment gateway adapter.

Uses the Cashfree PG Orders API. Creating an order yields a
``payment_session_id`` that the browser checkout consumes. Payment
notifications are verified by recomputing the base64 HMAC-SHA256 of
``timestamp + raw body`` with the client secret.
"""

import json
import os

import httpx
import structlog

from orderflow.gateway.port import CallbackVerification, PaymentGateway, ProviderOrder, RefundResult, refund_reference
from orderflow.gateway.signing import hmac_sha256_base64, signatures_match
from orderflow.utils.http import build_client, error_message, provider_timeout

logger = structlog.get_logger(__name__)

CASHFREE_BASE_URLS = {
    "sandbox": "https://sandbox.cashfree.com/pg",
    "production": "https://api.cashfree.com/pg",
}
CASHFREE_API_VERSION = "2023-08-01"

_OUTCOMES = {
    "SUCCESS": "captured",
    "FAILED": "failed",
    "USER_DROPPED": "cancelled",
    "CANCELLED": "cancelled",
}


class CashfreeGateway(PaymentGateway):
    """Cashfree PG adapter."""

    name = "cashfree"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        environment: str = "sandbox",
        timeout: float | None = None,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("CASHFREE_CLIENT_ID and CASHFREE_CLIENT_SECRET are required")
        if environment not in CASHFREE_BASE_URLS:
            raise ValueError(f"Unknown Cashfree environment: {environment}")
        self.client_id = client_id
        self.client_secret = client_secret
        self.environment = environment
        self.timeout = timeout if timeout is not None else provider_timeout()

    @classmethod
    def from_env(cls) -> "CashfreeGateway":
        return cls(
            client_id=os.environ.get("CASHFREE_CLIENT_ID", ""),
            client_secret=os.environ.get("CASHFREE_CLIENT_SECRET", ""),
            environment=os.environ.get("CASHFREE_ENVIRONMENT", "sandbox"),
        )

    def _client(self) -> httpx.Client:
        return build_client(
            CASHFREE_BASE_URLS[self.environment],
            timeout=self.timeout,
            headers={
                "x-client-id": self.client_id,
                "x-client-secret": self.client_secret,
                "x-api-version": CASHFREE_API_VERSION,
            },
        )

    def _post(self, path: str, body: dict) -> tuple[dict | None, str | None]:
        try:
            with self._client() as client:
                response = client.post(path, json=body)
        except httpx.TimeoutException:
            logger.warning("Cashfree request timed out", path=path, timeout=self.timeout)
            return None, f"Cashfree did not respond within {self.timeout} seconds"
        except httpx.HTTPError as exc:
            logger.warning("Cashfree request failed", path=path, error=str(exc))
            return None, f"Cashfree request failed: {exc}"

        if not response.is_success:
            message = error_message(response)
            logger.warning("Cashfree rejected request", path=path, status_code=response.status_code, error=message)
            return None, message
        return response.json(), None

    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        customer: dict | None = None,
    ) -> ProviderOrder:
        customer = customer or {}
        data, error = self._post(
            "/orders",
            {
                "order_id": receipt,
                "order_amount": round(amount, 2),
                "order_currency": currency,
                "customer_details": {
                    "customer_id": str(customer.get("customer_id") or receipt),
                    "customer_name": customer.get("name"),
                    "customer_email": customer.get("email"),
                    "customer_phone": customer.get("phone"),
                },
            },
        )
        if error:
            return ProviderOrder(success=False, failure_reason=error)

        return ProviderOrder(
            success=True,
            provider_order_id=data["order_id"],
            checkout={
                "provider": self.name,
                "order_id": data["order_id"],
                "payment_session_id": data.get("payment_session_id"),
                "environment": self.environment,
            },
        )

    def verify_callback(self, payload: dict) -> CallbackVerification:
        raw_body = payload.get("raw_body") or ""
        timestamp = payload.get("timestamp") or ""
        expected = hmac_sha256_base64(self.client_secret, f"{timestamp}{raw_body}")
        if not raw_body or not signatures_match(expected, payload.get("signature")):
            return CallbackVerification(signature_valid=False, failure_reason="Signature mismatch")

        try:
            body = json.loads(raw_body)
        except ValueError:
            return CallbackVerification(signature_valid=False, failure_reason="Callback body is not valid JSON")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            return CallbackVerification(
                signature_valid=True, outcome="failed", failure_reason="Callback body carries no payment data"
            )
        order = data.get("order") if isinstance(data.get("order"), dict) else {}
        payment = data.get("payment") if isinstance(data.get("payment"), dict) else {}
        status = payment.get("payment_status", "FAILED")
        amount = order.get("order_amount")
        return CallbackVerification(
            signature_valid=True,
            provider_order_id=order.get("order_id"),
            provider_payment_id=str(payment["cf_payment_id"]) if payment.get("cf_payment_id") else None,
            amount=float(amount) if amount is not None else None,
            outcome=_OUTCOMES.get(status, "failed"),
            failure_reason=payment.get("payment_message") if status != "SUCCESS" else None,
        )

    def refund(
        self,
        provider_order_id: str,
        provider_payment_id: str | None,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        body = {
            "refund_amount": round(amount, 2),
            "refund_id": refund_reference(provider_order_id),
        }
        if reason:
            body["refund_note"] = reason[:100]
        data, error = self._post(f"/orders/{provider_order_id}/refunds", body)
        if error:
            return RefundResult(success=False, failure_reason=error)
        return RefundResult(success=True, refund_id=data.get("refund_id") or str(data.get("cf_refund_id")))
