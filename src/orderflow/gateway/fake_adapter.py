"""Configurable fake payment gateway for development and testing.

Simulates a provider without any external calls. Callbacks are signed the
way Razorpay signs them, an HMAC-SHA256 of ``"<order id>|<payment id>"``
keyed by the gateway secret, so the verification path is exercised for
real. ``sign_callback`` builds a valid payload for tests and manual checks.
"""

from uuid import uuid4

from orderflow.gateway.port import CallbackVerification, PaymentGateway, ProviderOrder, RefundResult
from orderflow.gateway.signing import hmac_sha256_hex, signatures_match

FAKE_SECRET = "fake-gateway-secret"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, name: str = "razorpay", secret: str = FAKE_SECRET) -> None:
        self.name = name
        self.secret = secret
        self.should_succeed: bool = True
        self.failure_reason: str = "Provider unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Provider unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        customer: dict | None = None,
    ) -> ProviderOrder:
        self.calls.append(
            {
                "method": "create_order",
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "customer": customer,
            }
        )

        if not self.should_succeed:
            return ProviderOrder(success=False, failure_reason=self.failure_reason)

        provider_order_id = f"{self.name}_order_{uuid4().hex[:12]}"
        return ProviderOrder(
            success=True,
            provider_order_id=provider_order_id,
            checkout={
                "provider": self.name,
                "order_id": provider_order_id,
                "amount": amount,
                "currency": currency,
            },
        )

    def sign_callback(self, provider_order_id: str, provider_payment_id: str) -> str:
        return hmac_sha256_hex(self.secret, f"{provider_order_id}|{provider_payment_id}")

    def callback_payload(self, provider_order_id: str, amount: float | None = None, status: str = "captured") -> dict:
        """Build a correctly signed callback payload."""
        provider_payment_id = f"{self.name}_pay_{uuid4().hex[:12]}"
        payload = {
            "provider_order_id": provider_order_id,
            "provider_payment_id": provider_payment_id,
            "signature": self.sign_callback(provider_order_id, provider_payment_id),
            "status": status,
        }
        if amount is not None:
            payload["amount"] = amount
        return payload

    def verify_callback(self, payload: dict) -> CallbackVerification:
        self.calls.append({"method": "verify_callback", "payload": payload})

        provider_order_id = payload.get("provider_order_id")
        provider_payment_id = payload.get("provider_payment_id")
        if not provider_order_id or not provider_payment_id:
            return CallbackVerification(signature_valid=False, failure_reason="Callback is missing payment identifiers")

        expected = self.sign_callback(provider_order_id, provider_payment_id)
        if not signatures_match(expected, payload.get("signature")):
            return CallbackVerification(signature_valid=False, failure_reason="Signature mismatch")

        amount = payload.get("amount")
        status = payload.get("status", "captured")
        return CallbackVerification(
            signature_valid=True,
            provider_order_id=provider_order_id,
            provider_payment_id=provider_payment_id,
            amount=float(amount) if amount is not None else None,
            outcome=status,
            failure_reason=payload.get("failure_reason") if status != "captured" else None,
        )

    def refund(
        self,
        provider_order_id: str,
        provider_payment_id: str | None,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "provider_order_id": provider_order_id,
                "provider_payment_id": provider_payment_id,
                "amount": amount,
                "reason": reason,
            }
        )

        if self.should_succeed:
            return RefundResult(success=True, refund_id=f"{self.name}_rfnd_{uuid4().hex[:12]}")
        return RefundResult(success=False, failure_reason=self.failure_reason)
