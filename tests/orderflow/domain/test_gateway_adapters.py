"""Tests for payment gateway adapters: callback signatures, provider HTTP calls and the fake gateway."""

import json

import httpx
import pytest
from orderflow.gateway import cashfree_adapter, get_gateway, razorpay_adapter, reset_gateways, set_gateway
from orderflow.gateway.cashfree_adapter import CASHFREE_API_VERSION, CashfreeGateway
from orderflow.gateway.fake_adapter import FakeGateway
from orderflow.gateway.port import CallbackVerification, ProviderOrder, RefundResult
from orderflow.gateway.razorpay_adapter import RazorpayGateway
from orderflow.gateway.signing import hmac_sha256_base64, hmac_sha256_hex, signatures_match


class TestSigning:
    def test_hex_signature_is_deterministic(self):
        assert hmac_sha256_hex("secret", "a|b") == hmac_sha256_hex("secret", "a|b")
        assert hmac_sha256_hex("secret", "a|b") != hmac_sha256_hex("other", "a|b")

    def test_base64_signature(self):
        assert hmac_sha256_base64("secret", "body").endswith("=")

    def test_missing_signature_never_matches(self):
        assert signatures_match("abc", None) is False
        assert signatures_match("abc", "") is False


class TestFakeGateway:
    def test_create_order(self):
        gateway = FakeGateway()
        result = gateway.create_order(amount=450.0, currency="INR", receipt="TXN-1")
        assert isinstance(result, ProviderOrder)
        assert result.success is True
        assert result.provider_order_id.startswith("razorpay_order_")
        assert result.checkout["amount"] == 450.0
        assert gateway.calls[0]["receipt"] == "TXN-1"

    def test_configured_failure(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Provider down")
        result = gateway.create_order(amount=450.0, currency="INR", receipt="TXN-1")
        assert result.success is False
        assert result.failure_reason == "Provider down"

    def test_signed_callback_verifies(self):
        gateway = FakeGateway()
        payload = gateway.callback_payload("razorpay_order_1", amount=450.0)
        verification = gateway.verify_callback(payload)
        assert isinstance(verification, CallbackVerification)
        assert verification.signature_valid is True
        assert verification.provider_order_id == "razorpay_order_1"
        assert verification.amount == 450.0
        assert verification.outcome == "captured"

    def test_tampered_callback_is_rejected(self):
        gateway = FakeGateway()
        payload = gateway.callback_payload("razorpay_order_1")
        payload["provider_order_id"] = "razorpay_order_2"
        assert gateway.verify_callback(payload).signature_valid is False

    def test_callback_signed_with_another_secret_is_rejected(self):
        payload = FakeGateway(secret="attacker").callback_payload("razorpay_order_1")
        assert FakeGateway().verify_callback(payload).signature_valid is False

    def test_refund(self):
        result = FakeGateway(name="cashfree").refund("cashfree_order_1", "cashfree_pay_1", 100.0)
        assert isinstance(result, RefundResult)
        assert result.success is True
        assert result.refund_id.startswith("cashfree_rfnd_")


class TestRazorpayCallbackVerification:
    def _gateway(self):
        return RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_secret")

    def test_valid_signature(self):
        signature = hmac_sha256_hex("rzp_secret", "order_1|pay_1")
        verification = self._gateway().verify_callback(
            {"razorpay_order_id": "order_1", "razorpay_payment_id": "pay_1", "razorpay_signature": signature}
        )
        assert verification.signature_valid is True
        assert verification.provider_payment_id == "pay_1"
        assert verification.outcome == "captured"

    def test_invalid_signature(self):
        verification = self._gateway().verify_callback(
            {"razorpay_order_id": "order_1", "razorpay_payment_id": "pay_1", "razorpay_signature": "forged"}
        )
        assert verification.signature_valid is False

    def test_missing_credentials(self):
        with pytest.raises(ValueError):
            RazorpayGateway(key_id="", key_secret="")


class TestCashfreeCallbackVerification:
    def _payload(self, status="SUCCESS", secret="cf_secret"):
        raw_body = json.dumps(
            {
                "data": {
                    "order": {"order_id": "TXN-1", "order_amount": 450.0},
                    "payment": {"cf_payment_id": 987654, "payment_status": status, "payment_message": "Declined"},
                }
            }
        )
        timestamp = "1700000000"
        return {
            "raw_body": raw_body,
            "timestamp": timestamp,
            "signature": hmac_sha256_base64(secret, f"{timestamp}{raw_body}"),
        }

    def _gateway(self):
        return CashfreeGateway(client_id="cf_id", client_secret="cf_secret")

    def test_successful_payment(self):
        verification = self._gateway().verify_callback(self._payload())
        assert verification.signature_valid is True
        assert verification.provider_order_id == "TXN-1"
        assert verification.provider_payment_id == "987654"
        assert verification.amount == 450.0
        assert verification.outcome == "captured"

    def test_dropped_payment_is_cancelled(self):
        assert self._gateway().verify_callback(self._payload("USER_DROPPED")).outcome == "cancelled"

    def test_failed_payment(self):
        verification = self._gateway().verify_callback(self._payload("FAILED"))
        assert verification.outcome == "failed"
        assert verification.failure_reason == "Declined"

    def test_forged_signature(self):
        assert self._gateway().verify_callback(self._payload(secret="forged")).signature_valid is False

    @pytest.mark.parametrize(
        "raw_body",
        ["[]", '"paid"', '{"data": null}', '{"data": {"order": null, "payment": null}}'],
    )
    def test_signed_body_without_payment_data_fails(self, raw_body):
        timestamp = "1700000000"
        payload = {
            "raw_body": raw_body,
            "timestamp": timestamp,
            "signature": hmac_sha256_base64("cf_secret", f"{timestamp}{raw_body}"),
        }

        verification = self._gateway().verify_callback(payload)

        assert verification.signature_valid is True
        assert verification.outcome == "failed"
        assert verification.provider_order_id is None

    def test_unknown_environment(self):
        with pytest.raises(ValueError):
            CashfreeGateway(client_id="cf_id", client_secret="cf_secret", environment="staging")


def _use_transport(monkeypatch, module, handler):
    """Route a gateway adapter's HTTP calls to ``handler``."""

    def _client(base_url, timeout=None, **kwargs):
        return httpx.Client(base_url=base_url, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(module, "build_client", _client)


def _timeout(request):
    raise httpx.ReadTimeout("timed out", request=request)


class TestRazorpayHttp:
    def _gateway(self):
        return RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_secret", timeout=5.0)

    def test_create_order_sends_paise(self, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "order_ABC", "amount": 45050, "currency": "INR"})

        _use_transport(monkeypatch, razorpay_adapter, handler)
        result = self._gateway().create_order(amount=450.5, currency="INR", receipt="TXN-1")

        assert result.success is True
        assert result.provider_order_id == "order_ABC"
        assert result.checkout["key_id"] == "rzp_test_key"
        assert "rzp_secret" not in json.dumps(result.checkout)
        assert requests[0].url.path == "/v1/orders"
        assert json.loads(requests[0].content) == {"amount": 45050, "currency": "INR", "receipt": "TXN-1"}
        assert requests[0].headers["authorization"].startswith("Basic ")

    def test_create_order_rejected(self, monkeypatch):
        def handler(request):
            return httpx.Response(400, json={"error": {"description": "Amount exceeds maximum"}})

        _use_transport(monkeypatch, razorpay_adapter, handler)
        result = self._gateway().create_order(amount=450.0, currency="INR", receipt="TXN-1")

        assert result.success is False
        assert result.failure_reason == "Amount exceeds maximum"

    def test_create_order_timeout(self, monkeypatch):
        _use_transport(monkeypatch, razorpay_adapter, _timeout)
        result = self._gateway().create_order(amount=450.0, currency="INR", receipt="TXN-1")

        assert result.success is False
        assert "did not respond within 5.0 seconds" in result.failure_reason

    def test_retried_refund_carries_the_same_receipt(self, monkeypatch):
        bodies = []

        def handler(request):
            assert request.url.path == "/v1/payments/pay_XYZ/refund"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "rfnd_1"})

        _use_transport(monkeypatch, razorpay_adapter, handler)
        gateway = self._gateway()
        first = gateway.refund("order_ABC", "pay_XYZ", 200.0, reason="Damaged")
        second = gateway.refund("order_ABC", "pay_XYZ", 200.0, reason="Damaged")

        assert first == RefundResult(success=True, refund_id="rfnd_1")
        assert second.success is True
        assert bodies[0] == {"amount": 20000, "receipt": "refund_order_ABC", "notes": {"reason": "Damaged"}}
        assert bodies[0]["receipt"] == bodies[1]["receipt"]

    def test_refund_needs_payment_id(self):
        result = self._gateway().refund("order_ABC", None, 200.0)
        assert result.success is False

    def test_refund_timeout(self, monkeypatch):
        _use_transport(monkeypatch, razorpay_adapter, _timeout)
        result = self._gateway().refund("order_ABC", "pay_XYZ", 200.0)

        assert result.success is False
        assert "did not respond" in result.failure_reason


class TestCashfreeHttp:
    def _gateway(self):
        return CashfreeGateway(client_id="cf_id", client_secret="cf_secret", timeout=5.0)

    def test_create_order_returns_payment_session(self, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"order_id": "TXN-1", "payment_session_id": "session_abc"})

        _use_transport(monkeypatch, cashfree_adapter, handler)
        result = self._gateway().create_order(
            amount=450.0,
            currency="INR",
            receipt="TXN-1",
            customer={"customer_id": "cust-001", "name": "Asha Rao", "phone": "9876543210"},
        )

        assert result.success is True
        assert result.provider_order_id == "TXN-1"
        assert result.checkout["payment_session_id"] == "session_abc"
        assert "cf_secret" not in json.dumps(result.checkout)
        request = requests[0]
        assert request.url.path == "/pg/orders"
        assert request.headers["x-client-id"] == "cf_id"
        assert request.headers["x-api-version"] == CASHFREE_API_VERSION
        body = json.loads(request.content)
        assert body["order_amount"] == 450.0
        assert body["customer_details"]["customer_id"] == "cust-001"

    def test_create_order_timeout(self, monkeypatch):
        _use_transport(monkeypatch, cashfree_adapter, _timeout)
        result = self._gateway().create_order(amount=450.0, currency="INR", receipt="TXN-1")

        assert result.success is False
        assert result.failure_reason == "Cashfree did not respond within 5.0 seconds"

    def test_refund_id_is_derived_from_the_order(self, monkeypatch):
        bodies = []

        def handler(request):
            assert request.url.path == "/pg/orders/TXN-1/refunds"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"refund_id": "refund_TXN-1", "cf_refund_id": 77})

        _use_transport(monkeypatch, cashfree_adapter, handler)
        gateway = self._gateway()
        result = gateway.refund("TXN-1", "987654", 200.0, reason="Damaged")
        gateway.refund("TXN-1", "987654", 200.0, reason="Damaged")

        assert result == RefundResult(success=True, refund_id="refund_TXN-1")
        assert bodies[0] == {"refund_amount": 200.0, "refund_id": "refund_TXN-1", "refund_note": "Damaged"}
        assert bodies[1]["refund_id"] == bodies[0]["refund_id"]

    def test_refund_rejected(self, monkeypatch):
        def handler(request):
            return httpx.Response(400, json={"message": "Refund amount is more than the eligible amount"})

        _use_transport(monkeypatch, cashfree_adapter, handler)
        result = self._gateway().refund("TXN-1", "987654", 900.0)

        assert result.success is False
        assert result.failure_reason == "Refund amount is more than the eligible amount"


class TestGatewayFactory:
    def setup_method(self):
        reset_gateways()

    def test_fake_mode_builds_fake_gateway_per_provider(self):
        gateway = get_gateway("cashfree")
        assert isinstance(gateway, FakeGateway)
        assert gateway.name == "cashfree"
        assert get_gateway("cashfree") is gateway

    def test_override(self):
        custom = FakeGateway(name="razorpay", secret="custom")
        set_gateway("razorpay", custom)
        assert get_gateway("razorpay") is custom

    def test_live_mode_unknown_provider(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY_MODE", "live")
        with pytest.raises(ValueError):
            get_gateway("paypal")
