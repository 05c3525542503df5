"""Payment gateway factory.

Gateways are strategies selected by provider name. ``PAYMENT_GATEWAY_MODE``
decides what backs each name:
- ``fake`` (default): FakeGateway, for development and testing
- ``live``: RazorpayGateway / CashfreeGateway configured from the environment
"""

import os

from orderflow.gateway.fake_adapter import FakeGateway
from orderflow.gateway.port import PaymentGateway

_gateways: dict[str, PaymentGateway] = {}


def _build_gateway(provider: str) -> PaymentGateway:
    mode = os.environ.get("PAYMENT_GATEWAY_MODE", "fake")
    if mode == "fake":
        return FakeGateway(name=provider)
    if mode != "live":
        raise ValueError(f"Unknown payment gateway mode: {mode}")

    if provider == "razorpay":
        from orderflow.gateway.razorpay_adapter import RazorpayGateway

        return RazorpayGateway.from_env()
    if provider == "cashfree":
        from orderflow.gateway.cashfree_adapter import CashfreeGateway

        return CashfreeGateway.from_env()
    raise ValueError(f"Unknown payment provider: {provider}")


def get_gateway(provider: str) -> PaymentGateway:
    """Return the gateway for ``provider``, creating it on first use."""
    if provider not in _gateways:
        _gateways[provider] = _build_gateway(provider)
    return _gateways[provider]


def set_gateway(provider: str, gateway: PaymentGateway) -> None:
    """Override the gateway used for ``provider`` (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    """Drop all gateways so they are rebuilt from the environment."""
    _gateways.clear()
