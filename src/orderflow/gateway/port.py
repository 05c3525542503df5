"""Payment gateway port (abstract interface).

Defines the contract that every payment provider adapter implements, so the
reconciliation service can pick a provider by name without knowing how the
provider talks over the wire.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderOrder:
    """Result of creating an order with the payment provider."""

    success: bool
    provider_order_id: str | None = None
    checkout: dict = field(default_factory=dict)  # safe to hand to the browser
    failure_reason: str | None = None


@dataclass(frozen=True)
class CallbackVerification:
    """Result of checking a checkout callback payload."""

    signature_valid: bool
    provider_order_id: str | None = None
    provider_payment_id: str | None = None
    amount: float | None = None
    outcome: str = "captured"  # captured | failed | cancelled
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str

    @abstractmethod
    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        customer: dict | None = None,
    ) -> ProviderOrder:
        """Create a provider-side order that checkout will pay."""
        ...

    @abstractmethod
    def verify_callback(self, payload: dict) -> CallbackVerification:
        """Verify the signature of a checkout callback and extract its data."""
        ...

    @abstractmethod
    def refund(
        self,
        provider_order_id: str,
        provider_payment_id: str | None,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund a captured payment."""
        ...


def refund_reference(provider_order_id: str) -> str:
    """Idempotency key for the single refund a payment can receive.

    A retried refund request carries the same key, so the provider does not
    refund the payment twice.
    """
    return f"refund_{provider_order_id}"[:40]
