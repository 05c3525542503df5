"""PaymentTransaction aggregate (CQRS) — one online payment attempt.

The transaction id is generated before the provider is called and doubles as
the idempotency key of the attempt: the provider receives it as the receipt
and callbacks are matched back to it.

State Machine:
    PENDING → {SUCCESS, FAILED, CANCELLED}
    SUCCESS → REFUNDED
    FAILED, CANCELLED, REFUNDED: terminal
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from orderflow.domain import orderflow
from orderflow.exceptions import IllegalStateError
from orderflow.payment.config import PaymentProvider
from orderflow.payment.events import (
    PaymentCancelled,
    PaymentCaptured,
    PaymentIntentCreated,
    PaymentRefunded,
    PaymentRejected,
    RefundAllocatedToItem,
)


class TransactionStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    TransactionStatus.PENDING: {
        TransactionStatus.SUCCESS,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
    },
    TransactionStatus.SUCCESS: {TransactionStatus.REFUNDED},
    TransactionStatus.FAILED: set(),  # terminal
    TransactionStatus.CANCELLED: set(),  # terminal
    TransactionStatus.REFUNDED: set(),  # terminal
}


def new_transaction_id() -> str:
    return f"TXN-{uuid4().hex[:16].upper()}"


@orderflow.entity(part_of="PaymentTransaction")
class RefundAllocation:
    """The share of a refund matched to an order item."""

    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    amount = Float(required=True, min_value=0.0)
    allocated_at = DateTime(required=True)


@orderflow.aggregate
class PaymentTransaction:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20, choices=PaymentProvider)
    provider_order_id = String(max_length=255)
    provider_payment_id = String(max_length=255)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    status = String(
        max_length=20,
        choices=TransactionStatus,
        default=TransactionStatus.PENDING.value,
    )
    failure_reason = String(max_length=500)
    signature_rejected = Boolean(default=False)
    duplicate_capture = Boolean(default=False)  # captured after another attempt already paid the order
    refund_id = String(max_length=255)
    refunded_amount = Float(default=0.0)
    refunded_items = HasMany(RefundAllocation)
    created_at = DateTime()
    verified_at = DateTime()
    refunded_at = DateTime()

    @classmethod
    def open(
        cls,
        transaction_id: str,
        order_id: str,
        provider: str,
        provider_order_id: str,
        amount: float,
        currency: str,
    ):
        """Start a pending transaction for a provider order."""
        if provider == PaymentProvider.COD.value:
            raise ValidationError({"provider": ["Cash-on-delivery orders do not create payment transactions"]})

        now = datetime.now(UTC)
        txn = cls(
            id=transaction_id,
            order_id=order_id,
            provider=provider,
            provider_order_id=provider_order_id,
            amount=amount,
            currency=currency,
            status=TransactionStatus.PENDING.value,
            created_at=now,
        )
        txn.raise_(
            PaymentIntentCreated(
                transaction_id=transaction_id,
                order_id=order_id,
                provider=provider,
                provider_order_id=provider_order_id,
                amount=amount,
                currency=currency,
                created_at=now,
            )
        )
        return txn

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: TransactionStatus) -> None:
        current = TransactionStatus(self.status)
        if target_status not in _VALID_TRANSITIONS[current]:
            raise IllegalStateError(
                f"Transaction {self.id} is {current.value} and cannot become {target_status.value}"
            )

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING.value

    # -------------------------------------------------------------------
    # Verification outcomes
    # -------------------------------------------------------------------
    def record_success(self, provider_payment_id: str | None, duplicate: bool = False) -> None:
        """Record the captured payment.

        ``duplicate`` marks money captured for an order that another attempt
        already paid; it stays refundable but never pays the order.
        """
        self._assert_can_transition(TransactionStatus.SUCCESS)
        now = datetime.now(UTC)
        self.status = TransactionStatus.SUCCESS.value
        self.provider_payment_id = provider_payment_id
        self.duplicate_capture = duplicate
        self.verified_at = now
        self.raise_(
            PaymentCaptured(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                provider=self.provider,
                provider_payment_id=provider_payment_id,
                amount=self.amount,
                duplicate=duplicate,
                captured_at=now,
            )
        )

    def record_failure(self, reason: str, signature_rejected: bool = False) -> None:
        self._assert_can_transition(TransactionStatus.FAILED)
        now = datetime.now(UTC)
        self.status = TransactionStatus.FAILED.value
        self.failure_reason = reason
        self.signature_rejected = signature_rejected
        self.verified_at = now
        self.raise_(
            PaymentRejected(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                rejected_at=now,
            )
        )

    def cancel(self, reason: str | None = None) -> None:
        self._assert_can_transition(TransactionStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = TransactionStatus.CANCELLED.value
        self.failure_reason = reason
        self.verified_at = now
        self.raise_(
            PaymentCancelled(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def record_refund(self, refund_id: str, amount: float) -> None:
        self._assert_can_transition(TransactionStatus.REFUNDED)
        if amount <= 0 or amount > self.amount:
            raise ValidationError({"amount": [f"Refund amount must be between 0 and {self.amount}"]})

        now = datetime.now(UTC)
        self.status = TransactionStatus.REFUNDED.value
        self.refund_id = refund_id
        self.refunded_amount = amount
        self.refunded_at = now
        self.raise_(
            PaymentRefunded(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                refund_id=refund_id,
                amount=amount,
                refunded_at=now,
            )
        )

    @property
    def allocated_refund(self) -> float:
        return round(sum(a.amount for a in self.refunded_items or []), 2)

    @property
    def unallocated_refund(self) -> float:
        return round((self.refunded_amount or 0.0) - self.allocated_refund, 2)

    def record_item_refund(self, item_id: str, quantity: int, amount: float) -> None:
        """Match part of the provider refund to an order item that reached Refunded."""
        if self.status != TransactionStatus.REFUNDED.value:
            raise IllegalStateError(f"Transaction {self.id} has not been refunded by the provider")
        if round(amount, 2) > self.unallocated_refund:
            raise IllegalStateError(
                f"Refund {self.refund_id} has {self.unallocated_refund} left, item {item_id} needs {round(amount, 2)}"
            )

        now = datetime.now(UTC)
        self.add_refunded_items(
            RefundAllocation(
                item_id=item_id,
                quantity=quantity,
                amount=round(amount, 2),
                allocated_at=now,
            )
        )
        self.raise_(
            RefundAllocatedToItem(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                item_id=item_id,
                quantity=quantity,
                amount=round(amount, 2),
                allocated_at=now,
            )
        )

    def outcome(self) -> dict:
        """Stored verification outcome, returned again for repeated callbacks."""
        return {
            "transaction_id": str(self.id),
            "order_id": str(self.order_id),
            "status": self.status,
            "signature_valid": not self.signature_rejected,
            "failure_reason": self.failure_reason,
            "duplicate_capture": bool(self.duplicate_capture),
        }
