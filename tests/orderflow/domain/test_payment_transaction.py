"""Tests for the PaymentTransaction aggregate state machine."""

import re

import pytest
from orderflow.exceptions import IllegalStateError
from orderflow.payment.transaction import PaymentTransaction, TransactionStatus, new_transaction_id
from protean.exceptions import ValidationError


def _open(amount=500.0):
    return PaymentTransaction.open(
        transaction_id=new_transaction_id(),
        order_id="ord-001",
        provider="razorpay",
        provider_order_id="razorpay_order_abc",
        amount=amount,
        currency="INR",
    )


def _captured(amount=500.0):
    txn = _open(amount)
    txn.record_success("razorpay_pay_abc")
    return txn


class TestOpen:
    def test_transaction_id_format(self):
        assert re.fullmatch(r"TXN-[0-9A-F]{16}", new_transaction_id())

    def test_transaction_ids_are_unique(self):
        assert len({new_transaction_id() for _ in range(50)}) == 50

    def test_opens_pending(self):
        txn = _open()
        assert txn.status == TransactionStatus.PENDING.value
        assert txn.is_pending
        assert txn.refunded_amount == 0.0
        assert txn._events[-1].__class__.__name__ == "PaymentIntentCreated"

    def test_cod_creates_no_transaction(self):
        with pytest.raises(ValidationError):
            PaymentTransaction.open(
                transaction_id=new_transaction_id(),
                order_id="ord-001",
                provider="cod",
                provider_order_id="none",
                amount=500.0,
                currency="INR",
            )


class TestSettlement:
    def test_success(self):
        txn = _captured()
        assert txn.status == TransactionStatus.SUCCESS.value
        assert txn.provider_payment_id == "razorpay_pay_abc"
        assert txn.verified_at is not None

    def test_failure(self):
        txn = _open()
        txn.record_failure("Card declined")
        assert txn.status == TransactionStatus.FAILED.value
        assert txn.failure_reason == "Card declined"
        assert txn.outcome()["signature_valid"] is True

    def test_signature_rejection_is_remembered(self):
        txn = _open()
        txn.record_failure("Signature verification failed: Signature mismatch", signature_rejected=True)
        assert txn.outcome()["signature_valid"] is False

    def test_cancel(self):
        txn = _open()
        txn.cancel("Checkout abandoned")
        assert txn.status == TransactionStatus.CANCELLED.value

    @pytest.mark.parametrize("settle", ["record_failure", "cancel"])
    def test_settled_transaction_cannot_succeed(self, settle):
        txn = _open()
        getattr(txn, settle)("reason")
        with pytest.raises(IllegalStateError):
            txn.record_success("razorpay_pay_late")

    def test_success_is_final_except_for_refund(self):
        txn = _captured()
        with pytest.raises(IllegalStateError):
            txn.record_failure("Late failure")
        with pytest.raises(IllegalStateError):
            txn.cancel()

    def test_outcome(self):
        txn = _captured()
        assert txn.outcome() == {
            "transaction_id": str(txn.id),
            "order_id": "ord-001",
            "status": "success",
            "signature_valid": True,
            "failure_reason": None,
            "duplicate_capture": False,
        }

    def test_duplicate_capture_is_flagged(self):
        txn = _open()
        txn.record_success("razorpay_pay_def", duplicate=True)
        assert txn.status == "success"
        assert txn.outcome()["duplicate_capture"] is True


class TestRefund:
    def test_refund_captured_payment(self):
        txn = _captured()
        txn.record_refund("rfnd_1", 200.0)
        assert txn.status == TransactionStatus.REFUNDED.value
        assert txn.refunded_amount == 200.0
        assert txn.unallocated_refund == 200.0

    def test_pending_payment_cannot_be_refunded(self):
        txn = _open()
        with pytest.raises(IllegalStateError):
            txn.record_refund("rfnd_1", 100.0)

    def test_refund_is_single_use(self):
        txn = _captured()
        txn.record_refund("rfnd_1", 100.0)
        with pytest.raises(IllegalStateError):
            txn.record_refund("rfnd_2", 100.0)

    @pytest.mark.parametrize("amount", [0.0, 500.01])
    def test_refund_amount_bounds(self, amount):
        txn = _captured()
        with pytest.raises(ValidationError):
            txn.record_refund("rfnd_1", amount)


class TestItemRefundAllocation:
    def test_allocations_draw_down_the_refund(self):
        txn = _captured()
        txn.record_refund("rfnd_1", 300.0)
        txn.record_item_refund("item-1", 2, 200.0)
        assert txn.allocated_refund == 200.0
        assert txn.unallocated_refund == 100.0
        assert txn._events[-1].__class__.__name__ == "RefundAllocatedToItem"

    def test_allocation_cannot_exceed_refund(self):
        txn = _captured()
        txn.record_refund("rfnd_1", 100.0)
        with pytest.raises(IllegalStateError):
            txn.record_item_refund("item-1", 2, 200.0)

    def test_allocation_needs_provider_refund(self):
        txn = _captured()
        with pytest.raises(IllegalStateError):
            txn.record_item_refund("item-1", 1, 100.0)
