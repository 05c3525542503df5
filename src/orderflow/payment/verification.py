"""Payment callback verification — commands, handler and service entry points.

A checkout callback settles a pending transaction exactly once. The handler
verifies the provider signature with the server-held secret, then checks
that the callback refers to the transaction's provider order and amount.
Callbacks for an already settled transaction return the stored outcome.
A capture for an order that another attempt already paid is recorded as a
duplicate: the transaction succeeds and stays refundable, the order keeps
its original payment.

A rejected signature is persisted as a failed transaction before the
service raises ``SignatureVerificationError``, so the failure survives the
unit of work.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.exceptions import SignatureVerificationError
from orderflow.gateway import get_gateway
from orderflow.order.loading import load_order
from orderflow.order.order import Order
from orderflow.payment.loading import load_transaction
from orderflow.payment.transaction import PaymentTransaction
from orderflow.utils.locking import process_for_order
from orderflow.utils.logging import log_security_event

logger = structlog.get_logger(__name__)


@orderflow.command(part_of="PaymentTransaction")
class VerifyPaymentCallback:
    transaction_id = Identifier(required=True)
    callback_payload = Text(required=True)  # JSON: provider callback payload


@orderflow.command(part_of="PaymentTransaction")
class CancelPaymentIntent:
    transaction_id = Identifier(required=True)
    reason = String(max_length=500)


def _mismatch(txn: PaymentTransaction, verification) -> str | None:
    if verification.provider_order_id != txn.provider_order_id:
        return f"Callback refers to provider order {verification.provider_order_id}, expected {txn.provider_order_id}"
    if verification.amount is not None and round(verification.amount, 2) != round(txn.amount, 2):
        return f"Callback amount {verification.amount} does not match transaction amount {txn.amount}"
    return None


@orderflow.command_handler(part_of=PaymentTransaction)
class PaymentVerificationHandler:
    @handle(VerifyPaymentCallback)
    def verify_payment_callback(self, command):
        txn_repo = current_domain.repository_for(PaymentTransaction)
        order_repo = current_domain.repository_for(Order)
        txn = load_transaction(command.transaction_id)

        if not txn.is_pending:
            logger.info(
                "Duplicate payment callback ignored",
                transaction_id=str(txn.id),
                status=txn.status,
            )
            return txn.outcome()

        payload = json.loads(command.callback_payload) if isinstance(command.callback_payload, str) else command.callback_payload
        verification = get_gateway(txn.provider).verify_callback(payload)
        order = load_order(txn.order_id)
        mismatch = _mismatch(txn, verification) if verification.signature_valid else None

        if not verification.signature_valid:
            txn.record_failure(f"Signature verification failed: {verification.failure_reason}", signature_rejected=True)
            order.mark_payment_failed(str(txn.id), txn.failure_reason)
            log_security_event(
                "Payment callback signature rejected",
                transaction_id=str(txn.id),
                order_id=str(txn.order_id),
                provider=txn.provider,
            )
        elif mismatch is not None:
            txn.record_failure(mismatch)
            order.mark_payment_failed(str(txn.id), mismatch)
            logger.warning("Payment callback mismatch", transaction_id=str(txn.id), reason=mismatch)
        elif verification.outcome == "cancelled":
            txn.cancel(verification.failure_reason or "Checkout abandoned")
        elif verification.outcome != "captured":
            reason = verification.failure_reason or "Payment was not captured"
            txn.record_failure(reason)
            order.mark_payment_failed(str(txn.id), reason)
        elif order.payment_captured:
            txn.record_success(verification.provider_payment_id, duplicate=True)
            logger.warning(
                "Duplicate capture recorded for an already paid order",
                transaction_id=str(txn.id),
                order_id=str(txn.order_id),
                paid_with=order.transaction_id,
                amount=txn.amount,
            )
        else:
            txn.record_success(verification.provider_payment_id)
            order.mark_paid(txn.provider, str(txn.id))
            logger.info(
                "Payment verified",
                transaction_id=str(txn.id),
                order_id=str(txn.order_id),
                provider=txn.provider,
            )

        txn_repo.add(txn)
        order_repo.add(order)
        return txn.outcome()

    @handle(CancelPaymentIntent)
    def cancel_payment_intent(self, command):
        txn = load_transaction(command.transaction_id)
        if not txn.is_pending:
            return txn.outcome()
        txn.cancel(command.reason or "Checkout abandoned")
        current_domain.repository_for(PaymentTransaction).add(txn)
        return txn.outcome()


def verify_payment(transaction_id: str, payload: dict) -> dict:
    """Settle a pending transaction from a checkout callback.

    Returns the settlement outcome. Raises ``SignatureVerificationError``
    when the callback signature was rejected.
    """
    txn = load_transaction(transaction_id)
    command = VerifyPaymentCallback(transaction_id=transaction_id, callback_payload=json.dumps(payload))
    outcome = process_for_order(str(txn.order_id), command)
    if not outcome["signature_valid"]:
        raise SignatureVerificationError(transaction_id)
    return outcome


def cancel_payment(transaction_id: str, reason: str | None = None) -> dict:
    """Mark a pending transaction as cancelled when the customer leaves checkout."""
    txn = load_transaction(transaction_id)
    return process_for_order(str(txn.order_id), CancelPaymentIntent(transaction_id=transaction_id, reason=reason))
