"""Payment refund — command, handler and helpers shared with the item workflow.

A refund returns money through the provider that captured it. It changes the
transaction and the order's payment status but never an item status; items
reach Refunded through the status transition service, which draws the item
amount from the refund with ``allocate_item_refund``.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.exceptions import ExternalProviderError, IllegalStateError
from orderflow.gateway import get_gateway
from orderflow.order.loading import load_order
from orderflow.order.order import Order
from orderflow.payment.loading import load_transaction, order_transaction
from orderflow.payment.transaction import PaymentTransaction, TransactionStatus
from orderflow.utils.locking import process_for_order

logger = structlog.get_logger(__name__)


@orderflow.command(part_of="PaymentTransaction")
class RefundPayment:
    transaction_id = Identifier(required=True)
    amount = Float()  # defaults to the full captured amount
    reason = String(max_length=500)


def refund_transaction(txn: PaymentTransaction, amount: float | None = None, reason: str | None = None) -> str:
    """Refund ``amount`` of a captured transaction through its provider.

    Mutates ``txn``; the caller persists it. Returns the provider refund id.
    """
    if txn.status != TransactionStatus.SUCCESS.value:
        raise IllegalStateError(f"Only successful payments can be refunded; transaction {txn.id} is {txn.status}")

    amount = txn.amount if amount is None else amount
    if amount <= 0 or round(amount, 2) > round(txn.amount, 2):
        raise ValidationError({"amount": [f"Refund amount must be greater than 0 and at most {txn.amount}"]})

    result = get_gateway(txn.provider).refund(
        provider_order_id=txn.provider_order_id,
        provider_payment_id=txn.provider_payment_id,
        amount=amount,
        reason=reason,
    )
    if not result.success:
        logger.warning(
            "Payment provider rejected refund",
            transaction_id=str(txn.id),
            provider=txn.provider,
            reason=result.failure_reason,
        )
        raise ExternalProviderError(txn.provider, result.failure_reason or "Refund failed")

    txn.record_refund(result.refund_id, amount)
    logger.info(
        "Payment refunded",
        transaction_id=str(txn.id),
        order_id=str(txn.order_id),
        refund_id=result.refund_id,
        amount=amount,
    )
    return result.refund_id


def require_refund_for_item(order: Order, amount: float, txn: PaymentTransaction | None = None) -> PaymentTransaction:
    """Return the refunded transaction that can cover ``amount`` for an item of ``order``."""
    txn = txn or order_transaction(order)
    if txn is None:
        raise IllegalStateError(f"Order {order.id} has no captured online payment; there is nothing to refund")
    if txn.status != TransactionStatus.REFUNDED.value:
        raise IllegalStateError(
            f"Refund transaction {txn.id} through {txn.provider} before marking items of order {order.id} Refunded"
        )
    if round(amount, 2) > txn.unallocated_refund:
        raise IllegalStateError(
            f"Refund {txn.refund_id} has {txn.unallocated_refund} left to allocate, the item needs {round(amount, 2)}"
        )
    return txn


def allocate_item_refund(order: Order, item, txn: PaymentTransaction | None = None) -> PaymentTransaction:
    """Record that ``item`` reached Refunded against the order's provider refund."""
    txn = require_refund_for_item(order, item.total_amount, txn)
    txn.record_item_refund(item_id=str(item.id), quantity=item.quantity, amount=item.total_amount)
    current_domain.repository_for(PaymentTransaction).add(txn)
    return txn


@orderflow.command_handler(part_of=PaymentTransaction)
class RefundHandler:
    @handle(RefundPayment)
    def refund_payment(self, command):
        txn = load_transaction(command.transaction_id)
        order = load_order(txn.order_id)

        refund_id = refund_transaction(txn, command.amount, command.reason)
        if str(txn.id) == str(order.transaction_id):
            order.mark_payment_refunded()

        current_domain.repository_for(PaymentTransaction).add(txn)
        current_domain.repository_for(Order).add(order)
        return {
            "transaction_id": str(txn.id),
            "refund_id": refund_id,
            "refunded_amount": txn.refunded_amount,
            "status": txn.status,
        }


def refund_payment(transaction_id: str, amount: float | None = None, reason: str | None = None) -> dict:
    """Refund a captured payment through its provider."""
    txn = load_transaction(transaction_id)
    command = RefundPayment(transaction_id=transaction_id, amount=amount, reason=reason)
    return process_for_order(str(txn.order_id), command)
