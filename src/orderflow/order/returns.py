"""Cancellation, return and refund workflow.

Sequences the status transition service and the payment refund for the
customer and admin actions around an item:

    cancel            Ordered → Cancelled
    request return    Delivered → Return Requested
    approve return    Return Requested → Departed For Returning
    receive return    Departed For Returning → Returned
    cancel return     Return Requested | Departed For Returning → Return Cancelled
    refund            Cancelled | Returned → Refunded

Refunding an item of an online order first refunds the item amount through
the payment provider (unless an earlier provider refund still covers it)
and then moves the item to Refunded in the same unit of work. For
cash-on-delivery orders a refund of a returned item only records the
reimbursement made outside the system.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.exceptions import IllegalStateError
from orderflow.order.loading import all_orders, load_order
from orderflow.order.order import Order
from orderflow.order.status import RETURN_STATUSES, ItemStatus, describe_illegal_transition, is_valid_transition, to_status
from orderflow.order.transition import item_summary, transition_order_item
from orderflow.payment.loading import order_transaction
from orderflow.payment.refund import refund_transaction
from orderflow.payment.transaction import PaymentTransaction, TransactionStatus
from orderflow.utils.locking import process_for_order

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@orderflow.command(part_of="Order")
class CancelOrderItem:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = String(max_length=500)


@orderflow.command(part_of="Order")
class RequestItemReturn:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = String(required=True, max_length=500)


@orderflow.command(part_of="Order")
class ApproveItemReturn:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = String(max_length=500)


@orderflow.command(part_of="Order")
class ReceiveReturnedItem:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = String(max_length=500)


@orderflow.command(part_of="Order")
class CancelItemReturn:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = String(max_length=500)


@orderflow.command(part_of="Order")
class RefundOrderItem:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    amount = Float()  # defaults to unit amount x quantity
    note = String(max_length=500)


_TARGETS = {
    CancelOrderItem: ItemStatus.CANCELLED,
    RequestItemReturn: ItemStatus.RETURN_REQUESTED,
    ApproveItemReturn: ItemStatus.DEPARTED_FOR_RETURNING,
    ReceiveReturnedItem: ItemStatus.RETURNED,
    CancelItemReturn: ItemStatus.RETURN_CANCELLED,
}


def _online_refund(order: Order, item, quantity: int, amount: float | None, note: str | None) -> PaymentTransaction:
    """Make sure a provider refund covers the item, refunding the payment if needed."""
    txn = order_transaction(order)
    if txn is None:
        raise IllegalStateError(f"Order {order.id} has no captured online payment; there is nothing to refund")

    item_amount = round(item.unit_amount * quantity, 2)
    if txn.status == TransactionStatus.SUCCESS.value:
        refund_amount = item_amount if amount is None else amount
        if round(refund_amount, 2) < item_amount:
            raise ValidationError(
                {"amount": [f"Refund amount {refund_amount} does not cover the item amount {item_amount}"]}
            )
        refund_transaction(txn, refund_amount, reason=note)
        order.mark_payment_refunded()
    return txn


@orderflow.command_handler(part_of=Order)
class ReturnWorkflowHandler:
    def _move(self, command):
        order = load_order(command.order_id)
        moved = transition_order_item(
            order,
            item_id=command.item_id,
            quantity=command.quantity,
            target_status=_TARGETS[type(command)],
            note=command.note,
        )
        current_domain.repository_for(Order).add(order)
        return item_summary(moved)

    @handle(CancelOrderItem)
    def cancel_item(self, command):
        return self._move(command)

    @handle(RequestItemReturn)
    def request_return(self, command):
        return self._move(command)

    @handle(ApproveItemReturn)
    def approve_return(self, command):
        return self._move(command)

    @handle(ReceiveReturnedItem)
    def receive_return(self, command):
        return self._move(command)

    @handle(CancelItemReturn)
    def cancel_return(self, command):
        return self._move(command)

    @handle(RefundOrderItem)
    def refund_item(self, command):
        order = load_order(command.order_id)
        item = order.find_item(command.item_id)

        # Validate the item side before any money moves.
        if not isinstance(command.quantity, int) or not 0 < command.quantity <= item.quantity:
            raise ValidationError(
                {"quantity": [f"Quantity must be between 1 and {item.quantity} for item {item.id}"]}
            )
        if not is_valid_transition(item.status, ItemStatus.REFUNDED):
            raise IllegalStateError(describe_illegal_transition(item.status, ItemStatus.REFUNDED))

        txn = None
        if order.is_online:
            txn = _online_refund(order, item, command.quantity, command.amount, command.note)

        moved = transition_order_item(
            order,
            item_id=command.item_id,
            quantity=command.quantity,
            target_status=ItemStatus.REFUNDED,
            note=command.note,
            txn=txn,
        )
        current_domain.repository_for(Order).add(order)
        return item_summary(moved)


# ---------------------------------------------------------------------------
# Service entry points
# ---------------------------------------------------------------------------
def cancel_item(order_id: str, item_id: str, quantity: int, note: str | None = None) -> dict:
    command = CancelOrderItem(order_id=order_id, item_id=item_id, quantity=quantity, note=note)
    return process_for_order(order_id, command)


def request_return(order_id: str, item_id: str, quantity: int, note: str) -> dict:
    command = RequestItemReturn(order_id=order_id, item_id=item_id, quantity=quantity, note=note)
    return process_for_order(order_id, command)


def approve_return(order_id: str, item_id: str, quantity: int, note: str | None = None) -> dict:
    command = ApproveItemReturn(order_id=order_id, item_id=item_id, quantity=quantity, note=note)
    return process_for_order(order_id, command)


def receive_return(order_id: str, item_id: str, quantity: int, note: str | None = None) -> dict:
    command = ReceiveReturnedItem(order_id=order_id, item_id=item_id, quantity=quantity, note=note)
    return process_for_order(order_id, command)


def cancel_return(order_id: str, item_id: str, quantity: int, note: str | None = None) -> dict:
    command = CancelItemReturn(order_id=order_id, item_id=item_id, quantity=quantity, note=note)
    return process_for_order(order_id, command)


def refund_item(
    order_id: str,
    item_id: str,
    quantity: int,
    amount: float | None = None,
    note: str | None = None,
) -> dict:
    command = RefundOrderItem(order_id=order_id, item_id=item_id, quantity=quantity, amount=amount, note=note)
    return process_for_order(order_id, command)


def return_queue(status=None) -> list[dict]:
    """Item rows currently in a return status, oldest order first."""
    statuses = {to_status(status)} if status else set(RETURN_STATUSES)
    if not statuses <= RETURN_STATUSES:
        raise ValidationError({"status": [f"{status} is not a return status"]})

    rows = []
    for order in sorted(all_orders(), key=lambda o: o.ordered_at.timestamp() if o.ordered_at else 0):
        for item in order.items or []:
            if item.status in statuses:
                history = order.history_for(item.id)
                rows.append(
                    {
                        "order_id": str(order.id),
                        "customer_id": str(order.customer_id),
                        "payment_method": order.payment_method,
                        **item_summary(item),
                        "note": history[-1].note if history else None,
                        "changed_at": history[-1].changed_at.isoformat() if history else None,
                    }
                )
    return rows
