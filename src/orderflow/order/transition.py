"""Status transition service — the only way an item status changes.

``transition_order_item`` validates and applies a transition on a loaded
order; command handlers that move items (the generic transition below, the
return workflow and the shipping saga) all go through it so that the status
table, the partial-quantity split and the cross-aggregate preconditions are
enforced in one place.

Preconditions beyond the status table:
- items of an online order ship only once its payment is captured; a
  partial refund does not hold back the rest of the order
- an item reaches Refunded only when money went back to the customer:
  online orders need a provider refund that covers the item, and a
  cash-on-delivery cancellation never collected anything to refund
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.exceptions import IllegalStateError
from orderflow.order.loading import load_order
from orderflow.order.order import Order, OrderItem, PaymentMethod
from orderflow.order.status import ItemStatus, available_transitions, is_valid_transition, to_status
from orderflow.payment.refund import allocate_item_refund, require_refund_for_item
from orderflow.utils.locking import process_for_order

logger = structlog.get_logger(__name__)


def item_summary(item: OrderItem) -> dict:
    return {
        "item_id": str(item.id),
        "product_id": str(item.product_id),
        "color_id": str(item.color_id),
        "size": item.size,
        "quantity": item.quantity,
        "unit_amount": item.unit_amount,
        "total_amount": item.total_amount,
        "order_status": item.order_status,
        "parent_item_id": str(item.parent_item_id) if item.parent_item_id else None,
    }


def check_transition_preconditions(order: Order, item: OrderItem, quantity: int, target: ItemStatus, txn=None) -> None:
    if target is ItemStatus.SHIPPED and order.is_online and not order.payment_captured:
        raise IllegalStateError(
            f"Order {order.id} is paid online and its payment has not been verified; items cannot ship yet"
        )

    if target is not ItemStatus.REFUNDED:
        return
    if order.payment_method == PaymentMethod.COD.value:
        if item.status is ItemStatus.CANCELLED:
            raise IllegalStateError(
                f"Order {order.id} is cash-on-delivery and no payment was collected for the cancelled item"
            )
        return
    require_refund_for_item(order, round(item.unit_amount * quantity, 2), txn)


def transition_order_item(
    order: Order,
    item_id: str,
    quantity: int,
    target_status,
    note: str | None = None,
    txn=None,
) -> OrderItem:
    """Validate and apply one item transition on a loaded order.

    ``txn`` lets callers that already hold the order's payment transaction
    (for instance after refunding it in the same unit of work) pass it in.
    The caller persists the order.
    """
    item = order.find_item(item_id)
    target = to_status(target_status)
    previous = item.status

    # Quantity and status table checks run before the cross-aggregate ones.
    if isinstance(quantity, int) and 0 < quantity <= item.quantity and is_valid_transition(previous, target):
        check_transition_preconditions(order, item, quantity, target, txn)

    moved = order.transition_item(item_id, quantity, target, note)

    if target is ItemStatus.REFUNDED and order.is_online:
        allocate_item_refund(order, moved, txn)

    logger.info(
        "Item status changed",
        order_id=str(order.id),
        item_id=str(moved.id),
        parent_item_id=str(moved.parent_item_id) if moved.parent_item_id else None,
        previous_status=previous.value,
        new_status=target.value,
        quantity=quantity,
    )
    return moved


@orderflow.command(part_of="Order")
class ApplyItemTransition:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    target_status = String(required=True, max_length=50)
    note = String(max_length=500)


@orderflow.command_handler(part_of=Order)
class ItemTransitionHandler:
    @handle(ApplyItemTransition)
    def apply_item_transition(self, command):
        order = load_order(command.order_id)
        moved = transition_order_item(
            order,
            item_id=command.item_id,
            quantity=command.quantity,
            target_status=command.target_status,
            note=command.note,
        )
        current_domain.repository_for(Order).add(order)
        return item_summary(moved)


def apply_transition(order_id: str, item_id: str, quantity: int, target_status, note: str | None = None) -> dict:
    """Move ``quantity`` units of an item to ``target_status``.

    Returns the row that now holds the new status.
    """
    command = ApplyItemTransition(
        order_id=order_id,
        item_id=item_id,
        quantity=quantity,
        target_status=to_status(target_status).value,
        note=note,
    )
    return process_for_order(order_id, command)


def item_transitions(order_id: str, item_id: str) -> dict:
    """The item's current status with the permitted next statuses and their labels."""
    item = load_order(order_id).find_item(item_id)
    return {
        "item_id": str(item.id),
        "order_status": item.order_status,
        "quantity": item.quantity,
        "transitions": available_transitions(item.order_status),
    }
