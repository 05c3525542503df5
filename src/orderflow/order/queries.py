"""Read-side helpers for orders: listings, statistics, detail grouped by status and item history."""

from protean.exceptions import ValidationError

from orderflow.order.loading import all_orders, load_order
from orderflow.order.order import Order, OrderPaymentStatus, PaymentMethod
from orderflow.order.status import ItemStatus, available_transitions, to_status
from orderflow.order.transition import item_summary


def _history_entry(entry) -> dict:
    return {
        "item_id": str(entry.item_id),
        "status": entry.status,
        "quantity": entry.quantity,
        "note": entry.note,
        "parent_item_id": str(entry.parent_item_id) if entry.parent_item_id else None,
        "changed_at": entry.changed_at.isoformat(),
    }


def shipping_summary(order: Order) -> dict:
    progress = order.shipping_progress
    return {
        "adhoc_order_created": bool(progress.adhoc_order_created),
        "awb_assigned": bool(progress.awb_assigned),
        "pickup_generated": bool(progress.pickup_generated),
        "shiprocket_order_id": progress.shiprocket_order_id,
        "shipment_id": progress.shipment_id,
        "tracking_number": progress.tracking_number,
        "courier_name": progress.courier_name,
        "pickup_id": progress.pickup_id,
    }


def address_summary(order: Order) -> dict | None:
    address = order.shipping_address
    if address is None:
        return None
    return {
        "name": address.name,
        "phone": address.phone,
        "email": address.email,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }


def order_detail(order_id: str) -> dict:
    """The order with its item rows grouped by status.

    Each row carries the transitions it can take next so callers never need
    their own copy of the status table.
    """
    order = load_order(order_id)
    groups: dict[str, list[dict]] = {}
    for status in ItemStatus:
        rows = order.items_in(status)
        if rows:
            groups[status.value] = [
                {**item_summary(item), "transitions": available_transitions(status)} for item in rows
            ]

    return {
        "order_id": str(order.id),
        "customer_id": str(order.customer_id),
        "payment_method": order.payment_method,
        "payment_provider": order.payment_provider,
        "payment_status": order.payment_status,
        "transaction_id": order.transaction_id,
        "grand_total": order.grand_total,
        "ordered_at": order.ordered_at.isoformat() if order.ordered_at else None,
        "shipping_address": address_summary(order),
        "items_by_status": groups,
        "shipping": shipping_summary(order),
    }


def item_history(order_id: str, item_id: str) -> list[dict]:
    """Status history of one item row, oldest entry first."""
    order = load_order(order_id)
    order.find_item(item_id)
    return [_history_entry(entry) for entry in order.history_for(item_id)]


def _quantities_by_status(order: Order) -> dict[str, int]:
    quantities: dict[str, int] = {}
    for item in order.items or []:
        quantities[item.order_status] = quantities.get(item.order_status, 0) + item.quantity
    return quantities


def order_summary(order: Order) -> dict:
    return {
        "order_id": str(order.id),
        "customer_id": str(order.customer_id),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "grand_total": order.grand_total,
        "ordered_at": order.ordered_at.isoformat() if order.ordered_at else None,
        "quantities_by_status": _quantities_by_status(order),
        "pickup_generated": bool(order.shipping_progress.pickup_generated),
    }


def list_orders(
    customer_id: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
) -> list[dict]:
    """List orders, newest first.

    ``status`` keeps orders with at least one item row in that status.
    """
    item_status = to_status(status) if status else None
    if payment_status and payment_status not in {s.value for s in OrderPaymentStatus}:
        raise ValidationError({"payment_status": [f"Unknown payment status: {payment_status}"]})

    orders = [
        order
        for order in all_orders()
        if (not customer_id or str(order.customer_id) == customer_id)
        and (not payment_status or order.payment_status == payment_status)
        and (item_status is None or order.items_in(item_status))
    ]
    orders.sort(key=lambda o: o.ordered_at.timestamp() if o.ordered_at else 0, reverse=True)
    return [order_summary(order) for order in orders]


def order_stats() -> dict:
    """Order counts by payment method and status, and item quantities and amounts by item status."""
    by_payment_method = {m.value: 0 for m in PaymentMethod}
    by_payment_status = {s.value: 0 for s in OrderPaymentStatus}
    items_by_status = {s.value: {"quantity": 0, "amount": 0.0} for s in ItemStatus}
    total_value = 0.0
    orders = all_orders()

    for order in orders:
        by_payment_method[order.payment_method] += 1
        by_payment_status[order.payment_status] += 1
        total_value += order.grand_total
        for item in order.items or []:
            bucket = items_by_status[item.order_status]
            bucket["quantity"] += item.quantity
            bucket["amount"] = round(bucket["amount"] + item.total_amount, 2)

    return {
        "total_orders": len(orders),
        "total_value": round(total_value, 2),
        "by_payment_method": by_payment_method,
        "by_payment_status": by_payment_status,
        "items_by_status": items_by_status,
    }
