"""Order domain events — facts about item status, shipping and payment changes."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from orderflow.domain import orderflow


@orderflow.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order; every item starts as Ordered."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    payment_method = String(required=True)
    items = Text(required=True)  # JSON list of item dicts
    grand_total = Float(required=True)
    ordered_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class ItemStatusChanged:
    """A quantity of an order item moved to a new status."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    parent_item_id = Identifier()
    previous_status = String(required=True)
    new_status = String(required=True)
    quantity = Integer(required=True)
    note = String()
    changed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class ShipmentOrderCreated:
    """The shipping provider accepted an adhoc order for the package."""

    __version__ = 1

    order_id = Identifier(required=True)
    shiprocket_order_id = String(required=True)
    shipment_id = String(required=True)
    created_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class AwbAssigned:
    """A courier and tracking number were assigned to the shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String(required=True)
    courier_name = String()
    assigned_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class PickupGenerated:
    """The courier pickup was scheduled and the Ordered items shipped."""

    __version__ = 1

    order_id = Identifier(required=True)
    pickup_id = String()
    shipped_item_ids = Text(required=True)  # JSON list of item ids
    generated_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class ShippingProgressReset:
    """Shipping progress was rolled back by an operator."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    reset_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderPaid:
    """An online payment for the order was verified."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_provider = String(required=True)
    transaction_id = String(required=True)
    paid_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderPaymentFailed:
    """An online payment attempt for the order was rejected."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderPaymentRefunded:
    """The captured payment of the order was refunded by the provider."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String(required=True)
    refunded_at = DateTime(required=True)
