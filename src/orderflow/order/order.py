"""Order aggregate (CQRS) — the per-item ledger of a placed order.

Each order line is tracked as one or more OrderItem rows. Moving part of a
row to another status splits it: the original row keeps the remainder and a
new row (pointing back through ``parent_item_id``) carries the moved
quantity. Rows that share product, color and size always add up to the
quantity originally ordered for that line.

Every status change is appended to ``status_history``; entries are never
edited or removed.

Shipping progress for the whole order is an embedded value object whose
flags only move forward, one step at a time:
    adhoc order created → AWB assigned → pickup generated
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from orderflow.domain import orderflow
from orderflow.exceptions import IllegalStateError, NotFoundError
from orderflow.order.events import (
    AwbAssigned,
    ItemStatusChanged,
    OrderPaid,
    OrderPaymentFailed,
    OrderPaymentRefunded,
    OrderPlaced,
    PickupGenerated,
    ShipmentOrderCreated,
    ShippingProgressReset,
)
from orderflow.order.status import (
    ItemStatus,
    describe_illegal_transition,
    is_valid_transition,
    to_status,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentMethod(Enum):
    COD = "COD"
    ONLINE = "ONLINE"


class OrderPaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@orderflow.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured when the order was placed."""

    name = String(required=True, max_length=150)
    phone = String(max_length=20)
    email = String(max_length=254)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(max_length=100, default="India")


_SHIPPING_FIELDS = (
    "adhoc_order_created",
    "awb_assigned",
    "pickup_generated",
    "shiprocket_order_id",
    "shipment_id",
    "tracking_number",
    "courier_name",
    "pickup_id",
    "length",
    "breadth",
    "height",
    "weight",
)


@orderflow.value_object(part_of="Order")
class ShippingProgress:
    """Progress of the shipping provider saga for the order."""

    adhoc_order_created = Boolean(default=False)
    awb_assigned = Boolean(default=False)
    pickup_generated = Boolean(default=False)
    shiprocket_order_id = String(max_length=100)
    shipment_id = String(max_length=100)
    tracking_number = String(max_length=100)
    courier_name = String(max_length=100)
    pickup_id = String(max_length=100)
    length = Float()
    breadth = Float()
    height = Float()
    weight = Float()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@orderflow.entity(part_of="Order")
class OrderItem:
    """A row of an order line, all of it in a single status."""

    product_id = Identifier(required=True)
    color_id = Identifier(required=True)
    size = String(required=True, max_length=20)
    quantity = Integer(required=True, min_value=1)
    line_quantity = Integer(required=True, min_value=1)
    unit_amount = Float(required=True, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    order_status = String(
        max_length=50,
        choices=ItemStatus,
        default=ItemStatus.ORDERED.value,
    )
    parent_item_id = Identifier()

    @property
    def line_key(self) -> tuple[str, str, str]:
        return (str(self.product_id), str(self.color_id), self.size)

    @property
    def status(self) -> ItemStatus:
        return ItemStatus(self.order_status)


@orderflow.entity(part_of="Order")
class StatusHistoryEntry:
    """One status change of one order item row."""

    item_id = Identifier(required=True)
    status = String(required=True, max_length=50, choices=ItemStatus)
    quantity = Integer(required=True, min_value=1)
    note = String(max_length=500)
    parent_item_id = Identifier()
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@orderflow.aggregate
class Order:
    customer_id = Identifier(required=True)
    shipping_address = ValueObject(ShippingAddress)
    payment_method = String(required=True, max_length=10, choices=PaymentMethod)
    payment_provider = String(max_length=50)
    payment_status = String(
        max_length=20,
        choices=OrderPaymentStatus,
        default=OrderPaymentStatus.PENDING.value,
    )
    transaction_id = String(max_length=100)
    items = HasMany(OrderItem)
    status_history = HasMany(StatusHistoryEntry)
    shipping = ValueObject(ShippingProgress)
    ordered_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_quantities_are_conserved(self):
        totals: dict[tuple, int] = {}
        ordered: dict[tuple, int] = {}
        for item in self.items or []:
            totals[item.line_key] = totals.get(item.line_key, 0) + item.quantity
            ordered[item.line_key] = item.line_quantity
        for key, total in totals.items():
            if total != ordered[key]:
                raise ValidationError(
                    {"items": [f"Rows of line {'/'.join(key)} add up to {total}, expected {ordered[key]}"]}
                )

    @invariant.post
    def payment_reference_requires_accepted_online_payment(self):
        has_reference = bool(self.payment_provider) or bool(self.transaction_id)
        accepted = self.payment_status in (
            OrderPaymentStatus.PAID.value,
            OrderPaymentStatus.REFUNDED.value,
        )
        if self.payment_method == PaymentMethod.COD.value and has_reference:
            raise ValidationError({"payment_provider": ["Cash-on-delivery orders carry no payment provider"]})
        if has_reference and not (self.payment_provider and self.transaction_id and accepted):
            raise ValidationError(
                {"transaction_id": ["Payment provider and transaction are only set once a payment is accepted"]}
            )
        if accepted and self.payment_method == PaymentMethod.ONLINE.value and not has_reference:
            raise ValidationError({"transaction_id": ["Paid online orders must reference their transaction"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id: str,
        items_data: list[dict],
        shipping_address: dict,
        payment_method: str,
    ):
        """Place a new order with every item in Ordered status."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        seen: set[tuple] = set()
        for data in items_data:
            key = (str(data.get("product_id")), str(data.get("color_id")), data.get("size"))
            if key in seen:
                raise ValidationError({"items": [f"Line {'/'.join(key)} appears more than once"]})
            seen.add(key)

        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            shipping_address=ShippingAddress(**shipping_address),
            payment_method=payment_method,
            payment_status=OrderPaymentStatus.PENDING.value,
            shipping=ShippingProgress(),
            ordered_at=now,
            updated_at=now,
        )
        for data in items_data:
            quantity = data.get("quantity")
            unit_amount = data.get("unit_amount")
            item = OrderItem(
                product_id=data.get("product_id"),
                color_id=data.get("color_id"),
                size=data.get("size"),
                quantity=quantity,
                line_quantity=quantity,
                unit_amount=unit_amount,
                total_amount=round(unit_amount * quantity, 2),
                order_status=ItemStatus.ORDERED.value,
            )
            order.add_items(item)
            order._record_history(item, ItemStatus.ORDERED, quantity, "Order placed", now)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=customer_id,
                payment_method=order.payment_method,
                items=json.dumps(items_data),
                grand_total=order.grand_total,
                ordered_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @property
    def grand_total(self) -> float:
        return round(sum(item.total_amount for item in self.items or []), 2)

    @property
    def is_online(self) -> bool:
        return self.payment_method == PaymentMethod.ONLINE.value

    @property
    def payment_captured(self) -> bool:
        # A partial refund leaves the rest of the captured payment in place.
        return self.payment_status in (OrderPaymentStatus.PAID.value, OrderPaymentStatus.REFUNDED.value)

    def find_item(self, item_id: str) -> OrderItem:
        item = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found in order {self.id}")
        return item

    def items_in(self, status: ItemStatus) -> list[OrderItem]:
        return [i for i in (self.items or []) if i.order_status == status.value]

    def history_for(self, item_id: str) -> list[StatusHistoryEntry]:
        entries = [h for h in (self.status_history or []) if str(h.item_id) == str(item_id)]
        return sorted(entries, key=lambda h: h.changed_at)

    # -------------------------------------------------------------------
    # Item status transitions
    # -------------------------------------------------------------------
    def _record_history(self, item, status, quantity, note, changed_at, parent_item_id=None):
        self.add_status_history(
            StatusHistoryEntry(
                item_id=str(item.id),
                status=status.value,
                quantity=quantity,
                note=note,
                parent_item_id=parent_item_id,
                changed_at=changed_at,
            )
        )

    def transition_item(self, item_id: str, quantity: int, target, note: str | None = None) -> OrderItem:
        """Move ``quantity`` units of an item row to ``target``.

        Moving the whole row updates it in place. Moving part of it splits
        off a new row that carries the moved quantity and the new status.
        Returns the row that now holds ``target``.
        """
        item = self.find_item(item_id)
        target = to_status(target)
        current = item.status

        if not isinstance(quantity, int) or isinstance(quantity, bool) or not 0 < quantity <= item.quantity:
            raise ValidationError(
                {"quantity": [f"Quantity must be between 1 and {item.quantity} for item {item_id}, got {quantity}"]}
            )
        if not is_valid_transition(current, target):
            raise IllegalStateError(describe_illegal_transition(current, target))

        now = datetime.now(UTC)
        if quantity == item.quantity:
            item.order_status = target.value
            self._record_history(item, target, quantity, note, now, parent_item_id=item.parent_item_id)
            moved = item
        else:
            with atomic_change(self):
                item.quantity = item.quantity - quantity
                item.total_amount = round(item.unit_amount * item.quantity, 2)
                moved = OrderItem(
                    product_id=item.product_id,
                    color_id=item.color_id,
                    size=item.size,
                    quantity=quantity,
                    line_quantity=item.line_quantity,
                    unit_amount=item.unit_amount,
                    total_amount=round(item.unit_amount * quantity, 2),
                    order_status=target.value,
                    parent_item_id=str(item.id),
                )
                self.add_items(moved)
            self._record_history(moved, target, quantity, note, now, parent_item_id=str(item.id))

        self.updated_at = now
        self.raise_(
            ItemStatusChanged(
                order_id=str(self.id),
                item_id=str(moved.id),
                parent_item_id=moved.parent_item_id,
                previous_status=current.value,
                new_status=target.value,
                quantity=quantity,
                note=note,
                changed_at=now,
            )
        )
        return moved

    # -------------------------------------------------------------------
    # Shipping progress
    # -------------------------------------------------------------------
    @property
    def shipping_progress(self) -> ShippingProgress:
        return self.shipping or ShippingProgress()

    def _shipping_with(self, **changes) -> ShippingProgress:
        current = self.shipping_progress
        values = {name: getattr(current, name) for name in _SHIPPING_FIELDS}
        values.update(changes)
        return ShippingProgress(**values)

    def assert_ready_to_ship(self) -> None:
        if self.is_online and not self.payment_captured:
            raise IllegalStateError(
                f"Order {self.id} is paid online and its payment has not been verified; items cannot ship yet"
            )
        if not self.items_in(ItemStatus.ORDERED):
            raise IllegalStateError(f"Order {self.id} has no items in Ordered status to ship")

    def record_shipment_order(
        self,
        shiprocket_order_id: str,
        shipment_id: str,
        length: float,
        breadth: float,
        height: float,
        weight: float,
    ) -> None:
        """Record that the shipping provider created the adhoc order."""
        if self.shipping_progress.adhoc_order_created:
            raise IllegalStateError(f"Shipment order already created for order {self.id}")

        now = datetime.now(UTC)
        self.shipping = self._shipping_with(
            adhoc_order_created=True,
            shiprocket_order_id=shiprocket_order_id,
            shipment_id=shipment_id,
            length=length,
            breadth=breadth,
            height=height,
            weight=weight,
        )
        self.updated_at = now
        self.raise_(
            ShipmentOrderCreated(
                order_id=str(self.id),
                shiprocket_order_id=shiprocket_order_id,
                shipment_id=shipment_id,
                created_at=now,
            )
        )

    def record_awb(self, tracking_number: str, courier_name: str | None) -> None:
        """Record the AWB (tracking number) assigned to the shipment."""
        progress = self.shipping_progress
        if not progress.adhoc_order_created:
            raise IllegalStateError(f"Create the shipment order for order {self.id} before assigning an AWB")
        if progress.awb_assigned:
            raise IllegalStateError(f"AWB already assigned for order {self.id}")

        now = datetime.now(UTC)
        self.shipping = self._shipping_with(
            awb_assigned=True,
            tracking_number=tracking_number,
            courier_name=courier_name,
        )
        self.updated_at = now
        self.raise_(
            AwbAssigned(
                order_id=str(self.id),
                tracking_number=tracking_number,
                courier_name=courier_name,
                assigned_at=now,
            )
        )

    def record_pickup(self, pickup_id: str | None, shipped_item_ids: list[str]) -> None:
        """Record the scheduled pickup once the Ordered items have shipped."""
        progress = self.shipping_progress
        if not progress.awb_assigned:
            raise IllegalStateError(f"Assign an AWB for order {self.id} before generating a pickup")
        if progress.pickup_generated:
            raise IllegalStateError(f"Pickup already generated for order {self.id}")

        now = datetime.now(UTC)
        self.shipping = self._shipping_with(pickup_generated=True, pickup_id=pickup_id)
        self.updated_at = now
        self.raise_(
            PickupGenerated(
                order_id=str(self.id),
                pickup_id=pickup_id,
                shipped_item_ids=json.dumps(shipped_item_ids),
                generated_at=now,
            )
        )

    def reset_shipping(self, reason: str) -> None:
        """Compensating action: discard all shipping progress."""
        if self.shipping_progress.pickup_generated:
            raise IllegalStateError(f"Items of order {self.id} have already shipped; shipping cannot be reset")

        now = datetime.now(UTC)
        self.shipping = ShippingProgress()
        self.updated_at = now
        self.raise_(ShippingProgressReset(order_id=str(self.id), reason=reason, reset_at=now))

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def mark_paid(self, provider: str, transaction_id: str) -> None:
        """Record an accepted online payment."""
        if not self.is_online:
            raise IllegalStateError(f"Order {self.id} is cash-on-delivery and takes no online payment")
        if self.payment_captured:
            raise IllegalStateError(f"Order {self.id} was already paid with transaction {self.transaction_id}")

        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_provider = provider
            self.transaction_id = transaction_id
            self.payment_status = OrderPaymentStatus.PAID.value
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                payment_provider=provider,
                transaction_id=transaction_id,
                paid_at=now,
            )
        )

    def mark_payment_failed(self, transaction_id: str, reason: str | None) -> None:
        """Record a rejected payment attempt, unless another attempt already succeeded."""
        if self.payment_status != OrderPaymentStatus.PENDING.value:
            return

        now = datetime.now(UTC)
        self.payment_status = OrderPaymentStatus.FAILED.value
        self.updated_at = now
        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                transaction_id=transaction_id,
                reason=reason,
                failed_at=now,
            )
        )

    def reopen_payment(self) -> None:
        """Allow a new payment attempt after a failed one."""
        if self.payment_status == OrderPaymentStatus.FAILED.value:
            self.payment_status = OrderPaymentStatus.PENDING.value

    def mark_payment_refunded(self) -> None:
        if self.payment_status != OrderPaymentStatus.PAID.value:
            raise IllegalStateError(f"Order {self.id} has no captured payment to refund")

        now = datetime.now(UTC)
        self.payment_status = OrderPaymentStatus.REFUNDED.value
        self.updated_at = now
        self.raise_(
            OrderPaymentRefunded(
                order_id=str(self.id),
                transaction_id=self.transaction_id,
                refunded_at=now,
            )
        )
