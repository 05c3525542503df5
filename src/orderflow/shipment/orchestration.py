"""Shipping orchestrator — commands and handler for the provider saga.

Each step checks and sets its progress flag while holding the order's lock,
so two requests can never both create a provider order. A step whose flag
is already set returns the stored result without calling the provider. A
provider failure raises ``ExternalProviderError`` and leaves every flag as
it was; the same step can simply be retried.

Generating the pickup moves every Ordered item of the order to Shipped in
the same unit of work as the flag.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from orderflow.carrier import get_carrier
from orderflow.domain import orderflow
from orderflow.exceptions import ExternalProviderError, IllegalStateError
from orderflow.order.loading import load_order
from orderflow.order.order import Order
from orderflow.order.queries import address_summary, shipping_summary
from orderflow.order.status import ItemStatus
from orderflow.order.transition import check_transition_preconditions, transition_order_item
from orderflow.shipment.saga import ShippingStep, next_step, shipping_state
from orderflow.utils.locking import process_for_order

logger = structlog.get_logger(__name__)

_DIMENSIONS = ("length", "breadth", "height", "weight")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@orderflow.command(part_of="Order")
class CreateShipmentOrder:
    order_id = Identifier(required=True)
    length = Float()
    breadth = Float()
    height = Float()
    weight = Float()


@orderflow.command(part_of="Order")
class AssignShipmentAwb:
    order_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class GenerateShipmentPickup:
    order_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class AdvanceShipping:
    order_id = Identifier(required=True)
    length = Float()
    breadth = Float()
    height = Float()
    weight = Float()


@orderflow.command(part_of="Order")
class ResetShippingProgress:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------
def _step_result(order: Order, step: ShippingStep, performed: bool, shipped_item_ids=None) -> dict:
    state = shipping_state(order.shipping_progress)
    return {
        "order_id": str(order.id),
        "step": step.value,
        "performed": performed,
        "state": state.value,
        "next_step": next_step(state).value,
        "shipping": shipping_summary(order),
        "shipped_item_ids": shipped_item_ids or [],
    }


def _package_dimensions(command) -> dict:
    errors = {}
    dimensions = {}
    for name in _DIMENSIONS:
        value = getattr(command, name)
        if value is None or value <= 0:
            errors[name] = [f"{name.capitalize()} must be greater than 0"]
        dimensions[name] = value
    if errors:
        raise ValidationError(errors)
    return dimensions


def _create_shipment_order(order: Order, command) -> dict:
    progress = order.shipping_progress
    if progress.adhoc_order_created:
        logger.info("Shipment order already created", order_id=str(order.id), shipment_id=progress.shipment_id)
        return _step_result(order, ShippingStep.CREATE_ADHOC_ORDER, performed=False)

    dimensions = _package_dimensions(command)
    order.assert_ready_to_ship()

    ordered = order.items_in(ItemStatus.ORDERED)
    carrier = get_carrier()
    result = carrier.create_adhoc_order(
        order_id=str(order.id),
        items=[
            {
                "name": f"{item.product_id} / {item.color_id} / {item.size}",
                "sku": f"{item.product_id}-{item.color_id}-{item.size}",
                "units": item.quantity,
                "selling_price": item.unit_amount,
            }
            for item in ordered
        ],
        address=address_summary(order) or {},
        payment_method=order.payment_method,
        sub_total=round(sum(item.total_amount for item in ordered), 2),
        dimensions=dimensions,
    )
    if result.get("error"):
        raise ExternalProviderError(carrier.name, result["error"])

    order.record_shipment_order(
        shiprocket_order_id=result["provider_order_id"],
        shipment_id=result["shipment_id"],
        **dimensions,
    )
    logger.info(
        "Shipment order created",
        order_id=str(order.id),
        shiprocket_order_id=result["provider_order_id"],
        shipment_id=result["shipment_id"],
    )
    return _step_result(order, ShippingStep.CREATE_ADHOC_ORDER, performed=True)


def _assign_awb(order: Order) -> dict:
    progress = order.shipping_progress
    if progress.awb_assigned:
        logger.info("AWB already assigned", order_id=str(order.id), tracking_number=progress.tracking_number)
        return _step_result(order, ShippingStep.ASSIGN_AWB, performed=False)
    if not progress.adhoc_order_created:
        raise IllegalStateError(f"Create the shipment order for order {order.id} before assigning an AWB")

    carrier = get_carrier()
    result = carrier.assign_awb(progress.shiprocket_order_id, progress.shipment_id)
    if result.get("error"):
        raise ExternalProviderError(carrier.name, result["error"])

    order.record_awb(tracking_number=result["tracking_number"], courier_name=result.get("courier_name"))
    logger.info("AWB assigned", order_id=str(order.id), tracking_number=result["tracking_number"])
    return _step_result(order, ShippingStep.ASSIGN_AWB, performed=True)


def _generate_pickup(order: Order) -> dict:
    progress = order.shipping_progress
    if progress.pickup_generated:
        logger.info("Pickup already generated", order_id=str(order.id), pickup_id=progress.pickup_id)
        return _step_result(order, ShippingStep.GENERATE_PICKUP, performed=False)
    if not progress.awb_assigned:
        raise IllegalStateError(f"Assign an AWB for order {order.id} before generating a pickup")

    # Every Ordered row must be able to ship before the provider schedules the pickup.
    order.assert_ready_to_ship()
    ordered = order.items_in(ItemStatus.ORDERED)
    for item in ordered:
        check_transition_preconditions(order, item, item.quantity, ItemStatus.SHIPPED)

    carrier = get_carrier()
    result = carrier.generate_pickup(progress.shiprocket_order_id, progress.shipment_id)
    if result.get("error"):
        raise ExternalProviderError(carrier.name, result["error"])

    note = f"Pickup {result['pickup_id']} generated"
    shipped = [
        transition_order_item(order, item.id, item.quantity, ItemStatus.SHIPPED, note=note)
        for item in ordered
    ]
    shipped_ids = [str(item.id) for item in shipped]
    order.record_pickup(pickup_id=result["pickup_id"], shipped_item_ids=shipped_ids)
    logger.info("Pickup generated", order_id=str(order.id), pickup_id=result["pickup_id"], shipped=len(shipped_ids))
    return _step_result(order, ShippingStep.GENERATE_PICKUP, performed=True, shipped_item_ids=shipped_ids)


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------
@orderflow.command_handler(part_of=Order)
class ShippingSagaHandler:
    def _run(self, order_id, step):
        order = load_order(order_id)
        result = step(order)
        current_domain.repository_for(Order).add(order)
        return result

    @handle(CreateShipmentOrder)
    def create_shipment_order(self, command):
        return self._run(command.order_id, lambda order: _create_shipment_order(order, command))

    @handle(AssignShipmentAwb)
    def assign_awb(self, command):
        return self._run(command.order_id, _assign_awb)

    @handle(GenerateShipmentPickup)
    def generate_pickup(self, command):
        return self._run(command.order_id, _generate_pickup)

    @handle(AdvanceShipping)
    def advance_shipping(self, command):
        def _advance(order):
            step = next_step(shipping_state(order.shipping_progress))
            if step is ShippingStep.CREATE_ADHOC_ORDER:
                return _create_shipment_order(order, command)
            if step is ShippingStep.ASSIGN_AWB:
                return _assign_awb(order)
            if step is ShippingStep.GENERATE_PICKUP:
                return _generate_pickup(order)
            return _step_result(order, ShippingStep.COMPLETE, performed=False)

        return self._run(command.order_id, _advance)

    @handle(ResetShippingProgress)
    def reset_shipping_progress(self, command):
        order = load_order(command.order_id)
        order.reset_shipping(command.reason)
        current_domain.repository_for(Order).add(order)
        logger.warning("Shipping progress reset", order_id=str(order.id), reason=command.reason)


# ---------------------------------------------------------------------------
# Service entry points
# ---------------------------------------------------------------------------
def create_shipment_order(order_id: str, length: float, breadth: float, height: float, weight: float) -> dict:
    """Step 1: create the provider order for the package."""
    command = CreateShipmentOrder(order_id=order_id, length=length, breadth=breadth, height=height, weight=weight)
    return process_for_order(order_id, command)


def assign_awb(order_id: str) -> dict:
    """Step 2: assign the courier and tracking number."""
    return process_for_order(order_id, AssignShipmentAwb(order_id=order_id))


def generate_pickup(order_id: str) -> dict:
    """Step 3: schedule the pickup and ship every Ordered item."""
    return process_for_order(order_id, GenerateShipmentPickup(order_id=order_id))


def advance_shipping(
    order_id: str,
    length: float | None = None,
    breadth: float | None = None,
    height: float | None = None,
    weight: float | None = None,
) -> dict:
    """Run exactly the next pending step. Dimensions are needed only for step 1."""
    command = AdvanceShipping(order_id=order_id, length=length, breadth=breadth, height=height, weight=weight)
    return process_for_order(order_id, command)


def reset_shipping_progress(order_id: str, reason: str) -> None:
    """Compensating action for operators; not exposed over HTTP."""
    process_for_order(order_id, ResetShippingProgress(order_id=order_id, reason=reason))


def shipping_status(order_id: str) -> dict:
    order = load_order(order_id)
    state = shipping_state(order.shipping_progress)
    return {
        "order_id": str(order.id),
        "state": state.value,
        "next_step": next_step(state).value,
        "shipping": shipping_summary(order),
    }
