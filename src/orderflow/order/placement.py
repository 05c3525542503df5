"""Order placement — command, handler and service entry point."""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order.order import Order
from orderflow.payment.config import PaymentConfigSnapshot, snapshot_from_payload, snapshot_payload


@orderflow.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    shipping_address = Text(required=True)  # JSON: address dict
    payment_method = String(required=True, max_length=10)
    payment_config = Text()  # JSON: payment configuration snapshot to validate against


@orderflow.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        shipping_address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )

        snapshot_from_payload(command.payment_config).validate_payment_method(command.payment_method)

        order = Order.place(
            customer_id=command.customer_id,
            items_data=items_data,
            shipping_address=shipping_address,
            payment_method=command.payment_method,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)


def place_order(
    customer_id: str,
    items: list[dict],
    shipping_address: dict,
    payment_method: str,
    config: PaymentConfigSnapshot | None = None,
) -> str:
    """Place an order and return its id.

    ``config`` is the payment configuration snapshot that decides whether
    the payment method is accepted; the active snapshot when omitted.
    """
    command = PlaceOrder(
        customer_id=customer_id,
        items=json.dumps(items),
        shipping_address=json.dumps(shipping_address),
        payment_method=payment_method,
        payment_config=snapshot_payload(config),
    )
    return current_domain.process(command, asynchronous=False)
