import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain

DEFAULT_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "email": "asha@example.com",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
}

DEFAULT_ITEMS = [
    {"product_id": "prod-1", "color_id": "black", "size": "M", "quantity": 3, "unit_amount": 100.0},
    {"product_id": "prod-2", "color_id": "white", "size": "L", "quantity": 1, "unit_amount": 250.0},
]


@pytest.fixture(scope="session")
def orderflow_bed():
    from orderflow.domain import orderflow

    bed = DomainFixture(orderflow)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(orderflow_bed):
    with orderflow_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def online_payments():
    """Enable online payments with Razorpay as the default provider."""
    from orderflow.payment.configuration import update_payment_config

    return update_payment_config(online_payment_enabled=True, cod_enabled=True, default_provider="razorpay")


@pytest.fixture()
def place_cod_order():
    from orderflow.order.placement import place_order

    def _place(items=None, customer_id="cust-001"):
        return place_order(
            customer_id=customer_id,
            items=items or DEFAULT_ITEMS,
            shipping_address=DEFAULT_ADDRESS,
            payment_method="COD",
        )

    return _place


@pytest.fixture()
def place_online_order(online_payments):
    from orderflow.order.placement import place_order

    def _place(items=None, customer_id="cust-001"):
        return place_order(
            customer_id=customer_id,
            items=items or DEFAULT_ITEMS,
            shipping_address=DEFAULT_ADDRESS,
            payment_method="ONLINE",
        )

    return _place


@pytest.fixture()
def paid_online_order(place_online_order):
    """Place an online order and settle it with a valid provider callback.

    Returns ``(order_id, transaction_id)``.
    """
    from orderflow.gateway import get_gateway
    from orderflow.order.loading import load_order
    from orderflow.payment.intent import create_payment_intent
    from orderflow.payment.verification import verify_payment

    def _pay(items=None):
        order_id = place_online_order(items)
        total = load_order(order_id).grand_total
        intent = create_payment_intent(order_id, total)
        payload = get_gateway("razorpay").callback_payload(intent["provider_order_id"], amount=total)
        verify_payment(intent["transaction_id"], payload)
        return order_id, intent["transaction_id"]

    return _pay


@pytest.fixture()
def item_id_for():
    """Look up the id of the row holding ``product_id`` in ``status``."""
    from orderflow.order.loading import load_order

    def _find(order_id, product_id="prod-1", status="Ordered"):
        order = load_order(order_id)
        return next(
            str(i.id) for i in order.items if str(i.product_id) == product_id and i.order_status == status
        )

    return _find
