"""Repository lookups that translate missing orders into ``NotFoundError``."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.exceptions import NotFoundError
from orderflow.order.order import Order


def load_order(order_id: str) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise NotFoundError(f"Order {order_id} not found") from None


def all_orders() -> list[Order]:
    return current_domain.repository_for(Order)._dao.query.all().items
