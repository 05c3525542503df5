"""Repository lookups for payment transactions."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.exceptions import NotFoundError
from orderflow.payment.transaction import PaymentTransaction


def load_transaction(transaction_id: str) -> PaymentTransaction:
    try:
        return current_domain.repository_for(PaymentTransaction).get(transaction_id)
    except ObjectNotFoundError:
        raise NotFoundError(f"Payment transaction {transaction_id} not found") from None


def order_transaction(order) -> PaymentTransaction | None:
    """The transaction that paid ``order``, if a payment was accepted."""
    if not order.transaction_id:
        return None
    return load_transaction(order.transaction_id)


def transactions_matching(**filters) -> list[PaymentTransaction]:
    dao = current_domain.repository_for(PaymentTransaction)._dao
    query = dao.query.filter(**filters) if filters else dao.query
    return query.all().items
