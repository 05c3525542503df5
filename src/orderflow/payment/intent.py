"""Payment intent creation — command, handler and service entry point.

Creating an intent validates the order and the active payment configuration,
creates the provider-side order and records a pending transaction. Nothing
is persisted when the provider call fails.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.exceptions import ExternalProviderError, IllegalStateError
from orderflow.gateway import get_gateway
from orderflow.order.loading import load_order
from orderflow.order.order import Order, OrderPaymentStatus
from orderflow.payment.config import PaymentConfigSnapshot, snapshot_from_payload, snapshot_payload
from orderflow.payment.transaction import PaymentTransaction, new_transaction_id
from orderflow.utils.locking import process_for_order

logger = structlog.get_logger(__name__)


@orderflow.command(part_of="PaymentTransaction")
class CreatePaymentIntent:
    order_id = Identifier(required=True)
    amount = Float(required=True)
    provider = String(max_length=20)
    payment_config = Text()  # JSON: payment configuration snapshot to validate against


@orderflow.command_handler(part_of=PaymentTransaction)
class PaymentIntentHandler:
    @handle(CreatePaymentIntent)
    def create_payment_intent(self, command):
        order = load_order(command.order_id)
        if not order.is_online:
            raise IllegalStateError(f"Order {order.id} is cash-on-delivery and takes no online payment")
        if order.payment_captured:
            raise IllegalStateError(f"Order {order.id} is already paid")

        config = snapshot_from_payload(command.payment_config)
        provider = config.resolve_provider(command.provider)
        setting = config.validate_intent(command.amount, provider)
        if round(command.amount, 2) != order.grand_total:
            raise ValidationError(
                {"amount": [f"Amount {command.amount} does not match the order total {order.grand_total}"]}
            )

        transaction_id = new_transaction_id()
        address = order.shipping_address
        result = get_gateway(provider).create_order(
            amount=command.amount,
            currency=setting.currency,
            receipt=transaction_id,
            customer={
                "customer_id": str(order.customer_id),
                "name": address.name if address else None,
                "email": address.email if address else None,
                "phone": address.phone if address else None,
            },
        )
        if not result.success:
            logger.warning(
                "Payment provider rejected order creation",
                order_id=str(order.id),
                provider=provider,
                reason=result.failure_reason,
            )
            raise ExternalProviderError(provider, result.failure_reason or "Order creation failed")

        txn = PaymentTransaction.open(
            transaction_id=transaction_id,
            order_id=str(order.id),
            provider=provider,
            provider_order_id=result.provider_order_id,
            amount=command.amount,
            currency=setting.currency,
        )
        current_domain.repository_for(PaymentTransaction).add(txn)

        if order.payment_status == OrderPaymentStatus.FAILED.value:
            order.reopen_payment()
            current_domain.repository_for(Order).add(order)

        logger.info(
            "Payment intent created",
            order_id=str(order.id),
            transaction_id=transaction_id,
            provider=provider,
            amount=command.amount,
        )
        return {
            "transaction_id": transaction_id,
            "order_id": str(order.id),
            "provider": provider,
            "provider_order_id": result.provider_order_id,
            "amount": command.amount,
            "currency": setting.currency,
            "checkout": dict(result.checkout),
        }


def create_payment_intent(
    order_id: str,
    amount: float,
    provider: str | None = None,
    config: PaymentConfigSnapshot | None = None,
) -> dict:
    """Create a pending payment transaction and return client-safe checkout data.

    The intent is validated against ``config``, or the active payment
    configuration snapshot when omitted.
    """
    command = CreatePaymentIntent(
        order_id=order_id,
        amount=amount,
        provider=provider,
        payment_config=snapshot_payload(config),
    )
    return process_for_order(order_id, command)
