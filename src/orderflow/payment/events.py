"""Payment transaction events."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from orderflow.domain import orderflow


@orderflow.event(part_of="PaymentTransaction")
class PaymentIntentCreated:
    """A provider order was created and checkout can begin."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_order_id = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    created_at = DateTime(required=True)


@orderflow.event(part_of="PaymentTransaction")
class PaymentCaptured:
    """The provider callback was verified and the payment accepted."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_payment_id = String()
    amount = Float(required=True)
    duplicate = Boolean(default=False)
    captured_at = DateTime(required=True)


@orderflow.event(part_of="PaymentTransaction")
class PaymentRejected:
    """The provider callback was rejected or reported a failed payment."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@orderflow.event(part_of="PaymentTransaction")
class PaymentCancelled:
    """The customer abandoned checkout."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@orderflow.event(part_of="PaymentTransaction")
class PaymentRefunded:
    """The provider refunded the captured payment."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_id = String(required=True)
    amount = Float(required=True)
    refunded_at = DateTime(required=True)


@orderflow.event(part_of="PaymentTransaction")
class RefundAllocatedToItem:
    """Part of a refund was matched to an order item that reached Refunded."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)
    amount = Float(required=True)
    allocated_at = DateTime(required=True)
