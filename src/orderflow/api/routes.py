"""FastAPI routes for the order fulfillment domain — orders, returns, payments and shipping.

Routes call the service entry points, which take the per-order lock around
command processing, rather than calling ``current_domain.process`` directly.
The handlers are plain functions: provider calls block, so FastAPI runs them
in its threadpool and one slow provider request never stalls other orders.
"""

import os

from fastapi import APIRouter, HTTPException

from orderflow.api.schemas import (
    AdvanceShippingRequest,
    ApplyTransitionRequest,
    AvailableTransitionsResponse,
    CancelPaymentRequest,
    ConfigureGatewayRequest,
    CreatePaymentIntentRequest,
    GatewayConfigResponse,
    ItemQuantityRequest,
    OrderIdResponse,
    OrderItemResponse,
    PackageDimensionsRequest,
    PaymentIntentResponse,
    PaymentOutcomeResponse,
    PlaceOrderRequest,
    RefundItemRequest,
    RefundPaymentRequest,
    RefundResponse,
    RequestReturnRequest,
    ShippingStatusResponse,
    ShippingStepResponse,
    UpdatePaymentConfigRequest,
    VerifyPaymentRequest,
)
from orderflow.gateway import get_gateway
from orderflow.gateway.fake_adapter import FakeGateway
from orderflow.order import queries as order_queries
from orderflow.order import returns
from orderflow.order.placement import place_order
from orderflow.order.transition import apply_transition, item_transitions
from orderflow.payment import queries as payment_queries
from orderflow.payment.configuration import get_payment_config, update_payment_config
from orderflow.payment.config import reload_payment_config
from orderflow.payment.intent import create_payment_intent
from orderflow.payment.loading import load_transaction
from orderflow.payment.refund import refund_payment
from orderflow.payment.verification import cancel_payment, verify_payment
from orderflow.shipment import orchestration

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
def create_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Place a new order; every item starts as Ordered."""
    order_id = place_order(
        customer_id=body.customer_id,
        items=[item.model_dump() for item in body.items],
        shipping_address=body.shipping_address.model_dump(),
        payment_method=body.payment_method,
    )
    return OrderIdResponse(order_id=order_id)


@order_router.get("")
def list_orders(
    customer_id: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
) -> list[dict]:
    """Orders, newest first, by customer, item status or payment status."""
    return order_queries.list_orders(customer_id=customer_id, status=status, payment_status=payment_status)


@order_router.get("/stats")
def order_stats() -> dict:
    return order_queries.order_stats()


@order_router.get("/{order_id}")
def get_order(order_id: str) -> dict:
    """Order detail with item rows grouped by status."""
    return order_queries.order_detail(order_id)


@order_router.get("/{order_id}/items/{item_id}/transitions", response_model=AvailableTransitionsResponse)
def get_available_transitions(order_id: str, item_id: str) -> AvailableTransitionsResponse:
    """Permitted next statuses of an item, with their action labels."""
    return AvailableTransitionsResponse(**item_transitions(order_id, item_id))


@order_router.post("/{order_id}/items/{item_id}/transitions", response_model=OrderItemResponse)
def post_transition(order_id: str, item_id: str, body: ApplyTransitionRequest) -> OrderItemResponse:
    """Move a quantity of an item to a new status (admin)."""
    result = apply_transition(order_id, item_id, body.quantity, body.target_status, body.note)
    return OrderItemResponse(**result)


@order_router.get("/{order_id}/items/{item_id}/history")
def get_item_history(order_id: str, item_id: str) -> list[dict]:
    return order_queries.item_history(order_id, item_id)


@order_router.post("/{order_id}/items/{item_id}/cancel", response_model=OrderItemResponse)
def cancel_item(order_id: str, item_id: str, body: ItemQuantityRequest) -> OrderItemResponse:
    """Cancel a quantity of an item that has not shipped yet."""
    return OrderItemResponse(**returns.cancel_item(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/return", response_model=OrderItemResponse)
def request_return(order_id: str, item_id: str, body: RequestReturnRequest) -> OrderItemResponse:
    """Request a return for a quantity of a delivered item."""
    return OrderItemResponse(**returns.request_return(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/return/withdraw", response_model=OrderItemResponse)
def withdraw_return(order_id: str, item_id: str, body: ItemQuantityRequest) -> OrderItemResponse:
    """Withdraw a return request (customer)."""
    return OrderItemResponse(**returns.cancel_return(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/return/approve", response_model=OrderItemResponse)
def approve_return(order_id: str, item_id: str, body: ItemQuantityRequest) -> OrderItemResponse:
    """Approve a return; the item is on its way back (admin)."""
    return OrderItemResponse(**returns.approve_return(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/return/receive", response_model=OrderItemResponse)
def receive_return(order_id: str, item_id: str, body: ItemQuantityRequest) -> OrderItemResponse:
    """Record that a returned item arrived (admin)."""
    return OrderItemResponse(**returns.receive_return(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/return/reject", response_model=OrderItemResponse)
def reject_return(order_id: str, item_id: str, body: ItemQuantityRequest) -> OrderItemResponse:
    """Reject a return request (admin)."""
    return OrderItemResponse(**returns.cancel_return(order_id, item_id, body.quantity, body.note))


@order_router.post("/{order_id}/items/{item_id}/refund", response_model=OrderItemResponse)
def refund_item(order_id: str, item_id: str, body: RefundItemRequest) -> OrderItemResponse:
    """Refund a cancelled or returned item (admin)."""
    result = returns.refund_item(order_id, item_id, body.quantity, amount=body.amount, note=body.note)
    return OrderItemResponse(**result)


# ---------------------------------------------------------------------------
# Return Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.get("")
def list_returns(status: str | None = None) -> list[dict]:
    """Item rows currently in a return status."""
    return returns.return_queue(status)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/intents", status_code=201, response_model=PaymentIntentResponse)
def create_intent(body: CreatePaymentIntentRequest) -> PaymentIntentResponse:
    """Create a provider order and a pending transaction for checkout."""
    return PaymentIntentResponse(**create_payment_intent(body.order_id, body.amount, body.provider))


@payment_router.post("/verify", response_model=PaymentOutcomeResponse)
def verify(body: VerifyPaymentRequest) -> PaymentOutcomeResponse:
    """Verify a checkout callback and settle its transaction."""
    return PaymentOutcomeResponse(**verify_payment(body.transaction_id, body.payload))


@payment_router.post("/{transaction_id}/cancel", response_model=PaymentOutcomeResponse)
def cancel(transaction_id: str, body: CancelPaymentRequest) -> PaymentOutcomeResponse:
    """Cancel a pending transaction when the customer leaves checkout."""
    return PaymentOutcomeResponse(**cancel_payment(transaction_id, body.reason))


@payment_router.post("/{transaction_id}/refund", response_model=RefundResponse)
def refund(transaction_id: str, body: RefundPaymentRequest) -> RefundResponse:
    """Refund a captured payment through its provider (admin)."""
    return RefundResponse(**refund_payment(transaction_id, body.amount, body.reason))


@payment_router.get("")
def list_transactions(
    order_id: str | None = None,
    status: str | None = None,
    provider: str | None = None,
) -> list[dict]:
    return payment_queries.list_transactions(order_id=order_id, status=status, provider=provider)


@payment_router.get("/stats")
def stats() -> dict:
    return payment_queries.payment_stats()


@payment_router.get("/config")
def get_config() -> dict:
    return get_payment_config().to_dict()


@payment_router.put("/config")
def put_config(body: UpdatePaymentConfigRequest) -> dict:
    """Save the payment configuration and make it active (admin)."""
    changes = body.model_dump(exclude_none=True)
    return update_payment_config(**changes).to_dict()


@payment_router.post("/config/reload")
def reload_config() -> dict:
    return reload_payment_config().to_dict()


@payment_router.post("/gateway/{provider}/configure", response_model=GatewayConfigResponse)
def configure_gateway(provider: str, body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway(provider)
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        provider=provider,
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )


@payment_router.get("/{transaction_id}")
def get_transaction(transaction_id: str) -> dict:
    return payment_queries.transaction_summary(load_transaction(transaction_id))


# ---------------------------------------------------------------------------
# Shipping Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.get("/{order_id}", response_model=ShippingStatusResponse)
def get_shipping_status(order_id: str) -> ShippingStatusResponse:
    """Where the order stands in the shipping flow and which step is next."""
    return ShippingStatusResponse(**orchestration.shipping_status(order_id))


@shipping_router.post("/{order_id}/adhoc-order", response_model=ShippingStepResponse)
def create_adhoc_order(order_id: str, body: PackageDimensionsRequest) -> ShippingStepResponse:
    result = orchestration.create_shipment_order(order_id, body.length, body.breadth, body.height, body.weight)
    return ShippingStepResponse(**result)


@shipping_router.post("/{order_id}/awb", response_model=ShippingStepResponse)
def assign_awb(order_id: str) -> ShippingStepResponse:
    return ShippingStepResponse(**orchestration.assign_awb(order_id))


@shipping_router.post("/{order_id}/pickup", response_model=ShippingStepResponse)
def generate_pickup(order_id: str) -> ShippingStepResponse:
    return ShippingStepResponse(**orchestration.generate_pickup(order_id))


@shipping_router.post("/{order_id}/next-step", response_model=ShippingStepResponse)
def advance(order_id: str, body: AdvanceShippingRequest) -> ShippingStepResponse:
    """Run exactly the next pending shipping step."""
    result = orchestration.advance_shipping(order_id, body.length, body.breadth, body.height, body.weight)
    return ShippingStepResponse(**result)
