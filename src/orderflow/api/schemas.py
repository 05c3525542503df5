"""Pydantic request/response schemas for the order fulfillment API.

These are external contracts, kept separate from the internal Protean
commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    color_id: str
    size: str
    quantity: int = Field(gt=0)
    unit_amount: float = Field(ge=0)


class ShippingAddressSchema(BaseModel):
    name: str
    phone: str | None = None
    email: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str = "India"


class ItemQuantityRequest(BaseModel):
    quantity: int
    note: str | None = None


class ProviderSettingSchema(BaseModel):
    name: str
    is_enabled: bool | None = None
    currency: str | None = None
    settings: dict | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_id: str
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    payment_method: str  # COD, ONLINE

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "items": [
                        {
                            "product_id": "prod-001",
                            "color_id": "black",
                            "size": "M",
                            "quantity": 2,
                            "unit_amount": 499.0,
                        }
                    ],
                    "shipping_address": {
                        "name": "Asha Rao",
                        "phone": "9876543210",
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "Karnataka",
                        "postal_code": "560001",
                    },
                    "payment_method": "COD",
                }
            ]
        }
    }


class ApplyTransitionRequest(BaseModel):
    quantity: int
    target_status: str
    note: str | None = None


class RequestReturnRequest(BaseModel):
    quantity: int
    note: str = Field(min_length=1)


class RefundItemRequest(BaseModel):
    quantity: int
    amount: float | None = Field(default=None, gt=0)
    note: str | None = None


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class CreatePaymentIntentRequest(BaseModel):
    order_id: str
    amount: float = Field(gt=0)
    provider: str | None = None


class VerifyPaymentRequest(BaseModel):
    transaction_id: str
    payload: dict


class CancelPaymentRequest(BaseModel):
    reason: str | None = None


class RefundPaymentRequest(BaseModel):
    amount: float | None = Field(default=None, gt=0)
    reason: str | None = None


class UpdatePaymentConfigRequest(BaseModel):
    online_payment_enabled: bool | None = None
    cod_enabled: bool | None = None
    default_provider: str | None = None
    min_amount: float | None = Field(default=None, ge=0)
    max_amount: float | None = Field(default=None, ge=0)
    providers: list[ProviderSettingSchema] | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Provider unavailable"


# ---------------------------------------------------------------------------
# Shipping Request Schemas
# ---------------------------------------------------------------------------
class PackageDimensionsRequest(BaseModel):
    length: float
    breadth: float
    height: float
    weight: float


class AdvanceShippingRequest(BaseModel):
    length: float | None = None
    breadth: float | None = None
    height: float | None = None
    weight: float | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class TransitionOption(BaseModel):
    status: str
    label: str


class AvailableTransitionsResponse(BaseModel):
    item_id: str
    order_status: str
    quantity: int
    transitions: list[TransitionOption]


class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    color_id: str
    size: str
    quantity: int
    unit_amount: float
    total_amount: float
    order_status: str
    parent_item_id: str | None = None


class PaymentIntentResponse(BaseModel):
    transaction_id: str
    order_id: str
    provider: str
    provider_order_id: str
    amount: float
    currency: str
    checkout: dict


class PaymentOutcomeResponse(BaseModel):
    transaction_id: str
    order_id: str
    status: str
    signature_valid: bool
    failure_reason: str | None = None
    duplicate_capture: bool = False


class RefundResponse(BaseModel):
    transaction_id: str
    refund_id: str
    refunded_amount: float
    status: str


class ShippingStepResponse(BaseModel):
    order_id: str
    step: str
    performed: bool
    state: str
    next_step: str
    shipping: dict
    shipped_item_ids: list[str] = []


class ShippingStatusResponse(BaseModel):
    order_id: str
    state: str
    next_step: str
    shipping: dict


class GatewayConfigResponse(BaseModel):
    provider: str
    gateway: str
    should_succeed: bool
    failure_reason: str
