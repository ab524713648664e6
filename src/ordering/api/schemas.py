"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class ShippingAddressSchema(BaseModel):
    recipient_name: str
    recipient_phone: str | None = None
    zip_code: str
    address: str
    memo: str | None = None


class OrderLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    product_title: str | None = None
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    user_id: str
    shipping_address: ShippingAddressSchema
    items: list[OrderLineSchema] = Field(min_length=1)
    cart_item_ids: list[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "shipping_address": {
                        "recipient_name": "Kim Minji",
                        "recipient_phone": "010-1234-5678",
                        "zip_code": "06236",
                        "address": "123 Teheran-ro, Gangnam-gu, Seoul",
                    },
                    "items": [
                        {"product_id": "prod-A", "quantity": 2, "unit_price": 1000},
                        {"product_id": "prod-B", "quantity": 1, "unit_price": 500},
                    ],
                    "cart_item_ids": [],
                }
            ]
        }
    }


class PreparePaymentRequest(BaseModel):
    amount: int = Field(ge=0)


class ConfirmPaymentRequest(BaseModel):
    payment_key: str
    amount: int | None = None


class FailPaymentRequest(BaseModel):
    code: str
    message: str


class CancelOrderRequest(BaseModel):
    reason: str = "Cancelled by customer"


class CancelOrderItemsRequest(BaseModel):
    item_ids: list[str] = Field(min_length=1)
    reason: str = "Cancelled by customer"


# ---------------------------------------------------------------------------
# Order Response Schemas
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    product_title: str | None = None
    quantity: int
    unit_price: int
    subtotal: int
    item_status: str


class PaymentResponse(BaseModel):
    payment_id: str
    status: str
    amount: int
    payment_key: str | None = None
    pg_provider: str | None = None
    approved_at: datetime | None = None
    fail_code: str | None = None
    fail_message: str | None = None
    refund_requested: int = 0
    cancelled_amount: int = 0
    reconciliation_pending: bool = False


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    user_id: str
    status: str
    total_amount: int
    items: list[OrderItemResponse]
    shipping_address: ShippingAddressSchema | None = None
    cancellation_reason: str | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    payment: PaymentResponse | None = None


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    page: int
    per_page: int


class PaymentSessionResponse(BaseModel):
    order_id: str
    amount: int
    order_name: str
    customer_name: str
    client_key: str
    success_url: str
    fail_url: str


class SweepResponse(BaseModel):
    processed: int


# ---------------------------------------------------------------------------
# Cart Schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    user_id: str


class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1, default=1)


class CartIdResponse(BaseModel):
    cart_id: str


class CartItemIdResponse(BaseModel):
    item_id: str


class CartItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    quantity: int


class CartResponse(BaseModel):
    cart_id: str
    user_id: str
    items: list[CartItemResponse]
