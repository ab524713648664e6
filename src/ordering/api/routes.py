"""FastAPI routes for the Ordering domain: orders, payments and carts."""

from fastapi import APIRouter, Query
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AddToCartRequest,
    CancelOrderItemsRequest,
    CancelOrderRequest,
    CartIdResponse,
    CartItemIdResponse,
    CartItemResponse,
    CartResponse,
    ConfirmPaymentRequest,
    CreateCartRequest,
    CreateOrderRequest,
    FailPaymentRequest,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    PaymentResponse,
    PaymentSessionResponse,
    PreparePaymentRequest,
    ShippingAddressSchema,
    SweepResponse,
)
from ordering.cart.cart import ShoppingCart
from ordering.cart.management import AddToCart, CreateCart
from ordering.checkout.orchestrator import OrderOrchestrator
from ordering.checkout.sweep import PaymentExpirySweeper, PaymentReconciler
from ordering.order.order import Order
from ordering.order.queries import orders_for_product, orders_for_user
from ordering.payment.payment import Payment
from ordering.payment.queries import find_payment_for_order


def _order_response(order: Order, payment: Payment | None) -> OrderResponse:
    address = order.shipping_address
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        user_id=str(order.user_id),
        status=order.status,
        total_amount=order.total_amount,
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                product_title=item.product_title,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
                item_status=item.item_status,
            )
            for item in order.items
        ],
        shipping_address=ShippingAddressSchema(
            recipient_name=address.recipient_name,
            recipient_phone=address.recipient_phone,
            zip_code=address.zip_code,
            address=address.address,
            memo=address.memo,
        )
        if address
        else None,
        cancellation_reason=order.cancellation_reason,
        confirmed_at=order.confirmed_at,
        cancelled_at=order.cancelled_at,
        payment=_payment_response(payment) if payment else None,
    )


def _payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=str(payment.id),
        status=payment.status,
        amount=payment.amount,
        payment_key=payment.payment_key,
        pg_provider=payment.pg_provider,
        approved_at=payment.approved_at,
        fail_code=payment.fail_code,
        fail_message=payment.fail_message,
        refund_requested=payment.refund_requested or 0,
        cancelled_amount=payment.cancelled_amount or 0,
        reconciliation_pending=bool(payment.reconciliation_pending),
    )


def _order_with_payment(orchestrator: OrderOrchestrator, order_id: str) -> OrderResponse:
    order = orchestrator.get_order(order_id)
    return _order_response(order, orchestrator.get_payment(order_id))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(body: CreateOrderRequest) -> OrderResponse:
    placed = OrderOrchestrator().create_order(
        user_id=body.user_id,
        shipping_address=body.shipping_address.model_dump(),
        items=[item.model_dump() for item in body.items],
        cart_item_ids=body.cart_item_ids,
    )
    return _order_response(placed.order, placed.payment)


@order_router.get("", response_model=OrderListResponse)
def list_orders(
    user_id: str,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> OrderListResponse:
    """A buyer's orders, newest first."""
    results = orders_for_user(user_id, page=page, per_page=per_page)
    return OrderListResponse(
        items=[_order_response(order, find_payment_for_order(str(order.id))) for order in results.items],
        total=results.total,
        page=page,
        per_page=per_page,
    )


@order_router.get("/by-product/{product_id}", response_model=list[OrderResponse])
def list_orders_for_product(product_id: str) -> list[OrderResponse]:
    return [_order_response(order, find_payment_for_order(str(order.id))) for order in orders_for_product(product_id)]


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str) -> OrderResponse:
    return _order_with_payment(OrderOrchestrator(), order_id)


@order_router.post("/{order_id}/payment/ready", response_model=PaymentSessionResponse)
def prepare_payment(order_id: str, body: PreparePaymentRequest) -> PaymentSessionResponse:
    session = OrderOrchestrator().prepare_payment(order_id, amount=body.amount)
    return PaymentSessionResponse(
        order_id=session.order_id,
        amount=session.amount,
        order_name=session.order_name,
        customer_name=session.customer_name,
        client_key=session.client_key,
        success_url=session.success_url,
        fail_url=session.fail_url,
    )


@order_router.post("/{order_id}/payment/confirm", response_model=OrderResponse)
def confirm_payment(order_id: str, body: ConfirmPaymentRequest) -> OrderResponse:
    orchestrator = OrderOrchestrator()
    orchestrator.confirm_payment(order_id, payment_key=body.payment_key, amount=body.amount)
    return _order_with_payment(orchestrator, order_id)


@order_router.post("/{order_id}/payment/fail", response_model=OrderResponse)
def fail_payment(order_id: str, body: FailPaymentRequest) -> OrderResponse:
    orchestrator = OrderOrchestrator()
    orchestrator.fail_payment(order_id, fail_code=body.code, fail_message=body.message)
    return _order_with_payment(orchestrator, order_id)


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    orchestrator = OrderOrchestrator()
    orchestrator.cancel_order(order_id, reason=body.reason)
    return _order_with_payment(orchestrator, order_id)


@order_router.post("/{order_id}/items/cancel", response_model=OrderResponse)
def cancel_order_items(order_id: str, body: CancelOrderItemsRequest) -> OrderResponse:
    orchestrator = OrderOrchestrator()
    orchestrator.cancel_order_items(order_id, item_ids=body.item_ids, reason=body.reason)
    return _order_with_payment(orchestrator, order_id)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/payments/expire", response_model=SweepResponse)
def expire_payments() -> SweepResponse:
    """Cancel orders whose payment was never completed. Called by an external scheduler."""
    return SweepResponse(processed=PaymentExpirySweeper(OrderOrchestrator()).run())


@maintenance_router.post("/payments/reconcile", response_model=SweepResponse)
def reconcile_payments() -> SweepResponse:
    """Retry refunds the payment processor has not acknowledged yet."""
    return SweepResponse(processed=PaymentReconciler(OrderOrchestrator()).run())


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
def create_cart(body: CreateCartRequest) -> CartIdResponse:
    result = current_domain.process(CreateCart(user_id=body.user_id), asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.post("/{cart_id}/items", status_code=201, response_model=CartItemIdResponse)
def add_cart_item(cart_id: str, body: AddToCartRequest) -> CartItemIdResponse:
    command = AddToCart(
        cart_id=cart_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
    )
    item_id = current_domain.process(command, asynchronous=False)
    return CartItemIdResponse(item_id=item_id)


@cart_router.get("/{cart_id}", response_model=CartResponse)
def get_cart(cart_id: str) -> CartResponse:
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    return CartResponse(
        cart_id=str(cart.id),
        user_id=str(cart.user_id),
        items=[
            CartItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                quantity=item.quantity,
            )
            for item in cart.items
        ],
    )
