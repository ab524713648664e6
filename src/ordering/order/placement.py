"""Order placement: command and handler.

Stock has already been reserved by the time this command runs. The handler
persists the order, its items with their reservation tokens, and the READY
payment in one unit of work, so either all of them exist or none do.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import PaymentStateConflict
from ordering.order.order import Order
from ordering.payment.payment import Payment
from ordering.payment.queries import find_payment_for_order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: validated lines with reservation tokens
    shipping_address = Text(required=True)  # JSON: address dict
    cart_item_ids = Text()  # JSON: list of cart item IDs
    pg_provider = String(max_length=50, default="TOSS")


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        if find_payment_for_order(command.order_id) is not None:
            raise PaymentStateConflict({"order_id": [f"A payment already exists for order {command.order_id}"]})

        order = Order.place(
            order_id=command.order_id,
            user_id=command.user_id,
            shipping_address=json.loads(command.shipping_address),
            lines=json.loads(command.items),
            cart_item_ids=json.loads(command.cart_item_ids) if command.cart_item_ids else [],
        )
        payment = Payment.ready(
            order_id=str(order.id),
            amount=order.total_amount,
            pg_provider=command.pg_provider or "TOSS",
        )

        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(Payment).add(payment)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=order.total_amount,
            item_count=len(order.items),
        )
        return str(order.id)
