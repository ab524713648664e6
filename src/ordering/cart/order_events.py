"""Cart clearing: reacts to OrderConfirmed by removing the purchased cart items.

Events are delivered at least once, so the handler relies on the cart
remembering which orders it already cleared.
"""

import json

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from ordering.cart.cart import ShoppingCart
from ordering.cart.management import find_cart_for_user
from ordering.domain import ordering
from ordering.order.events import OrderConfirmed

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=ShoppingCart, stream_category="ordering::order")
class OrderConfirmedCartHandler:
    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        cart = find_cart_for_user(event.user_id)
        if cart is None:
            logger.info("No cart to clear for confirmed order", order_id=str(event.order_id))
            return

        if cart.has_cleared(event.order_id):
            logger.info("Cart already cleared for order", order_id=str(event.order_id), cart_id=str(cart.id))
            return

        item_ids = json.loads(event.cart_item_ids) if event.cart_item_ids else []
        if not item_ids:
            logger.info("Order was not placed from the cart", order_id=str(event.order_id))
            return

        removed = cart.clear_for_order(event.order_id, item_ids)
        current_domain.repository_for(ShoppingCart).add(cart)

        logger.info(
            "Cleared cart items for confirmed order",
            order_id=str(event.order_id),
            cart_id=str(cart.id),
            removed_count=len(removed),
        )
