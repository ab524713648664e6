"""Domain events for the Order aggregate.

Events are immutable facts raised when an order changes state. They are
persisted in the event store under the ``ordering::order`` stream and
consumed by event handlers such as the cart clearing handler.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """An order was placed with its stock reserved and a payment opened."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    order_number = String(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    shipping_address = Text(required=True)  # JSON: address dict
    total_amount = Integer(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCreated:
    """Payment for the order settled. Signals downstream that the order exists for real."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Integer(required=True)


@ordering.event(part_of="Order")
class OrderConfirmed:
    """The order was confirmed after payment. Carries the cart lines to clear."""

    __version__ = 1

    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    cart_item_ids = Text()  # JSON: list of cart item IDs
    confirmed_at = DateTime()


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled by the customer, by the system, or after a payment failure."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier()
    reason = String(max_length=500)
    previous_status = String(max_length=50)
    cancelled_at = DateTime()


@ordering.event(part_of="Order")
class OrderItemsCancelled:
    """Some items of a confirmed order were cancelled. The order itself stays CONFIRMED."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier()
    item_ids = Text(required=True)  # JSON: list of cancelled item IDs
    refund_amount = Integer(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime()
