"""Shopping Cart aggregate (CQRS): the items a user selected before ordering.

Orders reference cart items by ID. The cart keeps them until the order is
confirmed, at which point the confirmed items are cleared.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, Text

from ordering.cart.events import CartItemAdded, CartItemsCleared
from ordering.domain import ordering


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@ordering.aggregate
class ShoppingCart:
    user_id = Identifier(required=True)
    items = HasMany(CartItem)
    cleared_orders = Text()  # JSON array of order IDs already cleared
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            cleared_orders=json.dumps([]),
            created_at=now,
            updated_at=now,
        )

    def add_item(self, product_id, variant_id, quantity):
        """Add an item to the cart (or increase quantity if already present)."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        variant = str(variant_id) if variant_id else None
        existing = next(
            (
                i
                for i in self.items
                if str(i.product_id) == str(product_id) and (str(i.variant_id) if i.variant_id else None) == variant
            ),
            None,
        )

        now = datetime.now(UTC)
        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(product_id=product_id, variant_id=variant, quantity=quantity, added_at=now)
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=str(product_id),
                variant_id=variant,
                quantity=quantity,
            )
        )
        return item_id

    def has_cleared(self, order_id) -> bool:
        return str(order_id) in json.loads(self.cleared_orders or "[]")

    def clear_for_order(self, order_id, item_ids):
        """Remove the items bought in ``order_id``.

        Clearing the same order twice does nothing the second time.
        """
        if self.has_cleared(order_id):
            return []

        wanted = {str(item_id) for item_id in item_ids}
        removed = [item for item in self.items if str(item.id) in wanted]
        for item in removed:
            self.remove_items(item)

        cleared = json.loads(self.cleared_orders or "[]")
        cleared.append(str(order_id))
        self.cleared_orders = json.dumps(cleared)
        self.updated_at = datetime.now(UTC)

        removed_ids = [str(item.id) for item in removed]
        self.raise_(
            CartItemsCleared(
                cart_id=str(self.id),
                order_id=str(order_id),
                item_ids=json.dumps(removed_ids),
            )
        )
        return removed_ids
