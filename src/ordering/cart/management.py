"""Cart management: commands and handler."""

from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.domain import ordering


def find_cart_for_user(user_id) -> ShoppingCart | None:
    carts = current_domain.repository_for(ShoppingCart)._dao.query.filter(user_id=str(user_id)).all().items
    return carts[0] if carts else None


@ordering.command(part_of="ShoppingCart")
class CreateCart:
    """Create the shopping cart of a user. Returns the existing cart when there is one."""

    user_id = Identifier(required=True)


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        existing = find_cart_for_user(command.user_id)
        if existing is not None:
            return str(existing.id)

        cart = ShoppingCart.create(user_id=command.user_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        item_id = cart.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
        )
        repo.add(cart)
        return item_id
