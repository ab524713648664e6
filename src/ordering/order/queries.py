"""Read-side lookups for orders: a buyer's order history and orders by product."""

from protean.core.queryset import ResultSet
from protean.utils.globals import current_domain

from ordering.order.order import Order, OrderItem
from ordering.utils.paging import fetch_all


def orders_for_user(user_id: str, page: int = 1, per_page: int = 20) -> ResultSet:
    """One page of a buyer's orders, newest first. ``total`` counts every order they placed."""
    page = max(page, 1)
    return (
        current_domain.repository_for(Order)
        ._dao.query.filter(user_id=str(user_id))
        .order_by("-created_at")
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )


def orders_for_product(product_id: str) -> list[Order]:
    """Every order with at least one line for ``product_id``, newest first."""
    items = fetch_all(current_domain.repository_for(OrderItem)._dao.query.filter(product_id=str(product_id)))
    order_ids = list(dict.fromkeys(str(item.order_id) for item in items))

    order_repo = current_domain.repository_for(Order)
    orders = [order_repo.get(order_id) for order_id in order_ids]
    return sorted(orders, key=lambda order: order.created_at, reverse=True)
