"""Order aggregate (CQRS): the core of the ordering domain.

The order is a standard CQRS aggregate. It is persisted together with its
Payment in a single unit of work, and raises domain events that Protean
publishes once that unit of work commits.

State Machine:
    PENDING → CONFIRMED → CANCELLED (within the cancellation grace period)
    PENDING → CANCELLED
"""

import json
import random
import string
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from ordering.domain import ordering
from ordering.errors import InvalidStateTransition
from ordering.order.events import OrderCancelled, OrderConfirmed, OrderCreated, OrderItemsCancelled, OrderPlaced
from ordering.utils.clock import as_utc


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"

    def can_confirm(self) -> bool:
        return self is OrderStatus.PENDING

    def can_cancel(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.CONFIRMED)


class OrderItemStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


def generate_order_number() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=8))
    return f"ORD-{suffix}"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
def validate_order_lines(lines: list[dict]) -> list[dict]:
    """Normalize requested order lines, raising ``ValidationError`` on bad input.

    Each line needs ``product_id``, a positive ``quantity`` and a non-negative
    integer ``unit_price``. ``variant_id`` and ``product_title`` are optional.
    Runs before any reservation is attempted.
    """
    if not lines:
        raise ValidationError({"items": ["An order needs at least one item"]})

    normalized = []
    for index, line in enumerate(lines):
        if not line.get("product_id"):
            raise ValidationError({"items": [f"Item {index} is missing a product_id"]})

        quantity = line.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError({"items": [f"Item {index} must have a positive integer quantity"]})

        unit_price = line.get("unit_price")
        if not isinstance(unit_price, int) or isinstance(unit_price, bool) or unit_price < 0:
            raise ValidationError({"items": [f"Item {index} must have a non-negative integer unit_price"]})

        normalized.append(
            {
                "product_id": str(line["product_id"]),
                "variant_id": str(line["variant_id"]) if line.get("variant_id") else None,
                "product_title": line.get("product_title") or "",
                "quantity": quantity,
                "unit_price": unit_price,
            }
        )

    if sum(line["unit_price"] * line["quantity"] for line in normalized) <= 0:
        raise ValidationError({"items": ["Order total must be positive"]})

    return normalized


def validate_shipping_address(address: dict) -> dict:
    missing = [key for key in ("recipient_name", "zip_code", "address") if not (address or {}).get(key)]
    if missing:
        raise ValidationError({"shipping_address": [f"Missing required fields: {', '.join(missing)}"]})
    return address


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address snapshot taken when the order is placed."""

    recipient_name = String(max_length=100, required=True)
    recipient_phone = String(max_length=30)
    zip_code = String(max_length=20, required=True)
    address = String(max_length=500, required=True)
    memo = String(max_length=500)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    product_title = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    subtotal = Integer(required=True, min_value=0)
    reservation_token = String(max_length=255)
    item_status = String(
        max_length=50,
        choices=OrderItemStatus,
        default=OrderItemStatus.PENDING.value,
    )


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    user_id = Identifier(required=True)
    order_number = String(max_length=20, required=True)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    total_amount = Integer(required=True, min_value=0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    cart_item_ids = Text()  # JSON array of cart item IDs to clear on confirmation
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()
    confirmed_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def total_must_equal_sum_of_subtotals(self):
        if self.items and self.total_amount != sum(item.subtotal for item in self.items):
            raise ValidationError({"total_amount": ["Order total must equal the sum of item subtotals"]})

    @invariant.post
    def item_subtotals_must_match_quantities(self):
        for item in self.items or []:
            if item.subtotal != item.unit_price * item.quantity:
                raise ValidationError({"items": [f"Subtotal of item {item.id} does not match its quantity"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_id: str,
        user_id: str,
        shipping_address: dict,
        lines: list[dict],
        cart_item_ids: list[str] | None = None,
    ) -> "Order":
        """Build a PENDING order from validated lines that already hold reservation tokens."""
        now = datetime.now(UTC)
        items = [
            OrderItem(
                product_id=line["product_id"],
                variant_id=line.get("variant_id"),
                product_title=line.get("product_title") or "",
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                subtotal=line["unit_price"] * line["quantity"],
                reservation_token=line.get("reservation_token"),
                item_status=OrderItemStatus.PENDING.value,
            )
            for line in lines
        ]
        total = sum(item.subtotal for item in items)

        order = cls(
            id=order_id,
            user_id=user_id,
            order_number=generate_order_number(),
            items=items,
            shipping_address=ShippingAddress(**shipping_address),
            total_amount=total,
            status=OrderStatus.PENDING.value,
            cart_item_ids=json.dumps(list(cart_item_ids or [])),
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                order_number=order.order_number,
                items=json.dumps(
                    [
                        {
                            "item_id": str(item.id),
                            "product_id": str(item.product_id),
                            "variant_id": str(item.variant_id) if item.variant_id else None,
                            "quantity": item.quantity,
                            "unit_price": item.unit_price,
                            "subtotal": item.subtotal,
                        }
                        for item in items
                    ]
                ),
                shipping_address=json.dumps(shipping_address),
                total_amount=total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def reservation_tokens(self) -> list[str]:
        return [item.reservation_token for item in self.items if item.reservation_token]

    def item_ids(self) -> list[str]:
        return [str(item.id) for item in self.items]

    def active_items(self) -> list:
        return [item for item in self.items if item.item_status != OrderItemStatus.CANCELLED.value]

    def cancelled_item_ids(self) -> list[str]:
        return [str(item.id) for item in self.items if item.item_status == OrderItemStatus.CANCELLED.value]

    def within_grace_period(self, grace_period: timedelta, now: datetime | None = None) -> bool:
        if self.confirmed_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - as_utc(self.confirmed_at) <= grace_period

    def assert_cancellable(self, grace_period: timedelta, now: datetime | None = None) -> None:
        """Raise ``InvalidStateTransition`` unless the order may be cancelled right now."""
        current = OrderStatus(self.status)
        if not current.can_cancel():
            raise InvalidStateTransition({"status": [f"Cannot cancel an order in {current.value} state"]})
        if current is OrderStatus.CONFIRMED and not self.within_grace_period(grace_period, now):
            raise InvalidStateTransition({"status": ["The cancellation window for this confirmed order has passed"]})

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def confirm(self) -> None:
        """Confirm the order once its payment has been approved."""
        current = OrderStatus(self.status)
        if not current.can_confirm():
            raise InvalidStateTransition({"status": [f"Cannot confirm an order in {current.value} state"]})

        now = datetime.now(UTC)
        self.status = OrderStatus.CONFIRMED.value
        self.confirmed_at = now
        self.updated_at = now
        for item in self.items:
            item.item_status = OrderItemStatus.CONFIRMED.value

        self.raise_(OrderCreated(order_id=str(self.id), amount=self.total_amount))
        self.raise_(
            OrderConfirmed(
                user_id=str(self.user_id),
                order_id=str(self.id),
                cart_item_ids=self.cart_item_ids or json.dumps([]),
                confirmed_at=now,
            )
        )

    def cancel(self, reason: str, grace_period: timedelta, now: datetime | None = None) -> None:
        """Cancel the order. Confirmed orders can only be cancelled within the grace period."""
        self.assert_cancellable(grace_period, now)

        previous = self.status
        now = now or datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.updated_at = now
        for item in self.items:
            item.item_status = OrderItemStatus.CANCELLED.value

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                user_id=str(self.user_id),
                reason=reason,
                previous_status=previous,
                cancelled_at=now,
            )
        )

    def cancel_items(
        self,
        item_ids: list[str],
        reason: str,
        grace_period: timedelta,
        now: datetime | None = None,
    ) -> int:
        """Cancel some items of a confirmed order and return the amount owed back.

        The order stays CONFIRMED and keeps its original total. Cancelling every
        remaining item goes through ``cancel`` instead.
        """
        current = OrderStatus(self.status)
        if current is not OrderStatus.CONFIRMED:
            raise InvalidStateTransition({"status": [f"Cannot cancel items of an order in {current.value} state"]})
        if not self.within_grace_period(grace_period, now):
            raise InvalidStateTransition({"status": ["The cancellation window for this confirmed order has passed"]})

        wanted = list(dict.fromkeys(str(item_id) for item_id in item_ids))
        if not wanted:
            raise ValidationError({"item_ids": ["Select at least one item to cancel"]})

        by_id = {str(item.id): item for item in self.items}
        unknown = [item_id for item_id in wanted if item_id not in by_id]
        if unknown:
            raise ValidationError({"item_ids": [f"Items do not belong to this order: {', '.join(unknown)}"]})
        already = [item_id for item_id in wanted if by_id[item_id].item_status == OrderItemStatus.CANCELLED.value]
        if already:
            raise InvalidStateTransition({"item_ids": [f"Items already cancelled: {', '.join(already)}"]})

        now = now or datetime.now(UTC)
        refund_amount = 0
        for item_id in wanted:
            by_id[item_id].item_status = OrderItemStatus.CANCELLED.value
            refund_amount += by_id[item_id].subtotal
        self.updated_at = now

        self.raise_(
            OrderItemsCancelled(
                order_id=str(self.id),
                user_id=str(self.user_id),
                item_ids=json.dumps(wanted),
                refund_amount=refund_amount,
                reason=reason,
                cancelled_at=now,
            )
        )
        return refund_amount
