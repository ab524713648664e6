"""Shared BDD fixtures and step definitions for checkout."""

import pytest
from ordering.errors import CheckoutError
from ordering.order.order import Order
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def error():
    """Mutable container to capture exceptions raised by When steps."""
    return {"exc": None}


@pytest.fixture()
def order_ref():
    """Holds the id of the order placed during the scenario."""
    return {"order_id": None}


def _lines(qty_a, product_a, price_a, qty_b, product_b, price_b):
    return [
        {"product_id": product_a, "quantity": qty_a, "unit_price": price_a},
        {"product_id": product_b, "quantity": qty_b, "unit_price": price_b},
    ]


def _place(orchestrator, address, order_ref, error, user_id, lines):
    try:
        placed = orchestrator.create_order(user_id=user_id, shipping_address=address, items=lines)
        order_ref["order_id"] = str(placed.order.id)
    except (ValidationError, CheckoutError) as exc:
        error["exc"] = exc


_ORDER_STEP = '{qty_a:d} of "{product_a}" at {price_a:d} and {qty_b:d} of "{product_b}" at {price_b:d}'


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" has {quantity:d} units in stock'))
def _(stock, product_id, quantity):
    stock.set_stock(product_id, quantity)


@given(parsers.cfparse('product "{product_id}" cannot be reserved'))
def _(stock, product_id):
    stock.fail_reservations_for(product_id)


@given(parsers.cfparse('user "{user_id}" ordered ' + _ORDER_STEP))
def _(orchestrator, address, order_ref, error, user_id, qty_a, product_a, price_a, qty_b, product_b, price_b):
    _place(orchestrator, address, order_ref, error, user_id, _lines(qty_a, product_a, price_a, qty_b, product_b, price_b))
    assert error["exc"] is None


@given(parsers.cfparse('the payment was confirmed with key "{payment_key}"'))
def _(orchestrator, order_ref, payment_key):
    orchestrator.confirm_payment(order_ref["order_id"], payment_key=payment_key)


@given("the processor rejects the next refund")
def _(gateway):
    gateway.cancel_failures = 1


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('user "{user_id}" orders ' + _ORDER_STEP))
def _(orchestrator, address, order_ref, error, user_id, qty_a, product_a, price_a, qty_b, product_b, price_b):
    _place(orchestrator, address, order_ref, error, user_id, _lines(qty_a, product_a, price_a, qty_b, product_b, price_b))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(orchestrator, order_ref, status):
    assert orchestrator.get_order(order_ref["order_id"]).status == status


@then(parsers.cfparse('the payment status is "{status}" for {amount:d}'))
def _(orchestrator, order_ref, status, amount):
    payment = orchestrator.get_payment(order_ref["order_id"])
    assert payment.status == status
    assert payment.amount == amount


@then(parsers.cfparse('"{product_id}" has {quantity:d} units available'))
def _(stock, product_id, quantity):
    assert stock.available(product_id) == quantity


@then("no order was placed")
def _(order_ref):
    assert order_ref["order_id"] is None
    assert current_domain.repository_for(Order)._dao.query.all().items == []
