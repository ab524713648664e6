import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture()
def stock():
    from ordering.stock import get_stock_client

    client = get_stock_client()
    client.set_stock("prod-A", 10)
    client.set_stock("prod-B", 10)
    return client


@pytest.fixture()
def gateway():
    from ordering.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def orchestrator(stock, gateway):
    from ordering.checkout.orchestrator import OrderOrchestrator

    return OrderOrchestrator()


@pytest.fixture()
def address():
    return {
        "recipient_name": "Kim Minji",
        "recipient_phone": "010-1234-5678",
        "zip_code": "06236",
        "address": "123 Teheran-ro, Gangnam-gu, Seoul",
    }


@pytest.fixture()
def lines():
    return [
        {"product_id": "prod-A", "product_title": "Product A", "quantity": 2, "unit_price": 1000},
        {"product_id": "prod-B", "product_title": "Product B", "quantity": 1, "unit_price": 500},
    ]


@pytest.fixture()
def placed(orchestrator, address, lines):
    return orchestrator.create_order(user_id="user-001", shipping_address=address, items=lines)


@pytest.fixture()
def order_id(placed):
    return str(placed.order.id)
