import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Fetch and activate the domain by pushing the associated domain_context. The activated domain can then be referred to elsewhere as `current_domain`
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from ordering.domain import ordering

    ordering.init()
    ordering.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)


@pytest.fixture(scope="session", autouse=True)
def setup_db(request):
    from ordering.domain import ordering
    from ordering.utils.db import drop_db, setup_db

    setup_db(ordering)

    yield

    drop_db(ordering)


@pytest.fixture(autouse=True)
def collaborators():
    """Fresh settings, fakes and locks for every test."""
    from ordering.checkout.locks import reset_lock_registry
    from ordering.config import CheckoutSettings, reset_settings, set_settings
    from ordering.gateway import reset_gateway, set_gateway
    from ordering.gateway.fake_adapter import FakeGateway
    from ordering.stock import reset_stock_client, set_stock_client
    from ordering.stock.fake_adapter import InMemoryStockClient

    set_settings(CheckoutSettings(retry_backoff_seconds=0.0, lock_timeout_seconds=2.0))
    set_gateway(FakeGateway())
    set_stock_client(InMemoryStockClient())
    reset_lock_registry()

    yield

    reset_gateway()
    reset_stock_client()
    reset_lock_registry()
    reset_settings()


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()
