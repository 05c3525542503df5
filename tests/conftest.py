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

    Selects the config environment and the in-process provider adapters so no
    test ever reaches a real payment or shipping provider.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ["PAYMENT_GATEWAY_MODE"] = "fake"
    os.environ["CARRIER_ADAPTER"] = "fake"


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
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def reset_adapters():
    """Drop provider adapters, cached configuration and order locks after every test."""
    yield

    from orderflow.carrier import reset_carrier
    from orderflow.gateway import reset_gateways
    from orderflow.payment.config import reset_payment_config
    from orderflow.utils.locking import order_locks

    reset_gateways()
    reset_carrier()
    reset_payment_config()
    order_locks.reset()
