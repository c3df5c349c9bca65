import logging

import pytest


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture mimerdb debug logging for every test."""
    caplog.set_level(logging.DEBUG, logger='mimerdb')
    yield


pytest_plugins = [
    'tests.fixtures.engine',
    'tests.fixtures.connection',
]
