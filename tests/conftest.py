import pytest
from activemodel.cache import Cache
from activemodel.config import Config, ConnectionManager


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear all caches (Table registry included) before and after each test."""
    Cache.get_instance().clear_all()
    yield
    Cache.get_instance().clear_all()


@pytest.fixture(autouse=True)
def reset_config():
    """Drop configured connections so tests never share a database."""
    yield
    ConnectionManager.get_instance().close_all()
    Config.reset()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
