import pytest

from app.utils.cache import clear_cache


@pytest.fixture(autouse=True)
def _empty_orders_cache():
    clear_cache()
    yield
    clear_cache()
