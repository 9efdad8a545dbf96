import pytest

from fakes import FakeClock, FakeMetadataSource, FakeOrderBookSource, no_sleep
from predbot.config import MarketServiceConfig
from predbot.services import MarketService
from predbot.storage.db import get_connection, init_schema
from predbot.storage.markets import DuckDBMarketStore


@pytest.fixture
def temp_db():
    conn = get_connection(":memory:")
    init_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(temp_db, clock):
    return DuckDBMarketStore(temp_db, clock=clock)


@pytest.fixture
def metadata():
    return FakeMetadataSource()


@pytest.fixture
def order_book():
    return FakeOrderBookSource()


@pytest.fixture
def config():
    return MarketServiceConfig(batch_delay_sec=0, retry_base_delay_sec=0)


@pytest.fixture
def service(config, store, metadata, order_book, clock):
    return MarketService(config, store, metadata, order_book, clock=clock, sleep=no_sleep)
