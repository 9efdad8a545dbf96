"""MarketCache: store freshness, partial re-enhancement, live fetch with write-back."""

import pytest

from fakes import clob_market, gamma_row
from predbot.errors import UpstreamUnavailable
from predbot.models import Market
from predbot.services import CachePath, MarketCache
from predbot.services.cache import CACHE_TTL_MS
from predbot.storage.markets import list_markets, upsert_market


def _stored(i: int, tradable: bool = True) -> Market:
    return Market(
        natural_id=str(2000 + i),
        condition_id=f"0xs{i}",
        question=f"Stored {i}?",
        end_ts=1_800_000_000_000 + i * 1000,
        yes_price=0.5,
        no_price=0.5,
        yes_token_id=f"s{i}-yes" if tradable else "",
        no_token_id=f"s{i}-no",
    )


def _seed(conn, markets, now_ms):
    for m in markets:
        upsert_market(conn, m, now_ms=now_ms)


@pytest.mark.asyncio
async def test_empty_store_fetches_live_and_persists(service, metadata, order_book, temp_db):
    metadata.rows = [gamma_row(i) for i in range(5)]
    order_book.markets = {f"0xc{i}": clob_market(f"0xc{i}") for i in range(5)}

    markets = await service.fetch_markets(5)

    assert service.cache.last_path is CachePath.FETCH_LIVE
    assert len(markets) == 5
    assert all(m.is_tradable for m in markets)
    assert all(m.id is not None for m in markets)
    assert len(metadata.calls) == 1
    assert len(list_markets(temp_db)) == 5


@pytest.mark.asyncio
async def test_second_request_is_served_from_store(service, metadata, order_book, clock):
    metadata.rows = [gamma_row(i) for i in range(5)]
    order_book.markets = {f"0xc{i}": clob_market(f"0xc{i}") for i in range(5)}
    first = await service.fetch_markets(5)

    clock.advance(CACHE_TTL_MS - 1)
    second = await service.fetch_markets(5)

    assert service.cache.last_path is CachePath.RETURN_STORE
    assert len(metadata.calls) == 1
    assert {m.id for m in second} == {m.id for m in first}
    assert all(clock() - m.last_updated < CACHE_TTL_MS for m in second)


@pytest.mark.asyncio
async def test_fresh_store_with_two_incomplete_records_enhances_only_those(service, order_book, metadata, temp_db, clock):
    records = [_stored(i) for i in range(18)] + [_stored(18, tradable=False), _stored(19, tradable=False)]
    _seed(temp_db, records, clock())
    order_book.markets = {"0xs18": clob_market("0xs18"), "0xs19": clob_market("0xs19")}

    markets = await service.fetch_markets(20)

    assert service.cache.last_path is CachePath.PARTIAL_ENHANCE
    assert sorted(order_book.calls) == ["0xs18", "0xs19"]
    assert metadata.calls == []
    assert len(markets) == 20
    assert all(m.is_tradable for m in markets)
    refreshed = {m.natural_id: m for m in list_markets(temp_db)}
    assert refreshed["2018"].yes_token_id == "0xs18-yes"


@pytest.mark.asyncio
async def test_partial_enhance_leaves_out_records_that_stay_incomplete(service, order_book, temp_db, clock):
    _seed(temp_db, [_stored(0), _stored(1, tradable=False)], clock())
    order_book.failing = {"0xs1"}

    markets = await service.fetch_markets(5)

    assert service.cache.last_path is CachePath.PARTIAL_ENHANCE
    assert [m.natural_id for m in markets] == ["2000"]


@pytest.mark.asyncio
async def test_partial_enhance_keeps_end_time_order_when_truncating(service, order_book, temp_db, clock):
    _seed(temp_db, [_stored(9), _stored(5), _stored(1, tradable=False)], clock())
    order_book.markets = {"0xs1": clob_market("0xs1")}

    markets = await service.fetch_markets(2)

    assert service.cache.last_path is CachePath.PARTIAL_ENHANCE
    assert order_book.calls == ["0xs1"]
    assert [m.natural_id for m in markets] == ["2009", "2005"]


@pytest.mark.asyncio
async def test_one_stale_record_invalidates_the_batch(service, metadata, order_book, temp_db, clock):
    _seed(temp_db, [_stored(0), _stored(1)], clock())
    _seed(temp_db, [_stored(2)], clock() - CACHE_TTL_MS)
    metadata.rows = [gamma_row(0)]
    order_book.markets = {"0xc0": clob_market("0xc0")}

    markets = await service.fetch_markets(1)

    assert service.cache.last_path is CachePath.FETCH_LIVE
    assert len(metadata.calls) == 1
    assert [m.natural_id for m in markets] == ["1000"]


@pytest.mark.asyncio
async def test_record_policy_refreshes_only_stale_records(service, metadata, order_book, store, temp_db, clock):
    cache = MarketCache(store, service.reconciler, service.coordinator, staleness_policy="record", clock=clock)
    _seed(temp_db, [_stored(0), _stored(1)], clock())
    _seed(temp_db, [_stored(2)], clock() - CACHE_TTL_MS - 1)
    order_book.markets = {"0xs2": clob_market("0xs2", bid=0.2, ask=0.4)}

    markets = await cache.get_markets(3)

    assert cache.last_path is CachePath.PARTIAL_ENHANCE
    assert order_book.calls == ["0xs2"]
    assert metadata.calls == []
    assert len(markets) == 3
    refreshed = next(m for m in markets if m.natural_id == "2002")
    assert refreshed.yes_price == pytest.approx(0.3)
    assert refreshed.last_updated == clock()


@pytest.mark.asyncio
async def test_record_policy_drops_stale_record_when_refresh_fails(service, order_book, store, temp_db, clock):
    cache = MarketCache(store, service.reconciler, service.coordinator, staleness_policy="record", clock=clock)
    _seed(temp_db, [_stored(0)], clock())
    _seed(temp_db, [_stored(2)], clock() - CACHE_TTL_MS - 1)
    order_book.failing = {"0xs2"}

    markets = await cache.get_markets(2)

    assert cache.last_path is CachePath.PARTIAL_ENHANCE
    assert [m.natural_id for m in markets] == ["2000"]
    assert all(clock() - m.last_updated < CACHE_TTL_MS for m in markets)


@pytest.mark.asyncio
async def test_record_policy_with_nothing_fresh_fetches_live(service, metadata, store, temp_db, clock):
    cache = MarketCache(store, service.reconciler, service.coordinator, staleness_policy="record", clock=clock)
    _seed(temp_db, [_stored(0)], clock() - CACHE_TTL_MS)

    await cache.get_markets(1)

    assert cache.last_path is CachePath.FETCH_LIVE
    assert len(metadata.calls) == 3


def test_unknown_staleness_policy_rejected(service, store):
    with pytest.raises(ValueError):
        MarketCache(store, service.reconciler, service.coordinator, staleness_policy="sometimes")


@pytest.mark.asyncio
async def test_hard_upstream_failure_propagates_original_error(service, metadata, order_book):
    error = UpstreamUnavailable("gamma", "HTTP 503")
    metadata.error = error
    order_book.listing_error = UpstreamUnavailable("clob", "HTTP 503")

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await service.fetch_markets(5)

    assert exc_info.value is error


@pytest.mark.asyncio
async def test_fallback_markets_are_persisted(service, metadata, order_book, temp_db):
    metadata.error = UpstreamUnavailable("gamma", "HTTP 503")
    order_book.listing = [clob_market("0xa1"), clob_market("0xa2")]

    markets = await service.fetch_markets(5)

    assert {m.natural_id for m in markets} == {"0xa1", "0xa2"}
    assert all(m.id is not None for m in markets)
    assert {m.natural_id for m in list_markets(temp_db)} == {"0xa1", "0xa2"}


@pytest.mark.asyncio
async def test_live_fetch_persists_unenhanced_markets_without_returning_them(service, metadata, order_book, temp_db):
    metadata.rows = [gamma_row(0), gamma_row(1, condition=False)]
    order_book.markets = {"0xc0": clob_market("0xc0")}

    markets = await service.fetch_markets(2)

    assert [m.natural_id for m in markets] == ["1000"]
    stored = {m.natural_id: m for m in list_markets(temp_db)}
    assert set(stored) == {"1000", "1001"}
    assert not stored["1001"].is_enhanced


@pytest.mark.asyncio
async def test_cache_status_and_clear(service, temp_db, clock):
    status = await service.cache_status()
    assert not status.has_cache
    assert status.ttl_ms == CACHE_TTL_MS

    _seed(temp_db, [_stored(0), _stored(1)], clock())
    clock.advance(1500)
    status = await service.cache_status()
    assert status.has_cache
    assert status.age_ms == 1500

    assert await service.clear_cache() == 2
    assert all(m.last_updated == 0 for m in list_markets(temp_db))
    assert len(list_markets(temp_db)) == 2


@pytest.mark.asyncio
async def test_service_lookups(service, temp_db, clock):
    row_id = upsert_market(temp_db, _stored(3), now_ms=clock())

    assert (await service.get_market(row_id)).natural_id == "2003"
    assert (await service.get_market("2003")).id == row_id
    assert (await service.get_market_by_token_id("s3-no")).id == row_id
    assert await service.get_market("missing") is None
