"""Gamma and CLOB REST clients against a mocked httpx transport."""

import httpx
import pytest

from predbot.errors import UpstreamUnavailable
from predbot.ingestion.polymarket.clob import ClobOrderBookSource
from predbot.ingestion.polymarket.gamma import GammaMetadataSource

CID = "0x" + "ab" * 32


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _clob_payload(**extra):
    payload = {
        "condition_id": CID,
        "question": "Will it rain?",
        "active": True,
        "tokens": [{"token_id": "111", "outcome": "Yes"}, {"token_id": "222", "outcome": "No"}],
    }
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_gamma_fetch_markets_sends_paging_params():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"id": "1"}, "junk", {"id": "2"}])

    http = _client(handler)
    source = GammaMetadataSource("https://gamma.test/", http_client=http)
    rows = await source.fetch_markets(limit=5, offset=10, order="volume24hr", ascending=True)
    await http.aclose()

    assert [r["id"] for r in rows] == ["1", "2"]
    params = seen[0].url.params
    assert seen[0].url.path == "/markets"
    assert params["active"] == "true"
    assert params["closed"] == "false"
    assert params["limit"] == "5"
    assert params["offset"] == "10"
    assert params["order"] == "volume24hr"
    assert params["ascending"] == "true"


@pytest.mark.asyncio
async def test_gamma_accepts_wrapped_data():
    http = _client(lambda request: httpx.Response(200, json={"data": [{"id": "9"}]}))
    source = GammaMetadataSource("https://gamma.test/markets", http_client=http)
    rows = await source.fetch_markets(limit=1)
    await http.aclose()
    assert rows == [{"id": "9"}]


@pytest.mark.asyncio
async def test_gamma_http_error_becomes_upstream_unavailable():
    http = _client(lambda request: httpx.Response(503, text="busy"))
    source = GammaMetadataSource("https://gamma.test", http_client=http)
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await source.fetch_markets(limit=5)
    await http.aclose()
    assert exc_info.value.source == "gamma"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_gamma_transport_error_becomes_upstream_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    http = _client(handler)
    source = GammaMetadataSource("https://gamma.test", http_client=http)
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await source.fetch_markets(limit=5)
    await http.aclose()
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_clob_get_market_with_embedded_book():
    def handler(request):
        assert request.url.path == f"/markets/{CID}"
        return httpx.Response(200, json=_clob_payload(orderBook={"bids": [{"price": "0.3"}], "asks": [{"price": "0.5"}]}))

    http = _client(handler)
    source = ClobOrderBookSource("https://clob.test", http_client=http)
    market = await source.get_market(CID)
    await http.aclose()

    assert market.condition_id == CID
    assert [t.token_id for t in market.tokens] == ["111", "222"]
    assert market.order_book.mid_price == pytest.approx(0.4)


@pytest.mark.asyncio
async def test_clob_get_market_fetches_book_for_yes_token():
    paths = []

    def handler(request):
        paths.append((request.url.path, dict(request.url.params)))
        if request.url.path == "/book":
            return httpx.Response(200, json={"bids": [{"price": "0.6", "size": "5"}], "asks": [{"price": "0.7", "size": "5"}]})
        return httpx.Response(200, json=_clob_payload())

    http = _client(handler)
    source = ClobOrderBookSource("https://clob.test", http_client=http)
    market = await source.get_market(CID)
    await http.aclose()

    assert paths[1] == ("/book", {"token_id": "111"})
    assert market.order_book.mid_price == pytest.approx(0.65)


@pytest.mark.asyncio
async def test_clob_book_failure_leaves_book_unset():
    def handler(request):
        if request.url.path == "/book":
            return httpx.Response(500)
        return httpx.Response(200, json=_clob_payload())

    http = _client(handler)
    source = ClobOrderBookSource("https://clob.test", http_client=http)
    market = await source.get_market(CID)
    await http.aclose()
    assert market is not None
    assert market.order_book is None


@pytest.mark.asyncio
async def test_clob_book_fetch_can_be_disabled():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json=_clob_payload())

    http = _client(handler)
    source = ClobOrderBookSource("https://clob.test", http_client=http, fetch_order_book=False)
    await source.get_market(CID)
    await http.aclose()
    assert calls == [f"/markets/{CID}"]


@pytest.mark.asyncio
async def test_clob_unknown_market_is_none_other_errors_raise():
    status = {"code": 404}
    http = _client(lambda request: httpx.Response(status["code"]))
    source = ClobOrderBookSource("https://clob.test", http_client=http)

    assert await source.get_market(CID) is None
    status["code"] = 500
    with pytest.raises(UpstreamUnavailable):
        await source.get_market(CID)
    await http.aclose()


@pytest.mark.asyncio
async def test_clob_listing_pages_and_end_cursor():
    def handler(request):
        cursor = request.url.params.get("next_cursor")
        if cursor is None:
            return httpx.Response(200, json={"data": [_clob_payload(), {"question": "no id"}], "next_cursor": "MTAw"})
        return httpx.Response(200, json={"data": [], "next_cursor": "LTE="})

    http = _client(handler)
    source = ClobOrderBookSource("https://clob.test", http_client=http)
    first = await source.get_markets()
    second = await source.get_markets(first.next_cursor)
    await http.aclose()

    assert [m.condition_id for m in first.data] == [CID]
    assert first.next_cursor == "MTAw"
    assert second.data == []
    assert second.next_cursor is None


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    http = _client(lambda request: httpx.Response(200, json=[]))
    source = GammaMetadataSource("https://gamma.test", http_client=http)
    await source.close()
    assert not http.is_closed
    await http.aclose()
