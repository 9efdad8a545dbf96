"""HTTP routes over a MarketService backed by in-memory fakes."""

import pytest
from fastapi.testclient import TestClient

from fakes import clob_market, gamma_row
from predbot.api.main import app
from predbot.errors import UpstreamUnavailable
from predbot.models import Market
from predbot.storage.markets import upsert_market


@pytest.fixture
def client(service):
    # Lifespan is not entered; the service is injected directly
    app.state.market_service = service
    yield TestClient(app)
    del app.state.market_service


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_markets_list_camel_case(client, metadata, order_book):
    metadata.rows = [gamma_row(i) for i in range(3)]
    order_book.markets = {f"0xc{i}": clob_market(f"0xc{i}") for i in range(3)}

    resp = client.get("/markets", params={"limit": 3})

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    first = body["markets"][0]
    assert first["id"] == "1002"
    assert first["cuid"]
    assert first["yesTokenId"] == "0xc2-yes"
    assert first["noTokenId"] == "0xc2-no"
    assert first["yesPrice"] == pytest.approx(0.5)
    assert first["endDate"] == "2027-01-03T00:00:00Z"
    assert metadata.calls[0]["limit"] == 3


def test_markets_list_rejects_bad_limit(client):
    assert client.get("/markets", params={"limit": 0}).status_code == 422
    assert client.get("/markets", params={"limit": 101}).status_code == 422


def test_markets_list_upstream_failure_is_502(client, metadata, order_book):
    metadata.error = UpstreamUnavailable("gamma", "HTTP 500")
    order_book.listing_error = UpstreamUnavailable("clob", "HTTP 500")

    resp = client.get("/markets")

    assert resp.status_code == 502
    assert resp.json() == {"detail": "Failed to fetch markets", "code": "upstream_unavailable"}


def test_market_detail_by_row_id_and_natural_id(client, temp_db):
    row_id = upsert_market(temp_db, Market(natural_id="55", question="Q?", yes_token_id="a", no_token_id="b"), now_ms=1)

    by_row = client.get(f"/markets/{row_id}")
    by_natural = client.get("/markets/55")

    assert by_row.status_code == 200
    assert by_row.json()["id"] == "55"
    assert by_natural.json()["cuid"] == row_id


def test_market_detail_not_found(client):
    resp = client.get("/markets/nope")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_enhance_and_cache_routes(client, order_book, temp_db, clock):
    upsert_market(
        temp_db,
        Market(natural_id="1", condition_id="0xe1", question="Q?", end_ts=10),
        now_ms=clock(),
    )
    order_book.markets = {"0xe1": clob_market("0xe1")}

    resp = client.post("/markets/enhance")
    assert resp.json() == {"success": True, "candidates": 1, "enhanced": 1, "dropped": 0}

    clock.advance(250)
    status = client.get("/markets/cache").json()
    assert status == {"hasCache": True, "age": 250, "ttl": 300000}

    assert client.delete("/markets/cache").json() == {"cleared": 1}
