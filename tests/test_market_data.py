import pytest

from web3dash import coingecko, defillama
from web3dash.coingecko import MarketDataError


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload


class HtmlResponse(FakeResponse):
    """A 200 page from a proxy or CDN instead of API JSON."""

    def __init__(self):
        super().__init__("<html>Service unavailable</html>")

    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


@pytest.fixture
def fake_get(monkeypatch):
    """Queue responses for requests.get and record the calls made."""
    state = {"responses": [], "calls": []}

    def _get(url, headers=None, params=None, timeout=None):
        state["calls"].append({"url": url, "headers": headers or {}, "params": params or {}})
        return state["responses"].pop(0)

    monkeypatch.setattr(coingecko.requests, "get", _get)
    monkeypatch.setattr(coingecko.time, "sleep", lambda seconds: None)
    return state


# ── CoinGecko client ──────────────────────────────────────────────────────

def test_api_key_header_sent_when_configured(fake_get, monkeypatch):
    monkeypatch.setattr(coingecko.config, "COINGECKO_API_KEY", "demo-key")
    fake_get["responses"].append(FakeResponse({"data": {"active_cryptocurrencies": 1}}))
    assert coingecko.get_global() == {"active_cryptocurrencies": 1}
    assert fake_get["calls"][0]["headers"]["x-cg-demo-api-key"] == "demo-key"


def test_retries_once_after_rate_limit(fake_get):
    fake_get["responses"] += [FakeResponse({}, 429), FakeResponse({"coins": []})]
    assert coingecko.search_coins("abc") == []
    assert len(fake_get["calls"]) == 2


def test_second_rate_limit_raises(fake_get):
    fake_get["responses"] += [FakeResponse({}, 429), FakeResponse({}, 429)]
    with pytest.raises(MarketDataError):
        coingecko.search_coins("abc")


def test_http_error_raises(fake_get):
    fake_get["responses"].append(FakeResponse({}, 500))
    with pytest.raises(MarketDataError):
        coingecko.get_trending()


def test_network_error_raises():
    # requests.get is disabled by the test environment
    with pytest.raises(MarketDataError):
        coingecko.get_global()


def test_resolve_coin_id_prefers_static_map(fake_get):
    assert coingecko.resolve_coin_id("ETH") == "ethereum"
    assert fake_get["calls"] == []


def test_resolve_coin_id_searches_and_caches(fake_get):
    fake_get["responses"].append(FakeResponse({"coins": [
        {"id": "pepe-fork", "symbol": "PEPE", "market_cap_rank": 900},
        {"id": "pepe", "symbol": "PEPE", "market_cap_rank": 30},
        {"id": "pepecoin", "symbol": "PEPECOIN", "market_cap_rank": 5},
    ]}))
    assert coingecko.resolve_coin_id("pepe") == "pepe"
    assert coingecko.resolve_coin_id("PEPE") == "pepe"
    assert len(fake_get["calls"]) == 1


def test_pick_best_match_ranks_unranked_last():
    coins = [
        {"id": "a", "symbol": "xyz", "market_cap_rank": None},
        {"id": "b", "symbol": "xyz", "market_cap_rank": 400},
    ]
    assert coingecko.pick_best_match("XYZ", coins) == "b"
    assert coingecko.pick_best_match("abc", coins) is None


def test_fetch_market_data_maps_symbols(fake_get):
    fake_get["responses"].append(FakeResponse([
        {"id": "bitcoin", "current_price": 65000, "market_cap": 1.2e12, "total_volume": 3e10,
         "price_change_percentage_24h": 1.5, "price_change_percentage_7d_in_currency": -2.0,
         "price_change_percentage_30d_in_currency": 12.0,
         "market_cap_rank": 1},
    ]))
    data = coingecko.fetch_market_data(["btc"])
    assert data["BTC"]["coin_id"] == "bitcoin"
    assert data["BTC"]["price"] == 65000
    assert data["BTC"]["change_7d"] == -2.0
    assert data["BTC"]["change_30d"] == 12.0
    assert fake_get["calls"][0]["params"]["ids"] == "bitcoin"
    assert fake_get["calls"][0]["params"]["price_change_percentage"] == "24h,7d,30d"


def test_price_responses_are_cached(fake_get):
    fake_get["responses"].append(FakeResponse({"bitcoin": {"usd": 65000}}))
    assert coingecko.get_simple_prices(["bitcoin"]) == {"bitcoin": {"usd": 65000}}
    assert coingecko.get_simple_prices(["bitcoin"]) == {"bitcoin": {"usd": 65000}}
    assert len(fake_get["calls"]) == 1

    fake_get["responses"].append(FakeResponse({"ethereum": {"usd": 3000}}))
    coingecko.get_simple_prices(["ethereum"])
    assert len(fake_get["calls"]) == 2


def test_cached_response_refetched_after_expiry(fake_get):
    fake_get["responses"] += [FakeResponse([{"id": "bitcoin"}]), FakeResponse([{"id": "bitcoin", "current_price": 1}])]
    coingecko.get_coins_markets(ids=["bitcoin"])
    for key, (payload, _) in list(coingecko._response_cache.items()):
        coingecko._response_cache[key] = (payload, 0)

    assert coingecko.get_coins_markets(ids=["bitcoin"])[0]["current_price"] == 1
    assert len(fake_get["calls"]) == 2


def test_failed_requests_are_not_cached(fake_get):
    fake_get["responses"] += [FakeResponse({}, 500), FakeResponse({"bitcoin": {"usd": 1}})]
    with pytest.raises(MarketDataError):
        coingecko.get_simple_prices(["bitcoin"])
    assert coingecko.get_simple_prices(["bitcoin"]) == {"bitcoin": {"usd": 1}}


def test_get_prices_by_symbols(monkeypatch):
    monkeypatch.setattr(coingecko, "fetch_market_data", lambda symbols: {
        "ETH": {"coin_id": "ethereum", "price": 3000, "change_24h": 2.0},
    })
    assert coingecko.get_prices_by_symbols(["ETH", "NOPE"]) == {"ETH": {"price": 3000, "change_24h": 2.0}}


# ── DeFiLlama overview ────────────────────────────────────────────────────

HISTORY = [{"date": 1700000000 + i * 86400, "totalLiquidityUSD": 100 + i} for i in range(40)]
PROTOCOLS = [
    {"name": "Lido", "symbol": "LDO", "tvl": 300, "category": "Liquid Staking",
     "chains": ["Ethereum"], "chainTvls": {"Ethereum": 300}},
    {"name": "Aave", "symbol": "AAVE", "tvl": 200, "category": "Lending",
     "chains": ["Ethereum", "Polygon"], "chainTvls": {"Ethereum": 150, "Polygon": 50}},
    {"name": "Dead", "symbol": "-", "tvl": 0, "category": "Lending", "chains": ["Polygon"], "chainTvls": {}},
]


def test_defi_overview_summary_and_distributions():
    overview = defillama.build_defi_overview(HISTORY, PROTOCOLS)

    assert len(overview["historicalTVL"]) == 30
    assert overview["historicalTVL"][-1]["totalLiquidityUSD"] == 139
    summary = overview["summary"]
    assert summary["totalTVL"] == 139
    assert summary["tvlChange24h"] == pytest.approx(1 / 138 * 100)
    assert summary["protocolCount"] == 3
    assert summary["chainCount"] == 2
    assert [p["name"] for p in overview["topProtocols"]] == ["Lido", "Aave"]
    assert overview["chainDistribution"] == [{"name": "Ethereum", "tvl": 450}, {"name": "Polygon", "tvl": 50}]
    assert overview["categoryDistribution"] == [
        {"name": "Liquid Staking", "tvl": 300},
        {"name": "Lending", "tvl": 200},
    ]


def test_defi_overview_chain_filter():
    overview = defillama.build_defi_overview(HISTORY, PROTOCOLS, chain="polygon")
    assert [p["name"] for p in overview["topProtocols"]] == ["Aave"]
    assert overview["summary"]["protocolCount"] == 2


def test_defi_overview_with_no_history():
    overview = defillama.build_defi_overview([], [])
    assert overview["summary"]["totalTVL"] == 0
    assert overview["summary"]["tvlChange24h"] == 0


# ── Routes ────────────────────────────────────────────────────────────────

def test_market_routes_map_upstream_failure_to_502(client):
    assert client.get("/api/market-data").status_code == 502
    assert client.get("/api/market-data/defi").status_code == 502
    assert client.get("/api/market-data/bitcoin").status_code == 502


def test_market_route_validation(client):
    assert client.get("/api/market-data/search?q=a").status_code == 400
    assert client.get("/api/market-data/prices?symbols=").status_code == 400
    assert client.get("/api/market-data/bitcoin/history?days=3").status_code == 400


def test_market_history_route(client, monkeypatch):
    monkeypatch.setattr(coingecko, "get_market_chart", lambda coin_id, days=7: {"prices": [[1, 2.0]], "id": coin_id})
    response = client.get("/api/market-data/bitcoin/history?days=30")
    assert response.status_code == 200
    assert response.json()["id"] == "bitcoin"


def test_non_json_body_maps_to_502(client, fake_get):
    fake_get["responses"].append(HtmlResponse())
    assert client.get("/api/market-data/global").status_code == 502

    fake_get["responses"].append(HtmlResponse())
    with pytest.raises(MarketDataError):
        defillama.get_protocols()
