"""
CoinGecko market-data client.

Calls are spaced at least COINGECKO_RATE_LIMIT_DELAY seconds apart (the public
API allows roughly 10-50 calls per minute); a 429 is retried once after a
back-off. Market and price responses are reused for MARKET_DATA_CACHE_SECONDS.
Symbol → coin-id resolution uses a static table, then a 24h cache, then the
search endpoint.
"""

import threading
import time
from typing import Optional

import requests

from web3dash import config

API_URL = "https://api.coingecko.com/api/v3"
REQUEST_TIMEOUT = 10
RATE_LIMIT_BACKOFF = 5
ID_CACHE_SECONDS = 24 * 60 * 60

STATIC_SYMBOL_TO_ID = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "bnb": "binancecoin",
    "sol": "solana",
    "xrp": "ripple",
    "ada": "cardano",
    "avax": "avalanche-2",
    "doge": "dogecoin",
    "dot": "polkadot",
    "matic": "matic-network",
    "shib": "shiba-inu",
    "trx": "tron",
    "link": "chainlink",
    "uni": "uniswap",
    "atom": "cosmos",
    "ltc": "litecoin",
    "etc": "ethereum-classic",
    "xlm": "stellar",
    "near": "near",
    "algo": "algorand",
    "usdt": "tether",
    "usdc": "usd-coin",
    "dai": "dai",
    "mnt": "mantle",
    "arb": "arbitrum",
    "op": "optimism",
    "grt": "the-graph",
    "aave": "aave",
    "mkr": "maker",
    "comp": "compound-governance-token",
    "sushi": "sushi",
    "1inch": "1inch",
    "crv": "curve-dao-token",
    "ldo": "lido-dao",
    "rpl": "rocket-pool",
    "ens": "ethereum-name-service",
    "gmx": "gmx",
    "cake": "pancakeswap-token",
    "rune": "thorchain",
    "ftm": "fantom",
    "icp": "internet-computer",
    "fil": "filecoin",
    "theta": "theta-token",
    "vet": "vechain",
    "hbar": "hedera-hashgraph",
    "xtz": "tezos",
    "bch": "bitcoin-cash",
    "xmr": "monero",
    "snx": "havven",
    "yfi": "yearn-finance",
    "bal": "balancer",
    "sand": "the-sandbox",
    "mana": "decentraland",
    "axs": "axie-infinity",
    "ape": "apecoin",
    "gala": "gala",
    "fet": "fetch-ai",
}


class MarketDataError(Exception):
    """Raised when the market-data API cannot be reached or answers with an error."""


_request_lock = threading.Lock()
_last_call_time = 0.0

# symbol -> (coin_id, expires_at)
_id_cache: dict[str, tuple[str, float]] = {}

# (endpoint, params) -> (payload, expires_at)
_response_cache: dict[tuple, tuple[object, float]] = {}
_cache_lock = threading.Lock()


def _wait_for_rate_limit():
    global _last_call_time
    with _request_lock:
        elapsed = time.monotonic() - _last_call_time
        if elapsed < config.COINGECKO_RATE_LIMIT_DELAY:
            time.sleep(config.COINGECKO_RATE_LIMIT_DELAY - elapsed)
        _last_call_time = time.monotonic()


def _api_request(endpoint: str, params: Optional[dict] = None, retry_on_429: bool = True):
    """GET an API endpoint and return decoded JSON."""
    headers = {"Accept": "application/json"}
    if config.COINGECKO_API_KEY:
        headers["x-cg-demo-api-key"] = config.COINGECKO_API_KEY

    clean_params = {k: v for k, v in (params or {}).items() if v is not None}

    _wait_for_rate_limit()
    try:
        response = requests.get(
            f"{API_URL}{endpoint}",
            headers=headers,
            params=clean_params,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        print(f"[CoinGecko] Request to {endpoint} failed: {e}")
        raise MarketDataError(f"CoinGecko request failed: {e}") from e

    if response.status_code == 429:
        if retry_on_429:
            print(f"[CoinGecko] Rate limited on {endpoint}, retrying in {RATE_LIMIT_BACKOFF}s")
            time.sleep(RATE_LIMIT_BACKOFF)
            return _api_request(endpoint, params, retry_on_429=False)
        raise MarketDataError("Rate limit exceeded. Please try again later.")

    if response.status_code != 200:
        print(f"[CoinGecko] {endpoint} returned {response.status_code}")
        raise MarketDataError(f"CoinGecko API error: {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        print(f"[CoinGecko] {endpoint} returned a non-JSON body")
        raise MarketDataError("CoinGecko returned an invalid response") from e


def _cached_request(endpoint: str, params: dict):
    """_api_request whose results are reused for MARKET_DATA_CACHE_SECONDS."""
    key = (endpoint, tuple(sorted((k, str(v)) for k, v in params.items() if v is not None)))
    now = time.time()
    with _cache_lock:
        cached = _response_cache.get(key)
        if cached and cached[1] > now:
            return cached[0]

    data = _api_request(endpoint, params)
    if config.MARKET_DATA_CACHE_SECONDS > 0:
        with _cache_lock:
            for stale in [k for k, (_, expires_at) in _response_cache.items() if expires_at <= now]:
                del _response_cache[stale]
            _response_cache[key] = (data, now + config.MARKET_DATA_CACHE_SECONDS)
    return data


# ── Endpoints ─────────────────────────────────────────────────────────────

def get_coins_markets(
    ids: Optional[list[str]] = None,
    vs_currency: str = "usd",
    per_page: int = 100,
    page: int = 1,
    price_change_percentage: str = "24h,7d,30d",
) -> list[dict]:
    """Coins with market data, ordered by market cap."""
    return _cached_request("/coins/markets", {
        "vs_currency": vs_currency,
        "ids": ",".join(ids) if ids else None,
        "order": "market_cap_desc",
        "per_page": per_page,
        "page": page,
        "sparkline": "false",
        "price_change_percentage": price_change_percentage,
    })


def get_simple_prices(coin_ids: list[str], vs_currency: str = "usd") -> dict:
    """Spot price, 24h change, volume and market cap keyed by coin id."""
    if not coin_ids:
        return {}
    return _cached_request("/simple/price", {
        "ids": ",".join(coin_ids),
        "vs_currencies": vs_currency,
        "include_24hr_change": "true",
        "include_24hr_vol": "true",
        "include_market_cap": "true",
        "include_last_updated_at": "true",
    })


def get_trending() -> list[dict]:
    """Upstream trending list (`item` dicts, most trending first)."""
    data = _api_request("/search/trending")
    return [coin.get("item", {}) for coin in data.get("coins", [])]


def search_coins(query: str) -> list[dict]:
    data = _api_request("/search", {"query": query})
    return data.get("coins", [])


def get_coin_details(coin_id: str) -> dict:
    return _api_request(f"/coins/{coin_id}", {
        "localization": "false",
        "tickers": "false",
        "market_data": "true",
        "community_data": "false",
        "developer_data": "false",
        "sparkline": "false",
    })


def get_market_chart(coin_id: str, days: int = 7, vs_currency: str = "usd", interval: Optional[str] = None) -> dict:
    """Historical prices, market caps and volumes as [timestamp_ms, value] pairs."""
    return _api_request(f"/coins/{coin_id}/market_chart", {
        "vs_currency": vs_currency,
        "days": str(days),
        "interval": interval,
    })


def get_global() -> dict:
    return _api_request("/global").get("data", {})


# ── Symbol resolution ─────────────────────────────────────────────────────

def pick_best_match(symbol: str, coins: list[dict]) -> Optional[str]:
    """Among search results with exactly this symbol, prefer the best market-cap rank."""
    symbol_lower = symbol.lower()
    matches = [c for c in coins if (c.get("symbol") or "").lower() == symbol_lower]
    if not matches:
        return None
    matches.sort(key=lambda c: (c.get("market_cap_rank") is None, c.get("market_cap_rank") or 0))
    return matches[0].get("id")


def resolve_coin_id(symbol: str) -> Optional[str]:
    """Map a ticker symbol to a CoinGecko coin id, or None if unknown."""
    symbol_lower = symbol.strip().lower()
    if symbol_lower in STATIC_SYMBOL_TO_ID:
        return STATIC_SYMBOL_TO_ID[symbol_lower]

    cached = _id_cache.get(symbol_lower)
    if cached and cached[1] > time.time():
        return cached[0]

    try:
        coin_id = pick_best_match(symbol_lower, search_coins(symbol_lower))
    except MarketDataError as e:
        print(f"[CoinGecko] Could not search for {symbol}: {e}")
        return None

    if coin_id:
        _id_cache[symbol_lower] = (coin_id, time.time() + ID_CACHE_SECONDS)
        print(f"[CoinGecko] Resolved {symbol.upper()} -> {coin_id}")
    else:
        print(f"[CoinGecko] No coin id found for symbol {symbol.upper()}")
    return coin_id


def market_data_from_coin(coin: dict) -> dict:
    """Convert a /coins/markets row into the catalog MarketData shape."""
    return {
        "price": coin.get("current_price") or 0,
        "market_cap": coin.get("market_cap") or 0,
        "volume_24h": coin.get("total_volume") or 0,
        "change_24h": coin.get("price_change_percentage_24h") or 0,
        "change_7d": coin.get("price_change_percentage_7d_in_currency") or 0,
        "change_30d": coin.get("price_change_percentage_30d_in_currency") or 0,
        "circulating_supply": coin.get("circulating_supply") or 0,
        "total_supply": coin.get("total_supply") or 0,
        "max_supply": coin.get("max_supply"),
        "ath": coin.get("ath"),
        "atl": coin.get("atl"),
        "market_cap_rank": coin.get("market_cap_rank"),
    }


def fetch_market_data(symbols: list[str], known_ids: Optional[dict[str, str]] = None) -> dict[str, dict]:
    """
    Fetch market data for ticker symbols.

    Args:
        symbols: Ticker symbols (any case)
        known_ids: Optional SYMBOL -> coin id overrides (e.g. from the catalog)

    Returns:
        {SYMBOL: market data dict}; symbols that cannot be resolved are absent
    """
    known_ids = {k.upper(): v for k, v in (known_ids or {}).items()}
    id_to_symbol: dict[str, str] = {}
    for symbol in {s.upper() for s in symbols if s}:
        coin_id = known_ids.get(symbol) or resolve_coin_id(symbol)
        if coin_id:
            id_to_symbol[coin_id] = symbol

    if not id_to_symbol:
        print("[CoinGecko] No valid coin ids found")
        return {}

    result = {}
    coins = get_coins_markets(ids=list(id_to_symbol), per_page=max(len(id_to_symbol), 1))
    for coin in coins:
        symbol = id_to_symbol.get(coin.get("id"))
        if symbol:
            result[symbol] = {"coin_id": coin["id"], **market_data_from_coin(coin)}
    return result


def get_prices_by_symbols(symbols: list[str]) -> dict[str, dict]:
    """{SYMBOL: {"price", "change_24h"}} for portfolio and watchlist valuation."""
    market = fetch_market_data(symbols)
    return {
        symbol: {"price": data["price"], "change_24h": data["change_24h"]}
        for symbol, data in market.items()
    }
