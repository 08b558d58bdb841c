"""
DeFiLlama TVL client and dashboard overview builder.
"""

from datetime import datetime, timezone
from typing import Optional

import requests

from web3dash.coingecko import MarketDataError

API_URL = "https://api.llama.fi"
REQUEST_TIMEOUT = 15

HISTORY_DAYS = 30
TOP_PROTOCOLS = 20
TOP_CHAINS = 10
TOP_CATEGORIES = 10


def _get(endpoint: str):
    try:
        response = requests.get(f"{API_URL}{endpoint}", timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        print(f"[DefiLlama] Request to {endpoint} failed: {e}")
        raise MarketDataError(f"DeFiLlama request failed: {e}") from e

    if response.status_code != 200:
        print(f"[DefiLlama] {endpoint} returned {response.status_code}")
        raise MarketDataError(f"DeFiLlama API error: {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        print(f"[DefiLlama] {endpoint} returned a non-JSON body")
        raise MarketDataError("DeFiLlama returned an invalid response") from e


def get_tvl_history() -> list[dict]:
    """Daily total TVL across all chains: [{"date": unix_seconds, "totalLiquidityUSD"}]."""
    return _get("/charts")


def get_protocols() -> list[dict]:
    return _get("/protocols")


def _top(totals: dict[str, float], n: int) -> list[dict]:
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:n]
    return [{"name": name, "tvl": tvl} for name, tvl in ranked]


def build_defi_overview(history: list[dict], protocols: list[dict], chain: Optional[str] = None) -> dict:
    """
    Summarize TVL history and protocol list for the dashboard.

    Args:
        history: /charts payload
        protocols: /protocols payload
        chain: Only protocols deployed on this chain (case-insensitive);
            None or "all" for every chain

    Returns:
        Dict with summary, historicalTVL, topProtocols, chainDistribution,
        categoryDistribution
    """
    if chain and chain.lower() != "all":
        chain_lower = chain.lower()
        protocols = [
            p for p in protocols
            if any(c.lower() == chain_lower for c in (p.get("chains") or []))
        ]

    recent_tvl = [
        {
            "date": datetime.fromtimestamp(int(item["date"]), tz=timezone.utc).strftime("%Y-%m-%d"),
            "totalLiquidityUSD": item.get("totalLiquidityUSD") or 0,
        }
        for item in history[-HISTORY_DAYS:]
    ]

    top_protocols = sorted(
        (p for p in protocols if (p.get("tvl") or 0) > 0),
        key=lambda p: p["tvl"],
        reverse=True,
    )[:TOP_PROTOCOLS]

    chain_tvl: dict[str, float] = {}
    category_tvl: dict[str, float] = {}
    for protocol in protocols:
        chain_tvls = protocol.get("chainTvls") or {}
        for chain_name in protocol.get("chains") or []:
            value = chain_tvls.get(chain_name) or 0
            # chainTvls may hold {"tvl": ...} dicts in newer payloads
            if isinstance(value, dict):
                value = value.get("tvl") or 0
            chain_tvl[chain_name] = chain_tvl.get(chain_name, 0) + value
        if protocol.get("category") and protocol.get("tvl"):
            category_tvl[protocol["category"]] = category_tvl.get(protocol["category"], 0) + protocol["tvl"]

    total_tvl = recent_tvl[-1]["totalLiquidityUSD"] if recent_tvl else 0
    previous_tvl = recent_tvl[-2]["totalLiquidityUSD"] if len(recent_tvl) > 1 else 0
    tvl_change = (total_tvl - previous_tvl) / previous_tvl * 100 if total_tvl > 0 and previous_tvl > 0 else 0

    return {
        "summary": {
            "totalTVL": total_tvl,
            "tvlChange24h": tvl_change,
            "protocolCount": len(protocols),
            "chainCount": len(chain_tvl),
        },
        "historicalTVL": recent_tvl,
        "topProtocols": [
            {
                "name": p.get("name"),
                "symbol": p.get("symbol"),
                "tvl": p["tvl"],
                "change_1h": p.get("change_1h") or 0,
                "change_1d": p.get("change_1d") or 0,
                "change_7d": p.get("change_7d") or 0,
                "mcap": p.get("mcap") or 0,
                "category": p.get("category"),
                "chains": p.get("chains") or [],
                "logo": p.get("logo"),
            }
            for p in top_protocols
        ],
        "chainDistribution": _top(chain_tvl, TOP_CHAINS),
        "categoryDistribution": _top(category_tvl, TOP_CATEGORIES),
    }


def get_defi_overview(chain: Optional[str] = None) -> dict:
    return build_defi_overview(get_tvl_history(), get_protocols(), chain)
