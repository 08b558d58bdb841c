"""
Etherscan-family block explorer client (Etherscan, BscScan, PolygonScan, Arbiscan).

Only the native-coin balance and the normal transaction list are used.
"""

from datetime import datetime, timezone

import requests

from web3dash import config

REQUEST_TIMEOUT = 15
WEI_PER_COIN = 10 ** 18

EXPLORER_APIS = {
    "ethereum": "https://api.etherscan.io/api",
    "bsc": "https://api.bscscan.com/api",
    "polygon": "https://api.polygonscan.com/api",
    "arbitrum": "https://api.arbiscan.io/api",
}

NATIVE_SYMBOLS = {
    "ethereum": "ETH",
    "bsc": "BNB",
    "polygon": "MATIC",
    "arbitrum": "ETH",
}


class ExplorerError(Exception):
    """Raised when an explorer API call fails."""


def _api_request(chain: str, params: dict):
    """Call the explorer API for `chain` and return the `result` field."""
    base_url = EXPLORER_APIS.get(chain)
    if not base_url:
        raise ExplorerError(f"Unsupported chain: {chain}")

    params = dict(params)
    if config.ETHERSCAN_API_KEY:
        params["apikey"] = config.ETHERSCAN_API_KEY

    try:
        response = requests.get(base_url, params=params, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        print(f"[Explorer] {chain} request failed: {e}")
        raise ExplorerError(f"{chain} explorer request failed: {e}") from e

    try:
        data = response.json()
    except ValueError as e:
        print(f"[Explorer] {chain} returned a non-JSON body")
        raise ExplorerError(f"{chain} explorer returned an invalid response") from e

    # "No transactions found" comes back as status 0 with an empty list
    if data.get("status") != "1" and data.get("result") != []:
        message = data.get("result") or data.get("message") or "unknown error"
        print(f"[Explorer] {chain} API error: {message}")
        raise ExplorerError(f"{chain} explorer error: {message}")
    return data.get("result")


def get_native_balance(address: str, chain: str = "ethereum") -> float:
    """Native coin balance in whole coins (ETH, BNB, MATIC)."""
    result = _api_request(chain, {
        "module": "account",
        "action": "balance",
        "address": address,
        "tag": "latest",
    })
    return int(result or 0) / WEI_PER_COIN


def normalize_transaction(tx: dict, address: str, chain: str, native_price: float = 0.0) -> dict:
    """Convert an explorer txlist row into the stored transaction shape."""
    amount = int(tx.get("value") or 0) / WEI_PER_COIN
    is_outgoing = (tx.get("from") or "").lower() == address.lower()
    return {
        "hash": tx.get("hash"),
        "type": "out" if is_outgoing else "in",
        "amount": amount,
        "token": NATIVE_SYMBOLS.get(chain, "ETH"),
        "from": tx.get("from"),
        "to": tx.get("to"),
        "timestamp": datetime.fromtimestamp(int(tx.get("timeStamp") or 0), tz=timezone.utc).isoformat(),
        "value": amount * native_price,
    }


def get_transactions(address: str, chain: str = "ethereum", limit: int = 20, native_price: float = 0.0) -> list[dict]:
    """Most recent normal transactions of an address, newest first."""
    result = _api_request(chain, {
        "module": "account",
        "action": "txlist",
        "address": address,
        "startblock": 0,
        "endblock": 99999999,
        "page": 1,
        "offset": limit,
        "sort": "desc",
    })
    return [normalize_transaction(tx, address, chain, native_price) for tx in (result or [])[:limit]]
