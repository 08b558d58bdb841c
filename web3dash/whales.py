"""
Whale wallets (shared, data/whale_wallets.json) and per-user tracked wallets.
"""

import json
import re
import threading
from dataclasses import dataclass, asdict, field, fields
from datetime import datetime, timezone
from typing import List, Optional

from web3dash import config
from web3dash import explorer
from web3dash.user_data_store import load_tracked_wallets, save_tracked_wallets, new_record_id

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
SUPPORTED_CHAINS = tuple(explorer.EXPLORER_APIS)
MAX_STORED_TRANSACTIONS = 50

# Minimum USD value of a transfer to count as a whale move
WHALE_THRESHOLDS_USD = {
    "ethereum": 1_000_000,
    "bsc": 500_000,
    "polygon": 250_000,
    "arbitrum": 500_000,
}

KNOWN_WHALES = {
    "0xBE0eB53F46cd790Cd13851d5EFf43D12404d33E8": "Binance 7",
    "0xF977814e90dA44bFA03b6295A0616a897441aceC": "Binance 8",
    "0x28C6c06298d514Db089934071355E5743bf21d60": "Binance 14",
    "0x21a31Ee1afC51d94C2eFcCAa2092aD1028285549": "Binance 15",
    "0xDFd5293D8e347dFe59E90eFd55b2956a1343963d": "Binance 16",
    "0x56Eddb7aa87536c09CCc2793473599fD21A8b17F": "Binance 17",
    "0xd24400ae8BfEBb18cA49Be86258a3C749cf46853": "Gemini",
    "0x6cC5F688a315f3dC28A7781717a9A798a59fDA7b": "OKEx",
    "0x236F233dBf78341d25BBd2fDdB6C301D1E7A1B42": "Kucoin",
    "0xA929022c9107643515F5c777cE9a910F0D1e490C": "Huobi 1",
    "0x46340b20830761efd32832A74d7169B29FEB9758": "Crypto.com",
}

_whales_lock = threading.Lock()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_valid_address(address: str) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def whale_threshold(chain: str) -> float:
    return WHALE_THRESHOLDS_USD.get(chain, WHALE_THRESHOLDS_USD["ethereum"])


@dataclass
class WhaleWallet:
    address: str
    label: str
    chain: str
    created_at: str
    balance: float = 0.0
    balance_usd: float = 0.0
    tokens: List[dict] = field(default_factory=list)
    transactions: List[dict] = field(default_factory=list)
    is_tracked: bool = False
    tracking_users: List[int] = field(default_factory=list)
    last_activity: Optional[str] = None
    total_transactions: int = 0
    updated_at: Optional[str] = None

    def large_transactions(self) -> List[dict]:
        """Transactions at or above the chain's whale threshold."""
        threshold = whale_threshold(self.chain)
        return [tx for tx in self.transactions if (tx.get("value") or 0) >= threshold]


@dataclass
class TrackedWallet:
    id: str
    address: str
    network: str
    created_at: str
    label: str = ""
    is_owned: bool = False
    native_balance: float = 0.0
    native_balance_usd: float = 0.0
    total_value_usd: float = 0.0
    last_synced: Optional[str] = None
    is_active: bool = True
    tags: List[str] = field(default_factory=list)
    notes: str = ""


class WhaleStore:
    """JSON-backed store for whale wallets."""

    def __init__(self):
        self.wallets: List[WhaleWallet] = []

    def load(self):
        with _whales_lock:
            path = config.DATA_DIR / "whale_wallets.json"
            if not path.exists():
                return
            try:
                with open(path, "r", encoding="utf-8") as f:
                    names = {fl.name for fl in fields(WhaleWallet)}
                    self.wallets = [
                        WhaleWallet(**{k: v for k, v in w.items() if k in names})
                        for w in json.load(f)
                    ]
            except Exception as e:
                print(f"[DB] Error loading whale wallets: {e}")

    def save(self):
        with _whales_lock:
            try:
                config.DATA_DIR.mkdir(parents=True, exist_ok=True)
                with open(config.DATA_DIR / "whale_wallets.json", "w", encoding="utf-8") as f:
                    json.dump([asdict(w) for w in self.wallets], f, indent=2, ensure_ascii=False)
            except Exception as e:
                print(f"[DB] Error saving whale wallets: {e}")

    def list_whales(self, chain: Optional[str] = None, limit: int = 50) -> List[WhaleWallet]:
        """Whales on `chain` (all chains if None), largest USD balance first."""
        result = [w for w in self.wallets if not chain or w.chain == chain]
        result.sort(key=lambda w: w.balance_usd, reverse=True)
        return result[:limit]

    def get_whale(self, address: str, chain: Optional[str] = None) -> Optional[WhaleWallet]:
        address_lower = address.lower()
        for wallet in self.wallets:
            if wallet.address == address_lower and (chain is None or wallet.chain == chain):
                return wallet
        return None

    def create_whale(self, address: str, chain: str = "ethereum", label: str = "") -> Optional[WhaleWallet]:
        """
        Add a whale wallet.

        Returns:
            The new wallet, or None if the address is already known on this chain
        """
        if self.get_whale(address, chain):
            return None
        wallet = WhaleWallet(
            address=address.lower(),
            label=label or "Unknown Whale",
            chain=chain,
            created_at=_now(),
            updated_at=_now(),
        )
        self.wallets.append(wallet)
        self.save()
        return wallet

    def track_whale(self, wallet: WhaleWallet, user_id: int) -> bool:
        """Returns False if the user already tracks this wallet."""
        if user_id in wallet.tracking_users:
            return False
        wallet.tracking_users.append(user_id)
        wallet.is_tracked = True
        wallet.updated_at = _now()
        self.save()
        return True

    def untrack_whale(self, wallet: WhaleWallet, user_id: int) -> bool:
        if user_id not in wallet.tracking_users:
            return False
        wallet.tracking_users.remove(user_id)
        wallet.is_tracked = bool(wallet.tracking_users)
        wallet.updated_at = _now()
        self.save()
        return True

    def refresh_whale(self, wallet: WhaleWallet, native_price: float = 0.0) -> WhaleWallet:
        """
        Reload balance and recent transactions from the chain explorer.

        Raises:
            ExplorerError: explorer request failed
        """
        balance = explorer.get_native_balance(wallet.address, wallet.chain)
        transactions = explorer.get_transactions(
            wallet.address, wallet.chain, limit=MAX_STORED_TRANSACTIONS, native_price=native_price
        )

        known = {tx.get("hash") for tx in wallet.transactions}
        new_count = sum(1 for tx in transactions if tx.get("hash") not in known)

        wallet.balance = balance
        wallet.balance_usd = balance * native_price
        wallet.transactions = transactions
        wallet.total_transactions += new_count
        if transactions:
            wallet.last_activity = transactions[0]["timestamp"]
        wallet.updated_at = _now()
        self.save()
        print(f"[Explorer] Refreshed {wallet.label} ({wallet.chain}): {balance:.4f}, {new_count} new txs")
        return wallet

    def seed_known_whales(self, chain: str = "ethereum") -> int:
        """Add the well-known exchange wallets. Returns how many were new."""
        added = 0
        for address, label in KNOWN_WHALES.items():
            if self.create_whale(address, chain, label):
                added += 1
        if added:
            print(f"[DB] Seeded {added} known whale wallets")
        return added

    def tracked_by(self, user_id: int) -> List[WhaleWallet]:
        return [w for w in self.wallets if user_id in w.tracking_users]

    def forget_user(self, user_id: int):
        """Drop a deleted user from every tracking list."""
        changed = False
        for wallet in self.wallets:
            if user_id in wallet.tracking_users:
                wallet.tracking_users.remove(user_id)
                wallet.is_tracked = bool(wallet.tracking_users)
                changed = True
        if changed:
            self.save()


_whale_store: Optional[WhaleStore] = None


def get_whale_store() -> WhaleStore:
    """Get global whale store instance (singleton)."""
    global _whale_store
    if _whale_store is None:
        _whale_store = WhaleStore()
        _whale_store.load()
    return _whale_store


def reset_whale_store():
    global _whale_store
    _whale_store = None


# ── Tracked wallets (per user) ────────────────────────────────────────────

def list_tracked_wallets(user_id: int) -> List[TrackedWallet]:
    names = {f.name for f in fields(TrackedWallet)}
    return [
        TrackedWallet(**{k: v for k, v in w.items() if k in names})
        for w in load_tracked_wallets(user_id)
    ]


def _save_tracked(user_id: int, wallets: List[TrackedWallet]):
    save_tracked_wallets(user_id, [asdict(w) for w in wallets])


def get_tracked_wallet(user_id: int, wallet_id: str) -> Optional[TrackedWallet]:
    for wallet in list_tracked_wallets(user_id):
        if wallet.id == wallet_id:
            return wallet
    return None


def add_tracked_wallet(
    user_id: int,
    address: str,
    network: str = "ethereum",
    label: str = "",
    is_owned: bool = False,
    tags: Optional[List[str]] = None,
    notes: str = "",
) -> Optional[TrackedWallet]:
    """Returns None if the user already tracks this address on this network."""
    wallets = list_tracked_wallets(user_id)
    address_lower = address.lower()
    if any(w.address == address_lower and w.network == network for w in wallets):
        return None

    wallet = TrackedWallet(
        id=new_record_id("wallet"),
        address=address_lower,
        network=network,
        created_at=_now(),
        label=label,
        is_owned=is_owned,
        tags=tags or [],
        notes=notes,
    )
    wallets.insert(0, wallet)
    _save_tracked(user_id, wallets)
    return wallet


def update_tracked_wallet(user_id: int, wallet_id: str, **changes) -> Optional[TrackedWallet]:
    wallets = list_tracked_wallets(user_id)
    for wallet in wallets:
        if wallet.id == wallet_id:
            for key, value in changes.items():
                if value is not None and hasattr(wallet, key):
                    setattr(wallet, key, value)
            _save_tracked(user_id, wallets)
            return wallet
    return None


def delete_tracked_wallet(user_id: int, wallet_id: str) -> bool:
    wallets = list_tracked_wallets(user_id)
    remaining = [w for w in wallets if w.id != wallet_id]
    if len(remaining) == len(wallets):
        return False
    _save_tracked(user_id, remaining)
    return True


def refresh_tracked_wallet(user_id: int, wallet_id: str, native_price: float = 0.0) -> Optional[TrackedWallet]:
    """
    Reload the native balance of a tracked wallet.

    Raises:
        ExplorerError: explorer request failed
    """
    wallet = get_tracked_wallet(user_id, wallet_id)
    if not wallet:
        return None
    balance = explorer.get_native_balance(wallet.address, wallet.network)
    return update_tracked_wallet(
        user_id,
        wallet_id,
        native_balance=balance,
        native_balance_usd=balance * native_price,
        total_value_usd=balance * native_price,
        last_synced=_now(),
    )
