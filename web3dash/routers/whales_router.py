from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash.auth import get_current_user
from web3dash.coingecko import MarketDataError
from web3dash.db import User
from web3dash.explorer import ExplorerError
from web3dash.sync import native_prices
from web3dash.user_data_store import log_activity
from web3dash.whales import (
    SUPPORTED_CHAINS,
    WhaleStore,
    WhaleWallet,
    add_tracked_wallet,
    delete_tracked_wallet,
    get_whale_store,
    is_valid_address,
    list_tracked_wallets,
    refresh_tracked_wallet,
    update_tracked_wallet,
    whale_threshold,
)

router = APIRouter()


def get_whales() -> WhaleStore:
    return get_whale_store()


def whale_payload(wallet: WhaleWallet, user: User) -> dict:
    data = asdict(wallet)
    data.pop("tracking_users")
    data["tracked_by_me"] = user.id in wallet.tracking_users
    data["tracker_count"] = len(wallet.tracking_users)
    data["whale_threshold_usd"] = whale_threshold(wallet.chain)
    data["large_transactions"] = len(wallet.large_transactions())
    return data


def _check_chain(chain: str):
    if chain not in SUPPORTED_CHAINS:
        raise HTTPException(status_code=400, detail=f"Chain must be one of: {', '.join(SUPPORTED_CHAINS)}")


def _check_address(address: str):
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail="Invalid wallet address")


def _native_price(chain: str) -> float:
    try:
        return native_prices().get(chain, 0.0)
    except MarketDataError as e:
        print(f"[CoinGecko] Native price for {chain} unavailable: {e}")
        return 0.0


def _get_whale_or_404(store: WhaleStore, address: str, chain: Optional[str]) -> WhaleWallet:
    wallet = store.get_whale(address, chain)
    if not wallet:
        raise HTTPException(status_code=404, detail="Whale wallet not found")
    return wallet


class CreateWhaleRequest(BaseModel):
    address: str
    chain: str = "ethereum"
    label: str = ""


class TrackedWalletRequest(BaseModel):
    address: str
    network: str = "ethereum"
    label: str = ""
    is_owned: bool = False
    tags: List[str] = []
    notes: str = ""


class UpdateTrackedWalletRequest(BaseModel):
    label: Optional[str] = None
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None


# ── Whale wallets ─────────────────────────────────────────────────────────

@router.get("/api/whale-wallets")
def list_whales(
    chain: Optional[str] = "ethereum",
    limit: int = 50,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    """Whale wallets on a chain, largest USD balance first (chain=all for every chain)."""
    if chain == "all":
        chain = None
    return [whale_payload(w, current_user) for w in store.list_whales(chain, min(max(1, limit), 200))]


@router.post("/api/whale-wallets", status_code=201)
def create_whale(
    body: CreateWhaleRequest,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    _check_address(body.address)
    _check_chain(body.chain)
    wallet = store.create_whale(body.address, body.chain, body.label.strip())
    if not wallet:
        raise HTTPException(status_code=409, detail="Wallet already exists")
    return whale_payload(wallet, current_user)


@router.get("/api/whale-wallets/{address}")
def get_whale(
    address: str,
    chain: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    return whale_payload(_get_whale_or_404(store, address, chain), current_user)


@router.post("/api/whale-wallets/{address}/track")
def track_whale(
    address: str,
    chain: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    wallet = _get_whale_or_404(store, address, chain)
    if store.track_whale(wallet, current_user.id):
        log_activity(current_user.id, "whale_track", f"Started tracking whale {wallet.label}",
                     metadata={"address": wallet.address, "chain": wallet.chain})
    return whale_payload(wallet, current_user)


@router.delete("/api/whale-wallets/{address}/track")
def untrack_whale(
    address: str,
    chain: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    wallet = _get_whale_or_404(store, address, chain)
    if not store.untrack_whale(wallet, current_user.id):
        raise HTTPException(status_code=404, detail="Whale wallet is not tracked")
    return whale_payload(wallet, current_user)


@router.post("/api/whale-wallets/{address}/refresh")
def refresh_whale(
    address: str,
    chain: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    store: WhaleStore = Depends(get_whales),
):
    """Reload balance and recent transactions from the chain explorer."""
    wallet = _get_whale_or_404(store, address, chain)
    try:
        store.refresh_whale(wallet, _native_price(wallet.chain))
    except ExplorerError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return whale_payload(wallet, current_user)


# ── Tracked wallets ───────────────────────────────────────────────────────

@router.get("/api/tracked-wallets")
def get_tracked_wallets(current_user: User = Depends(get_current_user)):
    return [asdict(w) for w in list_tracked_wallets(current_user.id)]


@router.post("/api/tracked-wallets", status_code=201)
def add_wallet(body: TrackedWalletRequest, current_user: User = Depends(get_current_user)):
    _check_address(body.address)
    _check_chain(body.network)
    wallet = add_tracked_wallet(
        current_user.id,
        body.address,
        network=body.network,
        label=body.label.strip(),
        is_owned=body.is_owned,
        tags=body.tags,
        notes=body.notes,
    )
    if not wallet:
        raise HTTPException(status_code=409, detail="Wallet is already tracked")
    log_activity(current_user.id, "wallet_connect", f"Added wallet {wallet.label or wallet.address}",
                 metadata={"address": wallet.address, "network": wallet.network})
    return asdict(wallet)


@router.put("/api/tracked-wallets/{wallet_id}")
def update_wallet(
    wallet_id: str,
    body: UpdateTrackedWalletRequest,
    current_user: User = Depends(get_current_user),
):
    wallet = update_tracked_wallet(current_user.id, wallet_id, **body.model_dump(exclude_none=True))
    if not wallet:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return asdict(wallet)


@router.delete("/api/tracked-wallets/{wallet_id}")
def delete_wallet(wallet_id: str, current_user: User = Depends(get_current_user)):
    if not delete_tracked_wallet(current_user.id, wallet_id):
        raise HTTPException(status_code=404, detail="Wallet not found")
    return {"status": "deleted"}


@router.post("/api/tracked-wallets/{wallet_id}/refresh")
def refresh_wallet(wallet_id: str, current_user: User = Depends(get_current_user)):
    wallets = {w.id: w for w in list_tracked_wallets(current_user.id)}
    if wallet_id not in wallets:
        raise HTTPException(status_code=404, detail="Wallet not found")
    try:
        wallet = refresh_tracked_wallet(
            current_user.id, wallet_id, _native_price(wallets[wallet_id].network)
        )
    except ExplorerError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return asdict(wallet)
