"""
Project catalog and trending-coin snapshots using JSON storage.

Projects live in data/projects.json, upstream trending coins in
data/trending.json. Both are shared by all users.
"""

import json
import threading
import uuid
from dataclasses import dataclass, asdict, field, fields
from datetime import datetime, timezone
from typing import Dict, List, Optional

from web3dash import config

PROJECT_CATEGORIES = (
    "DeFi", "NFT", "Gaming", "Infrastructure", "Layer1", "Layer2",
    "Meme", "Metaverse", "AI", "Other",
)
TRENDING_CATEGORIES = PROJECT_CATEGORIES + ("Oracle", "Exchange")
BLOCKCHAINS = (
    "Ethereum", "BSC", "Polygon", "Arbitrum", "Optimism", "Avalanche", "Solana", "Other",
)
DEFAULT_LOGO = "https://via.placeholder.com/150"

_catalog_lock = threading.Lock()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class MarketData:
    price: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    change_24h: float = 0.0
    change_7d: float = 0.0
    change_30d: float = 0.0
    circulating_supply: float = 0.0
    total_supply: float = 0.0
    max_supply: Optional[float] = None
    ath: Optional[float] = None
    atl: Optional[float] = None
    market_cap_rank: Optional[int] = None


@dataclass
class ProjectMetrics:
    social_score: float = 0.0
    trending_score: int = 0
    hype_score: int = 0
    holders: int = 0
    transactions_24h: int = 0
    active_addresses_24h: int = 0
    tvl: float = 0.0


@dataclass
class Project:
    """A tracked coin or token."""
    id: str
    name: str
    symbol: str
    category: str
    created_at: str
    coin_id: Optional[str] = None
    logo: str = DEFAULT_LOGO
    description: str = ""
    website: str = ""
    whitepaper: Optional[str] = None
    social_links: Dict[str, str] = field(default_factory=dict)
    blockchain: str = "Other"
    contract_address: Optional[str] = None
    is_active: bool = True
    is_public: bool = True
    added_by: Optional[int] = None
    market_data: MarketData = field(default_factory=MarketData)
    metrics: ProjectMetrics = field(default_factory=ProjectMetrics)
    views: int = 0
    watchlist_count: int = 0
    add_count: int = 0
    like_count: int = 0
    liked_by: List[int] = field(default_factory=list)
    updated_at: Optional[str] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        data = _known_fields(cls, data)
        data["market_data"] = MarketData(**_known_fields(MarketData, data.get("market_data") or {}))
        data["metrics"] = ProjectMetrics(**_known_fields(ProjectMetrics, data.get("metrics") or {}))
        return cls(**data)

    def visible_to(self, user_id: Optional[int]) -> bool:
        return self.is_public or (user_id is not None and self.added_by == user_id)


@dataclass
class TrendingCoin:
    """Snapshot of a coin from the upstream trending list."""
    coin_id: str
    name: str
    symbol: str
    thumb: str
    market_cap_rank: int
    category: str
    price: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    trending_score: int = 0
    last_updated: Optional[str] = None


class CatalogStore:
    """JSON-backed store for projects and trending coins."""

    def __init__(self):
        self.projects: List[Project] = []
        self.trending: List[TrendingCoin] = []

    def load(self):
        """Load projects and trending coins from disk."""
        with _catalog_lock:
            projects_path = config.DATA_DIR / "projects.json"
            if projects_path.exists():
                try:
                    with open(projects_path, "r", encoding="utf-8") as f:
                        self.projects = [Project.from_dict(p) for p in json.load(f)]
                except Exception as e:
                    print(f"[DB] Error loading projects: {e}")

            trending_path = config.DATA_DIR / "trending.json"
            if trending_path.exists():
                try:
                    with open(trending_path, "r", encoding="utf-8") as f:
                        self.trending = [
                            TrendingCoin(**_known_fields(TrendingCoin, c)) for c in json.load(f)
                        ]
                except Exception as e:
                    print(f"[DB] Error loading trending coins: {e}")

    def save(self):
        """Save projects and trending coins to disk."""
        with _catalog_lock:
            try:
                config.DATA_DIR.mkdir(parents=True, exist_ok=True)
                with open(config.DATA_DIR / "projects.json", "w", encoding="utf-8") as f:
                    json.dump([asdict(p) for p in self.projects], f, indent=2, ensure_ascii=False)
                with open(config.DATA_DIR / "trending.json", "w", encoding="utf-8") as f:
                    json.dump([asdict(c) for c in self.trending], f, indent=2, ensure_ascii=False)
            except Exception as e:
                print(f"[DB] Error saving catalog: {e}")

    # Project queries
    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def find_by_symbol(self, symbol: str) -> Optional[Project]:
        symbol_upper = symbol.strip().upper()
        for project in self.projects:
            if project.symbol == symbol_upper:
                return project
        return None

    def find_by_name(self, name: str) -> Optional[Project]:
        name_lower = name.strip().lower()
        for project in self.projects:
            if project.name.lower() == name_lower:
                return project
        return None

    def find_by_coin_id(self, coin_id: str) -> Optional[Project]:
        for project in self.projects:
            if project.coin_id and project.coin_id == coin_id:
                return project
        return None

    def list_projects(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        viewer_id: Optional[int] = None,
        active_only: bool = True,
    ) -> List[Project]:
        """
        Filter projects and sort them by market cap (largest first).

        Args:
            category: Exact category, "All"/None for every category
            search: Case-insensitive substring of name or symbol
            viewer_id: Private projects added by this user are included
            active_only: Skip deactivated projects
        """
        result = []
        search_lower = search.lower() if search else None
        for project in self.projects:
            if active_only and not project.is_active:
                continue
            if not project.visible_to(viewer_id):
                continue
            if category and category != "All" and project.category != category:
                continue
            if search_lower and search_lower not in project.name.lower() \
                    and search_lower not in project.symbol.lower():
                continue
            result.append(project)

        result.sort(key=lambda p: p.market_data.market_cap or 0, reverse=True)
        return result

    # Project mutations
    def create_project(self, name: str, symbol: str, category: str, **extra) -> Project:
        """Create and persist a project. Caller checks for duplicates."""
        now = _now()
        project = Project(
            id=uuid.uuid4().hex,
            name=name.strip(),
            symbol=symbol.strip().upper(),
            category=category,
            created_at=now,
            updated_at=now,
            last_updated=now,
            **extra,
        )
        self.projects.append(project)
        self.save()
        return project

    def update_project(self, project: Project, **changes) -> Project:
        for key, value in changes.items():
            if value is None or not hasattr(project, key):
                continue
            if key == "symbol":
                value = value.strip().upper()
            setattr(project, key, value)
        project.updated_at = _now()
        self.save()
        return project

    def delete_project(self, project_id: str) -> bool:
        project = self.get_project(project_id)
        if not project:
            return False
        self.projects.remove(project)
        self.save()
        return True

    def record_view(self, project: Project) -> int:
        project.views += 1
        self.save()
        return project.views

    def toggle_like(self, project: Project, user_id: int) -> bool:
        """Like or unlike project. Returns the new liked state."""
        if user_id in project.liked_by:
            project.liked_by.remove(user_id)
            project.like_count = max(0, project.like_count - 1)
            liked = False
        else:
            project.liked_by.append(user_id)
            project.like_count += 1
            liked = True
        self.save()
        return liked

    def record_add(self, project: Project):
        project.add_count += 1
        self.save()

    def adjust_watchlist_count(self, coin_id: str, symbol: str, delta: int) -> Optional[Project]:
        """Shift watchlist counter of the project matching coin id or symbol."""
        project = self.find_by_coin_id(coin_id) or self.find_by_symbol(symbol)
        if not project:
            return None
        project.watchlist_count = max(0, project.watchlist_count + delta)
        self.save()
        return project

    # Trending coins
    def upsert_trending_coin(self, coin: TrendingCoin) -> TrendingCoin:
        for i, existing in enumerate(self.trending):
            if existing.coin_id == coin.coin_id:
                self.trending[i] = coin
                break
        else:
            self.trending.append(coin)
        return coin

    def list_trending_coins(self, category: Optional[str] = None, limit: int = 10) -> List[TrendingCoin]:
        coins = [
            c for c in self.trending
            if not category or category == "all" or c.category == category
        ]
        coins.sort(key=lambda c: c.trending_score, reverse=True)
        return coins[:limit]


_catalog_instance: Optional[CatalogStore] = None


def get_catalog() -> CatalogStore:
    """Get global catalog instance (singleton)."""
    global _catalog_instance
    if _catalog_instance is None:
        _catalog_instance = CatalogStore()
        _catalog_instance.load()
    return _catalog_instance


def reset_catalog():
    global _catalog_instance
    _catalog_instance = None
