"""
Trending, hype and social scores for tracked projects.

Scores are recomputed after every market-data sync from the project's
market snapshot and its engagement counters. Every score lives in 0..100.
"""

import math

SCORE_MIN = 0
SCORE_MAX = 100

# Component caps
VOLUME_CAP = 40
CHANGE_24H_CAP = 30
VIEWS_CAP = 30
CHANGE_7D_CAP = 40
WATCHLIST_CAP = 30
VOLUME_HYPE_CAP = 30


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def round_half_up(value: float) -> int:
    """Round .5 upwards. Score sums are never negative."""
    return int(math.floor(value + 0.5))


def volume_score(volume_24h: float, market_cap: float) -> float:
    """Turnover ratio (24h volume / market cap) in percent, capped at 40."""
    if not market_cap or market_cap <= 0:
        return 0.0
    return min(VOLUME_CAP, (volume_24h or 0) / market_cap * 100)


def trending_score(volume_24h: float, market_cap: float, change_24h: float, views: int) -> int:
    vol = volume_score(volume_24h, market_cap)
    change = min(CHANGE_24H_CAP, abs(change_24h or 0))
    view = min(VIEWS_CAP, (views or 0) / 100)
    return int(clamp_score(round_half_up(vol + change + view)))


def hype_score(volume_24h: float, market_cap: float, change_7d: float, watchlist_count: int) -> int:
    change = min(CHANGE_7D_CAP, abs(change_7d or 0))
    watchlist = min(WATCHLIST_CAP, (watchlist_count or 0) / 10)
    volume_hype = min(VOLUME_HYPE_CAP, volume_score(volume_24h, market_cap) * 0.75)
    return int(clamp_score(round_half_up(change + watchlist + volume_hype)))


def social_score(watchlist_count: int, views: int) -> float:
    return round(clamp_score((watchlist_count or 0) * 2 + (views or 0) / 50), 1)


def engagement_score(views: int, adds: int, likes: int) -> int:
    """Raw engagement: views count once, tracking adds twice, likes three times."""
    return (views or 0) + 2 * (adds or 0) + 3 * (likes or 0)


def engagement_index(views: int, adds: int, likes: int) -> float:
    return round(engagement_score(views, adds, likes) / 6, 1)


def trending_rank_score(index: int) -> int:
    """Score for a coin at position `index` of the upstream trending list."""
    return max(SCORE_MIN, SCORE_MAX - index * 2)


def classify_trending_category(name: str, symbol: str, market_cap_rank: int | None) -> str:
    """Guess a category for an upstream trending coin from its name and rank."""
    name_lower = (name or "").lower()
    symbol_lower = (symbol or "").lower()

    if "meme" in name_lower or "doge" in symbol_lower or "shib" in symbol_lower:
        return "Meme"
    if "defi" in name_lower or "finance" in name_lower:
        return "DeFi"
    if "game" in name_lower or "gaming" in name_lower:
        return "Gaming"
    if "ai" in name_lower.split() or "artificial" in name_lower:
        return "AI"
    if market_cap_rank and market_cap_rank <= 20:
        return "Layer1"
    return "Other"


def recompute_project_scores(project) -> None:
    """Refresh trending, hype and social scores of a catalog Project in place."""
    md = project.market_data
    metrics = project.metrics

    metrics.trending_score = trending_score(md.volume_24h, md.market_cap, md.change_24h, project.views)
    metrics.hype_score = hype_score(md.volume_24h, md.market_cap, md.change_7d, project.watchlist_count)
    metrics.social_score = social_score(project.watchlist_count, project.views)
