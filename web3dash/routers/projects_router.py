import math
from dataclasses import asdict
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash import coingecko
from web3dash.auth import get_current_user, get_optional_user, is_admin
from web3dash.catalog import BLOCKCHAINS, PROJECT_CATEGORIES, CatalogStore, MarketData, Project, get_catalog
from web3dash.coingecko import MarketDataError
from web3dash.db import Database, User, get_db
from web3dash.scoring import engagement_index, engagement_score, recompute_project_scores
from web3dash.user_data_store import log_activity

router = APIRouter()

TRENDING_LIMIT = 50
MAX_NAME_LENGTH = 100
MAX_SYMBOL_LENGTH = 10


def get_catalog_store() -> CatalogStore:
    return get_catalog()


def project_payload(project: Project, user: Optional[User] = None) -> dict:
    data = asdict(project)
    data.pop("liked_by")
    data["is_liked"] = user is not None and user.id in project.liked_by
    data["is_tracked"] = user is not None and project.id in user.tracked_projects
    return data


def _get_visible_project(catalog: CatalogStore, project_id: str, user: Optional[User]) -> Project:
    project = catalog.get_project(project_id)
    if not project or not project.visible_to(user.id if user else None):
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _check_can_edit(project: Project, user: User):
    if project.added_by != user.id and not is_admin(user):
        raise HTTPException(status_code=403, detail="Only the creator can modify this project")


class CreateProjectRequest(BaseModel):
    name: str
    symbol: str
    category: str = "Other"
    coin_id: Optional[str] = None
    description: str = ""
    website: str = ""
    logo: Optional[str] = None
    whitepaper: Optional[str] = None
    blockchain: str = "Other"
    contract_address: Optional[str] = None
    social_links: Dict[str, str] = {}
    is_public: bool = True


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = None
    symbol: Optional[str] = None
    category: Optional[str] = None
    coin_id: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    whitepaper: Optional[str] = None
    blockchain: Optional[str] = None
    contract_address: Optional[str] = None
    social_links: Optional[Dict[str, str]] = None
    is_public: Optional[bool] = None


class TrackProjectRequest(BaseModel):
    project_id: str


def _validate_choices(category: Optional[str], blockchain: Optional[str]):
    if category is not None and category not in PROJECT_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Category must be one of: {', '.join(PROJECT_CATEGORIES)}")
    if blockchain is not None and blockchain not in BLOCKCHAINS:
        raise HTTPException(status_code=400, detail=f"Blockchain must be one of: {', '.join(BLOCKCHAINS)}")


def _validate_name_symbol(name: str, symbol: str):
    if not name or not symbol:
        raise HTTPException(status_code=400, detail="Name and symbol are required")
    if len(name) > MAX_NAME_LENGTH or len(symbol) > MAX_SYMBOL_LENGTH:
        raise HTTPException(status_code=400, detail="Name or symbol is too long")


def _check_unique(catalog: CatalogStore, name: str, symbol: str, exclude_id: Optional[str] = None):
    for other in (catalog.find_by_symbol(symbol), catalog.find_by_name(name)):
        if other and other.id != exclude_id:
            raise HTTPException(status_code=409, detail="A project with this name or symbol already exists")


@router.get("/api/projects")
def list_projects(
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    current_user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    """List visible projects by market cap, paginated."""
    page = max(1, page)
    limit = min(max(1, limit), 100)
    projects = catalog.list_projects(
        category=category,
        search=search,
        viewer_id=current_user.id if current_user else None,
    )
    skip = (page - 1) * limit
    return {
        "projects": [project_payload(p, current_user) for p in projects[skip:skip + limit]],
        "total": len(projects),
        "page": page,
        "pages": math.ceil(len(projects) / limit),
    }


@router.post("/api/projects", status_code=201)
def create_project(
    body: CreateProjectRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    """Add a project to the catalog and track it for the creator."""
    name = body.name.strip()
    symbol = body.symbol.strip().upper()
    _validate_name_symbol(name, symbol)
    _validate_choices(body.category, body.blockchain)
    _check_unique(catalog, name, symbol)

    extra = body.model_dump(exclude={"name", "symbol", "category"}, exclude_none=True)
    project = catalog.create_project(name, symbol, body.category, added_by=current_user.id, **extra)

    try:
        market = coingecko.fetch_market_data([symbol], known_ids={symbol: project.coin_id} if project.coin_id else None)
    except MarketDataError as e:
        print(f"[CoinGecko] Initial market data for {symbol} unavailable: {e}")
        market = {}
    if symbol in market:
        data = dict(market[symbol])
        coin_id = data.pop("coin_id")
        project.coin_id = project.coin_id or coin_id
        project.market_data = MarketData(**data)
        recompute_project_scores(project)
        catalog.save()

    db.track_project(current_user, project.id)
    catalog.record_add(project)
    log_activity(current_user.id, "project_add", f"Added project {project.name} ({project.symbol})",
                 metadata={"projectId": project.id})
    return project_payload(project, current_user)


@router.get("/api/projects/trending")
def trending_projects(
    limit: int = TRENDING_LIMIT,
    current_user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    """Public projects ranked by trending score (engagement when no score yet)."""
    ranked = []
    for project in catalog.list_projects():
        score = project.metrics.trending_score or engagement_score(
            project.views, project.add_count, project.like_count
        )
        payload = project_payload(project, current_user)
        payload["trending_score"] = score
        payload["stats"] = {
            "views": project.views,
            "adds": project.add_count,
            "likes": project.like_count,
            "engagement": engagement_index(project.views, project.add_count, project.like_count),
        }
        ranked.append(payload)

    ranked.sort(key=lambda p: p["trending_score"], reverse=True)
    return {"projects": ranked[:min(max(1, limit), TRENDING_LIMIT)]}


@router.get("/api/projects/tracked")
def tracked_projects(
    current_user: User = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    projects = [catalog.get_project(pid) for pid in current_user.tracked_projects]
    return [project_payload(p, current_user) for p in projects if p]


@router.post("/api/projects/track")
def track_project(
    body: TrackProjectRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, body.project_id, current_user)
    if db.track_project(current_user, project.id):
        catalog.record_add(project)
        log_activity(current_user.id, "project_add", f"Started tracking {project.name}",
                     metadata={"projectId": project.id})
    return {"tracked": True, "project_id": project.id}


@router.delete("/api/projects/track")
def untrack_project(
    project_id: str,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not db.untrack_project(current_user, project_id):
        raise HTTPException(status_code=404, detail="Project is not tracked")
    log_activity(current_user.id, "project_remove", "Stopped tracking project",
                 metadata={"projectId": project_id})
    return {"tracked": False, "project_id": project_id}


@router.get("/api/projects/{project_id}")
def get_project(
    project_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    return project_payload(_get_visible_project(catalog, project_id, current_user), current_user)


@router.put("/api/projects/{project_id}")
def update_project(
    project_id: str,
    body: UpdateProjectRequest,
    current_user: User = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, project_id, current_user)
    _check_can_edit(project, current_user)
    _validate_choices(body.category, body.blockchain)

    changes = body.model_dump(exclude_none=True)
    if "name" in changes or "symbol" in changes:
        changes["name"] = changes.get("name", project.name).strip()
        changes["symbol"] = changes.get("symbol", project.symbol).strip().upper()
        _validate_name_symbol(changes["name"], changes["symbol"])
        _check_unique(catalog, changes["name"], changes["symbol"], exclude_id=project.id)

    catalog.update_project(project, **changes)
    return project_payload(project, current_user)


@router.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, project_id, current_user)
    _check_can_edit(project, current_user)
    catalog.delete_project(project.id)
    db.forget_project(project.id)
    log_activity(current_user.id, "project_remove", f"Deleted project {project.name}",
                 metadata={"projectId": project.id})
    return {"status": "deleted"}


@router.post("/api/projects/{project_id}/view")
def record_view(
    project_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, project_id, current_user)
    return {"views": catalog.record_view(project)}


@router.get("/api/projects/{project_id}/like")
def get_like_status(
    project_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, project_id, current_user)
    return {
        "liked": current_user is not None and current_user.id in project.liked_by,
        "like_count": project.like_count,
    }


@router.post("/api/projects/{project_id}/like")
def toggle_like(
    project_id: str,
    current_user: User = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    project = _get_visible_project(catalog, project_id, current_user)
    liked = catalog.toggle_like(project, current_user.id)
    return {"liked": liked, "like_count": project.like_count}
