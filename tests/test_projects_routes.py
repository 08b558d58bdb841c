from web3dash import coingecko
from web3dash.catalog import get_catalog, MarketData
from web3dash.user_data_store import load_activities


def _create(client, headers, **overrides):
    payload = {"name": "Example Token", "symbol": "exm", "category": "DeFi"}
    payload.update(overrides)
    return client.post("/api/projects", json=payload, headers=headers)


def test_create_project_tracks_it_for_creator(client, user, db):
    u, headers = user
    response = _create(client, headers)
    assert response.status_code == 201, response.text
    project = response.json()
    assert project["symbol"] == "EXM"
    assert project["added_by"] == u.id
    assert project["add_count"] == 1
    assert project["is_tracked"] is True
    assert "liked_by" not in project

    tracked = client.get("/api/projects/tracked", headers=headers).json()
    assert [p["id"] for p in tracked] == [project["id"]]
    assert load_activities(u.id)[0]["type"] == "project_add"


def test_create_project_uses_initial_market_data(client, user, monkeypatch):
    _, headers = user
    monkeypatch.setattr(coingecko, "fetch_market_data", lambda symbols, known_ids=None: {
        "EXM": {"coin_id": "example", "price": 2.0, "market_cap": 1000.0, "volume_24h": 100.0,
                "change_24h": 5.0, "change_7d": 0.0},
    })
    project = _create(client, headers).json()
    assert project["coin_id"] == "example"
    assert project["market_data"]["price"] == 2.0
    assert project["metrics"]["trending_score"] == 15


def test_duplicate_symbol_conflicts(client, user):
    _, headers = user
    _create(client, headers)
    assert _create(client, headers, name="Other").status_code == 409
    assert _create(client, headers, name="example token", symbol="OTH").status_code == 409


def test_invalid_category_rejected(client, user):
    _, headers = user
    assert _create(client, headers, category="Casino").status_code == 400


def test_list_filters_and_sorts_by_market_cap(client, user):
    _, headers = user
    small = _create(client, headers, name="Small", symbol="SML").json()
    big = _create(client, headers, name="Big", symbol="BIG", category="Layer1").json()
    catalog = get_catalog()
    catalog.get_project(small["id"]).market_data = MarketData(market_cap=10)
    catalog.get_project(big["id"]).market_data = MarketData(market_cap=1000)

    listing = client.get("/api/projects").json()
    assert [p["symbol"] for p in listing["projects"]] == ["BIG", "SML"]
    assert listing["total"] == 2

    assert [p["symbol"] for p in client.get("/api/projects?category=Layer1").json()["projects"]] == ["BIG"]
    assert [p["symbol"] for p in client.get("/api/projects?search=sma").json()["projects"]] == ["SML"]


def test_private_project_visible_only_to_creator(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("bob@example.com", "bob")
    project = _create(client, headers, is_public=False).json()

    assert client.get(f"/api/projects/{project['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/projects/{project['id']}", headers=other_headers).status_code == 404
    assert client.get("/api/projects").json()["total"] == 0


def test_only_creator_or_admin_can_edit(client, user, make_user, admin):
    _, headers = user
    _, other_headers = make_user("bob@example.com", "bob")
    _, admin_headers = admin
    project = _create(client, headers).json()

    forbidden = client.put(f"/api/projects/{project['id']}", json={"description": "x"}, headers=other_headers)
    assert forbidden.status_code == 403
    ok = client.put(f"/api/projects/{project['id']}", json={"description": "Updated"}, headers=admin_headers)
    assert ok.status_code == 200
    assert ok.json()["description"] == "Updated"


def test_delete_project_untracks_it(client, user, db):
    u, headers = user
    project = _create(client, headers).json()
    assert client.delete(f"/api/projects/{project['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/projects/{project['id']}").status_code == 404
    assert db.get_user_by_id(u.id).tracked_projects == []


def test_track_and_untrack(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("bob@example.com", "bob")
    project = _create(client, headers).json()

    assert client.post("/api/projects/track", json={"project_id": project["id"]}, headers=other_headers).status_code == 200
    assert get_catalog().get_project(project["id"]).add_count == 2
    # tracking twice does not count twice
    client.post("/api/projects/track", json={"project_id": project["id"]}, headers=other_headers)
    assert get_catalog().get_project(project["id"]).add_count == 2

    assert client.delete(f"/api/projects/track?project_id={project['id']}", headers=other_headers).status_code == 200
    assert client.delete(f"/api/projects/track?project_id={project['id']}", headers=other_headers).status_code == 404
    assert client.post("/api/projects/track", json={"project_id": "missing"}, headers=other_headers).status_code == 404


def test_views_and_likes(client, user):
    _, headers = user
    project = _create(client, headers).json()
    pid = project["id"]

    assert client.post(f"/api/projects/{pid}/view").json() == {"views": 1}
    assert client.post(f"/api/projects/{pid}/view").json() == {"views": 2}

    assert client.get(f"/api/projects/{pid}/like").json() == {"liked": False, "like_count": 0}
    assert client.post(f"/api/projects/{pid}/like", headers=headers).json() == {"liked": True, "like_count": 1}
    assert client.get(f"/api/projects/{pid}/like", headers=headers).json() == {"liked": True, "like_count": 1}
    assert client.post(f"/api/projects/{pid}/like", headers=headers).json() == {"liked": False, "like_count": 0}
    assert client.post(f"/api/projects/{pid}/like").status_code == 401


def test_trending_projects_fall_back_to_engagement(client, user):
    _, headers = user
    quiet = _create(client, headers, name="Quiet", symbol="QT").json()
    busy = _create(client, headers, name="Busy", symbol="BSY").json()
    for _ in range(5):
        client.post(f"/api/projects/{busy['id']}/view")
    client.post(f"/api/projects/{busy['id']}/like", headers=headers)

    projects = client.get("/api/projects/trending").json()["projects"]
    assert [p["id"] for p in projects] == [busy["id"], quiet["id"]]
    # 5 views + 2*1 add + 3*1 like
    assert projects[0]["trending_score"] == 10
    assert projects[0]["stats"] == {"views": 5, "adds": 1, "likes": 1, "engagement": 1.7}


def test_update_applies_create_validation(client, user):
    _, headers = user
    project = _create(client, headers).json()
    _create(client, headers, name="Other Token", symbol="OTH")
    url = f"/api/projects/{project['id']}"

    assert client.put(url, json={"name": "   "}, headers=headers).status_code == 400
    assert client.put(url, json={"symbol": ""}, headers=headers).status_code == 400
    assert client.put(url, json={"name": "x" * 101}, headers=headers).status_code == 400
    assert client.put(url, json={"symbol": "TOOLONGSYMBOL"}, headers=headers).status_code == 400
    assert client.put(url, json={"name": "other token"}, headers=headers).status_code == 409
    assert client.put(url, json={"symbol": "oth"}, headers=headers).status_code == 409

    renamed = client.put(url, json={"name": "Example Token v2", "symbol": "exm"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Example Token v2"
    assert renamed.json()["symbol"] == "EXM"
