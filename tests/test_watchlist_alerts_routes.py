from web3dash import coingecko
from web3dash.catalog import get_catalog
from web3dash.user_data_store import load_activities


def _add(client, headers, coin_id="bitcoin", symbol="btc", name="Bitcoin"):
    return client.post("/api/watchlist", json={"coin_id": coin_id, "symbol": symbol, "name": name}, headers=headers)


# ── Watchlist ─────────────────────────────────────────────────────────────

def test_watchlist_add_update_remove(client, user):
    u, headers = user
    project = get_catalog().create_project("Bitcoin", "BTC", "Layer1", coin_id="bitcoin")

    added = _add(client, headers)
    assert added.status_code == 201, added.text
    item = added.json()
    assert item["symbol"] == "BTC"
    assert project.watchlist_count == 1
    assert _add(client, headers).status_code == 409

    updated = client.put(f"/api/watchlist/{item['id']}", json={"alert_price": 70000, "notes": "buy dip"},
                         headers=headers)
    assert updated.json()["alert_price"] == 70000

    assert client.delete(f"/api/watchlist/{item['id']}", headers=headers).status_code == 200
    assert project.watchlist_count == 0
    assert client.delete(f"/api/watchlist/{item['id']}", headers=headers).status_code == 404

    types = [a["type"] for a in load_activities(u.id)]
    assert types[:2] == ["watchlist_remove", "watchlist_add"]


def test_watchlist_lists_with_prices(client, user, monkeypatch):
    _, headers = user
    _add(client, headers)
    _add(client, headers, coin_id="ethereum", symbol="eth", name="Ethereum")
    monkeypatch.setattr(coingecko, "get_simple_prices", lambda ids: {
        "bitcoin": {"usd": 65000, "usd_24h_change": 1.5},
    })

    items = client.get("/api/watchlist", headers=headers).json()
    assert [i["coin_id"] for i in items] == ["ethereum", "bitcoin"]
    assert items[1]["current_price"] == 65000
    assert "current_price" not in items[0]


def test_watchlist_without_prices_when_upstream_down(client, user):
    _, headers = user
    _add(client, headers)
    items = client.get("/api/watchlist", headers=headers).json()
    assert len(items) == 1
    assert "current_price" not in items[0]


# ── Alerts ────────────────────────────────────────────────────────────────

def test_create_price_alert(client, user):
    u, headers = user
    project = get_catalog().create_project("Bitcoin", "BTC", "Layer1")
    response = client.post("/api/alerts", json={
        "type": "price",
        "name": "BTC above 100k",
        "project_id": project.id,
        "condition": {"operator": "gt", "value": 100000},
    }, headers=headers)
    assert response.status_code == 201, response.text
    alert = response.json()
    assert alert["condition"]["field"] == "price"
    assert alert["notification_channels"] == ["email"]
    assert alert["trigger_count"] == 0
    assert load_activities(u.id)[0]["type"] == "alert_create"


def test_alert_validation(client, user):
    _, headers = user
    project = get_catalog().create_project("Bitcoin", "BTC", "Layer1")
    base = {"type": "price", "name": "x", "project_id": project.id, "condition": {"operator": "gt", "value": 1}}

    assert client.post("/api/alerts", json={**base, "type": "weather"}, headers=headers).status_code == 400
    assert client.post("/api/alerts", json={**base, "condition": {"operator": "approx", "value": 1}},
                       headers=headers).status_code == 400
    assert client.post("/api/alerts", json={**base, "project_id": "missing"}, headers=headers).status_code == 404
    assert client.post("/api/alerts", json={**base, "notification_channels": ["fax"]},
                       headers=headers).status_code == 400
    whale = {"type": "whale", "name": "w", "condition": {"operator": "gt", "value": 1}}
    assert client.post("/api/alerts", json=whale, headers=headers).status_code == 400


def test_update_and_delete_alert(client, user):
    _, headers = user
    project = get_catalog().create_project("Bitcoin", "BTC", "Layer1")
    alert = client.post("/api/alerts", json={
        "type": "volume", "name": "Volume spike", "project_id": project.id,
        "condition": {"operator": "gte", "value": 1e9},
    }, headers=headers).json()

    updated = client.put(f"/api/alerts/{alert['id']}", json={"is_active": False}, headers=headers).json()
    assert updated["is_active"] is False
    assert client.get("/api/alerts?is_active=true", headers=headers).json() == []
    assert len(client.get("/api/alerts", headers=headers).json()) == 1

    assert client.delete(f"/api/alerts/{alert['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/alerts/{alert['id']}", headers=headers).status_code == 404


# ── Activities ────────────────────────────────────────────────────────────

def test_activity_log_pagination_and_stats(client, user):
    u, headers = user
    for coin in ("bitcoin", "ethereum", "solana"):
        _add(client, headers, coin_id=coin, symbol=coin[:3], name=coin.title())

    page = client.get("/api/user/activities?limit=2&page=1", headers=headers).json()
    assert page["total"] == 3
    assert page["pages"] == 2
    assert page["hasNext"] is True and page["hasPrev"] is False
    assert len(page["activities"]) == 2

    filtered = client.get("/api/user/activities?type=login", headers=headers).json()
    assert filtered["total"] == 0
    assert client.get("/api/user/activities?type=bogus", headers=headers).status_code == 400

    stats = client.get("/api/user/activities/stats?days=7", headers=headers).json()
    assert stats["totalActivities"] == 3
    assert stats["stats"][0]["type"] == "watchlist_add"
    assert stats["stats"][0]["count"] == 3
    assert stats["period"] == 7
