from web3dash import config, sync
from web3dash.catalog import get_catalog
from web3dash.coingecko import MarketDataError
from web3dash.user_data_store import load_watchlist, save_watchlist
from web3dash.whales import get_whale_store


# ── System ────────────────────────────────────────────────────────────────

def test_health_and_settings(client):
    assert client.get("/api/health").json()["status"] == "ok"
    settings = client.get("/api/settings").json()
    assert set(settings) == {"auto_sync_enabled", "auto_sync_interval_minutes", "invite_only"}


def test_stats_requires_auth(client, user):
    _, headers = user
    assert client.get("/api/stats").status_code == 401
    stats = client.get("/api/stats", headers=headers).json()
    assert stats["portfolios"] == 0
    assert stats["activeAlerts"] == 0


def test_landing_data(client, user):
    catalog = get_catalog()
    catalog.create_project("Bitcoin", "BTC", "Layer1")
    catalog.create_project("Hidden", "HID", "DeFi", is_public=False)

    data = client.get("/api/landing-data").json()
    assert data["stats"]["users"] == 1
    assert data["stats"]["projects"] == 1
    assert [p["symbol"] for p in data["topProjects"]] == ["BTC"]


def test_cron_endpoints_require_secret(client, cron_headers):
    assert client.get("/api/cron").status_code == 401
    assert client.get("/api/cron", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.post("/api/trending").status_code == 401

    response = client.get("/api/cron", headers=cron_headers)
    assert response.status_code == 200
    results = response.json()["results"]
    # no projects to update, upstream trending unreachable
    assert results["marketData"] is True
    assert results["trending"] is False


def test_cron_disabled_without_configured_secret(client, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", "")
    assert client.get("/api/cron", headers={"Authorization": "Bearer "}).status_code == 401
    assert client.get("/api/cron").status_code == 401


def test_cron_market_data_maps_upstream_failure(client, cron_headers):
    get_catalog().create_project("Bitcoin", "BTC", "Layer1")
    assert client.get("/api/cron/update-market-data", headers=cron_headers).status_code == 502
    assert client.get("/api/cron/sync-trending", headers=cron_headers).status_code == 502


def test_cron_market_data_evaluates_alerts(client, cron_headers, monkeypatch):
    monkeypatch.setattr(sync, "update_market_data", lambda limit=100: {"updated": 3, "symbols": 3})
    monkeypatch.setattr(sync, "evaluate_alerts", lambda: 2)
    body = client.get("/api/cron/update-market-data?limit=10", headers=cron_headers).json()
    assert body == {"success": True, "updated": 3, "symbols": 3, "alertsTriggered": 2}


def test_trending_sync_route(client, cron_headers, monkeypatch):
    monkeypatch.setattr(sync, "sync_trending_coins", lambda: 7)
    body = client.post("/api/trending", headers=cron_headers).json()
    assert body["count"] == 7

    def _down():
        raise MarketDataError("down")

    monkeypatch.setattr(sync, "sync_trending_coins", _down)
    assert client.post("/api/trending", headers=cron_headers).status_code == 502


# ── Admin ─────────────────────────────────────────────────────────────────

def test_admin_routes_forbidden_for_regular_users(client, user):
    _, headers = user
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/invite-codes", headers=headers).status_code == 403


def test_invite_code_management(client, admin):
    _, headers = admin
    assert client.post("/api/admin/invite-codes", json={"count": 0}, headers=headers).status_code == 400
    assert client.post("/api/admin/invite-codes", json={"count": 1, "expires_in_days": 0},
                       headers=headers).status_code == 400

    created = client.post("/api/admin/invite-codes", json={"count": 3, "expires_in_days": 7}, headers=headers)
    assert created.status_code == 201
    codes = created.json()
    assert len(codes) == 3
    assert all(c["expires_at"] for c in codes)
    assert len({c["code"] for c in codes}) == 3

    assert len(client.get("/api/admin/invite-codes", headers=headers).json()) == 3
    assert client.delete(f"/api/admin/invite-codes/{codes[0]['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/invite-codes/{codes[0]['id']}", headers=headers).status_code == 404


def test_admin_user_management(client, admin, make_user):
    admin_user, headers = admin
    bob, _ = make_user("bob@example.com", "bob")
    save_watchlist(bob.id, [{"id": "w1", "coin_id": "bitcoin"}])
    whale = get_whale_store().create_whale("0x" + "1" * 40)
    get_whale_store().track_whale(whale, bob.id)

    users = client.get("/api/admin/users", headers=headers).json()
    assert {u["email"] for u in users} == {"admin@example.com", "bob@example.com"}

    assert client.put(f"/api/admin/users/{bob.id}", json={"subscription": "gold"},
                      headers=headers).status_code == 400
    updated = client.put(f"/api/admin/users/{bob.id}", json={"subscription": "pro"}, headers=headers).json()
    assert updated["subscription"] == "pro"

    assert client.delete(f"/api/admin/users/{admin_user.id}", headers=headers).status_code == 400
    assert client.delete(f"/api/admin/users/{bob.id}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/users/{bob.id}", headers=headers).status_code == 404
    assert load_watchlist(bob.id) == []
    assert get_whale_store().tracked_by(bob.id) == []


def test_admin_project_moderation(client, admin):
    _, headers = admin
    project = get_catalog().create_project("Bitcoin", "BTC", "Layer1")

    assert client.put(f"/api/admin/projects/{project.id}", json={"category": "Weird"},
                      headers=headers).status_code == 400
    updated = client.put(f"/api/admin/projects/{project.id}", json={"is_public": False}, headers=headers)
    assert updated.status_code == 200
    assert project.is_public is False
    assert [p["id"] for p in client.get("/api/admin/projects", headers=headers).json()] == [project.id]

    assert client.delete(f"/api/admin/projects/{project.id}", headers=headers).status_code == 200
    assert get_catalog().get_project(project.id) is None
