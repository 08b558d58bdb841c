import pytest

from web3dash import coingecko
from web3dash.user_data_store import load_alerts, save_alerts


def _create_portfolio(client, headers, **overrides):
    payload = {"name": "Long term", "assets": [{"symbol": "btc", "amount": 2, "purchase_price": 100}]}
    payload.update(overrides)
    response = client.post("/api/portfolios", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_fetch_portfolio(client, user):
    _, headers = user
    portfolio = _create_portfolio(client, headers)
    assert portfolio["total_cost"] == 200
    assert portfolio["total_value"] == 200
    assert portfolio["assets"][0]["symbol"] == "BTC"

    fetched = client.get(f"/api/portfolios/{portfolio['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Long term"
    assert [p["id"] for p in client.get("/api/portfolios", headers=headers).json()] == [portfolio["id"]]


def test_portfolios_are_private(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("bob@example.com", "bob")
    portfolio = _create_portfolio(client, headers)
    assert client.get(f"/api/portfolios/{portfolio['id']}", headers=other_headers).status_code == 404


def test_create_requires_name(client, user):
    _, headers = user
    response = client.post("/api/portfolios", json={"name": "   "}, headers=headers)
    assert response.status_code == 400


def test_invalid_asset_rejected(client, user):
    _, headers = user
    portfolio = _create_portfolio(client, headers, assets=[])
    response = client.post(
        f"/api/portfolios/{portfolio['id']}/assets",
        json={"symbol": "ETH", "amount": 0, "purchase_price": 10},
        headers=headers,
    )
    assert response.status_code == 400


def test_asset_crud_recomputes_totals(client, user):
    _, headers = user
    portfolio = _create_portfolio(client, headers)
    pid = portfolio["id"]

    added = client.post(
        f"/api/portfolios/{pid}/assets",
        json={"symbol": "eth", "amount": 10, "purchase_price": 5},
        headers=headers,
    ).json()
    assert added["total_cost"] == 250
    eth_id = next(a["id"] for a in added["assets"] if a["symbol"] == "ETH")

    updated = client.put(f"/api/portfolios/{pid}/assets/{eth_id}", json={"amount": 20}, headers=headers).json()
    assert updated["total_cost"] == 300

    assert client.put(f"/api/portfolios/{pid}/assets/{eth_id}", json={"purchase_price": -1},
                      headers=headers).status_code == 400
    assert len(client.get(f"/api/portfolios/{pid}/assets", headers=headers).json()) == 2

    removed = client.delete(f"/api/portfolios/{pid}/assets/{eth_id}", headers=headers).json()
    assert removed["total_cost"] == 200
    assert client.delete(f"/api/portfolios/{pid}/assets/{eth_id}", headers=headers).status_code == 404


def test_rename_and_delete(client, user):
    _, headers = user
    pid = _create_portfolio(client, headers)["id"]
    renamed = client.put(f"/api/portfolios/{pid}", json={"name": "Trading"}, headers=headers)
    assert renamed.json()["name"] == "Trading"
    assert client.delete(f"/api/portfolios/{pid}", headers=headers).status_code == 200
    assert client.get(f"/api/portfolios/{pid}", headers=headers).status_code == 404


def test_summary_uses_fresh_prices(client, user, monkeypatch):
    u, headers = user
    _create_portfolio(client, headers)
    _create_portfolio(client, headers, name="Alt", assets=[{"symbol": "ETH", "amount": 1, "purchase_price": 50}])
    save_alerts(u.id, [{"id": "a1", "is_active": True}, {"id": "a2", "is_active": False}])

    monkeypatch.setattr(coingecko, "get_prices_by_symbols", lambda symbols: {
        "BTC": {"price": 150, "change_24h": 10},
        "ETH": {"price": 100, "change_24h": -10},
    })
    summary = client.get("/api/portfolio/summary", headers=headers).json()

    assert summary["totalValue"] == 400
    assert summary["totalCost"] == 250
    assert summary["totalProfitLoss"] == 150
    assert summary["totalProfitLossPercentage"] == pytest.approx(60.0)
    assert summary["change24h"] == pytest.approx((300 * 10 + 100 * -10) / 400)
    assert summary["totalProjects"] == 2
    assert summary["portfolioCount"] == 2
    assert summary["activeAlerts"] == 1
    assert len(load_alerts(u.id)) == 2


def test_summary_survives_market_data_outage(client, user):
    _, headers = user
    _create_portfolio(client, headers)
    summary = client.get("/api/portfolio/summary", headers=headers).json()
    assert summary["totalValue"] == 200
    assert summary["totalProfitLoss"] == 0


def test_portfolio_names_unique_per_user(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("bob@example.com", "bob")
    _create_portfolio(client, headers)
    assert client.post("/api/portfolios", json={"name": "long term"}, headers=headers).status_code == 409
    _create_portfolio(client, other_headers)

    second = _create_portfolio(client, headers, name="Trading")
    assert client.put(f"/api/portfolios/{second['id']}", json={"name": "Long Term"},
                      headers=headers).status_code == 409
    assert client.put(f"/api/portfolios/{second['id']}", json={"name": "Trading"},
                      headers=headers).status_code == 200
