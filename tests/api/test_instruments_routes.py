from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vnquant.api.routes import instruments as instruments_routes
from vnquant.data_types.interval import Interval
from vnquant.ingestion.services.market_data import Bar, Instrument
from vnquant.ingestion.services.store import SqlMarketDataStore

START = datetime(2024, 5, 6, tzinfo=timezone.utc)


@pytest.fixture
def client(store: SqlMarketDataStore) -> TestClient:
    store.upsert_instruments(
        [
            Instrument("VNM", "HOSE", description="Vinamilk", currency="VND", sector="Consumer"),
            Instrument("FPT", "HOSE", description="FPT Corp", currency="VND", sector="Technology"),
            Instrument("AAPL", "NASDAQ", description="Apple Inc.", currency="USD"),
        ]
    )
    store.upsert_bars(
        Instrument("VNM", "HOSE"),
        Interval.DAY_1,
        [
            Bar(START + timedelta(days=i), 70.0, 72.0, 69.0, 71.0, 1_000.0 + i)
            for i in range(4)
        ],
    )
    app = FastAPI()
    app.include_router(instruments_routes.router)
    app.dependency_overrides[instruments_routes.get_store] = lambda: store
    return TestClient(app)


def test_list_instruments_by_exchange(client: TestClient) -> None:
    response = client.get("/api/instruments/", params={"exchange": "hose"})

    assert response.status_code == 200
    assert [item["symbol"] for item in response.json()] == ["FPT", "VNM"]


def test_get_instrument(client: TestClient) -> None:
    response = client.get("/api/instruments/NASDAQ/aapl")

    assert response.status_code == 200
    assert response.json()["description"] == "Apple Inc."


def test_get_unknown_instrument_returns_404(client: TestClient) -> None:
    response = client.get("/api/instruments/NYSE/ZZZ")

    assert response.status_code == 404


def test_search_returns_autocomplete_items(client: TestClient) -> None:
    response = client.get("/api/instruments/search", params={"q": "vin"})

    assert response.status_code == 200
    assert response.json() == [{"label": "VNM - Vinamilk", "value": "VNM", "exchange": "HOSE"}]


def test_search_rejects_unknown_field(client: TestClient) -> None:
    response = client.get("/api/instruments/search", params={"q": "a", "field": "password"})

    assert response.status_code == 400
    assert "unsupported search field" in response.json()["detail"]


def test_search_limit_is_bounded(client: TestClient) -> None:
    response = client.get("/api/instruments/search", params={"q": "a", "limit": 1000})

    assert response.status_code == 422


def test_bars_window(client: TestClient) -> None:
    response = client.get(
        "/api/instruments/HOSE/VNM/bars",
        params={
            "interval": "one-day",
            "start": (START + timedelta(days=1)).isoformat(),
            "end": (START + timedelta(days=2)).isoformat(),
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["volume"] for item in body] == [1001.0, 1002.0]


def test_bars_bad_interval_returns_400(client: TestClient) -> None:
    response = client.get("/api/instruments/HOSE/VNM/bars", params={"interval": "7d"})

    assert response.status_code == 400


def test_bars_unknown_instrument_returns_404(client: TestClient) -> None:
    response = client.get("/api/instruments/HOSE/XYZ/bars")

    assert response.status_code == 404
