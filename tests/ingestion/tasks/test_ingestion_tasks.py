from __future__ import annotations

import pytest

from vnquant.config import IngestionSettings
from vnquant.data_types.interval import Interval
from vnquant.ingestion.services.errors import ErrorKind, IngestionError
from vnquant.ingestion.services.market_data import Instrument
import vnquant.ingestion.tasks.fetch_prices as fetch_prices_module
import vnquant.ingestion.tasks.fetch_tickers as fetch_tickers_module


class _Store:
    def __init__(self, instruments: list[Instrument]) -> None:
        self.instruments = instruments

    def list_instruments(self, exchange: str | None = None) -> list[Instrument]:
        return list(self.instruments)

    def upsert_instruments(self, instruments: list[Instrument]) -> int:
        return len(instruments)


class _Service:
    def __init__(self, instruments: list[Instrument] | None = None, failing: bool = False) -> None:
        self.store = _Store(instruments or [])
        self.failing = failing
        self.calls: list[tuple] = []

    async def fetch_prices(self, instrument: Instrument, interval: Interval, replay: bool = False) -> int:
        self.calls.append(("fetch_prices", instrument, interval, replay))
        return 7

    async def fetch_and_store(self, instruments: list[Instrument], interval: Interval) -> int:
        self.calls.append(("fetch_and_store", len(instruments), interval))
        if self.failing:
            raise ConnectionError("provider down")
        return len(instruments)

    async def fetch_tickers(self, exchanges_path) -> int:
        self.calls.append(("fetch_tickers", exchanges_path))
        return 3


def _settings(**overrides) -> IngestionSettings:
    values = {"chunk_delay_seconds": 0.0, "backoff_factor_seconds": 0.0}
    values.update(overrides)
    return IngestionSettings(**values)


def _patch(monkeypatch: pytest.MonkeyPatch, module, service: _Service, settings: IngestionSettings) -> None:
    monkeypatch.setattr(module, "load_settings", lambda: settings)
    monkeypatch.setattr(module, "build_service", lambda _settings: service)


def test_fetch_prices_normalizes_identifiers(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _Service()
    _patch(monkeypatch, fetch_prices_module, service, _settings())

    rows = fetch_prices_module.fetch_prices(" fpt ", "hose", interval="5m", replay=True)

    assert rows == 7
    assert service.calls == [
        ("fetch_prices", Instrument("FPT", "HOSE"), Interval.MINUTE_5, True)
    ]


def test_fetch_prices_uses_configured_default_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _Service()
    _patch(monkeypatch, fetch_prices_module, service, _settings(default_interval=Interval.WEEK_1))

    fetch_prices_module.fetch_prices("AAPL", "NASDAQ")

    assert service.calls[0][2] is Interval.WEEK_1


def test_fetch_prices_all_returns_json_safe_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    universe = [Instrument(f"S{i}", "NYSE") for i in range(5)]
    service = _Service(universe)
    _patch(monkeypatch, fetch_prices_module, service, _settings(chunk_size=2))

    result = fetch_prices_module.fetch_prices_all()

    assert result["status"] == "completed"
    assert result["total"] == 3
    assert result["succeeded"] == 3
    assert result["rows"] == 5
    assert [call[1] for call in service.calls] == [2, 2, 1]


def test_fetch_prices_all_raises_when_chunks_fail(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _Service([Instrument("S1", "NYSE")], failing=True)
    _patch(monkeypatch, fetch_prices_module, service, _settings())

    with pytest.raises(IngestionError) as excinfo:
        fetch_prices_module.fetch_prices_all(max_retries=1)

    assert excinfo.value.kind is ErrorKind.CHUNKS_FAILED
    assert len(service.calls) == 2


def test_fetch_intraday_prices_all_reports_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _Service([Instrument("VNM", "HOSE"), Instrument("FPT", "HOSE")])
    _patch(monkeypatch, fetch_prices_module, service, _settings())

    result = fetch_prices_module.fetch_intraday_prices_all("1m", concurrency=2)

    assert result["succeeded"] == 2
    assert result["rows"] == 14
    assert all(call[2] is Interval.MINUTE_1 and call[3] is True for call in service.calls)


def test_fetch_tickers_defaults_to_configured_path(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    service = _Service()
    settings = _settings(exchanges_path=tmp_path / "exchanges.json")
    _patch(monkeypatch, fetch_tickers_module, service, settings)

    assert fetch_tickers_module.fetch_tickers() == 3
    assert service.calls == [("fetch_tickers", tmp_path / "exchanges.json")]
