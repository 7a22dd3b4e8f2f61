from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging

import pytest

from vnquant.data_types.interval import Interval
from vnquant.ingestion.services.errors import ErrorKind, IngestionError
from vnquant.ingestion.services.fetching import PriceIngestionService
from vnquant.ingestion.services.intraday import IntradayFetchDriver, progress_interval
from vnquant.ingestion.services.market_data import Bar, ChartData, Instrument
from vnquant.ingestion.services.store import SqlMarketDataStore


class _Store:
    def __init__(self, instruments: list[Instrument] | None = None) -> None:
        self.instruments = list(instruments or [])
        self.upserted: list[list[Instrument]] = []

    def list_instruments(self, exchange: str | None = None) -> list[Instrument]:
        return list(self.instruments)

    def upsert_instruments(self, instruments: list[Instrument]) -> int:
        self.upserted.append(list(instruments))
        return len(instruments)


class _Service:
    def __init__(self, failing: set[str] | None = None, store: _Store | None = None) -> None:
        self.store = store or _Store()
        self.failing = failing or set()
        self.calls: list[tuple[str, Interval, bool]] = []
        self.in_flight = 0
        self.peak = 0

    async def fetch_prices(self, instrument: Instrument, interval: Interval, replay: bool = False) -> int:
        self.calls.append((instrument.symbol, interval, replay))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0)
            if instrument.symbol in self.failing:
                raise ConnectionError(f"no data for {instrument.symbol}")
            return 10
        finally:
            self.in_flight -= 1


def _instruments(count: int) -> list[Instrument]:
    return [Instrument(f"T{i:03d}", "HOSE") for i in range(count)]


def test_failures_are_isolated_and_counted() -> None:
    service = _Service(failing={"T001", "T004", "T007"})
    driver = IntradayFetchDriver(service)

    summary = asyncio.run(driver.fetch_intraday(_instruments(10), Interval.MINUTE_1, concurrency=3))

    assert summary.total == 10
    assert summary.succeeded == 7
    assert summary.failed == 3
    assert summary.success_rate == pytest.approx(0.7)
    assert sorted(outcome.identifier for outcome in summary.failures) == [
        "T001:HOSE",
        "T004:HOSE",
        "T007:HOSE",
    ]
    failure = summary.failures[0]
    assert failure.error.kind is ErrorKind.PROVIDER
    assert failure.error.context["exchange"] == "HOSE"
    assert len(service.calls) == 10


def test_concurrency_bound_is_respected() -> None:
    service = _Service()
    driver = IntradayFetchDriver(service)

    asyncio.run(driver.fetch_intraday(_instruments(25), Interval.MINUTE_5, concurrency=4))

    assert 1 <= service.peak <= 4


def test_upfront_upsert_only_when_requested() -> None:
    store = _Store()
    driver = IntradayFetchDriver(_Service(store=store))
    instruments = _instruments(3)

    asyncio.run(driver.fetch_intraday(instruments, Interval.MINUTE_1, update_existing=False))
    assert store.upserted == []

    asyncio.run(driver.fetch_intraday(instruments, Interval.MINUTE_1, update_existing=True))
    assert store.upserted == [instruments]


@pytest.mark.parametrize("concurrency", [0, -2])
def test_rejects_non_positive_concurrency(concurrency: int) -> None:
    driver = IntradayFetchDriver(_Service())

    with pytest.raises(IngestionError) as excinfo:
        asyncio.run(driver.fetch_intraday(_instruments(2), Interval.MINUTE_1, concurrency=concurrency))

    assert excinfo.value.kind is ErrorKind.MALFORMED_INPUT


@pytest.mark.parametrize(("total", "expected"), [(0, 1), (5, 1), (40, 2), (1000, 50)])
def test_progress_interval(total: int, expected: int) -> None:
    assert progress_interval(total) == expected


def test_progress_and_completion_events(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="vnquant.ingestion.intraday")
    driver = IntradayFetchDriver(_Service(failing={"T000"}))

    asyncio.run(driver.fetch_intraday(_instruments(40), Interval.MINUTE_1, concurrency=5))

    progress = [r for r in caplog.records if getattr(r, "event", None) == "intraday_progress"]
    completed = [r for r in caplog.records if getattr(r, "event", None) == "intraday_run_completed"]
    assert len(progress) == 20
    assert progress[-1].processed == 40
    assert len(completed) == 1
    assert completed[0].success_rate == pytest.approx(39 / 40)
    assert any("T000:HOSE" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_fetch_intraday_all_replays_whole_universe() -> None:
    store = _Store(_instruments(6))
    service = _Service(store=store)
    driver = IntradayFetchDriver(service)

    summary = asyncio.run(driver.fetch_intraday_all(Interval.MINUTE_15, concurrency=2))

    assert summary.succeeded == 6
    assert all(replay is True for _, _, replay in service.calls)
    assert store.upserted == [store.instruments]


def test_fetch_intraday_all_on_empty_universe_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="vnquant.ingestion.intraday")
    service = _Service()
    driver = IntradayFetchDriver(service)

    summary = asyncio.run(driver.fetch_intraday_all(Interval.MINUTE_1))

    assert summary.total == 0
    assert service.calls == []
    assert any(getattr(r, "event", None) == "intraday_run_empty" for r in caplog.records)


def test_empty_instrument_list_warns(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="vnquant.ingestion.intraday")
    service = _Service()

    summary = asyncio.run(IntradayFetchDriver(service).fetch_intraday([], Interval.MINUTE_1))

    assert summary.total == 0
    assert service.calls == []
    assert any(getattr(r, "event", None) == "intraday_run_empty" for r in caplog.records)


class _Provider:
    async def fetch_history(self, instrument, interval, replay=False) -> ChartData:
        return ChartData(
            instrument=instrument,
            bars=[Bar(datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc), 10.0, 11.0, 9.0, 10.5, 5.0)],
        )


def test_blank_instrument_is_never_stored(store: SqlMarketDataStore) -> None:
    service = PriceIngestionService(_Provider(), store)
    driver = IntradayFetchDriver(service)

    summary = asyncio.run(
        driver.fetch_intraday(
            [Instrument("AAPL", "NASDAQ"), Instrument("", "NASDAQ")],
            Interval.MINUTE_1,
            update_existing=True,
        )
    )

    assert summary.succeeded == 1
    assert summary.failed == 1
    assert summary.failures[0].error.kind is ErrorKind.MALFORMED_INPUT
    assert store.list_instruments() == [Instrument("AAPL", "NASDAQ")]
