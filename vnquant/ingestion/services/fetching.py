from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from vnquant.data_types.interval import Interval

from .errors import ErrorKind, IngestionError, malformed, wrap
from .market_data import ChartData, Instrument, MarketDataProvider
from .store import MarketDataStore

logger = logging.getLogger("vnquant.ingestion.fetching")

DEFAULT_BATCH_CONCURRENCY = 10


@dataclass(frozen=True)
class ExchangeConfig:
    exchange: str
    country: str | None = None


def load_exchange_configs(path: str | Path) -> list[ExchangeConfig]:
    """Read ``{"exchanges": [{"exchange": "HOSE", "country": "VN"}, ...]}``."""
    with Path(path).open("r", encoding="utf-8") as f:
        payload = json.load(f)
    entries = payload.get("exchanges") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        raise malformed(f"{path} must contain an 'exchanges' list", path=str(path))

    configs: list[ExchangeConfig] = []
    for entry in entries:
        exchange = str(entry.get("exchange") or "").strip()
        if not exchange:
            raise malformed(f"exchange entry without a name in {path}", path=str(path))
        country = entry.get("country")
        configs.append(ExchangeConfig(exchange=exchange, country=country or None))
    return configs


def ensure_addressable(instruments: list[Instrument]) -> None:
    for instrument in instruments:
        if not instrument.is_addressable():
            raise malformed(
                f"Instrument symbol or exchange is empty: {instrument!r}",
                symbol=instrument.symbol,
                exchange=instrument.exchange,
            )


class PriceIngestionService:
    """Fetches prices from the provider and writes validated bars to the store."""

    def __init__(
        self,
        provider: MarketDataProvider,
        store: MarketDataStore,
        batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> None:
        if batch_concurrency <= 0:
            raise ValueError(f"batch_concurrency must be positive, got {batch_concurrency}")
        self._provider = provider
        self._store = store
        self._batch_concurrency = batch_concurrency

    @property
    def store(self) -> MarketDataStore:
        return self._store

    async def fetch_and_store(
        self,
        instruments: list[Instrument],
        interval: Interval,
    ) -> int:
        """
        Fetch bars for ``instruments`` with one batch provider call and store them.

        Malformed input fails before any write. Metadata is written first so bar
        rows always resolve their instrument. Per-instrument writes fan out with
        at most ``batch_concurrency`` in flight; if any of them fails the whole
        unit fails with an aggregate error. Returns the number of bar rows written.
        """
        if not instruments:
            raise malformed("No instruments provided for batch processing")
        ensure_addressable(instruments)

        await asyncio.to_thread(self._store.upsert_instruments, instruments)

        try:
            charts = await self._provider.fetch_history_batch(instruments, interval)
        except Exception as exc:
            raise wrap(
                exc,
                ErrorKind.PROVIDER,
                f"Batch history request failed for {len(instruments)} instruments",
                instruments=len(instruments),
            ) from exc

        semaphore = asyncio.Semaphore(self._batch_concurrency)

        async def store_chart(chart: ChartData) -> int:
            async with semaphore:
                return await self._store_chart(chart, interval)

        results = await asyncio.gather(
            *(store_chart(chart) for chart in charts.values()),
            return_exceptions=True,
        )

        errors: list[IngestionError] = []
        rows = 0
        for chart, result in zip(charts.values(), results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors.append(
                    wrap(
                        result,
                        ErrorKind.STORE,
                        symbol=chart.instrument.symbol,
                        exchange=chart.instrument.exchange,
                    )
                )
            else:
                rows += result

        if errors:
            error = IngestionError(
                f"{len(errors)} of {len(charts)} instruments failed to store",
                ErrorKind.BATCH_FAILED,
                cause=errors[0],
                context={"failed": len(errors), "instruments": len(charts)},
            )
            error.errors = errors
            raise error

        logger.debug(
            "Stored %d bars for %d/%d instruments (%s)",
            rows,
            len(charts),
            len(instruments),
            interval.value,
        )
        return rows

    async def _store_chart(self, chart: ChartData, interval: Interval) -> int:
        ensure_addressable([chart.instrument])
        await asyncio.to_thread(self._store.upsert_instruments, [chart.instrument])
        return await asyncio.to_thread(
            self._store.upsert_bars, chart.instrument, interval, chart.bars
        )

    async def fetch_prices(
        self,
        instrument: Instrument,
        interval: Interval,
        replay: bool = False,
    ) -> int:
        """
        Fetch and store the history of a single instrument.

        An instrument missing from the store is registered before its bars are
        written.
        """
        ensure_addressable([instrument])

        existing = await asyncio.to_thread(
            self._store.get_instrument, instrument.symbol, instrument.exchange
        )
        if existing is None:
            await asyncio.to_thread(self._store.upsert_instruments, [instrument])
            logger.info(
                "Registered new instrument %s",
                instrument.label,
                extra={
                    "event": "instrument_registered",
                    "symbol": instrument.symbol,
                    "exchange": instrument.exchange,
                },
            )

        try:
            chart = await self._provider.fetch_history(instrument, interval, replay)
        except Exception as exc:
            raise wrap(
                exc,
                ErrorKind.PROVIDER,
                f"History request failed for {instrument.label}",
                symbol=instrument.symbol,
                exchange=instrument.exchange,
            ) from exc

        try:
            return await asyncio.to_thread(
                self._store.upsert_bars, instrument, interval, chart.bars
            )
        except Exception as exc:
            raise wrap(
                exc,
                ErrorKind.STORE,
                symbol=instrument.symbol,
                exchange=instrument.exchange,
            ) from exc

    async def fetch_tickers(self, exchanges_path: str | Path) -> int:
        """Discover instruments for every configured exchange and upsert them."""
        configs = load_exchange_configs(exchanges_path)
        discovered: list[Instrument] = []

        for config in configs:
            try:
                symbols = await self._provider.list_symbols(config.exchange, config.country)
            except Exception as exc:
                raise wrap(
                    exc,
                    ErrorKind.PROVIDER,
                    f"Symbol listing failed for exchange {config.exchange}",
                    exchange=config.exchange,
                ) from exc
            logger.info(
                "Fetched %d symbols from exchange: %s (country: %s)",
                len(symbols),
                config.exchange,
                config.country or "N/A",
                extra={
                    "event": "symbols_listed",
                    "exchange": config.exchange,
                    "count": len(symbols),
                },
            )
            addressable = [s for s in symbols if s.is_addressable()]
            if len(addressable) < len(symbols):
                logger.warning(
                    "Dropped %d listings without symbol or exchange from %s",
                    len(symbols) - len(addressable),
                    config.exchange,
                    extra={
                        "event": "symbols_dropped",
                        "exchange": config.exchange,
                        "count": len(symbols) - len(addressable),
                    },
                )
            discovered.extend(addressable)

        return await asyncio.to_thread(self._store.upsert_instruments, discovered)
