from __future__ import annotations

import asyncio

from celery import shared_task

from vnquant.config import load_settings
from vnquant.data_types.interval import Interval
from vnquant.ingestion.services.chunked import ChunkedFetchDriver
from vnquant.ingestion.services.intraday import IntradayFetchDriver
from vnquant.ingestion.services.market_data import Instrument
from vnquant.ingestion.tasks.runtime import build_service


@shared_task(name="ingestion.fetch_prices")
def fetch_prices(
    symbol: str,
    exchange: str,
    interval: str | None = None,
    replay: bool = False,
) -> int:
    """
    Fetch and store bars for one instrument. An instrument the store has not
    seen yet is registered first. Returns the number of bar rows written.
    """
    settings = load_settings()
    service = build_service(settings)
    return asyncio.run(
        service.fetch_prices(
            Instrument(symbol=symbol.strip().upper(), exchange=exchange.strip().upper()),
            Interval.parse(interval or settings.default_interval),
            replay=replay,
        )
    )


@shared_task(name="ingestion.fetch_prices_all")
def fetch_prices_all(
    interval: str | None = None,
    chunk_size: int | None = None,
    max_retries: int | None = None,
) -> dict:
    """
    Fetch bars for every stored instrument in retried chunks.

    Raises IngestionError (task marked failed) when any chunk is still failing
    after its last attempt.
    """
    settings = load_settings()
    driver = ChunkedFetchDriver(
        build_service(settings),
        chunk_delay_seconds=settings.chunk_delay_seconds,
        backoff_factor_seconds=settings.backoff_factor_seconds,
    )
    summary = asyncio.run(
        driver.fetch_all_chunked(
            Interval.parse(interval or settings.default_interval),
            chunk_size=settings.chunk_size if chunk_size is None else chunk_size,
            max_retries=settings.max_retries if max_retries is None else max_retries,
        )
    )
    return summary.to_dict()


@shared_task(name="ingestion.fetch_intraday_prices_all")
def fetch_intraday_prices_all(
    interval: str = "1m",
    concurrency: int | None = None,
) -> dict:
    """Replay intraday bars for every stored instrument; failures are reported, not raised."""
    settings = load_settings()
    driver = IntradayFetchDriver(build_service(settings))
    summary = asyncio.run(
        driver.fetch_intraday_all(
            Interval.parse(interval),
            concurrency=settings.concurrency if concurrency is None else concurrency,
        )
    )
    return summary.to_dict()
