from __future__ import annotations

import asyncio
import logging
import time

from vnquant.data_types.interval import Interval

from .errors import ErrorKind, malformed, wrap
from .fetching import PriceIngestionService
from .market_data import Instrument
from .summary import FetchOutcome, RunSummary

logger = logging.getLogger("vnquant.ingestion.intraday")

DEFAULT_CONCURRENCY = 5
PROGRESS_STEPS = 20


def progress_interval(total: int) -> int:
    return max(total // PROGRESS_STEPS, 1)


class IntradayFetchDriver:
    """Runs single-instrument fetches concurrently under a fixed worker budget."""

    def __init__(self, service: PriceIngestionService) -> None:
        self._service = service

    async def fetch_intraday(
        self,
        instruments: list[Instrument],
        interval: Interval,
        concurrency: int = DEFAULT_CONCURRENCY,
        replay: bool = True,
        update_existing: bool = True,
    ) -> RunSummary:
        """
        Fetch every instrument on its own, at most ``concurrency`` at a time.

        A failing instrument is recorded in the summary and never cancels its
        siblings. Only structural problems (bad concurrency) raise.
        """
        if concurrency <= 0:
            raise malformed(
                f"concurrency must be positive, got {concurrency}",
                concurrency=concurrency,
            )

        started = time.monotonic()
        summary = RunSummary(total=len(instruments))
        if not instruments:
            logger.warning(
                "No instruments to fetch; run fetch_tickers first",
                extra={"event": "intraday_run_empty"},
            )
            return summary

        if update_existing:
            # Blank identifiers are never stored; their own task reports them as malformed.
            addressable = [i for i in instruments if i.is_addressable()]
            await asyncio.to_thread(self._service.store.upsert_instruments, addressable)

        semaphore = asyncio.Semaphore(concurrency)
        step = progress_interval(len(instruments))
        logger.info(
            "Fetching %s prices for %d instruments with concurrency %d",
            interval.value,
            len(instruments),
            concurrency,
            extra={
                "event": "intraday_run_started",
                "instruments": len(instruments),
                "concurrency": concurrency,
            },
        )

        async def run_one(instrument: Instrument) -> None:
            async with semaphore:
                try:
                    rows = await self._service.fetch_prices(instrument, interval, replay)
                    outcome = FetchOutcome(instrument.label, True, rows=rows)
                except Exception as exc:
                    error = wrap(
                        exc,
                        ErrorKind.PROVIDER,
                        symbol=instrument.symbol,
                        exchange=instrument.exchange,
                    )
                    logger.debug("Fetch failed for %s: %s", instrument.label, error)
                    outcome = FetchOutcome(instrument.label, False, error=error)

            summary.record(outcome)
            if summary.processed % step == 0 or summary.processed == summary.total:
                logger.info(
                    "Progress: %d/%d (%d ok, %d failed)",
                    summary.processed,
                    summary.total,
                    summary.succeeded,
                    summary.failed,
                    extra={
                        "event": "intraday_progress",
                        "processed": summary.processed,
                        "total": summary.total,
                    },
                )

        await asyncio.gather(*(run_one(instrument) for instrument in instruments))

        summary.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Intraday fetch finished: %d/%d succeeded (%.1f%%), %d failed in %.1fs",
            summary.succeeded,
            summary.total,
            summary.success_rate * 100,
            summary.failed,
            summary.elapsed_seconds,
            extra={
                "event": "intraday_run_completed",
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "success_rate": summary.success_rate,
                "elapsed": summary.elapsed_seconds,
            },
        )
        summary.log_failures(logger)
        return summary

    async def fetch_intraday_all(
        self,
        interval: Interval,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> RunSummary:
        instruments = await asyncio.to_thread(self._service.store.list_instruments)
        return await self.fetch_intraday(
            instruments,
            interval,
            concurrency=concurrency,
            replay=True,
            update_existing=True,
        )
