from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from vnquant.data_types.interval import Interval
from vnquant.utils.retry import with_backoff

from .errors import ErrorKind, IngestionError, malformed, wrap
from .fetching import PriceIngestionService
from .market_data import Instrument
from .summary import FetchOutcome, RunSummary

logger = logging.getLogger("vnquant.ingestion.chunked")

DEFAULT_CHUNK_SIZE = 100
DEFAULT_MAX_RETRIES = 2
DEFAULT_CHUNK_DELAY_SECONDS = 0.2
DEFAULT_BACKOFF_FACTOR_SECONDS = 1.0


def partition(instruments: list[Instrument], chunk_size: int) -> list[list[Instrument]]:
    """Split into contiguous chunks; the last one may be short."""
    if chunk_size <= 0:
        raise malformed(f"chunk_size must be positive, got {chunk_size}", chunk_size=chunk_size)
    return [
        instruments[start : start + chunk_size]
        for start in range(0, len(instruments), chunk_size)
    ]


def _is_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, IngestionError) or exc.retryable


class ChunkedFetchDriver:
    """
    Drives the whole instrument universe through the batch fetch unit.

    Chunks run strictly one after another. A chunk gets ``max_retries + 1``
    attempts; after failed attempt k the driver waits ``backoff_factor * 2**k``
    seconds. Every chunk, successful or not, is followed by ``chunk_delay``.
    """

    def __init__(
        self,
        service: PriceIngestionService,
        chunk_delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS,
        backoff_factor_seconds: float = DEFAULT_BACKOFF_FACTOR_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._chunk_delay = chunk_delay_seconds
        self._backoff_factor = backoff_factor_seconds
        self._sleep = sleep

    async def fetch_all_chunked(
        self,
        interval: Interval,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> RunSummary:
        if chunk_size <= 0:
            raise malformed(f"chunk_size must be positive, got {chunk_size}", chunk_size=chunk_size)
        if max_retries < 0:
            raise malformed(
                f"max_retries must be non-negative, got {max_retries}",
                max_retries=max_retries,
            )

        started = time.monotonic()
        universe = await asyncio.to_thread(self._service.store.list_instruments)
        if not universe:
            logger.warning(
                "No instruments found in the store; run fetch_tickers first",
                extra={"event": "chunked_run_empty"},
            )
            return RunSummary(total=0)

        chunks = partition(universe, chunk_size)
        summary = RunSummary(total=len(chunks))
        logger.info(
            "Fetching %s prices for %d instruments in %d chunks of %d",
            interval.value,
            len(universe),
            len(chunks),
            chunk_size,
            extra={
                "event": "chunked_run_started",
                "instruments": len(universe),
                "chunks": len(chunks),
            },
        )

        for index, chunk in enumerate(chunks, start=1):
            summary.record(
                await self._run_chunk(index, len(chunks), chunk, interval, max_retries)
            )
            await self._sleep(self._chunk_delay)

        summary.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Chunked fetch finished: %d/%d chunks succeeded, %d failed, %d rows in %.1fs",
            summary.succeeded,
            summary.total,
            summary.failed,
            summary.rows,
            summary.elapsed_seconds,
            extra={
                "event": "chunked_run_completed",
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "elapsed": summary.elapsed_seconds,
            },
        )

        if summary.failed:
            summary.log_failures(logger)
            error = IngestionError(
                f"{summary.failed} chunks failed after all retry attempts",
                ErrorKind.CHUNKS_FAILED,
                cause=summary.failures[0].error,
                context={"failed": summary.failed, "chunks": summary.total},
            )
            error.summary = summary
            raise error
        return summary

    async def _run_chunk(
        self,
        index: int,
        total: int,
        chunk: list[Instrument],
        interval: Interval,
        max_retries: int,
    ) -> FetchOutcome:
        identifier = f"chunk {index}/{total}"
        attempts_made = 0
        logger.info(
            "Processing %s (%d instruments)",
            identifier,
            len(chunk),
            extra={"event": "chunk_started", "chunk": index, "size": len(chunk)},
        )

        async def attempt(number: int) -> int:
            nonlocal attempts_made
            attempts_made = number
            return await self._service.fetch_and_store(chunk, interval)

        def on_retry(number: int, exc: BaseException, delay: float) -> None:
            logger.warning(
                "%s failed on attempt %d/%d: %s; retrying in %.1fs",
                identifier,
                number,
                max_retries + 1,
                exc,
                delay,
                extra={
                    "event": "chunk_retry",
                    "chunk": index,
                    "attempt": number,
                    "delay": delay,
                },
            )

        try:
            rows = await with_backoff(
                attempt,
                attempts=max_retries + 1,
                base_delay=self._backoff_factor,
                should_retry=_is_retryable,
                on_retry=on_retry,
                sleep=self._sleep,
            )
        except Exception as exc:
            error = wrap(exc, ErrorKind.PROVIDER, chunk=index, attempt=attempts_made)
            logger.error(
                "%s failed permanently after %d attempts: %s",
                identifier,
                attempts_made,
                error,
                extra={"event": "chunk_failed", "chunk": index, "attempt": attempts_made},
            )
            return FetchOutcome(identifier, False, attempts=attempts_made, error=error)

        logger.info(
            "%s completed on attempt %d (%d rows)",
            identifier,
            attempts_made,
            rows,
            extra={
                "event": "chunk_completed",
                "chunk": index,
                "attempt": attempts_made,
                "rows": rows,
            },
        )
        return FetchOutcome(identifier, True, attempts=attempts_made, rows=rows)
