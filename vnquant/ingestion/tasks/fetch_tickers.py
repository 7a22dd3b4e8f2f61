from __future__ import annotations

import asyncio

from celery import shared_task

from vnquant.config import load_settings
from vnquant.ingestion.tasks.runtime import build_service


@shared_task(name="ingestion.fetch_tickers")
def fetch_tickers(exchanges_path: str | None = None) -> int:
    """Discover symbols for the configured exchanges and upsert them."""
    settings = load_settings()
    service = build_service(settings)
    return asyncio.run(service.fetch_tickers(exchanges_path or settings.exchanges_path))
