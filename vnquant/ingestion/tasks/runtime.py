from __future__ import annotations

from vnquant.api.database.database import SessionLocal
from vnquant.config import IngestionSettings
from vnquant.ingestion.services.fetching import PriceIngestionService
from vnquant.ingestion.services.store import SqlMarketDataStore
from vnquant.ingestion.services.yahoo import YahooMarketDataProvider


def build_service(settings: IngestionSettings) -> PriceIngestionService:
    """Wire the Yahoo provider and the SQL store the way the workers run them."""
    store = SqlMarketDataStore(SessionLocal, batch_size=settings.store_batch_size)
    return PriceIngestionService(
        provider=YahooMarketDataProvider(),
        store=store,
        batch_concurrency=settings.batch_concurrency,
    )
