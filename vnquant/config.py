from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from vnquant.data_types.interval import Interval

DEFAULT_EXCHANGES_PATH = Path(__file__).resolve().parent / "data" / "exchanges.json"


@dataclass(frozen=True)
class IngestionSettings:
    """Runtime knobs for the fetch-and-persist pipeline."""

    database_url: str = "sqlite:///vnquant.db"
    chunk_size: int = 100
    max_retries: int = 2
    concurrency: int = 5
    batch_concurrency: int = 10
    store_batch_size: int = 1000
    chunk_delay_seconds: float = 0.2
    backoff_factor_seconds: float = 1.0
    default_interval: Interval = Interval.DAY_1
    exchanges_path: Path = DEFAULT_EXCHANGES_PATH

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")
        if self.batch_concurrency <= 0:
            raise ValueError(
                f"batch_concurrency must be positive, got {self.batch_concurrency}"
            )
        if self.store_batch_size <= 0:
            raise ValueError(
                f"store_batch_size must be positive, got {self.store_batch_size}"
            )
        if self.chunk_delay_seconds < 0 or self.backoff_factor_seconds < 0:
            raise ValueError("delays must be non-negative")


def load_settings(environ: Mapping[str, str] | None = None) -> IngestionSettings:
    """
    Build settings from the process environment (after loading .env).

    Passing an explicit mapping skips .env loading, which keeps tests hermetic.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    defaults = IngestionSettings.__dataclass_fields__

    def _get(name: str, field: str) -> str:
        value = environ.get(name)
        if value is None or not value.strip():
            return str(defaults[field].default)
        return value.strip()

    try:
        return IngestionSettings(
            database_url=_get("DATABASE_URL", "database_url"),
            chunk_size=int(_get("INGEST_CHUNK_SIZE", "chunk_size")),
            max_retries=int(_get("INGEST_MAX_RETRIES", "max_retries")),
            concurrency=int(_get("INGEST_CONCURRENCY", "concurrency")),
            batch_concurrency=int(_get("INGEST_BATCH_CONCURRENCY", "batch_concurrency")),
            store_batch_size=int(_get("INGEST_STORE_BATCH_SIZE", "store_batch_size")),
            chunk_delay_seconds=float(
                _get("INGEST_CHUNK_DELAY_SECONDS", "chunk_delay_seconds")
            ),
            backoff_factor_seconds=float(
                _get("INGEST_BACKOFF_FACTOR_SECONDS", "backoff_factor_seconds")
            ),
            default_interval=Interval.parse(_get("INGEST_INTERVAL", "default_interval")),
            exchanges_path=Path(_get("INGEST_EXCHANGES_PATH", "exchanges_path")),
        )
    except ValueError as exc:
        raise ValueError(f"Invalid ingestion configuration: {exc}") from exc
