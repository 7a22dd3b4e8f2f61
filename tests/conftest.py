from __future__ import annotations

import os

import pytest

# Prevent import-time failure in vnquant.api.database.database during test discovery.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from vnquant.api.database.database import Base, build_engine, build_session_factory  # noqa: E402
from vnquant.ingestion.services.store import SqlMarketDataStore  # noqa: E402
import vnquant.models.instrument  # noqa: E402,F401
import vnquant.models.price_bar  # noqa: E402,F401


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'vnquant.db'}")
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlMarketDataStore:
    return SqlMarketDataStore(session_factory)
