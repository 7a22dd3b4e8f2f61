from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from vnquant.data_types.interval import Interval


@dataclass(frozen=True)
class Instrument:
    """Tradable asset identified by (symbol, exchange) plus optional metadata."""
    symbol: str
    exchange: str
    description: str | None = None
    currency: str | None = None
    country: str | None = None
    market_type: str | None = None
    industry: str | None = None
    sector: str | None = None
    founded_year: int | None = None

    @property
    def label(self) -> str:
        return f"{self.symbol}:{self.exchange}"

    def is_addressable(self) -> bool:
        return bool(self.symbol and self.symbol.strip()) and bool(
            self.exchange and self.exchange.strip()
        )


@dataclass(frozen=True)
class Bar:
    """One OHLCV candle; ``timestamp`` is a UTC instant."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class ChartData:
    """Provider answer for one instrument: refreshed metadata and its bars."""
    instrument: Instrument
    bars: list[Bar] = field(default_factory=list)


class MarketDataProvider(Protocol):
    """Source of instrument listings and historical bars."""

    async def list_symbols(
        self,
        exchange: str,
        country: str | None = None,
    ) -> list[Instrument]:
        raise NotImplementedError

    async def fetch_history(
        self,
        instrument: Instrument,
        interval: Interval,
        replay: bool = False,
    ) -> ChartData:
        raise NotImplementedError

    async def fetch_history_batch(
        self,
        instruments: list[Instrument],
        interval: Interval,
    ) -> dict[Instrument, ChartData]:
        raise NotImplementedError
