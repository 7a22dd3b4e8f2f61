from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from vnquant.api.database.database import SessionLocal
from vnquant.data_types.interval import Interval
from vnquant.ingestion.services.errors import ErrorKind, IngestionError
from vnquant.ingestion.services.market_data import Instrument
from vnquant.ingestion.services.store import (
    DEFAULT_SEARCH_LIMIT,
    MAX_SEARCH_LIMIT,
    SqlMarketDataStore,
)

router = APIRouter(prefix="/api/instruments", tags=["instruments"])


class InstrumentResponse(BaseModel):
    symbol: str
    exchange: str
    description: Optional[str] = None
    currency: Optional[str] = None
    country: Optional[str] = None
    market_type: Optional[str] = None
    industry: Optional[str] = None
    sector: Optional[str] = None
    founded_year: Optional[int] = None


class InstrumentSearchItem(BaseModel):
    label: str
    value: str
    exchange: str


class BarResponse(BaseModel):
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


def get_store() -> SqlMarketDataStore:
    return SqlMarketDataStore(SessionLocal)


def _raise_http(exc: IngestionError):
    if exc.kind is ErrorKind.MALFORMED_INPUT:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/", response_model=List[InstrumentResponse])
def list_instruments(
    exchange: Optional[str] = None,
    store: SqlMarketDataStore = Depends(get_store),
):
    try:
        instruments = store.list_instruments(exchange=exchange.upper() if exchange else None)
    except IngestionError as e:
        _raise_http(e)
    return [asdict(instrument) for instrument in instruments]


# SEARCH ----------------------------------------------------------------------------------

@router.get("/search", response_model=List[InstrumentSearchItem])
def search_instruments(
    q: str = Query(..., min_length=1, description="Search text"),
    field: Optional[str] = Query(default=None, description="Restrict the search to one column"),
    exchange: Optional[str] = None,
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    store: SqlMarketDataStore = Depends(get_store),
):
    """
    Search instruments best-match-first: exact symbol, symbol prefix, prefix on
    the searched field(s), then substring matches.

    Returns:
        List of {label, value, exchange} items for autocomplete.
    """
    try:
        instruments = store.search_instruments(
            q,
            field=field,
            exchange=exchange.upper() if exchange else None,
            limit=limit,
        )
    except IngestionError as e:
        _raise_http(e)
    return [
        {
            "label": f"{instrument.symbol} - {instrument.description or instrument.exchange}",
            "value": instrument.symbol,
            "exchange": instrument.exchange,
        }
        for instrument in instruments
    ]


# INSTRUMENT + BARS -----------------------------------------------------------------------

@router.get("/{exchange}/{symbol}", response_model=InstrumentResponse)
def get_instrument(
    exchange: str,
    symbol: str,
    store: SqlMarketDataStore = Depends(get_store),
):
    try:
        instrument = store.get_instrument(symbol.upper(), exchange.upper())
    except IngestionError as e:
        _raise_http(e)
    if instrument is None:
        raise HTTPException(status_code=404, detail="Instrument not found")
    return asdict(instrument)


@router.get("/{exchange}/{symbol}/bars", response_model=List[BarResponse])
def get_bars(
    exchange: str,
    symbol: str,
    interval: str = "1d",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    store: SqlMarketDataStore = Depends(get_store),
):
    """Stored bars for one instrument, oldest first; ``start``/``end`` are inclusive."""
    try:
        parsed = Interval.parse(interval)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        if not store.instrument_exists(symbol.upper(), exchange.upper()):
            raise HTTPException(status_code=404, detail="Instrument not found")
        bars = store.get_bars(
            Instrument(symbol=symbol.upper(), exchange=exchange.upper()),
            parsed,
            start=start,
            end=end,
        )
    except IngestionError as e:
        _raise_http(e)
    return [asdict(bar) for bar in bars]
