from __future__ import annotations

import asyncio
import logging

import pandas as pd
import yfinance as yf

from vnquant.data_types.interval import Interval

from .market_data import Bar, ChartData, Instrument, MarketDataProvider

logger = logging.getLogger("vnquant.ingestion.yahoo")

SCREEN_PAGE_SIZE = 250

# Yahoo ticker suffix per exchange; US listings have none.
EXCHANGE_SUFFIXES = {
    "HOSE": ".VN",
    "HNX": ".HN",
    "TSX": ".TO",
    "LSE": ".L",
    "XETRA": ".DE",
    "ASX": ".AX",
}

# Interval -> (yfinance interval, resample rule or None)
_YAHOO_INTERVALS = {
    Interval.MINUTE_1: ("1m", None),
    Interval.MINUTE_5: ("5m", None),
    Interval.MINUTE_15: ("15m", None),
    Interval.MINUTE_30: ("30m", None),
    Interval.HOUR_1: ("1h", None),
    Interval.HOUR_2: ("1h", "2h"),
    Interval.HOUR_4: ("1h", "4h"),
    Interval.DAY_1: ("1d", None),
    Interval.WEEK_1: ("1wk", None),
    Interval.MONTH_1: ("1mo", None),
}

# Interval -> (regular period, replay period); replay pulls the longest window Yahoo serves.
_PERIODS = {
    Interval.MINUTE_1: ("1d", "7d"),
    Interval.MINUTE_5: ("5d", "60d"),
    Interval.MINUTE_15: ("5d", "60d"),
    Interval.MINUTE_30: ("5d", "60d"),
    Interval.HOUR_1: ("1mo", "730d"),
    Interval.HOUR_2: ("1mo", "730d"),
    Interval.HOUR_4: ("1mo", "730d"),
    Interval.DAY_1: ("1mo", "max"),
    Interval.WEEK_1: ("1y", "max"),
    Interval.MONTH_1: ("5y", "max"),
}

_OHLCV = ["Open", "High", "Low", "Close", "Volume"]
_RESAMPLE_AGG = {"Open": "first", "High": "max", "Low": "min", "Close": "last", "Volume": "sum"}


def yahoo_symbol(instrument: Instrument) -> str:
    suffix = EXCHANGE_SUFFIXES.get(instrument.exchange.upper(), "")
    symbol = instrument.symbol.strip().upper()
    if suffix and symbol.endswith(suffix):
        return symbol
    return f"{symbol}{suffix}"


def frame_to_bars(frame: pd.DataFrame, interval: Interval) -> list[Bar]:
    """
    Convert a yfinance OHLCV frame into bars with UTC timestamps.

    Rows without any price are dropped here; everything else goes to the
    validator unchanged.
    """
    if frame is None or frame.empty:
        return []
    missing = [column for column in _OHLCV if column not in frame.columns]
    if missing:
        raise ValueError(f"price frame missing columns: {', '.join(missing)}")

    frame = frame[_OHLCV].dropna(subset=["Open", "High", "Low", "Close"], how="all")
    if frame.empty:
        return []

    index = pd.DatetimeIndex(frame.index)
    if index.tz is None:
        index = index.tz_localize("UTC")
    else:
        index = index.tz_convert("UTC")
    frame = frame.set_axis(index)

    _, rule = _YAHOO_INTERVALS[interval]
    if rule:
        frame = frame.resample(rule).agg(_RESAMPLE_AGG).dropna(subset=["Open"])

    return [
        Bar(
            timestamp=timestamp.to_pydatetime(),
            open=float(row["Open"]),
            high=float(row["High"]),
            low=float(row["Low"]),
            close=float(row["Close"]),
            volume=float(row["Volume"]),
        )
        for timestamp, row in frame.iterrows()
    ]


def quote_to_instrument(quote: dict, exchange: str, country: str | None) -> Instrument:
    symbol = str(quote.get("symbol") or "")
    suffix = EXCHANGE_SUFFIXES.get(exchange.upper(), "")
    if suffix and symbol.endswith(suffix):
        symbol = symbol[: -len(suffix)]
    return Instrument(
        symbol=symbol,
        exchange=exchange,
        description=quote.get("longName") or quote.get("shortName"),
        currency=quote.get("currency"),
        country=country,
        market_type=(quote.get("quoteType") or "").lower() or None,
        industry=quote.get("industry"),
        sector=quote.get("sector"),
    )


class YahooMarketDataProvider(MarketDataProvider):
    """Yahoo Finance-backed provider (yfinance); blocking calls run in worker threads."""

    def __init__(self, screen_exchange_codes: dict[str, str] | None = None) -> None:
        # Maps our exchange names to Yahoo screener codes, e.g. {"NASDAQ": "NMS"}.
        self._screen_codes = {
            "NASDAQ": "NMS",
            "NYSE": "NYQ",
            "AMEX": "ASE",
            **(screen_exchange_codes or {}),
        }

    async def list_symbols(
        self,
        exchange: str,
        country: str | None = None,
    ) -> list[Instrument]:
        return await asyncio.to_thread(self._list_symbols, exchange, country)

    def _list_symbols(self, exchange: str, country: str | None) -> list[Instrument]:
        code = self._screen_codes.get(exchange.upper(), exchange)
        query = yf.EquityQuery("eq", ["exchange", code])
        instruments: list[Instrument] = []
        offset = 0
        while True:
            response = yf.screen(query, offset=offset, size=SCREEN_PAGE_SIZE)
            quotes = response.get("quotes") or []
            instruments.extend(
                quote_to_instrument(quote, exchange, country) for quote in quotes
            )
            offset += len(quotes)
            total = int(response.get("total") or 0)
            if not quotes or offset >= total:
                break
        logger.debug("Screened %d symbols for %s (%s)", len(instruments), exchange, code)
        return instruments

    async def fetch_history(
        self,
        instrument: Instrument,
        interval: Interval,
        replay: bool = False,
    ) -> ChartData:
        return await asyncio.to_thread(self._fetch_history, instrument, interval, replay)

    def _fetch_history(
        self,
        instrument: Instrument,
        interval: Interval,
        replay: bool,
    ) -> ChartData:
        yahoo_interval, _ = _YAHOO_INTERVALS[interval]
        regular, extended = _PERIODS[interval]
        frame = yf.Ticker(yahoo_symbol(instrument)).history(
            period=extended if replay else regular,
            interval=yahoo_interval,
            auto_adjust=False,
        )
        return ChartData(instrument=instrument, bars=frame_to_bars(frame, interval))

    async def fetch_history_batch(
        self,
        instruments: list[Instrument],
        interval: Interval,
    ) -> dict[Instrument, ChartData]:
        return await asyncio.to_thread(self._fetch_history_batch, instruments, interval)

    def _fetch_history_batch(
        self,
        instruments: list[Instrument],
        interval: Interval,
    ) -> dict[Instrument, ChartData]:
        if not instruments:
            return {}

        by_symbol = {yahoo_symbol(instrument): instrument for instrument in instruments}
        yahoo_interval, _ = _YAHOO_INTERVALS[interval]
        regular, _ = _PERIODS[interval]
        data = yf.download(
            tickers=" ".join(by_symbol),
            period=regular,
            interval=yahoo_interval,
            group_by="ticker",
            auto_adjust=False,
            threads=True,
            progress=False,
        )

        charts: dict[Instrument, ChartData] = {}
        if data is None or data.empty:
            return charts

        grouped = isinstance(data.columns, pd.MultiIndex)
        for symbol, instrument in by_symbol.items():
            if grouped:
                if symbol not in data.columns.get_level_values(0):
                    continue
                frame = data[symbol]
            elif len(by_symbol) == 1:
                frame = data
            else:
                continue
            bars = frame_to_bars(frame, interval)
            if bars:
                charts[instrument] = ChartData(instrument=instrument, bars=bars)
        return charts
