from .chunked import ChunkedFetchDriver, partition
from .errors import ErrorKind, IngestionError
from .fetching import ExchangeConfig, PriceIngestionService, load_exchange_configs
from .intraday import IntradayFetchDriver
from .market_data import Bar, ChartData, Instrument, MarketDataProvider
from .store import MarketDataStore, SqlMarketDataStore
from .summary import FetchOutcome, RunStatus, RunSummary
from .validation import check_bar, filter_valid_bars, validate_bar

__all__ = [
    "ChunkedFetchDriver",
    "partition",
    "ErrorKind",
    "IngestionError",
    "ExchangeConfig",
    "PriceIngestionService",
    "load_exchange_configs",
    "IntradayFetchDriver",
    "Bar",
    "ChartData",
    "Instrument",
    "MarketDataProvider",
    "MarketDataStore",
    "SqlMarketDataStore",
    "FetchOutcome",
    "RunStatus",
    "RunSummary",
    "check_bar",
    "filter_valid_bars",
    "validate_bar",
]
