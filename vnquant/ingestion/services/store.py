from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol
import logging

from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from vnquant.data_types.interval import Interval
from vnquant.models.instrument import Instrument as InstrumentModel
from vnquant.models.price_bar import PriceBar as PriceBarModel

from .errors import ErrorKind, IngestionError, malformed
from .market_data import Bar, Instrument
from .validation import filter_valid_bars

logger = logging.getLogger("vnquant.ingestion.store")

DEFAULT_BATCH_SIZE = 1000
DEFAULT_SEARCH_LIMIT = 50
MAX_SEARCH_LIMIT = 500

# Columns callers may name in a search; anything else is rejected before SQL is built.
SEARCHABLE_FIELDS = (
    "symbol",
    "exchange",
    "description",
    "currency",
    "country",
    "market_type",
    "industry",
    "sector",
)

_INSTRUMENT_METADATA = (
    "description",
    "currency",
    "country",
    "market_type",
    "industry",
    "sector",
    "founded_year",
)
_BAR_VALUES = ("open", "high", "low", "close", "volume")


class MarketDataStore(Protocol):
    """Persistence boundary for instruments and their bars."""

    def upsert_instruments(self, instruments: list[Instrument]) -> int:
        raise NotImplementedError

    def upsert_bars(
        self,
        instrument: Instrument,
        interval: Interval,
        bars: list[Bar],
    ) -> int:
        raise NotImplementedError

    def get_instrument(self, symbol: str, exchange: str) -> Instrument | None:
        raise NotImplementedError

    def list_instruments(self, exchange: str | None = None) -> list[Instrument]:
        raise NotImplementedError

    def get_bars(
        self,
        instrument: Instrument,
        interval: Interval,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        raise NotImplementedError


class SqlMarketDataStore(MarketDataStore):
    """
    SQLAlchemy-backed store.

    Every write is split into sub-batches of ``batch_size`` rows and each
    sub-batch runs in its own session/transaction, so a failure rolls back only
    that sub-batch while earlier ones stay committed.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._session_factory = session_factory
        self._batch_size = batch_size

    # -- writes ---------------------------------------------------------------

    def upsert_instruments(self, instruments: list[Instrument]) -> int:
        if not instruments:
            return 0
        blank = [i for i in instruments if not i.is_addressable()]
        if blank:
            raise malformed(
                f"{len(blank)} instruments have an empty symbol or exchange",
                blank=len(blank),
            )

        rows = _dedupe(
            (
                {
                    "symbol": instrument.symbol,
                    "exchange": instrument.exchange,
                    **{name: getattr(instrument, name) for name in _INSTRUMENT_METADATA},
                }
                for instrument in instruments
            ),
            key=lambda row: (row["symbol"], row["exchange"]),
        )

        def build(session: Session, payload: list[dict]):
            stmt = _insert_for(session)(InstrumentModel).values(payload)
            return stmt.on_conflict_do_update(
                index_elements=["symbol", "exchange"],
                set_={
                    **{
                        name: func.coalesce(
                            stmt.excluded[name], getattr(InstrumentModel, name)
                        )
                        for name in _INSTRUMENT_METADATA
                    },
                    "updated_at": func.now(),
                },
            )

        affected = self._write_in_batches(rows, build, table="instruments")
        logger.debug("Upserted %d instrument rows", affected)
        return affected

    def upsert_bars(
        self,
        instrument: Instrument,
        interval: Interval,
        bars: list[Bar],
    ) -> int:
        if not bars:
            return 0

        accepted = filter_valid_bars(bars)
        if not accepted:
            logger.warning(
                "All %d bars rejected for %s (%s)",
                len(bars),
                instrument.label,
                interval.value,
                extra={
                    "event": "bars_all_rejected",
                    "symbol": instrument.symbol,
                    "exchange": instrument.exchange,
                    "rejected": len(bars),
                },
            )
            return 0
        if len(accepted) < len(bars):
            logger.info(
                "Dropped %d of %d bars for %s (%s)",
                len(bars) - len(accepted),
                len(bars),
                instrument.label,
                interval.value,
                extra={
                    "event": "bars_rejected",
                    "symbol": instrument.symbol,
                    "exchange": instrument.exchange,
                    "rejected": len(bars) - len(accepted),
                },
            )

        rows = _dedupe(
            (
                {
                    "symbol": instrument.symbol,
                    "exchange": instrument.exchange,
                    "interval": interval.value,
                    "timestamp": _to_utc(bar.timestamp),
                    "open": float(bar.open),
                    "high": float(bar.high),
                    "low": float(bar.low),
                    "close": float(bar.close),
                    "volume": float(bar.volume),
                }
                for bar in accepted
            ),
            key=lambda row: row["timestamp"],
        )

        def build(session: Session, payload: list[dict]):
            stmt = _insert_for(session)(PriceBarModel).values(payload)
            return stmt.on_conflict_do_update(
                index_elements=["symbol", "exchange", "interval", "timestamp"],
                set_={name: stmt.excluded[name] for name in _BAR_VALUES},
            )

        return self._write_in_batches(
            rows,
            build,
            table="ohlcv",
            symbol=instrument.symbol,
            exchange=instrument.exchange,
        )

    def _write_in_batches(self, rows: list[dict], build, table: str, **context) -> int:
        total_affected = 0
        for index, start in enumerate(range(0, len(rows), self._batch_size)):
            payload = rows[start : start + self._batch_size]
            session = self._session_factory()
            try:
                result = session.execute(build(session, payload))
                session.commit()
                total_affected += max(result.rowcount or 0, 0)
            except SQLAlchemyError as exc:
                session.rollback()
                raise IngestionError(
                    f"Failed to upsert {len(payload)} rows into {table}",
                    ErrorKind.STORE,
                    cause=exc,
                    context={"sub_batch": index, **context},
                ) from exc
            finally:
                session.close()
        return total_affected

    # -- reads ----------------------------------------------------------------

    def get_instrument(self, symbol: str, exchange: str) -> Instrument | None:
        session = self._session_factory()
        try:
            stmt = select(InstrumentModel).where(
                InstrumentModel.symbol == symbol,
                InstrumentModel.exchange == exchange,
            )
            row = session.execute(stmt).scalars().first()
            return _to_instrument(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _store_error(exc, "get_instrument", symbol=symbol, exchange=exchange)
        finally:
            session.close()

    def instrument_exists(self, symbol: str, exchange: str) -> bool:
        session = self._session_factory()
        try:
            stmt = select(func.count()).select_from(InstrumentModel).where(
                InstrumentModel.symbol == symbol,
                InstrumentModel.exchange == exchange,
            )
            return (session.execute(stmt).scalar() or 0) > 0
        except SQLAlchemyError as exc:
            raise _store_error(exc, "instrument_exists", symbol=symbol, exchange=exchange)
        finally:
            session.close()

    def count_instruments(self) -> int:
        session = self._session_factory()
        try:
            stmt = select(func.count()).select_from(InstrumentModel)
            return int(session.execute(stmt).scalar() or 0)
        except SQLAlchemyError as exc:
            raise _store_error(exc, "count_instruments")
        finally:
            session.close()

    def list_instruments(self, exchange: str | None = None) -> list[Instrument]:
        session = self._session_factory()
        try:
            stmt = select(InstrumentModel).order_by(
                InstrumentModel.symbol, InstrumentModel.exchange
            )
            if exchange is not None:
                stmt = stmt.where(InstrumentModel.exchange == exchange)
            return [_to_instrument(row) for row in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise _store_error(exc, "list_instruments", exchange=exchange)
        finally:
            session.close()

    def get_bars(
        self,
        instrument: Instrument,
        interval: Interval,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        session = self._session_factory()
        try:
            stmt = (
                select(PriceBarModel)
                .where(PriceBarModel.symbol == instrument.symbol)
                .where(PriceBarModel.exchange == instrument.exchange)
                .where(PriceBarModel.interval == interval.value)
            )
            if start is not None:
                stmt = stmt.where(PriceBarModel.timestamp >= _to_utc(start))
            if end is not None:
                stmt = stmt.where(PriceBarModel.timestamp <= _to_utc(end))
            stmt = stmt.order_by(PriceBarModel.timestamp.asc())
            return [
                Bar(
                    timestamp=_from_db_timestamp(row.timestamp),
                    open=row.open,
                    high=row.high,
                    low=row.low,
                    close=row.close,
                    volume=row.volume,
                )
                for row in session.execute(stmt).scalars().all()
            ]
        except SQLAlchemyError as exc:
            raise _store_error(
                exc,
                "get_bars",
                symbol=instrument.symbol,
                exchange=instrument.exchange,
            )
        finally:
            session.close()

    def search_instruments(
        self,
        query: str,
        field: str | None = None,
        exchange: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[Instrument]:
        """
        Search instruments best-match-first.

        Ranking: exact symbol, symbol prefix, prefix on the searched field(s),
        then substring matches. ``field`` must be one of SEARCHABLE_FIELDS.
        """
        text = (query or "").strip()
        if not text:
            raise malformed("search query must not be empty")
        if field is not None and field not in SEARCHABLE_FIELDS:
            raise malformed(
                f"unsupported search field={field!r}; "
                f"allowed: {', '.join(SEARCHABLE_FIELDS)}",
                field=field,
            )
        if limit <= 0 or limit > MAX_SEARCH_LIMIT:
            raise malformed(
                f"search limit must be between 1 and {MAX_SEARCH_LIMIT}, got {limit}"
            )

        columns = [
            getattr(InstrumentModel, name)
            for name in ((field,) if field else SEARCHABLE_FIELDS)
        ]
        escaped = _escape_like(text)
        contains = f"%{escaped}%"
        prefix = f"{escaped}%"

        rank = case(
            (func.upper(InstrumentModel.symbol) == text.upper(), 0),
            (InstrumentModel.symbol.ilike(prefix, escape="\\"), 1),
            (or_(*(col.ilike(prefix, escape="\\") for col in columns)), 2),
            else_=3,
        )
        stmt = select(InstrumentModel).where(
            or_(*(col.ilike(contains, escape="\\") for col in columns))
        )
        if exchange is not None:
            stmt = stmt.where(InstrumentModel.exchange == exchange)
        stmt = stmt.order_by(rank, InstrumentModel.symbol, InstrumentModel.exchange).limit(
            limit
        )

        session = self._session_factory()
        try:
            return [_to_instrument(row) for row in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise _store_error(exc, "search_instruments", query=text)
        finally:
            session.close()


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise IngestionError(
        f"Upserts are not supported on dialect={dialect}",
        ErrorKind.STORE,
        context={"dialect": dialect},
    )


def _dedupe(rows: Iterable[dict], key) -> list[dict]:
    # Last occurrence wins; a single ON CONFLICT statement cannot touch a key twice.
    unique: dict = {}
    for row in rows:
        unique[key(row)] = row
    return list(unique.values())


def _to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _from_db_timestamp(moment: datetime) -> datetime:
    # SQLite hands back naive values; they were written as UTC.
    return _to_utc(moment)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_instrument(row: InstrumentModel) -> Instrument:
    return Instrument(
        symbol=row.symbol,
        exchange=row.exchange,
        description=row.description,
        currency=row.currency,
        country=row.country,
        market_type=row.market_type,
        industry=row.industry,
        sector=row.sector,
        founded_year=row.founded_year,
    )


def _store_error(exc: SQLAlchemyError, operation: str, **context) -> IngestionError:
    return IngestionError(
        f"Store operation {operation} failed",
        ErrorKind.STORE,
        cause=exc,
        context=context,
    )
