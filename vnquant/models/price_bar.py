from vnquant.api.database.database import Base
from sqlalchemy import (
    TIMESTAMP,
    Column,
    Float,
    ForeignKeyConstraint,
    Index,
    PrimaryKeyConstraint,
    String,
    func,
)


class PriceBar(Base):
    # One OHLCV candle per (symbol, exchange, interval, timestamp); re-fetches replace the row.
    __tablename__ = "ohlcv"
    __table_args__ = (
        PrimaryKeyConstraint(
            "symbol", "exchange", "interval", "timestamp", name="pk_ohlcv"
        ),
        ForeignKeyConstraint(
            ["symbol", "exchange"],
            ["instruments.symbol", "instruments.exchange"],
            ondelete="CASCADE",
            name="fk_ohlcv_instrument",
        ),
        Index("ix_ohlcv_symbol_interval_timestamp", "symbol", "interval", "timestamp"),
        Index("ix_ohlcv_exchange_timestamp", "exchange", "timestamp"),
    )

    symbol = Column(String(32), nullable=False)
    exchange = Column(String(32), nullable=False)
    interval = Column(String(8), nullable=False)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(Float, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
