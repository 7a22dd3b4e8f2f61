from vnquant.api.database.database import Base
from sqlalchemy import TIMESTAMP, Column, Index, Integer, PrimaryKeyConstraint, String, func


class Instrument(Base):
    # Instrument metadata keyed by (symbol, exchange); refreshed by upserts, never deleted here.
    __tablename__ = "instruments"
    __table_args__ = (
        PrimaryKeyConstraint("symbol", "exchange", name="pk_instruments"),
        Index("ix_instruments_exchange", "exchange"),
    )

    symbol = Column(String(32), nullable=False)
    exchange = Column(String(32), nullable=False)
    description = Column(String, nullable=True)
    currency = Column(String(8), nullable=True)
    country = Column(String(64), nullable=True)
    market_type = Column(String(32), nullable=True)
    industry = Column(String(128), nullable=True)
    sector = Column(String(128), nullable=True)
    founded_year = Column(Integer, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
