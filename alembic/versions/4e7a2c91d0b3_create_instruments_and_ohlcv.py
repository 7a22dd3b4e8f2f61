"""create instruments and ohlcv

Revision ID: 4e7a2c91d0b3
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4e7a2c91d0b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "instruments",
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("exchange", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("market_type", sa.String(length=32), nullable=True),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("sector", sa.String(length=128), nullable=True),
        sa.Column("founded_year", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("symbol", "exchange", name="pk_instruments"),
    )
    op.create_index(
        "ix_instruments_exchange",
        "instruments",
        ["exchange"],
        unique=False,
    )

    op.create_table(
        "ohlcv",
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("exchange", sa.String(length=32), nullable=False),
        sa.Column("interval", sa.String(length=8), nullable=False),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("open", sa.Float(), nullable=False),
        sa.Column("high", sa.Float(), nullable=False),
        sa.Column("low", sa.Float(), nullable=False),
        sa.Column("close", sa.Float(), nullable=False),
        sa.Column("volume", sa.Float(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["symbol", "exchange"],
            ["instruments.symbol", "instruments.exchange"],
            ondelete="CASCADE",
            name="fk_ohlcv_instrument",
        ),
        sa.PrimaryKeyConstraint(
            "symbol", "exchange", "interval", "timestamp", name="pk_ohlcv"
        ),
    )
    op.create_index(
        "ix_ohlcv_symbol_interval_timestamp",
        "ohlcv",
        ["symbol", "interval", "timestamp"],
        unique=False,
    )
    op.create_index(
        "ix_ohlcv_exchange_timestamp",
        "ohlcv",
        ["exchange", "timestamp"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_ohlcv_exchange_timestamp", table_name="ohlcv")
    op.drop_index("ix_ohlcv_symbol_interval_timestamp", table_name="ohlcv")
    op.drop_table("ohlcv")
    op.drop_index("ix_instruments_exchange", table_name="instruments")
    op.drop_table("instruments")
