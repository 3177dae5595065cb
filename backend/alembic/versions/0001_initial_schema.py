"""Initial portfolio tracker schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("portfolio_id", sa.String(length=32), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_user_username"),
        sa.UniqueConstraint("email", name="uq_user_email"),
    )

    op.create_table(
        "stocks",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("alias", sa.String(length=100), nullable=True),
        sa.Column("price", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_stock_name"),
        sa.UniqueConstraint("alias", name="uq_stock_alias"),
    )
    op.create_index("idx_stock_currency_price", "stocks", ["currency", "price"])

    op.create_table(
        "portfolios",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=32), nullable=True),
        sa.Column("total_value", sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("exchange_rate_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_portfolios_user_id", "portfolios", ["user_id"])
    op.create_index("idx_portfolio_user_updated", "portfolios", ["user_id", "last_updated"])

    op.create_table(
        "portfolio_holdings",
        sa.Column("portfolio_id", sa.String(length=32), nullable=False),
        sa.Column("stock_id", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Numeric(precision=20, scale=6), nullable=False),
        sa.Column("percentage_of_total", sa.Numeric(precision=7, scale=2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["stock_id"], ["stocks.id"]),
        sa.PrimaryKeyConstraint("portfolio_id", "stock_id"),
        sa.CheckConstraint("quantity >= 0", name="ck_holding_quantity_non_negative"),
    )
    op.create_index("ix_portfolio_holdings_stock_id", "portfolio_holdings", ["stock_id"])

    op.create_table(
        "portfolio_daily_values",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("portfolio_id", sa.String(length=32), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_value", sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("portfolio_id", "date", name="uq_portfolio_daily_value_portfolio_date"),
    )
    op.create_index("idx_portfolio_daily_value_date", "portfolio_daily_values", ["date"])

    op.create_table(
        "position_events",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("operation_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("stock_id", sa.String(length=32), nullable=False),
        sa.Column("type", sa.String(length=4), nullable=False),
        sa.Column("trade_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quantity_before", sa.Numeric(precision=20, scale=6), nullable=False),
        sa.Column("quantity_after", sa.Numeric(precision=20, scale=6), nullable=False),
        sa.Column("quantity_delta", sa.Numeric(precision=20, scale=6), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("total_cost_after", sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("app_version", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("operation_id", name="uq_position_event_operation_id"),
    )
    op.create_index("idx_position_event_user_trade_at", "position_events", ["user_id", "trade_at"])
    op.create_index("idx_position_event_stock_trade_at", "position_events", ["stock_id", "trade_at"])


def downgrade() -> None:
    op.drop_index("idx_position_event_stock_trade_at", table_name="position_events")
    op.drop_index("idx_position_event_user_trade_at", table_name="position_events")
    op.drop_table("position_events")

    op.drop_index("idx_portfolio_daily_value_date", table_name="portfolio_daily_values")
    op.drop_table("portfolio_daily_values")

    op.drop_index("ix_portfolio_holdings_stock_id", table_name="portfolio_holdings")
    op.drop_table("portfolio_holdings")

    op.drop_index("idx_portfolio_user_updated", table_name="portfolios")
    op.drop_index("ix_portfolios_user_id", table_name="portfolios")
    op.drop_table("portfolios")

    op.drop_index("idx_stock_currency_price", table_name="stocks")
    op.drop_table("stocks")

    op.drop_table("users")
