from sqlalchemy import Column, Date, Index, Numeric, String, UniqueConstraint
from portfolio_tracker.core.database import Base
from portfolio_tracker.models.base import CreatedAtMixin, IdMixin


class PortfolioDailyValue(Base, IdMixin, CreatedAtMixin):
    """
    Daily portfolio valuation snapshot (append-only).

    `date` is the calendar day in the reference timezone (Asia/Taipei).
    """
    __tablename__ = "portfolio_daily_values"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "date", name="uq_portfolio_daily_value_portfolio_date"),
        Index("idx_portfolio_daily_value_date", "date"),
    )

    portfolio_id = Column(String(32), nullable=False)
    date = Column(Date, nullable=False)
    total_value = Column(Numeric(20, 2), nullable=False)
