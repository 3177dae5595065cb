from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship
from portfolio_tracker.core.database import Base
from portfolio_tracker.models.base import IdMixin, utcnow


class Portfolio(Base, IdMixin):
    """
    A user's holdings and their latest valuation in the base currency.

    total_value and each holding's percentage_of_total are derived state,
    rewritten by the update pipeline on every recalculation.
    """
    __tablename__ = "portfolios"
    __table_args__ = (
        Index("idx_portfolio_user_updated", "user_id", "last_updated"),
    )

    user_id = Column(
        String(32),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    total_value = Column(Numeric(20, 2), nullable=False, default=Decimal("0"))
    exchange_rate = Column(Numeric(12, 4), nullable=True)
    exchange_rate_updated = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    holdings = relationship(
        "Holding",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="Holding.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Portfolio(id={self.id}, total_value={self.total_value}, holdings={len(self.holdings)})>"


class Holding(Base):
    """
    Quantity of one stock inside a portfolio. Owned by the portfolio.
    """
    __tablename__ = "portfolio_holdings"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_holding_quantity_non_negative"),
    )

    portfolio_id = Column(
        String(32),
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        primary_key=True,
    )
    stock_id = Column(String(32), ForeignKey("stocks.id"), primary_key=True, index=True)
    quantity = Column(Numeric(20, 6), nullable=False)
    percentage_of_total = Column(Numeric(7, 2), nullable=False, default=Decimal("0"))
    # Insertion order; ties in the percentage correction go to the earlier holding
    position = Column(Integer, nullable=False, default=0)

    portfolio = relationship("Portfolio", back_populates="holdings")
