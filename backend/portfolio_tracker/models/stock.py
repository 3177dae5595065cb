from sqlalchemy import Column, DateTime, Index, Numeric, String, UniqueConstraint
from portfolio_tracker.core.database import Base
from portfolio_tracker.models.base import IdMixin, utcnow


class Stock(Base, IdMixin):
    """
    Listed instrument with its latest price in its own currency.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint("name", name="uq_stock_name"),
        UniqueConstraint("alias", name="uq_stock_alias"),
        Index("idx_stock_currency_price", "currency", "price"),
    )

    name = Column(String(100), nullable=False)  # e.g. "2330:TPE"
    alias = Column(String(100), nullable=True)
    price = Column(Numeric(18, 4), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Stock(name={self.name}, price={self.price} {self.currency})>"
