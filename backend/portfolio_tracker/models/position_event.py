from sqlalchemy import Column, DateTime, Index, Numeric, String, UniqueConstraint
from portfolio_tracker.core.database import Base
from portfolio_tracker.models.base import CreatedAtMixin, IdMixin


class PositionEvent(Base, IdMixin, CreatedAtMixin):
    """
    Audit record of a single BUY/SELL trade. Written once, never updated.
    """
    __tablename__ = "position_events"
    __table_args__ = (
        UniqueConstraint("operation_id", name="uq_position_event_operation_id"),
        Index("idx_position_event_user_trade_at", "user_id", "trade_at"),
        Index("idx_position_event_stock_trade_at", "stock_id", "trade_at"),
    )

    operation_id = Column(String(64), nullable=False)  # client supplied UUID
    user_id = Column(String(32), nullable=False)
    stock_id = Column(String(32), nullable=False)
    type = Column(String(4), nullable=False)  # BUY / SELL
    trade_at = Column(DateTime(timezone=True), nullable=False)

    quantity_before = Column(Numeric(20, 6), nullable=False)
    quantity_after = Column(Numeric(20, 6), nullable=False)
    quantity_delta = Column(Numeric(20, 6), nullable=False)  # negative for SELL

    currency = Column(String(3), nullable=False)
    total_cost_after = Column(Numeric(20, 4), nullable=False)
    unit_price = Column(Numeric(18, 4), nullable=False)

    source = Column(String(20), nullable=False)  # ios / android / web
    app_version = Column(String(20), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<PositionEvent(operation_id={self.operation_id}, type={self.type}, "
            f"delta={self.quantity_delta})>"
        )
