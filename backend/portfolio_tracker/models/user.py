from sqlalchemy import JSON, Column, String, UniqueConstraint
from portfolio_tracker.core.database import Base
from portfolio_tracker.models.base import CreatedAtMixin, IdMixin


class User(Base, IdMixin, CreatedAtMixin):
    """
    Application user. Created and deleted together with its portfolio.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        UniqueConstraint("email", name="uq_user_email"),
    )

    username = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    portfolio_id = Column(String(32), nullable=True)
    # str -> str | int | float | bool
    settings = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<User(username={self.username}, portfolio_id={self.portfolio_id})>"
