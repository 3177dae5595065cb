"""
User management.

A user and its portfolio are created and deleted together in one database
transaction.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from portfolio_tracker.core.database import AsyncSessionLocal
from portfolio_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from portfolio_tracker.models.base import new_id, utcnow
from portfolio_tracker.models.portfolio import Portfolio
from portfolio_tracker.models.user import User
from portfolio_tracker.services.portfolio_store import current_exchange_rate_query

logger = logging.getLogger(__name__)

SETTING_TYPES = (str, int, float, bool)


def validate_settings(settings: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Settings values must be scalar: str, int, float or bool."""
    if settings is None:
        return {}
    cleaned = {}
    for key, value in settings.items():
        if not isinstance(key, str):
            raise ValidationError(f"Setting keys must be strings, got {key!r}")
        if not isinstance(value, SETTING_TYPES):
            raise ValidationError(
                f"Setting '{key}' has unsupported type {type(value).__name__}; "
                "use str, int, float or bool"
            )
        cleaned[key] = value
    return dict(sorted(cleaned.items()))


class UserService:
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    async def create_user(
        self,
        username: str,
        email: str,
        settings: Optional[Mapping[str, Any]] = None,
    ) -> User:
        """Insert the user and an empty portfolio, linked both ways."""
        user_settings = validate_settings(settings)

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    clash = await session.execute(
                        select(User.id).where(or_(User.username == username, User.email == email))
                    )
                    if clash.first() is not None:
                        raise ConflictError(f"Username or email already exists: {username}")

                    user = User(
                        id=new_id(),
                        username=username,
                        email=email,
                        settings=user_settings,
                        created_at=utcnow(),
                    )
                    session.add(user)
                    await session.flush()

                    # New portfolios follow the rate the others already carry
                    current_rate = (await session.execute(current_exchange_rate_query())).first()
                    portfolio = Portfolio(
                        id=new_id(),
                        user_id=user.id,
                        total_value=0,
                        exchange_rate=current_rate[0] if current_rate else None,
                        exchange_rate_updated=current_rate[1] if current_rate else None,
                        last_updated=utcnow(),
                    )
                    session.add(portfolio)
                    user.portfolio_id = portfolio.id
            except IntegrityError:
                raise ConflictError(f"Username or email already exists: {username}")

        logger.info(f"Created user {username} with portfolio {user.portfolio_id}")
        return user

    async def delete_user(self, user_id: str) -> None:
        """Remove the user and its portfolio (holdings cascade)."""
        async with self.session_factory() as session:
            async with session.begin():
                user = await session.get(User, user_id)
                if user is None:
                    raise NotFoundError.for_resource("User", user_id)

                portfolio_ids = {user.portfolio_id} if user.portfolio_id else set()
                linked = await session.execute(
                    select(Portfolio.id).where(Portfolio.user_id == user_id)
                )
                portfolio_ids.update(linked.scalars().all())

                for portfolio_id in portfolio_ids:
                    portfolio = await session.get(Portfolio, portfolio_id)
                    if portfolio is not None:
                        await session.delete(portfolio)

                await session.delete(user)

        logger.info(f"Deleted user {user_id} and portfolios {sorted(portfolio_ids)}")

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self.session_factory() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def list_users(self) -> List[User]:
        async with self.session_factory() as session:
            result = await session.execute(select(User).order_by(User.created_at.asc()))
            return list(result.scalars().all())

    async def update_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        settings: Optional[Mapping[str, Any]] = None,
    ) -> User:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    user = await session.get(User, user_id)
                    if user is None:
                        raise NotFoundError.for_resource("User", user_id)

                    if email is not None and email != user.email:
                        taken = await session.execute(
                            select(User.id).where(User.email == email, User.id != user_id)
                        )
                        if taken.first() is not None:
                            raise ConflictError(f"Email {email} is already in use")
                        user.email = email
                    if settings is not None:
                        user.settings = validate_settings(settings)
        except IntegrityError:
            raise ConflictError(f"Email {email} is already in use")
        return user

