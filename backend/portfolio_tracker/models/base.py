import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_mixin


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@declarative_mixin
class IdMixin:
    id = Column(String(32), primary_key=True, default=new_id)


@declarative_mixin
class CreatedAtMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
