"""
Declarative base and shared columns for the portal models.

WHY: Every lifecycle table (inquiries, proposals, payments, projects,
comments) carries the same integer key and UTC timestamps. The comment
poller's `since` watermark and the payment reminder's age check both
read these timestamps, so they must be set the same way everywhere.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base; Alembic reads Base.metadata."""


class TimestampMixin:
    """
    created_at / updated_at as naive UTC datetimes.

    updated_at is bumped on every ORM update, including the guarded
    UPDATE statements issued by BaseDAO.update_where.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """Auto-incrementing integer primary key."""

    id = Column(Integer, primary_key=True, index=True)
