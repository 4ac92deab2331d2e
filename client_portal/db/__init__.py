"""Database package"""

from client_portal.db.session import AsyncSessionLocal, engine, get_db
from client_portal.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
