"""Database infrastructure - shared async SQLAlchemy primitives."""

from infrastructure.database.dependencies import (
    close_database_connections,
    get_session_factory,
    get_write_engine,
)
from infrastructure.database.models import Base

__all__ = [
    "Base",
    "close_database_connections",
    "get_session_factory",
    "get_write_engine",
]
