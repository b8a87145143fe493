"""SQLAlchemy declarative base.

All tables of the service, including the outbox, share one metadata so
that business writes and outbox appends can run in one transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models.

    Datetimes are always stored timezone-aware, identifiers as native UUIDs
    on PostgreSQL.
    """

    type_annotation_map: dict[type, Any] = {
        datetime: DateTime(timezone=True),
        UUID: Uuid,
    }
