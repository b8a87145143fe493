"""Domain probes for infrastructure observability.

Domain probes provide a high-level instrumentation API oriented around
domain semantics, keeping infrastructure code clean and testable.
"""

from __future__ import annotations

from typing import Protocol

import structlog


class DatabaseProbe(Protocol):
    """Domain probe for database engine lifecycle."""

    def engine_created(self, connection_string: str, pool_size: int) -> None:
        """Record that the shared engine was created."""
        ...

    def engine_disposed(self) -> None:
        """Record that the shared engine was disposed."""
        ...


class DefaultDatabaseProbe:
    """Default implementation of DatabaseProbe using structlog."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self._logger = logger or structlog.get_logger()

    def engine_created(self, connection_string: str, pool_size: int) -> None:
        """Record that the shared engine was created."""
        self._logger.info(
            "database_engine_created",
            connection=connection_string,
            pool_size=pool_size,
        )

    def engine_disposed(self) -> None:
        """Record that the shared engine was disposed."""
        self._logger.info("database_engine_disposed")
