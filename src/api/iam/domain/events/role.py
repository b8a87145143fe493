"""Role integration events for IAM context."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RoleCreated:
    """Event raised when a new role is created.

    Attributes:
        role_id: The identifier of the created role
        name: The role name
        occurred_at: When the event occurred (UTC)
    """

    role_id: str
    name: str
    occurred_at: datetime
