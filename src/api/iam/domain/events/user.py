"""User integration events for IAM context.

Integration events announce user lifecycle changes to other services
through the outbox relay.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class UserRegistered:
    """Event raised when a new user account is registered.

    Attributes:
        user_id: The identifier of the new user
        first_name: Given name
        last_name: Family name
        email: Email address the account was registered with
        registered_at: When the registration happened (UTC)
    """

    user_id: str
    first_name: str
    last_name: str
    email: str
    registered_at: datetime


@dataclass(frozen=True)
class UserEmailChanged:
    """Event raised when a user's email address is changed.

    Attributes:
        user_id: The identifier of the user
        new_email: The new email address
        occurred_at: When the event occurred (UTC)
    """

    user_id: str
    new_email: str
    occurred_at: datetime
