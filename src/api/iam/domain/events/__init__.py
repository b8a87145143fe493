"""Integration events for IAM bounded context.

Integration events capture facts about things that have happened in the
identity domain that other services need to know about. They are immutable
value objects appended to the outbox in the same transaction as the state
change that produced them.
"""

from iam.domain.events.role import RoleCreated
from iam.domain.events.user import UserEmailChanged, UserRegistered

# Type alias for all integration events in the IAM context
IntegrationEvent = UserRegistered | UserEmailChanged | RoleCreated

__all__ = [
    "IntegrationEvent",
    "RoleCreated",
    "UserEmailChanged",
    "UserRegistered",
]
