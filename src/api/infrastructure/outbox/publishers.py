"""Publisher decorators for the outbox relay.

The concrete message bus client lives outside this service's core; these
decorators adapt any EventPublisher to deployment conventions.
"""

from __future__ import annotations

from typing import Any

from shared_kernel.outbox.exceptions import PublishError
from shared_kernel.outbox.ports import EventPublisher


class PrefixedTopicPublisher:
    """Prepends a fixed prefix to every topic before publishing.

    Lets several environments share one cluster (e.g. "staging.user-registered").
    Failures of the inner publisher surface as PublishError for the prefixed
    topic, with the original exception chained as the cause.
    """

    def __init__(self, inner: EventPublisher, topic_prefix: str) -> None:
        """Initialize the decorator.

        Args:
            inner: The publisher that talks to the message bus
            topic_prefix: Prefix added in front of every topic
        """
        self._inner = inner
        self._topic_prefix = topic_prefix

    async def publish(self, topic: str, event: Any) -> None:
        """Publish to the prefixed topic.

        Raises:
            PublishError: If the inner publisher fails
        """
        prefixed = f"{self._topic_prefix}{topic}"
        try:
            await self._inner.publish(prefixed, event)
        except PublishError:
            raise
        except Exception as e:
            raise PublishError(prefixed, f"{type(e).__name__}: {e}") from e
