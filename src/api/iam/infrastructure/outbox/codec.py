"""IAM-specific event codec for outbox persistence.

This module converts IAM integration events to JSON payloads for storage
in the outbox table and reconstructs them when the relay publishes them.
Every event class is mapped to a stable, versioned event tag; the relay
never looks classes up by name.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any

from iam.domain.events import (
    IntegrationEvent,
    RoleCreated,
    UserEmailChanged,
    UserRegistered,
)
from shared_kernel.outbox.value_objects import OutboxRecord

USER_REGISTERED = "iam.user_registered.v1"
USER_EMAIL_CHANGED = "iam.user_email_changed.v1"
ROLE_CREATED = "iam.role_created.v1"

_EVENT_TAGS: dict[type, str] = {
    UserRegistered: USER_REGISTERED,
    UserEmailChanged: USER_EMAIL_CHANGED,
    RoleCreated: ROLE_CREATED,
}

_EVENT_CLASSES: dict[str, type] = {tag: cls for cls, tag in _EVENT_TAGS.items()}

_DEFAULT_TOPICS: dict[str, str] = {
    USER_REGISTERED: "user-registered",
    USER_EMAIL_CHANGED: "user-email-changed",
    ROLE_CREATED: "role-created",
}

_DATETIME_FIELDS = frozenset({"registered_at", "occurred_at"})


class IAMEventCodec:
    """Encodes and decodes IAM integration events.

    Payloads are flat JSON objects. Datetimes are stored as ISO 8601
    strings. Decoding is strict: missing or unexpected keys and values of
    the wrong type are rejected, so a malformed payload never reaches the
    message bus.
    """

    def supported_event_tags(self) -> frozenset[str]:
        """Return the event tags this codec handles."""
        return frozenset(_EVENT_CLASSES)

    def event_tag_for(self, event: IntegrationEvent) -> str:
        """Return the stable tag of an event.

        Raises:
            ValueError: If the event type is not supported
        """
        event_tag = _EVENT_TAGS.get(type(event))
        if event_tag is None:
            raise ValueError(f"Unsupported event type: {type(event).__name__}")
        return event_tag

    def default_topic(self, event_tag: str) -> str:
        """Return the topic an event tag is published to by default."""
        return _DEFAULT_TOPICS[event_tag]

    def encode(self, event: IntegrationEvent) -> tuple[str, str]:
        """Convert an event to its (event_tag, payload) pair.

        Args:
            event: The integration event to encode

        Returns:
            The event tag and the JSON payload

        Raises:
            ValueError: If the event type is not supported
        """
        event_tag = self.event_tag_for(event)

        data = asdict(event)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()

        return event_tag, json.dumps(data, sort_keys=True)

    def decode(self, event_tag: str, payload: str) -> IntegrationEvent:
        """Reconstruct an event from its tag and payload.

        Args:
            event_tag: The stable event tag
            payload: The JSON payload

        Returns:
            The reconstructed integration event

        Raises:
            ValueError: If the tag is unknown or the payload does not match
                the event's schema
        """
        event_class = _EVENT_CLASSES.get(event_tag)
        if event_class is None:
            raise ValueError(f"Unsupported event tag: {event_tag}")

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Payload is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Payload must be a JSON object, got {type(data).__name__}")

        return event_class(**self._convert_from_json(event_class, data))

    def to_record(
        self, event: IntegrationEvent, topic: str | None = None
    ) -> OutboxRecord:
        """Build a pending outbox record for an event.

        Args:
            event: The integration event to enqueue
            topic: Destination topic (defaults to the tag's default topic)

        Returns:
            A pending OutboxRecord ready for OutboxStore.append()
        """
        event_tag, payload = self.encode(event)
        return OutboxRecord.create(
            event_tag=event_tag,
            topic=topic or self.default_topic(event_tag),
            payload=payload,
        )

    def _convert_from_json(
        self, event_class: type, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Validate payload keys and convert values back to field types."""
        expected = {field.name for field in fields(event_class)}

        missing = expected - data.keys()
        if missing:
            raise ValueError(f"Payload is missing fields: {sorted(missing)}")

        unexpected = data.keys() - expected
        if unexpected:
            raise ValueError(f"Payload has unexpected fields: {sorted(unexpected)}")

        converted: dict[str, Any] = {}
        for key, value in data.items():
            if not isinstance(value, str):
                raise ValueError(
                    f"Field '{key}' must be a string, got {type(value).__name__}"
                )
            converted[key] = (
                datetime.fromisoformat(value) if key in _DATETIME_FIELDS else value
            )

        return converted
