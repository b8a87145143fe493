"""Explicit event tag to decoder mapping.

The relay never resolves event classes by name at runtime. Each bounded
context registers a decode function for every tag it owns, and the
registry routes payloads to them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from shared_kernel.outbox.exceptions import (
    MalformedPayloadError,
    UnknownEventTagError,
)
from shared_kernel.outbox.ports import EventCodec, EventDecoder

if TYPE_CHECKING:
    from shared_kernel.outbox.observability import DecoderRegistryProbe


class EventDecoderRegistry:
    """Routes payloads to the decode function registered for their tag."""

    def __init__(self, probe: "DecoderRegistryProbe | None" = None) -> None:
        """Initialize an empty registry.

        Args:
            probe: Optional observability probe for logging registrations
        """
        self._decoders: dict[str, EventDecoder] = {}
        self._probe = probe

    def register(self, event_tag: str, decoder: EventDecoder) -> None:
        """Register the decode function for an event tag.

        Args:
            event_tag: Stable name of the event schema
            decoder: Callable turning a payload into an event

        Raises:
            ValueError: If the tag is empty or already registered
        """
        if not event_tag:
            raise ValueError("event_tag must not be empty")
        if event_tag in self._decoders:
            raise ValueError(f"Decoder already registered for event tag: {event_tag}")

        self._decoders[event_tag] = decoder

        if self._probe is not None:
            self._probe.decoder_registered(event_tag)

    def register_codec(self, codec: EventCodec) -> None:
        """Register every tag a bounded-context codec supports."""
        for event_tag in sorted(codec.supported_event_tags()):
            self.register(
                event_tag,
                lambda payload, tag=event_tag: codec.decode(tag, payload),
            )

    def registered_tags(self) -> frozenset[str]:
        return frozenset(self._decoders)

    def __contains__(self, event_tag: object) -> bool:
        return event_tag in self._decoders

    def decode(self, event_tag: str, payload: str) -> Any:
        """Decode a payload with the decoder registered for its tag.

        Args:
            event_tag: Stable name of the event schema
            payload: Serialized event body

        Returns:
            The decoded event

        Raises:
            UnknownEventTagError: If no decoder is registered for the tag
            MalformedPayloadError: If the decoder rejects the payload
        """
        decoder = self._decoders.get(event_tag)
        if decoder is None:
            raise UnknownEventTagError(event_tag, sorted(self._decoders))

        try:
            return decoder(payload)
        except MalformedPayloadError:
            raise
        except Exception as e:
            raise MalformedPayloadError(event_tag, f"{type(e).__name__}: {e}") from e
