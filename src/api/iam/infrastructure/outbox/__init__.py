"""IAM-specific outbox infrastructure.

Contains the codec for IAM integration events. It is registered with the
relay's decoder registry at application startup.
"""

from iam.infrastructure.outbox.codec import IAMEventCodec

__all__ = ["IAMEventCodec"]
