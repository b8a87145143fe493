"""Shared Kernel module.

Components shared by the bounded contexts of the user service. The
transactional outbox lives here: its ports and value objects are used by
every context that publishes integration events, while the relay and the
store implementation live in the infrastructure layer.
"""
