"""Persistent registry of detached processes and their lifecycle.

A record is written for every command started through ``delegate``; kill,
restart and reset resolve their targets against those records and then
signal the OS process. Records are never deleted one by one: they only flip
from live to dead, and the whole store is dropped by reset.
"""

from delegate.registry.models import (
    AmbiguousRecordError,
    DelegateError,
    DelegateRecord,
    RecordNotFoundError,
    SignalDeliveryError,
    SpawnError,
    StorageError,
)

__all__ = [
    "AmbiguousRecordError",
    "DelegateError",
    "DelegateRecord",
    "RecordNotFoundError",
    "SignalDeliveryError",
    "SpawnError",
    "StorageError",
]
