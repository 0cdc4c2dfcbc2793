"""Core abstractions for Beacon key management."""

from beacon.core.key_source import KeySource
from beacon.core.store import ConfigStore, ReadWriteLock

__all__ = [
    "ConfigStore",
    "KeySource",
    "ReadWriteLock",
]
