"""Key source implementations for acquiring verification keys."""

from beacon.key_sources.local import LocalFileSource
from beacon.key_sources.mock import MockKeySource
from beacon.key_sources.remote import RemoteFetchSource

__all__ = [
    "LocalFileSource",
    "MockKeySource",
    "RemoteFetchSource",
]
