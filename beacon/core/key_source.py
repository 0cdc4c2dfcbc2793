"""Abstract key source interface.

This module defines the interface for acquiring verification key material.
Implementations decide where keys come from - local PEM files on the Server,
a remote public-key endpoint on the Runner, or memory for tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from beacon.models import KeyMaterial


class KeySource(ABC):
    """Abstract interface for producing key material.

    A key source is selected once when the auth module is constructed and
    is called synchronously at startup and, for refreshable sources, from
    the background refresher. It must never be called on the request path.

    Implementations:
        - LocalFileSource: RSA key pair read from disk (Server)
        - RemoteFetchSource: RSA public key fetched over HTTP (Runner)
        - MockKeySource: Scripted in-memory results for testing
    """

    @abstractmethod
    def fetch(self) -> KeyMaterial:
        """Acquire the current key material.

        Returns:
            A complete, validated KeyMaterial

        Raises:
            KeySourceError: If the key cannot be read, reached or parsed
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable location of the key, used in logs."""
