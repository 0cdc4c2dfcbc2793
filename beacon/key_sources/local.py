"""RSA key pair loaded from local PEM files (Server role)."""

from __future__ import annotations

from typing import Any

import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from beacon.core.key_source import KeySource
from beacon.exceptions import KeyFileMalformedError, KeyFileUnreadableError
from beacon.models import KeyMaterial

log = structlog.get_logger()


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        log.error("key_file_read_failed", path=path, error=str(e))
        raise KeyFileUnreadableError(path, e.strerror or str(e)) from e


def _parse(path: str, data: bytes, loader: Any, expected: type) -> Any:
    try:
        key = loader(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        log.error("key_file_parse_failed", path=path, error=str(e))
        raise KeyFileMalformedError(path, "not valid PEM-encoded key material") from e
    if not isinstance(key, expected):
        raise KeyFileMalformedError(path, f"expected an RSA key, got {type(key).__name__}")
    return key


class LocalFileSource(KeySource):
    """Reads an RSA private/public key pair from disk.

    Both files are re-read on every fetch so an operator can rotate the pair
    in place. The two halves must belong to the same key.

    Args:
        private_key_path: Path to a PEM-encoded (unencrypted) RSA private key
        public_key_path: Path to a PEM-encoded RSA public key
    """

    def __init__(self, private_key_path: str, public_key_path: str):
        self.private_key_path = private_key_path
        self.public_key_path = public_key_path

    def fetch(self) -> KeyMaterial:
        private_bytes = _read_file(self.private_key_path)
        public_bytes = _read_file(self.public_key_path)

        private_key: RSAPrivateKey = _parse(
            self.private_key_path,
            private_bytes,
            lambda data: serialization.load_pem_private_key(data, password=None),
            RSAPrivateKey,
        )
        public_key: RSAPublicKey = _parse(
            self.public_key_path,
            public_bytes,
            serialization.load_pem_public_key,
            RSAPublicKey,
        )

        if private_key.public_key().public_numbers() != public_key.public_numbers():
            raise KeyFileMalformedError(
                self.public_key_path, "public key does not match the private key"
            )

        log.info(
            "key_pair_loaded",
            private_key_path=self.private_key_path,
            public_key_path=self.public_key_path,
            key_size=private_key.key_size,
        )
        return KeyMaterial.rsa(public_key=public_key, private_key=private_key)

    def describe(self) -> str:
        return f"file:{self.private_key_path},{self.public_key_path}"
