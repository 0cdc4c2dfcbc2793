"""RSA public key fetched from the Server's public-key endpoint (Runner role)."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import requests
import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from beacon.core.key_source import KeySource
from beacon.exceptions import KeyFetchMalformedError, KeyUnreachableError
from beacon.models import KeyMaterial

log = structlog.get_logger()


class RemoteFetchSource(KeySource):
    """Retrieves the Server's current RSA public key over HTTP.

    The endpoint may answer with any of:
    - a PEM-encoded public key (``text/plain`` or ``application/x-pem-file``)
    - JSON ``{"public_key": "<pem>"}``
    - a single RSA JWK ``{"kty": "RSA", "n": ..., "e": ...}``

    Only the public half is ever kept, even if a JWK carries private members.

    Args:
        url: Public-key endpoint of the Server
        timeout: HTTP request timeout in seconds (default: 10.0)
        headers: Extra request headers, e.g. a proxy secret
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = dict(headers or {})

    def fetch(self) -> KeyMaterial:
        try:
            resp = requests.get(self.url, headers=self.headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.warning("public_key_fetch_failed", url=self.url, error=str(e))
            raise KeyUnreachableError(self.url, str(e)) from e

        public_key = self._parse(resp.content)
        log.debug("public_key_fetched", url=self.url, key_size=public_key.key_size)
        return KeyMaterial.rsa(public_key=public_key)

    def describe(self) -> str:
        return self.url

    def _parse(self, body: bytes) -> RSAPublicKey:
        try:
            if body.lstrip().startswith(b"{"):
                key = self._parse_json(json.loads(body))
            else:
                key = serialization.load_pem_public_key(body.strip())
        except KeyFetchMalformedError:
            raise
        except (ValueError, TypeError, UnsupportedAlgorithm, InvalidKeyError) as e:
            log.warning("public_key_parse_failed", url=self.url, error=str(e))
            raise KeyFetchMalformedError(self.url, str(e)) from e

        if isinstance(key, RSAPrivateKey):
            key = key.public_key()
        if not isinstance(key, RSAPublicKey):
            raise KeyFetchMalformedError(
                self.url, f"expected an RSA public key, got {type(key).__name__}"
            )
        return key

    def _parse_json(self, data: Any) -> Any:
        if not isinstance(data, dict):
            raise KeyFetchMalformedError(self.url, "expected a JSON object")
        if "kty" in data:
            return RSAAlgorithm.from_jwk(data)
        pem = data.get("public_key")
        if not isinstance(pem, str) or not pem:
            raise KeyFetchMalformedError(self.url, "response missing public_key")
        return serialization.load_pem_public_key(pem.encode("utf-8"))
