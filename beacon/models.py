"""Auth models - key material and configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from beacon.exceptions import ConfigurationError


class Algorithm(str, Enum):
    """JWT signing algorithm family."""

    RSA256 = "rsa256"
    HS256 = "hs256"

    @property
    def jwt_algorithm(self) -> str:
        """Algorithm name as understood by PyJWT."""
        return "RS256" if self is Algorithm.RSA256 else "HS256"


class OperatingMode(str, Enum):
    """Role of the process using the auth module."""

    SERVER = "server"
    RUNNER = "runner"


@dataclass(frozen=True)
class KeyMaterial:
    """The currently trusted key for one algorithm.

    Exactly one of the asymmetric pair or the shared secret is populated.
    A Runner using RSA256 holds only the public half.
    """

    algorithm: Algorithm
    public_key: Optional[RSAPublicKey] = None
    private_key: Optional[RSAPrivateKey] = None
    secret: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.algorithm is Algorithm.RSA256:
            if self.secret is not None:
                raise ValueError("RSA256 key material must not carry a secret")
            if self.public_key is None:
                raise ValueError("RSA256 key material requires a public key")
        elif self.algorithm is Algorithm.HS256:
            if self.public_key is not None or self.private_key is not None:
                raise ValueError("HS256 key material must not carry RSA keys")
            if not self.secret:
                raise ValueError("HS256 key material requires a non-empty secret")
        else:
            raise ValueError(f"Unsupported algorithm: {self.algorithm!r}")

    @classmethod
    def rsa(
        cls,
        public_key: RSAPublicKey,
        private_key: Optional[RSAPrivateKey] = None,
    ) -> "KeyMaterial":
        return cls(Algorithm.RSA256, public_key=public_key, private_key=private_key)

    @classmethod
    def hmac(cls, secret: str | bytes) -> "KeyMaterial":
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        return cls(Algorithm.HS256, secret=secret)

    @property
    def can_sign(self) -> bool:
        """Whether this material holds a signing key."""
        return self.secret is not None or self.private_key is not None

    @property
    def signing_key(self) -> Any:
        if self.algorithm is Algorithm.HS256:
            return self.secret
        return self.private_key

    @property
    def verification_key(self) -> Any:
        if self.algorithm is Algorithm.HS256:
            return self.secret
        return self.public_key

    def public_key_pem(self) -> bytes:
        """Serialize the public half as a PEM SubjectPublicKeyInfo block."""
        if self.public_key is None:
            raise ValueError("Key material has no public key")
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def __repr__(self) -> str:
        # Never render key bytes or secrets.
        return (
            f"KeyMaterial(algorithm={self.algorithm.value}, "
            f"public_key={'set' if self.public_key is not None else None}, "
            f"private_key={'set' if self.private_key is not None else None}, "
            f"secret={'set' if self.secret is not None else None})"
        )


@dataclass
class AuthConfig:
    """Configuration for the auth module.

    Everything except the key material is fixed for the lifetime of the
    module. Keys loaded at construction time live in the ConfigStore.
    """

    algorithm: Algorithm = Algorithm.HS256
    mode: OperatingMode = OperatingMode.SERVER

    # JWT key material supplied directly
    secret: Optional[str] = None  # for HS256
    public_key: Optional[RSAPublicKey] = None  # for RSA256
    private_key: Optional[RSAPrivateKey] = None  # for RSA256

    # User authentication
    user_name: Optional[str] = None
    password: Optional[str] = None

    # For proxy authentication
    proxy_secret: Optional[str] = None

    # Runner public key retrieval
    public_key_url: Optional[str] = None
    public_key_headers: dict[str, str] | None = None
    refresh_interval: float = 300.0
    fetch_timeout: float = 10.0
    fetch_retries: int = 3
    retry_backoff: float = 0.5

    # Allowed clock skew for exp/iat validation
    leeway: int = 0

    # Keep accepting tokens signed with the key replaced by the last refresh
    accept_previous_key: bool = True

    def __post_init__(self) -> None:
        # Accept plain strings (e.g. from env or json) for the enum fields
        self.algorithm = Algorithm(self.algorithm)
        self.mode = OperatingMode(self.mode)

    def validate(self, has_key_source: bool = False) -> None:
        """Check that the configuration is internally consistent.

        Args:
            has_key_source: True when a key source is injected, which makes
                ``public_key_url`` optional for Runner + RSA256.

        Raises:
            ConfigurationError: On the first inconsistency found
        """
        if self.algorithm is Algorithm.HS256 and not self.secret:
            raise ConfigurationError("HS256 requires a secret", field="secret")
        if (
            self.algorithm is Algorithm.RSA256
            and self.mode is OperatingMode.RUNNER
            and not self.public_key_url
            and not has_key_source
        ):
            raise ConfigurationError(
                "Runner mode with RSA256 requires public_key_url",
                field="public_key_url",
            )
        if self.refresh_interval <= 0:
            raise ConfigurationError(
                "refresh_interval must be positive", field="refresh_interval"
            )
        if self.fetch_timeout <= 0:
            raise ConfigurationError("fetch_timeout must be positive", field="fetch_timeout")
        if self.fetch_retries < 1:
            raise ConfigurationError("fetch_retries must be at least 1", field="fetch_retries")
