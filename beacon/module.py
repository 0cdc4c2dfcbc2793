"""Auth module façade shared by the Server and Runner roles.

The module owns the ConfigStore, chooses a key source once at construction,
and exposes token issuance (Server) and verification (both roles) against
whatever key material the store currently holds.
"""

from __future__ import annotations

import hmac
import time
from typing import Any, Callable, Dict, Optional

import jwt
import structlog

from beacon.core.key_source import KeySource
from beacon.core.store import ConfigStore
from beacon.exceptions import (
    AlgorithmMismatchError,
    ConfigurationError,
    ConstructionError,
    InvalidSignatureError,
    InvalidTokenError,
    KeySourceError,
    RefreshError,
    TokenExpiredError,
    UnsupportedOperationError,
)
from beacon.key_sources.local import LocalFileSource
from beacon.key_sources.remote import RemoteFetchSource
from beacon.models import Algorithm, AuthConfig, KeyMaterial, OperatingMode
from beacon.refresher import Refresher

log = structlog.get_logger()


def select_key_source(
    config: AuthConfig,
    public_key_path: Optional[str] = None,
    private_key_path: Optional[str] = None,
) -> Optional[KeySource]:
    """Pick the key source for a (mode, algorithm) pair.

    Returns:
        LocalFileSource for Server + RSA256 with key paths, RemoteFetchSource
        for Runner + RSA256, and None when no source is needed (HS256, or a
        Server given key objects directly on the config).

    Raises:
        ConfigurationError: If Server + RSA256 has neither paths nor keys
    """
    if config.algorithm is Algorithm.HS256:
        return None

    if config.mode is OperatingMode.RUNNER:
        if not config.public_key_url:
            raise ConfigurationError(
                "Runner mode with RSA256 requires public_key_url",
                field="public_key_url",
            )
        return RemoteFetchSource(
            config.public_key_url,
            timeout=config.fetch_timeout,
            headers=config.public_key_headers,
        )

    if public_key_path and private_key_path:
        return LocalFileSource(private_key_path, public_key_path)
    if config.private_key is not None:
        return None
    raise ConfigurationError(
        "Server mode with RSA256 requires key file paths or a private key",
        field="private_key",
    )


class AuthModule:
    """Token issuance and verification for one process.

    Construction performs a single synchronous key acquisition; if it fails
    a ConstructionError is raised and no module exists. A Runner using
    RSA256 additionally starts a background Refresher that keeps the public
    key current until ``close()`` is called.

    Args:
        config: Auth configuration
        public_key_path: Server RSA256 public key PEM file
        private_key_path: Server RSA256 private key PEM file
        key_source: Overrides the selected source for RSA256. Never used
            for HS256.
        on_refresh: Forwarded to the Refresher
        on_refresh_failure: Forwarded to the Refresher

    Examples:
        Server issuing tokens:
            >>> module = AuthModule(
            ...     AuthConfig(algorithm="rsa256", mode="server"),
            ...     public_key_path="/etc/beacon/public.pem",
            ...     private_key_path="/etc/beacon/private.pem",
            ... )
            >>> token = module.issue_token({"sub": "job-42"}, expires_in=3600)

        Runner verifying them:
            >>> runner = AuthModule(AuthConfig(
            ...     algorithm="rsa256",
            ...     mode="runner",
            ...     public_key_url="http://server:4122/v1/auth/public-key",
            ... ))
            >>> claims = runner.verify_token(token)
    """

    def __init__(
        self,
        config: AuthConfig,
        public_key_path: Optional[str] = None,
        private_key_path: Optional[str] = None,
        key_source: Optional[KeySource] = None,
        on_refresh: Optional[Callable[[KeyMaterial], None]] = None,
        on_refresh_failure: Optional[Callable[[RefreshError], None]] = None,
    ):
        try:
            config.validate(has_key_source=key_source is not None)
            if config.algorithm is Algorithm.HS256:
                source = None
            elif key_source is not None:
                source = key_source
            else:
                source = select_key_source(config, public_key_path, private_key_path)
        except ConfigurationError as e:
            log.error("auth_module_init_failed", code=e.code, error=e.message)
            raise ConstructionError(f"Could not initialise the auth module: {e.message}") from e

        self._config = config
        self._source = source
        self._store = ConfigStore(config, self._acquire())
        self._refresher: Optional[Refresher] = None

        if config.mode is OperatingMode.RUNNER and config.algorithm is Algorithm.RSA256:
            self._refresher = Refresher(
                source,
                self._store,
                interval=config.refresh_interval,
                retries=config.fetch_retries,
                backoff=config.retry_backoff,
                on_refresh=on_refresh,
                on_failure=on_refresh_failure,
            )
            self._refresher.start()

        log.info(
            "auth_module_initialised",
            mode=config.mode.value,
            algorithm=config.algorithm.value,
            source=source.describe() if source is not None else None,
        )

    def _acquire(self) -> KeyMaterial:
        config = self._config
        if config.algorithm is Algorithm.HS256:
            return KeyMaterial.hmac(config.secret)

        if self._source is None:
            private_key = config.private_key
            public_key = config.public_key or private_key.public_key()
            if private_key.public_key().public_numbers() != public_key.public_numbers():
                log.error("auth_module_init_failed", error="key pair mismatch")
                raise ConstructionError(
                    "Could not initialise the auth module: "
                    "public key does not match the private key"
                )
            return KeyMaterial.rsa(public_key=public_key, private_key=private_key)

        try:
            material = self._source.fetch()
        except KeySourceError as e:
            log.error(
                "auth_module_init_failed",
                source=self._source.describe(),
                code=e.code,
                error=e.message,
            )
            raise ConstructionError(f"Could not initialise the auth module: {e.message}") from e

        if material.algorithm is not config.algorithm:
            raise ConstructionError(
                f"Key source returned {material.algorithm.value} material, "
                f"expected {config.algorithm.value}"
            )
        if config.mode is OperatingMode.SERVER and not material.can_sign:
            log.error(
                "auth_module_init_failed",
                source=self._source.describe(),
                error="no private key",
            )
            raise ConstructionError(
                "Could not initialise the auth module: server key material has no private key"
            )
        return material

    # ==================== Properties ====================

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def mode(self) -> OperatingMode:
        return self._config.mode

    @property
    def algorithm(self) -> Algorithm:
        return self._config.algorithm

    @property
    def store(self) -> ConfigStore:
        return self._store

    @property
    def refresher(self) -> Optional[Refresher]:
        """The background refresher, only present for Runner + RSA256."""
        return self._refresher

    # ==================== Tokens ====================

    def issue_token(self, claims: Dict[str, Any], expires_in: Optional[int] = None) -> str:
        """Sign ``claims`` with the current key.

        Args:
            claims: Token payload
            expires_in: If given, sets ``iat`` (unless present) and ``exp``
                this many seconds from now

        Raises:
            UnsupportedOperationError: When called on a Runner
        """
        if self._config.mode is not OperatingMode.SERVER:
            raise UnsupportedOperationError("issue_token", self._config.mode.value)

        material = self._store.read()
        payload = dict(claims)
        if expires_in is not None:
            now = int(time.time())
            payload.setdefault("iat", now)
            payload["exp"] = now + int(expires_in)

        return jwt.encode(
            payload,
            material.signing_key,
            algorithm=material.algorithm.jwt_algorithm,
        )

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify ``token`` against the current key and return its claims.

        A token whose signature fails against the current key is retried
        against the key replaced by the last refresh, so tokens issued before
        a rotation stay valid until they expire. Set
        ``AuthConfig.accept_previous_key`` to False to disable this.

        Raises:
            AlgorithmMismatchError: If the token header names another algorithm
            TokenExpiredError: If ``exp`` has passed
            InvalidSignatureError: If the signature does not match the key
            InvalidTokenError: If the token is otherwise malformed or invalid
        """
        material, previous = self._store.snapshot()
        expected = material.algorithm.jwt_algorithm
        candidates = [material]
        if previous is not None and self._config.accept_previous_key:
            candidates.append(previous)

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            log.debug("token_verification_failed", reason="malformed", error=str(e))
            raise InvalidTokenError(f"Invalid token: {e}")

        got = header.get("alg")
        if got != expected:
            log.debug("token_verification_failed", reason="algorithm_mismatch", got=got)
            raise AlgorithmMismatchError(expected, got)

        for index, candidate in enumerate(candidates):
            try:
                claims = jwt.decode(
                    token,
                    key=candidate.verification_key,
                    algorithms=[expected],
                    leeway=self._config.leeway,
                    options={"verify_aud": False},
                )
            except jwt.ExpiredSignatureError:
                log.debug("token_verification_failed", reason="expired")
                raise TokenExpiredError()
            except jwt.InvalidSignatureError:
                if index + 1 < len(candidates):
                    continue
                log.debug("token_verification_failed", reason="signature")
                raise InvalidSignatureError()
            except jwt.InvalidTokenError as e:
                log.debug("token_verification_failed", reason="invalid", error=str(e))
                raise InvalidTokenError(f"Invalid token: {e}")

            if index:
                log.debug("token_verified_with_previous_key")
            return claims

    def public_key_pem(self) -> bytes:
        """PEM of the current public key, as served to Runners.

        Raises:
            UnsupportedOperationError: When configured for HS256
        """
        if self._config.algorithm is not Algorithm.RSA256:
            raise UnsupportedOperationError("public_key_pem", self._config.algorithm.value)
        return self._store.read().public_key_pem()

    # ==================== Credentials ====================

    def check_credentials(self, user_name: str, password: str) -> bool:
        """Check basic-auth credentials against the configured user."""
        if not self._config.user_name or self._config.password is None:
            return False
        if not isinstance(user_name, str) or not isinstance(password, str):
            return False
        user_ok = hmac.compare_digest(
            user_name.encode("utf-8"), self._config.user_name.encode("utf-8")
        )
        pass_ok = hmac.compare_digest(
            password.encode("utf-8"), self._config.password.encode("utf-8")
        )
        return user_ok and pass_ok

    def check_proxy_secret(self, secret: str) -> bool:
        """Check a secret presented by a proxy against the configured one."""
        if not self._config.proxy_secret or not isinstance(secret, str):
            return False
        return hmac.compare_digest(
            secret.encode("utf-8"), self._config.proxy_secret.encode("utf-8")
        )

    # ==================== Lifecycle ====================

    def close(self) -> None:
        """Stop background refresh. Safe to call more than once.

        Waits at most one fetch timeout plus a second for an in-flight fetch.
        """
        if self._refresher is not None:
            self._refresher.stop(timeout=self._config.fetch_timeout + 1.0)

    def __enter__(self) -> "AuthModule":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def create_module(
    config: AuthConfig,
    public_key_path: Optional[str] = None,
    private_key_path: Optional[str] = None,
    **kwargs: Any,
) -> AuthModule:
    """Create an auth module for the configured role.

    This is the main entry point. See AuthModule for arguments.

    Raises:
        ConstructionError: If the initial key acquisition fails
    """
    return AuthModule(config, public_key_path, private_key_path, **kwargs)
