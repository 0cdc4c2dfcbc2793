"""Load AuthConfig from environment variables."""

from __future__ import annotations

import os
from typing import Callable, Mapping, Optional, TypeVar

from beacon.exceptions import ConfigurationError
from beacon.models import Algorithm, AuthConfig, OperatingMode

T = TypeVar("T")

DEFAULT_PREFIX = "BEACON_"


def _get(
    env: Mapping[str, str],
    name: str,
    convert: Callable[[str], T],
    default: Optional[T] = None,
) -> Optional[T]:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}", field=name)


def load_config(env: Optional[Mapping[str, str]] = None, prefix: str = DEFAULT_PREFIX) -> AuthConfig:
    """Build an AuthConfig from environment variables.

    Variables (with the default ``BEACON_`` prefix):
        BEACON_MODE: ``server`` or ``runner`` (default: server)
        BEACON_JWT_ALGORITHM: ``hs256`` or ``rsa256`` (default: hs256)
        BEACON_JWT_SECRET: Shared secret for hs256
        BEACON_PUBLIC_KEY_URL: Server public-key endpoint for rsa256 Runners
        BEACON_USER / BEACON_PASS: Basic-auth credentials
        BEACON_PROXY_SECRET: Secret expected from the proxy
        BEACON_REFRESH_INTERVAL: Seconds between public key refreshes
        BEACON_FETCH_TIMEOUT: HTTP timeout for key fetches
        BEACON_FETCH_RETRIES: Attempts per refresh tick

    Args:
        env: Mapping to read from (default: ``os.environ``)
        prefix: Variable name prefix

    Raises:
        ConfigurationError: If a variable has an invalid value or the
            resulting configuration is inconsistent
    """
    if env is None:
        env = os.environ

    defaults = AuthConfig()
    config = AuthConfig(
        algorithm=_get(env, f"{prefix}JWT_ALGORITHM", lambda v: Algorithm(v.lower()), defaults.algorithm),
        mode=_get(env, f"{prefix}MODE", lambda v: OperatingMode(v.lower()), defaults.mode),
        secret=_get(env, f"{prefix}JWT_SECRET", str),
        user_name=_get(env, f"{prefix}USER", str),
        password=_get(env, f"{prefix}PASS", str),
        proxy_secret=_get(env, f"{prefix}PROXY_SECRET", str),
        public_key_url=_get(env, f"{prefix}PUBLIC_KEY_URL", str),
        refresh_interval=_get(env, f"{prefix}REFRESH_INTERVAL", float, defaults.refresh_interval),
        fetch_timeout=_get(env, f"{prefix}FETCH_TIMEOUT", float, defaults.fetch_timeout),
        fetch_retries=_get(env, f"{prefix}FETCH_RETRIES", int, defaults.fetch_retries),
    )
    config.validate()
    return config
