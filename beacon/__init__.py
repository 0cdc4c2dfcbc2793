"""Beacon - token authentication shared between job Servers and Runners.

Beacon issues JWTs on the Server and verifies them on both roles, managing
the key material behind them.

Features:
- RS256 and HS256 signing
- Server key pair loaded from PEM files
- Runner public key fetched from the Server and refreshed in the background
- Last-known-good key kept across transient refresh failures
- Reader/writer locked key store safe under concurrent verification
"""

from beacon.config import load_config
from beacon.core import ConfigStore, KeySource, ReadWriteLock
from beacon.exceptions import (
    AlgorithmMismatchError,
    BeaconError,
    ConfigurationError,
    ConstructionError,
    InvalidSignatureError,
    InvalidTokenError,
    KeyFetchMalformedError,
    KeyFileMalformedError,
    KeyFileUnreadableError,
    KeySourceError,
    KeyUnreachableError,
    RefreshError,
    TokenExpiredError,
    UnsupportedOperationError,
    VerificationError,
)
from beacon.key_sources import LocalFileSource, MockKeySource, RemoteFetchSource
from beacon.models import Algorithm, AuthConfig, KeyMaterial, OperatingMode
from beacon.module import AuthModule, create_module, select_key_source
from beacon.refresher import Refresher

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "AuthModule",
    "create_module",
    "load_config",
    "select_key_source",
    # Core
    "ConfigStore",
    "KeySource",
    "ReadWriteLock",
    "Refresher",
    # Models
    "Algorithm",
    "AuthConfig",
    "KeyMaterial",
    "OperatingMode",
    # Key sources
    "LocalFileSource",
    "MockKeySource",
    "RemoteFetchSource",
    # Exceptions - Base
    "BeaconError",
    "ConfigurationError",
    # Exceptions - Key sources
    "KeySourceError",
    "KeyFileUnreadableError",
    "KeyFileMalformedError",
    "KeyUnreachableError",
    "KeyFetchMalformedError",
    # Exceptions - Lifecycle
    "ConstructionError",
    "RefreshError",
    "UnsupportedOperationError",
    # Exceptions - Token
    "VerificationError",
    "InvalidTokenError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "AlgorithmMismatchError",
]
