"""Beacon exceptions.

All exceptions inherit from BeaconError for easy catching.
"""

from __future__ import annotations


class BeaconError(Exception):
    """Base exception for Beacon errors."""

    def __init__(self, message: str, code: str):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(BeaconError):
    """Raised when the auth configuration is missing or inconsistent."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message=message, code="CONFIGURATION_ERROR")
        self.field = field


# ==================== Key Source Errors ====================


class KeySourceError(BeaconError):
    """Base class for key acquisition errors."""

    def __init__(self, message: str, code: str = "KEY_SOURCE_ERROR"):
        super().__init__(message=message, code=code)


class KeyFileUnreadableError(KeySourceError):
    """Raised when a local key file cannot be read."""

    def __init__(self, path: str, reason: str = ""):
        message = f"Could not read key file '{path}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="KEY_FILE_UNREADABLE")
        self.path = path


class KeyFileMalformedError(KeySourceError):
    """Raised when a local key file does not contain a usable RSA key."""

    def __init__(self, path: str, reason: str = ""):
        message = f"Malformed key file '{path}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="KEY_FILE_MALFORMED")
        self.path = path


class KeyUnreachableError(KeySourceError):
    """Raised when the public key endpoint cannot be reached."""

    def __init__(self, url: str, reason: str = ""):
        message = f"Public key endpoint '{url}' unreachable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="KEY_UNREACHABLE")
        self.url = url


class KeyFetchMalformedError(KeySourceError):
    """Raised when the public key endpoint returns unparseable data."""

    def __init__(self, url: str, reason: str = ""):
        message = f"Malformed public key from '{url}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="KEY_FETCH_MALFORMED")
        self.url = url


# ==================== Lifecycle Errors ====================


class ConstructionError(BeaconError):
    """Raised when the auth module cannot be initialised."""

    def __init__(self, message: str = "Could not initialise the auth module"):
        super().__init__(message=message, code="CONSTRUCTION_FAILED")


class RefreshError(BeaconError):
    """Reported when a periodic key refresh fails. Never raised to callers."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message=message, code="REFRESH_FAILED")
        self.attempts = attempts


class UnsupportedOperationError(BeaconError):
    """Raised when an operation is not available in the current mode."""

    def __init__(self, operation: str, mode: str):
        super().__init__(
            message=f"Operation '{operation}' is not supported in {mode} mode",
            code="UNSUPPORTED_OPERATION",
        )
        self.operation = operation
        self.mode = mode


# ==================== Token Errors ====================


class VerificationError(BeaconError):
    """Base class for token verification errors."""

    def __init__(self, message: str, code: str = "VERIFICATION_FAILED"):
        super().__init__(message=message, code=code)


class InvalidTokenError(VerificationError):
    """Raised when a JWT token is invalid or malformed."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message=message, code="INVALID_TOKEN")


class InvalidSignatureError(VerificationError):
    """Raised when token signature verification fails."""

    def __init__(self, message: str = "Token signature verification failed"):
        super().__init__(message=message, code="INVALID_SIGNATURE")


class TokenExpiredError(VerificationError):
    """Raised when token has expired."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message=message, code="TOKEN_EXPIRED")


class AlgorithmMismatchError(VerificationError):
    """Raised when a token is signed with a different algorithm than configured."""

    def __init__(self, expected: str, got: str | None):
        super().__init__(
            message=f"Token algorithm mismatch: expected {expected}, got {got}",
            code="ALGORITHM_MISMATCH",
        )
        self.expected = expected
        self.got = got
