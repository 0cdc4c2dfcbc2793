"""Shared pytest fixtures for beacon tests."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from beacon.models import KeyMaterial


def _generate_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def private_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_pem(key) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def rsa_key():
    """RSA private key used by the Server in most tests."""
    return _generate_key()


@pytest.fixture(scope="session")
def other_rsa_key():
    """An unrelated RSA private key."""
    return _generate_key()


@pytest.fixture
def key_files(tmp_path, rsa_key):
    """Write the default key pair to disk and return (public_path, private_path)."""
    public_path = tmp_path / "public.pem"
    private_path = tmp_path / "private.pem"
    public_path.write_bytes(public_pem(rsa_key))
    private_path.write_bytes(private_pem(rsa_key))
    return str(public_path), str(private_path)


@pytest.fixture
def runner_material(rsa_key):
    """Public-only key material matching rsa_key."""
    return KeyMaterial.rsa(public_key=rsa_key.public_key())


@pytest.fixture
def other_runner_material(other_rsa_key):
    """Public-only key material matching other_rsa_key."""
    return KeyMaterial.rsa(public_key=other_rsa_key.public_key())


@pytest.fixture
def secret():
    """HS256 secret long enough to avoid PyJWT key length warnings."""
    return "a-very-long-shared-secret-for-hs256-signing-0123456789"
