"""Tests for environment-based configuration loading."""

import pytest

from beacon.config import load_config
from beacon.exceptions import ConfigurationError
from beacon.models import Algorithm, OperatingMode


def test_load_config_hs256_server():
    """Test loading a minimal HS256 Server configuration."""
    config = load_config(
        {
            "BEACON_JWT_SECRET": "s3cret",
            "BEACON_USER": "admin",
            "BEACON_PASS": "hunter2",
            "BEACON_PROXY_SECRET": "proxy",
        }
    )
    assert config.algorithm is Algorithm.HS256
    assert config.mode is OperatingMode.SERVER
    assert config.secret == "s3cret"
    assert config.user_name == "admin"
    assert config.password == "hunter2"
    assert config.proxy_secret == "proxy"


def test_load_config_rsa_runner():
    """Test loading an RSA256 Runner configuration with tuning values."""
    config = load_config(
        {
            "BEACON_MODE": "RUNNER",
            "BEACON_JWT_ALGORITHM": "rsa256",
            "BEACON_PUBLIC_KEY_URL": "http://server:4122/v1/auth/public-key",
            "BEACON_REFRESH_INTERVAL": "30",
            "BEACON_FETCH_TIMEOUT": "2.5",
            "BEACON_FETCH_RETRIES": "5",
        }
    )
    assert config.mode is OperatingMode.RUNNER
    assert config.algorithm is Algorithm.RSA256
    assert config.public_key_url == "http://server:4122/v1/auth/public-key"
    assert config.refresh_interval == 30.0
    assert config.fetch_timeout == 2.5
    assert config.fetch_retries == 5


def test_load_config_custom_prefix():
    """Test a custom variable prefix."""
    config = load_config({"AUTH_JWT_SECRET": "s3cret"}, prefix="AUTH_")
    assert config.secret == "s3cret"


def test_load_config_reads_os_environ(monkeypatch):
    """Test os.environ is used by default."""
    monkeypatch.setenv("BEACON_JWT_SECRET", "from-env")
    assert load_config().secret == "from-env"


def test_load_config_invalid_mode():
    """Test an unknown mode names the offending variable."""
    with pytest.raises(ConfigurationError) as exc:
        load_config({"BEACON_MODE": "worker", "BEACON_JWT_SECRET": "s"})
    assert exc.value.field == "BEACON_MODE"


def test_load_config_invalid_number():
    """Test non-numeric tuning values are rejected."""
    with pytest.raises(ConfigurationError) as exc:
        load_config({"BEACON_JWT_SECRET": "s", "BEACON_REFRESH_INTERVAL": "soon"})
    assert exc.value.field == "BEACON_REFRESH_INTERVAL"


def test_load_config_inconsistent():
    """Test consistency validation runs after loading."""
    with pytest.raises(ConfigurationError):
        load_config({})
    with pytest.raises(ConfigurationError):
        load_config({"BEACON_MODE": "runner", "BEACON_JWT_ALGORITHM": "rsa256"})
