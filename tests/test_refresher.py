"""Tests for the background key refresher."""

import threading
import time

import pytest

from beacon.core.key_source import KeySource
from beacon.core.store import ConfigStore
from beacon.exceptions import KeyFetchMalformedError, KeyUnreachableError, RefreshError
from beacon.key_sources import MockKeySource
from beacon.models import AuthConfig
from beacon.refresher import Refresher, compute_backoff


@pytest.fixture
def store(runner_material):
    config = AuthConfig(algorithm="rsa256", mode="runner", public_key_url="http://server/key")
    return ConfigStore(config, runner_material)


def _wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


# ==================== Construction Tests ====================


def test_refresher_rejects_bad_arguments(store, runner_material):
    """Test interval and retries must be positive."""
    source = MockKeySource(runner_material)
    with pytest.raises(ValueError):
        Refresher(source, store, interval=0)
    with pytest.raises(ValueError):
        Refresher(source, store, interval=1, retries=0)


def test_compute_backoff_grows():
    """Test backoff grows exponentially within its jitter bounds."""
    assert 1.0 <= compute_backoff(0, 1.0) <= 1.25
    assert 4.0 <= compute_backoff(2, 1.0) <= 5.0
    assert compute_backoff(3, 0.0) == 0.0


# ==================== Single Tick Tests ====================


def test_refresh_once_success_replaces_key(store, other_runner_material):
    """Test a successful tick swaps the new key into the store."""
    seen = []
    refresher = Refresher(
        MockKeySource(other_runner_material), store, interval=60, on_refresh=seen.append
    )

    assert refresher.refresh_once() is True
    assert store.read() is other_runner_material
    assert store.version == 2
    assert seen == [other_runner_material]
    assert refresher.consecutive_failures == 0
    assert refresher.last_success is not None


def test_refresh_once_failure_keeps_previous_key(store, runner_material):
    """Test a failed tick leaves the last-known-good key in place."""
    failures = []
    source = MockKeySource(KeyUnreachableError("http://server/key", "timeout"))
    refresher = Refresher(
        source, store, interval=60, retries=3, backoff=0, on_failure=failures.append
    )

    assert refresher.refresh_once() is False
    assert store.read() is runner_material
    assert store.version == 1
    assert source.calls == 3
    assert refresher.consecutive_failures == 1
    assert len(failures) == 1
    assert isinstance(failures[0], RefreshError)
    assert failures[0].attempts == 3
    assert isinstance(failures[0].__cause__, KeyUnreachableError)
    assert refresher.last_error is failures[0]


def test_refresh_once_retries_within_tick(store, other_runner_material):
    """Test a transient error is retried before the tick fails."""
    source = MockKeySource(
        [KeyFetchMalformedError("http://server/key"), other_runner_material]
    )
    refresher = Refresher(source, store, interval=60, retries=3, backoff=0)

    assert refresher.refresh_once() is True
    assert source.calls == 2
    assert store.read() is other_runner_material


def test_failure_then_success_across_ticks(store, runner_material, other_runner_material):
    """Test tick N failing keeps the old key and tick N+1 installs the new one."""
    source = MockKeySource(
        [KeyUnreachableError("http://server/key"), other_runner_material]
    )
    refresher = Refresher(source, store, interval=60, retries=1, backoff=0)

    assert refresher.refresh_once() is False
    assert store.read() is runner_material
    assert refresher.consecutive_failures == 1

    assert refresher.refresh_once() is True
    assert store.read() is other_runner_material
    assert refresher.consecutive_failures == 0


def test_callback_errors_do_not_propagate(store, other_runner_material):
    """Test a failing listener does not break the tick."""

    def broken(_):
        raise RuntimeError("listener bug")

    refresher = Refresher(
        MockKeySource(other_runner_material), store, interval=60, on_refresh=broken
    )
    assert refresher.refresh_once() is True
    assert store.read() is other_runner_material


# ==================== Cancellation Tests ====================


def test_stop_interrupts_backoff(store):
    """Test cancellation takes effect during a backoff wait."""
    source = MockKeySource(KeyUnreachableError("http://server/key"))
    refresher = Refresher(source, store, interval=60, retries=5, backoff=30)
    result = []

    t = threading.Thread(target=lambda: result.append(refresher.refresh_once()))
    t.start()
    assert _wait_for(lambda: source.calls >= 1)

    refresher.stop()
    t.join(2.0)

    assert not t.is_alive()
    assert result == [False]
    assert source.calls == 1


def test_stop_mid_fetch_discards_result(store, runner_material, other_runner_material):
    """Test a fetch completing after cancellation does not touch the store."""

    class CancellingSource(KeySource):
        def __init__(self):
            self.refresher = None

        def fetch(self):
            self.refresher.stop()
            return other_runner_material

        def describe(self):
            return "cancelling"

    source = CancellingSource()
    refresher = Refresher(source, store, interval=60)
    source.refresher = refresher

    assert refresher.refresh_once() is False
    assert store.read() is runner_material
    assert store.version == 1


# ==================== Background Loop Tests ====================


def test_background_loop_refreshes_and_stops(store, other_runner_material):
    """Test the thread refreshes on its interval and exits on stop."""
    source = MockKeySource(other_runner_material)
    refresher = Refresher(source, store, interval=0.02)

    refresher.start()
    try:
        assert refresher.is_running
        assert _wait_for(lambda: store.version >= 3)
        assert store.read() is other_runner_material
    finally:
        refresher.stop()

    assert not refresher.is_running
    assert refresher.cancelled


def test_background_loop_survives_failures(store, runner_material, other_runner_material):
    """Test failing ticks keep the loop alive until a success."""
    source = MockKeySource(
        [KeyUnreachableError("http://server/key")] * 3 + [other_runner_material]
    )
    refresher = Refresher(source, store, interval=0.02, retries=1, backoff=0)

    with refresher:
        assert _wait_for(lambda: store.read() is other_runner_material)
        assert refresher.is_running

    assert not refresher.is_running


def test_start_twice_raises(store, runner_material):
    """Test a refresher can only be started once."""
    refresher = Refresher(MockKeySource(runner_material), store, interval=60)
    refresher.start()
    try:
        with pytest.raises(RuntimeError):
            refresher.start()
    finally:
        refresher.stop()


def test_stop_is_idempotent(store, runner_material):
    """Test stopping twice, or before starting, is harmless."""
    refresher = Refresher(MockKeySource(runner_material), store, interval=60)
    refresher.stop()
    refresher.stop()
    assert not refresher.is_running


def test_stop_returns_promptly_with_long_interval(store, runner_material):
    """Test stop wakes the loop from its sleep instead of waiting an interval."""
    refresher = Refresher(MockKeySource(runner_material), store, interval=3600)
    refresher.start()

    started = time.time()
    refresher.stop(timeout=2.0)

    assert time.time() - started < 2.0
    assert not refresher.is_running


def test_second_stop_joins_after_timed_out_stop(store, other_runner_material):
    """Test a stop whose join timed out can be repeated until the thread exits."""
    entered = threading.Event()
    release = threading.Event()

    class SlowSource(KeySource):
        def fetch(self):
            entered.set()
            release.wait(5.0)
            return other_runner_material

        def describe(self):
            return "slow"

    refresher = Refresher(SlowSource(), store, interval=0.01)
    refresher.start()
    assert entered.wait(2.0)

    refresher.stop(timeout=0.05)
    assert refresher.is_running

    release.set()
    refresher.stop(timeout=2.0)
    assert not refresher.is_running
    assert store.version == 1
