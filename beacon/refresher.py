"""Background refresh of the Runner's public key.

The refresher periodically calls a key source and swaps successful results
into the ConfigStore. Failures leave the previous key authoritative and are
only logged and reported, never raised to request handlers.
"""

from __future__ import annotations

import random
import threading
import time
from typing import Callable, Optional

import structlog

from beacon.core.key_source import KeySource
from beacon.core.store import ConfigStore
from beacon.exceptions import KeySourceError, RefreshError
from beacon.models import KeyMaterial

log = structlog.get_logger()


def compute_backoff(attempt: int, base: float, jitter: float = 0.25) -> float:
    """Compute exponential backoff with jitter for a zero-based attempt."""
    delay = base * (2 ** attempt)
    return delay + random.uniform(0, delay * jitter)


class Refresher:
    """Keeps the store's key material current on a fixed interval.

    State machine per tick: Idle -> Fetching -> Idle, whether the fetch
    succeeds or fails. Ticks never overlap. ``stop()`` wakes the loop out of
    its sleep or backoff wait; a fetch already in flight completes but its
    result is discarded.

    Args:
        source: Key source to poll
        store: Store receiving successful results
        interval: Seconds between ticks
        retries: Fetch attempts per tick (default: 3)
        backoff: Base backoff in seconds between attempts (default: 0.5)
        on_refresh: Called with the new KeyMaterial after each swap
        on_failure: Called with a RefreshError when a tick fails
    """

    def __init__(
        self,
        source: KeySource,
        store: ConfigStore,
        interval: float,
        retries: int = 3,
        backoff: float = 0.5,
        on_refresh: Optional[Callable[[KeyMaterial], None]] = None,
        on_failure: Optional[Callable[[RefreshError], None]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.source = source
        self.store = store
        self.interval = interval
        self.retries = retries
        self.backoff = backoff
        self.on_refresh = on_refresh
        self.on_failure = on_failure

        self.consecutive_failures = 0
        self.last_error: Optional[RefreshError] = None
        self.last_success: Optional[float] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        """Start the refresh loop on a daemon thread."""
        if self._thread is not None:
            raise RuntimeError("Refresher already started")
        self._thread = threading.Thread(
            target=self._run, name="beacon-key-refresher", daemon=True
        )
        self._thread.start()
        log.info(
            "key_refresher_started",
            source=self.source.describe(),
            interval=self.interval,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Request cancellation and wait for the loop to exit.

        Safe to call again, including after a timed-out join: a later call
        waits for the thread again while it is still alive.
        """
        already_stopped = self._stop.is_set()
        self._stop.set()
        thread = self._thread
        if (
            thread is not None
            and thread is not threading.current_thread()
            and thread.is_alive()
        ):
            thread.join(timeout)
            if thread.is_alive():
                log.warning("key_refresher_stop_timeout", timeout=timeout)
                return
        if not already_stopped:
            log.info("key_refresher_stopped")

    def refresh_once(self) -> bool:
        """Run a single tick. Returns True if new material was stored."""
        last_exc: Optional[KeySourceError] = None

        for attempt in range(self.retries):
            if attempt and self._stop.wait(compute_backoff(attempt - 1, self.backoff)):
                return False
            try:
                material = self.source.fetch()
            except KeySourceError as e:
                last_exc = e
                log.debug(
                    "key_refresh_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self.retries,
                    code=e.code,
                    error=e.message,
                )
                continue

            if self._stop.is_set():
                log.debug("key_refresh_discarded", reason="cancelled")
                return False

            self.store.replace(material)
            self.consecutive_failures = 0
            self.last_error = None
            self.last_success = time.time()
            log.info(
                "key_refreshed",
                source=self.source.describe(),
                attempts=attempt + 1,
                version=self.store.version,
            )
            self._notify(self.on_refresh, material)
            return True

        self.consecutive_failures += 1
        error = RefreshError(
            f"Key refresh from {self.source.describe()} failed: {last_exc}",
            attempts=self.retries,
        )
        error.__cause__ = last_exc
        self.last_error = error
        log.warning(
            "key_refresh_failed",
            source=self.source.describe(),
            attempts=self.retries,
            consecutive_failures=self.consecutive_failures,
            error=str(last_exc),
        )
        self._notify(self.on_failure, error)
        return False

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.refresh_once()
            except Exception:
                # The loop must outlive any single bad tick
                log.exception("key_refresher_tick_error")

    def _notify(self, callback: Optional[Callable], arg: object) -> None:
        if callback is None:
            return
        try:
            callback(arg)
        except Exception as e:
            log.warning("key_refresher_callback_failed", error=str(e))

    def __enter__(self) -> "Refresher":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
