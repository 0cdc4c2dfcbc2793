"""Process-wide holder of the live key material.

The store is the only mutable shared state of the auth module. Request
threads take snapshots under a shared lock; the refresher swaps in new
material under an exclusive lock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import structlog

from beacon.models import AuthConfig, KeyMaterial

log = structlog.get_logger()


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it so a steady stream of verifications cannot starve a refresh.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read called without a read lock held")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write called without the write lock held")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class ConfigStore:
    """Holds the auth configuration and the single live KeyMaterial.

    KeyMaterial is immutable, so replacing it is a reference swap and a
    reader always gets either the old or the new object in full.

    Args:
        config: Auth configuration, fixed for the store's lifetime
        material: Key material from the initial synchronous acquisition
    """

    def __init__(self, config: AuthConfig, material: KeyMaterial):
        self._config = config
        self._check(material)
        self._material = material
        self._previous: Optional[KeyMaterial] = None
        self._version = 1
        self._lock = ReadWriteLock()

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def version(self) -> int:
        """Number of key materials stored so far, starting at 1."""
        with self._lock.read_locked():
            return self._version

    def read(self) -> KeyMaterial:
        """Return a snapshot of the current key material."""
        with self._lock.read_locked():
            return self._material

    def snapshot(self) -> Tuple[KeyMaterial, Optional[KeyMaterial]]:
        """Return the current material and the one it replaced, read together.

        The previous material is None until the first replace.
        """
        with self._lock.read_locked():
            return self._material, self._previous

    def replace(self, material: KeyMaterial) -> None:
        """Atomically swap in new key material.

        The outgoing material is kept as the previous one; anything older is
        dropped.

        Raises:
            ValueError: If the material is for a different algorithm
        """
        self._check(material)
        with self._lock.write_locked():
            self._previous = self._material
            self._material = material
            self._version += 1
            version = self._version
        log.debug("key_material_replaced", version=version)

    def _check(self, material: KeyMaterial) -> None:
        if material.algorithm is not self._config.algorithm:
            raise ValueError(
                f"Key material algorithm {material.algorithm.value} does not match "
                f"configured {self._config.algorithm.value}"
            )
