"""Mock key source for local development and testing.

No files or network access required.
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Union

from beacon.core.key_source import KeySource
from beacon.models import KeyMaterial

Outcome = Union[KeyMaterial, Exception]


class MockKeySource(KeySource):
    """Key source that replays scripted outcomes.

    Each fetch pops the next outcome: KeyMaterial is returned, an exception
    is raised. Once the script is exhausted the last outcome repeats.

    Example:
        >>> source = MockKeySource([material, KeyUnreachableError("mock://key")])
        >>> source.fetch()  # returns material
        >>> source.fetch()  # raises KeyUnreachableError
    """

    def __init__(self, outcomes: Union[Outcome, Iterable[Outcome]]):
        if isinstance(outcomes, (KeyMaterial, Exception)):
            outcomes = [outcomes]
        self._outcomes: List[Outcome] = list(outcomes)
        if not self._outcomes:
            raise ValueError("MockKeySource needs at least one outcome")
        self._lock = threading.Lock()
        self.calls = 0

    def push(self, outcome: Outcome) -> None:
        """Queue another outcome after the current script."""
        with self._lock:
            self._outcomes.append(outcome)

    def fetch(self) -> KeyMaterial:
        with self._lock:
            self.calls += 1
            if len(self._outcomes) > 1:
                outcome = self._outcomes.pop(0)
            else:
                outcome = self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def describe(self) -> str:
        return "mock://key"
