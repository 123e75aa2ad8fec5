"""
Session Version

Monotonic counter that invalidates every in-flight wait when the session is
reset. Each wait captures a SessionToken when it starts and checks it before
acting on the result.
"""

from dataclasses import dataclass


class StaleSessionError(Exception):
    """The session was reset while this wait was outstanding."""

    def __init__(self, captured: int, current: int):
        super().__init__(f"session version {captured} is stale (current {current})")
        self.captured = captured
        self.current = current


class SessionVersion:
    """Process-local counter, incremented once per reset and never decremented."""

    def __init__(self):
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def bump(self) -> int:
        self._value += 1
        return self._value

    def capture(self) -> "SessionToken":
        return SessionToken(version=self._value, source=self)


@dataclass(frozen=True)
class SessionToken:
    """Cancellation token tied to the version that was live when it was captured."""
    version: int
    source: SessionVersion

    @property
    def is_valid(self) -> bool:
        return self.source.current == self.version

    def check(self) -> None:
        """Raise StaleSessionError if the session has moved on."""
        if not self.is_valid:
            raise StaleSessionError(self.version, self.source.current)
