"""ID generators for TESSERA (run, baseline and view identifiers)."""

import threading

from ulid import monotonic

from tessera.interfaces.id_generator import IdGenerator

# pylint: disable=too-few-public-methods


class ULIDGenerator(IdGenerator):
    """Thread-safe monotonic ULID generator.

    Views are acquired from several worker threads at once, so generation is
    serialized with a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def new_id(self) -> str:
        """Generate a new ULID (serialized across threads)."""
        with self._lock:
            return str(monotonic.new())


class SimpleIdGenerator(IdGenerator):
    """Sequential, prefixed IDs. Deterministic; handy in tests and demos."""

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix
        self._counter = 0
        self._lock = threading.Lock()

    def new_id(self) -> str:
        """Generate the next identifier."""
        with self._lock:
            self._counter += 1
            return f"{self._prefix}{self._counter:06d}"
