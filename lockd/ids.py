import itertools
import threading
import uuid
from typing import Protocol


class LockIdGenerator(Protocol):
    def generate(self) -> str:
        """Return a new non-empty lock identifier."""
        ...


class UuidLockIdGenerator:
    def generate(self) -> str:
        return str(uuid.uuid4())


class SequentialLockIdGenerator:
    """Readable ids (``worker-1``, ``worker-2``...) unique within one process."""

    def __init__(self, prefix: str = "lock", start: int = 1):
        if not prefix:
            raise ValueError("prefix must not be empty")
        self.prefix = prefix
        self._counter = itertools.count(start)
        self._mutex = threading.Lock()

    def generate(self) -> str:
        with self._mutex:
            n = next(self._counter)
        return f"{self.prefix}-{n}"
