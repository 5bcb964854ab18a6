import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `counter.*`, `storage.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class MemoryStore:
    """In-memory snapshot store that records every write."""

    location = "memory://test"

    def __init__(self, initial=None, *, fail_writes: bool = False, fail_reads: bool = False) -> None:
        self.current = initial
        self.writes = []
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads

    def read(self):
        if self.fail_reads:
            from storage.models import SnapshotError

            raise SnapshotError("corrupt")
        return self.current

    def write(self, snapshot) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes.append(snapshot)
        self.current = snapshot


@pytest.fixture
def memory_store():
    return MemoryStore()
