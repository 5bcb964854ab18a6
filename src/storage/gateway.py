from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from counter.ledger import UserLedger

from .file_store import FileSnapshotStore
from .models import Snapshot
from .s3_store import S3SnapshotStore, is_s3_location

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    location: str

    def read(self) -> Optional[Snapshot]:
        ...

    def write(self, snapshot: Snapshot) -> None:
        ...


def open_store(location: str, *, fernet_key: Optional[str] = None) -> SnapshotStore:
    """Pick a store for an opaque storage location.

    ``s3://bucket/key`` selects the encrypted S3 store (requires `fernet_key`),
    anything else is treated as a local file path.
    """
    if is_s3_location(location):
        if not fernet_key:
            raise RuntimeError(f"Missing required configuration: FERNET_KEY (needed for {location})")
        return S3SnapshotStore.from_uri(location, fernet_key=fernet_key)
    return FileSnapshotStore(location)


class PersistenceGateway:
    """
    Loads the ledger at startup and writes it back after mutations.

    - `load()` never fails: a missing snapshot or an unreadable one yields an
      empty ledger (the latter with a warning).
    - `save()` writes synchronously; only one write runs at a time.
    - `request_save()` hands the write to a background thread. Requests that
      arrive while a write is running coalesce into a single follow-up write,
      which always snapshots the ledger as it is at that moment.
    - `flush()` waits for outstanding requests; `close()` flushes and stops the
      worker. Call `close()` before exit so the last mutation is not lost.
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._write_lock = threading.Lock()
        self._cond = threading.Condition()
        self._pending: Optional[UserLedger] = None
        self._busy = False
        self._closed = False
        self._worker: Optional[threading.Thread] = None

    @property
    def location(self) -> str:
        return self._store.location

    def load(self) -> UserLedger:
        try:
            snapshot = self._store.read()
        except Exception as ex:
            logger.warning(f"Failed to load snapshot from {self.location}, starting empty: {ex}")
            return UserLedger()
        if snapshot is None:
            logger.info(f"No snapshot at {self.location}, starting empty")
            return UserLedger()
        ledger = UserLedger.from_snapshot(snapshot.accounts)
        logger.info(f"Loaded {len(ledger)} accounts from {self.location}")
        return ledger

    def save(self, ledger: UserLedger) -> bool:
        with self._write_lock:
            try:
                self._store.write(Snapshot(ledger.snapshot()))
            except Exception as ex:
                logger.error(f"Failed to save snapshot to {self.location}: {ex}")
                return False
        logger.debug(f"Saved snapshot to {self.location}")
        return True

    def request_save(self, ledger: UserLedger) -> None:
        with self._cond:
            if not self._closed:
                self._pending = ledger
                self._ensure_worker()
                self._cond.notify_all()
                return
        # Worker already stopped: write inline so nothing is dropped
        self.save(ledger)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every requested save has been written. False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._busy, timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            worker = self._worker
        if worker is not None:
            worker.join(timeout)

    # --------------- Internal ---------------
    def _ensure_worker(self) -> None:
        # Caller holds self._cond
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._run, name="snapshot-writer", daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._pending is None and not self._closed:
                    self._cond.wait()
                if self._pending is None:
                    return
                ledger = self._pending
                self._pending = None
                self._busy = True
            try:
                self.save(ledger)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()
