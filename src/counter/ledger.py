from __future__ import annotations

import threading
from typing import Dict, List, Mapping, Optional, Tuple


class UserLedger:
    """
    In-memory per-user sequences of integer entries.

    Concurrency
    - Every account has its own lock; reads and writes of one user's entries
      are atomic with respect to each other, different users never contend.
    - `_registry_lock` guards the key set (account and lock creation) and is
      only held for dictionary bookkeeping, never across a user's operation.
    - Readers always get copies, so nobody observes a list mid-append.

    A user that was never registered reads as an empty account. Only
    `register_user` and `add_entry` create keys.
    """

    def __init__(self) -> None:
        self._accounts: Dict[int, List[int]] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # -------- Construction helpers --------
    @classmethod
    def from_snapshot(cls, data: Mapping[int, List[int]]) -> "UserLedger":
        ledger = cls()
        for user_id, entries in data.items():
            uid = int(user_id)
            ledger._accounts[uid] = [int(v) for v in entries]
            ledger._locks[uid] = threading.Lock()
        return ledger

    # -------- Internal --------
    def _lock_for(self, user_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def _existing(self, user_id: int) -> Optional[Tuple[threading.Lock, List[int]]]:
        with self._registry_lock:
            entries = self._accounts.get(user_id)
            if entries is None:
                return None
            return self._locks[user_id], entries

    def _create_locked(self, user_id: int) -> List[int]:
        # Caller holds the user's lock.
        with self._registry_lock:
            entries = self._accounts.get(user_id)
            if entries is None:
                entries = []
                self._accounts[user_id] = entries
            return entries

    # -------- Mutations --------
    def register_user(self, user_id: int) -> bool:
        """Create an empty account if missing. Returns True when one was created."""
        with self._lock_for(user_id):
            if self.exists(user_id):
                return False
            self._create_locked(user_id)
            return True

    def clear_entries(self, user_id: int) -> None:
        found = self._existing(user_id)
        if found is None:
            return
        lock, entries = found
        with lock:
            entries.clear()

    def add_entry(self, user_id: int, value: int) -> int:
        """Append `value` and return the sum after the append.

        An unregistered user gets an account on first use.
        """
        with self._lock_for(user_id):
            entries = self._create_locked(user_id)
            entries.append(int(value))
            return sum(entries)

    def remove_last(self, user_id: int) -> Optional[int]:
        """Pop the most recent entry; None when there is nothing to remove."""
        found = self._existing(user_id)
        if found is None:
            return None
        lock, entries = found
        with lock:
            if not entries:
                return None
            return entries.pop()

    # -------- Queries --------
    def exists(self, user_id: int) -> bool:
        with self._registry_lock:
            return user_id in self._accounts

    def get_sum(self, user_id: int) -> int:
        found = self._existing(user_id)
        if found is None:
            return 0
        lock, entries = found
        with lock:
            return sum(entries)

    def get_entries(self, user_id: int) -> Tuple[int, ...]:
        found = self._existing(user_id)
        if found is None:
            return ()
        lock, entries = found
        with lock:
            return tuple(entries)

    def user_ids(self) -> List[int]:
        with self._registry_lock:
            return sorted(self._accounts)

    def snapshot(self) -> Dict[int, List[int]]:
        """Deep copy of all accounts, each one copied under its own lock."""
        out: Dict[int, List[int]] = {}
        for user_id in self.user_ids():
            out[user_id] = list(self.get_entries(user_id))
        return out

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._accounts)
