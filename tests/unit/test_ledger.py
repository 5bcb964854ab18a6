from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from counter.ledger import UserLedger


def test_unknown_user_reads_as_empty_and_is_not_created():
    ledger = UserLedger()
    assert ledger.get_sum(42) == 0
    assert ledger.get_entries(42) == ()
    assert ledger.exists(42) is False
    assert len(ledger) == 0


def test_register_is_idempotent():
    ledger = UserLedger()
    assert ledger.register_user(1) is True
    ledger.add_entry(1, 10)
    assert ledger.register_user(1) is False
    assert ledger.user_ids() == [1]
    # Re-registering does not reset entries
    assert ledger.get_entries(1) == (10,)


def test_add_entry_returns_running_sum():
    ledger = UserLedger()
    ledger.register_user(1)
    values = [5, 3, -2, 100]
    sums = [ledger.add_entry(1, v) for v in values]
    assert sums == [5, 8, 6, 106]
    assert ledger.get_sum(1) == sum(values)
    assert ledger.get_entries(1) == tuple(values)


def test_add_entry_creates_missing_account():
    ledger = UserLedger()
    assert ledger.add_entry(9, 4) == 4
    assert ledger.exists(9)


def test_sum_widens_past_64_bits():
    ledger = UserLedger()
    big = 2**31 - 1
    for _ in range(4):
        ledger.add_entry(1, big)
    ledger.add_entry(1, 2**62)
    ledger.add_entry(1, 2**62)
    assert ledger.get_sum(1) == 4 * big + 2**63


def test_clear_entries_keeps_account():
    ledger = UserLedger()
    ledger.add_entry(1, 5)
    ledger.add_entry(1, 6)
    ledger.clear_entries(1)
    assert ledger.get_sum(1) == 0
    assert ledger.get_entries(1) == ()
    assert ledger.exists(1)


def test_clear_entries_unknown_user_is_noop():
    ledger = UserLedger()
    ledger.clear_entries(77)
    assert ledger.exists(77) is False


def test_remove_last_guards_empty_and_missing():
    ledger = UserLedger()
    assert ledger.remove_last(1) is None
    ledger.register_user(1)
    assert ledger.remove_last(1) is None
    ledger.add_entry(1, 3)
    ledger.add_entry(1, 4)
    assert ledger.remove_last(1) == 4
    assert ledger.get_entries(1) == (3,)
    assert ledger.exists(1)


def test_get_entries_is_a_copy():
    ledger = UserLedger()
    ledger.add_entry(1, 1)
    seen = ledger.get_entries(1)
    ledger.add_entry(1, 2)
    assert seen == (1,)


def test_snapshot_and_from_snapshot_roundtrip():
    ledger = UserLedger()
    ledger.register_user(3)
    ledger.add_entry(1, 5)
    ledger.add_entry(1, -5)
    ledger.add_entry(2, 7)

    snap = ledger.snapshot()
    assert snap == {1: [5, -5], 2: [7], 3: []}

    # Mutating the snapshot must not leak into the ledger
    snap[1].append(99)
    assert ledger.get_entries(1) == (5, -5)

    restored = UserLedger.from_snapshot(ledger.snapshot())
    assert restored.snapshot() == ledger.snapshot()


def test_concurrent_adds_same_user_lose_nothing():
    ledger = UserLedger()
    ledger.register_user(1)
    n = 2000

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda v: ledger.add_entry(1, v), range(n)))

    entries = ledger.get_entries(1)
    assert len(entries) == n
    assert sorted(entries) == list(range(n))
    assert ledger.get_sum(1) == sum(range(n))


def test_concurrent_first_adds_create_one_account_each():
    ledger = UserLedger()
    barrier = threading.Barrier(8)

    def worker(uid: int) -> None:
        barrier.wait()
        for v in range(100):
            ledger.add_entry(uid % 2, v)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ledger.user_ids() == [0, 1]
    assert len(ledger.get_entries(0)) == 400
    assert len(ledger.get_entries(1)) == 400


def test_other_users_do_not_wait_on_a_held_account_lock():
    ledger = UserLedger()
    ledger.register_user(1)
    ledger.register_user(2)

    # Hold user 1's lock from outside; user 2 must still proceed
    lock_1 = ledger._lock_for(1)
    done = threading.Event()
    with lock_1:
        t = threading.Thread(target=lambda: (ledger.add_entry(2, 5), done.set()))
        t.start()
        assert done.wait(timeout=2.0)
    t.join()
    assert ledger.get_sum(2) == 5
