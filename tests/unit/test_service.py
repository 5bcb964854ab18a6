from __future__ import annotations

import pytest

from counter.ledger import UserLedger
from counter.parser import AddEntry, ClearEntries, QuerySum, RegisterUser, Unknown
from counter.service import (
    END_OF_DAY_TEXT,
    UNKNOWN_COMMAND_TEXT,
    WELCOME_TEXT,
    CounterService,
    apply,
    is_mutating,
)
from storage.gateway import PersistenceGateway


def test_daily_scenario_replies():
    service = CounterService(UserLedger())
    replies = [service.handle(100, t) for t in ["/start", "5", "3", "=", "end", "="]]
    assert replies == [WELCOME_TEXT, "5", "8", "8", END_OF_DAY_TEXT, "0"]
    assert service.ledger.exists(100)


def test_unknown_command_creates_no_account():
    service = CounterService(UserLedger())
    assert service.handle(7, "hello") == UNKNOWN_COMMAND_TEXT
    assert service.ledger.exists(7) is False
    assert service.handle(7, "=") == "0"
    assert service.ledger.exists(7) is False


def test_users_are_independent():
    service = CounterService(UserLedger())
    service.handle(1, "10")
    service.handle(2, "-4")
    assert service.handle(1, "=") == "10"
    assert service.handle(2, "=") == "-4"
    service.handle(1, "end")
    assert service.handle(2, "=") == "-4"


def test_apply_rejects_foreign_objects():
    with pytest.raises(TypeError):
        apply("not-an-operation", UserLedger(), 1)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "op, mutating",
    [(RegisterUser(), True), (ClearEntries(), True), (AddEntry(1), True), (QuerySum(), False), (Unknown(), False)],
)
def test_is_mutating(op, mutating):
    assert is_mutating(op) is mutating


def test_mutations_are_persisted_and_queries_are_not(memory_store):
    gateway = PersistenceGateway(memory_store)
    service = CounterService.from_gateway(gateway)

    service.handle(5, "=")
    service.handle(5, "hello")
    assert gateway.flush(timeout=5.0)
    assert memory_store.writes == []

    service.handle(5, "/start")
    service.handle(5, "12")
    service.close()

    assert memory_store.current.accounts == {5: [12]}


def test_service_resumes_from_stored_state(memory_store):
    first = CounterService.from_gateway(PersistenceGateway(memory_store))
    first.handle(1, "4")
    first.handle(1, "6")
    first.close()

    second = CounterService.from_gateway(PersistenceGateway(memory_store))
    assert second.handle(1, "=") == "10"
    assert second.handle(1, "1") == "11"
    second.close()
