from __future__ import annotations

import logging
from typing import Optional

from storage.gateway import PersistenceGateway

from .ledger import UserLedger
from .parser import AddEntry, ClearEntries, Operation, QuerySum, RegisterUser, Unknown, parse

logger = logging.getLogger(__name__)


WELCOME_TEXT = "Welcome"
END_OF_DAY_TEXT = "End of day"
UNKNOWN_COMMAND_TEXT = "Unknown command"


def is_mutating(operation: Operation) -> bool:
    return isinstance(operation, (RegisterUser, ClearEntries, AddEntry))


def apply(operation: Operation, ledger: UserLedger, user_id: int) -> str:
    """Run `operation` for `user_id` against `ledger` and return the reply text."""
    if isinstance(operation, RegisterUser):
        ledger.register_user(user_id)
        return WELCOME_TEXT
    if isinstance(operation, ClearEntries):
        ledger.clear_entries(user_id)
        return END_OF_DAY_TEXT
    if isinstance(operation, AddEntry):
        return str(ledger.add_entry(user_id, operation.value))
    if isinstance(operation, QuerySum):
        return str(ledger.get_sum(user_id))
    if isinstance(operation, Unknown):
        return UNKNOWN_COMMAND_TEXT
    raise TypeError(f"Unsupported operation: {operation!r}")


class CounterService:
    """
    `(user_id, text) -> reply` entry point used by the dispatch loop.

    Safe to call from several threads at once. Mutating commands schedule a
    background save of the full ledger; `close()` waits for it.
    """

    def __init__(self, ledger: UserLedger, gateway: Optional[PersistenceGateway] = None) -> None:
        self._ledger = ledger
        self._gateway = gateway

    @classmethod
    def from_gateway(cls, gateway: PersistenceGateway) -> "CounterService":
        return cls(gateway.load(), gateway)

    @property
    def ledger(self) -> UserLedger:
        return self._ledger

    def handle(self, user_id: int, text: str) -> str:
        operation = parse(text)
        reply = apply(operation, self._ledger, user_id)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"user={user_id} op={type(operation).__name__} entries={list(self._ledger.get_entries(user_id))}")
        if self._gateway is not None and is_mutating(operation):
            self._gateway.request_save(self._ledger)
        return reply

    def close(self) -> None:
        if self._gateway is not None:
            self._gateway.close()
