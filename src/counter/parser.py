from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union


# Entries are signed 32-bit; anything wider is not treated as a number.
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_INT_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class RegisterUser:
    pass


@dataclass(frozen=True)
class ClearEntries:
    pass


@dataclass(frozen=True)
class AddEntry:
    value: int


@dataclass(frozen=True)
class QuerySum:
    pass


@dataclass(frozen=True)
class Unknown:
    pass


Operation = Union[RegisterUser, ClearEntries, AddEntry, QuerySum, Unknown]


def normalize(text: str) -> str:
    """Drop every whitespace character and lowercase the rest."""
    return "".join((text or "").split()).lower()


def _parse_int(s: str) -> int | None:
    if not _INT_RE.match(s):
        return None
    value = int(s)
    if value < INT32_MIN or value > INT32_MAX:
        return None
    return value


def parse(text: str) -> Operation:
    """Map raw message text to an Operation.

    Rules, first match wins:
    - starts with ``/start`` -> RegisterUser
    - starts with ``end`` -> ClearEntries
    - whole text is a signed base-10 integer -> AddEntry(value)
    - first character is ``=`` -> QuerySum
    - anything else, including empty text -> Unknown
    """
    s = normalize(text)
    if s.startswith("/start"):
        return RegisterUser()
    if s.startswith("end"):
        return ClearEntries()
    value = _parse_int(s)
    if value is not None:
        return AddEntry(value)
    if s[:1] == "=":
        return QuerySum()
    return Unknown()


__all__ = [
    "Operation",
    "RegisterUser",
    "ClearEntries",
    "AddEntry",
    "QuerySum",
    "Unknown",
    "normalize",
    "parse",
]
