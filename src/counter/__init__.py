"""
Conversational counter core.

Modules:
- parser: text command -> Operation
- ledger: per-user entry sequences with per-user locking
- service: applies operations and schedules persistence
"""

__all__ = [
    "parser",
    "ledger",
    "service",
]
