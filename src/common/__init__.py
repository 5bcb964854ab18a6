"""
Common utilities for the counter bot.

Modules:
- config: environment-driven settings and logging setup
- telegram: Telegram Bot API client (getUpdates long polling, sendMessage)
"""

__all__ = [
    "config",
    "telegram",
]
