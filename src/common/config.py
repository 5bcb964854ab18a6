from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv


# Environment variable names
ENV_API_TOKEN = "API_TOKEN"
ENV_STORAGE_PATH = "STORAGE_PATH"
ENV_SERVER_ENV = "SERVER_ENV"
ENV_FERNET_KEY = "FERNET_KEY"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_POLL_TIMEOUT = "POLL_TIMEOUT"
ENV_MAX_WORKERS = "MAX_WORKERS"

# Alternate name for the bot token
FALLBACK_ENV_API_TOKEN = "TELEGRAM_BOT_TOKEN"

SERVER_STORAGE_PATH = "/secrets/data.json"
LOCAL_STORAGE_PATH = "data.json"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as ex:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from ex


def default_storage_path() -> str:
    """Hosted deployments keep data on the mounted secrets volume."""
    if _getenv(ENV_SERVER_ENV, "").lower() == "true":
        return SERVER_STORAGE_PATH
    return LOCAL_STORAGE_PATH


@dataclass(frozen=True)
class Settings:
    api_token: str
    storage_path: str
    fernet_key: Optional[str] = None
    log_level: str = "INFO"
    poll_timeout: int = 30
    max_workers: int = 8


def load_settings(*, dotenv: bool = True) -> Settings:
    """Build Settings from the environment (and a `.env` file if present)."""
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True))
    token = _getenv(ENV_API_TOKEN) or _getenv(FALLBACK_ENV_API_TOKEN)
    return Settings(
        api_token=_require(token, ENV_API_TOKEN),
        storage_path=_getenv(ENV_STORAGE_PATH) or default_storage_path(),
        fernet_key=_getenv(ENV_FERNET_KEY),
        log_level=(_getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper(),
        poll_timeout=max(0, _getint(ENV_POLL_TIMEOUT, 30)),
        max_workers=max(1, _getint(ENV_MAX_WORKERS, 8)),
    )


def configure_logging(level: str) -> None:
    lvl = getattr(logging, level, None)
    if not isinstance(lvl, int):
        lvl = logging.INFO
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
