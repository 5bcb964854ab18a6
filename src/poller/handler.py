from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Optional, Tuple, Union

from common.config import Settings, configure_logging, load_settings
from common.telegram import TelegramClient, TelegramError, message_fields
from counter.service import CounterService
from storage.gateway import PersistenceGateway, open_store

logger = logging.getLogger(__name__)


ALLOWED_UPDATES = ["message"]
ERROR_BACKOFF_SECONDS = 2.0


def _compute_next_offset(last_update_id: Optional[int]) -> Optional[int]:
    """Return the offset to use for getUpdates.

    Per Telegram docs: pass last_update_id + 1 to avoid receiving the last processed
    update again. If None, return None to start from earliest unconfirmed.
    """
    return last_update_id + 1 if last_update_id is not None else None


def _max_update_id(updates: List[Dict[str, Any]]) -> Optional[int]:
    max_id: Optional[int] = None
    for upd in updates:
        try:
            uid = int(upd.get("update_id"))
        except Exception:
            continue
        max_id = uid if max_id is None else max(max_id, uid)
    return max_id


def handle_message(tg: TelegramClient, service: CounterService, user_id: int, chat_id: Union[int, str], text: str) -> str:
    """Apply one command and send the reply back to the chat it came from."""
    reply = service.handle(user_id, text)
    try:
        tg.send_message(chat_id=chat_id, text=reply)
    except TelegramError as e:
        # State already changed; a lost reply must not fail the batch
        logger.warning(f"Failed to send reply to chat {chat_id}: {e}")
    return reply


def handle_user_messages(
    tg: TelegramClient,
    service: CounterService,
    user_id: int,
    messages: List[Tuple[Union[int, str], str]],
) -> List[str]:
    """Handle one user's messages one after another, in the order they were sent."""
    replies: List[str] = []
    for chat_id, text in messages:
        replies.append(handle_message(tg, service, user_id, chat_id, text))
    return replies


def _group_by_user(updates: List[Dict[str, Any]]) -> Dict[int, List[Tuple[Union[int, str], str]]]:
    """Text messages per user, each list ordered by update_id."""
    keyed = []
    for upd in updates:
        fields = message_fields(upd)
        if fields is None:
            continue
        try:
            uid = int(upd.get("update_id"))
        except Exception:
            continue
        keyed.append((uid, fields))

    grouped: Dict[int, List[Tuple[Union[int, str], str]]] = {}
    for _, (user_id, chat_id, text) in sorted(keyed, key=lambda item: item[0]):
        grouped.setdefault(user_id, []).append((chat_id, text))
    return grouped


def run_once(
    tg: TelegramClient,
    service: CounterService,
    executor: Executor,
    *,
    last_update_id: Optional[int] = None,
    timeout: int = 0,
    limit: int = 100,
) -> Optional[int]:
    """
    Poll getUpdates once and handle every text message in the batch.

    Each user's messages run sequentially in update_id order on one task;
    different users run concurrently on `executor`. The call returns after all
    of them finished, with the new last_update_id (unchanged if nothing arrived).
    """
    updates = tg.get_updates(
        offset=_compute_next_offset(last_update_id),
        limit=limit,
        timeout=timeout,
        allowed_updates=ALLOWED_UPDATES,
    )

    futures = {
        executor.submit(handle_user_messages, tg, service, user_id, messages): user_id
        for user_id, messages in _group_by_user(updates).items()
    }

    done, _ = wait(futures)
    for fut in done:
        exc = fut.exception()
        if exc is not None:
            logger.error(f"Message handler failed for user {futures[fut]}: {exc!r}")

    new_last = _max_update_id(updates)
    if new_last is not None and (last_update_id is None or new_last > last_update_id):
        return new_last
    return last_update_id


def run_forever(
    tg: TelegramClient,
    service: CounterService,
    stop: threading.Event,
    *,
    timeout: int = 30,
    max_workers: int = 8,
) -> None:
    """Long-poll until `stop` is set. Errors are logged and polling resumes."""
    last_update_id: Optional[int] = None
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch") as executor:
        while not stop.is_set():
            try:
                last_update_id = run_once(
                    tg, service, executor, last_update_id=last_update_id, timeout=timeout
                )
            except TelegramError as e:
                logger.error(f"Telegram getUpdates failed: {e}")
                stop.wait(ERROR_BACKOFF_SECONDS)
            except Exception:
                logger.exception("Polling cycle failed")
                stop.wait(ERROR_BACKOFF_SECONDS)


def build_service(settings: Settings) -> CounterService:
    store = open_store(settings.storage_path, fernet_key=settings.fernet_key)
    return CounterService.from_gateway(PersistenceGateway(store))


def main(settings: Optional[Settings] = None) -> int:
    """Console entry point: poll Telegram until SIGINT/SIGTERM, then flush state."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    service = build_service(settings)
    stop = threading.Event()

    def _on_signal(signum, _frame) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    started = time.monotonic()
    logger.info(f"Polling Telegram, storage at {settings.storage_path}")
    try:
        with TelegramClient(settings.api_token) as tg:
            run_forever(tg, service, stop, timeout=settings.poll_timeout, max_workers=settings.max_workers)
    finally:
        service.close()
        logger.info(f"Stopped after {time.monotonic() - started:.0f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
