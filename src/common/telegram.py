from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


DEFAULT_API_BASE = "https://api.telegram.org"

_RETRY_STATUSES = (429, 500, 502, 503, 504)


class TelegramError(RuntimeError):
    """Base error for Telegram client."""


class TelegramApiError(TelegramError):
    """API returned an error payload or unexpected structure."""


class TelegramClient:
    """
    Minimal Telegram Bot API client: long polling plus sendMessage.

    Notes
    - Uses JSON for request bodies.
    - Retries transport errors, 5xx and 429 with backoff, honoring `retry_after`.
    - The underlying `httpx.Client` is safe to share between worker threads.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
        max_attempts: int = 5,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._owns_client = client is None
        base_url = f"{self._api_base}/bot{token}"
        self._client = client or httpx.Client(base_url=base_url, timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def get_updates(
        self,
        *,
        offset: Optional[int] = None,
        limit: int = 100,
        timeout: int = 0,
        allowed_updates: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch pending updates via `getUpdates` (long polling when timeout > 0)."""
        payload: Dict[str, Any] = {"limit": limit, "timeout": timeout}
        if offset is not None:
            payload["offset"] = offset
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates
        # The HTTP read must outlast the server-side long poll
        result = self._call("getUpdates", payload, read_timeout=self._timeout + timeout)
        if not isinstance(result, list):
            raise TelegramApiError("Malformed getUpdates result")
        return [u for u in result if isinstance(u, dict)]

    def send_message(self, chat_id: Union[int, str], text: str, **extra: Any) -> Dict[str, Any]:
        """Send a text message; returns the Message object (as dict)."""
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        payload.update({k: v for k, v in extra.items() if v is not None})
        result = self._call("sendMessage", payload)
        if not isinstance(result, dict):
            raise TelegramApiError("Malformed sendMessage result")
        return result

    # --------------- Internal ---------------
    def _call(self, method: str, payload: Dict[str, Any], *, read_timeout: Optional[float] = None) -> Any:
        data = self._request(method, payload, read_timeout=read_timeout)
        # Telegram's envelope: { ok: bool, result?: ..., description?: str }
        if not isinstance(data, dict) or "ok" not in data:
            raise TelegramApiError("Malformed response from Telegram Bot API")
        if data.get("ok") is True and "result" in data:
            return data["result"]
        desc = data.get("description") or "Telegram API error"
        code = data.get("error_code")
        raise TelegramApiError(f"{desc} (code={code})")

    def _request(self, method: str, json_body: Dict[str, Any], *, read_timeout: Optional[float] = None) -> Dict[str, Any]:
        timeout = httpx.Timeout(self._timeout, read=read_timeout) if read_timeout else self._timeout
        attempt = 0
        backoff = 0.5
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            attempt += 1
            try:
                resp = self._client.post(f"/{method}", json=json_body, timeout=timeout)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                logger.warning(f"Telegram {method} transport error (attempt {attempt}): {exc}")
                self._sleep(backoff)
                backoff = min(backoff * 2, 8.0)
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except Exception as exc:
                    raise TelegramApiError("Failed to parse JSON from Telegram API") from exc

            if resp.status_code in _RETRY_STATUSES:
                delay = _retry_after(resp)
                logger.warning(f"Telegram {method} returned HTTP {resp.status_code} (attempt {attempt})")
                self._sleep(min(delay if delay is not None else backoff, 10.0))
                backoff = min(backoff * 2, 8.0)
                continue

            raise TelegramApiError(f"HTTP {resp.status_code} from Telegram: {resp.text[:200]}")

        if last_exc is not None:
            raise TelegramError(f"{method} failed after {attempt} attempts") from last_exc
        raise TelegramError(f"{method} failed after {attempt} attempts")


def _retry_after(resp: httpx.Response) -> Optional[float]:
    # 429 bodies look like { ok:false, error_code:429, parameters: { retry_after: N } }
    try:
        body = resp.json()
    except Exception:
        return None
    params = body.get("parameters") if isinstance(body, dict) else None
    if isinstance(params, dict):
        ra = params.get("retry_after")
        if isinstance(ra, (int, float)):
            return float(ra)
    return None


def message_fields(update: Dict[str, Any]) -> Optional[tuple[int, Union[int, str], str]]:
    """Extract (user_id, chat_id, text) from a text-message update, else None."""
    msg = update.get("message")
    if not isinstance(msg, dict):
        return None
    text = msg.get("text")
    sender = msg.get("from")
    chat = msg.get("chat")
    if not isinstance(text, str) or not isinstance(sender, dict) or not isinstance(chat, dict):
        return None
    user_id = sender.get("id")
    chat_id = chat.get("id")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or chat_id is None:
        return None
    return user_id, chat_id, text


__all__ = [
    "TelegramClient",
    "TelegramError",
    "TelegramApiError",
    "message_fields",
]
