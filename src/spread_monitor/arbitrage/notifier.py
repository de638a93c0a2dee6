from __future__ import annotations

import abc
import asyncio
import http.client as _http_client
import json as _json
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib import error as _error
from urllib import request as _request

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """The notification endpoint could not be reached or rejected the message."""


@dataclass
class DispatchResult:
    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None
    response: Any = None


class Notifier(abc.ABC):
    """Delivers a rendered alert message. Never raises to the caller."""

    @abc.abstractmethod
    async def dispatch(self, message: str) -> DispatchResult:
        raise NotImplementedError


class TelegramNotifier(Notifier):
    """
    Sends alerts through the Telegram Bot API.

    POST <api_url>/bot<token>/sendMessage with JSON {"chat_id", "text"}.
    One attempt per message; failures are logged and returned, not retried.
    """

    def __init__(
        self,
        token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout_sec: float = 10.0,
    ) -> None:
        self._token = token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")
        self.timeout_sec = timeout_sec

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/bot{self._token}/sendMessage"

    def _send_sync(self, message: str) -> DispatchResult:
        body = _json.dumps({"chat_id": self.chat_id, "text": message}).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        req = _request.Request(self.endpoint, data=body, headers=headers, method="POST")

        try:
            with _request.urlopen(req, timeout=self.timeout_sec) as resp:
                status = resp.getcode()
                raw_body = resp.read().decode("utf-8")
        except _error.HTTPError as exc:
            raw_body = ""
            try:
                raw_body = exc.read().decode("utf-8")
            except Exception:
                pass
            raise DispatchError(f"HTTPError {exc.code}: {raw_body}") from exc
        except (_error.URLError, _http_client.HTTPException, OSError, ValueError) as exc:
            raise DispatchError(str(exc)) from exc

        try:
            parsed_body: Any = _json.loads(raw_body)
        except ValueError:
            parsed_body = raw_body

        return DispatchResult(ok=True, status=status, response=parsed_body)

    async def dispatch(self, message: str) -> DispatchResult:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self._send_sync, message)
        except DispatchError as exc:
            logger.error("Telegram error: %s", exc)
            return DispatchResult(ok=False, error=str(exc))

        logger.debug("Telegram message sent status=%s", result.status)
        return result
