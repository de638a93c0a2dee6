import asyncio
import http.client
import io
import json
import sys
from pathlib import Path
from typing import Any, Dict, List
from urllib import error as urllib_error

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from spread_monitor.arbitrage import notifier as notifier_mod
from spread_monitor.arbitrage.notifier import DispatchResult, TelegramNotifier


class FakeResponse:
    def __init__(self, status: int, body: bytes) -> None:
        self._status = status
        self._body = body

    def getcode(self) -> int:
        return self._status

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        return None


def test_dispatch_posts_chat_id_and_text(monkeypatch) -> None:
    calls: List[Dict[str, Any]] = []

    def fake_urlopen(req, timeout=None):
        calls.append(
            {
                "url": req.full_url,
                "method": req.get_method(),
                "body": json.loads(req.data.decode("utf-8")),
                "content_type": req.get_header("Content-type"),
                "timeout": timeout,
            }
        )
        return FakeResponse(200, b'{"ok": true, "result": {"message_id": 7}}')

    monkeypatch.setattr(notifier_mod._request, "urlopen", fake_urlopen)

    notifier = TelegramNotifier("123:abc", "42", api_url="https://tg.example/", timeout_sec=3.0)
    result = asyncio.run(notifier.dispatch("🔥 Arbitrage BTC"))

    assert result.ok
    assert result.status == 200
    assert result.response["result"]["message_id"] == 7

    assert len(calls) == 1
    call = calls[0]
    assert call["url"] == "https://tg.example/bot123:abc/sendMessage"
    assert call["method"] == "POST"
    assert call["body"] == {"chat_id": "42", "text": "🔥 Arbitrage BTC"}
    assert call["content_type"] == "application/json"
    assert call["timeout"] == 3.0


def test_http_error_is_reported_not_raised(monkeypatch) -> None:
    def fake_urlopen(req, timeout=None):
        raise urllib_error.HTTPError(
            req.full_url,
            400,
            "Bad Request",
            {},
            io.BytesIO(b'{"ok": false, "description": "chat not found"}'),
        )

    monkeypatch.setattr(notifier_mod._request, "urlopen", fake_urlopen)

    result = asyncio.run(TelegramNotifier("t", "c").dispatch("hello"))

    assert isinstance(result, DispatchResult)
    assert not result.ok
    assert "400" in result.error
    assert "chat not found" in result.error


def test_network_error_is_reported_not_raised(monkeypatch) -> None:
    def fake_urlopen(req, timeout=None):
        raise urllib_error.URLError("connection refused")

    monkeypatch.setattr(notifier_mod._request, "urlopen", fake_urlopen)

    result = asyncio.run(TelegramNotifier("t", "c").dispatch("hello"))

    assert not result.ok
    assert "connection refused" in result.error


def test_non_json_body_is_kept_raw(monkeypatch) -> None:
    monkeypatch.setattr(
        notifier_mod._request,
        "urlopen",
        lambda req, timeout=None: FakeResponse(200, b"ok"),
    )

    result = asyncio.run(TelegramNotifier("t", "c").dispatch("hello"))

    assert result.ok
    assert result.response == "ok"


def test_incomplete_read_is_reported_not_raised(monkeypatch) -> None:
    def fake_urlopen(req, timeout=None):
        raise http.client.IncompleteRead(b"")

    monkeypatch.setattr(notifier_mod._request, "urlopen", fake_urlopen)

    result = asyncio.run(TelegramNotifier("t", "c").dispatch("hi"))

    assert not result.ok
    assert "IncompleteRead" in result.error or "bytes read" in result.error


def test_bad_status_line_is_reported_not_raised(monkeypatch) -> None:
    def fake_urlopen(req, timeout=None):
        raise http.client.BadStatusLine("garbage")

    monkeypatch.setattr(notifier_mod._request, "urlopen", fake_urlopen)

    result = asyncio.run(TelegramNotifier("t", "c").dispatch("hi"))

    assert not result.ok
