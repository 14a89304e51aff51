"""Unit tests for the notification webhook."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import make_message

from mail_triage_agent.config import WebhookMode
from mail_triage_agent.models import Decision
from mail_triage_agent.notify import WebhookNotifier
from mail_triage_agent.notify.webhook import build_url_param_url, webhook_enabled


def _notifier(settings, handler=None) -> tuple[WebhookNotifier, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request) if handler else httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return WebhookNotifier(settings, http_client=client), requests


@pytest.mark.parametrize(
    ("url", "enabled"),
    [
        ("https://hooks.example.com/abc", True),
        ("http://localhost:8080/notify", True),
        ("", False),
        ("   ", False),
        ("ftp://hooks.example.com", False),
        ("https://YOUR_WEBHOOK_URL", False),
        ("[https://hooks.example.com]", False),
        (None, False),
    ],
)
def test_webhook_enabled(url, enabled) -> None:
    assert webhook_enabled(url) is enabled


def test_build_url_param_url() -> None:
    assert build_url_param_url("https://h.io/n", "message", "Call Bob & Co") == (
        "https://h.io/n?message=Call%20Bob%20%26%20Co"
    )
    assert build_url_param_url("https://h.io/n?token=1", "text", "a/b") == (
        "https://h.io/n?token=1&text=a%2Fb"
    )


def test_build_url_param_url_keeps_unreserved_marks() -> None:
    assert build_url_param_url("https://h.io/n", "m", "Call (now)! it's *urgent*") == (
        "https://h.io/n?m=Call%20(now)!%20it's%20*urgent*"
    )


class TestWebhookNotifier:
    """Test suite for WebhookNotifier."""

    @pytest.mark.asyncio
    async def test_json_mode(self, settings) -> None:
        settings.webhook_url = "https://hooks.example.com/abc"
        notifier, requests = _notifier(settings)
        message = make_message("m1", sender="Ann <ann@x.com>", subject="Contract")
        decision = Decision(importance="STAR", notify=True, notification_text="Sign today")

        assert await notifier.notify(decision, message) is True

        request = requests[0]
        assert request.method == "POST"
        body = json.loads(request.content)
        assert body["messageId"] == "m1"
        assert body["subject"] == "Contract"
        assert body["sender"] == "Ann <ann@x.com>"
        assert body["notificationText"] == "Sign today"
        assert body["geminiOutput"]["importance"] == "STAR"
        assert body["geminiOutput"]["notify"] is True

    @pytest.mark.asyncio
    async def test_text_mode_uses_default_text(self, settings) -> None:
        settings.webhook_url = "https://hooks.example.com/abc"
        settings.webhook_mode = WebhookMode.TEXT
        notifier, requests = _notifier(settings)

        await notifier.notify(Decision(notify=True), make_message("m1", sender="ann@x.com"))

        request = requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"].startswith("text/plain")
        assert request.content.decode("utf-8") == "Action required for email from ann@x.com"

    @pytest.mark.asyncio
    async def test_url_param_mode(self, settings) -> None:
        settings.webhook_url = "https://hooks.example.com/notify?chat=1"
        settings.webhook_mode = WebhookMode.URL_PARAM
        settings.webhook_param_name = "msg"
        notifier, requests = _notifier(settings)

        await notifier.notify(Decision(notification_text="Urgent: reply"), make_message("m1"))

        request = requests[0]
        assert request.method == "GET"
        assert request.url.params["chat"] == "1"
        assert request.url.params["msg"] == "Urgent: reply"

    @pytest.mark.asyncio
    async def test_disabled_sends_nothing(self, settings) -> None:
        settings.webhook_url = ""
        notifier, requests = _notifier(settings)

        assert await notifier.notify(Decision(notify=True), make_message("m1")) is False
        assert requests == []

    @pytest.mark.asyncio
    async def test_rejected_status_returns_false(self, settings) -> None:
        settings.webhook_url = "https://hooks.example.com/abc"
        notifier, _ = _notifier(settings, lambda request: httpx.Response(500))

        assert await notifier.notify(Decision(notify=True), make_message("m1")) is False

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self, settings) -> None:
        settings.webhook_url = "https://hooks.example.com/abc"

        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        notifier, _ = _notifier(settings, _refuse)

        assert await notifier.notify(Decision(notify=True), make_message("m1")) is False
