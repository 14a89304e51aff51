"""Unit tests for the Gmail mailbox."""

from __future__ import annotations

import base64
from email import message_from_bytes
from email.message import Message
from typing import Any

import pytest
from conftest import OWNER, make_message, make_thread

from mail_triage_agent.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from mail_triage_agent.gmail import GmailMailbox


class _Request:
    def __init__(self, result: Any) -> None:
        self._result = result

    def execute(self) -> Any:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class _Resource:
    """Records ``name(**kwargs)`` calls and answers from a response table."""

    def __init__(self, service: "_FakeService", path: str) -> None:
        self._service = service
        self._path = path

    def __getattr__(self, name: str):
        path = f"{self._path}.{name}" if self._path else name

        def _call(**kwargs: Any):
            if path in self._service.leaves:
                self._service.calls.append((path, kwargs))
                return _Request(self._service.leaves[path](**kwargs))
            return _Resource(self._service, path)

        return _call


class _FakeService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.leaves = {
            "users.getProfile": lambda **kw: {"emailAddress": OWNER},
            "users.labels.list": lambda **kw: {"labels": [{"id": "Label_1", "name": "ai_star"}]},
            "users.labels.create": lambda **kw: {"id": "Label_2", "name": kw["body"]["name"]},
            "users.threads.modify": lambda **kw: {},
            "users.threads.trash": lambda **kw: {},
            "users.messages.modify": lambda **kw: {},
            "users.drafts.create": lambda **kw: {"id": "draft-1"},
        }

    def users(self) -> _Resource:
        return _Resource(self, "users")

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


def _mailbox(settings, service: _FakeService) -> GmailMailbox:
    mailbox = GmailMailbox(settings)
    mailbox._service = service
    return mailbox


def _decode_draft(call_kwargs: dict[str, Any]) -> Message:
    raw = call_kwargs["body"]["message"]["raw"]
    return message_from_bytes(base64.urlsafe_b64decode(raw))


class TestGmailMailbox:
    """Test suite for GmailMailbox class."""

    def test_gmail_mailbox_initialization(self, settings) -> None:
        """Test that the Gmail mailbox is properly initialized."""
        mailbox = GmailMailbox(settings)

        assert mailbox.settings is settings
        assert mailbox._service is None

    @pytest.mark.asyncio
    async def test_authenticate_missing_credentials_raises(self, settings) -> None:
        """Test that authenticate fails fast when no credentials or token exist."""
        mailbox = GmailMailbox(settings)

        with pytest.raises(ConfigurationError):
            await mailbox.authenticate()

    @pytest.mark.asyncio
    async def test_search_requires_authentication(self, settings) -> None:
        """Test that search_threads requires authenticate() first."""
        mailbox = GmailMailbox(settings)

        with pytest.raises(AuthenticationError):
            await mailbox.search_threads("is:unread")

    @pytest.mark.asyncio
    async def test_add_label_creates_missing_label_once(self, settings) -> None:
        service = _FakeService()
        mailbox = _mailbox(settings, service)

        await mailbox.add_label("t1", "ai_draft")
        await mailbox.add_label("t2", "ai_draft")
        await mailbox.add_label("t3", "ai_star")

        assert service.paths().count("users.labels.create") == 1
        modifies = [kw for path, kw in service.calls if path == "users.threads.modify"]
        assert [kw["body"]["addLabelIds"] for kw in modifies] == [
            ["Label_2"],
            ["Label_2"],
            ["Label_1"],
        ]

    @pytest.mark.asyncio
    async def test_mutations_map_to_gmail_calls(self, settings) -> None:
        service = _FakeService()
        mailbox = _mailbox(settings, service)

        await mailbox.mark_read("t1")
        await mailbox.archive("t1")
        await mailbox.trash("t2")
        await mailbox.star("m1")

        bodies = [kw.get("body") for _, kw in service.calls]
        assert service.paths() == [
            "users.threads.modify",
            "users.threads.modify",
            "users.threads.trash",
            "users.messages.modify",
        ]
        assert bodies[0] == {"addLabelIds": [], "removeLabelIds": ["UNREAD"]}
        assert bodies[1] == {"addLabelIds": [], "removeLabelIds": ["INBOX"]}
        assert bodies[3] == {"addLabelIds": ["STARRED"], "removeLabelIds": []}

    @pytest.mark.asyncio
    async def test_api_failure_is_wrapped(self, settings) -> None:
        service = _FakeService()
        service.leaves["users.threads.trash"] = lambda **kw: RuntimeError("HttpError 500")
        mailbox = _mailbox(settings, service)

        with pytest.raises(GmailAPIError):
            await mailbox.trash("t1")

    @pytest.mark.asyncio
    async def test_create_draft_reply_all(self, settings) -> None:
        service = _FakeService()
        mailbox = _mailbox(settings, service)
        message = make_message(
            "m1",
            thread_id="t1",
            sender="Bob <bob@client.com>",
            to=f"{OWNER}, carol@client.com",
            cc="dave@client.com",
            subject="Budget",
        )

        draft_id = await mailbox.create_draft_reply_all(
            make_thread("t1", message),
            message,
            body="Looks good.\n",
            html_body="<div>Looks good.</div>",
        )

        assert draft_id == "draft-1"
        kwargs = next(kw for path, kw in service.calls if path == "users.drafts.create")
        assert kwargs["body"]["message"]["threadId"] == "t1"
        mime = _decode_draft(kwargs)
        assert mime["To"] == "bob@client.com, carol@client.com"
        assert mime["Cc"] == "dave@client.com"
        assert mime["Subject"] == "Re: Budget"
        assert mime["In-Reply-To"] == "<m1@mail.example.com>"
        assert mime.is_multipart()
        assert [part.get_content_type() for part in mime.get_payload()] == [
            "text/plain",
            "text/html",
        ]
