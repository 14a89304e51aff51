"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from mail_triage_agent.config import Settings
from mail_triage_agent.exceptions import GmailAPIError
from mail_triage_agent.models import MailMessage, MailThread
from mail_triage_agent.state import SQLiteStateRepository

OWNER = "owner@example.com"
BASE_TIME = datetime(2025, 1, 7, 9, 30, tzinfo=timezone.utc)


def make_message(
    message_id: str,
    *,
    thread_id: str = "t1",
    sender: str = "Alice <alice@client.com>",
    to: str = OWNER,
    cc: str = "",
    subject: str = "Project update",
    body: str = "Hi, can you send the report?",
    html_body: str = "",
    sent_at: datetime | None = None,
    from_owner: bool = False,
) -> MailMessage:
    return MailMessage(
        id=message_id,
        thread_id=thread_id,
        sender=sender,
        to=to,
        cc=cc,
        subject=subject,
        plain_body=body,
        html_body=html_body,
        sent_at=sent_at or BASE_TIME,
        is_from_owner=from_owner,
        message_id_header=f"<{message_id}@mail.example.com>",
    )


def make_thread(
    thread_id: str,
    *messages: MailMessage,
    labels: set[str] | None = None,
    **message_kwargs: Any,
) -> MailThread:
    """Build a thread; with no messages, one default message ``<thread_id>-m1`` is added."""
    if not messages:
        messages = (make_message(f"{thread_id}-m1", thread_id=thread_id, **message_kwargs),)
    return MailThread(id=thread_id, labels=frozenset(labels or ()), messages=tuple(messages))


class FakeMailbox:
    """In-memory mailbox recording every mutation.

    ``search_results`` maps a query prefix to the threads returned for it.
    ``failures`` holds ``(operation, id)`` pairs that raise ``GmailAPIError``.
    """

    def __init__(
        self,
        search_results: dict[str, list[MailThread]] | None = None,
        *,
        owner: str = OWNER,
        failures: set[tuple[str, str]] | None = None,
    ) -> None:
        self.search_results = search_results or {}
        self.owner = owner
        self.failures = failures or set()
        self.queries: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.labels: dict[str, set[str]] = {}
        self.drafts: list[dict[str, Any]] = []

    def _record(self, operation: str, target: str) -> None:
        if (operation, target) in self.failures:
            raise GmailAPIError(f"{operation} failed for {target}")
        self.calls.append((operation, target))

    def ops(self, operation: str) -> list[str]:
        return [target for op, target in self.calls if op == operation]

    async def get_owner_address(self) -> str:
        return self.owner

    async def search_threads(
        self,
        query: str,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[MailThread]:
        self.queries.append(query)
        for prefix, threads in self.search_results.items():
            if query.startswith(prefix):
                end = None if limit is None else offset + limit
                return list(threads[offset:end])
        return []

    async def add_label(self, thread_id: str, label_name: str) -> None:
        self._record("add_label", thread_id)
        self.labels.setdefault(thread_id, set()).add(label_name)

    async def mark_read(self, thread_id: str) -> None:
        self._record("mark_read", thread_id)

    async def archive(self, thread_id: str) -> None:
        self._record("archive", thread_id)

    async def trash(self, thread_id: str) -> None:
        self._record("trash", thread_id)

    async def star(self, message_id: str) -> None:
        self._record("star", message_id)

    async def create_draft_reply_all(
        self,
        thread: MailThread,
        message: MailMessage,
        *,
        body: str,
        html_body: str,
    ) -> str:
        self._record("create_draft", thread.id)
        draft_id = f"draft-{len(self.drafts) + 1}"
        self.drafts.append(
            {
                "id": draft_id,
                "thread_id": thread.id,
                "message_id": message.id,
                "body": body,
                "html_body": html_body,
            }
        )
        return draft_id


class FakeGateway:
    """Gateway returning queued responses; an exception in the queue is raised."""

    def __init__(self, *responses: dict[str, Any] | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, str]] = []

    async def invoke(self, system_prompt: str, user_prompt: str, *, model: str) -> dict[str, Any]:
        self.calls.append({"system": system_prompt, "user": user_prompt, "model": model})
        if not self.responses:
            return {}
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeNotifier:
    """Records notifications instead of sending them."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list[tuple[Any, MailMessage]] = []

    async def notify(self, decision: Any, message: MailMessage) -> bool:
        self.sent.append((decision, message))
        return self.result


class MemoryStore:
    """Dict-backed key/value store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    def delete(self, key: str) -> None:
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Provide settings isolated from the environment's state and credentials."""
    return Settings(
        gemini_api_key="test-key",
        gmail_credentials_path=tmp_path / "credentials.json",
        gmail_token_path=tmp_path / "token.json",
        state_db_path=tmp_path / "state.sqlite3",
        webhook_url="",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(BASE_TIME.timestamp())


@pytest.fixture
def sqlite_store(tmp_path: Path, clock: FakeClock) -> SQLiteStateRepository:
    store = SQLiteStateRepository(tmp_path / "state.sqlite3", max_value_bytes=10_000, clock=clock)
    store.initialize()
    return store


@pytest.fixture
def thread_factory() -> Callable[..., MailThread]:
    return make_thread


@pytest.fixture
def message_factory() -> Callable[..., MailMessage]:
    return make_message


@pytest.fixture
def sample_thread_data() -> dict:
    """Provide a Gmail API thread (format=full) with a reply from the owner."""
    return {
        "id": "thread789",
        "messages": [
            {
                "id": "msg1",
                "threadId": "thread789",
                "labelIds": ["INBOX", "UNREAD", "Label_1"],
                "internalDate": str(int(BASE_TIME.timestamp() * 1000)),
                "snippet": "Weekly report",
                "payload": {
                    "mimeType": "multipart/alternative",
                    "headers": [
                        {"name": "Subject", "value": "Weekly report"},
                        {"name": "From", "value": "Bob <bob@client.com>"},
                        {"name": "To", "value": f"{OWNER}, carol@client.com"},
                        {"name": "Message-ID", "value": "<abc@client.com>"},
                    ],
                    "parts": [
                        {
                            "mimeType": "text/plain",
                            # "Please review."
                            "body": {"data": "UGxlYXNlIHJldmlldy4"},
                        },
                        {
                            "mimeType": "text/html",
                            # "<p>Please review.</p>"
                            "body": {"data": "PHA-UGxlYXNlIHJldmlldy48L3A-"},
                        },
                    ],
                },
            },
            {
                "id": "msg2",
                "threadId": "thread789",
                "labelIds": ["SENT"],
                "internalDate": str(int((BASE_TIME + timedelta(hours=1)).timestamp() * 1000)),
                "payload": {
                    "mimeType": "text/plain",
                    "headers": [
                        {"name": "Subject", "value": "Re: Weekly report"},
                        {"name": "From", "value": f"Owner <{OWNER}>"},
                        {"name": "To", "value": "bob@client.com"},
                    ],
                    # "Done."
                    "body": {"data": "RG9uZS4"},
                },
            },
        ],
    }
