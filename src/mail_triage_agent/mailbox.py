"""Mailbox collaborator interface.

The pipeline only talks to the mailbox through this protocol. ``GmailMailbox``
is the production implementation; tests use an in-memory fake.
"""

from __future__ import annotations

from typing import Protocol

from mail_triage_agent.models import MailMessage, MailThread


class Mailbox(Protocol):
    """Search, read and mutate primitives used by the triage pipeline.

    Labels are referenced by name and created on demand. Adding a label that is
    already present is a no-op.
    """

    async def get_owner_address(self) -> str: ...

    async def search_threads(
        self,
        query: str,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[MailThread]: ...

    async def add_label(self, thread_id: str, label_name: str) -> None: ...

    async def mark_read(self, thread_id: str) -> None: ...

    async def archive(self, thread_id: str) -> None: ...

    async def trash(self, thread_id: str) -> None: ...

    async def star(self, message_id: str) -> None: ...

    async def create_draft_reply_all(
        self,
        thread: MailThread,
        message: MailMessage,
        *,
        body: str,
        html_body: str,
    ) -> str: ...
