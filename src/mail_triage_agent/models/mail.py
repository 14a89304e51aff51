"""Mailbox-side message and thread models.

These are read-only snapshots produced by the mailbox collaborator. The
pipeline never mutates them; mailbox changes go through the ``Mailbox``
protocol instead.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MailMessage(BaseModel):
    """A single message of a thread."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Mailbox message ID")
    thread_id: str = Field(description="Mailbox thread ID")
    sender: str = Field(default="", description="Raw From header")
    to: str = Field(default="", description="Raw To header")
    cc: str = Field(default="", description="Raw Cc header")
    subject: str = Field(default="", description="Subject header")
    plain_body: str = Field(default="", description="text/plain body")
    html_body: str = Field(default="", description="text/html body, if any")
    sent_at: datetime | None = Field(default=None, description="Send time")
    is_from_owner: bool = Field(default=False, description="Sent by the mailbox owner")
    message_id_header: str | None = Field(
        default=None, description="RFC 822 Message-ID, used for reply threading"
    )


class MailThread(BaseModel):
    """A thread with messages ordered oldest to newest."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Mailbox thread ID")
    labels: frozenset[str] = Field(default_factory=frozenset, description="User label names")
    messages: tuple[MailMessage, ...] = Field(default_factory=tuple)

    @property
    def latest(self) -> MailMessage | None:
        return self.messages[-1] if self.messages else None

    @property
    def first_subject(self) -> str:
        return self.messages[0].subject if self.messages else ""

    def last_message_from_owner(self) -> MailMessage | None:
        for message in reversed(self.messages):
            if message.is_from_owner:
                return message
        return None
