"""Run-scoped batch construction.

Each thread picked up by a run becomes one ``BatchItem`` with a synthetic
``msg_<index>`` id. The model only ever sees these ids; decisions are mapped
back to the real thread and message through ``RunBatch.entries``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from mail_triage_agent.config import Settings
from mail_triage_agent.models import BatchItem, MailMessage, MailThread
from mail_triage_agent.utils.text import clean_body

logger = structlog.get_logger()


@dataclass(frozen=True)
class BatchEntry:
    local_id: str
    thread: MailThread
    message: MailMessage
    item: BatchItem


@dataclass
class RunBatch:
    """Batch items in prompt order plus the ``local_id`` lookup table."""

    entries: dict[str, BatchEntry] = field(default_factory=dict)

    @property
    def items(self) -> list[BatchItem]:
        return [entry.item for entry in self.entries.values()]

    def resolve(self, local_id: str) -> BatchEntry | None:
        return self.entries.get(local_id)

    def __len__(self) -> int:
        return len(self.entries)


def build_full_body(thread: MailThread, settings: Settings) -> str:
    """Latest message followed by up to ``history_depth`` earlier messages."""

    latest = thread.messages[-1]
    body = "[LATEST MESSAGE]\n" + clean_body(latest.plain_body, settings.draft_body_chars)

    history = thread.messages[:-1][-settings.history_depth :] if settings.history_depth else ()
    if history:
        body += "\n\n[THREAD HISTORY]"
        # newest first
        for previous in reversed(history):
            snippet = clean_body(previous.plain_body, settings.history_message_chars)
            body += f"\n--- PREVIOUS MESSAGE (From: {previous.sender}) ---\n{snippet}"
    return body


def build_batch(threads: list[MailThread], settings: Settings) -> RunBatch:
    """Build the run batch; threads without messages are skipped."""

    batch = RunBatch()
    for thread in threads:
        latest = thread.latest
        if latest is None:
            logger.warning("batch_thread_empty", thread_id=thread.id)
            continue

        local_id = f"msg_{len(batch)}"
        item = BatchItem(
            local_id=local_id,
            sender=latest.sender,
            subject=latest.subject,
            body_preview=clean_body(latest.plain_body, settings.triage_preview_chars),
            full_body=build_full_body(thread, settings),
            labels=sorted(thread.labels),
        )
        batch.entries[local_id] = BatchEntry(
            local_id=local_id, thread=thread, message=latest, item=item
        )

    logger.info("batch_built", items=len(batch))
    return batch
