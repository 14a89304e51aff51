"""Stage 2: draft replies for triaged threads that need one."""

from __future__ import annotations

import html
from datetime import datetime

import structlog

from mail_triage_agent.agent.batch import BatchEntry, RunBatch
from mail_triage_agent.config import Settings
from mail_triage_agent.llm import LLMGateway
from mail_triage_agent.llm.prompts import build_drafting_system_prompt, build_drafting_user_prompt
from mail_triage_agent.mailbox import Mailbox
from mail_triage_agent.models import MailMessage, parse_draft_results

logger = structlog.get_logger()

QUOTE_STYLE = "margin:0 0 0 .8ex;border-left:1px #ccc solid;padding-left:1ex"


def format_quote_date(value: datetime | None) -> str:
    """Format a send date the way mail clients do, e.g. ``Tue, Jan 1, 2025 at 10:00 AM``."""

    if value is None:
        return "an earlier date"
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value:%a, %b} {value.day}, {value.year} at {hour}:{value:%M} {meridiem}"


def quote_header(message: MailMessage) -> str:
    return f"On {format_quote_date(message.sent_at)}, {message.sender} wrote:"


def render_reply_html(draft_text: str, original: MailMessage) -> str:
    reply = html.escape(draft_text).replace("\n", "<br>")
    quoted = original.html_body or html.escape(original.plain_body).replace("\n", "<br>")
    return (
        f'<div dir="ltr">{reply}</div><br>'
        '<div class="gmail_quote">'
        f'<div dir="ltr" class="gmail_attr">{html.escape(quote_header(original))}<br></div>'
        f'<blockquote class="gmail_quote" style="{QUOTE_STYLE}">{quoted}</blockquote>'
        "</div>"
    )


def render_reply_text(draft_text: str, original: MailMessage) -> str:
    quoted = "\n".join(f"> {line}" if line else ">" for line in original.plain_body.splitlines())
    return f"{draft_text}\n\n{quote_header(original)}\n{quoted}".rstrip() + "\n"


class DraftOrchestrator:
    """Ask the drafting model for replies and save them as drafts."""

    def __init__(
        self,
        *,
        settings: Settings,
        mailbox: Mailbox,
        gateway: LLMGateway,
    ) -> None:
        self.settings = settings
        self.mailbox = mailbox
        self.gateway = gateway

    async def run(self, candidates: list[BatchEntry], drafting_context: str) -> int:
        """Draft replies for ``candidates``.

        Returns:
            Number of drafts created.

        Raises:
            LLMTransportError: If the model endpoint could not be reached.
        """

        if not candidates:
            logger.info("drafting_skipped", reason="no_candidates")
            return 0

        # Candidates keep their stage-1 ids.
        lookup = RunBatch(entries={entry.local_id: entry for entry in candidates})

        system_prompt = self.settings.drafting_prompt or build_drafting_system_prompt(
            self.settings.signoff_name
        )
        raw = await self.gateway.invoke(
            system_prompt,
            build_drafting_user_prompt(items=lookup.items, drafting_context=drafting_context),
            model=self.settings.gemini_model_drafting,
        )

        created = 0
        for local_id, result in parse_draft_results(raw).items():
            entry = lookup.resolve(local_id)
            if entry is None:
                logger.warning("drafting_unknown_local_id", local_id=local_id)
                continue

            text = result.draft_text.strip()
            if not text:
                logger.info("drafting_empty", local_id=local_id, thread_id=entry.thread.id)
                continue

            try:
                draft_id = await self.mailbox.create_draft_reply_all(
                    entry.thread,
                    entry.message,
                    body=render_reply_text(text, entry.message),
                    html_body=render_reply_html(text, entry.message),
                )
            except Exception:  # noqa: BLE001
                logger.exception(
                    "drafting_create_failed", local_id=local_id, thread_id=entry.thread.id
                )
                continue

            created += 1
            logger.info(
                "draft_created",
                local_id=local_id,
                thread_id=entry.thread.id,
                draft_id=draft_id,
                reason=result.reason,
            )

        logger.info("drafting_completed", candidates=len(candidates), created=created)
        return created
