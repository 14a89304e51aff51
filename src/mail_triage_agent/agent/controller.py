"""One scheduled run: fetch, triage, draft, commit the watermark.

The watermark only advances once both LLM stages have completed without a
transport failure. Mailbox mutations applied before an abort stand; the next
run may see and re-triage those threads.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from mail_triage_agent.agent.batch import build_batch
from mail_triage_agent.agent.drafting import DraftOrchestrator
from mail_triage_agent.agent.triage import TriageOrchestrator
from mail_triage_agent.config import Settings
from mail_triage_agent.context import ContextAggregator
from mail_triage_agent.exceptions import LLMTransportError
from mail_triage_agent.llm import LLMGateway
from mail_triage_agent.mailbox import Mailbox
from mail_triage_agent.models import MailThread
from mail_triage_agent.notify import WebhookNotifier
from mail_triage_agent.state import KeyValueStore, get_watermark, set_watermark

logger = structlog.get_logger()


class RunStatus(str, Enum):
    COMPLETED = "completed"
    NO_MAIL = "no_mail"
    DEFERRED = "deferred"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RunSummary:
    status: RunStatus
    started_at: int
    watermark: int
    threads: int = 0
    decisions: int = 0
    drafts: int = 0
    error: str | None = None


class RunController:
    """Drive a single triage run end to end."""

    def __init__(
        self,
        *,
        settings: Settings,
        mailbox: Mailbox,
        gateway: LLMGateway,
        store: KeyValueStore,
        notifier: WebhookNotifier | None = None,
        context_aggregator: ContextAggregator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.mailbox = mailbox
        self.store = store
        self.clock = clock
        self.context_aggregator = context_aggregator or ContextAggregator(mailbox, store, settings)
        self.triage = TriageOrchestrator(
            settings=settings, mailbox=mailbox, gateway=gateway, notifier=notifier
        )
        self.drafting = DraftOrchestrator(settings=settings, mailbox=mailbox, gateway=gateway)

    async def run_once(self) -> RunSummary:
        """Process everything that arrived since the last committed watermark.

        Raises:
            GmailAPIError: If a mailbox search fails; nothing is committed.
        """

        started_at = int(self.clock())
        stored = get_watermark(self.store)
        watermark = (
            stored
            if stored is not None
            else started_at - self.settings.default_watermark_hours * 3600
        )

        logger.info(
            "run_started",
            started_at=started_at,
            watermark=watermark,
            watermark_stored=stored is not None,
        )

        threads = await self._fetch_threads(watermark)
        if not threads:
            logger.info("run_no_mail", watermark=watermark)
            return RunSummary(RunStatus.NO_MAIL, started_at, watermark)

        waited_minutes = (started_at - watermark) / 60
        if (
            len(threads) < self.settings.min_batch_size
            and waited_minutes < self.settings.max_wait_minutes
        ):
            logger.info(
                "run_deferred",
                threads=len(threads),
                min_batch_size=self.settings.min_batch_size,
                waited_minutes=round(waited_minutes, 1),
            )
            return RunSummary(RunStatus.DEFERRED, started_at, watermark, threads=len(threads))

        context = await self.context_aggregator.build()
        batch = build_batch(threads, self.settings)

        try:
            outcome = await self.triage.run(batch, context.triage_context)
            drafts = await self.drafting.run(outcome.draft_candidates, context.drafting_context)
        except LLMTransportError as exc:
            logger.error("run_aborted", reason="llm_transport", error=str(exc), watermark=watermark)
            return RunSummary(
                RunStatus.ABORTED,
                started_at,
                watermark,
                threads=len(threads),
                error=str(exc),
            )

        committed = max(watermark, started_at)
        set_watermark(self.store, committed)

        logger.info(
            "run_completed",
            threads=len(threads),
            decisions=len(outcome.decisions),
            drafts=drafts,
            watermark=committed,
        )
        return RunSummary(
            RunStatus.COMPLETED,
            started_at,
            committed,
            threads=len(threads),
            decisions=len(outcome.decisions),
            drafts=drafts,
        )

    async def _fetch_threads(self, watermark: int) -> list[MailThread]:
        cap = self.settings.max_emails_to_process
        seen: dict[str, MailThread] = {}

        for query in self.settings.source_labels:
            found = await self.mailbox.search_threads(f"{query} after:{watermark}", limit=cap)
            new = 0
            for thread in found:
                if thread.id not in seen:
                    seen[thread.id] = thread
                    new += 1
            logger.info("source_searched", query=query, found=len(found), new=new)

        threads = list(seen.values())[:cap]
        logger.info("threads_collected", total=len(seen), selected=len(threads))
        return threads
