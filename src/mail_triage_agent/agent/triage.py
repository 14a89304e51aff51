"""Stage 1: triage a batch and apply the resulting mailbox mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import structlog

from mail_triage_agent.agent.batch import BatchEntry, RunBatch
from mail_triage_agent.config import LabelNames, Settings
from mail_triage_agent.llm import LLMGateway
from mail_triage_agent.llm.prompts import TRIAGE_SYSTEM_PROMPT, build_triage_user_prompt
from mail_triage_agent.mailbox import Mailbox
from mail_triage_agent.models import Decision, Importance, parse_decisions
from mail_triage_agent.notify import WebhookNotifier

logger = structlog.get_logger()


class Mutation(str, Enum):
    NONE = "none"
    STAR = "star"
    ARCHIVE = "archive"
    TRASH = "trash"

    @property
    def destructive(self) -> bool:
        return self in (Mutation.ARCHIVE, Mutation.TRASH)


@dataclass(frozen=True)
class ImportanceAction:
    """What an importance verdict does to a thread.

    ``label`` selects a field of ``LabelNames``. ``short_circuit`` skips the
    notify/draft flags, and only applies once the destructive mutation ran.
    """

    label: Optional[Callable[[LabelNames], str]]
    mutation: Mutation
    short_circuit: bool


IMPORTANCE_ACTIONS: dict[Importance, ImportanceAction] = {
    Importance.ARCHIVE: ImportanceAction(lambda n: n.archive, Mutation.ARCHIVE, True),
    Importance.BLOCK: ImportanceAction(lambda n: n.block, Mutation.TRASH, True),
    Importance.STAR: ImportanceAction(lambda n: n.star, Mutation.STAR, False),
    Importance.UNSURE: ImportanceAction(lambda n: n.unsure, Mutation.NONE, False),
    Importance.NEITHER: ImportanceAction(None, Mutation.NONE, False),
}


@dataclass
class TriageOutcome:
    decisions: dict[str, Decision] = field(default_factory=dict)
    draft_candidates: list[BatchEntry] = field(default_factory=list)
    applied: int = 0
    failed: int = 0
    dropped: int = 0
    notified: int = 0


class TriageOrchestrator:
    """Ask the triage model for decisions and act on them thread by thread."""

    def __init__(
        self,
        *,
        settings: Settings,
        mailbox: Mailbox,
        gateway: LLMGateway,
        notifier: WebhookNotifier | None = None,
    ) -> None:
        self.settings = settings
        self.mailbox = mailbox
        self.gateway = gateway
        self.notifier = notifier

    async def run(self, batch: RunBatch, triage_context: str) -> TriageOutcome:
        """Triage ``batch`` and apply labels and mutations.

        Raises:
            LLMTransportError: If the model endpoint could not be reached.
        """

        outcome = TriageOutcome()
        if not len(batch):
            return outcome

        user_prompt = build_triage_user_prompt(
            items=batch.items,
            triage_context=triage_context,
            high_priority_labels=self.settings.high_priority_labels,
            low_priority_labels=self.settings.low_priority_labels,
        )
        raw = await self.gateway.invoke(
            self.settings.triage_prompt or TRIAGE_SYSTEM_PROMPT,
            user_prompt,
            model=self.settings.gemini_model_triage,
        )
        outcome.decisions = parse_decisions(raw)

        for local_id, decision in outcome.decisions.items():
            entry = batch.resolve(local_id)
            if entry is None:
                logger.warning("triage_unknown_local_id", local_id=local_id)
                outcome.dropped += 1
                continue

            try:
                queued = await self._apply(entry, decision, outcome)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "triage_apply_failed",
                    local_id=local_id,
                    thread_id=entry.thread.id,
                )
                outcome.failed += 1
                continue

            outcome.applied += 1
            if queued:
                outcome.draft_candidates.append(entry)

        logger.info(
            "triage_completed",
            items=len(batch),
            decisions=len(outcome.decisions),
            applied=outcome.applied,
            failed=outcome.failed,
            dropped=outcome.dropped,
            draft_candidates=len(outcome.draft_candidates),
        )
        return outcome

    async def _apply(self, entry: BatchEntry, decision: Decision, outcome: TriageOutcome) -> bool:
        """Apply one decision. Returns True if the entry needs a draft."""

        labels = self.settings.labels
        thread_id = entry.thread.id
        message_id = entry.message.id
        action = IMPORTANCE_ACTIONS[decision.importance]

        logger.info(
            "triage_decision",
            local_id=entry.local_id,
            thread_id=thread_id,
            importance=decision.importance.value,
            draft_reply=decision.draft_reply,
            notify=decision.notify,
            reason=decision.reason,
        )

        if action.label is not None:
            await self.mailbox.add_label(thread_id, action.label(labels))

        mutated = False
        if action.mutation is Mutation.STAR:
            await self.mailbox.star(message_id)
        elif action.mutation.destructive and self.settings.enable_destructive_actions:
            if action.mutation is Mutation.ARCHIVE:
                await self.mailbox.mark_read(thread_id)
                await self.mailbox.archive(thread_id)
            else:
                await self.mailbox.trash(thread_id)
            mutated = True

        if action.short_circuit and mutated:
            return False

        if decision.notify:
            await self.mailbox.add_label(thread_id, labels.notify)
            await self.mailbox.star(message_id)
            if self.notifier is not None and await self.notifier.notify(decision, entry.message):
                outcome.notified += 1

        if decision.draft_reply:
            await self.mailbox.add_label(thread_id, labels.draft)
            await self.mailbox.star(message_id)
            return True

        return False
