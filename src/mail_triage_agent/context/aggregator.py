"""Active context aggregation.

Builds two summaries of recent mailbox activity:

- a lean *triage context* (projects, recent subjects, recent contacts), and
- a *drafting context* (writing-style samples and projects only, so drafts are
  not pulled towards unrelated thread titles).

The result is cached in the state store. Within the TTL, ``build(False)``
returns the cached value even if the mailbox has changed since.
"""

from __future__ import annotations

import re

import structlog
from pydantic import ValidationError

from mail_triage_agent.config import Settings
from mail_triage_agent.mailbox import Mailbox
from mail_triage_agent.models import ActiveContext, MailThread
from mail_triage_agent.state import KeyValueStore
from mail_triage_agent.utils.text import clean_body, clean_subject, is_calendar_invite, truncate

logger = structlog.get_logger()

CACHE_KEY = "active_context"

MAX_STYLE_SAMPLES = 3
STYLE_SAMPLE_MIN_CHARS = 50
STYLE_SAMPLE_MAX_CHARS = 1000
MAX_RECENT_SUBJECTS = 30
MAX_RECENT_CONTACTS = 40

# "Card moved on Website Relaunch - Trello" / "... on Website Relaunch via Trello"
RE_PROJECT_NAME = re.compile(r" on (.*?) (?:-|via)")


def is_excluded(value: str | None, excluded: list[str]) -> bool:
    """True if ``value`` is empty or contains any excluded substring."""
    if not value:
        return True
    folded = value.lower()
    return any(item.lower() in folded for item in excluded if item)


class _OrderedSet:
    """Insertion-ordered set that also counts raw additions."""

    def __init__(self) -> None:
        self._items: dict[str, None] = {}
        self.raw_count = 0

    def add(self, value: str) -> None:
        self.raw_count += 1
        self._items.setdefault(value, None)

    def items(self, limit: int | None = None) -> list[str]:
        values = list(self._items)
        return values if limit is None else values[:limit]

    def __len__(self) -> int:
        return len(self._items)


def _section(title: str, values: list[str]) -> str:
    if not values:
        return ""
    return f"{title}:\n- " + "\n- ".join(values)


class ContextAggregator:
    """Build and cache the ``ActiveContext`` for a run."""

    def __init__(self, mailbox: Mailbox, store: KeyValueStore, settings: Settings) -> None:
        self.mailbox = mailbox
        self.store = store
        self.settings = settings

    async def build(self, force_refresh: bool = False) -> ActiveContext:
        """Return the active context, from cache unless ``force_refresh``."""

        if not force_refresh:
            cached = self._read_cache()
            if cached is not None:
                logger.info("context_cache_hit")
                return cached

        logger.info("context_build_started", force_refresh=force_refresh)

        days = self.settings.context_lookback_days
        window = f"newer_than:{days}d"
        excluded = self.settings.excluded_domains

        projects = _OrderedSet()
        subjects = _OrderedSet()
        contacts = _OrderedSet()
        style_samples: list[str] = []

        for thread in await self._search(f"{self.settings.context_label_query} {window}"):
            match = RE_PROJECT_NAME.search(thread.first_subject)
            if match and match.group(1).strip():
                projects.add(f"Active Project: {match.group(1).strip()}")

        for thread in await self._search(f"from:me {window}"):
            self._collect_sent(thread, subjects, contacts, style_samples, excluded)

        for thread in await self._search(f"is:starred {window}"):
            subject = clean_subject(thread.first_subject)
            if subject:
                subjects.add(f"{subject} (Starred)")

        projects_section = _section("ACTIVE PROJECTS", projects.items())

        triage_context = "\n\n".join(
            s
            for s in (
                projects_section,
                _section("RECENT EMAIL SUBJECTS", subjects.items(MAX_RECENT_SUBJECTS)),
                _section(
                    "RECENT CONTACTS (VIPs / Colleagues)", contacts.items(MAX_RECENT_CONTACTS)
                ),
            )
            if s
        )

        drafting_context = ""
        if style_samples:
            drafting_context = (
                "MY WRITING STYLE / VOICE EXAMPLES (Mimic this tone):\n"
                + "\n---\n".join(style_samples)
                + "\n\n"
            )
        if projects_section:
            drafting_context += "RELEVANT CONTEXT:\n" + projects_section

        limit = self.settings.max_context_chars
        context = ActiveContext(
            triage_context=truncate(triage_context, limit),
            drafting_context=truncate(drafting_context, limit),
        )

        logger.info(
            "context_build_report",
            active_projects=len(projects),
            recent_subjects=len(subjects),
            recent_subjects_raw=subjects.raw_count,
            recent_contacts=len(contacts),
            recent_contacts_raw=contacts.raw_count,
            style_examples=len(style_samples),
            triage_context_chars=len(context.triage_context),
            drafting_context_chars=len(context.drafting_context),
        )

        self._write_cache(context)
        return context

    async def _search(self, query: str) -> list[MailThread]:
        return await self.mailbox.search_threads(query, limit=self.settings.context_max_threads)

    def _collect_sent(
        self,
        thread: MailThread,
        subjects: _OrderedSet,
        contacts: _OrderedSet,
        style_samples: list[str],
        excluded: list[str],
    ) -> None:
        sent = thread.last_message_from_owner()
        if sent is None or is_excluded(sent.to, excluded):
            return

        subject = clean_subject(thread.first_subject)
        if subject:
            subjects.add(subject)

        for recipient in sent.to.split(","):
            recipient = recipient.strip()
            if recipient and not is_excluded(recipient, excluded):
                contacts.add(recipient)

        if len(style_samples) >= MAX_STYLE_SAMPLES:
            return
        if is_calendar_invite(thread.first_subject, sent.plain_body):
            return

        body = clean_body(sent.plain_body)
        if STYLE_SAMPLE_MIN_CHARS < len(body) < STYLE_SAMPLE_MAX_CHARS:
            style_samples.append(f'Subject: {sent.subject}\nBody: "{body}"')

    def _read_cache(self) -> ActiveContext | None:
        raw = self.store.get(CACHE_KEY)
        if raw is None:
            return None
        try:
            return ActiveContext.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("context_cache_unreadable", error=str(exc))
            return None

    def _write_cache(self, context: ActiveContext) -> None:
        try:
            self.store.set(
                CACHE_KEY,
                context.model_dump_json(),
                ttl_seconds=self.settings.context_cache_ttl,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("context_cache_write_failed", error=str(exc))
