"""LLM prompt contracts for the triage and drafting passes."""

from __future__ import annotations

import json

from mail_triage_agent.models import BatchItem

TRIAGE_SYSTEM_PROMPT = """\
You are an executive email triage assistant. Review each incoming email and decide what to do with it.

ASSESSMENT 1: IMPORTANCE (pick exactly one)
- ARCHIVE: low value, newsletters, cold outreach, irrelevant notifications.
- BLOCK: obvious spam or malicious mail.
- STAR: high priority, needs to be read.
- NEITHER: normal priority, read later.
- UNSURE: you are genuinely uncertain.

ASSESSMENT 2: DRAFT REPLY (boolean)
- true if the email asks for a response from me specifically.
- Leave false when importance is ARCHIVE or BLOCK.

ASSESSMENT 3: NOTIFY (boolean)
- true only if the email is urgent or time-sensitive.
- Leave false when importance is ARCHIVE or BLOCK.

HIGH PRIORITY INDICATORS:
- sales proposals, discovery meetings or presentations
- client issues, including billing and delivery failures
- a tone of dissatisfaction, anger or frustration
- time-sensitive requests for information or action
- requests for digital signatures (star, do not reply)

INPUT DATA:
1. Active context: recent projects, subjects and contacts.
2. Incoming emails: sender, subject, existing labels and a body preview.

OUTPUT FORMAT:
Return strictly JSON, one entry per email ID:
{
  "msg_0": {
    "importance": "ARCHIVE" | "BLOCK" | "STAR" | "NEITHER" | "UNSURE",
    "draft_reply": true | false,
    "notify": true | false,
    "notification_text": "Short alert text if notify is true",
    "reason": "Short explanation of your decisions"
  }
}
"""

DRAFTING_SYSTEM_PROMPT_TEMPLATE = """\
You are an executive email assistant. Draft replies for the provided emails.

VOICE & TONE:
- Mimic the user: treat the writing style examples as the reference voice.
- Micro-paragraphs of one to three sentences, separated by a blank line.
- Direct but low-friction. Lead with the update or blocker, keep technical detail high-level,
  and close with a concrete next step, approval request or time proposal.
- Sign off with "Best," followed by a blank line and {signoff}.
- Standard capitalization and punctuation. No markdown or bold text.
- No filler words such as "delve", "tapestry", "kindly". Short, plain sentences.

Each email shows the latest message first and, when present, the earlier thread history.
Reply to the latest message only.

OUTPUT FORMAT:
Return strictly JSON, one entry per email ID:
{{
  "msg_0": {{
    "draft_text": "The draft reply body",
    "reason": "Why this reply"
  }}
}}
"""


def build_drafting_system_prompt(signoff_name: str = "") -> str:
    signoff = signoff_name.strip() or "the user's first name"
    return DRAFTING_SYSTEM_PROMPT_TEMPLATE.format(signoff=signoff)


def _render_item(index: int, item: BatchItem, body: str, *, with_labels: bool) -> str:
    lines = [
        f"EMAIL #{index} (ID: {item.local_id}):",
        f"From: {item.sender}",
        f"Subject: {item.subject}",
    ]
    if with_labels:
        lines.append(f"Labels: {', '.join(item.labels) if item.labels else '(None)'}")
    lines.append(f"Body: {body}")
    lines.append("-" * 50)
    return "\n".join(lines)


def build_triage_user_prompt(
    *,
    items: list[BatchItem],
    triage_context: str,
    high_priority_labels: list[str] | None = None,
    low_priority_labels: list[str] | None = None,
) -> str:
    """Build the stage-1 user prompt from body previews."""

    emails = "\n".join(
        _render_item(i, item, item.body_preview, with_labels=True) for i, item in enumerate(items)
    )

    return (
        "ACTIVE CONTEXT (what is important to me right now):\n"
        f"{triage_context or '(none)'}\n\n"
        "USER CONFIGURATION:\n"
        f"- HIGH PRIORITY LABELS: {json.dumps(high_priority_labels or [])}\n"
        f"- LOW PRIORITY LABELS: {json.dumps(low_priority_labels or [])}\n\n"
        f"INCOMING EMAILS TO TRIAGE ({len(items)} items):\n"
        f"{emails}\n\n"
        "INSTRUCTIONS:\n"
        "Review each email against the active context.\n"
        'Return a JSON object whose keys are the IDs above (e.g. "msg_0") and whose values are '
        "decision objects in the output format from the system prompt.\n"
    )


def build_drafting_user_prompt(*, items: list[BatchItem], drafting_context: str) -> str:
    """Build the stage-2 user prompt from full bodies with thread history."""

    emails = "\n".join(
        _render_item(i, item, item.full_body, with_labels=False) for i, item in enumerate(items)
    )

    return (
        "CONTEXT:\n"
        f"{drafting_context or '(none)'}\n\n"
        f"EMAILS NEEDING A REPLY ({len(items)} items):\n"
        f"{emails}\n\n"
        "INSTRUCTIONS:\n"
        'Return a JSON object whose keys are the IDs above (e.g. "msg_0") and whose values are '
        "draft objects in the output format from the system prompt.\n"
    )
