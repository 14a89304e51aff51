"""Body and subject clean-up for model consumption.

All functions here are pure.
"""

from __future__ import annotations

import re

RE_QUOTED_TAIL = re.compile(r"On .* wrote:[\s\S]*$")
RE_QUOTE_LINE = re.compile(r"^>.*$", re.MULTILINE)
RE_FORWARD_HEADER = re.compile(r"From:.*[\s\S]*?Subject:.*")
RE_SIGNATURE = re.compile(r"^--[ \t]*$", re.MULTILINE)
RE_BLANK_LINES = re.compile(r"\n\s*\n")

RE_SUBJECT_PREFIX = re.compile(
    r"^\s*(?:re:|fwd:|fw:|invitation:|accepted:|declined:|updated invitation:"
    r"|canceled event:|synced invitation:|\[external\])\s*",
    re.IGNORECASE,
)
# " @ Tue Jan 1, 2025 10am - 11am (EST)" left behind by calendar invites.
RE_SUBJECT_TIME_SUFFIX = re.compile(r"\s@\s\w{3}\s\w{3}\s\d{1,2},.*$")
MAX_PREFIX_PASSES = 5

CALENDAR_SUBJECT_MARKERS: tuple[str, ...] = (
    "invitation:",
    "accepted:",
    "declined:",
    "canceled event:",
    "updated invitation:",
    "synced invitation:",
)
CALENDAR_BODY_MARKERS: tuple[str, ...] = (
    "invite.ics",
    "google.com/calendar/event",
    "View all guest info",
)


def clean_body(raw: str | None, max_chars: int | None = None) -> str:
    """Strip reply chrome from a message body.

    Removes the quoted tail after an "On ... wrote:" marker, quoted lines,
    an embedded forwarded header block and the signature, then collapses
    blank lines. Truncation is a plain character cut.
    """

    if not raw:
        return ""

    text = raw.replace("\r\n", "\n")
    text = RE_QUOTED_TAIL.sub("", text, count=1)
    text = RE_QUOTE_LINE.sub("", text)
    text = RE_FORWARD_HEADER.sub("", text, count=1)
    text = RE_SIGNATURE.split(text, maxsplit=1)[0]
    text = RE_BLANK_LINES.sub("\n\n", text)
    text = text.strip()

    if max_chars is not None:
        text = text[:max_chars]
    return text


def is_calendar_invite(subject: str | None, body: str | None) -> bool:
    s = (subject or "").lower()
    if any(marker in s for marker in CALENDAR_SUBJECT_MARKERS):
        return True
    b = body or ""
    return any(marker in b for marker in CALENDAR_BODY_MARKERS)


def clean_subject(subject: str | None) -> str:
    if not subject:
        return ""

    cleaned = subject
    for _ in range(MAX_PREFIX_PASSES):
        if not RE_SUBJECT_PREFIX.match(cleaned):
            break
        cleaned = RE_SUBJECT_PREFIX.sub("", cleaned, count=1)

    cleaned = RE_SUBJECT_TIME_SUFFIX.sub("", cleaned)
    return cleaned.strip()


def truncate(text: str, max_chars: int, suffix: str = "...(truncated)") -> str:
    """Hard-cap ``text``; the suffix is appended only when something was cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + suffix
