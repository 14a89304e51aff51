"""Helpers for parsing Gmail API thread payloads into internal models."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any

from mail_triage_agent.models import MailMessage, MailThread


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first for now.
            result.setdefault(name.lower(), value)
    return result


def _parse_address_list(value: str | None) -> list[str]:
    if not value:
        return []
    # getaddresses returns list[(name, addr)]
    return [addr for _, addr in getaddresses([value]) if addr]


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _decode_b64(data: str) -> str:
    raw = base64.urlsafe_b64decode(data.encode("utf-8") + b"=" * (-len(data) % 4))
    return raw.decode("utf-8", errors="replace")


def _collect_bodies(part: dict[str, Any], plain: list[str], html: list[str]) -> None:
    mime = (part.get("mimeType") or "").lower()
    data = (part.get("body") or {}).get("data")
    if data:
        if mime.startswith("text/plain"):
            plain.append(_decode_b64(data))
        elif mime.startswith("text/html"):
            html.append(_decode_b64(data))

    for p in part.get("parts") or []:
        _collect_bodies(p, plain, html)


def _sent_at(message: dict[str, Any], date_header: str | None) -> datetime | None:
    internal_date_raw = message.get("internalDate")
    try:
        if internal_date_raw is not None:
            return datetime.fromtimestamp(int(internal_date_raw) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        pass
    return _parse_date(date_header)


def is_owner_address(from_raw: str | None, owner_address: str) -> bool:
    if not owner_address:
        return False
    owner = owner_address.lower()
    return any(addr.lower() == owner for addr in _parse_address_list(from_raw))


def message_to_mail_message(message: dict[str, Any], owner_address: str = "") -> MailMessage:
    """Convert a Gmail API message (format=full) to MailMessage.

    Args:
        message: Gmail API message dict.
        owner_address: Mailbox owner address, used to set ``is_from_owner``.

    Returns:
        MailMessage: Parsed message.
    """

    hm = _header_map(message)

    plain: list[str] = []
    html: list[str] = []
    _collect_bodies(message.get("payload") or {}, plain, html)

    plain_body = "\n\n".join(plain).strip()
    if not plain_body:
        # Gmail's snippet is short but better than nothing.
        plain_body = (message.get("snippet") or "").strip()

    from_raw = hm.get("from") or ""

    return MailMessage(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or ""),
        sender=from_raw,
        to=hm.get("to") or "",
        cc=hm.get("cc") or "",
        subject=hm.get("subject") or "",
        plain_body=plain_body,
        html_body="\n".join(html).strip(),
        sent_at=_sent_at(message, hm.get("date")),
        is_from_owner=is_owner_address(from_raw, owner_address),
        message_id_header=hm.get("message-id"),
    )


def thread_to_mail_thread(
    thread: dict[str, Any],
    *,
    owner_address: str = "",
    label_names: dict[str, str] | None = None,
) -> MailThread:
    """Convert a Gmail API thread (format=full) to MailThread.

    Label IDs are mapped to names through ``label_names``; unknown IDs are kept
    as-is so system labels such as ``INBOX`` still show up.
    """

    label_names = label_names or {}
    raw_messages = thread.get("messages") or []

    label_set: set[str] = set()
    for m in raw_messages:
        for label_id in m.get("labelIds") or []:
            if isinstance(label_id, str):
                label_set.add(label_names.get(label_id, label_id))

    messages = [message_to_mail_message(m, owner_address) for m in raw_messages]
    # Gmail returns thread messages oldest first; keep that order explicit.
    messages.sort(key=lambda m: m.sent_at or datetime.min.replace(tzinfo=timezone.utc))

    return MailThread(
        id=str(thread.get("id") or ""),
        labels=frozenset(label_set),
        messages=tuple(messages),
    )


def reply_all_recipients(message: MailMessage, owner_address: str) -> tuple[list[str], list[str]]:
    """Return (to, cc) address lists for a reply-all, excluding the owner."""

    owner = owner_address.lower()
    seen: set[str] = set()

    def _keep(addrs: list[str]) -> list[str]:
        out: list[str] = []
        for addr in addrs:
            key = addr.lower()
            if key == owner or key in seen:
                continue
            seen.add(key)
            out.append(addr)
        return out

    to = _keep(_parse_address_list(message.sender) + _parse_address_list(message.to))
    cc = _keep(_parse_address_list(message.cc))
    return to, cc
