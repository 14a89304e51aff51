"""Data models for Mail Triage Agent.

This module contains Pydantic models for data validation and serialization.
Model output is untrusted: ``parse_decisions`` and ``parse_draft_results``
turn the raw JSON mapping returned by the gateway into typed values, so the
rest of the pipeline never handles raw model output.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from mail_triage_agent.models.mail import MailMessage, MailThread

logger = structlog.get_logger()


class Importance(str, Enum):
    """Stage-1 importance verdict."""

    ARCHIVE = "ARCHIVE"
    BLOCK = "BLOCK"
    STAR = "STAR"
    NEITHER = "NEITHER"
    UNSURE = "UNSURE"


_TRUE_STRINGS = {"true", "yes", "y", "1"}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class Decision(BaseModel):
    """Triage decision for one batch item."""

    importance: Importance = Field(default=Importance.NEITHER)
    draft_reply: bool = Field(default=False)
    notify: bool = Field(default=False)
    notification_text: Optional[str] = Field(default=None)
    reason: str = Field(default="")

    @field_validator("importance", mode="before")
    @classmethod
    def _importance(cls, v: Any) -> Importance:
        if isinstance(v, Importance):
            return v
        if isinstance(v, str):
            try:
                return Importance(v.strip().upper())
            except ValueError:
                pass
        return Importance.NEITHER

    @field_validator("draft_reply", "notify", mode="before")
    @classmethod
    def _flags(cls, v: Any) -> bool:
        return _coerce_bool(v)

    @field_validator("notification_text", mode="before")
    @classmethod
    def _notification_text(cls, v: Any) -> Optional[str]:
        text = _coerce_text(v).strip()
        return text or None

    @field_validator("reason", mode="before")
    @classmethod
    def _reason(cls, v: Any) -> str:
        return _coerce_text(v)


class DraftResult(BaseModel):
    """Drafting result for one candidate."""

    draft_text: str = Field(default="")
    reason: str = Field(default="")

    @field_validator("draft_text", "reason", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _coerce_text(v)


class BatchItem(BaseModel):
    """Run-scoped view of one thread as sent to the model.

    ``local_id`` is unique within a run only and is never a mailbox ID.
    """

    local_id: str = Field(description='Synthetic id, "msg_<index>"')
    sender: str = Field(default="")
    subject: str = Field(default="")
    body_preview: str = Field(default="", description="Short cleaned body for triage")
    full_body: str = Field(default="", description="Latest message plus thread history")
    labels: list[str] = Field(default_factory=list)


class ActiveContext(BaseModel):
    """Compact situational summary used to ground both LLM passes."""

    triage_context: str = Field(default="")
    drafting_context: str = Field(default="")


def _parse_entries(raw: Mapping[str, Any], model: type[BaseModel], kind: str) -> dict[str, Any]:
    parsed: dict[str, Any] = {}
    for local_id, value in raw.items():
        if not isinstance(value, Mapping):
            logger.warning("llm_entry_not_object", kind=kind, local_id=local_id)
            continue
        try:
            parsed[str(local_id)] = model.model_validate(dict(value))
        except ValidationError as exc:
            logger.warning("llm_entry_invalid", kind=kind, local_id=local_id, error=str(exc))
    return parsed


def parse_decisions(raw: Mapping[str, Any]) -> dict[str, Decision]:
    """Validate a flattened triage mapping into ``Decision`` values."""
    return _parse_entries(raw, Decision, "decision")


def parse_draft_results(raw: Mapping[str, Any]) -> dict[str, DraftResult]:
    """Validate a flattened drafting mapping into ``DraftResult`` values."""
    return _parse_entries(raw, DraftResult, "draft")


__all__ = [
    "ActiveContext",
    "BatchItem",
    "Decision",
    "DraftResult",
    "Importance",
    "MailMessage",
    "MailThread",
    "parse_decisions",
    "parse_draft_results",
]
