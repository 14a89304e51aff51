"""Configuration management for Mail Triage Agent.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
List and nested values are given as JSON, e.g.
``MAIL_TRIAGE_SOURCE_LABELS='["is:unread in:inbox"]'`` or
``MAIL_TRIAGE_LABELS__STAR=ai_star``.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookMode(str, Enum):
    """Wire format used when notifying the webhook sink."""

    JSON = "JSON"
    TEXT = "TEXT"
    URL_PARAM = "URL_PARAM"


class LabelNames(BaseModel):
    """Mailbox label names applied for each outcome."""

    star: str = "ai_star"
    draft: str = "ai_draft"
    notify: str = "ai_notify"
    archive: str = "ai_archive"
    block: str = "ai_block"
    unsure: str = "ai_unsure"


DEFAULT_EXCLUDED_DOMAINS: list[str] = [
    "calendar-notification@google.com",
    "notifications@trello.com",
    "noreply@",
    "linkedin.com",
    "docs.google.com",
    "harvest.com",
    "gong.io",
    "fathom.video",
    "zoom.us",
    "slack.com",
]


def is_placeholder(value: str | None) -> bool:
    """Return True for setup placeholders such as ``[YOUR API KEY]``."""
    if value is None:
        return False
    stripped = value.strip()
    return stripped.startswith("[") and stripped.endswith("]")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAIL_TRIAGE_ prefix (e.g., MAIL_TRIAGE_ENABLE_DESTRUCTIVE_ACTIONS).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAIL_TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Gemini Configuration
    gemini_api_key: str = Field(
        default="",
        description="API key for the Gemini generateContent endpoint",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL of the Gemini models endpoint",
    )
    gemini_model_triage: str = Field(
        default="gemini-2.5-flash-lite",
        description="Model used for the cheap triage pass",
    )
    gemini_model_drafting: str = Field(
        default="gemini-2.5-flash",
        description="Model used for the drafting pass",
    )
    gemini_timeout: float = Field(
        default=60.0,
        description="Timeout for Gemini API requests in seconds",
    )

    # Triage behaviour
    enable_destructive_actions: bool = Field(
        default=False,
        description="If False, ARCHIVE/BLOCK decisions only apply a label",
    )
    max_emails_to_process: int = Field(
        default=30,
        ge=1,
        description="Maximum number of threads processed per run",
    )
    min_batch_size: int = Field(
        default=1,
        ge=1,
        description="Defer the run until at least this many threads are waiting",
    )
    max_wait_minutes: int = Field(
        default=120,
        ge=0,
        description="Run regardless of min_batch_size once this long has passed",
    )
    source_labels: list[str] = Field(
        default_factory=lambda: ["is:unread in:inbox -is:starred"],
        description="Mailbox queries merged and deduplicated to find candidate threads",
    )
    labels: LabelNames = Field(
        default_factory=LabelNames,
        description="Label names applied for each outcome",
    )
    high_priority_labels: list[str] = Field(
        default_factory=list,
        description="Existing labels the model should treat as high priority",
    )
    low_priority_labels: list[str] = Field(
        default_factory=list,
        description="Existing labels the model should treat as low priority",
    )
    default_watermark_hours: int = Field(
        default=24,
        ge=1,
        description="Look-back window used when no watermark has been stored yet",
    )

    # Payload sizes
    triage_preview_chars: int = Field(default=500, ge=1)
    draft_body_chars: int = Field(default=3000, ge=1)
    history_message_chars: int = Field(default=800, ge=1)
    history_depth: int = Field(default=2, ge=0)

    # Context sources
    context_label_query: str = Field(
        default="label:Trello",
        description="Query selecting threads tagged by the project board",
    )
    context_lookback_days: int = Field(default=14, ge=1)
    context_max_threads: int = Field(
        default=100,
        ge=1,
        description="Maximum threads read per context source",
    )
    context_cache_ttl: int = Field(
        default=1500,
        ge=1,
        description="Context cache time-to-live in seconds",
    )
    max_context_chars: int = Field(default=50_000, ge=1)
    excluded_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_DOMAINS),
        description="Substrings (case-insensitive) excluding addresses from context",
    )

    # Prompts
    triage_prompt: str | None = Field(
        default=None,
        description="Override for the triage system prompt",
    )
    drafting_prompt: str | None = Field(
        default=None,
        description="Override for the drafting system prompt",
    )
    signoff_name: str = Field(
        default="",
        description="Name used to sign drafted replies",
    )

    # Webhook
    webhook_url: str = Field(default="", description="Notification webhook URL")
    webhook_mode: WebhookMode = Field(default=WebhookMode.JSON)
    webhook_param_name: str = Field(
        default="message",
        description="Query parameter carrying the text in URL_PARAM mode",
    )
    webhook_timeout: float = Field(default=15.0)

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_user_id: str = Field(default="me")
    gmail_scopes: list[str] = Field(
        default_factory=lambda: [
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/gmail.compose",
        ],
        description="OAuth scopes; labelling and drafting need modify + compose",
    )

    # Persisted state
    state_db_path: Path = Field(
        default=Path("mail_triage_state.sqlite3"),
        description="SQLite file holding the watermark and the context cache",
    )
    state_max_value_bytes: int = Field(
        default=100_000,
        ge=1,
        description="Largest value the state store accepts",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    @field_validator("gemini_api_key", "webhook_url", mode="before")
    @classmethod
    def _drop_placeholders(cls, v: str | None) -> str:
        if v is None or is_placeholder(v):
            return ""
        return str(v).strip()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
