"""Outbound notification webhook.

Three wire modes are supported:

- ``JSON``: POST ``{messageId, subject, sender, geminiOutput, notificationText}``
- ``TEXT``: POST the notification text as ``text/plain``
- ``URL_PARAM``: GET the base URL with the text in a query parameter

Webhook failures never propagate; labels already applied stay applied.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from mail_triage_agent.config import Settings, WebhookMode, is_placeholder
from mail_triage_agent.models import Decision, MailMessage

logger = structlog.get_logger()

PLACEHOLDER_SENTINEL = "YOUR_WEBHOOK_URL"

# Same unreserved set as JavaScript's encodeURIComponent.
URL_PARAM_SAFE = "!'()*"


def webhook_enabled(url: str | None) -> bool:
    if not url or not url.strip():
        return False
    url = url.strip()
    if not url.lower().startswith("http"):
        return False
    return PLACEHOLDER_SENTINEL not in url and not is_placeholder(url)


def notification_text(decision: Decision, message: MailMessage) -> str:
    return decision.notification_text or f"Action required for email from {message.sender}"


def build_url_param_url(base_url: str, param_name: str, text: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{param_name}={quote(text, safe=URL_PARAM_SAFE)}"


class WebhookNotifier:
    """Send notifications for decisions flagged ``notify``."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.webhook_timeout)
        self._owns_client = http_client is None

    @property
    def enabled(self) -> bool:
        return webhook_enabled(self.settings.webhook_url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def notify(self, decision: Decision, message: MailMessage) -> bool:
        """Send one notification.

        Returns:
            True if the sink answered with a 2xx status.
        """

        if not self.enabled:
            logger.info("webhook_skipped", reason="url_not_configured", message_id=message.id)
            return False

        mode = self.settings.webhook_mode
        text = notification_text(decision, message)
        url = self.settings.webhook_url.strip()
        timeout = self.settings.webhook_timeout

        try:
            if mode is WebhookMode.URL_PARAM:
                response = await self._client.get(
                    build_url_param_url(url, self.settings.webhook_param_name, text),
                    timeout=timeout,
                )
            elif mode is WebhookMode.TEXT:
                response = await self._client.post(
                    url,
                    content=text.encode("utf-8"),
                    headers={"Content-Type": "text/plain; charset=utf-8"},
                    timeout=timeout,
                )
            else:
                response = await self._client.post(
                    url,
                    json=self._json_payload(decision, message, text),
                    timeout=timeout,
                )
        except httpx.HTTPError as exc:
            logger.warning("webhook_failed", mode=mode.value, message_id=message.id, error=str(exc))
            return False

        if not response.is_success:
            logger.warning(
                "webhook_rejected",
                mode=mode.value,
                message_id=message.id,
                status_code=response.status_code,
            )
            return False

        logger.info("webhook_sent", mode=mode.value, message_id=message.id)
        return True

    @staticmethod
    def _json_payload(decision: Decision, message: MailMessage, text: str) -> dict[str, Any]:
        return {
            "messageId": message.id,
            "subject": message.subject,
            "sender": message.sender,
            "geminiOutput": decision.model_dump(mode="json"),
            "notificationText": text,
        }
