"""Gemini gateway implementation.

This module provides the single HTTP entry point to the LLM. One call covers a
whole batch. Failures are split in two:

- transport failures (connection refused, timeouts, ...) raise
  ``LLMTransportError`` and abort the run;
- everything else (non-2xx status, malformed body) is logged and degrades to
  an empty mapping.

There are no retries: the next scheduled run is the retry.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from mail_triage_agent.config import Settings
from mail_triage_agent.exceptions import LLMResponseError, LLMTransportError
from mail_triage_agent.llm.payload import decode_response_text

logger = structlog.get_logger()


def build_request_body(system_prompt: str, user_prompt: str) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": system_prompt + "\n\n" + user_prompt}]}],
        "generationConfig": {"response_mime_type": "application/json"},
    }


def extract_candidate_text(data: Any) -> str:
    """Return the first candidate's text from a generateContent response.

    Raises:
        LLMResponseError: If the response has no usable candidate.
    """

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMResponseError("Response has no candidate text") from exc
    if not isinstance(text, str):
        raise LLMResponseError("Candidate text is not a string")
    return text


class LLMGateway:
    """Gemini ``generateContent`` client returning flattened JSON mappings."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: Application settings.
            http_client: Shared client. If None, the gateway owns its own.
        """

        self.settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout)
        self._owns_client = http_client is None
        logger.info(
            "llm_gateway_initialized",
            base_url=settings.gemini_base_url,
            triage_model=settings.gemini_model_triage,
            drafting_model=settings.gemini_model_drafting,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
    ) -> dict[str, Any]:
        """Send one prompt and return the model's mapping keyed by local id.

        Args:
            system_prompt: Instructions and output contract.
            user_prompt: Context and batch payload.
            model: Gemini model name.

        Returns:
            Flattened ``local_id -> raw entry`` mapping; empty on any
            non-transport failure.

        Raises:
            LLMTransportError: If the endpoint could not be reached.
        """

        url = f"{self.settings.gemini_base_url.rstrip('/')}/{model}:generateContent"
        body = build_request_body(system_prompt, user_prompt)

        logger.info("llm_request", model=model, prompt_length=len(system_prompt) + len(user_prompt))

        try:
            response = await self._client.post(
                url,
                params={"key": self.settings.gemini_api_key},
                json=body,
                timeout=self.settings.gemini_timeout,
            )
        except httpx.TransportError as exc:
            logger.error("llm_transport_failed", model=model, error=str(exc))
            raise LLMTransportError(f"{type(exc).__name__}: {exc}") from exc
        except httpx.HTTPError as exc:
            # undecodable body, redirect loop, ...
            logger.error(
                "llm_response_malformed",
                model=model,
                error=f"{type(exc).__name__}: {exc}",
            )
            return {}

        if not response.is_success:
            logger.error(
                "llm_http_error",
                model=model,
                status_code=response.status_code,
                body=response.text,
            )
            return {}

        raw_text = response.text
        try:
            raw_text = extract_candidate_text(response.json())
            result = decode_response_text(raw_text)
        except (LLMResponseError, ValueError) as exc:
            logger.error("llm_response_malformed", model=model, error=str(exc), raw=raw_text)
            return {}

        logger.info("llm_response_parsed", model=model, entries=len(result))
        return result
