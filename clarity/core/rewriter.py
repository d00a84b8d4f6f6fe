from __future__ import annotations

import asyncio
import logging

import requests

from clarity.core.config import settings
from clarity.core.errors import ConfigurationError, RewriteProviderError
from clarity.core.tiers import StyleId

logger = logging.getLogger(__name__)

_SUFFIX = "Do not add greetings or closings unless they're in the original."

STYLE_INSTRUCTIONS: dict[StyleId, str] = {
    StyleId.PROFESSIONAL: (
        "Transform this rough message into a professional, polished communication. "
        "Maintain the key points and intent, but make it business-appropriate and clear."
    ),
    StyleId.DIRECT: (
        "Transform this into a clear, concise, direct message. Get straight to the point. "
        "Remove unnecessary words while being respectful."
    ),
    StyleId.EMAIL: (
        "Transform this rough note into a well-structured email body. Keep paragraphs short "
        "and make any request or next step explicit."
    ),
    StyleId.FRIENDLY: (
        "Transform this message into a warm, friendly communication. Keep it natural and "
        "conversational while being clear."
    ),
    StyleId.FORMAL: (
        "Transform this message into a formal communication suitable for official "
        "correspondence. Use complete sentences and avoid contractions and slang."
    ),
    StyleId.CASUAL: (
        "Transform this message into a relaxed, casual note. Keep it short and easygoing "
        "while keeping every key point."
    ),
    StyleId.PERSUASIVE: (
        "Transform this into a persuasive, compelling message. Emphasize benefits and create "
        "a clear call to action while remaining authentic."
    ),
    StyleId.CONCISE: (
        "Shorten this message as much as possible without losing any key information. "
        "Prefer plain words and short sentences."
    ),
}


def build_prompt(text: str, style: StyleId | None) -> str:
    # Unrecognised styles only reach here for unmetered callers.
    style = style or StyleId.PROFESSIONAL
    instruction = STYLE_INSTRUCTIONS[style]
    return (
        f"{instruction} {_SUFFIX}\n\n"
        f"Input:\n{text}\n\n"
        f"Transform this into a {style.value} message:"
    )


class AnthropicRewriter:
    """Text-transform collaborator backed by the Anthropic Messages API."""

    def __init__(self) -> None:
        self.url = settings.anthropic_api_url
        self.timeout = settings.anthropic_timeout_seconds

    def ensure_configured(self) -> None:
        if not settings.anthropic_api_key:
            logger.error("ANTHROPIC_API_KEY is not set")
            raise ConfigurationError()

    def _post(self, prompt: str) -> dict:
        response = requests.post(
            self.url,
            headers={
                "Content-Type": "application/json",
                "x-api-key": settings.anthropic_api_key,
                "anthropic-version": settings.anthropic_version,
            },
            json={
                "model": settings.anthropic_model,
                "max_tokens": settings.anthropic_max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error("Anthropic API error %s: %s", response.status_code, response.text)
            raise RewriteProviderError()
        return response.json()

    async def rewrite(self, text: str, style: StyleId | None) -> str:
        self.ensure_configured()
        prompt = build_prompt(text, style)
        try:
            body = await asyncio.to_thread(self._post, prompt)
        except requests.RequestException as exc:
            logger.exception("Anthropic API request failed")
            raise RewriteProviderError() from exc
        except ValueError as exc:
            logger.exception("Anthropic API returned a non-JSON body")
            raise RewriteProviderError() from exc

        blocks = body.get("content") or []
        parts = [block.get("text", "") for block in blocks if block.get("type", "text") == "text"]
        result = "".join(parts).strip()
        if not result:
            logger.error("Anthropic API returned no text content: %s", body)
            raise RewriteProviderError()
        return result


def get_rewriter() -> AnthropicRewriter:
    return AnthropicRewriter()
