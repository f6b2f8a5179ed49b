"""
LLM completion service using Claude or OpenAI.
Turns provider failures into RateLimited / Unauthorized / BadRequest / Unavailable.
"""
import logging
from typing import Optional

import anthropic
import requests

from draftwise.config import (
    OPENAI_API_KEY,
    ANTHROPIC_API_KEY,
    LLM_PROVIDER,
    CLAUDE_MODEL,
    OPENAI_MODEL,
    LLM_MAX_TOKENS,
    LLM_TIMEOUT_SECONDS,
)
from draftwise.services.exceptions import (
    ServiceUnavailableError,
    UnauthorizedError,
    error_for_status,
)

logger = logging.getLogger(__name__)


class LLMService:
    """
    Single-prompt completion against the configured provider.
    Supports both Claude (Anthropic) and OpenAI.
    """

    def __init__(
        self,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        provider: Optional[str] = None,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ):
        self.anthropic_api_key = ANTHROPIC_API_KEY if anthropic_api_key is None else anthropic_api_key
        self.openai_api_key = OPENAI_API_KEY if openai_api_key is None else openai_api_key
        self.provider = provider or LLM_PROVIDER
        self.timeout = timeout

        # Determine which provider to use
        if self.provider == "claude" and self.anthropic_api_key:
            self.active_provider = "claude"
        elif self.openai_api_key:
            self.active_provider = "openai"
        elif self.anthropic_api_key:
            self.active_provider = "claude"
        else:
            self.active_provider = None

        self._anthropic_client = None

    def complete(self, prompt: str, max_tokens: int = LLM_MAX_TOKENS) -> str:
        """
        Send one prompt and return the text of the reply.

        Raises:
            UnauthorizedError: no key configured or key rejected
            BadRequestError: provider refused the request
            RateLimitedError: provider throttled us
            ServiceUnavailableError: timeout, connection error or 5xx
        """
        if not self.active_provider:
            raise UnauthorizedError(
                "No LLM API key configured. Please set ANTHROPIC_API_KEY or OPENAI_API_KEY.",
                service="llm",
            )

        if self.active_provider == "claude":
            return self._call_claude(prompt, max_tokens)
        return self._call_openai(prompt, max_tokens)

    def _get_anthropic_client(self) -> anthropic.Anthropic:
        if self._anthropic_client is None:
            # Retry policy belongs to callers, not the SDK
            self._anthropic_client = anthropic.Anthropic(
                api_key=self.anthropic_api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._anthropic_client

    def _call_claude(self, prompt: str, max_tokens: int) -> str:
        """Call Claude API"""
        try:
            message = self._get_anthropic_client().messages.create(
                model=CLAUDE_MODEL,
                max_tokens=max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ]
            )
        except anthropic.APIStatusError as e:
            logger.warning(f"Claude API returned {e.status_code}: {e.message}")
            raise error_for_status(e.status_code, str(e.message), "claude") from e
        except (anthropic.APITimeoutError, anthropic.APIConnectionError) as e:
            logger.warning(f"Claude API unreachable: {e}")
            raise ServiceUnavailableError(str(e), service="claude") from e

        return "".join(block.text for block in message.content if getattr(block, "type", "") == "text")

    def _call_openai(self, prompt: str, max_tokens: int) -> str:
        """Call OpenAI API"""
        try:
            response = requests.post(
                "https://api.openai.com/v1/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.openai_api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "model": OPENAI_MODEL,
                    "messages": [
                        {"role": "user", "content": prompt}
                    ],
                    "temperature": 0.2,
                    "max_tokens": max_tokens
                },
                timeout=self.timeout
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"OpenAI API unreachable: {e}")
            raise ServiceUnavailableError(str(e), service="openai") from e

        if response.status_code >= 400:
            logger.warning(f"OpenAI API returned {response.status_code}: {response.text[:200]}")
            raise error_for_status(response.status_code, response.text[:500], "openai")

        result = response.json()
        return result["choices"][0]["message"]["content"] or ""


def get_llm_service() -> LLMService:
    """Get LLM service instance"""
    return LLMService()
