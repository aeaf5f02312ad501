# aniverse/core/completion.py
"""
Client for the upstream chat-completion API (Perplexity, OpenAI-compatible).

`CompletionClient.complete()` never raises: every failure is turned into a
short assistant-style message so the conversation itself reports the problem.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from aniverse.core.errors import UpstreamUnavailable
from aniverse.storage.base import MessageRecord

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are AniVerse AI, an intelligent assistant specialized in anime and manga. "
    "You have deep knowledge about anime series, manga titles, characters, storylines, "
    "recommendations, and the broader anime/manga culture. Provide detailed, accurate, "
    "and engaging responses about anime and manga topics. Be enthusiastic and knowledgeable "
    "while maintaining a friendly tone. Always respond to greetings like 'hi', 'hello', "
    "'hey' in a friendly manner."
)

# Sampling parameters sent with every request
COMPLETION_PARAMS = {
    "temperature": 0.3,
    "top_p": 0.9,
    "presence_penalty": 0,
    "frequency_penalty": 0.1,
    "stream": False,
}

# Perplexity-specific switches, not part of the OpenAI schema
PERPLEXITY_EXTRA_BODY = {
    "return_images": False,
    "return_related_questions": False,
}

# -----------------------------
# User-facing failure messages
# -----------------------------

NOT_CONFIGURED_MESSAGE = (
    "Sorry, the AI service is not configured. "
    "Please set up the PERPLEXITY_API_KEY environment variable."
)
TIMEOUT_MESSAGE = "The request took too long. Please try again."
AUTH_ERROR_MESSAGE = (
    "🔑 API Authentication Error\n\n"
    "Your Perplexity API key has no credits remaining. To fix this:\n\n"
    "1. Go to https://sonar.perplexity.ai/\n"
    "2. Check your credit balance\n"
    "3. Purchase more credits or add a payment method\n"
    "4. Pro users get $5 free credits monthly\n\n"
    "Note: API keys only work with a non-zero balance."
)
RATE_LIMIT_MESSAGE = "Sorry, I'm receiving too many requests right now. Please try again in a moment."
BAD_REQUEST_MESSAGE = (
    "Sorry, there was an issue with the request format. "
    "The API model or parameters may have changed."
)
UNAVAILABLE_MESSAGE = (
    "Sorry, I'm having trouble accessing my knowledge base right now. "
    "Please try again in a moment."
)
CONNECTION_ERROR_MESSAGE = "Sorry, I'm having trouble connecting right now. Please try again."
EMPTY_RESPONSE_MESSAGE = "Sorry, I received an invalid response. Please try again."
UNEXPECTED_ERROR_MESSAGE = "Sorry, an unexpected error occurred. Please try again."

STATUS_MESSAGES = {
    400: BAD_REQUEST_MESSAGE,
    401: AUTH_ERROR_MESSAGE,
    429: RATE_LIMIT_MESSAGE,
}


def build_messages(history: Iterable[MessageRecord], system_prompt: str = SYSTEM_PROMPT) -> List[dict]:
    """System instruction followed by the role-tagged history, oldest first."""
    messages = [{"role": "system", "content": system_prompt}]
    for msg in history:
        messages.append({"role": msg.role.value, "content": msg.content})
    return messages


def message_for_status(status_code: int) -> str:
    return STATUS_MESSAGES.get(status_code, UNAVAILABLE_MESSAGE)


class CompletionClient:
    """Turns a window of chat history into one assistant reply."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "sonar",
        base_url: str = "https://api.perplexity.ai",
        timeout_s: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = (api_key or "").strip() or None
        self.model = model
        self.timeout_s = timeout_s
        self._client = client
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=base_url,
                timeout=timeout_s,
                max_retries=0,
            )

    @property
    def configured(self) -> bool:
        return self.api_key is not None

    def build_request(self, history: Iterable[MessageRecord]) -> dict:
        return {
            "model": self.model,
            "messages": build_messages(history),
            **COMPLETION_PARAMS,
            "extra_body": dict(PERPLEXITY_EXTRA_BODY),
        }

    async def complete(self, history: Iterable[MessageRecord]) -> str:
        """Return the assistant reply, or a user-facing failure message."""
        if not self.configured:
            logger.error("Perplexity API key not configured")
            return NOT_CONFIGURED_MESSAGE

        request = self.build_request(history)
        logger.info("Calling Perplexity API with %d messages", len(request["messages"]))

        try:
            return await self._request(request)
        except UpstreamUnavailable as e:
            logger.warning("Upstream completion failed: %s", e.reason or e.user_message)
            return e.user_message

    async def _request(self, request: dict) -> str:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**request),
                timeout=self.timeout_s,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise UpstreamUnavailable(TIMEOUT_MESSAGE, reason=f"timeout after {self.timeout_s}s") from e
        except APIStatusError as e:
            logger.error("Perplexity API error %s: %s", e.status_code, str(e)[:300])
            raise UpstreamUnavailable(message_for_status(e.status_code), reason=f"status {e.status_code}") from e
        except APIConnectionError as e:
            raise UpstreamUnavailable(CONNECTION_ERROR_MESSAGE, reason=f"connection error: {e}") from e
        except Exception as e:
            logger.exception("Unexpected error calling Perplexity API")
            raise UpstreamUnavailable(UNEXPECTED_ERROR_MESSAGE, reason=str(e)) from e

        content = _extract_content(response)
        if not content.strip():
            raise UpstreamUnavailable(EMPTY_RESPONSE_MESSAGE, reason="no content in API response")

        logger.info("AI response received: %d chars", len(content))
        return content


def _extract_content(response) -> str:
    """Pull choices[0].message.content out of a completion, tolerating missing pieces."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        return ""
    return content
