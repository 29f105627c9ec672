# src/botwright/clients/llm.py
"""OpenAI-compatible chat client with error classification.

The patch service only needs one decision from a failure: is it worth
asking again? Every SDK exception is therefore re-raised as an
LLMClientError subclass whose retryable flag answers that.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import openai
import structlog

from botwright.clients.base import ClientBase
from botwright.contracts.errors import PatchServiceError

if TYPE_CHECKING:
    from botwright.core.rate_limit import NoOpLimiter, RateLimiter

logger = structlog.get_logger(__name__)


@dataclass
class LLMResponse:
    """One completed chat call.

    model is the model the provider reports, which may be a dated variant
    of the requested one. latency_ms covers the SDK call only.
    """

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0

    @property
    def total_tokens(self) -> int:
        return sum(self.usage.get(key, 0) for key in ("prompt_tokens", "completion_tokens"))


class LLMClientError(PatchServiceError):
    """A failed chat call. Subclasses fix the retryable flag."""

    default_retryable = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message, retryable=self.default_retryable if retryable is None else retryable)


class RateLimitError(LLMClientError):
    """HTTP 429 or a throttling message."""

    default_retryable = True


class NetworkError(LLMClientError):
    """Timeout, refused or reset connection, DNS failure."""

    default_retryable = True


class ServerError(LLMClientError):
    """Provider-side 5xx (including 529 overloaded)."""

    default_retryable = True


class ContentPolicyError(LLMClientError):
    """The provider refused the prompt; the same prompt will be refused again."""


class ContextLengthError(LLMClientError):
    """The artifact plus prompt does not fit the model's context window."""


# Checked in order; the first match wins. Policy and context problems come
# back as 400s, so they are matched before any status code.
_MESSAGE_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("content_policy", re.compile(r"content[_ ]policy|safety system")),
    ("context_length", re.compile(r"context[_ ]length|maximum context")),
    (
        "rate_limit",
        re.compile(
            r"\b429\b|\brate[\s_-]*limit(?:ed|ing)?\b|\brate(?:\s+has\s+been)?\s+exceeded\b"
            r"|\btoo many requests\b|\bthrottl(?:e|ed|ing)\b"
        ),
    ),
    ("server", re.compile(r"\b(?:500|502|503|504|529)\b")),
    (
        "network",
        re.compile(r"timeout|timed out|connection (?:refused|reset|error)|network unreachable|\bdns\b|getaddrinfo failed"),
    ),
    ("client", re.compile(r"\b(?:400|401|403|404|422)\b")),
)

# APITimeoutError subclasses APIConnectionError
_SDK_CATEGORIES: tuple[tuple[type[Exception], str], ...] = (
    (openai.RateLimitError, "rate_limit"),
    (openai.APIConnectionError, "network"),
    (openai.InternalServerError, "server"),
)

_ERROR_TYPES: dict[str, type[LLMClientError]] = {
    "content_policy": ContentPolicyError,
    "context_length": ContextLengthError,
    "rate_limit": RateLimitError,
    "server": ServerError,
    "network": NetworkError,
}


def classify_llm_error(exception: Exception) -> str:
    """Name the failure category of an SDK exception.

    Returns one of: content_policy, context_length, rate_limit, server,
    network, client, unknown. The bare word "rate" is not enough for
    rate_limit.
    """
    text = str(exception).lower()
    for category, pattern in _MESSAGE_RULES[:2]:
        if pattern.search(text):
            return category
    for sdk_type, category in _SDK_CATEGORIES:
        if isinstance(exception, sdk_type):
            return category
    for category, pattern in _MESSAGE_RULES[2:]:
        if pattern.search(text):
            return category
    return "unknown"


def _wrap(exception: Exception) -> LLMClientError:
    error_type = _ERROR_TYPES.get(classify_llm_error(exception), LLMClientError)
    return error_type(f"{type(exception).__name__}: {exception}")


class LLMClient(ClientBase):
    """Chat completions through an openai.OpenAI (or compatible) client.

    Example:
        client = LLMClient(openai.OpenAI(api_key="..."))
        response = client.chat_completion(
            model="gpt-4o",
            messages=[{"role": "user", "content": "Hello"}],
        )
    """

    def __init__(
        self,
        underlying_client: Any,
        *,
        limiter: RateLimiter | NoOpLimiter | None = None,
    ) -> None:
        super().__init__(limiter=limiter)
        self._client = underlying_client

    def chat_completion(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Run one chat completion.

        max_tokens is left out of the request when None; some providers
        reject an explicit null.

        Raises:
            LLMClientError: For any failure (check retryable)
        """
        self._acquire_rate_limit()

        request: dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature, **kwargs}
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        started = time.perf_counter()
        try:
            completion = self._client.chat.completions.create(**request)
        except Exception as e:
            error = _wrap(e)
            logger.warning(
                "llm_call_failed",
                model=model,
                error_type=type(e).__name__,
                category=type(error).__name__,
                retryable=error.retryable,
            )
            raise error from e
        latency_ms = (time.perf_counter() - started) * 1000

        usage = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
            }
        logger.debug("llm_call_completed", model=completion.model, latency_ms=round(latency_ms, 1), **usage)
        return LLMResponse(
            content=completion.choices[0].message.content or "",
            model=completion.model,
            usage=usage,
            latency_ms=latency_ms,
        )
