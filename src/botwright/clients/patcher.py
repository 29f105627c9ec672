# src/botwright/clients/patcher.py
"""AI patch service: asks a chat model to rewrite an artifact so the
compiler's errors go away.

The model must answer with the full corrected artifact inside a fenced
block, followed by a FIXES: section listing one change per bullet.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

from botwright.clients.llm import LLMClient
from botwright.clients.templates import PromptTemplate
from botwright.contracts.columns import COLUMN_COUNT, HEADER_LINE
from botwright.contracts.errors import PatchServiceError

if TYPE_CHECKING:
    from botwright.core.config import PatcherSettings

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You repair chatbot definition files. Each row is one node of a conversation graph. "
    "Change only what the listed errors require, keep every node number, and never drop rows."
)

PATCH_PROMPT = PromptTemplate(
    """The compiler rejected this bot artifact.
{% if context %}
Project context:
{{ context }}
{% endif %}
Errors:
{% for error in errors %}- {{ error }}
{% endfor %}
Rules:
- Keep the header row and all {{ columns }} columns on every row.
- Quote any field that contains a comma or a double quote; double embedded quotes.
- Node references must point at node numbers that exist in the file.
- Action nodes route on their Decision Variable through What Next ("true~105|error~99990").

Artifact:
```csv
{{ artifact }}
```

Reply with the complete corrected artifact in one ```csv fenced block, then a line
"FIXES:" followed by one "- " bullet per change you made.
"""
)

_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*[ \t]*\n(.*?)```", re.DOTALL)
_FIXES_MARKER = re.compile(r"^\s*\**FIXES:?\**\s*:?\s*$", re.IGNORECASE | re.MULTILINE)
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")


@dataclass(frozen=True, slots=True)
class PatchResult:
    """A rewritten artifact and a description of each change."""

    artifact_text: str
    descriptions: tuple[str, ...]


class PatchService(Protocol):
    """Anything that can rewrite an artifact to address compiler errors."""

    def request_patch(self, artifact_text: str, errors: Sequence[str], context: str) -> PatchResult:
        """Return a rewritten artifact.

        Raises:
            PatchServiceError: On failure; retryable says whether to try again
        """
        ...


def parse_patch_reply(reply: str) -> PatchResult:
    """Extract the artifact and fix list from a model reply.

    The artifact is the first fenced block. A reply without a fence is
    accepted only when it starts with the header row.

    Raises:
        PatchServiceError: If no artifact can be found (not retryable)
    """
    match = _FENCED_BLOCK.search(reply)
    if match is not None:
        artifact = match.group(1)
        tail = reply[match.end() :]
    elif reply.lstrip().startswith(HEADER_LINE.split(",")[0]):
        marker = _FIXES_MARKER.search(reply)
        artifact = reply[: marker.start()] if marker else reply
        artifact = artifact.lstrip()
        tail = reply[marker.start() :] if marker else ""
    else:
        raise PatchServiceError("Model reply contained no artifact", retryable=False)

    descriptions: list[str] = []
    marker = _FIXES_MARKER.search(tail)
    if marker is not None:
        for line in tail[marker.end() :].splitlines():
            bullet = _BULLET.match(line)
            if bullet is not None:
                descriptions.append(bullet.group(1))

    if not artifact.endswith("\n"):
        artifact += "\n"
    return PatchResult(artifact_text=artifact, descriptions=tuple(descriptions))


class LLMPatchService:
    """PatchService backed by an OpenAI-compatible chat model.

    Example:
        service = LLMPatchService.from_settings(settings.patcher)
        result = service.request_patch(csv_text, ["Node 105: [Next Nodes] ..."], "Pizza ordering bot")
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        model: str,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        template: PromptTemplate = PATCH_PROMPT,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._template = template

    @classmethod
    def from_settings(cls, settings: PatcherSettings) -> LLMPatchService:
        """Build the service with a real OpenAI SDK client.

        api_key None lets the SDK read OPENAI_API_KEY.
        """
        import openai

        underlying = openai.OpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            max_retries=0,  # Retries belong to RetryManager
        )
        return cls(
            LLMClient(underlying),
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    def request_patch(self, artifact_text: str, errors: Sequence[str], context: str) -> PatchResult:
        """Ask the model for a corrected artifact.

        Raises:
            LLMClientError: If the model call fails (check retryable)
            PatchServiceError: If the reply holds no artifact
            TemplateError: If the prompt cannot be rendered
        """
        prompt = self._template.render(
            artifact=artifact_text.rstrip("\n"),
            errors=list(errors),
            context=context,
            columns=COLUMN_COUNT,
        )
        response = self._client.chat_completion(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        result = parse_patch_reply(response.content)
        logger.info(
            "patch_received",
            model=response.model,
            errors=len(errors),
            fixes=len(result.descriptions),
            tokens=response.total_tokens,
        )
        return result
