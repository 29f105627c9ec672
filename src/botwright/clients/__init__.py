"""Clients for external services: the remote compiler and the AI patch model."""

from botwright.clients.bot_id import generate_bot_id, validate_bot_id
from botwright.clients.compiler import RemoteCompilerClient, Script, normalize_compiler_errors
from botwright.clients.llm import (
    ContentPolicyError,
    ContextLengthError,
    LLMClient,
    LLMClientError,
    LLMResponse,
    NetworkError,
    RateLimitError,
    ServerError,
)
from botwright.clients.patcher import LLMPatchService, PatchResult, PatchService, parse_patch_reply
from botwright.clients.templates import PromptTemplate, TemplateError

__all__ = [
    "ContentPolicyError",
    "ContextLengthError",
    "LLMClient",
    "LLMClientError",
    "LLMPatchService",
    "LLMResponse",
    "NetworkError",
    "PatchResult",
    "PatchService",
    "PromptTemplate",
    "RateLimitError",
    "RemoteCompilerClient",
    "Script",
    "ServerError",
    "TemplateError",
    "generate_bot_id",
    "normalize_compiler_errors",
    "parse_patch_reply",
    "validate_bot_id",
]
