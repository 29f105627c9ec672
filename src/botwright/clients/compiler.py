# src/botwright/clients/compiler.py
"""Remote compiler client.

Submits an artifact (plus the source of its custom scripts) to the
compiler's validate endpoint and maps every expected response onto a
typed Outcome. The client never retries; pacing and resubmission belong
to the repair orchestrator.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from json import JSONDecodeError
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from botwright.clients.base import ClientBase
from botwright.clients.bot_id import validate_bot_id
from botwright.contracts.enums import DeployTarget
from botwright.contracts.outcomes import (
    Accepted,
    CompilerError,
    Outcome,
    RateLimited,
    Rejected,
    TransientFailure,
    Unauthorized,
)
from botwright.contracts.records import parse_node_number

if TYPE_CHECKING:
    from botwright.core.config import CompilerSettings
    from botwright.core.rate_limit import NoOpLimiter, RateLimiter

logger = structlog.get_logger(__name__)

_NODE_PREFIX = re.compile(r"^\s*Node\s+(-?\d+)\s*:\s*(.*)$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class Script:
    """Source of a custom script shipped alongside the artifact."""

    name: str
    content: str


def _node_from(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return parse_node_number(value)
    return None


def _from_string(text: str) -> CompilerError:
    match = _NODE_PREFIX.match(text)
    if match is None:
        return CompilerError(node_number=None, field=None, message=text.strip())
    return CompilerError(
        node_number=parse_node_number(match.group(1)),
        field=None,
        message=match.group(2).strip(),
    )


def _from_structured(entry: dict[str, Any]) -> list[CompilerError]:
    node = _node_from(entry.get("node_num"))
    messages = entry.get("err_msgs")
    if isinstance(messages, list) and messages:
        errors = []
        for item in messages:
            if isinstance(item, dict):
                errors.append(
                    CompilerError(
                        node_number=node,
                        field=item.get("field_name") or None,
                        message=str(item.get("error_description") or item.get("field_entry") or "Unknown error"),
                    )
                )
            else:
                errors.append(CompilerError(node_number=node, field=None, message=str(item)))
        return errors
    message = entry.get("error_description") or entry.get("message") or entry.get("error")
    return [
        CompilerError(
            node_number=node,
            field=entry.get("field_name") or None,
            message=str(message) if message else json.dumps(entry, sort_keys=True),
        )
    ]


def _from_legacy(entry: list[Any]) -> list[CompilerError]:
    # [node, [[category, field, message], ...]]
    node = _node_from(entry[0]) if entry else None
    details = entry[1] if len(entry) > 1 else None
    if not isinstance(details, list) or not details:
        return [CompilerError(node_number=node, field=None, message=json.dumps(details))]
    errors = []
    for detail in details:
        if isinstance(detail, list) and len(detail) >= 3:
            errors.append(CompilerError(node_number=node, field=str(detail[1]) or None, message=str(detail[2])))
        else:
            errors.append(CompilerError(node_number=node, field=None, message=str(detail)))
    return errors


def normalize_compiler_errors(raw: Any) -> tuple[CompilerError, ...]:
    """Flatten the compiler's error payloads into CompilerError values.

    Three shapes are observed in the wild and may be mixed in one list:
    - structured: {"node_num": 105, "err_msgs": [{"field_name", "error_description"}]}
    - legacy: [105, [["category", "field", "message"], ...]]
    - plain strings, optionally prefixed "Node 105: "
    """
    if raw is None:
        return ()
    entries: Iterable[Any] = raw if isinstance(raw, list) else [raw]
    errors: list[CompilerError] = []
    for entry in entries:
        if isinstance(entry, str):
            errors.append(_from_string(entry))
        elif isinstance(entry, dict):
            errors.extend(_from_structured(entry))
        elif isinstance(entry, list):
            errors.extend(_from_legacy(entry))
        else:
            errors.append(CompilerError(node_number=None, field=None, message=str(entry)))
    return tuple(errors)


def _parse_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body; anything else becomes an empty dict."""
    try:
        parsed = response.json()
    except (JSONDecodeError, UnicodeDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {"errors": parsed}


def _as_seconds(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if math.isfinite(seconds) and seconds >= 0 else None


def _http_date(value: str) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _seconds_until(value: str, response: httpx.Response) -> float | None:
    """Delay until an HTTP-date, measured from the response's Date header when present."""
    target = _http_date(value)
    if target is None:
        return None
    reference = _http_date(response.headers.get("date", "")) or datetime.now(UTC)
    return max((target - reference).total_seconds(), 0.0)


def _parse_retry_after(response: httpx.Response, body: dict[str, Any]) -> float | None:
    """Seconds to wait from the Retry-After header, else the body's retryAfter.

    The header may give seconds or an HTTP-date; a date already passed
    means no wait.
    """
    header = response.headers.get("retry-after")
    if header is not None:
        seconds = _as_seconds(header)
        if seconds is None:
            seconds = _seconds_until(header, response)
        if seconds is not None:
            return seconds
    return _as_seconds(body.get("retryAfter"))


def _error_text(body: dict[str, Any], response: httpx.Response) -> str:
    message = body.get("error") or body.get("message")
    if message:
        return str(message)
    return f"HTTP {response.status_code}"


def map_response(response: httpx.Response) -> Outcome:
    """Map a compiler HTTP response onto an Outcome."""
    status = response.status_code
    body = _parse_body(response)

    if status in (401, 403) or body.get("authError") is True:
        return Unauthorized(message=_error_text(body, response))
    if status == 429:
        return RateLimited(retry_after=_parse_retry_after(response, body))
    if status >= 500:
        return TransientFailure(reason=f"HTTP {status}: {_error_text(body, response)}")

    if 200 <= status < 300:
        if body.get("valid") is False:
            return Rejected(errors=normalize_compiler_errors(body.get("errors")))
        version_id = body.get("versionId")
        if version_id:
            return Accepted(version_id=str(version_id))
        return TransientFailure(reason="Compiler response carried neither errors nor a version id")

    errors = normalize_compiler_errors(body.get("errors"))
    if not errors:
        errors = (CompilerError(node_number=None, field=None, message=_error_text(body, response)),)
    return Rejected(errors=errors)


class RemoteCompilerClient(ClientBase):
    """Client for the remote compiler's validate endpoint.

    POST {base_url}/bots/{bot_id}/validate with
    {"environment", "csv", "scripts": [{"name", "content"}]} and a bearer
    credential.

    Example:
        with RemoteCompilerClient("https://compiler.example.com/api", timeout=45) as client:
            outcome = client.submit(csv_text, [], credential, DeployTarget.SANDBOX, bot_id="Acme.Support")
            match outcome:
                case Accepted(version_id=version_id):
                    ...
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        limiter: RateLimiter | NoOpLimiter | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the compiler client.

        Args:
            base_url: Compiler API base URL
            timeout: Per-request timeout in seconds
            limiter: Optional rate limiter for throttling submissions
            http_client: Optional pre-built httpx client (not closed by close())
        """
        super().__init__(limiter=limiter)
        if not base_url:
            raise ValueError("Compiler base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout, follow_redirects=False)

    @classmethod
    def from_settings(
        cls,
        settings: CompilerSettings,
        *,
        limiter: RateLimiter | NoOpLimiter | None = None,
    ) -> RemoteCompilerClient:
        if settings.base_url is None:
            raise ValueError("compiler.base_url is not configured")
        return cls(settings.base_url, timeout=settings.timeout_seconds, limiter=limiter)

    def submit(
        self,
        artifact_text: str,
        scripts: Sequence[Script],
        credential: str,
        target: DeployTarget,
        *,
        bot_id: str,
    ) -> Outcome:
        """Submit an artifact for validation.

        Args:
            artifact_text: Artifact CSV text
            scripts: Custom script sources to upload with it
            credential: Bearer credential
            target: Deployment environment
            bot_id: Bot identity ('Customer.BotName')

        Returns:
            Exactly one Outcome; expected failures never raise

        Raises:
            BotIdError: If bot_id is malformed
        """
        validate_bot_id(bot_id)
        self._acquire_rate_limit()

        url = f"{self._base_url}/bots/{bot_id}/validate"
        payload = {
            "environment": target.value,
            "csv": artifact_text,
            "scripts": [{"name": script.name, "content": script.content} for script in scripts],
        }
        try:
            response = self._client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {credential}"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("compiler_timeout", bot_id=bot_id, error=str(e))
            return TransientFailure(reason=f"Timeout: {e}")
        except httpx.TransportError as e:
            logger.warning("compiler_transport_error", bot_id=bot_id, error=str(e), error_type=type(e).__name__)
            return TransientFailure(reason=f"{type(e).__name__}: {e}")

        outcome = map_response(response)
        logger.debug(
            "compiler_response",
            bot_id=bot_id,
            status_code=response.status_code,
            outcome=type(outcome).__name__,
        )
        return outcome

    def close(self) -> None:
        """Close the underlying httpx client when this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> RemoteCompilerClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
