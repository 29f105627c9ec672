# src/botwright/core/logging.py
"""Logging setup shared by the CLI and library callers.

structlog events and plain stdlib records (httpx, openai) both pass
through one ProcessorFormatter, so a repair run reads as a single stream
whether it is rendered for a terminal or as JSON lines.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Client libraries log each request; keep them at WARNING even under --verbose
_CHATTY_LIBRARIES = ("httpx", "httpcore", "openai", "urllib3")

_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
]


def _drop_formatter_keys(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def _render_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route structlog and stdlib logging to stderr.

    stdout is left free for artifact text. Calling this again replaces the
    previous handler rather than adding a second one.

    Args:
        json_output: Emit one JSON object per line instead of console text
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
    """
    root_level = logging.getLevelName(level.upper())
    if not isinstance(root_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    structlog.configure(
        processors=[*_PRE_CHAIN, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,  # reconfigured between CLI invocations
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_render_chain(json_output), foreign_pre_chain=_PRE_CHAIN))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(root_level)

    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Attach key/value pairs to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
