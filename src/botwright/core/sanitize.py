# src/botwright/core/sanitize.py
"""Artifact sanitization ahead of structural validation.

Removes what the remote compiler rejects outright: stray byte-order
marks, invisible and control characters, Windows line endings, Markdown
fences left around AI output, and rows whose node number is not a plain
integer. Also normalizes a few cell conventions the compiler is strict
about. Running sanitize twice changes nothing the second time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from botwright.contracts.columns import COLUMN_COUNT, Column
from botwright.contracts.records import NodeRecord, parse_node_number
from botwright.core.artifact.parser import parse_artifact, parse_line
from botwright.core.artifact.rich_content import looks_like_json
from botwright.core.artifact.writer import serialize_artifact

logger = structlog.get_logger(__name__)

# Longest node number the runtime accepts ("-99999", "100000")
_MAX_NUMBER_LENGTH = 6

_INVISIBLE = dict.fromkeys(map(ord, "\u200b\u200c\u200d\u2060\ufeff"), None)
_SPACES = dict.fromkeys(map(ord, "\u00a0\u202f\u2007"), " ")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_FENCE = re.compile(r"^\s*```")
_VARIABLE_SEPARATORS = re.compile(r"[\s-]+")


@dataclass(frozen=True, slots=True)
class SanitizeResult:
    text: str
    fixes: tuple[str, ...]


def _clean_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.translate(_INVISIBLE).translate(_SPACES)
    return _CONTROL.sub("", text)


def _is_valid_row(line: str) -> bool:
    first = parse_line(line)[0].strip()
    return len(first) <= _MAX_NUMBER_LENGTH and parse_node_number(first) is not None


def _filter_lines(text: str, fixes: list[str]) -> str:
    kept: list[str] = []
    header_seen = False
    for number, line in enumerate(text.split("\n"), start=1):
        if _FENCE.match(line):
            fixes.append(f"Removed Markdown fence at line {number}")
            continue
        if not line.strip():
            kept.append(line)
            continue
        if not header_seen:
            header_seen = True
            kept.append(line)
            continue
        if not _is_valid_row(line):
            fixes.append(f"Removed malformed row at line {number}: {line[:40]!r}")
            continue
        kept.append(line)
    return "\n".join(kept)


def _normalize_record(record: NodeRecord, fixes: list[str]) -> NodeRecord:
    number = record.number
    if len(record.cells) != COLUMN_COUNT:
        fixes.append(f"Node {number}: fixed column count from {len(record.cells)} to {COLUMN_COUNT}")
        cells = list(record.cells[:COLUMN_COUNT]) + [""] * max(0, COLUMN_COUNT - len(record.cells))
        record = NodeRecord(number=number, cells=tuple(cells), line_index=record.line_index)

    rich_type = record.rich_content_type
    payload = record.rich_content_payload
    if rich_type.lower() == "buttons" and payload and not looks_like_json(payload):
        record = record.with_cell(Column.RICH_TYPE, "button")
        fixes.append(f'Node {number}: rich asset type "buttons" -> "button" for pipe content')

    variable = record.cell(Column.VARIABLE)
    if variable and variable != variable.upper():
        upper = _VARIABLE_SEPARATORS.sub("_", variable.upper())
        record = record.with_cell(Column.VARIABLE, upper)
        fixes.append(f"Node {number}: variable converted to {upper}")
    return record


def sanitize_artifact(text: str) -> SanitizeResult:
    """Normalize artifact text for submission.

    Returns:
        SanitizeResult with the cleaned text and a description of each change
    """
    fixes: list[str] = []
    cleaned = _clean_text(text)
    if cleaned != text:
        fixes.append("Normalized line endings and removed invisible characters")
    cleaned = _filter_lines(cleaned, fixes)

    artifact = parse_artifact(cleaned)
    records = [_normalize_record(record, fixes) for record in artifact.records]
    if any(record.is_modified for record in records):
        cleaned = serialize_artifact(artifact.with_records(records))

    if fixes:
        logger.debug("artifact_sanitized", fixes=len(fixes))
    return SanitizeResult(text=cleaned, fixes=tuple(fixes))
