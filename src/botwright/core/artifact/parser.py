# src/botwright/core/artifact/parser.py
"""Tabular record parser.

Reads artifact text into NodeRecords. The parser is deliberately lenient:
malformed rows are skipped and counted, never raised, so that the
structural validator stays the single authority on whether an artifact
is acceptable.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import structlog

from botwright.contracts.records import NodeRecord, parse_node_number
from botwright.contracts.types import NodeNumber

logger = structlog.get_logger(__name__)


def parse_line(line: str) -> list[str]:
    """Split one artifact line into field values.

    A double quote toggles the in-field state and is not copied; a comma
    inside quotes is literal. Inside a quoted field a doubled quote ("")
    yields one literal quote, which keeps JSON payloads intact.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    length = len(line)
    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current))
    return fields


@dataclass(frozen=True, slots=True)
class ParsedArtifact:
    """An artifact split into its header, records and untouched lines.

    lines keeps every physical line of the source (blank and skipped
    ones included) so that serialization can reproduce unmodified rows
    byte for byte. header_index is -1 when the text had no header.
    """

    lines: tuple[str, ...]
    header_index: int
    records: tuple[NodeRecord, ...]
    skipped_lines: tuple[int, ...] = field(default=())

    @property
    def header(self) -> str:
        if self.header_index < 0:
            return ""
        return self.lines[self.header_index].rstrip("\r")

    def numbers(self) -> frozenset[NodeNumber]:
        return frozenset(record.number for record in self.records)

    def by_number(self) -> dict[NodeNumber, NodeRecord]:
        """Index records by number. On duplicates the first row wins."""
        index: dict[NodeNumber, NodeRecord] = {}
        for record in self.records:
            index.setdefault(record.number, record)
        return index

    def __iter__(self) -> Iterator[NodeRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def with_records(self, records: Sequence[NodeRecord]) -> ParsedArtifact:
        """Return a copy carrying a new record sequence over the same lines."""
        return ParsedArtifact(
            lines=self.lines,
            header_index=self.header_index,
            records=tuple(records),
            skipped_lines=self.skipped_lines,
        )


def parse_artifact(text: str) -> ParsedArtifact:
    """Parse artifact text into node records.

    The first non-blank line is the header. A data line whose first field
    is not an exact integer is skipped. Output order follows the input;
    callers must not assume records are sorted by number.

    Args:
        text: Raw artifact text

    Returns:
        ParsedArtifact with records in input order
    """
    lines = tuple(text.split("\n"))
    header_index = -1
    records: list[NodeRecord] = []
    skipped: list[int] = []

    for index, raw in enumerate(lines):
        line = raw.rstrip("\r")
        if not line.strip():
            continue
        if header_index < 0:
            header_index = index
            continue
        cells = parse_line(line)
        number = parse_node_number(cells[0])
        if number is None:
            skipped.append(index)
            continue
        records.append(NodeRecord(number=number, cells=tuple(cells), line_index=index, raw_line=raw))

    if skipped:
        logger.debug("artifact_rows_skipped", count=len(skipped), first_line=skipped[0] + 1)

    return ParsedArtifact(
        lines=lines,
        header_index=header_index,
        records=tuple(records),
        skipped_lines=tuple(skipped),
    )
