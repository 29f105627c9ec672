# src/botwright/core/artifact/writer.py
"""Artifact serialization.

Unmodified records keep their source line verbatim. Modified and added
records are written through csv.writer, which quotes a field only when it
contains a comma, a quote or a line break, doubling embedded quotes.
"""

from __future__ import annotations

import csv
import io

from botwright.contracts.columns import COLUMN_COUNT, HEADER_LINE
from botwright.contracts.records import NodeRecord
from botwright.core.artifact.parser import ParsedArtifact


def serialize_record(record: NodeRecord) -> str:
    """Render one record as a CSV line, padded or trimmed to the full column set."""
    cells = list(record.cells[:COLUMN_COUNT])
    cells.extend([""] * (COLUMN_COUNT - len(cells)))
    cells[0] = str(record.number)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(cells)
    return buffer.getvalue()


def serialize_artifact(artifact: ParsedArtifact) -> str:
    """Render a parsed artifact back to text.

    Lines that are not records (header, blanks, skipped rows) are copied
    through. A record whose line_index is -1 is appended after the last
    non-blank line.
    """
    # No header means the source was blank, so no record can point into it.
    lines = list(artifact.lines) if artifact.header_index >= 0 else [HEADER_LINE, ""]

    appended: list[str] = []
    for record in artifact.records:
        if record.line_index < 0:
            appended.append(serialize_record(record))
        elif record.raw_line is None:
            lines[record.line_index] = serialize_record(record)

    if appended:
        # Insert before trailing blank lines so the file keeps its final newline.
        insert_at = len(lines)
        while insert_at > 0 and not lines[insert_at - 1].strip():
            insert_at -= 1
        lines[insert_at:insert_at] = appended

    return "\n".join(lines)
