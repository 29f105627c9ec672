"""Typed records shared by the parser, graph builder, validator and analyzer."""

from __future__ import annotations

import re
from dataclasses import dataclass

from botwright.contracts.columns import COLUMN_COUNT, Column
from botwright.contracts.enums import EdgeOrigin, NodeKind, ScriptClass
from botwright.contracts.types import NodeNumber

_INTEGER = re.compile(r"-?\d+")
_NEXT_NODE_SPLIT = re.compile(r"[,|]")

# Rich-content labels are shortened for display only; artifacts keep the full text.
DISPLAY_LABEL_LIMIT = 20


def parse_node_number(text: str) -> NodeNumber | None:
    """Parse an exact integer node reference, or None.

    "105" and " -500 " parse; "105a", "1.5" and "" do not.
    """
    value = text.strip()
    if not _INTEGER.fullmatch(value):
        return None
    return NodeNumber(int(value))


def split_next_nodes(text: str) -> tuple[NodeNumber, ...]:
    """Split a Next Nodes cell on ',' or '|' keeping only integer tokens."""
    numbers = (parse_node_number(token) for token in _NEXT_NODE_SPLIT.split(text))
    return tuple(number for number in numbers if number is not None)


def split_what_next(text: str) -> tuple[tuple[str, NodeNumber], ...]:
    """Split a What Next cell ("true~105|error~99990") into routing pairs.

    Pairs without exactly one '~' or with a non-integer target are skipped.
    """
    pairs: list[tuple[str, NodeNumber]] = []
    for chunk in text.split("|"):
        parts = chunk.split("~")
        if len(parts) != 2:
            continue
        target = parse_node_number(parts[1])
        if target is None:
            continue
        pairs.append((parts[0].strip(), target))
    return tuple(pairs)


@dataclass(frozen=True, slots=True)
class NodeRecord:
    """One row of the artifact.

    cells holds the raw field values (quotes already removed). raw_line is
    the source line for rows read from text; it is dropped by with_cell()
    so the writer knows the row must be re-serialized. line_index is the
    row's position in the source text, -1 for rows that were added.
    """

    number: NodeNumber
    cells: tuple[str, ...]
    line_index: int = -1
    raw_line: str | None = None

    def cell(self, column: Column) -> str:
        """Whitespace-trimmed value of a column ('' when the row is short)."""
        if column >= len(self.cells):
            return ""
        return self.cells[column].strip()

    @property
    def is_modified(self) -> bool:
        return self.raw_line is None

    @property
    def kind(self) -> NodeKind | None:
        value = self.cell(Column.NODE_TYPE).upper()
        if value == NodeKind.DECISION:
            return NodeKind.DECISION
        if value == NodeKind.ACTION:
            return NodeKind.ACTION
        return None

    @property
    def name(self) -> str:
        return self.cell(Column.NODE_NAME)

    @property
    def message(self) -> str:
        return self.cell(Column.MESSAGE)

    @property
    def rich_content_type(self) -> str:
        return self.cell(Column.RICH_TYPE)

    @property
    def rich_content_payload(self) -> str:
        return self.cell(Column.RICH_CONTENT)

    @property
    def command(self) -> str:
        return self.cell(Column.COMMAND)

    @property
    def next_nodes(self) -> tuple[NodeNumber, ...]:
        return split_next_nodes(self.cell(Column.NEXT_NODES))

    @property
    def what_next(self) -> tuple[tuple[str, NodeNumber], ...]:
        return split_what_next(self.cell(Column.WHAT_NEXT))

    def has_behavior(self, behavior: str) -> bool:
        """Whether the comma-separated Behaviors cell lists behavior."""
        return behavior in (item.strip() for item in self.cell(Column.BEHAVIORS).split(","))

    def has_tag(self, tag: str) -> bool:
        """Whether the comma-separated Node Tags cell lists tag (case-insensitive)."""
        wanted = tag.lower()
        return wanted in (item.strip().lower() for item in self.cell(Column.NODE_TAGS).split(","))

    def with_cell(self, column: Column, value: str) -> NodeRecord:
        """Return a copy with one cell replaced.

        Raises:
            ValueError: If column is NODE_NUMBER. Node numbers are identity
                and are never rewritten.
        """
        if column is Column.NODE_NUMBER:
            raise ValueError("node numbers cannot be rewritten")
        cells = list(self.cells[:COLUMN_COUNT])
        cells.extend([""] * (COLUMN_COUNT - len(cells)))
        cells[column] = value
        return NodeRecord(
            number=self.number,
            cells=tuple(cells),
            line_index=self.line_index,
            raw_line=None,
        )


@dataclass(frozen=True, slots=True)
class Reference:
    """A target declared by a node record, before existence is checked."""

    origin: EdgeOrigin
    target: NodeNumber
    label: str | None
    column: Column


@dataclass(frozen=True, slots=True)
class Edge:
    """Directed, labelled relation between two existing nodes.

    position is the declaration order within the source node, used by
    consumers for left-to-right branch ordering.
    """

    source: NodeNumber
    target: NodeNumber
    origin: EdgeOrigin
    label: str | None = None
    position: int = 0

    @property
    def display_label(self) -> str | None:
        """Label shortened for display; the artifact keeps the full text."""
        if self.label is None or len(self.label) <= DISPLAY_LABEL_LIMIT:
            return self.label
        return self.label[: DISPLAY_LABEL_LIMIT - 3] + "..."


@dataclass(frozen=True, slots=True)
class Flow:
    """A named conversation unit owning a contiguous node-number range."""

    name: str
    description: str
    start_node: NodeNumber


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A single finding from one structural validation pass.

    node_number is None for artifact-level findings (e.g. missing start node).
    """

    node_number: NodeNumber | None
    field: str
    message: str
    auto_fixable: bool
    code: str

    def format(self) -> str:
        """Human-readable form: 'Node 105: [Next Nodes] ...'."""
        where = f"Node {self.node_number}" if self.node_number is not None else "Artifact"
        return f"{where}: [{self.field}] {self.message}"


@dataclass(frozen=True, slots=True)
class ScriptReference:
    """An Action-node command and whether its source has been uploaded."""

    command: str
    classification: ScriptClass
    uploaded: bool = False
