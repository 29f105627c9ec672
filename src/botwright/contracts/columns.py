"""Column layout of the tabular bot artifact.

Leaf module - no intra-package imports.
"""

from __future__ import annotations

from enum import IntEnum


class Column(IntEnum):
    """Zero-based column positions, in header order."""

    NODE_NUMBER = 0
    NODE_TYPE = 1
    NODE_NAME = 2
    INTENT = 3
    ENTITY_TYPE = 4
    ENTITY = 5
    NLU_DISABLED = 6
    NEXT_NODES = 7
    MESSAGE = 8
    RICH_TYPE = 9
    RICH_CONTENT = 10
    ANSWER_REQUIRED = 11
    BEHAVIORS = 12
    COMMAND = 13
    DESCRIPTION = 14
    OUTPUT = 15
    NODE_INPUT = 16
    PARAM_INPUT = 17
    DECISION_VARIABLE = 18
    WHAT_NEXT = 19
    NODE_TAGS = 20
    SKILL_TAG = 21
    VARIABLE = 22
    PLATFORM_FLAG = 23
    FLOWS = 24
    CSS_CLASS = 25

    @property
    def header(self) -> str:
        """Display name used in the header row and in compiler errors."""
        return _HEADERS[self]

    @classmethod
    def from_field_name(cls, name: str) -> Column | None:
        """Resolve a header name or snake_case alias to a column.

        The compiler reports fields by display name ("What Next?") or by a
        snake_case variant ("what_next"); both are accepted, case-insensitively.
        """
        key = name.strip().lower()
        if key in _BY_HEADER:
            return _BY_HEADER[key]
        return _BY_ALIAS.get(key.replace(" ", "_").rstrip("?"))


COLUMN_COUNT = len(Column)

_HEADERS: dict[Column, str] = {
    Column.NODE_NUMBER: "Node Number",
    Column.NODE_TYPE: "Node Type",
    Column.NODE_NAME: "Node Name",
    Column.INTENT: "Intent",
    Column.ENTITY_TYPE: "Entity Type",
    Column.ENTITY: "Entity",
    Column.NLU_DISABLED: "NLU Disabled?",
    Column.NEXT_NODES: "Next Nodes",
    Column.MESSAGE: "Message",
    Column.RICH_TYPE: "Rich Asset Type",
    Column.RICH_CONTENT: "Rich Asset Content",
    Column.ANSWER_REQUIRED: "Answer Required?",
    Column.BEHAVIORS: "Behaviors",
    Column.COMMAND: "Command",
    Column.DESCRIPTION: "Description",
    Column.OUTPUT: "Output",
    Column.NODE_INPUT: "Node Input",
    Column.PARAM_INPUT: "Parameter Input",
    Column.DECISION_VARIABLE: "Decision Variable",
    Column.WHAT_NEXT: "What Next?",
    Column.NODE_TAGS: "Node Tags",
    Column.SKILL_TAG: "Skill Tag",
    Column.VARIABLE: "Variable",
    Column.PLATFORM_FLAG: "Platform Flag",
    Column.FLOWS: "Flows",
    Column.CSS_CLASS: "CSS Classname",
}

HEADER_LINE = ",".join(_HEADERS[column] for column in Column)

_BY_HEADER: dict[str, Column] = {header.lower(): column for column, header in _HEADERS.items()}

_BY_ALIAS: dict[str, Column] = {
    **{column.name.lower(): column for column in Column},
    "nlu_disabled": Column.NLU_DISABLED,
    "rich_asset_type": Column.RICH_TYPE,
    "rich_asset_content": Column.RICH_CONTENT,
    "answer_required": Column.ANSWER_REQUIRED,
    "parameter_input": Column.PARAM_INPUT,
    "param_input": Column.PARAM_INPUT,
    "what_next": Column.WHAT_NEXT,
    "css_classname": Column.CSS_CLASS,
}
