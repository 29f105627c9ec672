"""Cell rewrites used by auto-fix.

Every rewrite returns a new NodeRecord and leaves the node number alone.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, TypeAlias

from botwright.contracts.columns import Column
from botwright.contracts.records import NodeRecord, parse_node_number
from botwright.contracts.types import NodeNumber
from botwright.core.artifact.rich_content import load_payload_json, looks_like_json

# Returns the replacement for a target, or None to keep it.
Replacer: TypeAlias = Callable[[NodeNumber], NodeNumber | None]

_DELIMITED = re.compile(r"([,|])")


def _rewrite_next_nodes(cell: str, replace: Replacer) -> str:
    tokens = _DELIMITED.split(cell)
    for index, token in enumerate(tokens):
        number = parse_node_number(token)
        if number is None:
            continue
        replacement = replace(number)
        if replacement is not None:
            tokens[index] = str(replacement)
    return "".join(tokens)


def _rewrite_routes(cell: str, replace: Replacer) -> str:
    """Rewrite 'label~N' chunks of a '|'-delimited cell (What Next, pipe buttons)."""
    chunks = cell.split("|")
    for index, chunk in enumerate(chunks):
        parts = chunk.split("~")
        if len(parts) != 2:
            continue
        number = parse_node_number(parts[1])
        if number is None:
            continue
        replacement = replace(number)
        if replacement is not None:
            chunks[index] = f"{parts[0]}~{replacement}"
    return "|".join(chunks)


def _rewrite_json_options(items: Any, replace: Replacer) -> bool:
    changed = False
    if not isinstance(items, list):
        return False
    for item in items:
        if not isinstance(item, dict):
            continue
        for key in ("dest", "destination"):
            if key not in item:
                continue
            number = parse_node_number(str(item[key]))
            if number is None:
                continue
            replacement = replace(number)
            if replacement is not None:
                # Keep the payload's own typing of destinations
                item[key] = replacement if isinstance(item[key], int) else str(replacement)
                changed = True
        if _rewrite_json_options(item.get("buttons"), replace):
            changed = True
    return changed


def _rewrite_rich_content(cell: str, replace: Replacer) -> str:
    if looks_like_json(cell):
        data = load_payload_json(cell)
        if data is None:
            return cell
        items = data.get("options") if isinstance(data, dict) else data
        if not _rewrite_json_options(items, replace):
            return cell
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    if "~" in cell:
        return _rewrite_routes(cell, replace)
    return cell


def rewrite_references(record: NodeRecord, replace: Replacer) -> NodeRecord:
    """Apply replace() to every reference a record declares.

    Cells whose references are unchanged keep their exact text.
    """
    rewrites: dict[Column, Callable[[str, Replacer], str]] = {
        Column.NEXT_NODES: _rewrite_next_nodes,
        Column.WHAT_NEXT: _rewrite_routes,
        Column.RICH_CONTENT: _rewrite_rich_content,
    }
    updated = record
    for column, rewrite in rewrites.items():
        current = record.cell(column)
        if not current:
            continue
        new_value = rewrite(current, replace)
        if new_value != current:
            updated = updated.with_cell(column, new_value)
    return updated
