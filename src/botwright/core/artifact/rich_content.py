"""Rich content payloads as a tagged union.

The Rich Asset Content cell carries either pipe-delimited buttons
("Yes~210|No~220") or a JSON document whose shape depends on the rich
type. Only the destinations matter to the core, so every kind exposes
the same options accessor. Anything unreadable degrades to no options.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from botwright.contracts.enums import RichContentKind
from botwright.contracts.records import parse_node_number
from botwright.contracts.types import NodeNumber

_KIND_BY_TYPE: dict[str, RichContentKind] = {
    "button": RichContentKind.BUTTONS,
    "buttons": RichContentKind.BUTTONS,
    "quick_reply": RichContentKind.BUTTONS,
    "imagebutton": RichContentKind.BUTTONS,
    "carousel": RichContentKind.CAROUSEL,
    "listpicker": RichContentKind.LIST_PICKER,
    "list_picker": RichContentKind.LIST_PICKER,
    "datepicker": RichContentKind.DATE_PICKER,
    "timepicker": RichContentKind.DATE_PICKER,
    "file_upload": RichContentKind.FILE_UPLOAD,
    "fileupload": RichContentKind.FILE_UPLOAD,
    "free_text": RichContentKind.FREE_TEXT,
    "textarea": RichContentKind.FREE_TEXT,
    "text_input": RichContentKind.FREE_TEXT,
}

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_SMART_QUOTES = str.maketrans({"\u201c": '"', "\u201d": '"', "\u2018": "'", "\u2019": "'"})


@dataclass(frozen=True, slots=True)
class RichOption:
    """A selectable option. destination is None when it is not a node number."""

    label: str
    destination: NodeNumber | None


@dataclass(frozen=True, slots=True)
class RichContent:
    """Parsed rich content of one node.

    well_formed is False when the payload looked like JSON but could not
    be decoded, which the validator reports separately.
    """

    kind: RichContentKind
    raw_type: str
    options: tuple[RichOption, ...] = ()
    data: Any = None
    well_formed: bool = True

    @property
    def destinations(self) -> tuple[NodeNumber, ...]:
        return tuple(option.destination for option in self.options if option.destination is not None)


def classify_rich_type(raw_type: str) -> RichContentKind:
    """Map a Rich Asset Type cell value to a kind (unknown values are GENERIC)."""
    return _KIND_BY_TYPE.get(raw_type.strip().lower(), RichContentKind.GENERIC)


def load_payload_json(payload: str) -> Any:
    """Decode a JSON payload, tolerating the usual CSV damage.

    Tries the text as-is, then with doubled quotes collapsed, stray outer
    quotes removed, smart quotes straightened and trailing commas dropped.

    Returns:
        The decoded value, or None when every attempt fails.
    """
    text = payload.strip()
    candidates = [text]
    collapsed = text.replace('""', '"')
    if collapsed != text:
        candidates.append(collapsed)
    for candidate in list(candidates):
        if len(candidate) >= 2 and candidate[0] == candidate[-1] and candidate[0] in "\"'":
            candidates.append(candidate[1:-1])
    candidates.extend(_TRAILING_COMMA.sub(r"\1", c.translate(_SMART_QUOTES)) for c in list(candidates))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def looks_like_json(payload: str) -> bool:
    text = payload.strip().lstrip('"')
    return text.startswith("{") or text.startswith("[")


def _option_label(option: dict[str, Any]) -> str:
    for key in ("label", "text", "title"):
        value = option.get(key)
        if value is not None:
            return str(value)
    return ""


def _iter_json_options(items: Any) -> Iterator[RichOption]:
    if not isinstance(items, list):
        return
    for item in items:
        if not isinstance(item, dict):
            continue
        destination = item.get("dest", item.get("destination"))
        if destination is not None:
            yield RichOption(label=_option_label(item), destination=parse_node_number(str(destination)))
        # Carousel cards carry their own buttons.
        yield from _iter_json_options(item.get("buttons"))


def _iter_pipe_options(payload: str) -> Iterator[RichOption]:
    for chunk in payload.split("|"):
        parts = chunk.split("~")
        if len(parts) != 2:
            continue
        yield RichOption(label=parts[0].strip(), destination=parse_node_number(parts[1]))


def parse_rich_content(raw_type: str, payload: str) -> RichContent | None:
    """Parse a node's rich content.

    Args:
        raw_type: Rich Asset Type cell
        payload: Rich Asset Content cell

    Returns:
        RichContent, or None when both cells are empty
    """
    raw_type = raw_type.strip()
    payload = payload.strip()
    if not raw_type and not payload:
        return None

    kind = classify_rich_type(raw_type)
    if not payload:
        return RichContent(kind=kind, raw_type=raw_type)

    if looks_like_json(payload):
        data = load_payload_json(payload)
        if data is None:
            return RichContent(kind=kind, raw_type=raw_type, well_formed=False)
        items = data.get("options") if isinstance(data, dict) else data
        return RichContent(
            kind=kind,
            raw_type=raw_type,
            options=tuple(_iter_json_options(items)),
            data=data,
        )

    if "~" in payload:
        return RichContent(kind=kind, raw_type=raw_type, options=tuple(_iter_pipe_options(payload)))

    return RichContent(kind=kind, raw_type=raw_type, data=payload)
