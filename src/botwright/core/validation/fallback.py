"""Fallback target selection for re-pointed references."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from botwright.contracts.types import NodeNumber


def resolve_fallback(
    near: int,
    numbers: Collection[int],
    *,
    preferred: Iterable[int] = (),
    exclude: Collection[int] = (),
) -> NodeNumber | None:
    """Pick the node a broken or missing route should point at.

    The first preferred node that exists wins (menu, then error handler
    by default). Otherwise the existing node numerically closest to
    `near`, lower number on ties. Nodes in `exclude` (usually the node
    being fixed, to avoid self-loops) are never chosen.

    Returns:
        The fallback number, or None when no candidate exists
    """
    for candidate in preferred:
        if candidate in numbers and candidate not in exclude:
            return NodeNumber(candidate)
    candidates = [number for number in numbers if number not in exclude]
    if not candidates:
        return None
    return NodeNumber(min(candidates, key=lambda number: (abs(number - near), number)))
