# src/botwright/core/cache.py
"""Caller-owned preview cache.

Flow previews are expensive AI calls. A caller that wants to avoid
regenerating an unchanged flow keeps a PreviewCache and passes it around
explicitly; the core holds no cache of its own. Entries are addressed by
content, so renaming a flow or editing its description or the project
context yields a different key instead of a stale hit.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from botwright.core.canonical import stable_hash

T = TypeVar("T")


def preview_fingerprint(flow_name: str, flow_description: str, project_context: str) -> str:
    """Content address of a flow preview."""
    return stable_hash(
        {
            "flow_name": flow_name,
            "flow_description": flow_description,
            "project_context": project_context,
        }
    )


class PreviewCache(Generic[T]):
    """Content-addressed store of flow previews.

    Example:
        cache: PreviewCache[str] = PreviewCache()
        csv = cache.get_or_compute("Billing", "Pay an invoice", context, generate)
    """

    def __init__(self) -> None:
        self._entries: dict[str, T] = {}

    def get(self, flow_name: str, flow_description: str, project_context: str) -> T | None:
        return self._entries.get(preview_fingerprint(flow_name, flow_description, project_context))

    def put(self, flow_name: str, flow_description: str, project_context: str, value: T) -> str:
        """Store a preview and return its fingerprint."""
        key = preview_fingerprint(flow_name, flow_description, project_context)
        self._entries[key] = value
        return key

    def get_or_compute(
        self,
        flow_name: str,
        flow_description: str,
        project_context: str,
        compute: Callable[[], T],
    ) -> T:
        """Return the cached preview, computing and storing it on a miss."""
        key = preview_fingerprint(flow_name, flow_description, project_context)
        if key not in self._entries:
            self._entries[key] = compute()
        return self._entries[key]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
