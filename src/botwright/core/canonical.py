"""
Canonical JSON serialization for deterministic hashing.

Produces RFC 8785 (JCS) JSON via the rfc8785 package so that equal
inputs always hash equally regardless of key order or whitespace.
NaN and Infinity are rejected rather than coerced.
"""

from __future__ import annotations

import hashlib
import math
from typing import Any

import rfc8785

CANONICAL_VERSION = "sha256-rfc8785-v1"


def _check_finite(obj: Any) -> None:
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
    if isinstance(obj, dict):
        for value in obj.values():
            _check_finite(value)
    elif isinstance(obj, list | tuple):
        for item in obj:
            _check_finite(item)


def _normalize(obj: Any) -> Any:
    if isinstance(obj, tuple):
        return [_normalize(item) for item in obj]
    if isinstance(obj, list):
        return [_normalize(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): _normalize(v) for k, v in obj.items()}
    return obj


def canonical_json(obj: Any) -> str:
    """Serialize obj to canonical JSON text.

    Raises:
        ValueError: If obj contains NaN or Infinity
    """
    _check_finite(obj)
    return rfc8785.dumps(_normalize(obj)).decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of obj."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()
