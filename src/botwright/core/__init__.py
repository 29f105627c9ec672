"""Core subsystem: artifact parsing, flows, graph, validation, scripts, config.

The preview cache is exported here for callers that keep flow previews
between runs.
"""

from botwright.core.cache import PreviewCache, preview_fingerprint

__all__ = ["PreviewCache", "preview_fingerprint"]
