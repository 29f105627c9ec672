"""Artifact text handling: parsing, serialization and rich content."""

from botwright.core.artifact.parser import ParsedArtifact, parse_artifact, parse_line
from botwright.core.artifact.rich_content import RichContent, RichOption, parse_rich_content
from botwright.core.artifact.system_nodes import SYSTEM_THRESHOLD, inject_system_nodes, is_system_number
from botwright.core.artifact.writer import serialize_artifact, serialize_record

__all__ = [
    "SYSTEM_THRESHOLD",
    "ParsedArtifact",
    "RichContent",
    "RichOption",
    "inject_system_nodes",
    "is_system_number",
    "parse_artifact",
    "parse_line",
    "parse_rich_content",
    "serialize_artifact",
    "serialize_record",
]
