"""Conversation graph construction and queries."""

from botwright.core.graph.builder import build_graph
from botwright.core.graph.graph import BotGraph
from botwright.core.graph.references import iter_references

__all__ = ["BotGraph", "build_graph", "iter_references"]
