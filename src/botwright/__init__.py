"""botwright: structural validation, script analysis and compiler-driven
repair of tabular chatbot definition artifacts."""

__version__ = "0.1.0"
