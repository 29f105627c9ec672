# src/botwright/clients/templates.py
"""Jinja2-based prompt templating in a sandboxed environment."""

from __future__ import annotations

from typing import Any

from jinja2 import StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from botwright.core.canonical import stable_hash


class TemplateError(Exception):
    """Error in template rendering (including sandbox violations)."""


class PromptTemplate:
    """Jinja2 prompt template.

    Uses a sandboxed environment with StrictUndefined, so a missing
    variable is an error rather than an empty string.

    Example:
        template = PromptTemplate("Fix these errors:\n{% for e in errors %}- {{ e }}\n{% endfor %}")
        prompt = template.render(errors=["Node 105: [Next Nodes] ..."])
    """

    def __init__(self, template_string: str) -> None:
        """Initialize template.

        Raises:
            TemplateError: If template syntax is invalid
        """
        self._template_string = template_string
        self._template_hash = stable_hash(template_string)
        self._env = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,  # No HTML escaping for prompts
            keep_trailing_newline=True,
        )
        try:
            self._template = self._env.from_string(template_string)
        except TemplateSyntaxError as e:
            raise TemplateError(f"Invalid template syntax: {e}") from e

    @property
    def template_hash(self) -> str:
        """SHA-256 hash of the template string."""
        return self._template_hash

    def render(self, **variables: Any) -> str:
        """Render the template.

        Raises:
            TemplateError: If rendering fails (undefined variable, sandbox violation, etc.)
        """
        try:
            return self._template.render(**variables)
        except UndefinedError as e:
            raise TemplateError(f"Undefined variable: {e}") from e
        except SecurityError as e:
            raise TemplateError(f"Sandbox violation: {e}") from e
        except Exception as e:
            raise TemplateError(f"Template rendering failed: {e}") from e
