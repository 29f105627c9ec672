# src/botwright/core/config.py
"""
Configuration schema and loading for botwright.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from botwright.contracts.enums import DeployTarget


class CompilerSettings(BaseModel):
    """Remote compiler connection.

    Example YAML:
        compiler:
          base_url: https://compiler.example.com/api
          timeout_seconds: 45
          target: sandbox
          credential: ${BOTWRIGHT_COMPILER_CREDENTIAL}
    """

    model_config = {"frozen": True}

    base_url: str | None = Field(default=None, description="Compiler API base URL")
    timeout_seconds: float = Field(default=60.0, gt=0, description="Per-request timeout")
    target: DeployTarget = Field(default=DeployTarget.SANDBOX, description="Default deployment environment")
    credential: str | None = Field(default=None, description="API credential (prefer env vars)")


class PatcherSettings(BaseModel):
    """AI patch service (OpenAI-compatible chat completions)."""

    model_config = {"frozen": True}

    model: str = Field(default="gpt-4o", description="Chat model identifier")
    base_url: str | None = Field(default=None, description="Override API base URL")
    api_key: str | None = Field(default=None, description="API key (falls back to OPENAI_API_KEY)")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, gt=0, description="Completion token cap")
    timeout_seconds: float = Field(default=180.0, gt=0, description="Per-request timeout")
    project_context: str = Field(default="", description="Project description passed to every patch prompt")


class RepairSettings(BaseModel):
    """Bounds for one repair session."""

    model_config = {"frozen": True}

    max_iterations: int = Field(default=5, ge=0, description="Maximum AI patches per session")
    max_transient_retries: int = Field(
        default=3,
        ge=0,
        description="Resubmissions allowed after rate limits or timeouts before the session fails",
    )
    default_retry_after_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Pause used when the compiler gives no retry-after hint",
    )
    max_backoff_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Longest pause allowed; a longer retry-after hint fails the run",
    )
    max_structural_passes: int = Field(default=10, gt=0, description="Auto-fix passes per structural phase")
    inject_system_nodes: bool = Field(default=True, description="Append missing required system nodes")
    max_row_change_ratio: float = Field(
        default=0.05,
        ge=0.0,
        description="Row-count change (fraction) beyond which an AI rewrite is suspect",
    )
    max_row_change_absolute: int = Field(default=3, ge=0, description="Row-count change (rows) beyond which an AI rewrite is suspect")


class RetrySettings(BaseModel):
    """Retry behavior for AI patch requests."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Maximum attempts")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=60.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class RateLimitSettings(BaseModel):
    """Client-side throttling of compiler calls.

    Example YAML:
        rate_limit:
          enabled: true
          requests_per_second: 1
          requests_per_minute: 20
    """

    model_config = {"frozen": True}

    enabled: bool = Field(default=False, description="Throttle compiler submissions")
    requests_per_second: int = Field(default=2, gt=0, description="Per-second limit")
    requests_per_minute: int | None = Field(default=None, gt=0, description="Optional per-minute limit")


class ValidationSettings(BaseModel):
    """Structural validation conventions of the target runtime."""

    model_config = {"frozen": True}

    system_threshold: int = Field(default=99990, gt=1, description="First reserved high node number")
    startup_node: int = Field(default=1, description="Node every conversation starts at")
    error_node: int = Field(default=99990, description="Generic error handler used for error routes")
    fallback_nodes: tuple[int, ...] = Field(
        default=(201, 200, 99990),
        description="Preferred targets when re-pointing a dangling reference, in order",
    )
    entry_nodes: tuple[int, ...] = Field(
        default=(666, 999, 1800),
        description="Nodes the runtime enters directly (never reported as orphans)",
    )
    terminal_nodes: tuple[int, ...] = Field(
        default=(666,),
        description="Decision nodes allowed to have no outgoing edge",
    )
    endpoint_tag: str = Field(default="endpoint", description="Node tag marking a deliberate dead end")
    transfer_behavior: str = Field(default="xfer_to_agent", description="Behavior that hands off to a human")
    max_fix_passes: int = Field(default=5, gt=0, description="Internal passes when auto-fixing")

    @model_validator(mode="after")
    def validate_error_node_is_system(self) -> "ValidationSettings":
        if 0 <= self.error_node < self.system_threshold:
            raise ValueError("error_node must be a system node (negative or >= system_threshold)")
        return self


class BotwrightSettings(BaseModel):
    """Top-level configuration. Every section has working defaults."""

    model_config = {"frozen": True}

    compiler: CompilerSettings = Field(default_factory=CompilerSettings)
    patcher: PatcherSettings = Field(default_factory=PatcherSettings)
    repair: RepairSettings = Field(default_factory=RepairSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        if match.group(2) is not None:
            return match.group(2)
        # Unset with no default: leave the pattern so validation reports it
        return match.group(0)

    def expand(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_VAR_PATTERN.sub(replacer, value)
        if isinstance(value, dict):
            return {k: expand(v) for k, v in value.items()}
        if isinstance(value, list):
            return [expand(item) for item in value]
        return value

    return {k: expand(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path | None = None) -> BotwrightSettings:
    """Load settings from YAML with environment variable overrides.

    Precedence:
    1. Environment variables (BOTWRIGHT_*) - highest priority
    2. Config file, when given
    3. Defaults from the Pydantic schema - lowest priority

    Nested keys use a double underscore: BOTWRIGHT_REPAIR__MAX_ITERATIONS=8.

    Args:
        config_path: Optional path to a YAML configuration file

    Returns:
        Validated BotwrightSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config_path is given but missing
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="BOTWRIGHT",
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)
    return BotwrightSettings(**raw_config)
