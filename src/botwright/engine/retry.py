# src/botwright/engine/retry.py
"""Retries for AI patch requests, built on tenacity.

Compiler resubmissions pace themselves on the compiler's retry-after hint
and live in the repair orchestrator. This module covers calls that fail by
raising, where the exception says whether another attempt could succeed.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, NoReturn, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

if TYPE_CHECKING:
    from botwright.core.config import RetrySettings
    from botwright.engine.clock import Clock

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")


@dataclass
class RetryConfig:
    """Backoff parameters.

    max_attempts counts the first try: 3 means one call and two retries.
    Delays are in seconds.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 1.0
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> RetryConfig:
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryConfig:
        # jitter is not a setting
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            exponential_base=settings.exponential_base,
        )


class RetryManager:
    """Runs a callable with exponential backoff and jitter.

    Example:
        manager = RetryManager(RetryConfig.from_settings(settings.retry))
        result = manager.execute_with_retry(
            lambda: patcher.request_patch(text, errors, context),
            is_retryable=lambda e: isinstance(e, PatchServiceError) and e.retryable,
        )
    """

    def __init__(self, config: RetryConfig, *, clock: Clock | None = None) -> None:
        self._config = config
        self._sleep: Callable[[float], None] = clock.sleep if clock is not None else time.sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Call operation until it returns, fails permanently, or attempts run out.

        Args:
            operation: Zero-argument callable
            is_retryable: Decides whether an exception earns another attempt
            on_retry: Called with (attempt number, error) before each pause;
                never called after the last attempt

        Raises:
            MaxRetriesExceeded: If every attempt raised a retryable error
            Exception: The first non-retryable error, unchanged
        """

        def announce(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                error = state.outcome.exception()
                if error is not None:
                    on_retry(state.attempt_number, error)

        def give_up(state: RetryCallState) -> NoReturn:
            assert state.outcome is not None
            error = state.outcome.exception()
            assert error is not None, "stop reached without a failed attempt"
            raise MaxRetriesExceeded(state.attempt_number, error) from error

        config = self._config
        retrying = Retrying(
            sleep=self._sleep,
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential_jitter(
                initial=config.base_delay,
                max=config.max_delay,
                exp_base=config.exponential_base,
                jitter=config.jitter,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=announce,
            retry_error_callback=give_up,
        )
        return retrying(operation)
