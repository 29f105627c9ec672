# src/botwright/engine/repair.py
"""Repair orchestrator: drives an artifact from raw text to a compiler-accepted
version.

Phases:
- sanitizing: text normalization, then required system nodes
- structural_fix: local auto-fix until nothing fixable remains
- remote_validating: compiler submission, resubmitted after rate limits
  and transient failures through a tenacity loop
- patching: AI rewrite of the rejected artifact, guarded by a row-count check

A session stops in done, exhausted, failed or cancelled. It suspends in
needs_credential, keeping its artifact and iteration count so resume() can
continue with a replacement credential.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import structlog
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, stop_any

from botwright.contracts.enums import DeployTarget, RepairPhase
from botwright.contracts.errors import PatchServiceError
from botwright.contracts.events import (
    BackoffScheduled,
    PatchApplied,
    RemoteRejected,
    RepairFinished,
    RepairPhaseEntered,
)
from botwright.contracts.outcomes import (
    RETRYABLE_OUTCOMES,
    Accepted,
    Outcome,
    RateLimited,
    Rejected,
    TransientFailure,
    Unauthorized,
)
from botwright.contracts.records import ValidationIssue
from botwright.core.artifact.parser import parse_artifact
from botwright.core.artifact.system_nodes import inject_system_nodes
from botwright.core.artifact.writer import serialize_artifact
from botwright.core.config import BotwrightSettings
from botwright.core.events import NullEventBus
from botwright.core.logging import bound_context
from botwright.core.sanitize import sanitize_artifact
from botwright.core.scripts import ScriptInventory
from botwright.core.validation.validator import StructuralValidator
from botwright.engine.clock import DEFAULT_CLOCK, Clock
from botwright.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager

if TYPE_CHECKING:
    from botwright.clients.compiler import Script
    from botwright.clients.patcher import PatchService
    from botwright.core.events import EventBusProtocol

logger = structlog.get_logger(__name__)

_DIGITS = re.compile(r"\d+")


class CompilerClient(Protocol):
    """The compiler surface the orchestrator needs."""

    def submit(
        self,
        artifact_text: str,
        scripts: Sequence[Script],
        credential: str,
        target: DeployTarget,
        *,
        bot_id: str,
    ) -> Outcome: ...


class CancellationToken:
    """Cooperative cancellation flag, safe to set from another thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RepairSession:
    """Mutable state of one repair session."""

    bot_id: str
    artifact_text: str
    credential: str
    target: DeployTarget
    scripts: tuple[Script, ...] = ()
    context: str = ""
    phase: RepairPhase = RepairPhase.SANITIZING
    iteration: int = 0
    fixes_applied: list[str] = field(default_factory=list)
    remaining_errors: list[str] = field(default_factory=list)
    version_id: str | None = None
    error: str | None = None
    last_signature: frozenset[str] | None = None


@dataclass(frozen=True, slots=True)
class RepairResult:
    """Outcome of run() or resume().

    artifact_text is always the best artifact the session produced, even
    when the session did not finish in done.
    """

    status: RepairPhase
    artifact_text: str
    valid: bool
    iterations: int
    fixes_applied: tuple[str, ...]
    remaining_errors: tuple[str, ...]
    version_id: str | None = None
    error: str | None = None

    @property
    def needs_credential(self) -> bool:
        return self.status is RepairPhase.NEEDS_CREDENTIAL


def error_signature(errors: Sequence[str]) -> frozenset[str]:
    """Errors with numbers masked, so 'Node 105' and 'Node 106' compare equal."""
    return frozenset(_DIGITS.sub("#", error) for error in errors)


def row_change_allowed(before: int, after: int, *, ratio: float, absolute: int) -> bool:
    """Whether a rewrite's row-count change is small enough to trust.

    A rewrite is refused only when the change exceeds both the ratio of the
    original row count and the absolute row allowance.
    """
    delta = abs(after - before)
    return delta <= before * ratio or delta <= absolute


class RepairOrchestrator:
    """Runs repair sessions for one bot at a time.

    Example:
        orchestrator = RepairOrchestrator(compiler, patcher, settings=settings)
        result = orchestrator.run(csv_text, bot_id="Acme.Support", credential=token)
        if result.needs_credential:
            result = orchestrator.resume(new_token)
    """

    def __init__(
        self,
        compiler: CompilerClient,
        patcher: PatchService,
        *,
        settings: BotwrightSettings | None = None,
        clock: Clock | None = None,
        event_bus: EventBusProtocol | None = None,
        inventory: ScriptInventory | None = None,
    ) -> None:
        self._compiler = compiler
        self._patcher = patcher
        self._settings = settings or BotwrightSettings()
        self._clock = clock or DEFAULT_CLOCK
        self._events: EventBusProtocol = event_bus or NullEventBus()
        self._inventory = inventory if inventory is not None else ScriptInventory()
        self._validator = StructuralValidator(self._settings.validation)
        self._retry_manager = RetryManager(RetryConfig.from_settings(self._settings.retry), clock=self._clock)

        self._lock = threading.Lock()
        self._token = CancellationToken()
        self._session: RepairSession | None = None

    @property
    def inventory(self) -> ScriptInventory:
        return self._inventory

    @property
    def session(self) -> RepairSession | None:
        """The suspended or running session, if any."""
        return self._session

    def run(
        self,
        artifact_text: str,
        *,
        bot_id: str,
        credential: str,
        target: DeployTarget | None = None,
        scripts: Sequence[Script] = (),
        context: str | None = None,
    ) -> RepairResult:
        """Repair an artifact until the compiler accepts it or a bound is hit.

        Args:
            artifact_text: Raw artifact text
            bot_id: Bot identity ('Customer.BotName')
            credential: Compiler credential
            target: Deployment environment (defaults to compiler.target)
            scripts: Custom script sources shipped with each submission
            context: Project description for the patch service
                (defaults to patcher.project_context)

        Raises:
            RuntimeError: If a session is running or awaiting a credential
        """
        if not self._lock.acquire(blocking=False):
            raise RuntimeError(f"A repair session is already running for {self._describe_session()}")
        try:
            if self._session is not None:
                raise RuntimeError(
                    f"Repair session for {self._session.bot_id} is awaiting a credential; call resume() or cancel()"
                )
            self._token = CancellationToken()
            session = RepairSession(
                bot_id=bot_id,
                artifact_text=artifact_text,
                credential=credential,
                target=target or self._settings.compiler.target,
                scripts=tuple(scripts),
                context=self._settings.patcher.project_context if context is None else context,
            )
            self._session = session
            self._inventory.observe(artifact_text)
            logger.info("repair_started", bot_id=bot_id, target=session.target.value, scripts=len(session.scripts))
            self._emit_phase(session)
            return self._drive_or_discard(session)
        finally:
            self._lock.release()

    def resume(self, credential: str) -> RepairResult:
        """Continue a session suspended in needs_credential.

        The artifact and iteration count are unchanged; the compiler is
        called again with the new credential.

        Raises:
            RuntimeError: If no session is awaiting a credential
        """
        if not self._lock.acquire(blocking=False):
            raise RuntimeError(f"A repair session is already running for {self._describe_session()}")
        try:
            session = self._session
            if session is None or session.phase is not RepairPhase.NEEDS_CREDENTIAL:
                raise RuntimeError("No repair session is awaiting a credential")
            session.credential = credential
            session.error = None
            logger.info("repair_resumed", bot_id=session.bot_id, iteration=session.iteration)
            self._transition(session, RepairPhase.REMOTE_VALIDATING)
            return self._drive_or_discard(session)
        finally:
            self._lock.release()

    def cancel(self) -> None:
        """Request cancellation.

        A running session stops at its next phase transition. A session
        suspended in needs_credential is discarded immediately.
        """
        self._token.cancel()
        if self._lock.acquire(blocking=False):
            try:
                if self._session is not None and self._session.phase is RepairPhase.NEEDS_CREDENTIAL:
                    logger.info("repair_discarded", bot_id=self._session.bot_id)
                    self._session = None
            finally:
                self._lock.release()

    # -- state machine -------------------------------------------------------

    def _drive_or_discard(self, session: RepairSession) -> RepairResult:
        try:
            with bound_context(bot_id=session.bot_id, target=session.target.value):
                return self._drive(session)
        except Exception:
            # A session that raised cannot be resumed
            self._session = None
            raise

    def _drive(self, session: RepairSession) -> RepairResult:
        while not session.phase.is_terminal:
            if self._token.is_cancelled:
                self._transition(session, RepairPhase.CANCELLED)
                break
            if session.phase is RepairPhase.SANITIZING:
                self._sanitize(session)
                self._transition(session, RepairPhase.STRUCTURAL_FIX)
            elif session.phase is RepairPhase.STRUCTURAL_FIX:
                self._structural_fix(session)
                self._transition(session, RepairPhase.REMOTE_VALIDATING)
            elif session.phase is RepairPhase.REMOTE_VALIDATING:
                self._transition(session, self._remote_validate(session))
            elif session.phase is RepairPhase.PATCHING:
                self._transition(session, self._patch(session))
        return self._finish(session)

    def _transition(self, session: RepairSession, phase: RepairPhase) -> None:
        session.phase = phase
        self._emit_phase(session)

    def _emit_phase(self, session: RepairSession) -> None:
        logger.debug("repair_phase", bot_id=session.bot_id, phase=session.phase.value, iteration=session.iteration)
        self._events.emit(RepairPhaseEntered(bot_id=session.bot_id, phase=session.phase, iteration=session.iteration))

    def _finish(self, session: RepairSession) -> RepairResult:
        if session.phase is not RepairPhase.NEEDS_CREDENTIAL:
            self._session = None
        result = RepairResult(
            status=session.phase,
            artifact_text=session.artifact_text,
            valid=session.phase is RepairPhase.DONE,
            iterations=session.iteration,
            fixes_applied=tuple(session.fixes_applied),
            remaining_errors=tuple(session.remaining_errors),
            version_id=session.version_id,
            error=session.error,
        )
        self._events.emit(
            RepairFinished(
                bot_id=session.bot_id,
                phase=session.phase,
                iterations=session.iteration,
                remaining_errors=len(session.remaining_errors),
            )
        )
        logger.info(
            "repair_finished",
            bot_id=session.bot_id,
            status=session.phase.value,
            iterations=session.iteration,
            fixes=len(session.fixes_applied),
            remaining_errors=len(session.remaining_errors),
            version_id=session.version_id,
        )
        return result

    # -- phases --------------------------------------------------------------

    def _sanitize(self, session: RepairSession) -> None:
        sanitized = sanitize_artifact(session.artifact_text)
        session.artifact_text = sanitized.text
        session.fixes_applied.extend(sanitized.fixes)

        if self._settings.repair.inject_system_nodes:
            artifact, injected = inject_system_nodes(parse_artifact(session.artifact_text))
            if injected:
                session.artifact_text = serialize_artifact(artifact)
                session.fixes_applied.extend(injected)

    def _structural_fix(self, session: RepairSession) -> None:
        """Auto-fix until nothing fixable remains or progress stalls.

        Issues the validator still reports become the session's remaining
        errors until the compiler answers.
        """
        previous_fixable: int | None = None
        remaining: tuple[ValidationIssue, ...] = ()
        for _ in range(self._settings.repair.max_structural_passes):
            report = self._validator.validate(session.artifact_text, auto_fix=True)
            remaining = report.remaining_issues
            if not report.fixes_applied:
                break
            assert report.fixed_text is not None
            session.artifact_text = report.fixed_text
            session.fixes_applied.extend(report.fixes_applied)
            fixable = sum(1 for issue in remaining if issue.auto_fixable)
            if fixable == 0 or (previous_fixable is not None and fixable >= previous_fixable):
                break
            previous_fixable = fixable
        session.remaining_errors = [issue.format() for issue in remaining]

    def _remote_validate(self, session: RepairSession) -> RepairPhase:
        outcome = self._submit_with_backoff(session)

        if isinstance(outcome, Accepted):
            session.version_id = outcome.version_id
            session.remaining_errors = []
            self._inventory.mark_uploaded(script.name for script in session.scripts)
            return RepairPhase.DONE

        if isinstance(outcome, Unauthorized):
            session.error = outcome.message or "Compiler refused the credential"
            logger.warning("repair_needs_credential", bot_id=session.bot_id, iteration=session.iteration)
            return RepairPhase.NEEDS_CREDENTIAL

        if isinstance(outcome, Rejected):
            return self._on_rejected(session, outcome)

        # Retry budget spent (or cancelled) on RateLimited / TransientFailure
        if self._token.is_cancelled:
            return RepairPhase.CANCELLED
        if self._hint_exceeds_limit(outcome):
            assert isinstance(outcome, RateLimited)
            session.error = (
                f"Compiler asked to wait {outcome.retry_after:g}s, "
                f"longer than max_backoff_seconds ({self._settings.repair.max_backoff_seconds:g}s)"
            )
            logger.error("repair_backoff_too_long", bot_id=session.bot_id, retry_after=outcome.retry_after)
            return RepairPhase.FAILED
        reason = outcome.reason if isinstance(outcome, TransientFailure) else "rate limited"
        session.error = f"Compiler unavailable after {self._settings.repair.max_transient_retries} retries: {reason}"
        logger.error("repair_retries_exhausted", bot_id=session.bot_id, reason=reason)
        return RepairPhase.FAILED

    def _on_rejected(self, session: RepairSession, outcome: Rejected) -> RepairPhase:
        session.remaining_errors = [error.format() for error in outcome.errors]
        signature = error_signature(session.remaining_errors)
        stuck = signature == session.last_signature
        session.last_signature = signature
        if stuck:
            logger.warning(
                "repair_stuck",
                bot_id=session.bot_id,
                iteration=session.iteration,
                errors=len(session.remaining_errors),
            )
        self._events.emit(
            RemoteRejected(
                bot_id=session.bot_id,
                iteration=session.iteration,
                errors=tuple(session.remaining_errors),
                stuck=stuck,
            )
        )
        if session.iteration < self._settings.repair.max_iterations:
            return RepairPhase.PATCHING
        return RepairPhase.EXHAUSTED

    def _hint_exceeds_limit(self, outcome: Outcome) -> bool:
        return (
            isinstance(outcome, RateLimited)
            and outcome.retry_after is not None
            and outcome.retry_after > self._settings.repair.max_backoff_seconds
        )

    def _submit_with_backoff(self, session: RepairSession) -> Outcome:
        """Submit, resubmitting after RateLimited / TransientFailure.

        Every attempt reads the session's current artifact and credential.
        A retry-after hint is honoured in full; a hint above
        max_backoff_seconds ends the retries instead of being shortened.
        When the budget is spent the last retryable outcome is returned.
        """
        repair = self._settings.repair

        def backoff(retry_state: RetryCallState) -> float:
            assert retry_state.outcome is not None
            outcome = retry_state.outcome.result()
            if isinstance(outcome, RateLimited) and outcome.retry_after is not None:
                return outcome.retry_after
            return min(repair.default_retry_after_seconds, repair.max_backoff_seconds)

        def before_sleep(retry_state: RetryCallState) -> None:
            assert retry_state.outcome is not None and retry_state.next_action is not None
            outcome = retry_state.outcome.result()
            reason = "rate_limited" if isinstance(outcome, RateLimited) else "transient_failure"
            delay = retry_state.next_action.sleep
            logger.info(
                "compiler_backoff",
                bot_id=session.bot_id,
                attempt=retry_state.attempt_number,
                delay_seconds=delay,
                reason=reason,
            )
            self._events.emit(
                BackoffScheduled(
                    bot_id=session.bot_id,
                    attempt=retry_state.attempt_number,
                    delay_seconds=delay,
                    reason=reason,
                )
            )

        def stop_if_cancelled(retry_state: RetryCallState) -> bool:
            return self._token.is_cancelled

        def stop_if_hint_too_long(retry_state: RetryCallState) -> bool:
            assert retry_state.outcome is not None
            return self._hint_exceeds_limit(retry_state.outcome.result())

        def last_outcome(retry_state: RetryCallState) -> Outcome:
            assert retry_state.outcome is not None
            result: Outcome = retry_state.outcome.result()
            return result

        retrying = Retrying(
            retry=retry_if_result(lambda outcome: isinstance(outcome, RETRYABLE_OUTCOMES)),
            stop=stop_any(
                stop_after_attempt(repair.max_transient_retries + 1),
                stop_if_cancelled,
                stop_if_hint_too_long,
            ),
            wait=backoff,
            sleep=self._clock.sleep,
            before_sleep=before_sleep,
            retry_error_callback=last_outcome,
        )
        return retrying(
            lambda: self._compiler.submit(
                session.artifact_text,
                session.scripts,
                session.credential,
                session.target,
                bot_id=session.bot_id,
            )
        )

    def _patch(self, session: RepairSession) -> RepairPhase:
        """Ask for a rewrite; every call consumes one iteration."""
        session.iteration += 1
        repair = self._settings.repair

        try:
            result = self._retry_manager.execute_with_retry(
                lambda: self._patcher.request_patch(session.artifact_text, session.remaining_errors, session.context),
                is_retryable=lambda e: isinstance(e, PatchServiceError) and e.retryable,
                on_retry=lambda attempt, e: logger.info(
                    "patch_retry", bot_id=session.bot_id, attempt=attempt, error=str(e)
                ),
            )
        except (MaxRetriesExceeded, PatchServiceError) as e:
            logger.warning("patch_failed", bot_id=session.bot_id, iteration=session.iteration, error=str(e))
            return self._after_unusable_patch(session)

        before = len(parse_artifact(session.artifact_text))
        after = len(parse_artifact(result.artifact_text))
        if not row_change_allowed(
            before, after, ratio=repair.max_row_change_ratio, absolute=repair.max_row_change_absolute
        ):
            logger.warning(
                "patch_rejected_row_change",
                bot_id=session.bot_id,
                iteration=session.iteration,
                rows_before=before,
                rows_after=after,
            )
            return self._after_unusable_patch(session)

        session.artifact_text = result.artifact_text
        session.fixes_applied.extend(result.descriptions)
        self._events.emit(
            PatchApplied(bot_id=session.bot_id, iteration=session.iteration, descriptions=result.descriptions)
        )
        logger.info(
            "patch_applied",
            bot_id=session.bot_id,
            iteration=session.iteration,
            fixes=len(result.descriptions),
        )
        self._structural_fix(session)
        return RepairPhase.REMOTE_VALIDATING

    def _after_unusable_patch(self, session: RepairSession) -> RepairPhase:
        # Artifact unchanged; resubmitting it would only repeat the rejection
        if session.iteration < self._settings.repair.max_iterations:
            return RepairPhase.PATCHING
        return RepairPhase.EXHAUSTED

    def _describe_session(self) -> str:
        return self._session.bot_id if self._session is not None else "another caller"
