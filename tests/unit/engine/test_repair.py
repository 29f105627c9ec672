# tests/unit/engine/test_repair.py
"""Tests for the repair orchestrator state machine.

The compiler and patch service are scripted fakes; a MockClock records
every backoff pause so no test sleeps for real.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from botwright.clients.compiler import Script
from botwright.clients.llm import RateLimitError
from botwright.clients.patcher import PatchResult
from botwright.contracts import (
    Accepted,
    CompilerError,
    DeployTarget,
    Outcome,
    PatchServiceError,
    RateLimited,
    Rejected,
    RepairPhase,
    TransientFailure,
    Unauthorized,
)
from botwright.contracts.events import BackoffScheduled, PatchApplied, RemoteRejected, RepairFinished, RepairPhaseEntered
from botwright.core.artifact import parse_artifact
from botwright.core.config import BotwrightSettings, RepairSettings
from botwright.core.events import EventBus
from botwright.engine import MockClock, RepairOrchestrator
from botwright.engine.repair import error_signature, row_change_allowed
from tests.builders import artifact, row, valid_bot

BOT_ID = "Acme.Billing"


@dataclass
class Submission:
    artifact_text: str
    credential: str
    target: DeployTarget
    scripts: tuple[Script, ...]


@dataclass
class FakeCompiler:
    """Returns scripted outcomes in order; the last one repeats."""

    outcomes: list[Outcome]
    submissions: list[Submission] = field(default_factory=list)

    def submit(
        self,
        artifact_text: str,
        scripts: Sequence[Script],
        credential: str,
        target: DeployTarget,
        *,
        bot_id: str,
    ) -> Outcome:
        self.submissions.append(Submission(artifact_text, credential, target, tuple(scripts)))
        index = min(len(self.submissions), len(self.outcomes)) - 1
        return self.outcomes[index]


@dataclass
class FakePatcher:
    """Returns scripted replies (PatchResult or exception); the last one repeats."""

    replies: list[PatchResult | Exception]
    requests: list[tuple[str, tuple[str, ...], str]] = field(default_factory=list)

    def request_patch(self, artifact_text: str, errors: Sequence[str], context: str) -> PatchResult:
        self.requests.append((artifact_text, tuple(errors), context))
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


def _rejected(*messages: str, node: int = 105) -> Rejected:
    return Rejected(errors=tuple(CompilerError(node_number=node, field="Command", message=m) for m in messages))


def _patched(description: str = "Renamed node 110") -> PatchResult:
    return PatchResult(artifact_text=valid_bot().replace("Invoice Sent", "Invoice Emailed"), descriptions=(description,))


def _settings(**repair: object) -> BotwrightSettings:
    return BotwrightSettings(repair=RepairSettings(**repair))  # type: ignore[arg-type]


def _orchestrator(
    compiler: FakeCompiler,
    patcher: FakePatcher | None = None,
    *,
    clock: MockClock,
    settings: BotwrightSettings | None = None,
    bus: EventBus | None = None,
) -> RepairOrchestrator:
    return RepairOrchestrator(
        compiler,
        patcher or FakePatcher([_patched()]),
        settings=settings,
        clock=clock,
        event_bus=bus,
    )


class TestAccepted:
    """Happy paths."""

    def test_valid_artifact_accepted_first_time(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([Accepted(version_id="v1")])
        bus = EventBus()
        phases: list[RepairPhase] = []
        bus.subscribe(RepairPhaseEntered, lambda event: phases.append(event.phase))

        result = _orchestrator(compiler, clock=mock_clock, bus=bus).run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.DONE
        assert result.valid
        assert result.version_id == "v1"
        assert result.iterations == 0
        assert result.artifact_text == valid_artifact
        assert phases == [
            RepairPhase.SANITIZING,
            RepairPhase.STRUCTURAL_FIX,
            RepairPhase.REMOTE_VALIDATING,
            RepairPhase.DONE,
        ]
        assert compiler.submissions[0].target is DeployTarget.SANDBOX
        assert mock_clock.sleeps == []

    def test_structural_fixes_applied_before_submission(self, mock_clock: MockClock) -> None:
        text = artifact(row(1, node_type="D", message="Hi", next_nodes="4242"))
        compiler = FakeCompiler([Accepted(version_id="v1")])

        result = _orchestrator(compiler, clock=mock_clock).run(text, bot_id=BOT_ID, credential="k")

        submitted = parse_artifact(compiler.submissions[0].artifact_text).by_number()
        assert submitted[1].next_nodes == (99990,)
        assert 666 in submitted
        assert any("Injected missing required system node" in fix for fix in result.fixes_applied)
        assert any("re-pointed dangling reference 4242 -> 99990" in fix for fix in result.fixes_applied)

    def test_system_node_injection_can_be_disabled(self, mock_clock: MockClock) -> None:
        text = artifact(row(1, node_type="D", message="Hi", node_tags="endpoint"))
        compiler = FakeCompiler([Accepted(version_id="v1")])

        _orchestrator(compiler, clock=mock_clock, settings=_settings(inject_system_nodes=False)).run(
            text, bot_id=BOT_ID, credential="k"
        )

        assert compiler.submissions[0].artifact_text == text

    def test_sanitized_before_submission(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([Accepted(version_id="v1")])
        wrapped = "```csv\n" + valid_artifact.replace("\n", "\r\n") + "```\n"

        _orchestrator(compiler, clock=mock_clock).run(wrapped, bot_id=BOT_ID, credential="k")

        assert compiler.submissions[0].artifact_text == valid_artifact

    def test_accepted_scripts_marked_uploaded(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([Accepted(version_id="v1")])
        orchestrator = _orchestrator(compiler, clock=mock_clock)
        scripts = [Script(name="SendInvoice", content="def run(): ...")]

        orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k", scripts=scripts, target=DeployTarget.PRODUCTION)

        assert compiler.submissions[0].scripts == tuple(scripts)
        assert compiler.submissions[0].target is DeployTarget.PRODUCTION
        assert orchestrator.inventory.is_uploaded("SendInvoice")


class TestPatching:
    """Compiler rejections drive AI patches."""

    def test_rejection_patched_then_accepted(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("unknown script"), Accepted(version_id="v2")])
        patcher = FakePatcher([_patched("Replaced unknown script")])
        bus = EventBus()
        applied: list[PatchApplied] = []
        bus.subscribe(PatchApplied, applied.append)

        result = RepairOrchestrator(compiler, patcher, clock=mock_clock, event_bus=bus).run(
            valid_artifact, bot_id=BOT_ID, credential="k", context="Invoice bot"
        )

        assert result.status is RepairPhase.DONE
        assert result.iterations == 1
        assert result.version_id == "v2"
        assert "Replaced unknown script" in result.fixes_applied
        assert result.remaining_errors == ()
        assert patcher.requests == [(valid_artifact, ("Node 105: [Command] unknown script",), "Invoice bot")]
        assert "Invoice Emailed" in compiler.submissions[1].artifact_text
        assert [event.iteration for event in applied] == [1]

    def test_context_defaults_to_settings(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("x"), Accepted(version_id="v2")])
        patcher = FakePatcher([_patched()])
        settings = BotwrightSettings.model_validate({"patcher": {"project_context": "Pizza bot"}})

        RepairOrchestrator(compiler, patcher, settings=settings, clock=mock_clock).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert patcher.requests[0][2] == "Pizza bot"

    def test_exhausted_after_max_iterations(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("still broken")])
        patcher = FakePatcher([_patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock, settings=_settings(max_iterations=2)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.EXHAUSTED
        assert not result.valid
        assert result.iterations == 2
        assert len(patcher.requests) == 2
        assert len(compiler.submissions) == 3
        assert result.remaining_errors == ("Node 105: [Command] still broken",)
        assert "Invoice Emailed" in result.artifact_text

    def test_zero_iterations_never_patches(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken")])
        patcher = FakePatcher([_patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock, settings=_settings(max_iterations=0)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.EXHAUSTED
        assert patcher.requests == []

    def test_stuck_rejections_flagged(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("bad route", node=105), _rejected("bad route", node=106)])
        bus = EventBus()
        rejections: list[RemoteRejected] = []
        bus.subscribe(RemoteRejected, rejections.append)

        _orchestrator(compiler, clock=mock_clock, settings=_settings(max_iterations=1), bus=bus).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert [event.stuck for event in rejections] == [False, True]

    def test_row_guard_refuses_destructive_rewrite(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken")])
        truncated = PatchResult(artifact_text=artifact(row(1, node_type="D", message="Hi")), descriptions=("Removed rows",))
        patcher = FakePatcher([truncated])

        result = _orchestrator(compiler, patcher, clock=mock_clock, settings=_settings(max_iterations=2)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.EXHAUSTED
        assert result.artifact_text == valid_artifact
        assert "Removed rows" not in result.fixes_applied
        assert len(patcher.requests) == 2
        assert len(compiler.submissions) == 1

    def test_non_retryable_patch_failure_consumes_iteration(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken"), Accepted(version_id="v3")])
        patcher = FakePatcher([PatchServiceError("no artifact in reply"), _patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock).run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.DONE
        assert result.iterations == 2
        assert len(patcher.requests) == 2
        assert len(compiler.submissions) == 2

    def test_retryable_patch_failure_retried_within_iteration(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken"), Accepted(version_id="v4")])
        patcher = FakePatcher([RateLimitError("429"), RateLimitError("429"), _patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock).run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.DONE
        assert result.iterations == 1
        assert len(patcher.requests) == 3
        assert len(mock_clock.sleeps) == 2


class TestBackoff:
    """Rate limits and transient failures are resubmitted, not patched."""

    def test_rate_limit_waits_for_hint(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([RateLimited(retry_after=30), Accepted(version_id="v1")])
        bus = EventBus()
        backoffs: list[BackoffScheduled] = []
        bus.subscribe(BackoffScheduled, backoffs.append)

        result = _orchestrator(compiler, clock=mock_clock, bus=bus).run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.DONE
        assert result.iterations == 0
        assert mock_clock.sleeps == [30.0]
        assert [(event.reason, event.delay_seconds) for event in backoffs] == [("rate_limited", 30.0)]

    def test_missing_hint_uses_default(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([RateLimited(), Accepted(version_id="v1")])
        _orchestrator(compiler, clock=mock_clock, settings=_settings(default_retry_after_seconds=12)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )
        assert mock_clock.sleeps == [12.0]

    def test_hint_never_shortened(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([RateLimited(retry_after=120), Accepted(version_id="v1")])
        result = _orchestrator(compiler, clock=mock_clock, settings=_settings(max_backoff_seconds=120)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )
        assert result.status is RepairPhase.DONE
        assert mock_clock.sleeps == [120.0]

    def test_hint_above_limit_fails_without_resubmitting(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([RateLimited(retry_after=600), Accepted(version_id="v1")])
        patcher = FakePatcher([_patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock, settings=_settings(max_backoff_seconds=300)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.FAILED
        assert result.error == "Compiler asked to wait 600s, longer than max_backoff_seconds (300s)"
        assert len(compiler.submissions) == 1
        assert mock_clock.sleeps == []
        assert patcher.requests == []

    def test_transient_failures_exhaust_budget(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([TransientFailure(reason="HTTP 503: down")])
        patcher = FakePatcher([_patched()])

        result = _orchestrator(compiler, patcher, clock=mock_clock, settings=_settings(max_transient_retries=2)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.FAILED
        assert result.error == "Compiler unavailable after 2 retries: HTTP 503: down"
        assert len(compiler.submissions) == 3
        assert mock_clock.sleeps == [30.0, 30.0]
        assert patcher.requests == []
        assert result.iterations == 0


class TestRemainingErrors:
    """Local issues are reported until the compiler answers."""

    @staticmethod
    def _with_orphan() -> str:
        return valid_bot() + row(400, node_type="D", node_name="Lost", message="Lost", next_nodes="666") + "\n"

    def test_failed_before_any_rejection_reports_local_issues(self, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([TransientFailure(reason="HTTP 503")])

        result = _orchestrator(compiler, clock=mock_clock, settings=_settings(max_transient_retries=0)).run(
            self._with_orphan(), bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.FAILED
        assert result.remaining_errors == (
            "Node 400: [Node Number] no other node routes here and it is not an entry point",
        )

    def test_rejection_replaces_local_issues(self, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken")])

        result = _orchestrator(compiler, clock=mock_clock, settings=_settings(max_iterations=0)).run(
            self._with_orphan(), bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.EXHAUSTED
        assert result.remaining_errors == ("Node 105: [Command] broken",)

    def test_clean_artifact_has_no_local_issues(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([TransientFailure(reason="HTTP 503")])

        result = _orchestrator(compiler, clock=mock_clock, settings=_settings(max_transient_retries=0)).run(
            valid_artifact, bot_id=BOT_ID, credential="k"
        )

        assert result.status is RepairPhase.FAILED
        assert result.remaining_errors == ()


class TestCredentials:
    """Suspension on refused credentials and resumption."""

    def test_unauthorized_suspends_and_resume_continues(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([_rejected("broken"), Unauthorized(message="expired"), Accepted(version_id="v9")])
        orchestrator = _orchestrator(compiler, clock=mock_clock)

        suspended = orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="old")

        assert suspended.needs_credential
        assert suspended.error == "expired"
        assert suspended.iterations == 1
        assert orchestrator.session is not None

        result = orchestrator.resume("new")

        assert result.status is RepairPhase.DONE
        assert result.iterations == 1
        assert [submission.credential for submission in compiler.submissions] == ["old", "old", "new"]
        assert compiler.submissions[2].artifact_text == compiler.submissions[1].artifact_text
        assert orchestrator.session is None

    def test_run_refused_while_awaiting_credential(self, valid_artifact: str, mock_clock: MockClock) -> None:
        orchestrator = _orchestrator(FakeCompiler([Unauthorized()]), clock=mock_clock)
        orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="old")

        with pytest.raises(RuntimeError, match="awaiting a credential"):
            orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k")

    def test_cancel_discards_suspended_session(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([Unauthorized(), Accepted(version_id="v1")])
        orchestrator = _orchestrator(compiler, clock=mock_clock)
        orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="old")

        orchestrator.cancel()

        assert orchestrator.session is None
        with pytest.raises(RuntimeError, match="No repair session"):
            orchestrator.resume("new")
        assert orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="new").status is RepairPhase.DONE

    def test_resume_without_session(self, mock_clock: MockClock) -> None:
        with pytest.raises(RuntimeError, match="No repair session"):
            _orchestrator(FakeCompiler([Accepted(version_id="v1")]), clock=mock_clock).resume("k")


class TestCancellation:
    def test_cancel_at_phase_transition(self, valid_artifact: str, mock_clock: MockClock) -> None:
        compiler = FakeCompiler([Accepted(version_id="v1")])
        bus = EventBus()
        orchestrator = _orchestrator(compiler, clock=mock_clock, bus=bus)

        def cancel_on_structural_fix(event: RepairPhaseEntered) -> None:
            if event.phase is RepairPhase.STRUCTURAL_FIX:
                orchestrator.cancel()

        bus.subscribe(RepairPhaseEntered, cancel_on_structural_fix)

        result = orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.CANCELLED
        assert compiler.submissions == []
        assert orchestrator.session is None

    def test_cancel_stops_backoff(self, valid_artifact: str, mock_clock: MockClock) -> None:
        orchestrator: RepairOrchestrator

        class CancellingCompiler(FakeCompiler):
            def submit(self, *args: object, **kwargs: object) -> Outcome:
                outcome = super().submit(*args, **kwargs)  # type: ignore[arg-type]
                orchestrator.cancel()
                return outcome

        compiler = CancellingCompiler([TransientFailure(reason="timeout")])
        orchestrator = _orchestrator(compiler, clock=mock_clock)

        result = orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert result.status is RepairPhase.CANCELLED
        assert len(compiler.submissions) == 1
        assert mock_clock.sleeps == []

    def test_new_run_after_cancel(self, valid_artifact: str, mock_clock: MockClock) -> None:
        orchestrator = _orchestrator(FakeCompiler([Accepted(version_id="v1")]), clock=mock_clock)
        orchestrator.cancel()
        assert orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k").status is RepairPhase.DONE


class TestReentry:
    def test_run_refused_while_running(self, valid_artifact: str, mock_clock: MockClock) -> None:
        orchestrator: RepairOrchestrator
        errors: list[RuntimeError] = []

        class ReentrantCompiler(FakeCompiler):
            def submit(self, *args: object, **kwargs: object) -> Outcome:
                try:
                    orchestrator.run(valid_artifact, bot_id="Acme.Other", credential="k")
                except RuntimeError as e:
                    errors.append(e)
                return super().submit(*args, **kwargs)  # type: ignore[arg-type]

        orchestrator = _orchestrator(ReentrantCompiler([Accepted(version_id="v1")]), clock=mock_clock)

        assert orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k").status is RepairPhase.DONE
        assert len(errors) == 1
        assert BOT_ID in str(errors[0])

    def test_session_discarded_when_a_collaborator_raises(self, valid_artifact: str, mock_clock: MockClock) -> None:
        class BrokenCompiler(FakeCompiler):
            def submit(self, *args: object, **kwargs: object) -> Outcome:
                raise KeyError("bug")

        orchestrator = _orchestrator(BrokenCompiler([]), clock=mock_clock)
        with pytest.raises(KeyError):
            orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="k")

        assert orchestrator.session is None


class TestFinishedEvent:
    def test_emitted_once_per_call(self, valid_artifact: str, mock_clock: MockClock) -> None:
        bus = EventBus()
        finished: list[RepairFinished] = []
        bus.subscribe(RepairFinished, finished.append)
        orchestrator = _orchestrator(FakeCompiler([Unauthorized(), Accepted(version_id="v1")]), clock=mock_clock, bus=bus)

        orchestrator.run(valid_artifact, bot_id=BOT_ID, credential="a")
        orchestrator.resume("b")

        assert [event.phase for event in finished] == [RepairPhase.NEEDS_CREDENTIAL, RepairPhase.DONE]


class TestHelpers:
    def test_error_signature_masks_numbers(self) -> None:
        assert error_signature(["Node 105: bad"]) == error_signature(["Node 106: bad"])
        assert error_signature(["Node 105: bad"]) != error_signature(["Node 105: worse"])

    @pytest.mark.parametrize(
        ("before", "after", "allowed"),
        [
            (100, 104, True),
            (100, 96, True),
            (100, 94, False),
            (10, 13, True),
            (10, 14, False),
            (200, 210, True),
        ],
    )
    def test_row_change_allowed(self, before: int, after: int, allowed: bool) -> None:
        assert row_change_allowed(before, after, ratio=0.05, absolute=3) is allowed
