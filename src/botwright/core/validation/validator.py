# src/botwright/core/validation/validator.py
"""Structural validator - local invariant checks with conservative auto-fix."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from botwright.contracts.records import NodeRecord, ValidationIssue
from botwright.core.artifact.parser import ParsedArtifact, parse_artifact
from botwright.core.artifact.writer import serialize_artifact
from botwright.core.config import ValidationSettings
from botwright.core.validation.rules import RuleContext, check_artifact, check_record, fix_record

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Result of one validate() call.

    issues describe the text that was passed in. When auto-fix ran,
    fixed_text is the repaired artifact (the input itself if nothing
    changed) and remaining_issues describe fixed_text.
    """

    valid: bool
    issues: tuple[ValidationIssue, ...]
    fixed_text: str | None = None
    fixes_applied: tuple[str, ...] = ()
    remaining_issues: tuple[ValidationIssue, ...] = field(default=())

    @property
    def auto_fixable(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.auto_fixable)


class StructuralValidator:
    """Checks an artifact against the runtime's structural rules.

    Example:
        validator = StructuralValidator()
        report = validator.validate(csv_text, auto_fix=True)
        if report.fixes_applied:
            csv_text = report.fixed_text
    """

    def __init__(self, settings: ValidationSettings | None = None) -> None:
        self._settings = settings or ValidationSettings()

    @property
    def settings(self) -> ValidationSettings:
        return self._settings

    def check(self, artifact: ParsedArtifact) -> list[ValidationIssue]:
        """Run every check once and return the issues in artifact order."""
        ctx = RuleContext.from_artifact(artifact, self._settings)
        issues = check_artifact(artifact, ctx)
        for record in artifact.records:
            issues.extend(check_record(record, ctx))
        return issues

    def fix(self, artifact: ParsedArtifact) -> tuple[ParsedArtifact, list[str]]:
        """Apply auto-fixes until none apply (bounded by max_fix_passes).

        Passes are strictly sequential; each sees the previous pass's
        output. Only rows with at least one auto-fixable issue are touched.
        """
        fixes: list[str] = []
        for _ in range(self._settings.max_fix_passes):
            ctx = RuleContext.from_artifact(artifact, self._settings)
            records: list[NodeRecord] = []
            pass_fixes: list[str] = []
            for record in artifact.records:
                if any(issue.auto_fixable for issue in check_record(record, ctx)):
                    record, record_fixes = fix_record(record, ctx)
                    pass_fixes.extend(record_fixes)
                records.append(record)
            if not pass_fixes:
                break
            fixes.extend(pass_fixes)
            artifact = artifact.with_records(records)
        return artifact, fixes

    def validate(self, artifact_text: str, *, auto_fix: bool = False) -> ValidationReport:
        """Validate artifact text, optionally repairing auto-fixable issues.

        Args:
            artifact_text: Artifact CSV text
            auto_fix: Apply deterministic fixes and return the patched text

        Returns:
            ValidationReport; valid is True only when the input had no issues
        """
        artifact = parse_artifact(artifact_text)
        issues = self.check(artifact)

        if not auto_fix:
            logger.debug(
                "structural_validation_complete",
                records=len(artifact),
                issues=len(issues),
                fixable=sum(1 for issue in issues if issue.auto_fixable),
            )
            return ValidationReport(valid=not issues, issues=tuple(issues))

        fixed, fixes = self.fix(artifact)
        if fixes:
            fixed_text = serialize_artifact(fixed)
            remaining = self.check(parse_artifact(fixed_text))
        else:
            fixed_text = artifact_text
            remaining = issues

        logger.debug(
            "structural_autofix_complete",
            records=len(artifact),
            issues=len(issues),
            fixes=len(fixes),
            remaining=len(remaining),
        )
        return ValidationReport(
            valid=not issues,
            issues=tuple(issues),
            fixed_text=fixed_text,
            fixes_applied=tuple(fixes),
            remaining_issues=tuple(remaining),
        )
