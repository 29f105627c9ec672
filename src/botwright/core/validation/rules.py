# src/botwright/core/validation/rules.py
"""Structural checks and their auto-fixes.

Each check is independent and runs on every pass. Checks that have a
deterministic, conservative repair are reported as auto-fixable; the
matching fix lives in fix_record(). Fixes never change a node number and
never remove a row.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from botwright.contracts.columns import Column
from botwright.contracts.enums import NodeKind, RichContentKind
from botwright.contracts.records import NodeRecord, ValidationIssue
from botwright.contracts.types import NodeNumber
from botwright.core.artifact.parser import ParsedArtifact
from botwright.core.artifact.rich_content import parse_rich_content
from botwright.core.artifact.system_nodes import is_system_number
from botwright.core.config import ValidationSettings
from botwright.core.graph.references import iter_references
from botwright.core.validation.fallback import resolve_fallback
from botwright.core.validation.fixes import rewrite_references

START_NODE_MISSING = "start_node_missing"
DUPLICATE_NODE_NUMBER = "duplicate_node_number"
UNKNOWN_NODE_KIND = "unknown_node_kind"
DANGLING_REFERENCE = "dangling_reference"
DECISION_CONTENT_MISSING = "decision_content_missing"
ACTION_COMMAND_MISSING = "action_command_missing"
ACTION_DECISION_VARIABLE_MISSING = "action_decision_variable_missing"
ACTION_ERROR_ROUTE_MISSING = "action_error_route_missing"
ORPHAN_NODE = "orphan_node"
DEAD_END_DECISION = "dead_end_decision"
NLU_DISABLED_MULTI_ROUTE = "nlu_disabled_multi_route"
TRANSFER_HAS_NEXT_NODES = "transfer_has_next_nodes"
PICKER_INPUT_FLAGS = "picker_input_flags"
RICH_CONTENT_UNPARSEABLE = "rich_content_unparseable"

PLACEHOLDER_COMMAND = "SysAssignVariable"
PLACEHOLDER_PARAM_INPUT = '{"set":{"PLACEHOLDER":"true"}}'
DEFAULT_DECISION_VARIABLE = "success"
DISABLE_INPUT = "disable_input"

_PICKER_KINDS = frozenset({RichContentKind.DATE_PICKER, RichContentKind.FILE_UPLOAD})


@dataclass(frozen=True, slots=True)
class RuleContext:
    """Artifact-wide facts every per-record check needs.

    incoming maps a node to the other nodes that reference it; self
    references do not count.
    """

    settings: ValidationSettings
    numbers: frozenset[NodeNumber]
    incoming: Mapping[NodeNumber, frozenset[NodeNumber]]

    @classmethod
    def from_artifact(cls, artifact: ParsedArtifact, settings: ValidationSettings) -> RuleContext:
        numbers = artifact.numbers()
        incoming: dict[NodeNumber, set[NodeNumber]] = {}
        for record in artifact.records:
            for reference in iter_references(record):
                if reference.target in numbers and reference.target != record.number:
                    incoming.setdefault(reference.target, set()).add(record.number)
        return cls(
            settings=settings,
            numbers=numbers,
            incoming={target: frozenset(sources) for target, sources in incoming.items()},
        )

    def fallback_for(self, record: NodeRecord, near: int) -> NodeNumber | None:
        return resolve_fallback(
            near,
            self.numbers,
            preferred=self.settings.fallback_nodes,
            exclude=(record.number,),
        )

    def error_target_for(self, record: NodeRecord) -> NodeNumber | None:
        error_node = self.settings.error_node
        if error_node in self.numbers and error_node != record.number:
            return NodeNumber(error_node)
        return self.fallback_for(record, error_node)

    def is_entry_point(self, record: NodeRecord) -> bool:
        settings = self.settings
        return (
            record.number == settings.startup_node
            or is_system_number(record.number, settings.system_threshold)
            or record.number in settings.entry_nodes
            or bool(record.cell(Column.INTENT))
        )

    def is_endpoint(self, record: NodeRecord) -> bool:
        settings = self.settings
        return (
            record.number in settings.terminal_nodes
            or record.has_behavior(settings.transfer_behavior)
            or record.has_tag(settings.endpoint_tag)
        )


def _issue(record: NodeRecord, column: Column, code: str, message: str, *, fixable: bool) -> ValidationIssue:
    return ValidationIssue(
        node_number=record.number,
        field=column.header,
        message=message,
        auto_fixable=fixable,
        code=code,
    )


def check_artifact(artifact: ParsedArtifact, ctx: RuleContext) -> list[ValidationIssue]:
    """Artifact-level checks: start node presence and duplicate numbers."""
    issues: list[ValidationIssue] = []
    if ctx.settings.startup_node not in ctx.numbers:
        issues.append(
            ValidationIssue(
                node_number=None,
                field=Column.NODE_NUMBER.header,
                message=f"missing required start node {ctx.settings.startup_node}",
                auto_fixable=False,
                code=START_NODE_MISSING,
            )
        )
    counts = Counter(record.number for record in artifact.records)
    for number, count in sorted(counts.items()):
        if count > 1:
            issues.append(
                ValidationIssue(
                    node_number=number,
                    field=Column.NODE_NUMBER.header,
                    message=f"node number {number} is used by {count} rows",
                    auto_fixable=False,
                    code=DUPLICATE_NODE_NUMBER,
                )
            )
    return issues


def _distinct_destinations(record: NodeRecord) -> set[NodeNumber]:
    return {reference.target for reference in iter_references(record)}


def check_record(record: NodeRecord, ctx: RuleContext) -> Iterator[ValidationIssue]:
    """Yield every issue for one record, in a stable order."""
    kind = record.kind
    if kind is None:
        yield _issue(
            record,
            Column.NODE_TYPE,
            UNKNOWN_NODE_KIND,
            f"node type {record.cell(Column.NODE_TYPE)!r} is neither 'D' nor 'A'",
            fixable=False,
        )

    for reference in iter_references(record):
        if reference.target in ctx.numbers:
            continue
        yield _issue(
            record,
            reference.column,
            DANGLING_REFERENCE,
            f"references node {reference.target} which does not exist",
            fixable=ctx.fallback_for(record, reference.target) is not None,
        )

    content = parse_rich_content(record.rich_content_type, record.rich_content_payload)
    if content is not None and not content.well_formed:
        yield _issue(
            record,
            Column.RICH_CONTENT,
            RICH_CONTENT_UNPARSEABLE,
            "rich asset content looks like JSON but cannot be parsed",
            fixable=False,
        )

    transfers = record.has_behavior(ctx.settings.transfer_behavior)
    if transfers and record.cell(Column.NEXT_NODES):
        yield _issue(
            record,
            Column.NEXT_NODES,
            TRANSFER_HAS_NEXT_NODES,
            "agent transfer nodes must not declare next nodes",
            fixable=True,
        )

    if kind is NodeKind.DECISION:
        yield from _check_decision(record, ctx, content_kind=content.kind if content else None)
    elif kind is NodeKind.ACTION:
        yield from _check_action(record, ctx)

    if not ctx.is_entry_point(record) and not ctx.incoming.get(record.number):
        yield _issue(
            record,
            Column.NODE_NUMBER,
            ORPHAN_NODE,
            "no other node routes here and it is not an entry point",
            fixable=False,
        )


def _check_decision(
    record: NodeRecord,
    ctx: RuleContext,
    *,
    content_kind: RichContentKind | None,
) -> Iterator[ValidationIssue]:
    endpoint = ctx.is_endpoint(record)
    if not record.message and not record.rich_content_payload and not endpoint:
        yield _issue(
            record,
            Column.MESSAGE,
            DECISION_CONTENT_MISSING,
            "decision node needs a message or rich asset content",
            fixable=False,
        )

    # A node whose only routes dangle is repaired by re-pointing, not reported here.
    if not endpoint and not any(True for _ in iter_references(record)):
        yield _issue(
            record,
            Column.NEXT_NODES,
            DEAD_END_DECISION,
            "decision node has no outgoing route and is not an endpoint",
            fixable=ctx.fallback_for(record, record.number) is not None,
        )

    if record.cell(Column.NLU_DISABLED) == "1" and len(_distinct_destinations(record)) > 1:
        yield _issue(
            record,
            Column.NLU_DISABLED,
            NLU_DISABLED_MULTI_ROUTE,
            "NLU disabled nodes may have at most one destination",
            fixable=True,
        )

    if content_kind in _PICKER_KINDS and (
        record.cell(Column.ANSWER_REQUIRED) != "1" or not record.has_behavior(DISABLE_INPUT)
    ):
        yield _issue(
            record,
            Column.ANSWER_REQUIRED,
            PICKER_INPUT_FLAGS,
            f"{record.rich_content_type} needs Answer Required=1 and the {DISABLE_INPUT} behavior",
            fixable=True,
        )


def _check_action(record: NodeRecord, ctx: RuleContext) -> Iterator[ValidationIssue]:
    if not record.command:
        yield _issue(
            record,
            Column.COMMAND,
            ACTION_COMMAND_MISSING,
            "action node has no command",
            fixable=True,
        )
        # The command fix fills routing too; don't double-report it.
        return

    what_next = record.cell(Column.WHAT_NEXT)
    if what_next and not record.cell(Column.DECISION_VARIABLE):
        yield _issue(
            record,
            Column.DECISION_VARIABLE,
            ACTION_DECISION_VARIABLE_MISSING,
            "what next is set but decision variable is empty",
            fixable=True,
        )
    if what_next and "error~" not in what_next.lower():
        yield _issue(
            record,
            Column.WHAT_NEXT,
            ACTION_ERROR_ROUTE_MISSING,
            "what next has no error route",
            fixable=ctx.error_target_for(record) is not None,
        )


def fix_record(record: NodeRecord, ctx: RuleContext) -> tuple[NodeRecord, list[str]]:
    """Apply every applicable auto-fix to one record.

    Fixes run in a fixed order so later fixes see earlier ones: dangling
    references first, so a node whose only route was broken is re-pointed
    rather than treated as a dead end.

    Returns:
        (possibly updated record, descriptions of fixes applied)
    """
    fixes: list[str] = []
    number = record.number
    settings = ctx.settings

    def replace(target: NodeNumber) -> NodeNumber | None:
        if target in ctx.numbers:
            return None
        replacement = ctx.fallback_for(record, target)
        if replacement is not None:
            fixes.append(f"Node {number}: re-pointed dangling reference {target} -> {replacement}")
        return replacement

    record = rewrite_references(record, replace)

    if record.has_behavior(settings.transfer_behavior) and record.cell(Column.NEXT_NODES):
        record = record.with_cell(Column.NEXT_NODES, "")
        fixes.append(f"Node {number}: cleared next nodes on agent transfer node")

    if record.kind is NodeKind.ACTION:
        record = _fix_action(record, ctx, fixes)
    elif record.kind is NodeKind.DECISION:
        record = _fix_decision(record, ctx, fixes)

    return record, fixes


def _fix_action(record: NodeRecord, ctx: RuleContext, fixes: list[str]) -> NodeRecord:
    number = record.number
    if not record.command:
        record = record.with_cell(Column.COMMAND, PLACEHOLDER_COMMAND)
        if not record.cell(Column.PARAM_INPUT):
            record = record.with_cell(Column.PARAM_INPUT, PLACEHOLDER_PARAM_INPUT)
        if not record.cell(Column.WHAT_NEXT):
            success = record.next_nodes[0] if record.next_nodes else ctx.fallback_for(record, number)
            error = ctx.error_target_for(record)
            if success is not None and error is not None:
                record = record.with_cell(Column.WHAT_NEXT, f"true~{success}|error~{error}")
        fixes.append(f"Node {number}: added {PLACEHOLDER_COMMAND} to empty action command")

    what_next = record.cell(Column.WHAT_NEXT)
    if what_next and "error~" not in what_next.lower():
        error = ctx.error_target_for(record)
        if error is not None:
            record = record.with_cell(Column.WHAT_NEXT, f"{what_next}|error~{error}")
            fixes.append(f"Node {number}: added missing error~{error} route to what next")

    if record.cell(Column.WHAT_NEXT) and not record.cell(Column.DECISION_VARIABLE):
        record = record.with_cell(Column.DECISION_VARIABLE, DEFAULT_DECISION_VARIABLE)
        fixes.append(f'Node {number}: added missing decision variable "{DEFAULT_DECISION_VARIABLE}"')
    return record


def _fix_decision(record: NodeRecord, ctx: RuleContext, fixes: list[str]) -> NodeRecord:
    number = record.number
    if not ctx.is_endpoint(record) and not any(True for _ in iter_references(record)):
        fallback = ctx.fallback_for(record, number)
        if fallback is not None:
            record = record.with_cell(Column.NEXT_NODES, str(fallback))
            fixes.append(f"Node {number}: routed dead-end decision node to {fallback}")

    if record.cell(Column.NLU_DISABLED) == "1" and len(_distinct_destinations(record)) > 1:
        record = record.with_cell(Column.NLU_DISABLED, "")
        fixes.append(f"Node {number}: cleared NLU disabled (node has several destinations)")

    content = parse_rich_content(record.rich_content_type, record.rich_content_payload)
    if content is not None and content.kind in _PICKER_KINDS:
        if record.cell(Column.ANSWER_REQUIRED) != "1":
            record = record.with_cell(Column.ANSWER_REQUIRED, "1")
            fixes.append(f"Node {number}: set Answer Required=1 for {record.rich_content_type}")
        if not record.has_behavior(DISABLE_INPUT):
            behaviors = record.cell(Column.BEHAVIORS)
            record = record.with_cell(Column.BEHAVIORS, f"{behaviors},{DISABLE_INPUT}" if behaviors else DISABLE_INPUT)
            fixes.append(f"Node {number}: added {DISABLE_INPUT} behavior for {record.rich_content_type}")
    return record
