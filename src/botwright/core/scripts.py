# src/botwright/core/scripts.py
"""Script dependency analysis for Action-node commands.

System commands are provided by the runtime. Every other command is a
custom script whose source must be uploaded with the artifact. A custom
script may also appear in the official script catalogue, in which case a
caller can supply the source without asking the user.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import structlog

from botwright.contracts.columns import Column
from botwright.contracts.enums import NodeKind, ScriptClass
from botwright.contracts.records import NodeRecord, ScriptReference
from botwright.contracts.types import NodeNumber
from botwright.core.artifact.parser import parse_artifact
from botwright.core.artifact.system_nodes import ERROR_NODE
from botwright.core.artifact.writer import serialize_artifact

logger = structlog.get_logger(__name__)

SYSTEM_COMMANDS: frozenset[str] = frozenset(
    {
        "SysAssignVariable",
        "SysMultiMatchRouting",
        "SysShowMetadata",
        "SysSetEnv",
        "SysVariableReset",
    }
)

MOCK_COMMAND = "SysAssignVariable"

OFFICIAL_SCRIPTS: frozenset[str] = frozenset(
    {
        "AgentTimeCheck", "AppendValue", "AppendValueEnd", "AssignVariable", "AWSDetectLanguage",
        "AWSPhoneValidate", "AWSTranslate", "BackOrProceed", "CapVariable", "CheckIfGlobalVarsEqual",
        "CheckLastURL", "CheckTranscriptEngaged", "CheckTranscriptEscalation", "CompileDisclaimerText",
        "CompileSummaryMessage", "ConcatenateStrings", "CountryListpicker", "CreateContactCenterSession",
        "CreateMapLink", "DateTimeRouting", "DecodeGlobalVariables", "DynamicRouting",
        "EncodeForComparison", "EncodeGlobalVariables", "EncodeText", "FailCountCheck",
        "FormatPhone", "FormatTimestamp", "GenerateCalendarLinks", "GenerateDateSelection",
        "GenerateRandomCode", "GenerateTimeSelection", "GetAddressFromForm", "GetAgentStatus",
        "GetAgentWaitTime", "GetCurrentDateTime", "GetDataFromFile", "GetDetailsFromZip",
        "GetDistance", "GetFirstUserMessage", "GetGPTCompletion", "GetNLUIntent", "GetParamFromEnv",
        "GetSessionID", "GetTimeSelection", "GetTimeZoneInfo", "GetURLParams", "GetValue", "GetWeather", "GoBack",
        "GoogleTranslate", "HandleBotError", "InputEscape", "LimitCounter", "ListPickerGenerator", "Lowercase",
        "MakeAPICall", "MaskSensitiveInfo", "MatchRouting", "MathOperation", "MultiMatchRouting",
        "MultiMatchRoutingContains", "NodeReturn", "ParseFullName", "ReformatTranscript",
        "RegExFindAndReplace", "ReturnToFlow", "SaveNode", "SelectedItem", "SelectedItemRouting",
        "SelectionDestinations", "SelectionGenerator", "SendEmail", "SendEmailWithFile",
        "SendTwilioMessage", "SetCarousel", "SetDateFormat", "SetPersistentMenu", "SetVar",
        "ShortenLink", "ShowMetadata", "SlackLogger", "SliderSetup", "SpellCheck", "StarRatingSetup", "StoreInfo",
        "TitleFormat", "URLEncode", "UserPlatformRouting", "ValidateAddress", "ValidateDate",
        "ValidatePhoneAndReturnStripped", "ValidateRegex", "VarCheck", "VariableReset",
    }
)  # fmt: skip


def classify_command(command: str) -> ScriptClass:
    """System if the runtime provides the command, else Custom."""
    return ScriptClass.SYSTEM if command in SYSTEM_COMMANDS else ScriptClass.CUSTOM


def _iter_commands(records: Iterable[NodeRecord]) -> Iterator[str]:
    for record in records:
        if record.kind is NodeKind.ACTION and record.command:
            yield record.command


class ScriptInventory:
    """The Script References known for one bot, with upload state.

    Example:
        inventory = ScriptInventory.from_artifact(csv_text)
        ...submit scripts, compiler accepts...
        inventory.mark_uploaded(["SendInvoice"])
    """

    def __init__(self, references: Iterable[ScriptReference] = ()) -> None:
        self._references: dict[str, ScriptReference] = {}
        for reference in references:
            self._references[reference.command] = reference

    @classmethod
    def from_artifact(cls, artifact_text: str) -> ScriptInventory:
        inventory = cls()
        inventory.observe(artifact_text)
        return inventory

    def observe(self, artifact_text: str) -> None:
        """Register every command in the artifact not seen before."""
        for command in _iter_commands(parse_artifact(artifact_text)):
            if command not in self._references:
                self._references[command] = ScriptReference(command=command, classification=classify_command(command))

    def mark_uploaded(self, commands: Iterable[str]) -> None:
        """Record that the compiler accepted an artifact shipped with these scripts."""
        for command in commands:
            classification = classify_command(command)
            if classification is ScriptClass.SYSTEM:
                continue
            self._references[command] = ScriptReference(command=command, classification=classification, uploaded=True)

    def is_uploaded(self, command: str) -> bool:
        reference = self._references.get(command)
        return reference is not None and reference.uploaded

    def references(self) -> list[ScriptReference]:
        return list(self._references.values())

    def __contains__(self, command: object) -> bool:
        return command in self._references

    def __len__(self) -> int:
        return len(self._references)


@dataclass(frozen=True, slots=True)
class ScriptDetection:
    """Commands used by an artifact, each list in first-use order."""

    system_commands: tuple[str, ...]
    custom_commands: tuple[str, ...]
    missing_uploads: tuple[str, ...]
    official_commands: tuple[str, ...] = ()


def detect(artifact_text: str, inventory: ScriptInventory | None = None) -> ScriptDetection:
    """Classify every Action-node command in the artifact.

    Args:
        artifact_text: Artifact CSV text
        inventory: Upload state; when None nothing counts as uploaded

    Returns:
        ScriptDetection. missing_uploads is the custom commands not yet
        marked uploaded in the inventory.
    """
    seen: dict[str, ScriptClass] = {}
    for command in _iter_commands(parse_artifact(artifact_text)):
        seen.setdefault(command, classify_command(command))

    system = tuple(command for command, cls in seen.items() if cls is ScriptClass.SYSTEM)
    custom = tuple(command for command, cls in seen.items() if cls is ScriptClass.CUSTOM)
    missing = tuple(command for command in custom if inventory is None or not inventory.is_uploaded(command))
    official = tuple(command for command in custom if command in OFFICIAL_SCRIPTS)
    return ScriptDetection(
        system_commands=system,
        custom_commands=custom,
        missing_uploads=missing,
        official_commands=official,
    )


@dataclass(frozen=True, slots=True)
class ScriptRemoval:
    """Result of remove_custom_script()."""

    artifact_text: str
    nodes_modified: tuple[NodeNumber, ...]


def _mock_param_input(record: NodeRecord, command: str) -> str:
    outputs = [name.strip() for name in record.cell(Column.OUTPUT).split(",") if name.strip()]
    if outputs:
        mock = {name.upper(): f"MOCK_{name.upper()}" for name in outputs}
    else:
        mock = {"SCRIPT_REMOVED": "true", "ORIGINAL_COMMAND": command}
    return json.dumps({"set": mock}, separators=(",", ":"))


def _mock_record(record: NodeRecord, command: str) -> NodeRecord:
    mocked = record.with_cell(Column.COMMAND, MOCK_COMMAND)
    mocked = mocked.with_cell(Column.PARAM_INPUT, _mock_param_input(record, command))
    if not record.cell(Column.DECISION_VARIABLE):
        mocked = mocked.with_cell(Column.DECISION_VARIABLE, "success")

    what_next = record.cell(Column.WHAT_NEXT)
    if what_next and "~" not in what_next:
        mocked = mocked.with_cell(Column.WHAT_NEXT, f"true~{what_next}|error~{ERROR_NODE}")
    elif not what_next and record.next_nodes:
        mocked = mocked.with_cell(Column.WHAT_NEXT, f"true~{record.next_nodes[0]}|error~{ERROR_NODE}")

    if "[Mock" not in record.name:
        mocked = mocked.with_cell(Column.NODE_NAME, f"{record.name} [Mock - {command} removed]".strip())
    return mocked


def remove_custom_script(artifact_text: str, name: str) -> ScriptRemoval:
    """Replace every use of a custom script with a mock system command.

    Matching Action nodes get SysAssignVariable with a 'set' parameter that
    fakes the script's outputs, so the conversation keeps flowing. No
    other row is changed.

    Raises:
        ValueError: If name is a system command
    """
    if classify_command(name) is ScriptClass.SYSTEM:
        raise ValueError(f"{name!r} is a system command and cannot be removed")

    artifact = parse_artifact(artifact_text)
    modified: list[NodeNumber] = []
    records: list[NodeRecord] = []
    for record in artifact.records:
        if record.kind is NodeKind.ACTION and record.command == name:
            record = _mock_record(record, name)
            modified.append(record.number)
        records.append(record)

    if not modified:
        return ScriptRemoval(artifact_text=artifact_text, nodes_modified=())

    logger.info("custom_script_removed", command=name, nodes=modified)
    return ScriptRemoval(
        artifact_text=serialize_artifact(artifact.with_records(records)),
        nodes_modified=tuple(modified),
    )
