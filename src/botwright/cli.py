# src/botwright/cli.py
"""botwright Command Line Interface.

Entry point for the botwright CLI tool.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import typer
import yaml
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from botwright import __version__
from botwright.contracts import BotIdError, DeployTarget, Flow, FlowLayoutError, NodeNumber
from botwright.contracts.events import BackoffScheduled, PatchApplied, RemoteRejected, RepairPhaseEntered
from botwright.core.artifact import parse_artifact
from botwright.core.config import BotwrightSettings, load_settings
from botwright.core.flows import FlowPlan, partition
from botwright.core.scripts import detect, remove_custom_script
from botwright.core.validation import StructuralValidator

__all__ = ["app"]

CREDENTIAL_ENV_VAR = "BOTWRIGHT_COMPILER_CREDENTIAL"

app = typer.Typer(
    name="botwright",
    help="botwright: validate, analyze and repair chatbot definition artifacts.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"botwright version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # Existence is checked in _load_dotenv for a clearer message
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs (for machine processing)."),
) -> None:
    """botwright: validate, analyze and repair chatbot definition artifacts."""
    from botwright.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _read_artifact(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        typer.echo(f"Error: Artifact not found: {path}", err=True)
        raise typer.Exit(1) from None


def _write_output(text: str, output: Path | None) -> None:
    if output is None:
        typer.echo(text, nl=not text.endswith("\n"))
        return
    output.write_text(text, encoding="utf-8")
    typer.echo(f"Wrote {output}", err=True)


def _load_settings_or_exit(settings: Path | None) -> BotwrightSettings:
    try:
        return load_settings(settings.expanduser() if settings is not None else None)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


@app.command()
def validate(
    artifact: Path = typer.Argument(..., help="Artifact CSV file."),
    fix: bool = typer.Option(False, "--fix", help="Apply deterministic auto-fixes."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Where to write the fixed artifact (default: stdout)."),
    settings: Path | None = typer.Option(None, "--settings", "-s", help="Path to settings YAML file."),
) -> None:
    """Check an artifact's structure locally.

    Exits 1 when issues remain (after fixing, when --fix is given).
    """
    text = _read_artifact(artifact)
    config = _load_settings_or_exit(settings)
    report = StructuralValidator(config.validation).validate(text, auto_fix=fix)

    issues = report.remaining_issues if fix else report.issues
    for fix_description in report.fixes_applied:
        typer.echo(f"fixed: {fix_description}", err=True)
    for issue in issues:
        marker = " (auto-fixable)" if issue.auto_fixable else ""
        typer.echo(f"{issue.format()}{marker}", err=True)

    if fix and report.fixed_text is not None:
        _write_output(report.fixed_text, output)

    if issues:
        typer.echo(f"{len(issues)} issue(s) found.", err=True)
        raise typer.Exit(1)
    typer.echo("Artifact is structurally valid.", err=True)


@app.command()
def scripts(
    artifact: Path = typer.Argument(..., help="Artifact CSV file."),
) -> None:
    """List the commands an artifact depends on."""
    detection = detect(_read_artifact(artifact))
    typer.echo(f"System commands: {', '.join(detection.system_commands) or '(none)'}")
    typer.echo(f"Custom scripts: {', '.join(detection.custom_commands) or '(none)'}")
    typer.echo(f"Official catalogue: {', '.join(detection.official_commands) or '(none)'}")
    typer.echo(f"Missing uploads: {', '.join(detection.missing_uploads) or '(none)'}")


@app.command("remove-script")
def remove_script(
    artifact: Path = typer.Argument(..., help="Artifact CSV file."),
    name: str = typer.Argument(..., help="Custom script command to remove."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Where to write the artifact (default: stdout)."),
) -> None:
    """Replace every use of a custom script with a mock assignment."""
    try:
        removal = remove_custom_script(_read_artifact(artifact), name)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(f"Mocked {name} in {len(removal.nodes_modified)} node(s).", err=True)
    _write_output(removal.artifact_text, output)


def _flows_from_yaml(data: Any) -> list[Flow]:
    entries = data.get("flows", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise FlowLayoutError("Flow plan must be a list of flows or a mapping with a 'flows' list")
    flows = []
    for entry in entries:
        if not isinstance(entry, dict) or "name" not in entry or "start_node" not in entry:
            raise FlowLayoutError(f"Flow entries need 'name' and 'start_node': {entry!r}")
        flows.append(
            Flow(
                name=str(entry["name"]),
                description=str(entry.get("description", "")),
                start_node=NodeNumber(int(entry["start_node"])),
            )
        )
    return flows


@app.command()
def flows(
    artifact: Path = typer.Argument(..., help="Artifact CSV file."),
    plan: Path = typer.Option(..., "--plan", "-p", help="Flow plan YAML (name, description, start_node)."),
) -> None:
    """Show which nodes each flow owns."""
    parsed = parse_artifact(_read_artifact(artifact))
    try:
        data = yaml.safe_load(plan.read_text(encoding="utf-8"))
        flow_plan = FlowPlan.from_flows(_flows_from_yaml(data))
    except FileNotFoundError:
        typer.echo(f"Error: Flow plan not found: {plan}", err=True)
        raise typer.Exit(1) from None
    except yaml.YAMLError as e:
        typer.echo(f"YAML syntax error in {plan}: {e}", err=True)
        raise typer.Exit(1) from None
    except ValueError as e:  # FlowLayoutError included
        typer.echo(f"Invalid flow plan: {e}", err=True)
        raise typer.Exit(1) from None

    for name, records in partition(parsed.records, flow_plan).items():
        owned = flow_plan.range_of(name)
        numbers = ", ".join(str(record.number) for record in records)
        typer.echo(f"{name} [{owned.start}-{owned.stop - 1}]: {len(records)} node(s){': ' + numbers if numbers else ''}")


def _load_scripts(scripts_dir: Path | None, artifact_text: str) -> list[Any]:
    """Read <Command>.* files for the artifact's custom commands."""
    from botwright.clients.compiler import Script

    if scripts_dir is None:
        return []
    wanted = set(detect(artifact_text).custom_commands)
    loaded = []
    for path in sorted(scripts_dir.iterdir()):
        if path.is_file() and path.stem in wanted:
            loaded.append(Script(name=path.stem, content=path.read_text(encoding="utf-8")))
    return loaded


def _echo_progress(event: Any) -> None:
    if isinstance(event, RepairPhaseEntered):
        typer.echo(f"[{event.phase.value}] iteration {event.iteration}", err=True)
    elif isinstance(event, RemoteRejected):
        suffix = " (no progress)" if event.stuck else ""
        typer.echo(f"  compiler rejected: {len(event.errors)} error(s){suffix}", err=True)
    elif isinstance(event, BackoffScheduled):
        typer.echo(f"  waiting {event.delay_seconds:.0f}s ({event.reason})", err=True)
    elif isinstance(event, PatchApplied):
        typer.echo(f"  patch applied: {len(event.descriptions)} fix(es)", err=True)


@app.command()
def repair(
    artifact: Path = typer.Argument(..., help="Artifact CSV file."),
    bot_id: str = typer.Option(..., "--bot-id", "-b", help="Bot identity (Customer.BotName)."),
    settings: Path | None = typer.Option(None, "--settings", "-s", help="Path to settings YAML file."),
    target: DeployTarget | None = typer.Option(None, "--target", "-t", help="Deployment environment."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Where to write the repaired artifact (default: stdout)."),
    scripts_dir: Path | None = typer.Option(
        None,
        "--scripts-dir",
        help="Directory holding custom script sources named after their command.",
    ),
) -> None:
    """Repair an artifact until the remote compiler accepts it.

    The credential is read from BOTWRIGHT_COMPILER_CREDENTIAL (or
    compiler.credential in the settings file). When the compiler refuses
    it, a replacement is prompted for and the session resumes.
    """
    from botwright.clients import LLMPatchService, RemoteCompilerClient, validate_bot_id
    from botwright.core.events import EventBus
    from botwright.core.rate_limit import NoOpLimiter, RateLimiter
    from botwright.engine import RepairOrchestrator

    config = _load_settings_or_exit(settings)
    try:
        validate_bot_id(bot_id)
    except BotIdError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    if config.compiler.base_url is None:
        typer.echo("Error: compiler.base_url is not configured (settings file or BOTWRIGHT_COMPILER__BASE_URL)", err=True)
        raise typer.Exit(1)

    text = _read_artifact(artifact)
    credential = os.environ.get(CREDENTIAL_ENV_VAR) or config.compiler.credential
    if not credential:
        credential = typer.prompt("Compiler credential", hide_input=True)

    limiter: RateLimiter | NoOpLimiter
    if config.rate_limit.enabled:
        limiter = RateLimiter(
            "compiler",
            requests_per_second=config.rate_limit.requests_per_second,
            requests_per_minute=config.rate_limit.requests_per_minute,
        )
    else:
        limiter = NoOpLimiter()

    bus = EventBus()
    for event_type in (RepairPhaseEntered, RemoteRejected, BackoffScheduled, PatchApplied):
        bus.subscribe(event_type, _echo_progress)

    with limiter, RemoteCompilerClient.from_settings(config.compiler, limiter=limiter) as compiler:
        try:
            patcher = LLMPatchService.from_settings(config.patcher)
        except Exception as e:  # openai.OpenAIError when no API key is available
            typer.echo(f"Error configuring patch service: {e}", err=True)
            raise typer.Exit(1) from None
        orchestrator = RepairOrchestrator(
            compiler,
            patcher,
            settings=config,
            event_bus=bus,
        )
        result = orchestrator.run(
            text,
            bot_id=bot_id,
            credential=credential,
            target=target,
            scripts=_load_scripts(scripts_dir, text),
        )
        while result.needs_credential:
            typer.echo(f"Credential refused: {result.error}", err=True)
            replacement = typer.prompt("New compiler credential (blank to stop)", default="", hide_input=True)
            if not replacement:
                orchestrator.cancel()
                break
            result = orchestrator.resume(replacement)

    _write_output(result.artifact_text, output)
    for error in result.remaining_errors:
        typer.echo(f"remaining: {error}", err=True)
    if result.version_id:
        typer.echo(f"Accepted as version {result.version_id}", err=True)
    else:
        typer.echo(f"Repair ended in {result.status.value} after {result.iterations} iteration(s)", err=True)
        if result.error:
            typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
