# tests/unit/cli/test_cli.py
"""Tests for the botwright CLI."""

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
import respx
from typer.testing import CliRunner

from botwright.cli import app
from botwright.core.artifact import parse_artifact
from tests.builders import artifact, row, system_rows, valid_bot

runner = CliRunner()

COMPILER_URL = "https://compiler.example.com/api"
VALIDATE_URL = f"{COMPILER_URL}/bots/Acme.Billing/validate"


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """The CLI points the root handler at the runner's stderr; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def valid_file(tmp_path: Path) -> Path:
    path = tmp_path / "bot.csv"
    path.write_text(valid_bot())
    return path


@pytest.fixture
def broken_file(tmp_path: Path) -> Path:
    path = tmp_path / "broken.csv"
    path.write_text(
        artifact(
            row(1, node_type="D", message="Hi", next_nodes="100"),
            row(100, node_type="D", message="Menu", next_nodes="4242"),
            *system_rows(),
        )
    )
    return path


@pytest.fixture
def invoice_file(tmp_path: Path) -> Path:
    path = tmp_path / "invoice.csv"
    path.write_text(
        artifact(
            row(1, node_type="D", message="Hi", next_nodes="105"),
            row(105, node_type="A", command="SendInvoice", decision_variable="success", what_next="true~666|error~99990"),
            *system_rows(),
        )
    )
    return path


def _invoke(*args: str, input: str | None = None):  # noqa: A002
    return runner.invoke(app, ["--no-dotenv", *args], input=input)


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "botwright version" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("validate", "scripts", "remove-script", "flows", "repair"):
            assert command in result.output

    def test_missing_env_file(self, valid_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env"), "scripts", str(valid_file)])
        assert result.exit_code == 1
        assert ".env file not found" in result.output


class TestValidateCommand:
    """Local structural validation."""

    def test_valid_artifact(self, valid_file: Path) -> None:
        result = _invoke("validate", str(valid_file))
        assert result.exit_code == 0
        assert "Artifact is structurally valid." in result.output

    def test_issues_reported(self, broken_file: Path) -> None:
        result = _invoke("validate", str(broken_file))
        assert result.exit_code == 1
        assert "Node 100: [Next Nodes] references node 4242 which does not exist (auto-fixable)" in result.output
        assert "issue(s) found." in result.output

    def test_fix_writes_output(self, broken_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "fixed.csv"

        result = _invoke("validate", str(broken_file), "--fix", "--output", str(output))

        assert result.exit_code == 0
        assert "fixed: Node 100: re-pointed dangling reference 4242 -> 99990" in result.output
        assert parse_artifact(output.read_text()).by_number()[100].next_nodes == (99990,)

    def test_missing_artifact(self, tmp_path: Path) -> None:
        result = _invoke("validate", str(tmp_path / "missing.csv"))
        assert result.exit_code == 1
        assert "Artifact not found" in result.output

    def test_invalid_settings(self, valid_file: Path, tmp_path: Path) -> None:
        settings = tmp_path / "settings.yaml"
        settings.write_text("repair:\n  max_iterations: -1\n")

        result = _invoke("validate", str(valid_file), "--settings", str(settings))

        assert result.exit_code == 1
        assert "Configuration errors:" in result.output
        assert "repair.max_iterations" in result.output

    def test_custom_fallback_from_settings(self, broken_file: Path, tmp_path: Path) -> None:
        settings = tmp_path / "settings.yaml"
        settings.write_text("validation:\n  fallback_nodes: [1800]\n")
        output = tmp_path / "fixed.csv"

        _invoke("validate", str(broken_file), "--fix", "-o", str(output), "-s", str(settings))

        assert parse_artifact(output.read_text()).by_number()[100].next_nodes == (1800,)


class TestScriptCommands:
    def test_scripts_listing(self, invoice_file: Path) -> None:
        result = _invoke("scripts", str(invoice_file))
        assert result.exit_code == 0
        assert "System commands: (none)" in result.output
        assert "Custom scripts: SendInvoice, HandleBotError" in result.output
        assert "Official catalogue: HandleBotError" in result.output
        assert "Missing uploads: SendInvoice, HandleBotError" in result.output

    def test_remove_script(self, invoice_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "mocked.csv"

        result = _invoke("remove-script", str(invoice_file), "SendInvoice", "-o", str(output))

        assert result.exit_code == 0
        assert "Mocked SendInvoice in 1 node(s)." in result.output
        assert parse_artifact(output.read_text()).by_number()[105].command == "SysAssignVariable"

    def test_remove_system_command_refused(self, invoice_file: Path) -> None:
        result = _invoke("remove-script", str(invoice_file), "SysAssignVariable")
        assert result.exit_code == 1
        assert "system command" in result.output


class TestFlowsCommand:
    def test_partition_listing(self, valid_file: Path, tmp_path: Path) -> None:
        plan = tmp_path / "plan.yaml"
        plan.write_text(
            "flows:\n"
            "  - name: Support\n"
            "    start_node: 300\n"
            "  - name: Billing\n"
            "    description: Invoices\n"
            "    start_node: 100\n"
        )

        result = _invoke("flows", str(valid_file), "--plan", str(plan))

        assert result.exit_code == 0
        assert "Billing [100-299]: 3 node(s): 100, 105, 110" in result.output
        assert "Support [300-99989]: 3 node(s): 666, 999, 1800" in result.output
        assert result.output.index("Billing") < result.output.index("Support")

    def test_overlapping_plan_rejected(self, valid_file: Path, tmp_path: Path) -> None:
        plan = tmp_path / "plan.yaml"
        plan.write_text("- {name: A, start_node: 100}\n- {name: B, start_node: 100}\n")

        result = _invoke("flows", str(valid_file), "-p", str(plan))

        assert result.exit_code == 1
        assert "Invalid flow plan" in result.output
        assert "overlap" in result.output

    def test_malformed_plan_entry(self, valid_file: Path, tmp_path: Path) -> None:
        plan = tmp_path / "plan.yaml"
        plan.write_text("flows:\n  - name: A\n")

        result = _invoke("flows", str(valid_file), "-p", str(plan))

        assert result.exit_code == 1
        assert "need 'name' and 'start_node'" in result.output


class TestRepairCommand:
    """End to end against a mocked compiler; the patch model is never reached."""

    @pytest.fixture(autouse=True)
    def _compiler_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOTWRIGHT_COMPILER__BASE_URL", COMPILER_URL)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    @respx.mock
    def test_accepted(self, valid_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOTWRIGHT_COMPILER_CREDENTIAL", "token-1")
        route = respx.post(VALIDATE_URL).mock(return_value=httpx.Response(200, json={"versionId": "v1"}))
        output = tmp_path / "out.csv"

        result = _invoke("repair", str(valid_file), "--bot-id", "Acme.Billing", "-o", str(output), "-t", "production")

        assert result.exit_code == 0, result.output
        assert "Accepted as version v1" in result.output
        assert output.read_text() == valid_bot()
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer token-1"
        assert json.loads(request.content)["environment"] == "production"

    @respx.mock
    def test_credential_prompt_and_resume(self, valid_file: Path, tmp_path: Path) -> None:
        route = respx.post(VALIDATE_URL).mock(
            side_effect=[
                httpx.Response(401, json={"error": "expired"}),
                httpx.Response(200, json={"versionId": "v2"}),
            ]
        )

        result = _invoke("repair", str(valid_file), "-b", "Acme.Billing", "-o", str(tmp_path / "out.csv"), input="first\nsecond\n")

        assert result.exit_code == 0, result.output
        assert "Credential refused: expired" in result.output
        assert [call.request.headers["Authorization"] for call in route.calls] == ["Bearer first", "Bearer second"]

    @respx.mock
    def test_blank_credential_stops(self, valid_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOTWRIGHT_COMPILER_CREDENTIAL", "token-1")
        respx.post(VALIDATE_URL).mock(return_value=httpx.Response(403, json={"error": "forbidden"}))

        result = _invoke("repair", str(valid_file), "-b", "Acme.Billing", "-o", str(tmp_path / "out.csv"), input="\n")

        assert result.exit_code == 1
        assert "Repair ended in needs_credential" in result.output

    def test_invalid_bot_id(self, valid_file: Path) -> None:
        result = _invoke("repair", str(valid_file), "--bot-id", "acme")
        assert result.exit_code == 1
        assert "CustomerName.BotName" in result.output

    def test_compiler_url_required(self, valid_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BOTWRIGHT_COMPILER__BASE_URL")
        result = _invoke("repair", str(valid_file), "--bot-id", "Acme.Billing")
        assert result.exit_code == 1
        assert "compiler.base_url is not configured" in result.output
