"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from quotagate.cli import cli, format_wait
from quotagate.config import Settings
from quotagate.layer import InvocationLayer, build_layer
from quotagate.store.memory import InMemoryStore
from tests.conftest import FakeGenerationClient


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def fake() -> FakeGenerationClient:
    return FakeGenerationClient(default_text="Forty-two")


@pytest.fixture
def layer(fake: FakeGenerationClient, clock) -> InvocationLayer:
    settings = Settings(_env_file=None, store_backend="memory")
    return build_layer(settings, store=InMemoryStore(), client=fake, clock=clock)


@pytest.fixture
def patched_layer(layer: InvocationLayer):
    with patch("quotagate.cli.build_layer", return_value=layer):
        yield layer


class TestFormatWait:
    """Tests for countdown rendering."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "-"), (-5, "-"), (45, "45s"), (90, "1m 30s"), (3600, "1h 00m"), (86400, "24h 00m")],
    )
    def test_format(self, seconds: int, expected: str) -> None:
        """Test countdowns are compact."""
        assert format_wait(seconds) == expected


class TestStatusCommand:
    """Tests for the status command."""

    def test_table(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test the availability table lists both tiers."""
        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Quota Availability" in result.output
        assert "primary" in result.output
        assert "secondary" in result.output

    def test_json(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test JSON output parses."""
        result = runner.invoke(cli, ["status", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["tiers"]["primary"]["rpm_cap"] == 2
        assert data["prefer_secondary"] is False


class TestAskCommand:
    """Tests for the ask command."""

    def test_ask(self, runner: CliRunner, patched_layer: InvocationLayer, fake: FakeGenerationClient) -> None:
        """Test a prompt is answered and the client closed."""
        result = runner.invoke(cli, ["ask", "What is 6x7?", "--tier", "flash"])

        assert result.exit_code == 0
        assert "Forty-two" in result.output
        assert fake.calls[0][1] == "What is 6x7?"
        assert fake.closed is True

    def test_ask_shows_output_tokens(
        self, runner: CliRunner, patched_layer: InvocationLayer, fake: FakeGenerationClient
    ) -> None:
        """Test provider usage is shown under the answer."""
        fake.usage = {"prompt_tokens": 4, "output_tokens": 7}

        result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 0
        assert "7 output tokens" in result.output

    def test_invalid_tier(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test unknown tiers are a usage error."""
        result = runner.invoke(cli, ["ask", "hi", "--tier", "ultra"])
        assert result.exit_code == 2

    def test_invalid_retries(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test a zero attempt budget is a usage error."""
        result = runner.invoke(cli, ["ask", "hi", "--retries", "0"])
        assert result.exit_code == 2

    def test_unknown_task(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test unknown tasks exit non-zero."""
        result = runner.invoke(cli, ["ask", "hi", "--task", "nope"])

        assert result.exit_code == 1
        assert "Unknown task" in result.output

    def test_quota_rejection(
        self, runner: CliRunner, patched_layer: InvocationLayer, fake: FakeGenerationClient
    ) -> None:
        """Test a provider quota rejection exits non-zero."""
        fake.outcomes = [RuntimeError("429 quota exceeded")]

        result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 1
        assert "Quota exhausted" in result.output

    def test_markup_in_answer_is_literal(
        self, runner: CliRunner, patched_layer: InvocationLayer, fake: FakeGenerationClient
    ) -> None:
        """Test answers containing brackets are printed as-is."""
        fake.default_text = "[bold]not markup[/bold]"

        result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 0
        assert "[bold]not markup[/bold]" in result.output


class TestPingCommand:
    """Tests for the ping command."""

    def test_success(self, runner: CliRunner, patched_layer: InvocationLayer) -> None:
        """Test a reachable provider."""
        result = runner.invoke(cli, ["ping"])

        assert result.exit_code == 0
        assert "Connected to gemini-3-flash-preview" in result.output

    def test_failure(self, runner: CliRunner, patched_layer: InvocationLayer, fake: FakeGenerationClient) -> None:
        """Test an unreachable provider exits non-zero."""
        fake.outcomes = [ConnectionError("no route to host")]

        result = runner.invoke(cli, ["ping"])

        assert result.exit_code == 1
        assert "no route to host" in result.output
