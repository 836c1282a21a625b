"""Tests for the modctl CLI."""
from typer.testing import CliRunner

from modconsole.cli import app

runner = CliRunner()


def test_commands_list():
    result = runner.invoke(app, ["commands", "list"])
    assert result.exit_code == 0
    assert "ban.perm" in result.output
    assert "HIGH" in result.output
