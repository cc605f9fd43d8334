"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import pytest
from typer.testing import CliRunner

from config import get_settings
from studyset.delivery.state_store import StateStore
from studyset.delivery.study_cli import app

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point every store at tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("USE_PREMIUM_TTS", raising=False)
    get_settings.cache_clear()
    yield tmp_path / "data"
    get_settings.cache_clear()


@pytest.fixture
def set_id(data_dir):
    result = runner.invoke(app, ["new-set", "Greek letters"])
    assert result.exit_code == 0, result.output

    store = StateStore(data_dir / "state.db")
    set_id = store.list_sets()[0].id
    store.close()
    return set_id


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "studyset" in result.output.lower()

    @pytest.mark.parametrize("command", ["sets", "due", "session", "cache-stats", "precache", "say"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])

        assert result.exit_code == 0, result.output


class TestSetCommands:
    def test_sets_empty(self):
        result = runner.invoke(app, ["sets"])

        assert result.exit_code == 0
        assert "No study sets" in result.output

    def test_new_set_and_list(self, set_id):
        result = runner.invoke(app, ["sets"])

        assert result.exit_code == 0
        assert "Greek letters" in result.output

    def test_add_and_due(self, set_id):
        for term in ["alpha", "beta"]:
            result = runner.invoke(app, ["add", set_id, term, f"the letter {term}"])
            assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["due", set_id])

        assert result.exit_code == 0, result.output
        assert "2 of 2 cards due" in result.output
        assert "alpha" in result.output

    def test_due_unknown_set(self):
        result = runner.invoke(app, ["due", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestSessionCommand:
    def test_no_session(self):
        result = runner.invoke(app, ["session"])

        assert result.exit_code == 0
        assert "No resumable" in result.output


class TestAudioCommands:
    def test_cache_stats(self):
        result = runner.invoke(app, ["cache-stats"])

        assert result.exit_code == 0, result.output
        assert "Entries" in result.output

    def test_cache_clear(self):
        result = runner.invoke(app, ["cache-clear", "--yes"])

        assert result.exit_code == 0, result.output
        assert "cleared" in result.output

    def test_precache_requires_premium(self, set_id):
        result = runner.invoke(app, ["precache", set_id])

        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_say_without_speech_command(self, monkeypatch):
        monkeypatch.setattr("studyset.audio.playback.shutil.which", lambda name: None)

        result = runner.invoke(app, ["say", "hola"])

        assert result.exit_code == 1
        assert "No speech output" in result.output
