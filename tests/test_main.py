"""
Tests for the command-line entry point and the interactive CLI commands.
"""

import pytest

from nmstxt.config import GameSettings, SettingsStore
from nmstxt.data_models import LEGACY_DIFFICULTY_DC, SkillName
from nmstxt.main import (
    NmsCLI,
    apply_overrides,
    create_session_from_args,
    format_status,
    parse_arguments,
)


@pytest.fixture
def cli(game_session, credentials, tmp_path):
    return NmsCLI(game_session, credentials, SettingsStore(tmp_path / "config"))


class TestArguments:
    """Tests for argument parsing and overrides."""

    def test_defaults(self):
        """Test no flags leaves everything unset."""
        args = parse_arguments([])
        assert args.backend is None
        assert args.load is None
        assert not args.legacy_dc

    def test_flags(self):
        """Test the LLM and game flags."""
        args = parse_arguments([
            "--backend", "local", "--llm-url", "http://box/v1", "--model", "mistral",
            "--seed", "42", "--load", "2", "--narrative-length", "regular", "--legacy-dc",
        ])
        assert args.backend == "local"
        assert args.seed == 42
        assert args.load == 2
        assert args.legacy_dc

    def test_bad_backend_rejected(self):
        """Test an unknown backend is a usage error."""
        with pytest.raises(SystemExit):
            parse_arguments(["--backend", "skynet"])

    def test_overrides(self):
        """Test flags win over stored settings."""
        args = parse_arguments(["--backend", "mock", "--narrative-length", "regular"])
        settings = apply_overrides(GameSettings(), args)
        assert settings.ai_backend == "mock"
        assert settings.narrative_length == "regular"

    def test_create_session(self, tmp_path):
        """Test the session is wired from the arguments."""
        args = parse_arguments([
            "--config-dir", str(tmp_path), "--backend", "mock", "--seed", "7", "--legacy-dc",
            "--api-key", "sk-ant-cli",
        ])
        session, credentials, _ = create_session_from_args(args)
        assert session.dice.seed == 7
        assert session.orchestrator.dc_table is LEGACY_DIFFICULTY_DC
        assert session.session_manager.save_directory == tmp_path / "saves"
        assert credentials.get_api_key() == "sk-ant-cli"


class TestCommands:
    """Tests for CLI commands against the mock backend."""

    def test_new_and_status(self, cli, capsys):
        """Test starting a game and showing its status."""
        cli.process_command("new crash_landing")
        out = capsys.readouterr().out
        assert "[Mock LLM response]" in out
        assert "1. Continue exploring" in out
        cli.process_command("status")
        assert "Ship: 15%" in capsys.readouterr().out

    def test_free_text_action(self, cli, capsys):
        """Test 'do' plays a turn with no roll."""
        cli.process_command("new crash_landing")
        cli.process_command("do wave at the creature")
        assert cli.session.state.action_history[0].action == "wave at the creature"

    def test_option_out_of_range(self, cli, capsys):
        """Test an invalid option number is reported."""
        cli.process_command("new crash_landing")
        capsys.readouterr()
        cli.process_command("9")
        assert "Pick an option between 1 and 3." in capsys.readouterr().out

    def test_option_with_wager_prompt(self, cli, monkeypatch, scripted_dice):
        """Test picking an option asks for a wager when points are available."""
        cli.session.orchestrator.wager_prompt = cli.prompt_wager
        cli.process_command("new crash_landing")
        cli.session.state.skills[SkillName.EXPLORATION].points = 2
        monkeypatch.setattr("builtins.input", lambda prompt="": "1")
        scripted_dice.push(10)
        cli.process_command("1")
        assert cli.session.state.stats.actions_taken == 1
        rolls = cli.session.run_log.get_rolls()
        assert rolls[-1].bonus == 1

    def test_save_load_slots(self, cli, capsys):
        """Test the slot commands."""
        cli.process_command("new crash_landing")
        cli.process_command("save 2")
        cli.process_command("slots")
        out = capsys.readouterr().out
        assert "Saved to slot 2." in out
        assert "Slot 2: Unknown" in out
        cli.process_command("delete 2")
        assert "Deleted slot 2." in capsys.readouterr().out
        cli.process_command("load 2")
        assert "Failed to load" in capsys.readouterr().out

    def test_length_persisted(self, cli, capsys):
        """Test the length command updates and stores the setting."""
        cli.process_command("length regular")
        assert cli.settings_store.load().narrative_length == "regular"
        cli.process_command("length epic")
        assert "Usage: length" in capsys.readouterr().out

    def test_key_command(self, cli):
        """Test storing a key through the CLI."""
        cli.process_command("key sk-ant-new")
        assert cli.credentials.get_api_key() == "sk-ant-new"

    def test_unknown_command(self, cli, capsys):
        """Test unknown commands are reported."""
        cli.process_command("dance")
        assert "Unknown command: dance" in capsys.readouterr().out

    def test_format_status(self, game_state):
        """Test the status block."""
        text = format_status(game_state)
        assert "Distance from Center: 715,342 LY" in text
        assert "Exploration 0" in text
