"""
NMS.TXT - Main Entry Point

Plays the game in a terminal: pick numbered options or type free-text
actions, and the AI Game Master narrates what happens.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from nmstxt.ai.llm_provider import (
    LLMAuthenticationError,
    LLMProvider,
    LLMRequestError,
    get_llm_manager,
)
from nmstxt.ai.prompts import format_inventory_text
from nmstxt.config import (
    AI_BACKENDS,
    NARRATIVE_LENGTHS,
    CredentialStore,
    GameSettings,
    SettingsStore,
    default_app_dir,
)
from nmstxt.data_models import (
    GAME_VERSION,
    LEGACY_DIFFICULTY_DC,
    DiceRoller,
    GameState,
)
from nmstxt.game_state.game_session import GameSession
from nmstxt.game_state.session_manager import (
    SaveCapacityError,
    SaveLoadError,
    SessionManager,
)
from nmstxt.game_state.turn_machine import TurnPhase
from nmstxt.game_state.turn_orchestrator import (
    InvalidWagerError,
    NoPendingActionError,
    TurnInProgressError,
    TurnOutcome,
    WagerRequest,
)
from nmstxt.resolution.dice_resolver import difficulty_class_for
from nmstxt.resolution.skill_classifier import classify_action


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# RENDERING
# =============================================================================


def format_status(state: GameState) -> str:
    location = state.location
    skills = ", ".join(f"{skill.value.title()} {s.points}" for skill, s in state.skills.items())
    return "\n".join([
        f"Location: {location.name} ({location.type}) - {location.system_name}",
        f"Distance from Center: {location.distance_from_center:,} LY",
        f"Ship: {state.ship.health}%   Fuel: {state.ship.fuel}",
        f"Inventory: {format_inventory_text(state.inventory)}",
        f"Skills: {skills}",
        f"Actions: {state.stats.actions_taken}   Deaths: {state.stats.death_count}",
    ])


def format_options(session: GameSession) -> str:
    state = session.state
    lines = []
    for index, option in enumerate(state.current_options, start=1):
        skill = classify_action(option.text)
        dc = difficulty_class_for(option.difficulty, session.orchestrator.dc_table)
        lines.append(f"  {index}. {option.text} [{skill.value.title()} DC {dc}]")
    return "\n".join(lines)


def format_outcome(outcome: TurnOutcome) -> str:
    parts = []
    if outcome.check is not None:
        parts.append(outcome.check.describe())
        if outcome.award is not None:
            parts.append(f"   {outcome.award.describe()}")
    parts.append("")
    parts.append(outcome.narrative or "(The Game Master is silent.)")
    if outcome.changes is not None:
        changes = outcome.changes.describe()
        if changes:
            parts.append("")
            parts.extend(f"  * {line}" for line in changes)
    return "\n".join(parts)


# =============================================================================
# INTERACTIVE CLI
# =============================================================================


class NmsCLI:
    """Interactive command-line interface for the game."""

    def __init__(self, session: GameSession, credentials: CredentialStore, settings_store: SettingsStore):
        self.session = session
        self.credentials = credentials
        self.settings_store = settings_store
        self.running = False
        self.commands = {
            "help": self.cmd_help,
            "status": self.cmd_status,
            "look": self.cmd_look,
            "do": self.cmd_do,
            "new": self.cmd_new,
            "save": self.cmd_save,
            "load": self.cmd_load,
            "slots": self.cmd_slots,
            "delete": self.cmd_delete,
            "history": self.cmd_history,
            "log": self.cmd_log,
            "length": self.cmd_length,
            "key": self.cmd_key,
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
        }

    def prompt_wager(self, request: WagerRequest) -> Optional[int]:
        """Ask how many points to spend. Returns None to cancel."""
        if request.max_wager == 0:
            return 0
        print(f"\n{request.describe()}")
        while True:
            answer = input(f"Spend how many points? [0-{request.max_wager}, c to cancel] ").strip().lower()
            if answer in ("c", "cancel"):
                return None
            if answer == "":
                return 0
            if answer.isdigit() and int(answer) <= request.max_wager:
                return int(answer)
            print(f"Enter a number from 0 to {request.max_wager}.")

    def run(self) -> None:
        """Run the interactive CLI loop."""
        self.running = True
        print("\n" + "=" * 60)
        print(f"NMS.TXT v{GAME_VERSION}")
        print("=" * 60)
        print("Type a number to pick an option, 'do <action>' for anything else,")
        print("'help' for commands, 'quit' to exit.\n")

        if self.session.has_game:
            self.show_scene()

        while self.running:
            try:
                user_input = input(self._prompt()).strip()
                if not user_input:
                    continue
                self.process_command(user_input)
            except KeyboardInterrupt:
                print("\nInterrupted. Type 'quit' to exit.")
            except EOFError:
                self.running = False

        print("\nSafe travels, Traveller.")

    def _prompt(self) -> str:
        if not self.session.has_game:
            return "[no game]> "
        if self.session.orchestrator.phase == TurnPhase.DEAD:
            return "[dead]> "
        return f"[{self.session.state.location.name}]> "

    def process_command(self, user_input: str) -> None:
        """Process a user command."""
        if user_input.isdigit():
            self.choose(int(user_input))
            return

        parts = user_input.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        if cmd in self.commands:
            self.commands[cmd](args)
        else:
            print(f"Unknown command: {cmd}. Type 'help' for available commands.")

    def show_scene(self) -> None:
        state = self.session.state
        print()
        print(state.current_narrative)
        print()
        if state.current_options:
            print(format_options(self.session))
        print()

    def _play(self, action) -> None:
        """Run one turn callable and report its outcome or failure."""
        try:
            outcome = action()
        except LLMAuthenticationError as e:
            print(f"\n{e}\nUse 'key <your-api-key>' to enter a new key.")
            return
        except LLMRequestError as e:
            print(f"\nThe Game Master could not be reached: {e}")
            return
        except (TurnInProgressError, InvalidWagerError, NoPendingActionError) as e:
            print(f"\n{e}")
            return

        if outcome is None:
            print("Action cancelled.")
            return
        if isinstance(outcome, WagerRequest):
            print(outcome.describe())
            return

        print(format_outcome(outcome))
        if outcome.death:
            print("\n*** YOU HAVE DIED ***")
            print("Type 'new' to start over or 'load <slot>' to restore a save.")
            return
        print()
        print(format_options(self.session))
        print()

    def choose(self, number: int) -> None:
        if not self.session.has_game:
            print("No game in progress. Type 'new' to start one.")
            return
        options = self.session.state.current_options
        if not 1 <= number <= len(options):
            print(f"Pick an option between 1 and {len(options)}." if options else "No options available.")
            return
        self._play(lambda: self.session.choose_option(number - 1))

    def cmd_help(self, args: str) -> None:
        """Show help information."""
        print("""
Available Commands:
  <number>        - Pick one of the listed options
  do ACTION       - Free-text action (no dice roll)
  look            - Show the current scene again
  status          - Ship, inventory and skills
  new [SCENARIO]  - Start a new game
  save SLOT       - Save to slot 1-5 (slot 0 is the auto-save)
  load SLOT       - Load a slot
  slots           - List save slots
  delete SLOT     - Delete a save slot
  history         - Recent actions
  log             - Session event log
  length MODE     - Narrative length: concise or regular
  key API_KEY     - Store a new API key
  help            - Show this help
  quit/exit       - Exit the game
""")

    def cmd_status(self, args: str) -> None:
        """Show game status."""
        if not self.session.has_game:
            print("No game in progress.")
            return
        print(format_status(self.session.state))

    def cmd_look(self, args: str) -> None:
        if not self.session.has_game:
            print("No game in progress.")
            return
        self.show_scene()

    def cmd_do(self, args: str) -> None:
        """Free-text action."""
        if not args:
            print("Usage: do ACTION (e.g., 'do wave at the creature')")
            return
        if not self.session.has_game:
            print("No game in progress. Type 'new' to start one.")
            return
        self._play(lambda: self.session.submit_action(args))

    def cmd_new(self, args: str) -> None:
        print("Initializing your adventure...")
        try:
            outcome = self.session.start_new_game(args.strip() or None)
        except ValueError as e:
            print(e)
            return
        except LLMAuthenticationError as e:
            print(f"\n{e}\nUse 'key <your-api-key>' to enter a key, then 'new'.")
            return
        except LLMRequestError as e:
            print(f"Failed to start game: {e}")
            return
        except SaveCapacityError as e:
            print(f"Auto-save failed: {e}")
            return
        print(format_outcome(outcome))
        print()
        print(format_options(self.session))
        print()

    def _slot_arg(self, args: str) -> Optional[int]:
        try:
            return int(args.strip())
        except ValueError:
            print("Usage: <command> SLOT (0-5)")
            return None

    def cmd_save(self, args: str) -> None:
        slot = self._slot_arg(args)
        if slot is None:
            return
        try:
            self.session.save(slot)
        except (ValueError, RuntimeError, SaveCapacityError) as e:
            print(f"Failed to save: {e}")
            return
        print(f"Saved to slot {slot}.")

    def cmd_load(self, args: str) -> None:
        slot = self._slot_arg(args)
        if slot is None:
            return
        try:
            self.session.load(slot)
        except (ValueError, SaveLoadError) as e:
            print(f"Failed to load: {e}")
            return
        self.show_scene()

    def cmd_slots(self, args: str) -> None:
        for info in self.session.session_manager.list_save_slots():
            print(f"  {info.describe()}")

    def cmd_delete(self, args: str) -> None:
        slot = self._slot_arg(args)
        if slot is None:
            return
        try:
            deleted = self.session.session_manager.delete_save(slot)
        except ValueError as e:
            print(e)
            return
        print(f"Deleted slot {slot}." if deleted else f"Slot {slot} is already empty.")

    def cmd_history(self, args: str) -> None:
        if not self.session.has_game or not self.session.state.action_history:
            print("No actions yet.")
            return
        for record in self.session.state.action_history[:10]:
            print(f"  {record.timestamp:%H:%M} {record.action}")
            print(f"        {record.result}")

    def cmd_log(self, args: str) -> None:
        print(self.session.run_log.format_log(max_events=30))

    def cmd_length(self, args: str) -> None:
        mode = args.strip().lower()
        if mode not in NARRATIVE_LENGTHS:
            print(f"Usage: length {'|'.join(NARRATIVE_LENGTHS)}")
            return
        self.session.set_narrative_length(mode)
        self.settings_store.save(self.session.settings)
        print(f"Narrative length set to {mode}.")

    def cmd_key(self, args: str) -> None:
        key = args.strip()
        if not key:
            print("Usage: key API_KEY")
            return
        self.credentials.save_api_key(key)
        self.session.orchestrator.oracle.set_api_key(key)
        print("API key saved.")

    def cmd_quit(self, args: str) -> None:
        """Quit the game."""
        self.running = False


# =============================================================================
# ARGUMENTS
# =============================================================================


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="NMS.TXT - a text-based space exploration game with an AI Game Master",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nmstxt                              # New game with stored settings
  nmstxt --load 0                     # Continue from the auto-save
  nmstxt --backend local --llm-url http://localhost:11434/v1
  nmstxt --backend mock --seed 42     # Offline, reproducible
        """
    )

    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory for settings and credentials (default: $NMSTXT_HOME or ~/.nmstxt)",
    )
    parser.add_argument(
        "--save-dir",
        type=Path,
        default=None,
        help="Directory for save slots (default: <config-dir>/saves)",
    )
    parser.add_argument(
        "--load",
        type=int,
        metavar="SLOT",
        help="Load a save slot instead of starting a new game",
    )
    parser.add_argument(
        "--scenario",
        type=str,
        help="Starting scenario id for a new game (default: random)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for dice and scenario selection",
    )
    parser.add_argument(
        "--narrative-length",
        choices=NARRATIVE_LENGTHS,
        help="Override the stored narrative length",
    )
    parser.add_argument(
        "--legacy-dc",
        action="store_true",
        help="Use the harsher 8/12/16/20 difficulty table",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    llm_group = parser.add_argument_group("LLM Options")
    llm_group.add_argument(
        "--backend",
        choices=AI_BACKENDS,
        help="Game Master backend (overrides stored setting)",
    )
    llm_group.add_argument(
        "--model",
        type=str,
        help="Specific model to use (backend-dependent)",
    )
    llm_group.add_argument(
        "--llm-url",
        type=str,
        help="Base URL of an OpenAI-compatible local server",
    )
    llm_group.add_argument(
        "--api-key",
        type=str,
        help="Import an Anthropic API key (sk-ant-...) into the credential store",
    )

    return parser.parse_args(argv)


def apply_overrides(settings: GameSettings, args: argparse.Namespace) -> GameSettings:
    """Command-line flags win over stored settings for this run."""
    if args.backend:
        settings.ai_backend = args.backend
    if args.model:
        settings.model = args.model
    if args.llm_url:
        settings.llm_url = args.llm_url
    if args.narrative_length:
        settings.narrative_length = args.narrative_length
    return settings


def create_session_from_args(args: argparse.Namespace) -> tuple[GameSession, CredentialStore, SettingsStore]:
    config_dir = args.config_dir or default_app_dir()
    save_dir = args.save_dir or (config_dir / "saves")
    logger.info(f"Settings in {config_dir}, saves in {save_dir}")

    settings_store = SettingsStore(config_dir)
    credentials = CredentialStore(config_dir)
    settings = apply_overrides(settings_store.load(), args)

    if args.api_key and credentials.import_api_key(args.api_key):
        print("API key loaded successfully")

    api_key = credentials.get_api_key() if settings.ai_backend == LLMProvider.ANTHROPIC.value else None
    oracle = get_llm_manager(settings.to_llm_config(api_key))

    session = GameSession(
        settings=settings,
        session_manager=SessionManager(save_dir),
        oracle=oracle,
        credentials=credentials,
        dice=DiceRoller(seed=args.seed),
        dc_table=LEGACY_DIFFICULTY_DC if args.legacy_dc else None,
    )
    return session, credentials, settings_store


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    session, credentials, settings_store = create_session_from_args(args)
    cli = NmsCLI(session, credentials, settings_store)
    session.orchestrator.wager_prompt = cli.prompt_wager

    with session:
        if args.load is not None:
            try:
                session.load(args.load)
            except (ValueError, SaveLoadError) as e:
                print(f"Failed to load: {e}")
                return 1
        else:
            if not session.orchestrator.oracle.is_available():
                print("No API key found. Use 'key <your-api-key>' then 'new' to begin.")
            else:
                cli.cmd_new(args.scenario or "")
        cli.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
