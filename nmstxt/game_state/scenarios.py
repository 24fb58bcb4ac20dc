"""
Starting scenarios for a new game.

Each scenario fixes the ship's opening condition and extra inventory, and
supplies the opening instruction sent to the Game Master.
"""

from dataclasses import dataclass, field
from typing import Optional

from nmstxt.data_models import DiceRoller, GameState, create_initial_game_state

STARTING_DISTANCE_MIN = 650000
STARTING_DISTANCE_SPAN = 130000


@dataclass(frozen=True)
class StartingScenario:
    id: str
    name: str
    ship_health: int
    fuel: int
    prompt: str
    system_context: str
    inventory: dict[str, int] = field(default_factory=dict)


STARTING_SCENARIOS: list[StartingScenario] = [
    StartingScenario(
        id="crash_landing",
        name="Crash Landing",
        ship_health=15,
        fuel=0,
        prompt=(
            "Begin the game. The player wakes up disoriented inside their crashed ship on a strange "
            "alien planet. The hull is breached, alarms are blaring, and acrid smoke fills the cockpit. "
            "Describe their immediate surroundings as they stumble out of the wreckage."
        ),
        system_context="Crashed on random planet, ship 15% functional, no fuel",
    ),
    StartingScenario(
        id="adrift_space",
        name="Adrift in Space",
        ship_health=40,
        fuel=5,
        inventory={"plutonium": 3, "carbon": 2},
        prompt=(
            "Begin the game. The player awakens from cryosleep aboard their drifting ship. Life support "
            "is failing, the engines are offline, and they are floating in space near an unknown planet. "
            "Describe the eerie silence of the ship and the strange world visible through the viewport."
        ),
        system_context="Adrift in space near planet, ship 40% functional, minimal fuel",
    ),
    StartingScenario(
        id="underwater_pod",
        name="Underwater Escape Pod",
        ship_health=5,
        fuel=0,
        inventory={"oxygen": 50},
        prompt=(
            "Begin the game. The player is trapped in an emergency escape pod that has crashed into an "
            "alien ocean. Water is slowly leaking in, emergency lights are flickering red, and through the "
            "small window they can see bizarre aquatic life forms circling. They must reach the surface "
            "and find land. Describe this desperate situation."
        ),
        system_context="Trapped in escape pod in alien ocean, ship 5% functional, critical oxygen supply",
    ),
    StartingScenario(
        id="derelict_freighter",
        name="Derelict Freighter",
        ship_health=30,
        fuel=15,
        inventory={"iron": 10, "zinc": 5},
        prompt=(
            "Begin the game. The player wakes up in the cargo bay of an abandoned freighter orbiting a "
            "dead planet. Their small ship is docked nearby but damaged. The freighter is dark, filled "
            "with debris, and something is making scratching sounds in the corridors. Describe this "
            "ominous awakening."
        ),
        system_context="Aboard derelict freighter, ship 30% functional, limited fuel",
    ),
    StartingScenario(
        id="alien_study",
        name="Alien Research Facility",
        ship_health=50,
        fuel=20,
        inventory={"nanites": 5},
        prompt=(
            "Begin the game. The player regains consciousness on a cold metallic table in a sterile alien "
            "laboratory. Strange beings with too many eyes are observing them, taking notes in an "
            "incomprehensible language. Medical instruments hover nearby. Through a translucent wall, they "
            "can see their ship intact in a containment field. Describe this unsettling moment of awakening."
        ),
        system_context="Being studied by aliens in clinical facility, ship 50% functional and intact",
    ),
    StartingScenario(
        id="frozen_tundra",
        name="Frozen Wasteland",
        ship_health=25,
        fuel=8,
        inventory={"heridium": 7, "titanium": 3},
        prompt=(
            "Begin the game. The player awakens to freezing cold inside their ship on an ice world. Frost "
            "covers every surface, the heating system is failing, and howling winds batter the hull. "
            "Through the viewport, they see strange ice formations and what might be caves. Describe "
            "this frozen nightmare."
        ),
        system_context="Crashed on ice world, ship 25% functional, heating failing",
    ),
]


def get_scenario(scenario_id: str) -> Optional[StartingScenario]:
    for scenario in STARTING_SCENARIOS:
        if scenario.id == scenario_id:
            return scenario
    return None


def choose_scenario(dice: DiceRoller) -> StartingScenario:
    return dice.choice(STARTING_SCENARIOS)


def create_scenario_state(scenario: StartingScenario, dice: DiceRoller) -> GameState:
    """
    Fresh GameState with the scenario's starting conditions applied.

    The starting distance is drawn uniformly from [650000, 780000) LY.
    """
    state = create_initial_game_state()
    state.scenario_id = scenario.id
    state.ship.health = scenario.ship_health
    state.ship.fuel = scenario.fuel
    for item, count in scenario.inventory.items():
        state.inventory.adjust(item, count)
    state.location.distance_from_center = STARTING_DISTANCE_MIN + dice.randint(0, STARTING_DISTANCE_SPAN - 1)
    return state
