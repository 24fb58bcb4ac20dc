"""
Session Manager for NMS.TXT.

Persists GameState snapshots into numbered save slots, one JSON file per
slot:

    <save_dir>/slot_<n>.json = {
        "id": n,
        "timestamp": <ms since epoch>,
        "gameState": {...},
        "thumbnail": {"location", "stats", "lastAction"},
    }

Slot 0 is the autosave slot. Writes go to a temporary file that replaces
the slot atomically, so a failed or oversized save never damages the
previous snapshot. Older saves are migrated to the points-based skill
format on load.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
import json
import logging
import math
import os
import tempfile
import threading

from nmstxt.data_models import (
    AUTOSAVE_DELAY_SECONDS,
    AUTOSAVE_SLOT,
    MAX_SAVE_SIZE,
    SAVE_SLOTS,
    GameState,
    default_skills,
)

logger = logging.getLogger(__name__)


class SaveLoadError(Exception):
    """A save slot could not be read."""

    pass


class SaveNotFoundError(SaveLoadError):
    """The requested slot holds no save."""

    pass


class SaveCapacityError(Exception):
    """The serialized snapshot exceeds the size cap."""

    pass


def migrate_skills(raw_skills: Any) -> dict[str, dict[str, int]]:
    """
    Bring a saved skills mapping to the points format.

    - Missing skills block: the default skills
    - Bare number: treated as a level with no xp
    - level/xp without points: points = floor((level - 1) * 5 + xp / 2)
    """
    if not isinstance(raw_skills, dict):
        logger.info("Save has no skills, adding defaults")
        return {skill.value: state.to_dict() for skill, state in default_skills().items()}

    migrated: dict[str, dict[str, int]] = {}
    for name, raw in raw_skills.items():
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            raw = {"level": raw, "xp": 0}
        if not isinstance(raw, dict):
            continue

        if "points" in raw and raw["points"] is not None:
            migrated[name] = {
                "points": max(0, int(raw["points"])),
                "level": int(raw.get("level", 1) or 1),
                "xp": int(raw.get("xp", 0) or 0),
            }
            continue

        old_level = raw.get("level") or 1
        old_xp = raw.get("xp") or 0
        points = max(0, math.floor((old_level - 1) * 5 + old_xp / 2))
        migrated[name] = {"points": points, "level": 1, "xp": 0}
        logger.info(f"Migrated {name}: level {old_level} + {old_xp}xp -> {points} points")

    for skill, state in default_skills().items():
        migrated.setdefault(skill.value, state.to_dict())
    return migrated


def build_thumbnail(state: GameState) -> dict[str, str]:
    """Short description shown in slot listings."""
    return {
        "location": state.location.name,
        "stats": f"{state.stats.planets_visited} planets",
        "lastAction": state.action_history[0].action if state.action_history else "New Game",
    }


@dataclass
class SaveSlotInfo:
    """One row of a slot listing."""
    slot: int
    empty: bool = True
    timestamp: Optional[datetime] = None
    thumbnail: dict[str, str] = field(default_factory=dict)

    def describe(self) -> str:
        if self.empty:
            return f"Slot {self.slot}: (empty)"
        label = "Auto-save" if self.slot == AUTOSAVE_SLOT else f"Slot {self.slot}"
        when = self.timestamp.strftime("%Y-%m-%d %H:%M") if self.timestamp else "?"
        return (
            f"{label}: {self.thumbnail.get('location', '?')} - "
            f"{self.thumbnail.get('stats', '')} - {self.thumbnail.get('lastAction', '')} ({when})"
        )


class SessionManager:
    """
    Manages save slot operations.

    Handles:
    - Saving a GameState into a slot (size-capped, atomic)
    - Loading a slot, migrating older formats
    - Listing and deleting slots
    """

    def __init__(self, save_directory: Optional[Path] = None, max_save_size: int = MAX_SAVE_SIZE):
        """
        Initialize the session manager.

        Args:
            save_directory: Directory for save files. Defaults to ./saves/
            max_save_size: Largest snapshot accepted, in bytes
        """
        self.save_directory = Path(save_directory or "./saves")
        self.save_directory.mkdir(parents=True, exist_ok=True)
        self.max_save_size = max_save_size

    @staticmethod
    def _check_slot(slot: int) -> None:
        if slot not in SAVE_SLOTS:
            raise ValueError(f"Save slot must be between {SAVE_SLOTS.start} and {SAVE_SLOTS.stop - 1}, got {slot}")

    def slot_path(self, slot: int) -> Path:
        self._check_slot(slot)
        return self.save_directory / f"slot_{slot}.json"

    def has_save(self, slot: int) -> bool:
        return self.slot_path(slot).exists()

    def save_game(self, state: GameState, slot: int = AUTOSAVE_SLOT) -> Path:
        """
        Write a snapshot of `state` into `slot`.

        Raises:
            SaveCapacityError: The snapshot is larger than max_save_size;
                the slot's previous contents are left as they were
            ValueError: Unknown slot

        Returns:
            Path to the slot file
        """
        filepath = self.slot_path(slot)

        saved_at = datetime.now()
        data = {
            "id": slot,
            "timestamp": int(saved_at.timestamp() * 1000),
            "gameState": {**state.to_dict(), "saveSlot": slot, "lastSaved": saved_at.isoformat()},
            "thumbnail": build_thumbnail(state),
        }
        payload = json.dumps(data, ensure_ascii=False).encode("utf-8")
        if len(payload) > self.max_save_size:
            raise SaveCapacityError(
                f"Save file too large ({len(payload):,} bytes, limit {self.max_save_size:,})"
            )

        fd, temp_name = tempfile.mkstemp(prefix=f".slot_{slot}.", suffix=".tmp", dir=self.save_directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(temp_name, filepath)
        except OSError:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

        state.save_slot = slot
        state.last_saved = saved_at
        logger.info(f"Saved game to slot {slot}: {filepath}")
        return filepath

    def _read_slot(self, slot: int) -> dict[str, Any]:
        filepath = self.slot_path(slot)
        if not filepath.exists():
            raise SaveNotFoundError(f"No save found in slot {slot}")
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SaveLoadError(f"Could not read slot {slot}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("gameState"), dict):
            raise SaveLoadError(f"Slot {slot} does not contain a game")
        return data

    def load_game(self, slot: int) -> GameState:
        """
        Load the game in `slot`.

        Raises:
            SaveNotFoundError: The slot is empty
            SaveLoadError: The slot file is unreadable
        """
        data = self._read_slot(slot)
        raw_state = dict(data["gameState"])
        raw_state["skills"] = migrate_skills(raw_state.get("skills"))
        try:
            state = GameState.from_dict(raw_state)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SaveLoadError(f"Slot {slot} holds a malformed game: {e}") from e

        logger.info(f"Loaded game from slot {slot} ({state.location.name})")
        return state

    def list_save_slots(self) -> list[SaveSlotInfo]:
        """Every slot, in order. Unreadable files are listed as empty."""
        slots = []
        for slot in SAVE_SLOTS:
            try:
                data = self._read_slot(slot)
            except SaveNotFoundError:
                slots.append(SaveSlotInfo(slot=slot))
                continue
            except SaveLoadError as e:
                logger.warning(f"Could not read save file for slot {slot}: {e}")
                slots.append(SaveSlotInfo(slot=slot))
                continue

            timestamp = data.get("timestamp")
            slots.append(SaveSlotInfo(
                slot=slot,
                empty=False,
                timestamp=datetime.fromtimestamp(timestamp / 1000) if isinstance(timestamp, (int, float)) else None,
                thumbnail=data.get("thumbnail") or {},
            ))
        return slots

    def delete_save(self, slot: int) -> bool:
        """
        Delete a slot.

        Returns:
            True if a save was deleted
        """
        filepath = self.slot_path(slot)
        if filepath.exists():
            filepath.unlink()
            logger.info(f"Deleted save file: {filepath}")
            return True
        return False


class AutoSaveScheduler:
    """
    Debounced autosave.

    schedule() (re)starts a single-shot timer; a newer call replaces the
    pending one instead of stacking. flush() saves immediately.
    """

    def __init__(self, save_callback: Callable[[], Any], delay: float = AUTOSAVE_DELAY_SECONDS):
        self._save_callback = save_callback
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
        logger.debug(f"Autosave scheduled in {self.delay}s")

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._save_callback()
        except (SaveCapacityError, OSError) as e:
            logger.error(f"Autosave failed: {e}")

    def flush(self) -> None:
        """Cancel any pending timer and save now."""
        self.cancel()
        self._save_callback()
