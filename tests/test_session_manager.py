"""
Tests for save slots, save migration and the debounced autosave.
"""

import json
import threading

import pytest

from nmstxt.data_models import SkillName
from nmstxt.game_state.session_manager import (
    AutoSaveScheduler,
    SaveCapacityError,
    SaveLoadError,
    SaveNotFoundError,
    SessionManager,
    migrate_skills,
)
from nmstxt.game_state.state_reducer import record_action


class TestSaveAndLoad:
    """Tests for writing and reading slots."""

    def test_save_then_load(self, session_manager, game_state):
        """Test a saved game loads back with the same fields."""
        game_state.inventory.adjust("iron", 7)
        game_state.skills[SkillName.COMBAT].points = 4
        record_action(game_state, "Scan the horizon", "Nothing but dunes.")
        session_manager.save_game(game_state, 2)

        loaded = session_manager.load_game(2)
        assert loaded.location.name == "Eissentam Prime"
        assert loaded.inventory["iron"] == 7
        assert loaded.skills[SkillName.COMBAT].points == 4
        assert loaded.action_history[0].action == "Scan the horizon"
        assert loaded.save_slot == 2

    def test_file_layout(self, session_manager, game_state):
        """Test the slot file carries id, timestamp, state and thumbnail."""
        path = session_manager.save_game(game_state, 1)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["id"] == 1
        assert isinstance(data["timestamp"], int)
        assert data["gameState"]["currentLocation"]["planetName"] == "Eissentam Prime"
        assert data["thumbnail"]["lastAction"] == "New Game"

    def test_save_updates_state(self, session_manager, game_state):
        """Test saving records the slot on the state."""
        session_manager.save_game(game_state, 3)
        assert game_state.save_slot == 3

    def test_no_temp_files_left(self, session_manager, game_state):
        """Test the atomic write leaves only the slot file."""
        session_manager.save_game(game_state, 0)
        assert [p.name for p in session_manager.save_directory.iterdir()] == ["slot_0.json"]

    def test_bad_slot(self, session_manager, game_state):
        """Test slots outside 0..5 are rejected."""
        with pytest.raises(ValueError):
            session_manager.save_game(game_state, 6)
        with pytest.raises(ValueError):
            session_manager.load_game(-1)

    def test_missing_slot(self, session_manager):
        """Test loading an empty slot raises SaveNotFoundError."""
        with pytest.raises(SaveNotFoundError):
            session_manager.load_game(4)

    def test_corrupt_slot(self, session_manager):
        """Test an unreadable file raises SaveLoadError."""
        session_manager.slot_path(1).write_text("{not json", encoding="utf-8")
        with pytest.raises(SaveLoadError):
            session_manager.load_game(1)

    def test_missing_field_is_load_error(self, session_manager, game_state):
        """Test a game missing a required field raises SaveLoadError, not KeyError."""
        path = session_manager.save_game(game_state, 2)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["gameState"]["conversationHistory"] = [{"content": "no role"}]
        path.write_text(json.dumps(data), encoding="utf-8")
        with pytest.raises(SaveLoadError):
            session_manager.load_game(2)


class TestCapacity:
    """Tests for the save size cap."""

    def test_oversized_save_rejected(self, tmp_path, game_state):
        """Test a snapshot over the cap raises and writes nothing."""
        manager = SessionManager(tmp_path, max_save_size=200)
        with pytest.raises(SaveCapacityError):
            manager.save_game(game_state, 0)
        assert not manager.has_save(0)

    def test_oversized_save_keeps_previous(self, tmp_path, game_state):
        """Test a failed save leaves the earlier snapshot intact."""
        manager = SessionManager(tmp_path)
        manager.save_game(game_state, 0)
        before = manager.slot_path(0).read_bytes()

        manager.max_save_size = 200
        game_state.ship.health = 99
        with pytest.raises(SaveCapacityError):
            manager.save_game(game_state, 0)
        assert manager.slot_path(0).read_bytes() == before


class TestListAndDelete:
    """Tests for slot listing and deletion."""

    def test_listing(self, session_manager, game_state):
        """Test every slot is listed, filled or empty."""
        session_manager.save_game(game_state, 0)
        slots = session_manager.list_save_slots()
        assert len(slots) == 6
        assert not slots[0].empty
        assert slots[0].thumbnail["location"] == "Eissentam Prime"
        assert slots[0].describe().startswith("Auto-save: Eissentam Prime")
        assert all(s.empty for s in slots[1:])

    def test_corrupt_listed_as_empty(self, session_manager):
        """Test a corrupt file does not break the listing."""
        session_manager.slot_path(2).write_text("garbage", encoding="utf-8")
        slots = session_manager.list_save_slots()
        assert slots[2].empty
        assert slots[2].describe() == "Slot 2: (empty)"

    def test_delete(self, session_manager, game_state):
        """Test deleting reports whether a save existed."""
        session_manager.save_game(game_state, 5)
        assert session_manager.delete_save(5)
        assert not session_manager.has_save(5)
        assert not session_manager.delete_save(5)


class TestMigration:
    """Tests for the legacy skill format."""

    def test_level_and_xp(self):
        """Test level/xp become points."""
        migrated = migrate_skills({"combat": {"level": 3, "xp": 5}})
        assert migrated["combat"]["points"] == 12

    def test_bare_number(self):
        """Test a bare number is read as a level."""
        migrated = migrate_skills({"survival": 2})
        assert migrated["survival"]["points"] == 5

    def test_points_kept(self):
        """Test already-migrated skills are left alone."""
        migrated = migrate_skills({"technology": {"level": 4, "xp": 10, "points": 2}})
        assert migrated["technology"]["points"] == 2

    def test_missing_skills_get_defaults(self):
        """Test a save without skills gets every default."""
        migrated = migrate_skills(None)
        assert set(migrated) == {s.value for s in SkillName}
        assert migrated["exploration"]["level"] == 2

    def test_partial_skills_filled(self):
        """Test missing individual skills are added."""
        migrated = migrate_skills({"combat": {"points": 1}})
        assert set(migrated) == {s.value for s in SkillName}

    def test_legacy_save_loads(self, session_manager):
        """Test a browser-era save with levels and the old stat name loads."""
        legacy = {
            "id": 1,
            "timestamp": 1700000000000,
            "gameState": {
                "currentLocation": {"planetName": "Kolkrub", "planetType": "frozen"},
                "ship": {"health": 40, "fuel": 3},
                "inventory": {"carbon": 12},
                "skills": {"exploration": {"level": 2, "xp": 4}},
                "stats": {"actionsToken": 9},
                "lastSaved": 1700000000000,
            },
        }
        session_manager.slot_path(1).write_text(json.dumps(legacy), encoding="utf-8")
        state = session_manager.load_game(1)
        assert state.location.name == "Kolkrub"
        assert state.skills[SkillName.EXPLORATION].points == 7
        assert state.stats.actions_taken == 9
        assert state.inventory["carbon"] == 12


class TestAutoSaveScheduler:
    """Tests for the debounced autosave timer."""

    def test_debounce(self):
        """Test several schedules in a row save once."""
        fired = threading.Event()
        calls = []

        def save():
            calls.append(1)
            fired.set()

        scheduler = AutoSaveScheduler(save, delay=0.05)
        for _ in range(5):
            scheduler.schedule()
        assert fired.wait(2.0)
        fired.clear()
        assert not fired.wait(0.2)
        assert calls == [1]
        assert not scheduler.pending

    def test_cancel(self):
        """Test a cancelled timer never saves."""
        calls = []
        scheduler = AutoSaveScheduler(lambda: calls.append(1), delay=0.05)
        scheduler.schedule()
        scheduler.cancel()
        threading.Event().wait(0.2)
        assert calls == []
        assert not scheduler.pending

    def test_flush_saves_now(self):
        """Test flush saves immediately and clears the timer."""
        calls = []
        scheduler = AutoSaveScheduler(lambda: calls.append(1), delay=3600)
        scheduler.schedule()
        scheduler.flush()
        assert calls == [1]
        assert not scheduler.pending

    def test_failed_autosave_is_logged(self, caplog):
        """Test a capacity failure during a timed save does not escape the timer."""
        fired = threading.Event()

        def save():
            fired.set()
            raise SaveCapacityError("too big")

        scheduler = AutoSaveScheduler(save, delay=0.01)
        scheduler._fire()
        assert fired.is_set()
        assert "Autosave failed" in caplog.text
