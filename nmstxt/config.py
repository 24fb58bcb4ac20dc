"""
Player settings and credential storage for NMS.TXT.

Both live as small JSON files in the application directory:

    <app_dir>/settings.json     - GameSettings, with a schema version
    <app_dir>/credentials.json  - the API key, base64-encoded

Base64 is obfuscation against shoulder-surfing a file listing, not
encryption.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional
import base64
import binascii
import json
import logging
import os

from nmstxt.ai.llm_provider import LLMConfig, LLMProvider

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
APP_DIR_ENV_VAR = "NMSTXT_HOME"
ANTHROPIC_KEY_PREFIX = "sk-ant-"

NARRATIVE_LENGTHS = ("concise", "regular")
AI_BACKENDS = tuple(p.value for p in LLMProvider)

# Values written by older builds
_LEGACY_NARRATIVE_LENGTHS = {"brief": "regular", "standard": "regular", "detailed": "regular"}
_LEGACY_BACKENDS = {"claude": "anthropic", "webllm": "local"}


def default_app_dir() -> Path:
    """$NMSTXT_HOME if set, otherwise ~/.nmstxt."""
    override = os.getenv(APP_DIR_ENV_VAR)
    if override:
        return Path(override)
    return Path.home() / ".nmstxt"


@dataclass
class GameSettings:
    """Player-facing settings."""
    auto_save: bool = True
    narrative_length: str = "concise"  # concise | regular
    ai_backend: str = LLMProvider.ANTHROPIC.value  # anthropic | local | openai | mock
    model: Optional[str] = None  # None = backend default
    llm_url: Optional[str] = None  # base URL for the local backend

    def __post_init__(self):
        if self.narrative_length not in NARRATIVE_LENGTHS:
            logger.warning(f"Unknown narrative length '{self.narrative_length}', using regular")
            self.narrative_length = "regular"
        if self.ai_backend not in AI_BACKENDS:
            logger.warning(f"Unknown AI backend '{self.ai_backend}', using anthropic")
            self.ai_backend = LLMProvider.ANTHROPIC.value

    def to_llm_config(self, api_key: Optional[str] = None) -> LLMConfig:
        """Oracle configuration for these settings."""
        return LLMConfig(
            provider=LLMProvider(self.ai_backend),
            model=self.model,
            api_key=api_key,
            base_url=self.llm_url,
        )


class SettingsStore:
    """Loads and saves GameSettings, migrating older files on load."""

    def __init__(self, app_dir: Path):
        self.app_dir = Path(app_dir)
        self.path = self.app_dir / "settings.json"

    def _migrate_settings(self, data: dict[str, Any], from_version: int) -> tuple[dict[str, Any], bool]:
        """
        Returns: (migrated_data, changed)

        v1 -> v2:
          - brief/standard/detailed narrative lengths become regular
          - aiModel (claude | webllm) becomes ai_backend (anthropic | local)
          - camelCase keys become snake_case
        """
        changed = False

        if from_version < 2:
            renames = {
                "autoSave": "auto_save",
                "narrativeLength": "narrative_length",
                "aiModel": "ai_backend",
                "aiBackend": "ai_backend",
            }
            for old_key, new_key in renames.items():
                if old_key in data:
                    data.setdefault(new_key, data.pop(old_key))
                    changed = True

            length = data.get("narrative_length")
            if length in _LEGACY_NARRATIVE_LENGTHS:
                data["narrative_length"] = _LEGACY_NARRATIVE_LENGTHS[length]
                changed = True

            backend = data.get("ai_backend")
            if backend in _LEGACY_BACKENDS:
                data["ai_backend"] = _LEGACY_BACKENDS[backend]
                changed = True

            data["schema_version"] = SCHEMA_VERSION
            changed = True

        return data, changed

    def load(self) -> GameSettings:
        if not self.path.exists():
            logger.info(f"No settings file at {self.path}, using defaults")
            return GameSettings()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read {self.path}, using defaults: {e}")
            return GameSettings()

        if not isinstance(data, dict):
            logger.error(f"{self.path} does not hold an object, using defaults")
            return GameSettings()

        schema_version = int(data.get("schema_version", 1) or 1)
        data, changed = self._migrate_settings(data, schema_version)

        known = GameSettings.__dataclass_fields__.keys()
        settings = GameSettings(**{k: v for k, v in data.items() if k in known})

        if changed:
            self.save(settings)
            logger.info(f"Migrated settings written to {self.path}")

        logger.debug(f"Loaded settings from {self.path}")
        return settings

    def save(self, settings: GameSettings) -> None:
        self.app_dir.mkdir(parents=True, exist_ok=True)
        data = {"schema_version": SCHEMA_VERSION, **asdict(settings)}
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug(f"Saved settings to {self.path}")


class CredentialStore:
    """Holds the oracle API key between runs."""

    def __init__(self, app_dir: Path):
        self.app_dir = Path(app_dir)
        self.path = self.app_dir / "credentials.json"

    def get_api_key(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            encoded = data["api_key"]
            return base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError,
                binascii.Error, UnicodeError) as e:
            logger.warning(f"Stored credential is unreadable: {e}")
            return None

    def save_api_key(self, key: str) -> None:
        self.app_dir.mkdir(parents=True, exist_ok=True)
        encoded = base64.b64encode(key.encode("utf-8")).decode("ascii")
        self.path.write_text(json.dumps({"api_key": encoded}), encoding="utf-8")
        logger.info("API key stored")

    def import_api_key(self, key: Optional[str]) -> bool:
        """
        Store a key handed in from outside (command line, environment).

        Only Anthropic-format keys are accepted; anything else is ignored.

        Returns:
            True if the key was stored
        """
        if not key:
            return False
        key = key.strip()
        if not key.startswith(ANTHROPIC_KEY_PREFIX):
            logger.warning(f"Ignoring imported API key without the '{ANTHROPIC_KEY_PREFIX}' prefix")
            return False
        self.save_api_key(key)
        return True

    def has_api_key(self) -> bool:
        return self.get_api_key() is not None

    def clear(self) -> None:
        """Forget the stored key (after the backend rejected it)."""
        if self.path.exists():
            self.path.unlink()
            logger.info("Stored API key cleared")
