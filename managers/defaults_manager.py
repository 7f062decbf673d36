"""Settings management for the asset pipeline"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional

from errors import ValidationError

logger = logging.getLogger("AssetPipeline")

ENV_PREFIX = "ASSET_PIPELINE_"

HARDCODED_SETTINGS: Dict[str, Any] = {
    "comfyui_url": "http://localhost:8188",
    "workflow_path": str(Path(__file__).resolve().parent.parent / "workflows" / "basic_api_test.json"),
    "generation_timeout": 120,
    "background_removal_url": "https://api.slazzer.com/v2.0/remove_image_background",
    "background_removal_api_key": None,
    "background_removal_timeout": 60,
    "private_root": "~/.local/share/asset-pipeline/private",
    "public_root": "~/.local/share/asset-pipeline/public",
    "public_base_url": None,
    "max_attempts": 3,
    "queue_priority": 5,
    "audit_limit": 50,
    "building_types_file": None,
}

INT_SETTINGS = {"generation_timeout", "background_removal_timeout", "max_attempts", "queue_priority", "audit_limit"}

SECRET_SETTINGS = {"background_removal_api_key"}


def get_config_dir() -> Path:
    """Get platform-specific config directory.

    Returns:
        Windows: %APPDATA%/asset-pipeline
        Mac: ~/Library/Application Support/asset-pipeline
        Linux: ~/.config/asset-pipeline
    """
    system = platform.system()
    if system == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata) / "asset-pipeline"
        return Path.home() / "AppData" / "Roaming" / "asset-pipeline"
    elif system == "Darwin":  # macOS
        return Path.home() / "Library" / "Application Support" / "asset-pipeline"
    else:  # Linux and others
        return Path.home() / ".config" / "asset-pipeline"


def get_config_file() -> Path:
    return get_config_dir() / "config.json"


class SettingsManager:
    """Manages settings with precedence: runtime > config > env > hardcoded"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else get_config_file()
        self._runtime_settings: Dict[str, Any] = {}
        self._config_settings = self._load_config_settings()

    def _load_config_settings(self) -> Dict[str, Any]:
        """Load settings from config file"""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config file {self.config_file}: {e}")
            return {}
        settings = config.get("settings", {}) if isinstance(config, dict) else {}
        return {k: v for k, v in settings.items() if k in HARDCODED_SETTINGS}

    def _get_env_settings(self) -> Dict[str, Any]:
        """Load settings from ASSET_PIPELINE_* environment variables"""
        settings = {}
        for key in HARDCODED_SETTINGS:
            value = os.getenv(ENV_PREFIX + key.upper())
            if value:
                settings[key] = value
        return settings

    @staticmethod
    def _coerce(key: str, value: Any) -> Any:
        if value is None or key not in INT_SETTINGS:
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Setting '{key}' must be an integer, got {value!r}", {"key": key})

    def get(self, key: str) -> Any:
        """Get a setting with precedence: runtime > config > env > hardcoded"""
        if key not in HARDCODED_SETTINGS:
            raise ValidationError(f"Unknown setting: {key}", {"key": key, "known": sorted(HARDCODED_SETTINGS)})
        if key in self._runtime_settings:
            return self._runtime_settings[key]
        if key in self._config_settings:
            return self._coerce(key, self._config_settings[key])
        env_settings = self._get_env_settings()
        if key in env_settings:
            return self._coerce(key, env_settings[key])
        return HARDCODED_SETTINGS[key]

    def get_all(self, redact_secrets: bool = True) -> Dict[str, Any]:
        """Get all effective settings (merged from all sources)"""
        result = {key: self.get(key) for key in HARDCODED_SETTINGS}
        if redact_secrets:
            for key in SECRET_SETTINGS:
                if result.get(key):
                    result[key] = "***"
        return result

    def set_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Set runtime settings. Unknown keys or bad values reject the whole update."""
        unknown = [k for k in settings if k not in HARDCODED_SETTINGS]
        if unknown:
            raise ValidationError(f"Unknown settings: {unknown}", {"known": sorted(HARDCODED_SETTINGS)})
        coerced = {k: self._coerce(k, v) for k, v in settings.items()}
        self._runtime_settings.update(coerced)
        logger.info(f"Updated runtime settings: {sorted(coerced)}")
        return coerced

    def persist_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Persist settings to the config file, merging with what is there"""
        coerced = self.set_settings(settings)
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        config: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}
        config.setdefault("settings", {}).update(coerced)

        temp_path = self.config_file.with_suffix(".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        temp_path.replace(self.config_file)
        self._config_settings = self._load_config_settings()
        logger.info(f"Persisted settings to {self.config_file}")
        return coerced
