import logging
import os

import yaml

from settings_schema import EngineSettings, validate_settings

DEFAULT_CONFIG_PATH = "fatigue_engine.yaml"
CONFIG_ENV_VAR = "FATIGUE_ENGINE_CONFIG"


class YamlConfig:
    """Load and save engine settings to a YAML file."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        validate_settings(data)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)

    def load_settings(self) -> EngineSettings:
        """Validated settings; missing keys take their defaults."""
        return validate_settings(self.load())


def configure_logging(settings: EngineSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
