import logging
import os
import yaml

APP_VERSION = "1.0.0"

DEFAULT_DB_PATH = os.environ.get("LEAN_TIMER_DB", "timer.db")
DEFAULT_SETTINGS_PATH = os.environ.get("LEAN_TIMER_SETTINGS", "settings.yaml")

logger = logging.getLogger(__name__)


class YamlConfig:
    """Load and save user-editable settings to a YAML file."""

    def __init__(self, path: str = DEFAULT_SETTINGS_PATH) -> None:
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.error("Ignoring unreadable settings file %s: %s", self.path, e)
                return {}
        if not isinstance(data, dict):
            logger.error("Ignoring settings file %s: expected a mapping", self.path)
            return {}
        return data

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)
