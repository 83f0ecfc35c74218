"""
Alert Configuration Loader

Loads alert rules, notification preferences, channel settings and cost
fixtures from YAML files under the config directory:

    configs/alerts/*.yml                    - rules:          [AlertRule]
    configs/notifications/preferences.yml   - preferences:    [NotificationPreferences]
    configs/notifications/channels.yml      - channels:       [NotificationChannels]
    configs/costs/*.yml                     - costs:          [CostAggregate]

An invalid entry is logged and skipped; the rest of the file still loads.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar
import logging

from pydantic import BaseModel, ValidationError

from src.core.digest.models import NotificationPreferences
from src.core.notifications.registry import NotificationChannels
from .models import AlertRule, CostAggregate

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class AlertConfigLoader:
    """
    Loads pipeline configuration from YAML files.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_path: Base path for configs. Defaults to ./configs
        """
        self.config_path = Path(config_path or "./configs")
        self.alerts_path = self.config_path / "alerts"
        self.notifications_path = self.config_path / "notifications"
        self.costs_path = self.config_path / "costs"
        self._rules_cache: Optional[List[AlertRule]] = None

    def load_rules(self, force_reload: bool = False) -> List[AlertRule]:
        """
        Load all alert rules from configs/alerts/*.yml.

        Args:
            force_reload: Force reload from disk, ignoring cache
        """
        if self._rules_cache is not None and not force_reload:
            return self._rules_cache

        rules = self._load_dir(self.alerts_path, "rules", AlertRule)
        self._rules_cache = rules
        logger.info(f"Total alert rules loaded: {len(rules)}")
        return rules

    def load_preferences(self) -> List[NotificationPreferences]:
        return self._load_file(self.notifications_path / "preferences.yml", "preferences", NotificationPreferences)

    def load_channels(self) -> List[NotificationChannels]:
        return self._load_file(self.notifications_path / "channels.yml", "channels", NotificationChannels)

    def load_costs(self) -> List[CostAggregate]:
        return self._load_dir(self.costs_path, "costs", CostAggregate)

    def _load_dir(self, directory: Path, key: str, model: Type[M]) -> List[M]:
        items: List[M] = []
        if not directory.exists():
            logger.warning(f"Config path not found: {directory}")
            return items

        for config_file in sorted(directory.glob("*.yml")):
            items.extend(self._load_file(config_file, key, model))
        return items

    def _load_file(self, file_path: Path, key: str, model: Type[M]) -> List[M]:
        """
        Load a list of models stored under `key` in a YAML file.

        Args:
            file_path: Path to YAML file
            key: Top-level key holding the list
            model: Pydantic model for each entry
        """
        if not file_path.exists():
            logger.warning(f"Config file not found: {file_path}")
            return []

        try:
            with open(file_path, 'r') as f:
                data: Dict[str, Any] = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read config {file_path}: {e}")
            return []

        items: List[M] = []
        for index, raw in enumerate(data.get(key) or []):
            try:
                items.append(model.model_validate(raw))
            except ValidationError as e:
                logger.error(
                    f"Invalid {key} entry #{index} in {file_path.name}: {e.errors()[0]['msg']}",
                    extra={"file": str(file_path), "index": index}
                )

        logger.info(f"Loaded {len(items)} {key} from {file_path.name}")
        return items
