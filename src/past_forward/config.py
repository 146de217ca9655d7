"""Configuration discovery and merging."""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .orchestrator import DEFAULT_CONCURRENCY
from .gesture import COOLDOWN_MS, VELOCITY_THRESHOLD
from .prompts import DECADES, DEFAULT_PROMPT_TEMPLATE

logger = logging.getLogger(__name__)

APP_DIR = "past-forward"

DEFAULT_CONFIG: Dict[str, Any] = {
    "concurrency": DEFAULT_CONCURRENCY,
    "periods": list(DECADES),
    "prompt_template": DEFAULT_PROMPT_TEMPLATE,
    "gesture": {
        "velocity_threshold": VELOCITY_THRESHOLD,
        "cooldown_ms": COOLDOWN_MS,
    },
    "generator": {
        "endpoint": None,
        "api_key": None,
        "timeout": 120.0,
        "factory": None,
    },
}


class ConfigManager:
    """Finds and loads YAML configuration files."""

    @staticmethod
    def get_xdg_config_home() -> Path:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            return Path(xdg)
        return Path.home() / ".config"

    @staticmethod
    def get_xdg_config_dirs() -> List[Path]:
        dirs = os.environ.get("XDG_CONFIG_DIRS", "/etc/xdg")
        return [Path(d) for d in dirs.split(":") if d]

    @classmethod
    def search_paths(cls, name: str) -> List[Path]:
        filename = f"{name}.yaml"
        paths = [cls.get_xdg_config_home() / APP_DIR / filename]
        paths.extend(d / APP_DIR / filename for d in cls.get_xdg_config_dirs())
        paths.append(Path.cwd() / filename)
        paths.append(Path.home() / f".{APP_DIR}" / filename)
        return paths

    @classmethod
    def find_config(cls, name: str = "config", explicit_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Find and load a configuration file.

        Args:
            name: Base name of the config file, without extension
            explicit_path: Path given on the command line; disables the search

        Returns:
            Parsed configuration, or None when nothing was found
        """
        if explicit_path:
            path = Path(explicit_path)
            if not path.exists():
                logger.error(f"Config file not found: {path}")
                return None
            return cls.load_yaml(path)

        for path in cls.search_paths(name):
            if path.exists():
                logger.info(f"Using config {path}")
                return cls.load_yaml(path)
        return None

    @staticmethod
    def load_yaml(path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config {path}: {e}")
            return None
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error(f"Config {path} must contain a mapping")
            return None
        return data

    @classmethod
    def merge_configs(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge override into a copy of base."""
        result = copy.deepcopy(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = cls.merge_configs(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
        return result

    @classmethod
    def load(cls, explicit_path: Optional[str] = None) -> Dict[str, Any]:
        """Defaults merged with the discovered config file, if any."""
        found = cls.find_config("config", explicit_path) or {}
        return cls.merge_configs(DEFAULT_CONFIG, found)


def apply_cli_overrides(config: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    """Apply CLI arguments on top of config; None values are ignored."""
    overrides = {k: v for k, v in kwargs.items() if v is not None}
    return ConfigManager.merge_configs(config, overrides)
