import json
import os
from pathlib import Path
from typing import Any, Dict

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# User configs (in project root, gitignored)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
USER_CONFIG_DIR = PROJECT_ROOT / "config"

CONFIG_DIR_ENV = "BOOKKEEPER_CONFIG_DIR"


def user_config_dir() -> Path:
    """User config directory, overridable through BOOKKEEPER_CONFIG_DIR"""
    override = os.getenv(CONFIG_DIR_ENV)
    return Path(override) if override else USER_CONFIG_DIR


class ConfigLoader:
    """Load configuration with user overrides"""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load config with fallback: user config -> default config

        Args:
            config_name: Name of the config file (e.g., 'parsers.json')

        Raises:
            FileNotFoundError: If no config file was found

        Returns:
            Parsed JSON configuration
        """
        user_config_path = user_config_dir() / config_name
        if user_config_path.exists():
            with open(user_config_path) as f:
                return json.load(f)

        default_config_path = PACKAGE_CONFIG_DIR / config_name
        if default_config_path.exists():
            with open(default_config_path) as f:
                return json.load(f)

        raise FileNotFoundError(
            f"Config file '{config_name}' not found in:\n"
            f" - {user_config_path}\n"
            f" - {default_config_path}"
        )

    @staticmethod
    def load_default_config(config_name: str) -> Dict[str, Any]:
        """Load a packaged default, ignoring user overrides"""
        with open(PACKAGE_CONFIG_DIR / config_name) as f:
            return json.load(f)

    @staticmethod
    def load_parsers_config():
        """Load parsers registry configuration"""
        return ConfigLoader.load_config('parsers.json')

    @staticmethod
    def load_rules_config():
        """Load the built-in pattern rule table"""
        return ConfigLoader.load_default_config('rules.json')

    @staticmethod
    def load_workspace_rules_config():
        """Load workspace rule overrides, empty if the user has none"""
        try:
            return ConfigLoader.load_config('categorization_rules.json')
        except FileNotFoundError:
            return {"rules": []}

    @staticmethod
    def load_provider_mappings():
        """Load provider code -> category mappings"""
        return ConfigLoader.load_config('provider_mappings.json')

    @staticmethod
    def load_engine_config():
        """Load detector/engine tunables"""
        return ConfigLoader.load_config('engine.json')

    @staticmethod
    def load_taxonomy_config():
        """Load the seed category tree"""
        return ConfigLoader.load_config('taxonomy.json')
