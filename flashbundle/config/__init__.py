"""
Configuration management for flashbundle
"""

import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass(frozen=True)
class TrackerConfig:
    """Inclusion tracker tunables"""
    max_query_failures: int = 3
    retry_interval: float = 1.0


@dataclass(frozen=True)
class RelayConfig:
    """Relay endpoints and searcher identity"""
    name: str
    relay_url: str
    simulation_url: Optional[str] = None
    builder_urls: List[str] = field(default_factory=list)
    identity_key: Optional[str] = None
    timeout: float = 10.0
    stats_version: int = 1
    tracker: TrackerConfig = field(default_factory=TrackerConfig)


class ConfigManager:
    """Centralized configuration management"""

    def __init__(self, config_dir: str = None):
        if config_dir is None:
            config_dir = Path(__file__).parent
        self.config_dir = Path(config_dir)

        self._relays_config = None

    def load_relays(self) -> Dict[str, Any]:
        """Load relays configuration file"""
        if self._relays_config is None:
            relays_path = self.config_dir / "relays.yaml"
            with open(relays_path, 'r') as f:
                self._relays_config = yaml.safe_load(f) or {}

        return self._relays_config

    def get_relay_config(self, relay_name: str = None) -> RelayConfig:
        """
        Get specific relay configuration

        Args:
            relay_name: Entry under `relays`, or None for `default_relay`

        Returns:
            RelayConfig with environment variables expanded
        """
        relays = self.load_relays()

        if relay_name is None:
            relay_name = relays.get('default_relay', 'flashbots')

        if relay_name not in relays.get('relays', {}):
            raise ValueError(f"Unknown relay: {relay_name}")

        relay_data = dict(relays['relays'][relay_name])
        tracker_data = dict(relays.get('tracker', {}))
        tracker_data.update(relay_data.pop('tracker', {}) or {})

        relay_data = {key: self._expand(value) for key, value in relay_data.items()}

        return RelayConfig(
            name=relay_name,
            tracker=TrackerConfig(**tracker_data),
            **relay_data
        )

    def _expand(self, value: Any) -> Any:
        if isinstance(value, str):
            expanded = self.expand_env_vars(value)
            # an unset ${VAR} is treated as not configured
            return None if _ENV_PATTERN.fullmatch(expanded) else expanded
        if isinstance(value, list):
            return [self._expand(item) for item in value]
        return value

    def expand_env_vars(self, text: str) -> str:
        """Expand environment variables in configuration strings"""

        def replace_env_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))

        return _ENV_PATTERN.sub(replace_env_var, text)

    def validate_config(self) -> bool:
        """Validate configuration completeness"""
        relays = self.load_relays()

        if 'relays' not in relays or not relays['relays']:
            raise ValueError("Missing required config section: relays")

        default_relay = relays.get('default_relay')
        if default_relay is not None and default_relay not in relays['relays']:
            raise ValueError(f"Unknown default relay: {default_relay}")

        for relay_name, relay_data in relays['relays'].items():
            if not relay_data.get('relay_url'):
                raise ValueError(f"Relay {relay_name} has no relay_url")

        return True


# Global config manager instance
config_manager = ConfigManager()


# Convenience functions
def load_relays() -> Dict[str, Any]:
    """Load relays configuration"""
    return config_manager.load_relays()


def get_relay_config(relay_name: str = None) -> RelayConfig:
    """Get relay configuration"""
    return config_manager.get_relay_config(relay_name)


def validate_config() -> bool:
    """Validate configuration"""
    return config_manager.validate_config()


__all__ = [
    'ConfigManager',
    'RelayConfig',
    'TrackerConfig',
    'config_manager',
    'load_relays',
    'get_relay_config',
    'validate_config'
]
