# config/feature_config.py
"""
Bot content defaults: texts, download links and the amount menu.

Values edited on the dashboard override these at runtime (see
services/config_resolver.py); this file only supplies what the database lacks.
"""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).parent / 'bot_defaults.yaml'
DEFAULT_AMOUNTS = [100, 200, 500, 1000, 2000, 5000]

BUILTIN_DEFAULTS = {
    "version": "builtin",
    "global": {"currency_symbol": "₴", "payment_amounts": list(DEFAULT_AMOUNTS)},
    "texts": {"welcome_text": "Welcome! Choose an action:"},
    "links": {},
}


def deep_merge(base: Dict, overrides: Dict) -> Dict:
    """Merge ``overrides`` into ``base`` in place; nested dicts merge, anything else replaces"""
    for key, value in overrides.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class FeatureConfig:
    """YAML defaults with an optional ``environments.<name>`` overlay"""

    def __init__(self, config_path: str = None, environment: str = None):
        self.environment = environment or os.getenv('ENVIRONMENT', 'development')
        self.config_path = str(config_path or DEFAULTS_PATH)
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.error(f"Bot defaults not found at {self.config_path}, using built-in texts")
            return copy.deepcopy(BUILTIN_DEFAULTS)
        except yaml.YAMLError as e:
            logger.error(f"Bot defaults are not valid YAML ({e}), using built-in texts")
            return copy.deepcopy(BUILTIN_DEFAULTS)

        overlay = (config.get('environments') or {}).get(self.environment)
        if overlay:
            deep_merge(config, overlay)
        logger.info(f"Loaded bot defaults v{config.get('version', '?')} for {self.environment}")
        return config

    @property
    def version(self) -> str:
        return str(self._config.get('version', 'builtin'))

    @property
    def currency_symbol(self) -> str:
        return self._config.get('global', {}).get('currency_symbol', '₴')

    def get_payment_amounts(self) -> List[int]:
        """Fixed amount menu"""
        amounts = self._config.get('global', {}).get('payment_amounts') or DEFAULT_AMOUNTS
        return [int(a) for a in amounts]

    def get_default(self, key: str) -> Optional[str]:
        """Default value for a runtime config key, searched across texts and links"""
        for section in ('texts', 'links'):
            value = self._config.get(section, {}).get(key)
            if value is not None:
                return str(value)
        return None

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path"""
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value


_feature_config = None


def get_feature_config() -> FeatureConfig:
    """Get global feature config instance"""
    global _feature_config
    if _feature_config is None:
        _feature_config = FeatureConfig()
    return _feature_config
