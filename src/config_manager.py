"""
Configuration management for MemorySieve
"""

import copy
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from constants import (
    STM_DECAY_RATE,
    LTM_DECAY_RATE,
    STM_TO_LTM_STRENGTH_THRESHOLD,
    STM_TO_LTM_FREQUENCY_THRESHOLD,
    AUTO_PROMOTE_TO_LTM,
    MAX_MEMORIES_PER_STOP,
    DEDUPLICATION_THRESHOLD,
    DEFAULT_RETRIEVAL_LIMIT,
    DEFAULT_MAX_CONTEXT_TOKENS,
    DEFAULT_SCORING_WEIGHTS,
    SIGNAL_THRESHOLD,
    STRUCTURAL_WEIGHT,
    REGEX_CONFIDENCE,
    STRUCTURAL_CONFIDENCE,
    MAX_STM_INJECTION,
    MAX_TOTAL_INJECTION,
    QUERY_CONTEXT_LIMIT,
    EMBEDDING_MODEL,
    EMBEDDING_CACHE_SIZE,
)

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".memorysieve"


class ConfigManager:
    """
    Manages MemorySieve configuration.

    Values live in a JSON file that is merged over DEFAULT_CONFIG, so a
    partial user file only needs the keys it overrides.
    """

    DEFAULT_CONFIG = {
        "memory": {
            "stm_decay_rate": STM_DECAY_RATE,
            "ltm_decay_rate": LTM_DECAY_RATE,
            "stm_to_ltm_strength_threshold": STM_TO_LTM_STRENGTH_THRESHOLD,
            "stm_to_ltm_frequency_threshold": STM_TO_LTM_FREQUENCY_THRESHOLD,
            "auto_promote_to_ltm": list(AUTO_PROMOTE_TO_LTM),
            "max_memories_per_stop": MAX_MEMORIES_PER_STOP,
            "deduplication_threshold": DEDUPLICATION_THRESHOLD,
            "default_retrieval_limit": DEFAULT_RETRIEVAL_LIMIT,
            "max_context_tokens": DEFAULT_MAX_CONTEXT_TOKENS
        },
        "scoring": dict(DEFAULT_SCORING_WEIGHTS),
        "sweep": {
            "structural_weight": STRUCTURAL_WEIGHT,
            "signal_threshold": SIGNAL_THRESHOLD,
            "enable_regex_patterns": True,
            "enable_structural_analysis": True,
            "regex_confidence": REGEX_CONFIDENCE,
            "structural_confidence": STRUCTURAL_CONFIDENCE
        },
        "retrieval": {
            "max_stm_injection": MAX_STM_INJECTION,
            "max_total_injection": MAX_TOTAL_INJECTION,
            "query_limit": QUERY_CONTEXT_LIMIT
        },
        "embeddings": {
            "enabled": True,
            "model_name": EMBEDDING_MODEL,
            "cache_size": EMBEDDING_CACHE_SIZE
        },
        "logging": {
            "level": "WARNING"
        },
        "paths": {
            "database_file": "memory.db",
            "logs_dir": "logs"
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager"""
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = self._find_config_file()

        self.config = self.load()
        self.setup_directories()

    def _find_config_file(self) -> Path:
        """Find configuration file in standard locations"""
        # Check in order:
        # 1. .memorysieve/config.json in current directory
        # 2. config.json in project root
        # 3. ~/.memorysieve/config.json (user home)

        candidates = [
            Path.cwd() / CONFIG_DIR_NAME / "config.json",
            Path.cwd() / "config.json",
            Path.home() / CONFIG_DIR_NAME / "config.json"
        ]

        for path in candidates:
            if path.exists():
                return path

        # Default to ~/.memorysieve/config.json
        return Path.home() / CONFIG_DIR_NAME / "config.json"

    def load(self) -> Dict[str, Any]:
        """Load configuration from file or use defaults"""
        if not self.config_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            return copy.deepcopy(self.DEFAULT_CONFIG)

        try:
            with open(self.config_path, 'r') as f:
                user_config = json.load(f)

            return self._merge_configs(self.DEFAULT_CONFIG, user_config)

        except json.JSONDecodeError:
            logger.warning("Invalid config file %s, using defaults", self.config_path)
            return copy.deepcopy(self.DEFAULT_CONFIG)

    def _merge_configs(self, default: Dict, user: Dict) -> Dict:
        """Recursively merge user config with defaults"""
        result = copy.deepcopy(default)

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def save(self):
        """Save current configuration to file"""
        with open(self.config_path, 'w') as f:
            json.dump(self.config, f, indent=2)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get('memory.stm_decay_rate')
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any):
        """
        Set configuration value using dot notation
        Example: config.set('sweep.signal_threshold', 0.6)
        """
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value
        self.save()

    @property
    def base_dir(self) -> Path:
        """Directory that relative paths are resolved against"""
        return self.config_path.parent

    def setup_directories(self):
        """Create necessary directories based on configuration"""
        paths = self.config.get('paths', {})

        for path_key in paths:
            if path_key.endswith('_dir'):
                self.get_path(path_key).mkdir(parents=True, exist_ok=True)

    def get_path(self, path_key: str) -> Path:
        """Get a configured path as a Path object"""
        path_value = self.get(f'paths.{path_key}')
        if not path_value:
            raise ValueError(f"Path not configured: {path_key}")

        path = Path(path_value).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def section(self, name: str) -> Dict[str, Any]:
        """Return a copy of a top-level section (empty dict if missing)"""
        return dict(self.config.get(name, {}))
