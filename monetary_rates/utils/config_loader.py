"""Configuration loader utility."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv


DEFAULT_SETTINGS: Dict[str, Any] = {
    'request_timeout': 30,
    'output_dir': 'output',
    'logging': {'level': 'INFO', 'file': None},
    'sources': {},
    'balance_sheet': {},
    'coverage_labels': None,
    'modeling': {
        'response': 'ir_overnight',
        'cutoff': '2021-07-01',
        'n_folds': 3,
        'seed': 1,
        'full_model': {
            'include': ['liab'],
            'exclude': ['total', 'other', 'subsidiaries'],
            'explicit': [
                'assets_total', 'fund_equity', 'm3_supply',
                'discount_window_activities_lending', 'obfr', 'unemp', 'cpi',
            ],
            'horizon': 0,
        },
        'models': [],
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override onto base, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Load and manage configuration settings."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize config loader.

        Args:
            config_path: Path to config file. Defaults to config/settings.yaml
                at the project root, or $MONETARY_RATES_CONFIG when set
        """
        load_dotenv()

        if config_path is None:
            config_path = os.getenv('MONETARY_RATES_CONFIG')
        if config_path is None:
            project_root = Path(__file__).resolve().parent.parent.parent
            config_path = project_root / "config" / "settings.yaml"

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file on top of the defaults."""
        loaded: Dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}

        self._substitute_env_vars(loaded)
        self._config = _deep_merge(DEFAULT_SETTINGS, loaded)

    def _substitute_env_vars(self, config: Dict[str, Any]) -> None:
        """Recursively substitute ${VAR} placeholders with environment values."""
        for key, value in config.items():
            if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
                config[key] = os.getenv(value[2:-1], '')
            elif isinstance(value, dict):
                self._substitute_env_vars(value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated key.

        Args:
            key: Dot-separated key (e.g., 'modeling.cutoff')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value: Any = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    @property
    def sources(self) -> Dict[str, Dict[str, Any]]:
        """Per-source overrides of the pinned loader configuration."""
        return self.get('sources') or {}

    @property
    def request_timeout(self) -> float:
        return float(self.get('request_timeout', 30))

    @property
    def balance_sheet(self) -> Dict[str, Any]:
        """Balance sheet presentation settings (drops, signs, misc grouping, labels)."""
        return self.get('balance_sheet') or {}

    @property
    def coverage_labels(self) -> Optional[Dict[str, str]]:
        return self.get('coverage_labels')

    @property
    def modeling(self) -> Dict[str, Any]:
        """Response, cutoff, CV settings, full-model selection and model specs."""
        return self.get('modeling', {})

    @property
    def model_entries(self) -> List[Dict[str, Any]]:
        return self.get('modeling.models') or []

    @property
    def output_dir(self) -> Path:
        return Path(self.get('output_dir', 'output'))

    @property
    def log_level(self) -> str:
        return self.get('logging.level', 'INFO')

    @property
    def log_file(self) -> Optional[str]:
        return self.get('logging.file')
