"""
Configuration management for GeoMin tools.

Supports:
    - YAML configuration files
    - Environment variable overrides
    - Auto-detection of worker count
    - Builders that turn config sections into engine option records

The analysis engines never read this module; callers (CLI, workflows) build
explicit option records from it and pass them in.
"""

import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    # Anomaly detection
    'anomaly': {
        'rx': {
            'threshold': 0.99,        # Percentile threshold
            'window_size': None,      # None = global RX
        },
        'lof': {
            'neighbors': 20,
            'contamination': 0.01,
            'max_pixels': 5000,       # Brute-force neighbour search limit
        },
        'isolation_forest': {
            'trees': 100,
            'contamination': 0.01,
            'max_samples': 'auto',
            'random_state': 42,
        },
    },

    # Cloud masking
    'cloud_masking': {
        'default_algorithm': 'sentinel2',  # threshold, sentinel2, landsat_qa
        'thresholds': {},                  # Overrides of the per-algorithm defaults
        'fill_value': 0.0,
    },

    # Mineralogy
    'mineralogy': {
        'crosta_pca': {
            'n_components': 4,
            'target': 'hydroxyl',     # hydroxyl, iron, silica
        },
        'sam': {
            'threshold': 0.1,         # radians
        },
        'unmixing': {
            'sum_to_one': True,
            'non_negative': True,
        },
    },

    # Processing options
    'processing': {
        'n_workers': None,            # Auto-detect
        'parallel_min_pixels': 4096,
        'top_n': 100,
    },

    'logging': {
        'level': 'INFO',
    },
}

CONFIG_PATHS = [
    Path.home() / '.geomin_tools' / 'config.yaml',
    Path.home() / '.config' / 'geomin_tools' / 'config.yaml',
    Path.cwd() / 'geomin_config.yaml',
]


class Config:
    """Configuration manager with file loading, env overrides and auto-detection."""

    def __init__(self, path: Optional[Path] = None, search: bool = True):
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.source: Optional[Path] = None
        if path is not None:
            self._load_config_file([Path(path)], strict=True)
        elif search:
            self._load_config_file(CONFIG_PATHS)
        self._apply_env_overrides()
        self._auto_detect_resources()

    def _load_config_file(self, config_paths, strict: bool = False):
        """Load configuration from the first YAML file found."""
        for config_path in config_paths:
            if not config_path.exists():
                if strict:
                    raise FileNotFoundError(f"Config file not found: {config_path}")
                continue
            try:
                with open(config_path) as f:
                    user_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                if strict:
                    raise
                logger.warning(f"Failed to load {config_path}: {e}")
                continue
            self._merge_config(user_config)
            self.source = config_path
            logger.info(f"Loaded config from: {config_path}")
            return

    def _merge_config(self, user_config: Dict):
        """Deep merge user config into default config."""
        def merge(base, override):
            for key, value in override.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    merge(base[key], value)
                else:
                    base[key] = value
        merge(self._config, user_config)

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        env_mapping = {
            'GEOMIN_N_WORKERS': (('processing', 'n_workers'), int),
            'GEOMIN_TOP_N': (('processing', 'top_n'), int),
            'GEOMIN_LOG_LEVEL': (('logging', 'level'), str),
            'GEOMIN_RX_THRESHOLD': (('anomaly', 'rx', 'threshold'), float),
            'GEOMIN_CLOUD_ALGORITHM': (('cloud_masking', 'default_algorithm'), str),
        }

        for env_var, (keys, convert) in env_mapping.items():
            if env_var in os.environ:
                value = convert(os.environ[env_var])
                self.set(*keys, value)
                logger.debug(f"Config override from {env_var}: {'.'.join(keys)} = {value}")

    def _auto_detect_resources(self):
        """Auto-detect system resources."""
        if not self._config['processing']['n_workers']:
            self._config['processing']['n_workers'] = os.cpu_count() or 1

    def get(self, *keys, default=None):
        """Get nested config value."""
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys_and_value):
        """Set nested config value."""
        *keys, value = keys_and_value
        target = self._config
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

    def save(self, path: Optional[Path] = None) -> Path:
        """Save current config to YAML file."""
        if path is None:
            path = CONFIG_PATHS[0]
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False)
        logger.info(f"Saved config to: {path}")
        return path

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    # -------------------------------------------------------------------------
    # Option builders
    # -------------------------------------------------------------------------

    def _processing(self) -> Dict[str, Any]:
        processing = self._config['processing']
        return {
            'top_n': processing['top_n'],
            'n_workers': processing['n_workers'],
            'parallel_min_pixels': processing['parallel_min_pixels'],
        }

    def rx_options(self, **overrides):
        from geomin_tools.anomaly.rx import RXOptions
        params = dict(self._config['anomaly']['rx'], **self._processing())
        params.update(overrides)
        return RXOptions(**params)

    def lof_options(self, **overrides):
        from geomin_tools.anomaly.lof import LOFOptions
        params = dict(self._config['anomaly']['lof'], **self._processing())
        params.update(overrides)
        return LOFOptions(**params)

    def isolation_forest_params(self) -> Dict[str, Any]:
        return dict(self._config['anomaly']['isolation_forest'])

    def classifier_options(self, **overrides):
        from geomin_tools.anomaly.classifier import ClassifierOptions
        params = {'top_n': self._config['processing']['top_n']}
        params.update(overrides)
        return ClassifierOptions(**params)

    def cloud_options(self, **overrides):
        from geomin_tools.cloud.masker import CloudMaskOptions
        section = self._config['cloud_masking']
        params = {
            'algorithm': section['default_algorithm'],
            'thresholds': dict(section.get('thresholds') or {}),
            'fill_value': section.get('fill_value', 0.0),
        }
        params.update(overrides)
        return CloudMaskOptions(**params)

    def crosta_options(self, **overrides):
        from geomin_tools.mineralogy.crosta import CrostaOptions
        params = dict(self._config['mineralogy']['crosta_pca'])
        params.update(overrides)
        return CrostaOptions(**params)

    def sam_options(self, **overrides):
        from geomin_tools.mineralogy.sam import SAMOptions
        params = dict(self._config['mineralogy']['sam'], top_n=self._config['processing']['top_n'])
        params.update(overrides)
        return SAMOptions(**params)

    def unmixing_options(self, **overrides):
        from geomin_tools.mineralogy.unmixing import UnmixingOptions
        params = dict(self._config['mineralogy']['unmixing'])
        params.update(overrides)
        return UnmixingOptions(**params)

    @property
    def n_workers(self) -> int:
        return self._config['processing']['n_workers']

    @property
    def log_level(self) -> str:
        return str(self._config['logging']['level']).upper()

    def __repr__(self):
        return f"Config({self._config})"


_CONFIG: Optional[Config] = None


def get_config() -> Config:
    """Get the shared configuration instance used by the CLI."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = Config()
    return _CONFIG
