"""YAML pipeline configuration."""

from .loader import (
    CONFIG_NAME, DEFAULT_CONFIG, Pipeline, build_pipeline, build_transform,
    find_config, load_pipeline,
)
from .parser import (
    FingerprintConfig, ProjectConfig, ServerConfig, WatchConfig, WatchRoot,
    parse_config_file, parse_config_string,
)

__all__ = [
    'CONFIG_NAME', 'DEFAULT_CONFIG', 'Pipeline', 'build_pipeline', 'build_transform',
    'find_config', 'load_pipeline',
    'FingerprintConfig', 'ProjectConfig', 'ServerConfig', 'WatchConfig', 'WatchRoot',
    'parse_config_file', 'parse_config_string',
]
