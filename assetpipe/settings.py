"""Runtime settings.

Values are layered, later sources winning:

1. defaults below
2. the pipeline file ('watch: debounce')
3. environment variables PORT, LIVERELOAD_PORT, ASSETPIPE_ENV
4. command line flags
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ConfigurationError

ENVIRONMENTS = ('development', 'production')

DEFAULT_PORT = 9400
DEFAULT_LIVERELOAD_PORT = 31452
DEFAULT_DEBOUNCE = 0.3


@dataclass
class Settings:
    base_path: Path = Path('.')
    config_path: Optional[Path] = None
    environment: str = 'development'
    port: int = DEFAULT_PORT
    livereload_port: int = DEFAULT_LIVERELOAD_PORT
    debounce: float = DEFAULT_DEBOUNCE
    verbosity: int = 1
    dry_run: bool = False

    def validate(self) -> None:
        if self.environment not in ENVIRONMENTS:
            raise ConfigurationError(
                f"invalid environment '{self.environment}'. "
                f"Valid environments: {', '.join(ENVIRONMENTS)}")
        for name in ('port', 'livereload_port'):
            value = getattr(self, name)
            if not 0 < value < 65536:
                raise ConfigurationError(f"invalid {name}: {value}")

    @property
    def production(self) -> bool:
        return self.environment == 'production'


def _int_env(environ: Mapping[str, str], name: str) -> Optional[int]:
    value = environ.get(name)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"environment variable {name} must be a number, got '{value}'")


def from_environment(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Apply PORT, LIVERELOAD_PORT and ASSETPIPE_ENV on top of settings."""
    environ = os.environ if environ is None else environ
    changes = {}
    port = _int_env(environ, 'PORT')
    if port is not None:
        changes['port'] = port
    livereload_port = _int_env(environ, 'LIVERELOAD_PORT')
    if livereload_port is not None:
        changes['livereload_port'] = livereload_port
    if environ.get('ASSETPIPE_ENV'):
        changes['environment'] = environ['ASSETPIPE_ENV']
    return replace(settings, **changes)


def load_settings(overrides: Optional[Mapping[str, object]] = None,
                  debounce: Optional[float] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from defaults, pipeline value, environment and overrides.

    overrides holds command line values; None values are ignored.

    Raises:
        ConfigurationError: invalid value from any source
    """
    settings = Settings()
    if debounce is not None:
        settings = replace(settings, debounce=debounce)
    settings = from_environment(settings, environ)
    if overrides:
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    settings.validate()
    return settings
