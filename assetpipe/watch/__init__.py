"""Watch mode: file observation, incremental rebuilds and live reload."""

from .coordinator import RELOAD_ALL, State, WatchCoordinator
from .livereload import LiveReloadServer, ReloadHub
from .observer import ChangeHandler, SourceObserver
from .server import DevServer, ServerRestarted

__all__ = [
    'RELOAD_ALL', 'State', 'WatchCoordinator',
    'LiveReloadServer', 'ReloadHub',
    'ChangeHandler', 'SourceObserver',
    'DevServer', 'ServerRestarted',
]
