"""File system observation with watchdog."""

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..matching import compile_all, match_any


class ChangeHandler(FileSystemEventHandler):
    """Forward file (not directory) events as project-relative paths.

    @param callback: called with each changed path
    @param patterns: when given, only paths matching one of these globs pass
    """

    def __init__(self, base_path: Path, callback: Callable[[str], None],
                 patterns: Optional[Iterable[str]] = None):
        self.base_path = Path(base_path).resolve()
        self.callback = callback
        self.patterns = compile_all(patterns) if patterns else None

    def handle(self, path, is_directory):
        if is_directory:
            return
        try:
            key = Path(path).resolve().relative_to(self.base_path).as_posix()
        except ValueError:
            return
        if self.patterns is not None and not match_any(self.patterns, key):
            return
        self.callback(key)

    def on_modified(self, event):
        self.handle(event.src_path, event.is_directory)

    def on_created(self, event):
        self.handle(event.src_path, event.is_directory)

    def on_deleted(self, event):
        self.handle(event.src_path, event.is_directory)

    def on_moved(self, event):
        self.handle(event.dest_path, event.is_directory)


class SourceObserver:
    """Watch directories of a project and report changed files.

    Example:
        observer = SourceObserver(base_path, ["app", "test"], coordinator.on_change)
        observer.start()
        ...
        observer.stop()
    """

    def __init__(self, base_path: Path, directories: Iterable[str],
                 callback: Callable[[str], None],
                 patterns: Optional[Iterable[str]] = None,
                 observer_factory=Observer):
        self.base_path = Path(base_path).resolve()
        self.directories: List[str] = list(directories)
        self.handler = ChangeHandler(self.base_path, callback, patterns)
        self._observer_factory = observer_factory
        self._observer = None

    @classmethod
    def for_patterns(cls, base_path: Path, patterns: Iterable[str],
                     callback: Callable[[str], None], **kwargs) -> 'SourceObserver':
        """Observe the directories the static prefixes of patterns point to."""
        patterns = list(patterns)
        directories = sorted({p.static_prefix.rstrip('/') or '.'
                              for p in compile_all(patterns)})
        return cls(base_path, directories, callback, patterns=patterns, **kwargs)

    def start(self) -> None:
        self._observer = self._observer_factory()
        for directory in self.directories:
            path = self.base_path / directory
            if path.is_dir():
                # the project root itself is only watched one level deep
                self._observer.schedule(self.handler, str(path),
                                        recursive=directory != '.')
        self._observer.start()

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
