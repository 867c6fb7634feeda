"""Dev server supervision.

DevServer runs the project's server as a child process, restarts it when
server-side files change and tells its listeners each time it did so with
a ServerRestarted event.

The command may use {port}, {livereload_port} and {env}. The child also gets
PORT, LIVERELOAD_PORT and ASSETPIPE_ENV in its environment.
"""

import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..reporter import Reporter
from .observer import SourceObserver


@dataclass(frozen=True)
class ServerRestarted:
    """The dev server process was replaced by a new one."""
    pid: int
    restarts: int
    reason: Optional[str] = None


class DevServer:
    """Start, restart and stop the dev server process.

    @param delay: seconds between a restart and the ServerRestarted event,
                  giving the new process time to listen
    """

    STOP_TIMEOUT = 5

    def __init__(self, command: str, base_path: Path,
                 port: int = 9400, livereload_port: int = 31452,
                 environment: str = 'development',
                 watch: Iterable[str] = (),
                 delay: float = 1.0,
                 reporter: Optional[Reporter] = None,
                 popen=subprocess.Popen,
                 observer_factory=None):
        self.command = command
        self.base_path = Path(base_path)
        self.port = port
        self.livereload_port = livereload_port
        self.environment = environment
        self.watch = list(watch)
        self.delay = delay
        self.reporter = reporter if reporter is not None else Reporter()
        self.restarts = 0
        self._popen = popen
        self._observer_factory = observer_factory
        self._process = None
        self._observer: Optional[SourceObserver] = None
        self._listeners: List[Callable[[ServerRestarted], None]] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: Callable[[ServerRestarted], None]) -> None:
        self._listeners.append(listener)

    def command_line(self) -> str:
        return self.command.format(
            port=self.port,
            livereload_port=self.livereload_port,
            env=self.environment,
        )

    def child_environment(self) -> dict:
        env = os.environ.copy()
        env['PORT'] = str(self.port)
        env['LIVERELOAD_PORT'] = str(self.livereload_port)
        env['ASSETPIPE_ENV'] = self.environment
        return env

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _spawn(self) -> None:
        cmd = self.command_line()
        self.reporter.info(f"server: {cmd}")
        self._process = self._popen(
            cmd, shell=True, cwd=self.base_path, env=self.child_environment())

    def _terminate(self) -> None:
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def start(self) -> None:
        """Start the process and begin watching server files."""
        with self._lock:
            self._spawn()
        if self.watch:
            kwargs = {}
            if self._observer_factory is not None:
                kwargs['observer_factory'] = self._observer_factory
            self._observer = SourceObserver.for_patterns(
                self.base_path, self.watch, self.on_file_changed, **kwargs)
            self._observer.start()

    def restart(self, reason: Optional[str] = None) -> ServerRestarted:
        with self._lock:
            self._terminate()
            self._spawn()
            self.restarts += 1
            event = ServerRestarted(pid=self._process.pid, restarts=self.restarts,
                                    reason=reason)
        self.reporter.info(f"server restarted ({reason or 'requested'})")
        if self.delay > 0:
            timer = threading.Timer(self.delay, self._emit, args=(event,))
            timer.daemon = True
            timer.start()
        else:
            self._emit(event)
        return event

    def _emit(self, event: ServerRestarted) -> None:
        for listener in list(self._listeners):
            listener(event)

    def on_file_changed(self, path: str) -> None:
        self.restart(reason=path)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer = None
        with self._lock:
            self._terminate()
