"""Watch/reload coordinator.

Turns a stream of file change events into incremental build passes and
reload notifications:

    IDLE --on_change--> DEBOUNCING --timer--> BUILDING --> IDLE

Every change resets the debounce timer. When it fires, the changed paths
collected so far go to one BuildEngine.run() call. Changes arriving during
BUILDING are queued and start a new debounce cycle when the pass is over,
so no change is ever lost.

After a successful pass the changed outputs are pushed to the notify
callback (the live-reload hub). Failures are reported and nobody is
notified, so clients keep the last good assets.
"""

import threading
from enum import Enum
from typing import Callable, Iterable, Optional, Set

from ..exceptions import AssetPipeError
from ..reporter import Reporter

RELOAD_ALL = '*'
"""Notification path asking clients for a full page reload."""


class State(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    BUILDING = "building"


class WatchCoordinator:
    """Debounce changes of one watched root and rebuild it incrementally.

    @param engine: BuildEngine
    @param root_task: task rebuilt on change
    @param notify: callable receiving the set of changed output paths
    @param lint_task: task re-checked when the dev server restarted
    """

    def __init__(self, engine, root_task: str,
                 notify: Optional[Callable[[Set[str]], None]] = None,
                 reporter: Optional[Reporter] = None,
                 debounce: float = 0.3,
                 lint_task: Optional[str] = None,
                 timer_factory=threading.Timer):
        self.engine = engine
        self.root_task = root_task
        self.notify = notify
        self.reporter = reporter if reporter is not None else engine.reporter
        self.debounce = debounce
        self.lint_task = lint_task
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._state = State.IDLE
        self._pending: Set[str] = set()
        self._recheck = False
        self._timer = None

        self.last_result = None
        self.last_error: Optional[AssetPipeError] = None

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    @property
    def pending(self) -> Set[str]:
        with self._lock:
            return set(self._pending)

    def on_change(self, path) -> None:
        """Record a changed path and (re)start the debounce timer."""
        keys = self.engine.normalize([path])
        with self._lock:
            self._pending.update(keys)
            self._schedule()

    def on_changes(self, paths: Iterable) -> None:
        keys = self.engine.normalize(paths)
        with self._lock:
            self._pending.update(keys)
            self._schedule()

    def on_server_restarted(self, event) -> None:
        """Re-check server code and reload clients after a server restart."""
        self.reporter.debug(f"server restarted (pid {getattr(event, 'pid', '?')})")
        with self._lock:
            self._recheck = True
            self._schedule()

    def _schedule(self) -> None:
        # caller holds the lock
        if self._state == State.BUILDING:
            return
        self._state = State.DEBOUNCING
        self._cancel_timer()
        self._timer = self._timer_factory(self.debounce, self._on_timer)
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._run_pending()

    def _run_pending(self) -> None:
        with self._lock:
            if self._state == State.BUILDING:
                return
            self._cancel_timer()
            paths, self._pending = self._pending, set()
            recheck, self._recheck = self._recheck, False
            if not paths and not recheck:
                self._state = State.IDLE
                return
            self._state = State.BUILDING

        try:
            if paths:
                self._build(paths)
            if recheck:
                self._recheck_server()
        finally:
            with self._lock:
                self._state = State.IDLE
                if self._pending or self._recheck:
                    self._schedule()
                self._cond.notify_all()

    def _build(self, paths: Set[str]) -> None:
        try:
            result = self.engine.run(self.root_task, paths)
        except AssetPipeError as exc:
            self.last_error = exc
            self.reporter.failure(exc)
            return
        self.last_error = None
        self.last_result = result
        if result.changed_outputs:
            self._notify(set(result.changed_outputs))

    def _recheck_server(self) -> None:
        if self.lint_task is not None:
            try:
                stale = self.engine.stale_inputs(self.lint_task)
                if stale:
                    self.engine.run(self.lint_task, stale)
            except AssetPipeError as exc:
                self.last_error = exc
                self.reporter.failure(exc)
                return
        self._notify({RELOAD_ALL})

    def _notify(self, paths: Set[str]) -> None:
        self.reporter.reload(paths)
        if self.notify is not None:
            self.notify(paths)

    def flush(self) -> None:
        """Run pending work now and return once the coordinator is idle."""
        while True:
            with self._cond:
                while self._state == State.BUILDING:
                    self._cond.wait()
                self._cancel_timer()
                if not self._pending and not self._recheck:
                    self._state = State.IDLE
                    return
            self._run_pending()

    def stop(self) -> None:
        with self._lock:
            self._cancel_timer()
