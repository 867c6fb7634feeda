"""Console reporting of build progress.

Verbosity:
    0 - errors only
    1 - errors and one line per executed step (default)
    2 - everything, including skipped tasks and reload notifications
"""

import sys


class Reporter:
    """Write build events to stdout/stderr.

    Streams are looked up on each write unless given explicitly, so output
    follows any later redirection of sys.stdout/sys.stderr.
    """

    DEFAULT_VERBOSITY = 1

    def __init__(self, verbosity=None, out=None, err=None):
        self.verbosity = self.DEFAULT_VERBOSITY if verbosity is None else verbosity
        self._out = out
        self._err = err

    @property
    def out(self):
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self):
        return self._err if self._err is not None else sys.stderr

    def _write(self, stream, msg):
        stream.write(msg + "\n")
        stream.flush()

    def info(self, msg, level=1):
        if self.verbosity >= level:
            self._write(self.out, msg)

    def debug(self, msg):
        self.info(msg, level=2)

    def warning(self, msg):
        self._write(self.err, f"Warning: {msg}")

    def error(self, msg):
        self._write(self.err, f"Error: {msg}")

    def step_started(self, plan_step):
        self.info(f".  {plan_step.task} > {plan_step.step}")

    def task_skipped(self, task_name):
        self.debug(f"-- {task_name} (up to date)")

    def build_finished(self, result):
        self.debug(
            f"{result.invocations} transform(s) run, "
            f"{len(result.changed_outputs)} output(s) written")

    def failure(self, exc):
        """Report a failed build: the failing task/transform and its cause."""
        self.error(str(exc))
        cause = getattr(exc, 'cause', None)
        details = getattr(cause, 'stderr', None)
        if details:
            if isinstance(details, bytes):
                details = details.decode('utf-8', 'replace')
            self._write(self.err, details.rstrip())

    def reload(self, paths):
        self.debug("livereload: " + ", ".join(sorted(paths)))
