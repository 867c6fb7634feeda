"""Exception hierarchy for assetpipe.

Configuration problems are detected before any work is done. Transform and
reference errors happen while a build pass is running.
"""


class AssetPipeError(Exception):
    """Base class for all errors raised by assetpipe."""


class ConfigurationError(AssetPipeError):
    """Invalid pipeline definition (unknown name, bad option, ...)."""


class ConfigParseError(ConfigurationError):
    """Error parsing or validating a YAML pipeline file."""


class DuplicateNameError(ConfigurationError):
    """A transform or task name was registered twice."""

    def __init__(self, kind, name):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is already defined")


class UnknownTransformError(ConfigurationError):
    def __init__(self, name, referrer=None):
        self.name = name
        self.referrer = referrer
        msg = f"unknown transform '{name}'"
        if referrer:
            msg += f" (referenced by task '{referrer}')"
        super().__init__(msg)


class UnknownTaskError(ConfigurationError):
    def __init__(self, name, referrer=None):
        self.name = name
        self.referrer = referrer
        msg = f"unknown task '{name}'"
        if referrer:
            msg += f" (referenced by task '{referrer}')"
        super().__init__(msg)


class UnknownTargetError(ConfigurationError):
    def __init__(self, command, target, valid=()):
        self.command = command
        self.target = target
        msg = f"unknown target '{target}' for {command}"
        if valid:
            msg += f". Valid targets: {', '.join(sorted(valid))}"
        super().__init__(msg)


class OptionsError(ConfigurationError):
    """Transform options do not match the options class of its type."""


class CyclicDependencyError(AssetPipeError):
    """Task references form a cycle.

    :ivar cycle: (list - str) task names along the cycle, first == last
    """

    def __init__(self, cycle):
        self.cycle = list(cycle)
        super().__init__("cyclic task dependency: " + " -> ".join(self.cycle))


class TransformError(AssetPipeError):
    """A leaf transform failed.

    :ivar transform: (str) transform name
    :ivar task: (str) enclosing task name, set by the engine
    :ivar cause: the underlying exception
    """

    def __init__(self, transform, cause, task=None):
        self.transform = transform
        self.cause = cause
        self.task = task
        super().__init__(str(self))

    def __str__(self):
        where = f"transform '{self.transform}'"
        if self.task:
            where = f"task '{self.task}', " + where
        return f"{where} failed: {self.cause}"


class UnresolvedReferenceError(AssetPipeError):
    """A dist file references an asset that was never produced."""

    def __init__(self, source, reference):
        self.source = source
        self.reference = reference
        super().__init__(
            f"'{source}' references '{reference}' which is not a built asset")
