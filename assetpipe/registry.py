"""Transform registry.

A Transform couples a leaf function with the glob patterns it reads and an
OutputSpec that says where its results go. The registry is filled once at
startup (usually by assetpipe.config.loader), frozen, and then only queried:

- resolve(name): the Transform registered under name
- matches(path): names of transforms whose inputs match a changed path

Example:
    registry = TransformRegistry()
    registry.register(
        "less",
        inputs=["app/styles/{,*/}*.less"],
        sources=["app/styles/main.less"],
        output=OutputSpec(dest="build/styles", cwd="app/styles", ext=".css"),
        fn=compile_less,
    )
    registry.freeze()
    registry.matches("app/styles/vars.less")  # ["less"]
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .assets import Asset
from .exceptions import (
    ConfigurationError, DuplicateNameError, TransformError, UnknownTransformError,
)
from .matching import GlobPattern, PrefixTrie, compile_all, glob_all, match_any


class OutputMode(Enum):
    NONE = "none"        # validation only, no outputs
    EACH = "each"        # one output per source asset
    CONCAT = "concat"    # one output from all inputs
    MULTI = "multi"      # fn returns {relative path: bytes}


def _join(*parts: str) -> str:
    return str(PurePosixPath(*[p for p in parts if p]))


@dataclass
class OutputSpec:
    """Where a transform writes its results.

    Attributes:
        dest: output directory (project-relative). None for validation steps.
        cwd: prefix stripped from a source path before it is placed under dest
             (EACH mode). Defaults to the project root.
        ext: replacement extension for EACH outputs, e.g. ".css"
        filename: single output file name under dest (CONCAT mode)
        multi: the function decides output names itself (MULTI mode)
    """
    dest: Optional[str] = None
    cwd: Optional[str] = None
    ext: Optional[str] = None
    filename: Optional[str] = None
    multi: bool = False

    @property
    def mode(self) -> OutputMode:
        if self.dest is None:
            return OutputMode.NONE
        if self.multi:
            return OutputMode.MULTI
        if self.filename:
            return OutputMode.CONCAT
        return OutputMode.EACH

    def validate(self, name: str) -> None:
        if self.dest is None and (self.filename or self.ext or self.multi or self.cwd):
            raise ConfigurationError(
                f"Transform '{name}': output options given without 'dest'")
        if self.filename and self.multi:
            raise ConfigurationError(
                f"Transform '{name}': 'filename' and 'multi' are exclusive")
        if self.ext is not None and not self.ext.startswith('.'):
            raise ConfigurationError(
                f"Transform '{name}': 'ext' must start with '.', got '{self.ext}'")

    def target_for(self, source_path: str) -> str:
        """Output path of one source in EACH mode."""
        rel = PurePosixPath(source_path)
        if self.cwd:
            rel = rel.relative_to(self.cwd.rstrip('/'))
        if self.ext:
            rel = rel.with_suffix(self.ext)
        return _join(self.dest, str(rel))

    def concat_target(self) -> str:
        return _join(self.dest, self.filename)


def _as_bytes(transform_name: str, data: Any) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        return data.encode('utf-8')
    raise TransformError(
        transform_name,
        TypeError(f"transform must return bytes or str, got {type(data).__name__}"))


@dataclass
class Transform:
    """A named leaf function with declared inputs and outputs.

    The function is called as fn(assets, options):
    - NONE mode: once with all inputs; return value ignored, raise on failure
    - EACH mode: once per source asset with a one-element list; returns bytes
    - CONCAT mode: once with all inputs; returns bytes
    - MULTI mode: once with all inputs; returns {path under dest: bytes}
    """

    name: str
    inputs: List[str]
    output: OutputSpec
    fn: Callable[[List[Asset], Any], Any]
    options: Any = None
    sources: Optional[List[str]] = None
    doc: Optional[str] = None

    _patterns: List[GlobPattern] = field(init=False, repr=False, default_factory=list)
    _source_patterns: List[GlobPattern] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self):
        if isinstance(self.inputs, str):
            self.inputs = [self.inputs]
        if isinstance(self.sources, str):
            self.sources = [self.sources]
        self.inputs = list(self.inputs)
        self._patterns = compile_all(self.inputs)
        self._source_patterns = compile_all(self.sources) if self.sources else []

    @property
    def patterns(self) -> List[GlobPattern]:
        return list(self._patterns)

    def matches(self, path: str) -> bool:
        return match_any(self._patterns, path)

    def collect(self, base_path: Path) -> List[str]:
        """Project-relative paths of all existing input files."""
        return glob_all(self._patterns, base_path)

    def is_source(self, path: str) -> bool:
        if not self._source_patterns:
            return True
        return match_any(self._source_patterns, path)

    def may_read(self, other: 'Transform') -> bool:
        """Whether an input glob of this transform can reach what other writes.

        Decided from the patterns and other's output spec alone, so files
        other has not written yet count too.
        """
        mode = other.output.mode
        if mode == OutputMode.NONE:
            return False
        if mode == OutputMode.CONCAT:
            return self.matches(other.output.concat_target())
        return any(p.could_match_under(other.output.dest) for p in self._patterns)

    def declared_outputs(self, input_paths: Sequence[str]) -> Optional[List[str]]:
        """Outputs this transform will write for the given inputs.

        Returns None in MULTI mode, where only the function knows.
        """
        mode = self.output.mode
        if mode == OutputMode.NONE:
            return []
        if mode == OutputMode.CONCAT:
            return [self.output.concat_target()]
        if mode == OutputMode.EACH:
            return [self.output.target_for(p) for p in input_paths if self.is_source(p)]
        return None

    def produce(self, assets: Sequence[Asset]) -> Dict[str, bytes]:
        """Run the leaf function and return {output path: bytes}.

        Any exception raised by the function is wrapped in TransformError.
        """
        mode = self.output.mode
        try:
            if mode == OutputMode.NONE:
                self.fn(list(assets), self.options)
                return {}
            if mode == OutputMode.CONCAT:
                data = self.fn(list(assets), self.options)
                return {self.output.concat_target(): _as_bytes(self.name, data)}
            if mode == OutputMode.EACH:
                results = {}
                for asset in assets:
                    if not self.is_source(asset.path):
                        continue
                    data = self.fn([asset], self.options)
                    results[self.output.target_for(asset.path)] = _as_bytes(self.name, data)
                return results
            produced = self.fn(list(assets), self.options) or {}
            return {
                _join(self.output.dest, rel): _as_bytes(self.name, data)
                for rel, data in produced.items()
            }
        except TransformError:
            raise
        except Exception as exc:
            raise TransformError(self.name, exc) from exc


class TransformRegistry:
    """Process-wide map of transform name to Transform.

    Keeps a PrefixTrie of the static prefix of every input glob so that
    matches() only evaluates globs that could possibly match a path.
    """

    def __init__(self):
        self._transforms: Dict[str, Transform] = {}
        self._index: PrefixTrie[str] = PrefixTrie()
        self._frozen = False

    def register(self, transform, inputs=None, output=None, fn=None, **kwargs) -> Transform:
        """Register a Transform (or build one from name and keyword args).

        Raises:
            DuplicateNameError: name already registered
            ConfigurationError: registry frozen, or invalid output/options
        """
        if not isinstance(transform, Transform):
            transform = Transform(
                name=transform,
                inputs=inputs or [],
                output=output if output is not None else OutputSpec(),
                fn=fn,
                **kwargs,
            )
        if self._frozen:
            raise ConfigurationError(
                f"cannot register '{transform.name}': transform registry is frozen")
        if transform.name in self._transforms:
            raise DuplicateNameError("transform", transform.name)
        if not callable(transform.fn):
            raise ConfigurationError(
                f"Transform '{transform.name}': fn must be callable, got {transform.fn!r}")
        if not transform.inputs:
            raise ConfigurationError(
                f"Transform '{transform.name}' declares no input patterns")
        transform.output.validate(transform.name)
        if hasattr(transform.options, 'validate'):
            transform.options.validate()

        self._transforms[transform.name] = transform
        for pattern in transform.patterns:
            self._index.insert(pattern.static_prefix, transform.name)
        return transform

    def resolve(self, name: str) -> Transform:
        try:
            return self._transforms[name]
        except KeyError:
            raise UnknownTransformError(name) from None

    def matches(self, path: str) -> List[str]:
        """Names of transforms with an input glob matching path.

        Returned in registration order.
        """
        candidates = set(self._index.find_all_prefixes(path))
        return [
            name for name, transform in self._transforms.items()
            if name in candidates and transform.matches(path)
        ]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return list(self._transforms)

    def __contains__(self, name: str) -> bool:
        return name in self._transforms

    def __iter__(self) -> Iterator[Transform]:
        return iter(self._transforms.values())

    def __len__(self) -> int:
        return len(self._transforms)
