"""assetpipe: incremental front-end asset builds.

Transforms (leaf functions over globbed inputs) are composed into tasks.
The build engine runs a task and, in watch mode, re-runs only the tasks
whose inputs changed; production builds end with a fingerprint pass that
renames assets by content hash and rewrites the references to them.

Example:
    from assetpipe import BuildEngine, load_pipeline

    pipeline = load_pipeline(base_path="dashboard")
    engine = BuildEngine(pipeline.registry, pipeline.graph, pipeline.base_path)
    engine.run("build")
    engine.run("build", {"app/styles/vars.less"}).changed_outputs
"""

from .assets import Asset, AssetKind
from .config import Pipeline, load_pipeline
from .engine import BuildEngine, BuildResult
from .exceptions import (
    AssetPipeError, ConfigParseError, ConfigurationError, CyclicDependencyError,
    DuplicateNameError, OptionsError, TransformError, UnknownTargetError,
    UnknownTaskError, UnknownTransformError, UnresolvedReferenceError,
)
from .fingerprint import FingerprintPass, FingerprintResult
from .graph import BuildPlan, CleanStep, TaskGraph, TaskRef, TransformStep
from .registry import OutputMode, OutputSpec, Transform, TransformRegistry
from .staleness import StalenessRecord, StalenessStore

__version__ = '0.1.0'

__all__ = [
    'Asset', 'AssetKind',
    'Pipeline', 'load_pipeline',
    'BuildEngine', 'BuildResult',
    'AssetPipeError', 'ConfigParseError', 'ConfigurationError', 'CyclicDependencyError',
    'DuplicateNameError', 'OptionsError', 'TransformError', 'UnknownTargetError',
    'UnknownTaskError', 'UnknownTransformError', 'UnresolvedReferenceError',
    'FingerprintPass', 'FingerprintResult',
    'BuildPlan', 'CleanStep', 'TaskGraph', 'TaskRef', 'TransformStep',
    'OutputMode', 'OutputSpec', 'Transform', 'TransformRegistry',
    'StalenessRecord', 'StalenessStore',
]
