"""Turn a parsed pipeline file into a frozen registry and a validated graph.

Example:
    pipeline = load_pipeline(Path("assetpipe.yaml"), base_path=Path("."))
    engine = BuildEngine(pipeline.registry, pipeline.graph, pipeline.base_path)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..exceptions import ConfigurationError
from ..graph import TaskGraph
from ..registry import OutputMode, OutputSpec, Transform, TransformRegistry
from ..transforms import get_type
from .parser import ProjectConfig, parse_config_file

DEFAULT_CONFIG = Path(__file__).parent / 'default.yaml'
CONFIG_NAME = 'assetpipe.yaml'


@dataclass
class Pipeline:
    """Everything the engine needs, built from one pipeline file."""
    config: ProjectConfig
    registry: TransformRegistry
    graph: TaskGraph
    base_path: Path


def find_config(base_path: Path, config_path: Optional[Union[str, Path]] = None) -> Path:
    """Pipeline file to use: explicit path, ./assetpipe.yaml, or the default.

    Raises:
        FileNotFoundError: an explicit path does not exist
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.is_absolute():
            path = base_path / path
        if not path.exists():
            raise FileNotFoundError(f"pipeline file not found: {path}")
        return path
    local = base_path / CONFIG_NAME
    if local.exists():
        return local
    return DEFAULT_CONFIG


def build_transform(name: str, spec: Dict[str, Any], base_path: Path) -> Transform:
    """Create a Transform from its validated definition.

    Raises:
        OptionsError: unknown type, or options not matching the type
        ConfigurationError: output mode not supported by the type
    """
    transform_type = get_type(spec['type'])
    options = transform_type.options_class.from_dict(name, spec.get('options'))
    output = OutputSpec(**(spec.get('output') or {}))
    output.validate(name)

    if output.mode not in transform_type.modes:
        valid = ", ".join(m.value for m in transform_type.modes)
        raise ConfigurationError(
            f"Transform '{name}': type '{transform_type.name}' does not support "
            f"output mode '{output.mode.value}' (supported: {valid})")
    capture = getattr(options, 'capture', None)
    if capture == 'none' and output.mode != OutputMode.NONE:
        raise ConfigurationError(
            f"Transform '{name}': 'capture: none' produces no output, remove 'dest'")
    if capture in ('stdout', 'file') and output.mode == OutputMode.NONE:
        raise ConfigurationError(
            f"Transform '{name}': 'capture: {capture}' needs an output 'dest'")

    return Transform(
        name=name,
        inputs=spec['input'],
        sources=spec.get('sources'),
        output=output,
        fn=transform_type.factory(options, base_path),
        options=options,
        doc=spec.get('doc'),
    )


def build_pipeline(config: ProjectConfig, base_path: Union[str, Path]) -> Pipeline:
    """Register transforms, define tasks and check every reference.

    Raises:
        ConfigurationError: any invalid definition
        CyclicDependencyError: tasks reference each other in a cycle
    """
    base_path = Path(base_path).resolve()
    registry = TransformRegistry()
    for name, spec in config.transforms.items():
        registry.register(build_transform(name, spec, base_path))
    registry.freeze()

    graph = TaskGraph(registry)
    for name, spec in config.tasks.items():
        graph.define_task(name, spec['steps'], parallel=spec['parallel'], doc=spec['doc'])
    graph.validate()

    if config.watch.task not in graph and config.tasks:
        raise ConfigurationError(f"'watch': unknown task '{config.watch.task}'")
    for root in config.watch.roots:
        if root.task not in graph:
            raise ConfigurationError(f"'watch': unknown task '{root.task}'")
    if config.server is not None and config.server.task is not None \
            and config.server.task not in graph:
        raise ConfigurationError(f"'server': unknown task '{config.server.task}'")

    return Pipeline(config=config, registry=registry, graph=graph, base_path=base_path)


def load_pipeline(config_path: Optional[Union[str, Path]] = None,
                  base_path: Union[str, Path] = '.') -> Pipeline:
    base_path = Path(base_path).resolve()
    config = parse_config_file(find_config(base_path, config_path))
    return build_pipeline(config, base_path)
