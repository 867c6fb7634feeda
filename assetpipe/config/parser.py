"""Parsing and validation of assetpipe.yaml pipeline files.

A pipeline file has these top-level sections, all optional:

    config:       project directories and the staleness state file
    transforms:   name -> transform definition
    tasks:        name -> list of steps, or mapping with steps/parallel/doc
    clean:        clean target -> list of paths
    fingerprint:  dist root and globs of files to fingerprint
    watch:        root task rebuilt on change, the served directory and
                  further watched files with the task they re-run
    server:       dev server command and the files that restart it

Only structure is checked here. Names (unknown transforms or tasks, option
keys) are checked when the pipeline is loaded.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..exceptions import ConfigParseError, DuplicateNameError

TOP_LEVEL = ('config', 'transforms', 'tasks', 'clean', 'fingerprint', 'watch', 'server')
CONFIG_KEYS = ('source', 'build', 'dist', 'state')
TRANSFORM_KEYS = ('type', 'input', 'sources', 'output', 'options', 'doc')
OUTPUT_KEYS = ('dest', 'cwd', 'ext', 'filename', 'multi')
TASK_KEYS = ('steps', 'parallel', 'doc')


@dataclass
class FingerprintConfig:
    root: str = 'dist/public'
    files: List[str] = field(default_factory=list)
    rewrite: Optional[List[str]] = None
    length: int = 8


@dataclass
class WatchRoot:
    """Further watched files: a change in paths re-runs task."""
    task: str
    paths: List[str]
    reload: bool = False


@dataclass
class WatchConfig:
    task: str = 'build'
    served_root: str = 'build'
    debounce: Optional[float] = None
    roots: List[WatchRoot] = field(default_factory=list)


@dataclass
class ServerConfig:
    command: str
    watch: List[str] = field(default_factory=list)
    task: Optional[str] = None
    delay: float = 1.0


@dataclass
class ProjectConfig:
    """Parsed pipeline file."""
    config: Dict[str, Any] = field(default_factory=dict)
    transforms: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    tasks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    clean: Dict[str, List[str]] = field(default_factory=dict)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    server: Optional[ServerConfig] = None
    path: Optional[Path] = None

    @property
    def source_dir(self) -> str:
        return self.config.get('source', 'app')

    @property
    def state_file(self) -> Optional[str]:
        return self.config.get('state')

    def targets(self, command: str) -> List[str]:
        """Targets of 'build:<target>' style tasks, or clean targets."""
        if command == 'clean':
            return list(self.clean)
        prefix = command + ':'
        return [name[len(prefix):] for name in self.tasks if name.startswith(prefix)]


SECTION_KINDS = {'transforms': 'transform', 'tasks': 'task'}


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys.

    A name defined twice under transforms: or tasks: raises
    DuplicateNameError; any other repeated key raises ConfigParseError.
    """

    _document = None

    def construct_document(self, node):
        self._document = node
        return super().construct_document(node)

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            for key_node, value_node in node.value:
                if (node is self._document and isinstance(key_node, yaml.ScalarNode)
                        and key_node.value in SECTION_KINDS):
                    _check_unique(value_node, SECTION_KINDS[key_node.value])
            _check_unique(node, None)
        return super().construct_mapping(node, deep=deep)


def _check_unique(node, kind: Optional[str]) -> None:
    if not isinstance(node, yaml.MappingNode):
        return
    seen = set()
    for key_node, _ in node.value:
        if not isinstance(key_node, yaml.ScalarNode) or key_node.tag == 'tag:yaml.org,2002:merge':
            continue
        key = key_node.value
        if key in seen:
            if kind is not None:
                raise DuplicateNameError(kind, key)
            raise ConfigParseError(
                f"duplicate key '{key}' (line {key_node.start_mark.line + 1})")
        seen.add(key)


def parse_config_file(path: Union[str, Path]) -> ProjectConfig:
    """Parse and validate a pipeline file.

    Raises:
        ConfigParseError: invalid YAML or structure
        DuplicateNameError: a transform or task defined twice
        FileNotFoundError: path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"pipeline file not found: {path}")
    with open(path) as f:
        config = parse_config_string(f.read())
    config.path = path
    return config


def parse_config_string(content: str) -> ProjectConfig:
    try:
        data = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML syntax: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigParseError("YAML root must be a mapping")
    return _validate_data(data)


def _check_keys(data: Dict[str, Any], valid, where: str) -> None:
    for key in data:
        if key not in valid:
            raise ConfigParseError(
                f"{where}: unknown field '{key}'. Valid fields: {', '.join(valid)}")


def _mapping(data: Dict[str, Any], key: str, where: str = '') -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigParseError(f"{where}'{key}' must be a mapping")
    return value


def _str_list(value: Any, where: str) -> List[str]:
    """Accept a string or a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigParseError(f"{where} must be a string or a list of strings")


def _validate_data(data: Dict[str, Any]) -> ProjectConfig:
    _check_keys(data, TOP_LEVEL, "pipeline file")

    config = _mapping(data, 'config')
    _check_keys(config, CONFIG_KEYS, "'config'")
    for key, value in config.items():
        if not isinstance(value, str):
            raise ConfigParseError(f"'config': '{key}' must be a string")

    transforms = {
        name: _validate_transform(name, spec)
        for name, spec in _mapping(data, 'transforms').items()
    }
    tasks = {
        name: _validate_task(name, spec)
        for name, spec in _mapping(data, 'tasks').items()
    }
    clean = {
        name: _str_list(paths, f"Clean target '{name}'")
        for name, paths in _mapping(data, 'clean').items()
    }

    server = None
    if data.get('server') is not None:
        server = _validate_server(_mapping(data, 'server'))

    return ProjectConfig(
        config=config,
        transforms=transforms,
        tasks=tasks,
        clean=clean,
        fingerprint=_validate_fingerprint(_mapping(data, 'fingerprint')),
        watch=_validate_watch(_mapping(data, 'watch')),
        server=server,
    )


def _validate_transform(name: Any, spec: Any) -> Dict[str, Any]:
    if not isinstance(name, str):
        raise ConfigParseError(f"Transform name must be a string, got {name!r}")
    if not isinstance(spec, dict):
        raise ConfigParseError(f"Transform '{name}' must be a mapping")
    _check_keys(spec, TRANSFORM_KEYS, f"Transform '{name}'")

    if 'type' not in spec:
        raise ConfigParseError(f"Transform '{name}' missing required field 'type'")
    if not isinstance(spec['type'], str):
        raise ConfigParseError(f"Transform '{name}': 'type' must be a string")

    if 'input' not in spec:
        raise ConfigParseError(f"Transform '{name}' missing required field 'input'")
    result = dict(spec)
    result['input'] = _str_list(spec['input'], f"Transform '{name}': 'input'")
    if spec.get('sources') is not None:
        result['sources'] = _str_list(spec['sources'], f"Transform '{name}': 'sources'")

    output = spec.get('output')
    if output is not None:
        if not isinstance(output, dict):
            raise ConfigParseError(f"Transform '{name}': 'output' must be a mapping")
        _check_keys(output, OUTPUT_KEYS, f"Transform '{name}': output")
        for key in ('dest', 'cwd', 'ext', 'filename'):
            if key in output and not isinstance(output[key], str):
                raise ConfigParseError(
                    f"Transform '{name}': output '{key}' must be a string")
        if 'multi' in output and not isinstance(output['multi'], bool):
            raise ConfigParseError(f"Transform '{name}': output 'multi' must be a boolean")

    if 'options' in spec and spec['options'] is not None \
            and not isinstance(spec['options'], dict):
        raise ConfigParseError(f"Transform '{name}': 'options' must be a mapping")
    if 'doc' in spec and not isinstance(spec['doc'], str):
        raise ConfigParseError(f"Transform '{name}': 'doc' must be a string")
    return result


def _validate_task(name: Any, spec: Any) -> Dict[str, Any]:
    """Normalize a task to {'steps': [...], 'parallel': bool, 'doc': str}."""
    if not isinstance(name, str):
        raise ConfigParseError(f"Task name must be a string, got {name!r}")
    if isinstance(spec, list):
        spec = {'steps': spec}
    if not isinstance(spec, dict):
        raise ConfigParseError(f"Task '{name}' must be a list of steps or a mapping")
    _check_keys(spec, TASK_KEYS, f"Task '{name}'")

    steps = spec.get('steps')
    if not isinstance(steps, list):
        raise ConfigParseError(f"Task '{name}': 'steps' must be a list")
    for step in steps:
        if isinstance(step, str):
            continue
        if isinstance(step, dict) and set(step) == {'clean'}:
            _str_list(step['clean'], f"Task '{name}': clean step")
            continue
        raise ConfigParseError(
            f"Task '{name}': invalid step {step!r}. "
            "Use 'transform', '@task' or {clean: [paths]}")

    parallel = spec.get('parallel', False)
    if not isinstance(parallel, bool):
        raise ConfigParseError(f"Task '{name}': 'parallel' must be a boolean")
    doc = spec.get('doc')
    if doc is not None and not isinstance(doc, str):
        raise ConfigParseError(f"Task '{name}': 'doc' must be a string")
    return {'steps': steps, 'parallel': parallel, 'doc': doc}


def _validate_fingerprint(spec: Dict[str, Any]) -> FingerprintConfig:
    _check_keys(spec, ('root', 'files', 'rewrite', 'length'), "'fingerprint'")
    result = FingerprintConfig()
    if 'root' in spec:
        if not isinstance(spec['root'], str):
            raise ConfigParseError("'fingerprint': 'root' must be a string")
        result.root = spec['root']
    if 'files' in spec:
        result.files = _str_list(spec['files'], "'fingerprint': 'files'")
    if spec.get('rewrite') is not None:
        result.rewrite = _str_list(spec['rewrite'], "'fingerprint': 'rewrite'")
    if 'length' in spec:
        length = spec['length']
        if not isinstance(length, int) or isinstance(length, bool) or not 4 <= length <= 32:
            raise ConfigParseError("'fingerprint': 'length' must be an integer from 4 to 32")
        result.length = length
    return result


def _validate_watch(spec: Dict[str, Any]) -> WatchConfig:
    _check_keys(spec, ('task', 'served_root', 'debounce', 'roots'), "'watch'")
    result = WatchConfig()
    for key in ('task', 'served_root'):
        if key in spec:
            if not isinstance(spec[key], str):
                raise ConfigParseError(f"'watch': '{key}' must be a string")
            setattr(result, key, spec[key])
    if 'debounce' in spec:
        debounce = spec['debounce']
        if not isinstance(debounce, (int, float)) or isinstance(debounce, bool) or debounce < 0:
            raise ConfigParseError("'watch': 'debounce' must be a non-negative number")
        result.debounce = float(debounce)
    if 'roots' in spec:
        if not isinstance(spec['roots'], list):
            raise ConfigParseError("'watch': 'roots' must be a list")
        result.roots = [_validate_watch_root(i, root) for i, root in enumerate(spec['roots'])]
    return result


def _validate_watch_root(index: int, spec: Any) -> WatchRoot:
    where = f"'watch': root {index}"
    if not isinstance(spec, dict):
        raise ConfigParseError(f"{where} must be a mapping")
    _check_keys(spec, ('task', 'paths', 'reload'), where)
    for key in ('task', 'paths'):
        if key not in spec:
            raise ConfigParseError(f"{where} missing required field '{key}'")
    if not isinstance(spec['task'], str):
        raise ConfigParseError(f"{where}: 'task' must be a string")
    reload = spec.get('reload', False)
    if not isinstance(reload, bool):
        raise ConfigParseError(f"{where}: 'reload' must be a boolean")
    return WatchRoot(spec['task'], _str_list(spec['paths'], f"{where}: 'paths'"), reload)


def _validate_server(spec: Dict[str, Any]) -> ServerConfig:
    _check_keys(spec, ('command', 'watch', 'task', 'delay'), "'server'")
    if 'command' not in spec:
        raise ConfigParseError("'server' missing required field 'command'")
    if not isinstance(spec['command'], str):
        raise ConfigParseError("'server': 'command' must be a string")
    result = ServerConfig(command=spec['command'])
    if 'watch' in spec:
        result.watch = _str_list(spec['watch'], "'server': 'watch'")
    if spec.get('task') is not None:
        if not isinstance(spec['task'], str):
            raise ConfigParseError("'server': 'task' must be a string")
        result.task = spec['task']
    if 'delay' in spec:
        delay = spec['delay']
        if not isinstance(delay, (int, float)) or isinstance(delay, bool) or delay < 0:
            raise ConfigParseError("'server': 'delay' must be a non-negative number")
        result.delay = float(delay)
    return result
