"""External command transform.

Runs a shell command for the inputs of a transform. Variables are injected
in two ways, as format substitutions in the command and as environment
variables:

    {source}   first input path (the only one in 'each' mode)
    {sources}  all input paths, space separated
    {output}   temporary file the command writes to (capture: file)

Example:
    command: "lessc --include-path=app/styles {source}"
    capture: stdout

    With source=app/styles/main.less:
    - Command: lessc --include-path=app/styles app/styles/main.less
    - Env: source=app/styles/main.less, sources=app/styles/main.less

The command runs from the project directory. A non-zero exit status raises
subprocess.CalledProcessError carrying the captured stderr.
"""

import os
import string
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..assets import Asset
from ..exceptions import OptionsError
from .base import Options

CAPTURE_MODES = ('stdout', 'file', 'none')

_VARIABLES = {
    'stdout': {'source', 'sources'},
    'file': {'source', 'sources', 'output'},
    'none': {'source', 'sources'},
}


@dataclass
class CommandOptions(Options):
    """Options of the 'command' transform type.

    capture:
        stdout - the output is what the command prints
        file   - the command writes the output to {output}
        none   - validation only, the output is discarded
    """
    command: str
    capture: str = 'stdout'
    env: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        if self.capture not in CAPTURE_MODES:
            raise OptionsError(
                f"option 'capture' must be one of {', '.join(CAPTURE_MODES)}, "
                f"got '{self.capture}'")
        allowed = _VARIABLES[self.capture]
        for _, name, _, _ in string.Formatter().parse(self.command):
            if name is not None and name not in allowed:
                raise OptionsError(
                    f"Unknown variable '{{{name}}}' in command {self.command!r}. "
                    f"Available variables: {', '.join(sorted(allowed))}")


class CommandAction:
    """Leaf function running a shell command, see module docstring."""

    def __init__(self, options: CommandOptions, base_path: Path):
        self.options = options
        self.base_path = Path(base_path)

    def _build_substitutions(self, assets: List[Asset],
                             output: Optional[str]) -> Dict[str, str]:
        subs = {
            'source': assets[0].path if assets else '',
            'sources': " ".join(a.path for a in assets),
        }
        if output is not None:
            subs['output'] = output
        return subs

    def _build_environment(self, subs: Dict[str, str]) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.options.env)
        for key, value in subs.items():
            env[key] = str(value)
        return env

    def run(self, assets: List[Asset], output: Optional[str] = None
            ) -> subprocess.CompletedProcess:
        subs = self._build_substitutions(assets, output)
        cmd = self.options.command.format(**subs)
        result = subprocess.run(
            cmd,
            shell=True,
            cwd=self.base_path,
            env=self._build_environment(subs),
            capture_output=True,
        )
        if result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, cmd, result.stdout, result.stderr)
        return result

    def __call__(self, assets: List[Asset], options=None) -> Optional[bytes]:
        capture = self.options.capture
        if capture == 'stdout':
            return self.run(assets).stdout
        if capture == 'none':
            self.run(assets)
            return None

        fd, output = tempfile.mkstemp(prefix='assetpipe-')
        os.close(fd)
        try:
            self.run(assets, output)
            return Path(output).read_bytes()
        finally:
            os.unlink(output)

    def __repr__(self) -> str:
        return f"CommandAction({self.options.command!r})"


def make_command(options: CommandOptions, base_path: Path) -> CommandAction:
    return CommandAction(options, base_path)
