"""HTML build blocks.

Markup marks groups of scripts or stylesheets that make up one production
file:

    <!-- build:js scripts/app.js -->
    <script src="scripts/app.js"></script>
    <script src="scripts/controllers.js"></script>
    <!-- endbuild -->

For every markup input, the 'blocks' transform concatenates the files a block
references into the block's target and replaces the block with a single tag
pointing at it. Results are returned as {path: bytes} (multi output mode):
the rewritten markup under its path relative to cwd, and every concatenated
target relative to the markup file that declared it.

Optionally each block type is piped through an external command reading the
concatenated file on stdin (e.g. a minifier):

    process:
      js: "uglifyjs --compress"
      css: "cleancss"
"""

import posixpath
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from ..assets import Asset
from ..exceptions import OptionsError
from .base import Options

_BLOCK_RE = re.compile(
    r'(?P<indent>[ \t]*)<!--\s*build:(?P<type>\w+)\s+(?P<target>\S+)\s*-->'
    r'(?P<body>.*?)<!--\s*endbuild\s*-->',
    re.DOTALL)
_SCRIPT_RE = re.compile(r'<script\b[^>]*\bsrc\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)
_LINK_RE = re.compile(r'<link\b[^>]*\bhref\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)

BLOCK_TYPES = {
    'js': (_SCRIPT_RE, '<script src="{target}"></script>', b";\n"),
    'css': (_LINK_RE, '<link rel="stylesheet" href="{target}">', b"\n"),
}


@dataclass
class BlocksOptions(Options):
    """Options of the 'blocks' transform type.

    cwd:     directory the markup inputs and their references live in
    process: block type -> shell command filtering the concatenated file
    """
    cwd: str = "build"
    process: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        for block_type in self.process:
            if block_type not in BLOCK_TYPES:
                raise OptionsError(
                    f"option 'process': unknown block type '{block_type}'. "
                    f"Valid types: {', '.join(sorted(BLOCK_TYPES))}")


class BuildBlocks:
    """Leaf function of the 'blocks' transform."""

    def __init__(self, options: BlocksOptions, base_path: Path):
        self.options = options
        self.base_path = Path(base_path)

    @property
    def root(self) -> Path:
        return self.base_path / self.options.cwd

    def _relative(self, asset: Asset) -> str:
        return posixpath.relpath(asset.path, self.options.cwd.rstrip('/') or '.')

    def _reference_path(self, markup_dir: str, reference: str) -> str:
        if reference.startswith('/'):
            return posixpath.normpath(reference.lstrip('/'))
        return posixpath.normpath(posixpath.join(markup_dir, reference))

    def _concat(self, block_type: str, references: List[str]) -> bytes:
        separator = BLOCK_TYPES[block_type][2]
        parts = [(self.root / ref).read_bytes() for ref in references]
        content = separator.join(parts)
        command = self.options.process.get(block_type)
        if command:
            result = subprocess.run(
                command, shell=True, cwd=self.base_path, input=content,
                capture_output=True)
            if result.returncode != 0:
                raise subprocess.CalledProcessError(
                    result.returncode, command, result.stdout, result.stderr)
            content = result.stdout
        return content

    def process(self, asset: Asset, outputs: Dict[str, bytes]) -> str:
        """Return the markup with its blocks replaced; add targets to outputs.

        Raises:
            ValueError: unsupported block type
            OSError: a referenced file cannot be read
        """
        rel = self._relative(asset)
        markup_dir = posixpath.dirname(rel)

        def replace(match):
            block_type = match.group('type')
            if block_type not in BLOCK_TYPES:
                raise ValueError(
                    f"{asset.path}: unsupported build block type '{block_type}'")
            regex, tag, _ = BLOCK_TYPES[block_type]
            target = match.group('target')
            references = [
                self._reference_path(markup_dir, ref)
                for ref in regex.findall(match.group('body'))
            ]
            outputs[self._reference_path(markup_dir, target)] = \
                self._concat(block_type, references)
            return match.group('indent') + tag.format(target=target)

        return _BLOCK_RE.sub(replace, asset.text)

    def __call__(self, assets: List[Asset], options=None) -> Dict[str, bytes]:
        outputs: Dict[str, bytes] = {}
        for asset in assets:
            html = self.process(asset, outputs)
            outputs[self._relative(asset)] = html.encode('utf-8')
        return outputs


def make_blocks(options: BlocksOptions, base_path: Path) -> BuildBlocks:
    return BuildBlocks(options, base_path)
