"""Shared fixtures: a small front-end project built with Python transforms."""

import os
import re
from pathlib import Path

import pytest

from assetpipe.engine import BuildEngine
from assetpipe.graph import TaskGraph
from assetpipe.registry import OutputSpec, TransformRegistry
from assetpipe.reporter import Reporter

SOURCE_MTIME = 1000.0

_IMPORT_RE = re.compile(r'@import "(\w+)";\n?')


class Project:
    """A project directory plus an engine wired to stand-in transforms.

    The "less" transform inlines @import "name"; statements from
    app/styles/, so changing an imported file changes the compiled output
    of the importing one.
    """

    def __init__(self, base: Path):
        self.base = base
        self.calls = []

    def write(self, rel, content, mtime=None):
        path = self.base / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    def read(self, rel):
        return (self.base / rel).read_text()

    def exists(self, rel):
        return (self.base / rel).exists()

    def touch(self, rel, mtime):
        os.utime(self.base / rel, (mtime, mtime))

    def _tracked(self, name, fn):
        def wrapper(assets, options):
            self.calls.append(name)
            return fn(assets, options)
        return wrapper

    def compile_less(self, assets, options):
        text = assets[0].text
        if 'ERROR' in text:
            raise ValueError(f"{assets[0].path}: parse error")

        def include(match):
            return (self.base / 'app' / 'styles' / f"{match.group(1)}.less").read_text()
        return _IMPORT_RE.sub(include, text)

    def make_registry(self):
        registry = TransformRegistry()
        registry.register(
            'html', ['app/*.html'], OutputSpec(dest='build', cwd='app'),
            self._tracked('html', lambda assets, options: assets[0].content))
        registry.register(
            'less', ['app/styles/{,*/}*.less'],
            OutputSpec(dest='build/styles', cwd='app/styles', ext='.css'),
            self._tracked('less', self.compile_less),
            sources=['app/styles/main.less'])
        registry.register(
            'prefix', ['build/styles/*.css'],
            OutputSpec(dest='build/styles', cwd='build/styles'),
            self._tracked('prefix', lambda assets, options: "/* prefixed */\n" + assets[0].text))
        registry.register(
            'lint', ['app/scripts/*.js'], OutputSpec(),
            self._tracked('lint', lambda assets, options: None))
        registry.register(
            'scripts', ['app/scripts/*.js'], OutputSpec(dest='build', cwd='app'),
            self._tracked('scripts', lambda assets, options: assets[0].content))
        registry.freeze()
        return registry

    def make_graph(self, registry):
        graph = TaskGraph(registry)
        graph.define_task('build:html', ['html'])
        graph.define_task('build:styles', ['less', 'prefix'])
        graph.define_task('build:scripts', ['lint', 'scripts'])
        graph.define_task('build', [
            {'clean': ['build']},
            '@build:html',
            '@build:styles',
            '@build:scripts',
        ])
        return graph

    def make_engine(self, **kwargs):
        registry = self.make_registry()
        kwargs.setdefault('reporter', Reporter(verbosity=0))
        return BuildEngine(registry, self.make_graph(registry), self.base, **kwargs)


@pytest.fixture
def project(tmp_path):
    p = Project(tmp_path.resolve())
    p.write('app/index.html', '<html><body>hello</body></html>\n', SOURCE_MTIME)
    p.write('app/styles/main.less', '@import "vars";\nbody { color: @color; }\n', SOURCE_MTIME)
    p.write('app/styles/vars.less', '@color: red;\n', SOURCE_MTIME)
    p.write('app/scripts/app.js', 'var app = 1;\n', SOURCE_MTIME)
    return p
