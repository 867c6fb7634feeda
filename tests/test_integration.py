"""Integration tests: a pipeline file, real shell commands and watch mode.

These tests validate end-to-end behavior with:
- Pipeline loaded from assetpipe.yaml
- Command transforms running real shell commands
- In-place transforms rewriting earlier outputs
- Incremental rebuilds driven by the watch coordinator
- Reload notifications reaching live-reload clients
- Staleness records persisted between runs
"""

import os
import threading
import time
from pathlib import Path

import pytest

from assetpipe.cli import make_engine
from assetpipe.config import load_pipeline
from assetpipe.exceptions import TransformError
from assetpipe.reporter import Reporter
from assetpipe.watch import ReloadHub, SourceObserver, WatchCoordinator
from assetpipe.watch.livereload import reload_message

PIPELINE = """
config:
  source: app
  state: .assetpipe/state.json
transforms:
  html: {type: copy, input: "app/*.html", output: {dest: build, cwd: app}}
  templates:
    type: templates
    input: "app/views/*.html"
    output: {dest: build/scripts, filename: views.js}
    options: {module: dashkiosk, cwd: app}
  less:
    type: command
    input: "app/styles/{,*/}*.less"
    sources: "app/styles/main.less"
    output: {dest: build/styles, cwd: app/styles, ext: .css}
    options: {command: "cat app/styles/vars.less {source}"}
  autoprefixer:
    type: command
    input: "build/styles/*.css"
    output: {dest: build/styles, cwd: build/styles}
    options:
      command: "(echo '/* prefixed */'; cat {source}) > {output}"
      capture: file
  jshint:
    type: command
    input: "app/scripts/*.js"
    options: {command: "! grep -l debugger {sources}", capture: none}
  scripts: {type: copy, input: "app/scripts/*.js", output: {dest: build, cwd: app}}
tasks:
  build:html: [html]
  build:templates: [templates]
  build:styles: [less, autoprefixer]
  build:scripts: [jshint, scripts]
  build:
    - clean: [build]
    - "@build:html"
    - "@build:templates"
    - "@build:styles"
    - "@build:scripts"
watch:
  task: build
  served_root: build
"""


class Workspace:
    """Test workspace with convenient file operations."""

    def __init__(self, tmp_path: Path):
        self.root = tmp_path.resolve()

    def create_file(self, path: str, content: str = '') -> Path:
        full_path = self.root / path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content)
        return full_path

    def read_file(self, path: str) -> str:
        return (self.root / path).read_text()

    def exists(self, path: str) -> bool:
        return (self.root / path).exists()

    def engine(self):
        pipeline = load_pipeline(base_path=self.root)
        return make_engine(pipeline, Reporter(verbosity=0))


class RecordingClient:
    """A live-reload client that remembers what it was sent."""

    def __init__(self):
        self.messages = []
        self.received = threading.Event()

    def send(self, message):
        self.messages.append(message)
        self.received.set()


@pytest.fixture
def ws(tmp_path):
    ws = Workspace(tmp_path)
    ws.create_file('assetpipe.yaml', PIPELINE)
    ws.create_file('app/index.html', '<html><body ng-app="dashkiosk"></body></html>\n')
    ws.create_file('app/views/admin.html', '<h1>Admin</h1>')
    ws.create_file('app/styles/main.less', 'body { color: @color; }\n')
    ws.create_file('app/styles/vars.less', '@color: red;\n')
    ws.create_file('app/scripts/app.js', 'var app = 1;\n')
    return ws


class TestFullBuild:
    """Building the development tree from the pipeline file."""

    def test_outputs(self, ws):
        result = ws.engine().run('build')

        assert result.changed_outputs == {
            'build/index.html',
            'build/scripts/views.js',
            'build/styles/main.css',
            'build/scripts/app.js',
        }
        assert ws.read_file('build/styles/main.css') == (
            '/* prefixed */\n@color: red;\nbody { color: @color; }\n')
        assert "$templateCache.put('views/admin.html'," in ws.read_file('build/scripts/views.js')
        # only main.less is a source, vars.less is compiled into it
        assert not ws.exists('build/styles/vars.css')

    def test_state_persists_between_runs(self, ws):
        ws.engine().run('build')
        assert ws.exists('.assetpipe/state.json')

        engine = ws.engine()
        assert engine.store.get('build/index.html') is not None
        assert engine.stale_inputs('build') == set()

        changed = ws.create_file('app/scripts/app.js', 'var app = 2;\n')
        later = changed.stat().st_mtime + 10
        os.utime(changed, (later, later))
        assert 'app/scripts/app.js' in ws.engine().stale_inputs('build:scripts')

    def test_lint_failure_names_task(self, ws):
        ws.create_file('app/scripts/app.js', 'debugger;\n')
        with pytest.raises(TransformError) as exc_info:
            ws.engine().run('build')
        assert exc_info.value.task == 'build:scripts'
        assert exc_info.value.transform == 'jshint'


class TestWatch:
    """Incremental rebuilds and reload notifications."""

    def make_coordinator(self, engine):
        hub = ReloadHub('build', reporter=Reporter(verbosity=0))
        client = RecordingClient()
        hub.add(client)
        coordinator = WatchCoordinator(engine, 'build', notify=hub.notify, debounce=0.05)
        return coordinator, client

    def test_imported_stylesheet_change(self, ws):
        engine = ws.engine()
        engine.run('build')
        coordinator, client = self.make_coordinator(engine)

        ws.create_file('app/styles/vars.less', '@color: blue;\n')
        coordinator.on_change(ws.root / 'app' / 'styles' / 'vars.less')
        coordinator.flush()

        assert coordinator.last_result.changed_outputs == {'build/styles/main.css'}
        assert client.messages == [reload_message('/styles/main.css')]
        assert ws.read_file('build/styles/main.css') == (
            '/* prefixed */\n@color: blue;\nbody { color: @color; }\n')

    def test_template_change(self, ws):
        engine = ws.engine()
        engine.run('build')
        coordinator, client = self.make_coordinator(engine)

        ws.create_file('app/views/admin.html', '<h1>Administration</h1>')
        coordinator.on_change('app/views/admin.html')
        coordinator.flush()

        assert client.messages == [reload_message('/scripts/views.js')]
        assert 'Administration' in ws.read_file('build/scripts/views.js')

    def test_failed_pass_keeps_last_good_output(self, ws):
        engine = ws.engine()
        engine.run('build')
        coordinator, client = self.make_coordinator(engine)

        ws.create_file('app/scripts/app.js', 'debugger;\n')
        coordinator.on_change('app/scripts/app.js')
        coordinator.flush()

        assert client.messages == []
        assert ws.read_file('build/scripts/app.js') == 'var app = 1;\n'

    def test_observer_drives_rebuild(self, ws):
        engine = ws.engine()
        engine.run('build')
        coordinator, client = self.make_coordinator(engine)
        observer = SourceObserver(ws.root, ['app'], coordinator.on_change)
        observer.start()
        try:
            # give the observer a moment to install its watches
            time.sleep(0.2)
            ws.create_file('app/index.html', '<html>changed</html>\n')
            assert client.received.wait(timeout=10)
            coordinator.flush()
        finally:
            observer.stop()
            coordinator.stop()

        assert reload_message('/index.html') in client.messages
        assert ws.read_file('build/index.html') == '<html>changed</html>\n'
