"""Tests for building pipelines from pipeline files."""

import pytest

from assetpipe.config import (
    CONFIG_NAME, DEFAULT_CONFIG, build_pipeline, find_config, load_pipeline,
    parse_config_string,
)
from assetpipe.exceptions import (
    ConfigurationError, CyclicDependencyError, DuplicateNameError, OptionsError,
    UnknownTaskError, UnknownTransformError,
)
from assetpipe.registry import OutputMode
from assetpipe.transforms import CommandAction, CommandOptions


def build(content, base_path):
    return build_pipeline(parse_config_string(content), base_path)


class TestDefaultPipeline:
    """The bundled default pipeline."""

    def test_loads(self, tmp_path):
        pipeline = load_pipeline(base_path=tmp_path)
        assert pipeline.config.path == DEFAULT_CONFIG
        assert pipeline.registry.frozen
        assert pipeline.base_path == tmp_path.resolve()

    def test_build_plan(self, tmp_path):
        pipeline = load_pipeline(base_path=tmp_path)
        plan = pipeline.graph.resolve('build')
        assert plan.tasks == [
            'build:html', 'build:templates', 'build:styles', 'build:scripts',
            'build:images', 'build:fonts', 'build:server', 'build',
        ]
        assert [s.name for s in plan.steps_for('build:styles')] == [
            'recess', 'less', 'autoprefixer']

    def test_dist_plan(self, tmp_path):
        plan = load_pipeline(base_path=tmp_path).graph.resolve('dist')
        assert plan.tasks[-4:] == ['build', 'test', 'dist:images', 'dist']
        assert plan.steps[0].name == 'clean(dist, .tmp)'

    def test_test_files_watched(self, tmp_path):
        roots = load_pipeline(base_path=tmp_path).config.watch.roots
        assert [(r.task, r.paths, r.reload) for r in roots] == [
            ('test', ['test/**/*.js'], False)]

    def test_imported_stylesheets_not_compiled(self, tmp_path):
        less = load_pipeline(base_path=tmp_path).registry.resolve('less')
        inputs = ['app/styles/main.less', 'app/styles/vars.less']
        assert less.declared_outputs(inputs) == ['build/styles/main.css']

    def test_routing(self, tmp_path):
        registry = load_pipeline(base_path=tmp_path).registry
        assert registry.matches('app/styles/vars.less') == ['recess', 'less']
        assert registry.matches('app/styles/theme/dark.less') == ['less']
        assert registry.matches('app/scripts/app.js') == ['jshint', 'scripts']
        assert registry.matches('app/views/admin.html') == ['templates']
        assert registry.matches('README.md') == []

    def test_transform_types(self, tmp_path):
        registry = load_pipeline(base_path=tmp_path).registry
        less = registry.resolve('less')
        assert isinstance(less.fn, CommandAction)
        assert less.fn.base_path == tmp_path.resolve()
        assert less.output.mode == OutputMode.EACH
        assert registry.resolve('recess').output.mode == OutputMode.NONE
        assert registry.resolve('templates').output.concat_target() == 'build/scripts/views.js'
        assert registry.resolve('blocks').output.mode == OutputMode.MULTI


class TestFindConfig:
    """Tests for find_config."""

    def test_default(self, tmp_path):
        assert find_config(tmp_path) == DEFAULT_CONFIG

    def test_local_file(self, tmp_path):
        (tmp_path / CONFIG_NAME).write_text("tasks: {}\n")
        assert find_config(tmp_path) == tmp_path / CONFIG_NAME

    def test_explicit_relative(self, tmp_path):
        (tmp_path / 'pipelines').mkdir()
        (tmp_path / 'pipelines' / 'ci.yaml').write_text("tasks: {}\n")
        assert find_config(tmp_path, 'pipelines/ci.yaml') == tmp_path / 'pipelines' / 'ci.yaml'

    def test_explicit_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_config(tmp_path, 'nope.yaml')


class TestBuildPipeline:
    """Tests for build_pipeline."""

    def test_minimal(self, tmp_path):
        pipeline = build("""
transforms:
  html: {type: copy, input: "app/*.html", output: {dest: build, cwd: app}}
tasks:
  build: [html]
""", tmp_path)
        assert pipeline.registry.names() == ['html']
        assert pipeline.graph.resolve('build').tasks == ['build']

    def test_command_options(self, tmp_path):
        pipeline = build("""
transforms:
  less:
    type: command
    input: "app/*.less"
    output: {dest: build, cwd: app, ext: .css}
    options: {command: "lessc {source}", env: {NODE_ENV: production}}
tasks:
  build: [less]
""", tmp_path)
        options = pipeline.registry.resolve('less').options
        assert options == CommandOptions(command='lessc {source}', env={'NODE_ENV': 'production'})

    def test_unknown_type(self, tmp_path):
        with pytest.raises(OptionsError, match="unknown transform type 'sass'"):
            build("transforms:\n  css: {type: sass, input: a, output: {dest: b}}\n", tmp_path)

    def test_unknown_option(self, tmp_path):
        with pytest.raises(OptionsError, match="Transform 'less': unknown option 'comand'"):
            build("""
transforms:
  less: {type: command, input: a, output: {dest: b}, options: {comand: lessc}}
""", tmp_path)

    def test_unsupported_mode(self, tmp_path):
        with pytest.raises(ConfigurationError, match="does not support output mode 'concat'"):
            build("""
transforms:
  html: {type: copy, input: a, output: {dest: b, filename: all.html}}
""", tmp_path)

    def test_capture_none_with_dest(self, tmp_path):
        with pytest.raises(ConfigurationError, match="'capture: none'"):
            build("""
transforms:
  lint: {type: command, input: a, output: {dest: b}, options: {command: x, capture: none}}
""", tmp_path)

    def test_capture_stdout_without_dest(self, tmp_path):
        with pytest.raises(ConfigurationError, match="needs an output 'dest'"):
            build("transforms:\n  lint: {type: command, input: a, options: {command: x}}\n",
                  tmp_path)

    def test_unknown_transform_in_task(self, tmp_path):
        with pytest.raises(UnknownTransformError):
            build("tasks:\n  build: [html]\n", tmp_path)

    def test_unknown_task_reference(self, tmp_path):
        with pytest.raises(UnknownTaskError):
            build("tasks:\n  build: ['@build:html']\n", tmp_path)

    def test_cycle(self, tmp_path):
        with pytest.raises(CyclicDependencyError):
            build("tasks:\n  a: ['@b']\n  b: ['@a']\n", tmp_path)

    def test_graph_rejects_redefinition(self, tmp_path):
        config = parse_config_string("tasks:\n  build: []\n")
        pipeline = build_pipeline(config, tmp_path)
        with pytest.raises(DuplicateNameError):
            pipeline.graph.define_task('build', [])

    def test_unknown_watch_task(self, tmp_path):
        with pytest.raises(ConfigurationError, match="'watch': unknown task 'dev'"):
            build("tasks:\n  build: []\nwatch: {task: dev}\n", tmp_path)

    def test_unknown_watch_root_task(self, tmp_path):
        with pytest.raises(ConfigurationError, match="'watch': unknown task 'spec'"):
            build("tasks:\n  build: []\nwatch: {roots: [{task: spec, paths: x}]}\n", tmp_path)

    def test_unknown_server_task(self, tmp_path):
        with pytest.raises(ConfigurationError, match="'server': unknown task 'lint'"):
            build("tasks:\n  build: []\nserver: {command: x, task: lint}\n", tmp_path)
