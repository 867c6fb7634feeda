"""Command line entry point.

Usage:
    assetpipe [options] [command]

Commands:
    build[:target]   development tree (target: html, templates, styles, ...)
    serve            build, then watch, live-reload and run the dev server
    test             run the test task
    dist             production tree, fingerprinted (default)
    clean[:target]   remove build outputs (target: build, dist)

Exit codes: 0 success, 1 build failure, 2 usage error.
"""

import argparse
import sys
import time
from typing import Any, List, Optional, Tuple

from .config import Pipeline, load_pipeline
from .engine import BuildEngine
from .exceptions import AssetPipeError, UnknownTargetError
from .fingerprint import FingerprintPass
from .reporter import Reporter
from .settings import ENVIRONMENTS, Settings, load_settings
from .staleness import StalenessStore

COMMANDS = ('build', 'serve', 'test', 'dist', 'clean')
TARGETED = ('build', 'clean')

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='assetpipe',
        description='Build, watch and fingerprint front-end assets',
    )
    parser.add_argument(
        'command',
        nargs='?',
        default='dist',
        help='build[:target], serve, test, dist or clean[:target] (default: dist)',
    )
    parser.add_argument(
        '-f', '--config',
        default=None,
        help='pipeline file (default: assetpipe.yaml, else the built-in pipeline)',
    )
    parser.add_argument(
        '-C', '--directory',
        default='.',
        help='project directory (default: current directory)',
    )
    parser.add_argument('--port', type=int, default=None,
                        help='dev server port (default: $PORT or 9400)')
    parser.add_argument('--livereload-port', type=int, default=None,
                        help='live-reload port (default: $LIVERELOAD_PORT or 31452)')
    parser.add_argument('--env', choices=ENVIRONMENTS, default=None,
                        help='environment (default: $ASSETPIPE_ENV or development)')
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true',
                           help='report skipped tasks and reloads')
    verbosity.add_argument('-q', '--quiet', action='store_true',
                           help='report errors only')
    parser.add_argument('--dry-run', action='store_true',
                        help='print the resolved plan without running it')
    return parser


def split_command(value: str) -> Tuple[str, Optional[str]]:
    """"build:styles" -> ("build", "styles").

    Raises:
        UnknownTargetError: unknown command, or a target on a command without targets
    """
    command, _, target = value.partition(':')
    if command not in COMMANDS:
        raise UnknownTargetError('assetpipe', value, COMMANDS)
    if target and command not in TARGETED:
        raise UnknownTargetError(command, target)
    return command, target or None


def task_for(pipeline: Pipeline, command: str, target: Optional[str]) -> str:
    """Root task of a build/test/dist command."""
    name = f"{command}:{target}" if target else command
    if name not in pipeline.graph:
        valid = pipeline.config.targets(command) if target else ()
        raise UnknownTargetError(command, target or command, valid)
    return name


def clean_paths(pipeline: Pipeline, target: Optional[str]) -> List[str]:
    clean = pipeline.config.clean
    if target is None:
        return [p for paths in clean.values() for p in paths]
    if target not in clean:
        raise UnknownTargetError('clean', target, clean)
    return list(clean[target])


def make_engine(pipeline: Pipeline, reporter: Reporter) -> BuildEngine:
    store = StalenessStore()
    if pipeline.config.state_file:
        store = StalenessStore(pipeline.base_path / pipeline.config.state_file)
        store.load()
    return BuildEngine(pipeline.registry, pipeline.graph, pipeline.base_path,
                       store=store, reporter=reporter)


def print_plan(engine: BuildEngine, task: str, reporter: Reporter) -> None:
    plan = engine.plan(task)
    reporter.info(f"Plan for '{task}' ({len(plan.tasks)} task(s)):", level=0)
    for step in plan.steps:
        reporter.info(f"  {step}", level=0)


def run_dist(pipeline: Pipeline, engine: BuildEngine, reporter: Reporter) -> None:
    engine.run('dist')
    fp = pipeline.config.fingerprint
    result = FingerprintPass(
        pipeline.base_path / fp.root, fp.files, rewrite=fp.rewrite,
        length=fp.length, reporter=reporter,
    ).run()
    reporter.info(f"fingerprinted {len(result.reference_map)} file(s), "
                  f"rewrote {len(result.rewritten)}")


def make_watchers(pipeline: Pipeline, engine: BuildEngine, settings: Settings,
                  reporter: Reporter, notify=None) -> List[Tuple[Any, Any]]:
    """One (coordinator, observer) pair per watched root.

    The first pair rebuilds the watch task from the source directory and
    sends reload notifications; the others come from 'watch: roots'.
    """
    from .watch import SourceObserver, WatchCoordinator

    config = pipeline.config
    server_config = config.server
    coordinator = WatchCoordinator(
        engine, config.watch.task,
        notify=notify,
        reporter=reporter,
        debounce=settings.debounce,
        lint_task=server_config.task if server_config else None,
    )
    watchers = [(coordinator, SourceObserver(
        pipeline.base_path, [config.source_dir], coordinator.on_change))]
    for root in config.watch.roots:
        coordinator = WatchCoordinator(
            engine, root.task,
            notify=notify if root.reload else None,
            reporter=reporter,
            debounce=settings.debounce,
        )
        watchers.append((coordinator, SourceObserver.for_patterns(
            pipeline.base_path, root.paths, coordinator.on_change)))
    return watchers


def serve(pipeline: Pipeline, engine: BuildEngine, settings: Settings,
          reporter: Reporter) -> None:
    """Full build, then rebuild and live-reload on change until interrupted."""
    from .watch import DevServer, LiveReloadServer, ReloadHub

    config = pipeline.config
    server_config = config.server
    engine.run(config.watch.task)

    hub = ReloadHub(config.watch.served_root, reporter=reporter)
    livereload = LiveReloadServer(hub, port=settings.livereload_port)
    watchers = make_watchers(pipeline, engine, settings, reporter, notify=livereload.notify)
    server = None
    if server_config is not None:
        server = DevServer(
            server_config.command, pipeline.base_path,
            port=settings.port,
            livereload_port=settings.livereload_port,
            environment=settings.environment,
            watch=server_config.watch,
            delay=server_config.delay,
            reporter=reporter,
        )
        server.add_listener(watchers[0][0].on_server_restarted)

    livereload.start()
    for _, observer in watchers:
        observer.start()
    if server is not None:
        server.start()
    reporter.info(f"watching {config.source_dir}/, "
                  f"livereload on port {settings.livereload_port}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        for coordinator, observer in watchers:
            observer.stop()
            coordinator.stop()
        if server is not None:
            server.stop()
        livereload.stop()


def main(args: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the exit code."""
    parser = make_parser()
    parsed = parser.parse_args(args)
    reporter = Reporter(2 if parsed.verbose else 0 if parsed.quiet else 1)

    try:
        command, target = split_command(parsed.command)
        pipeline = load_pipeline(parsed.config, parsed.directory)
        settings = load_settings(
            {
                'base_path': pipeline.base_path,
                'config_path': pipeline.config.path,
                'port': parsed.port,
                'livereload_port': parsed.livereload_port,
                'environment': parsed.env,
                'verbosity': reporter.verbosity,
                'dry_run': parsed.dry_run,
            },
            debounce=pipeline.config.watch.debounce,
        )
        engine = make_engine(pipeline, reporter)

        if command == 'clean':
            paths = clean_paths(pipeline, target)
            if settings.dry_run:
                reporter.info("Would remove: " + ", ".join(paths), level=0)
                return EXIT_OK
            for path in engine.clean(paths):
                reporter.info(f"removed {path}")
            engine.store.save()
            return EXIT_OK

        root = pipeline.config.watch.task if command == 'serve' else task_for(
            pipeline, command, target)
        if settings.dry_run:
            print_plan(engine, root, reporter)
            return EXIT_OK

        if command == 'dist':
            run_dist(pipeline, engine, reporter)
        elif command == 'serve':
            serve(pipeline, engine, settings, reporter)
        else:
            engine.run(root)
        return EXIT_OK

    except UnknownTargetError as e:
        reporter.error(str(e))
        return EXIT_USAGE
    except AssetPipeError as e:
        reporter.failure(e)
        return EXIT_FAILURE
    except OSError as e:
        reporter.error(str(e))
        return EXIT_FAILURE


if __name__ == '__main__':
    sys.exit(main())
