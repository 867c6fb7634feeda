"""Incremental build engine.

BuildEngine.run(root, changed_paths) executes the plan of a root task:

- changed_paths is None: full build, every step runs unconditionally.
- changed_paths is a collection (possibly empty): incremental build. Only
  tasks that directly contain a transform whose inputs match a changed path
  are re-run, with their steps in plan order. Everything else is skipped and
  its outputs are kept. Clean steps never run in an incremental build.

Every executed transform step overwrites the staleness records of its
outputs. The first failing step aborts the pass with a TransformError naming
the task and transform; outputs already written stay in place.

Example:
    engine = BuildEngine(registry, graph, base_path=project_dir)
    engine.run("build")                                   # full build
    result = engine.run("build", {"app/styles/vars.less"})
    result.changed_outputs                                # {"build/styles/main.css"}
"""

import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Union

from .assets import Asset, to_key
from .exceptions import TransformError
from .graph import BuildPlan, PlanStep, TaskGraph
from .registry import Transform, TransformRegistry
from .reporter import Reporter
from .staleness import StalenessRecord, StalenessStore, validation_key


@dataclass
class BuildResult:
    """Result of one build pass."""

    root: str
    """Requested root task."""

    full: bool = True
    """Whether this was a full (non-incremental) build."""

    changed_outputs: Set[str] = field(default_factory=set)
    """Output paths written or overwritten during the pass."""

    executed: List[PlanStep] = field(default_factory=list)
    """Steps that ran, in order (transform and clean steps)."""

    skipped_tasks: List[str] = field(default_factory=list)
    """Tasks of the plan that were not affected by the changed paths."""

    cleaned: List[str] = field(default_factory=list)
    """Paths removed by clean steps."""

    @property
    def invocations(self) -> int:
        """Number of transform invocations."""
        return sum(1 for s in self.executed if s.is_transform)


@dataclass
class _StepOutcome:
    step: PlanStep
    transform: Transform
    inputs: Dict[str, float]
    outputs: Dict[str, bytes]


class BuildEngine:
    """Execute build plans and keep staleness records up to date.

    Only one pass runs at a time; run() blocks while another pass holds
    the engine.
    """

    def __init__(self, registry: TransformRegistry, graph: TaskGraph,
                 base_path: Union[str, Path] = '.',
                 store: Optional[StalenessStore] = None,
                 reporter: Optional[Reporter] = None,
                 max_workers: int = 4):
        self.registry = registry
        self.graph = graph
        self.base_path = Path(base_path).resolve()
        self.store = store if store is not None else StalenessStore()
        self.reporter = reporter if reporter is not None else Reporter()
        self.max_workers = max_workers
        self._pass_lock = threading.Lock()

    def plan(self, root: str) -> BuildPlan:
        return self.graph.resolve(root)

    def normalize(self, paths: Iterable[Union[str, Path]]) -> Set[str]:
        """Project-relative keys for a mix of absolute and relative paths."""
        return {to_key(p, self.base_path) for p in paths}

    def affected_transforms(self, changed_paths: Iterable[str]) -> Set[str]:
        affected: Set[str] = set()
        for path in changed_paths:
            affected.update(self.registry.matches(path))
        return affected

    def affected_tasks(self, plan: BuildPlan, changed_paths: Iterable[str]) -> List[str]:
        """Tasks of plan that directly contain a transform matching a changed path."""
        return plan.tasks_containing(self.affected_transforms(changed_paths))

    def run(self, root: str, changed_paths: Optional[Iterable[Union[str, Path]]] = None
            ) -> BuildResult:
        """Run a full (changed_paths=None) or incremental build of root.

        Raises:
            ConfigurationError / CyclicDependencyError: plan cannot be resolved
            TransformError: a step failed (task and transform are set)
        """
        plan = self.plan(root)
        with self._pass_lock:
            if changed_paths is None:
                result = BuildResult(root=root, full=True)
                steps = list(plan.steps)
            else:
                keys = self.normalize(changed_paths)
                affected = set(self.affected_tasks(plan, keys))
                result = BuildResult(
                    root=root, full=False,
                    skipped_tasks=[t for t in plan.tasks if t not in affected],
                )
                steps = [s for s in plan.steps if s.task in affected and not s.is_clean]
                for name in result.skipped_tasks:
                    self.reporter.task_skipped(name)

            try:
                for batch in self._batches(plan, steps):
                    self._run_batch(batch, result)
            finally:
                self.store.save()
        self.reporter.build_finished(result)
        return result

    def _batches(self, plan: BuildPlan, steps: List[PlanStep]) -> Iterator[List[PlanStep]]:
        """Yield groups of consecutive transform steps of one parallel task.

        Steps are grouped only when neither can read what the other writes
        (judged from input globs and output dests) and their outputs do not
        collide. A group is formed only once the previous one has run, so
        declared outputs reflect files written earlier in the pass.
        """
        pending = list(steps)
        while pending:
            step = pending.pop(0)
            batch = [step]
            outputs = self._parallel_outputs(plan, step)
            if outputs is not None:
                claimed = set(outputs)
                while pending and pending[0].task == step.task:
                    candidate = self.registry.resolve(pending[0].name)
                    candidate_outputs = self._parallel_outputs(plan, pending[0])
                    if candidate_outputs is None:
                        break
                    if not self._independent(batch, candidate, candidate_outputs, claimed):
                        break
                    batch.append(pending.pop(0))
                    claimed.update(candidate_outputs)
            yield batch

    def _parallel_outputs(self, plan: BuildPlan, step: PlanStep) -> Optional[List[str]]:
        """Declared outputs of a step that may share a batch, else None."""
        task = plan.task_defs.get(step.task)
        if not (step.is_transform and task is not None and task.parallel):
            return None
        transform = self.registry.resolve(step.name)
        return transform.declared_outputs(transform.collect(self.base_path))

    def _independent(self, batch, transform, outputs, claimed) -> bool:
        if claimed.intersection(outputs):
            return False
        for other in batch:
            other_transform = self.registry.resolve(other.name)
            if transform.may_read(other_transform) or other_transform.may_read(transform):
                return False
        return True

    def _run_batch(self, batch: List[PlanStep], result: BuildResult) -> None:
        if len(batch) == 1:
            step = batch[0]
            self.reporter.step_started(step)
            if step.is_clean:
                result.cleaned.extend(self.clean(step.step.paths))
                result.executed.append(step)
                return
            try:
                outcome = self._run_transform(step)
            except TransformError as exc:
                exc.task = step.task
                raise
            self._commit(outcome, result)
            return

        for step in batch:
            self.reporter.step_started(step)
        workers = min(self.max_workers, len(batch))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._run_transform, step) for step in batch]
        failure = None
        for step, future in zip(batch, futures):
            try:
                outcome = future.result()
            except TransformError as exc:
                exc.task = step.task
                if failure is None:
                    failure = exc
                continue
            self._commit(outcome, result)
        if failure is not None:
            raise failure

    def _run_transform(self, step: PlanStep) -> _StepOutcome:
        """Read inputs and run the leaf function. Does not touch the store."""
        transform = self.registry.resolve(step.name)
        try:
            assets = [Asset.read(self.base_path, p)
                      for p in transform.collect(self.base_path)]
        except OSError as exc:
            raise TransformError(transform.name, exc, task=step.task) from exc
        outputs = transform.produce(assets)
        return _StepOutcome(
            step=step,
            transform=transform,
            inputs={a.path: a.mtime for a in assets},
            outputs=outputs,
        )

    def _commit(self, outcome: _StepOutcome, result: BuildResult) -> None:
        """Write outputs and overwrite their staleness records."""
        name = outcome.transform.name
        task = outcome.step.task
        written = []
        inputs = dict(outcome.inputs)
        try:
            for path, data in outcome.outputs.items():
                full = self.base_path / path
                full.parent.mkdir(parents=True, exist_ok=True)
                full.write_bytes(data)
                written.append(path)
            # in-place transforms: remember the rewritten file, not the one read
            for path in written:
                if path in inputs:
                    inputs[path] = (self.base_path / path).stat().st_mtime
        except OSError as exc:
            raise TransformError(name, exc, task=task) from exc

        for path in written:
            self.store.record(StalenessRecord(path, name, task, dict(inputs)))
        # per-transform record, kept even when a later step rewrites the outputs
        self.store.record(StalenessRecord(validation_key(name), name, task, inputs))

        result.changed_outputs.update(written)
        result.executed.append(outcome.step)

    def stale_inputs(self, root: str) -> Set[str]:
        """Input paths that changed since the transforms of root last ran.

        A transform that never ran contributes all of its inputs.
        """
        plan = self.plan(root)
        stale: Set[str] = set()
        for step in plan.transform_steps():
            transform = self.registry.resolve(step.name)
            current = {
                path: (self.base_path / path).stat().st_mtime
                for path in transform.collect(self.base_path)
            }
            record = self.store.get(validation_key(transform.name))
            if record is None:
                stale.update(current)
            else:
                stale.update(record.changed_inputs(current))
        return stale

    def clean(self, paths: Iterable[str]) -> List[str]:
        """Remove paths (files or directories) and forget their records."""
        removed = []
        for path in paths:
            key = path.rstrip('/')
            full = self.base_path / key
            if full.is_dir():
                shutil.rmtree(full)
                removed.append(key)
            elif full.exists():
                full.unlink()
                removed.append(key)
            self.store.discard_under(key)
        return removed
