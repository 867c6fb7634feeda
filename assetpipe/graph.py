"""Task graph: named, ordered compositions of transforms and sub-tasks.

A Task is a list of steps. Each step is one of:
- TransformStep: invoke a registered transform
- TaskRef: run another task (resolved once per build pass)
- CleanStep: remove output paths and forget their staleness records

Tasks must form a DAG. Cycles are rejected as soon as a definition closes
one. References to tasks that are not defined yet are allowed when defining,
so tasks may be declared in any order; they are checked by resolve() and
validate().

Example:
    graph = TaskGraph()
    graph.define_task("build:styles", ["recess", "less", "autoprefixer"])
    graph.define_task("build", [CleanStep(("build",)), "@build:styles"])
    plan = graph.resolve("build")
    plan.tasks   # ["build:styles", "build"]
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import (
    ConfigurationError, CyclicDependencyError, DuplicateNameError,
    UnknownTaskError, UnknownTransformError,
)


class Step:
    """Base class of task steps."""


@dataclass(frozen=True)
class TransformStep(Step):
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class TaskRef(Step):
    name: str

    def __str__(self):
        return f"@{self.name}"


@dataclass(frozen=True)
class CleanStep(Step):
    paths: Tuple[str, ...]

    def __post_init__(self):
        if isinstance(self.paths, str):
            object.__setattr__(self, 'paths', (self.paths,))
        else:
            object.__setattr__(self, 'paths', tuple(self.paths))

    @property
    def name(self) -> str:
        return "clean(" + ", ".join(self.paths) + ")"

    def __str__(self):
        return self.name


StepLike = Union[Step, str, dict]


def to_step(value: StepLike, task_name: str = '<unknown>') -> Step:
    """Convert step shorthand into a Step.

    - "name"        -> TransformStep("name")
    - "@name"       -> TaskRef("name")
    - {"clean": [...]} -> CleanStep(...)
    """
    if isinstance(value, Step):
        return value
    if isinstance(value, str):
        if not value or value == '@':
            raise ConfigurationError(f"Task '{task_name}': empty step name")
        if value.startswith('@'):
            return TaskRef(value[1:])
        return TransformStep(value)
    if isinstance(value, dict) and set(value) == {'clean'}:
        return CleanStep(value['clean'])
    raise ConfigurationError(
        f"Task '{task_name}': invalid step {value!r}. "
        "Use 'transform', '@task' or {clean: [paths]}")


@dataclass
class Task:
    """A named ordered sequence of steps.

    @ivar parallel: (bool) transform steps may run concurrently when their
                    inputs and outputs do not overlap
    """
    name: str
    steps: List[Step]
    parallel: bool = False
    doc: Optional[str] = None

    @property
    def task_refs(self) -> List[str]:
        return [s.name for s in self.steps if isinstance(s, TaskRef)]

    @property
    def transforms(self) -> List[str]:
        return [s.name for s in self.steps if isinstance(s, TransformStep)]

    def __repr__(self):
        return f"<Task: {self.name}>"


@dataclass(frozen=True)
class PlanStep:
    """A concrete step in a resolved plan, with the task that owns it."""
    task: str
    step: Step

    @property
    def name(self) -> str:
        return self.step.name

    @property
    def is_transform(self) -> bool:
        return isinstance(self.step, TransformStep)

    @property
    def is_clean(self) -> bool:
        return isinstance(self.step, CleanStep)

    def __str__(self):
        return f"{self.task} > {self.step}"


@dataclass
class BuildPlan:
    """Resolved execution order for one root task.

    Attributes:
        root: requested task name
        tasks: every reachable task exactly once, each after the tasks it
               references
        steps: transform/clean steps in execution order
    """
    root: str
    tasks: List[str] = field(default_factory=list)
    steps: List[PlanStep] = field(default_factory=list)
    task_defs: Dict[str, Task] = field(default_factory=dict, repr=False)

    def steps_for(self, task_name: str) -> List[PlanStep]:
        return [s for s in self.steps if s.task == task_name]

    def tasks_containing(self, transform_names) -> List[str]:
        """Tasks that directly invoke any of the given transforms, in plan order."""
        wanted = set(transform_names)
        return [
            name for name in self.tasks
            if any(t in wanted for t in self.task_defs[name].transforms)
        ]

    def transform_steps(self) -> List[PlanStep]:
        return [s for s in self.steps if s.is_transform]


_WHITE, _GREY, _BLACK = 0, 1, 2


class TaskGraph:
    """Directed acyclic graph of named tasks.

    If a registry is given, transform steps are checked against it when a
    plan is resolved.
    """

    def __init__(self, registry=None):
        self.registry = registry
        self._tasks: Dict[str, Task] = {}

    def define_task(self, name: str, steps: Sequence[StepLike],
                    parallel: bool = False, doc: Optional[str] = None) -> Task:
        """Add a task.

        Raises:
            DuplicateNameError: a task with this name exists
            CyclicDependencyError: the new task closes a reference cycle
        """
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"task name must be a non-empty string, got {name!r}")
        if name in self._tasks:
            raise DuplicateNameError("task", name)
        task = Task(name, [to_step(s, name) for s in steps], parallel=parallel, doc=doc)
        self._tasks[name] = task
        try:
            self._check_cycles(name)
        except CyclicDependencyError:
            del self._tasks[name]
            raise
        return task

    def _check_cycles(self, start: str) -> None:
        """DFS from start over defined tasks; undefined references are skipped."""
        colour: Dict[str, int] = {}
        path: List[str] = []

        def visit(name):
            colour[name] = _GREY
            path.append(name)
            for ref in self._tasks[name].task_refs:
                if ref not in self._tasks:
                    continue
                state = colour.get(ref, _WHITE)
                if state == _GREY:
                    raise CyclicDependencyError(path[path.index(ref):] + [ref])
                if state == _WHITE:
                    visit(ref)
            path.pop()
            colour[name] = _BLACK

        visit(start)

    def resolve(self, root: str) -> BuildPlan:
        """Resolve root into a BuildPlan.

        Sub-task steps are expanded inline where they are first referenced;
        later references to an already resolved task are skipped.

        Raises:
            UnknownTaskError: root or a referenced task is undefined
            UnknownTransformError: a step names an unregistered transform
            CyclicDependencyError: references form a cycle
        """
        if root not in self._tasks:
            raise UnknownTaskError(root)
        plan = BuildPlan(root=root)
        colour: Dict[str, int] = {}
        path: List[str] = []

        def visit(name, referrer):
            if name not in self._tasks:
                raise UnknownTaskError(name, referrer)
            state = colour.get(name, _WHITE)
            if state == _BLACK:
                return
            if state == _GREY:
                raise CyclicDependencyError(path[path.index(name):] + [name])
            colour[name] = _GREY
            path.append(name)
            task = self._tasks[name]
            for step in task.steps:
                if isinstance(step, TaskRef):
                    visit(step.name, name)
                    continue
                if (isinstance(step, TransformStep) and self.registry is not None
                        and step.name not in self.registry):
                    raise UnknownTransformError(step.name, name)
                plan.steps.append(PlanStep(name, step))
            path.pop()
            colour[name] = _BLACK
            plan.tasks.append(name)
            plan.task_defs[name] = task

        visit(root, None)
        return plan

    def validate(self) -> None:
        """Resolve every task once so configuration errors surface early."""
        for name in self._tasks:
            self.resolve(name)

    def get(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def names(self) -> List[str]:
        return list(self._tasks)

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
