"""Tests for the task graph."""

import pytest

from assetpipe.exceptions import (
    ConfigurationError, CyclicDependencyError, DuplicateNameError,
    UnknownTaskError, UnknownTransformError,
)
from assetpipe.graph import CleanStep, TaskGraph, TaskRef, TransformStep, to_step
from assetpipe.registry import OutputSpec, TransformRegistry


def step_names(plan):
    return [(s.task, str(s.step)) for s in plan.steps]


class TestToStep:
    """Tests for step shorthand."""

    def test_transform(self):
        assert to_step("less") == TransformStep("less")

    def test_task_ref(self):
        assert to_step("@build:styles") == TaskRef("build:styles")

    def test_clean(self):
        step = to_step({"clean": ["build"]})
        assert step == CleanStep(("build",))
        assert step.name == "clean(build)"

    def test_clean_single_path(self):
        assert CleanStep("dist").paths == ("dist",)

    @pytest.mark.parametrize("value", ["", "@", 3, {"remove": ["x"]}])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            to_step(value, "build")


class TestDefineTask:
    """Tests for TaskGraph.define_task."""

    def test_define(self):
        graph = TaskGraph()
        task = graph.define_task("build:styles", ["recess", "less"], doc="styles")
        assert task.transforms == ["recess", "less"]
        assert task.doc == "styles"
        assert "build:styles" in graph
        assert graph.get("build:styles") is task

    def test_duplicate(self):
        graph = TaskGraph()
        graph.define_task("build", ["html"])
        with pytest.raises(DuplicateNameError):
            graph.define_task("build", ["html"])

    def test_empty_name(self):
        with pytest.raises(ConfigurationError):
            TaskGraph().define_task("", ["html"])

    def test_forward_reference_allowed(self):
        graph = TaskGraph()
        graph.define_task("build", ["@build:html"])
        graph.define_task("build:html", ["html"])
        assert graph.resolve("build").tasks == ["build:html", "build"]

    def test_self_reference_is_cycle(self):
        graph = TaskGraph()
        with pytest.raises(CyclicDependencyError) as exc_info:
            graph.define_task("a", ["@a"])
        assert exc_info.value.cycle == ["a", "a"]

    def test_two_task_cycle(self):
        """A -> B -> A always fails, and never hangs."""
        graph = TaskGraph()
        graph.define_task("a", ["@b"])
        with pytest.raises(CyclicDependencyError) as exc_info:
            graph.define_task("b", ["@a"])
        assert exc_info.value.cycle == ["b", "a", "b"]
        # the offending definition was rolled back
        assert "b" not in graph

    def test_longer_cycle(self):
        graph = TaskGraph()
        graph.define_task("a", ["@b"])
        graph.define_task("b", ["@c"])
        with pytest.raises(CyclicDependencyError, match="c -> a -> b -> c"):
            graph.define_task("c", ["@a"])


class TestResolve:
    """Tests for TaskGraph.resolve."""

    def make_graph(self):
        graph = TaskGraph()
        graph.define_task("build:html", ["html"])
        graph.define_task("build:styles", ["recess", "less", "autoprefixer"])
        graph.define_task("build:scripts", ["jshint", "scripts"])
        graph.define_task("build", [
            {"clean": ["build"]},
            "bower",
            "@build:html",
            "@build:styles",
            "@build:scripts",
        ])
        return graph

    def test_dependencies_first(self):
        plan = self.make_graph().resolve("build")
        assert plan.tasks == ["build:html", "build:styles", "build:scripts", "build"]

    def test_steps_expanded_inline(self):
        plan = self.make_graph().resolve("build")
        assert step_names(plan) == [
            ("build", "clean(build)"),
            ("build", "bower"),
            ("build:html", "html"),
            ("build:styles", "recess"),
            ("build:styles", "less"),
            ("build:styles", "autoprefixer"),
            ("build:scripts", "jshint"),
            ("build:scripts", "scripts"),
        ]

    def test_each_task_once(self):
        graph = TaskGraph()
        graph.define_task("lint", ["jshint"])
        graph.define_task("build", ["@lint", "copy"])
        graph.define_task("test", ["@lint", "mocha"])
        graph.define_task("dist", ["@build", "@test", "@lint", "blocks"])
        plan = graph.resolve("dist")

        assert plan.tasks == ["lint", "build", "test", "dist"]
        assert [s.name for s in plan.steps] == ["jshint", "copy", "mocha", "blocks"]

    def test_deterministic(self):
        graph = self.make_graph()
        first = graph.resolve("build")
        second = graph.resolve("build")
        assert first.tasks == second.tasks
        assert first.steps == second.steps

    def test_unknown_root(self):
        with pytest.raises(UnknownTaskError, match="'nope'"):
            self.make_graph().resolve("nope")

    def test_unknown_reference(self):
        graph = TaskGraph()
        graph.define_task("build", ["@build:missing"])
        with pytest.raises(UnknownTaskError) as exc_info:
            graph.resolve("build")
        assert exc_info.value.name == "build:missing"
        assert exc_info.value.referrer == "build"

    def test_validate_reports_unknown_reference(self):
        graph = TaskGraph()
        graph.define_task("build", ["@later"])
        with pytest.raises(UnknownTaskError):
            graph.validate()

    def test_unknown_transform_with_registry(self):
        registry = TransformRegistry()
        registry.register("html", ["app/*.html"], OutputSpec(dest="build"),
                          lambda assets, options: b"")
        graph = TaskGraph(registry)
        graph.define_task("build", ["html", "less"])
        with pytest.raises(UnknownTransformError) as exc_info:
            graph.resolve("build")
        assert exc_info.value.name == "less"
        assert exc_info.value.referrer == "build"

    def test_tasks_containing(self):
        plan = self.make_graph().resolve("build")
        assert plan.tasks_containing({"less"}) == ["build:styles"]
        assert plan.tasks_containing({"bower", "html"}) == ["build:html", "build"]
        assert plan.tasks_containing(set()) == []

    def test_steps_for_and_transform_steps(self):
        plan = self.make_graph().resolve("build")
        assert [s.name for s in plan.steps_for("build:scripts")] == ["jshint", "scripts"]
        assert not any(s.is_clean for s in plan.transform_steps())
        assert len(plan.transform_steps()) == len(plan.steps) - 1


class TestResolveProperties:
    """resolve() over randomly shaped acyclic graphs."""

    @pytest.mark.parametrize("seed", range(10))
    def test_acyclic_graphs(self, seed):
        import random

        rng = random.Random(seed)
        graph = TaskGraph()
        names = [f"t{i}" for i in range(12)]
        for i, name in enumerate(names):
            # only reference earlier tasks, so the graph is acyclic
            refs = rng.sample(names[:i], k=min(i, rng.randint(0, 3)))
            graph.define_task(name, [f"@{r}" for r in refs] + [f"x{i}"])

        root = names[-1]
        plan = graph.resolve(root)
        assert len(plan.tasks) == len(set(plan.tasks))
        position = {name: i for i, name in enumerate(plan.tasks)}
        for name in plan.tasks:
            for ref in graph.get(name).task_refs:
                assert position[ref] < position[name]
