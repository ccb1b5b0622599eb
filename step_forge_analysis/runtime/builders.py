"""
Fluent builder API used in step declaration files.

    GivenBuilder(lambda name: f"I have a user named {name}")
        .step(lambda ctx: {"name": ctx.variables[0]})
        .register()

    GivenBuilder("an existing user")
        .dependencies({"given": {"name": "required"}})
        .step(lambda ctx: {"user": {"name": ctx.given["name"]}})
        .register()

The chain shape built here is exactly what the static extractor reads back:
a builder-root call, optional ``.dependencies(...)`` and ``.produces(...)``
stages, ``.step(fn)`` and ``.register()``.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from step_forge_analysis.models import Requirement, StepKind
from step_forge_analysis.patterns import compile_pattern
from step_forge_analysis.runtime.world import World

Statement = Union[str, Callable[..., str]]
DependencyMap = Dict[StepKind, Dict[str, Requirement]]

# Phases each kind of step may depend on
ALLOWED_PHASES = {
    StepKind.GIVEN: (StepKind.GIVEN,),
    StepKind.WHEN: (StepKind.GIVEN, StepKind.WHEN),
    StepKind.THEN: (StepKind.GIVEN, StepKind.WHEN, StepKind.THEN),
}

# Argument matcher substituted for each statement-function parameter
ARGUMENT_MATCHER = "{string}"


@dataclass
class StepContext:
    """What a step body receives: captured variables and narrowed state."""
    variables: List[str]
    given: Dict[str, Any] = field(default_factory=dict)
    when: Dict[str, Any] = field(default_factory=dict)
    then: Dict[str, Any] = field(default_factory=dict)


StepFunction = Callable[[StepContext], Union[Optional[Mapping[str, Any]], Awaitable[Any]]]


def _normalize_dependencies(
    kind: StepKind, declared: Mapping[str, Optional[Mapping[str, str]]]
) -> DependencyMap:
    allowed = ALLOWED_PHASES[kind]
    result: DependencyMap = {}
    for phase_name, entries in declared.items():
        if entries is None:
            continue
        try:
            phase = StepKind(phase_name)
        except ValueError:
            raise TypeError(f"Unknown dependency phase '{phase_name}'") from None
        if phase not in allowed:
            raise TypeError(
                f"A {kind.value} step cannot depend on {phase.value} state"
            )
        result[phase] = {name: Requirement(value) for name, value in entries.items()}
    return result


class Step:
    """A fully built step: statement, dependencies and body."""

    def __init__(
        self,
        kind: StepKind,
        statement: Statement,
        dependencies: DependencyMap,
        function: StepFunction,
        produces: Optional[Dict[str, Any]] = None,
        collection: Optional["StepCollection"] = None,
    ):
        self.kind = kind
        self.statement_function = statement
        self.dependencies = dependencies
        self.function = function
        self.produces = produces
        self._collection = collection

    def __repr__(self) -> str:
        return f"Step({self.kind.value}, {self.statement()!r})"

    def statement(self) -> str:
        """Render the step statement with one argument matcher per parameter."""
        if isinstance(self.statement_function, str):
            return self.statement_function
        arity = len(inspect.signature(self.statement_function).parameters)
        return self.statement_function(*([ARGUMENT_MATCHER] * arity))

    def register(self, collection: Optional["StepCollection"] = None) -> "Step":
        """Record this step in a collection (the default one if omitted)."""
        if collection is not None:
            target = collection
        elif self._collection is not None:
            target = self._collection
        else:
            target = default_collection
        target.add(self)
        return self

    def _context(self, world: World, variables) -> StepContext:
        narrowed: Dict[StepKind, Dict[str, Any]] = {}
        for phase in StepKind:
            declared = self.dependencies.get(phase, {})
            state = world.phase(phase)
            values = state.narrowed(declared)
            for name, requirement in declared.items():
                if requirement is Requirement.REQUIRED:
                    values[name] = state.require(name)
            narrowed[phase] = values
        return StepContext(
            variables=list(variables),
            given=narrowed[StepKind.GIVEN],
            when=narrowed[StepKind.WHEN],
            then=narrowed[StepKind.THEN],
        )

    def _merge(self, world: World, result: Any) -> None:
        if result is None:
            return
        if not isinstance(result, Mapping):
            raise TypeError(
                f"Step {self.statement()!r} returned {type(result).__name__}, expected a mapping"
            )
        world.merge(self.kind, result)

    def run(self, world: World, *variables: str) -> None:
        """Run the step body against a world and merge its output.

        Raises:
            MissingDependencyError: If a required property is absent
            MergeConflictError: If the output conflicts with existing state
            TypeError: If the body is asynchronous or returns a non-mapping
        """
        result = self.function(self._context(world, variables))
        if inspect.isawaitable(result):
            if hasattr(result, "close"):
                result.close()
            raise TypeError(f"Step {self.statement()!r} is asynchronous, use arun()")
        self._merge(world, result)

    async def arun(self, world: World, *variables: str) -> None:
        """Asynchronous counterpart of ``run``."""
        result = self.function(self._context(world, variables))
        if inspect.isawaitable(result):
            result = await result
        self._merge(world, result)


class StepBuilder:
    """Collects the stages of a builder chain."""

    def __init__(self, kind: StepKind, statement: Statement):
        if not isinstance(statement, str) and not callable(statement):
            raise TypeError("A step statement must be a string or a function returning one")
        self.kind = kind
        self.statement = statement
        self._dependencies: DependencyMap = {}
        self._produces: Optional[Dict[str, Any]] = None

    def dependencies(
        self,
        declared: Optional[Mapping[str, Mapping[str, str]]] = None,
        **phases: Mapping[str, str],
    ) -> "StepBuilder":
        """Declare state this step reads, as ``{"given": {"name": "required"}}``."""
        merged: Dict[str, Optional[Mapping[str, str]]] = dict(declared or {})
        merged.update(phases)
        self._dependencies = _normalize_dependencies(self.kind, merged)
        return self

    def produces(self, schema: Optional[Mapping[str, Any]] = None, **fields: Any) -> "StepBuilder":
        """Declare the state this step adds, as ``{"name": str}``."""
        produced = dict(schema or {})
        produced.update(fields)
        self._produces = produced
        return self

    def step(self, function: StepFunction) -> Step:
        if not callable(function):
            raise TypeError("step() expects a callable")
        return Step(self.kind, self.statement, self._dependencies, function, self._produces)


def GivenBuilder(statement: Statement) -> StepBuilder:
    return StepBuilder(StepKind.GIVEN, statement)


def WhenBuilder(statement: Statement) -> StepBuilder:
    return StepBuilder(StepKind.WHEN, statement)


def ThenBuilder(statement: Statement) -> StepBuilder:
    return StepBuilder(StepKind.THEN, statement)


class StepCollection:
    """Registered steps, looked up by kind and step text."""

    def __init__(self):
        self._steps: List[Step] = []

    def __iter__(self):
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def add(self, step: Step) -> None:
        self._steps.append(step)

    def clear(self) -> None:
        self._steps = []

    def find(self, kind: StepKind, text: str) -> List[Step]:
        """Steps of a kind whose rendered statement matches the text."""
        found = []
        for step in self._steps:
            if step.kind is not kind:
                continue
            if compile_pattern(step.statement()).matches(text):
                found.append(step)
        return found

    def run_text(self, world: World, kind: StepKind, text: str) -> Step:
        """Find the single step matching a text and run it.

        Raises:
            LookupError: If no step or more than one step matches
        """
        found = self.find(kind, text)
        if len(found) != 1:
            raise LookupError(
                f"{len(found)} {kind.value} step(s) match {text!r}, expected exactly one"
            )
        step = found[0]
        variables = compile_pattern(step.statement()).match(text) or ()
        step.run(world, *variables)
        return step


default_collection = StepCollection()
