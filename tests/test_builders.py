"""
Tests for the runtime builder API.
"""

import asyncio

import pytest

from step_forge_analysis.models import Requirement, StepKind
from step_forge_analysis.runtime import (
    GivenBuilder,
    MergeConflictError,
    MissingDependencyError,
    StepCollection,
    ThenBuilder,
    WhenBuilder,
    World,
    default_collection,
)


@pytest.fixture
def steps():
    collection = StepCollection()
    GivenBuilder(lambda name: f"I have a user named {name}").step(
        lambda ctx: {"name": ctx.variables[0]}
    ).register(collection)
    GivenBuilder("an existing user").dependencies(
        {"given": {"name": "required"}}
    ).step(lambda ctx: {"user": {"name": ctx.given["name"]}}).register(collection)
    WhenBuilder("I save the user").dependencies(given={"user": "required"}).step(
        lambda ctx: {"actualUser": ctx.given["user"]}
    ).register(collection)
    return collection


def test_statement_of_function_pattern():
    step = GivenBuilder(lambda a, b: f"{a} meets {b}").step(lambda ctx: None)

    assert step.statement() == "{string} meets {string}"


def test_scenario_runs_through_collection(steps):
    world = World()

    steps.run_text(world, StepKind.GIVEN, "I have a user named Alice")
    steps.run_text(world, StepKind.GIVEN, "an existing user")
    steps.run_text(world, StepKind.WHEN, "I save the user")

    assert world.given["user"] == {"name": "Alice"}
    assert world.when["actualUser"] == {"name": "Alice"}


def test_missing_required_dependency(steps):
    with pytest.raises(MissingDependencyError):
        steps.run_text(World(), StepKind.GIVEN, "an existing user")


def test_context_only_holds_declared_properties():
    seen = {}
    world = World()
    world.merge(StepKind.GIVEN, {"name": "Alice", "secret": "x"})

    ThenBuilder("it checks").dependencies(given={"name": "required", "age": "optional"}).step(
        lambda ctx: seen.update(given=ctx.given, when=ctx.when)
    ).run(world)

    assert seen == {"given": {"name": "Alice"}, "when": {}}


def test_conflicting_output_raises(steps):
    world = World()
    steps.run_text(world, StepKind.GIVEN, "I have a user named Alice")

    with pytest.raises(MergeConflictError):
        steps.run_text(world, StepKind.GIVEN, "I have a user named Bob")


def test_dependency_phases_are_restricted_by_kind():
    with pytest.raises(TypeError):
        GivenBuilder("x").dependencies(when={"a": "required"})
    with pytest.raises(TypeError):
        WhenBuilder("x").dependencies(then={"a": "required"})

    step = ThenBuilder("x").dependencies(given={"a": "optional"}, then={"b": "required"}).step(lambda ctx: {})
    assert step.dependencies == {
        StepKind.GIVEN: {"a": Requirement.OPTIONAL},
        StepKind.THEN: {"b": Requirement.REQUIRED},
    }


def test_invalid_requirement_value():
    with pytest.raises(ValueError):
        GivenBuilder("x").dependencies(given={"a": "sometimes"})


def test_async_step_needs_arun():
    async def body(ctx):
        return {"loaded": True}

    step = GivenBuilder("loaded").step(body)
    world = World()

    with pytest.raises(TypeError):
        step.run(world)

    asyncio.run(step.arun(world))
    assert world.given["loaded"] is True


def test_non_mapping_result_is_rejected():
    with pytest.raises(TypeError):
        GivenBuilder("x").step(lambda ctx: ["not", "a", "dict"]).run(World())


def test_ambiguous_text_is_a_lookup_error(steps):
    GivenBuilder("I have a user named Bob").step(lambda ctx: {}).register(steps)

    with pytest.raises(LookupError):
        steps.run_text(World(), StepKind.GIVEN, "I have a user named Bob")


def test_register_into_empty_collection():
    collection = StepCollection()
    before = len(default_collection)

    GivenBuilder("a clean slate").step(lambda ctx: {}).register(collection)

    assert len(collection) == 1
    assert len(default_collection) == before
