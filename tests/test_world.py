"""
Tests for the world state merge contract.
"""

import pytest

from step_forge_analysis.models import StepKind
from step_forge_analysis.runtime import MergeConflictError, MissingDependencyError, World, merge_state


def test_new_keys_are_added():
    assert merge_state({"a": 1}, {"b": 2}) == {"a": 1, "b": 2}


def test_lists_concatenate():
    assert merge_state({"ids": [1]}, {"ids": [2, 3]}) == {"ids": [1, 2, 3]}


def test_scalar_is_appended_to_list():
    assert merge_state({"ids": [1]}, {"ids": 2}) == {"ids": [1, 2]}


def test_dicts_merge_recursively():
    merged = merge_state({"user": {"name": "Alice"}}, {"user": {"age": 3}})

    assert merged == {"user": {"name": "Alice", "age": 3}}


def test_conflicting_scalar_raises():
    with pytest.raises(MergeConflictError) as excinfo:
        merge_state({"user": {"name": "Alice"}}, {"user": {"name": "Bob"}})

    assert excinfo.value.path == "user.name"


def test_identical_scalar_is_a_no_op():
    assert merge_state({"name": "Alice"}, {"name": "Alice"}) == {"name": "Alice"}


def test_none_can_be_overwritten():
    assert merge_state({"name": None}, {"name": "Alice"}) == {"name": "Alice"}


def test_dict_replaced_by_scalar_is_a_conflict():
    with pytest.raises(MergeConflictError):
        merge_state({"user": {"name": "Alice"}}, {"user": "Alice"})


def test_inputs_are_not_mutated():
    current = {"ids": [1], "user": {"name": "Alice"}}
    update = {"ids": [2], "user": {"age": 3}}

    merge_state(current, update)

    assert current == {"ids": [1], "user": {"name": "Alice"}}
    assert update == {"ids": [2], "user": {"age": 3}}


def test_world_phases_are_independent():
    world = World()

    world.merge(StepKind.GIVEN, {"name": "Alice"})
    world.merge(StepKind.WHEN, {"name": "Bob"})

    assert dict(world.given) == {"name": "Alice"}
    assert dict(world.when) == {"name": "Bob"}
    assert dict(world.then) == {}


def test_require_reports_phase_and_key():
    with pytest.raises(MissingDependencyError, match="Key name is required in given state"):
        World().given.require("name")
