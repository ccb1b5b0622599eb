"""
Tests for completion candidates and definition lookup.
"""

import pytest

from step_forge_analysis.completion import (
    complete,
    completions_at,
    definition_at,
    find_definition,
)
from step_forge_analysis.models import SourceLocation, StepKind
from step_forge_analysis.registry import StepRegistry

from tests.factories import make_definition

DOCUMENT = """\
Feature: Users
  Scenario: Saving
    Given I have a user named Alice
    And an ex
    When I save the user
"""


@pytest.fixture
def registry():
    return StepRegistry([
        make_definition("I have a user named {name}", file="features/users.py", line=3),
        make_definition("I have {count:int} users", file="features/users.py", line=7),
        make_definition("an existing user", file="features/users.py", line=12),
        make_definition("I save the user", StepKind.WHEN, file="features/save.py", line=2),
        make_definition("I save the user", StepKind.WHEN, file="features/other.py", line=8),
    ])


def test_complete_by_prefix(registry):
    candidates = complete(registry, "I have", StepKind.GIVEN)

    assert [c.label for c in candidates] == ["I have a user named {name}", "I have {count:int} users"]
    assert [c.insert_text for c in candidates] == ["I have a user named ${1:name}", "I have ${1:0} users"]
    assert candidates[0].detail == "given step from features/users.py:3"


def test_complete_filters_by_kind(registry):
    assert complete(registry, "I save", StepKind.GIVEN) == []
    assert len(complete(registry, "I save", StepKind.WHEN)) == 2


def test_completion_stops_once_an_argument_is_typed(registry):
    assert complete(registry, "I have a user named Al", StepKind.GIVEN) == []


def test_completions_at_continuation_line(registry):
    candidates = completions_at(registry, DOCUMENT, 3, len("    And an ex"))

    assert [c.label for c in candidates] == ["an existing user"]


def test_completions_at_non_step_line(registry):
    assert completions_at(registry, DOCUMENT, 1, 5) == []
    assert completions_at(registry, DOCUMENT, 42, 0) == []


def test_find_definition_returns_first_registered(registry):
    location = find_definition(registry, StepKind.WHEN, "I save the user")

    assert location == SourceLocation("features/save.py", 2, 1)


def test_find_definition_for_unknown_step(registry):
    assert find_definition(registry, StepKind.GIVEN, "I can fly") is None


def test_definition_at_document_line(registry):
    assert definition_at(registry, DOCUMENT, 2) == SourceLocation("features/users.py", 3, 1)
    assert definition_at(registry, DOCUMENT, 0) is None
