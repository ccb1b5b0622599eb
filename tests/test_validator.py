"""
Tests for the scenario validator.
"""

import textwrap

import pytest

from step_forge_analysis.config import StepForgeConfig
from step_forge_analysis.extractor import parse_step_files
from step_forge_analysis.models import DiagnosticSeverity, Position, StepKind
from step_forge_analysis.registry import StepRegistry
from step_forge_analysis.validator import (
    AMBIGUOUS_STEP,
    MISSING_DEPENDENCY,
    UNDEFINED_STEP,
    ScenarioValidator,
    validate_text,
)

from tests.factories import USER_STEPS, make_definition


@pytest.fixture
def user_registry():
    return StepRegistry([
        make_definition("I have a user named {name}", produces=["name"], line=1),
        make_definition("an existing user", requires={StepKind.GIVEN: ["name"]}, produces=["user"], line=2),
        make_definition("I save the user", StepKind.WHEN, requires={StepKind.GIVEN: ["user"]}, produces=["actualUser"], line=3),
        make_definition("the user's real name should not change", StepKind.THEN, line=4),
    ])


def feature(body: str) -> str:
    return "Feature: Users\n" + textwrap.indent(textwrap.dedent(body), "  ")


def test_satisfied_dependencies_produce_no_diagnostics(user_registry, default_config):
    text = feature("""
        Scenario: Saving
          Given I have a user named Alice
          And an existing user
          When I save the user
          Then the user's real name should not change
    """)

    assert validate_text(user_registry, text, config=default_config) == []


def test_missing_dependency_message_and_range(user_registry, default_config):
    text = feature("""
        Scenario: No name
          Given an existing user
    """)

    (diagnostic,) = validate_text(user_registry, text, config=default_config)

    assert diagnostic.code == MISSING_DEPENDENCY
    assert diagnostic.severity is DiagnosticSeverity.ERROR
    assert diagnostic.message == (
        "Scenario state is missing required properties.\n"
        "\n"
        "Given: name\n"
        "\n"
        "These properties must be set by previous steps, but no steps in this scenario set them."
    )
    assert diagnostic.data["missing"] == {"given": ["name"]}
    assert diagnostic.range.start == Position(3, 4)
    assert diagnostic.range.end == Position(3, 4 + len("Given an existing user"))


def test_state_advances_even_when_dependencies_are_missing(user_registry, default_config):
    text = feature("""
        Scenario: Out of order
          Given an existing user
          When I save the user
    """)

    codes = [d.code for d in validate_text(user_registry, text, config=default_config)]

    # "an existing user" still counts as having produced "user"
    assert codes == [MISSING_DEPENDENCY]


def test_undefined_step(user_registry, default_config):
    text = feature("""
        Scenario: Flying
          Given I can fly
    """)

    (diagnostic,) = validate_text(user_registry, text, config=default_config)

    assert diagnostic.code == UNDEFINED_STEP
    assert diagnostic.message == 'No step definition found for: "I can fly"'


def test_kind_must_match(user_registry, default_config):
    text = feature("""
        Scenario: Wrong keyword
          When I have a user named Alice
    """)

    assert [d.code for d in validate_text(user_registry, text, config=default_config)] == [UNDEFINED_STEP]


def test_state_resets_between_scenarios(user_registry, default_config):
    text = feature("""
        Scenario: First
          Given I have a user named Alice
        Scenario: Second
          Given an existing user
    """)

    (diagnostic,) = validate_text(user_registry, text, config=default_config)

    assert diagnostic.code == MISSING_DEPENDENCY
    assert diagnostic.range.start.line == 5


def test_background_state_seeds_each_scenario(user_registry, default_config):
    text = feature("""
        Background:
          Given I have a user named Alice
        Scenario: Relies on background
          Given an existing user
        Scenario: Also relies on background
          Given an existing user
          When I save the user
    """)

    assert validate_text(user_registry, text, config=default_config) == []


def test_rule_background_is_scoped_to_its_rule(user_registry, default_config):
    text = feature("""
        Rule: Named users
          Background:
            Given I have a user named Alice
          Scenario: Inside the rule
            Given an existing user
        Rule: Anonymous users
          Scenario: Outside the rule
            Given an existing user
    """)

    (diagnostic,) = validate_text(user_registry, text, config=default_config)

    assert diagnostic.code == MISSING_DEPENDENCY
    assert diagnostic.range.start.line == 9


def test_state_is_monotonic(user_registry, default_config):
    text = feature("""
        Scenario: Growing
          Given I have a user named Alice
          And I can fly
          And an existing user
          When I save the user
    """)

    result = ScenarioValidator(user_registry, default_config).validate_text(text)

    states = [trace.state_after for trace in result.traces]
    assert all(earlier <= later for earlier, later in zip(states, states[1:]))
    assert states[-1] == {"name", "user", "actualUser"}


def test_continuation_without_primary_step_is_skipped(user_registry, default_config):
    text = feature("""
        Scenario: Dangling
          And I can fly
    """)

    assert validate_text(user_registry, text, config=default_config) == []


def test_ambiguous_steps_are_reported_and_do_not_advance_state(default_config):
    registry = StepRegistry([
        make_definition("a user named {name}", produces=["name"], line=1),
        make_definition("a user named Bob", produces=["name"], line=2),
        make_definition("the name is known", requires={StepKind.GIVEN: ["name"]}, line=3),
    ])
    text = feature("""
        Scenario: Ambiguous
          Given a user named Bob
          And the name is known
    """)

    diagnostics = validate_text(registry, text, config=default_config)

    assert [d.code for d in diagnostics] == [AMBIGUOUS_STEP, MISSING_DEPENDENCY]
    assert len(diagnostics[0].data["candidates"]) == 2


def test_ambiguous_reporting_can_be_disabled(default_config):
    default_config.report_ambiguous_steps = False
    registry = StepRegistry([
        make_definition("a user named {name}", line=1),
        make_definition("a user named Bob", line=2),
    ])

    assert validate_text(registry, feature("Scenario: s\n  Given a user named Bob\n"), config=default_config) == []


def test_disabled_rule(user_registry, default_config):
    default_config.disabled_rules.add(UNDEFINED_STEP)

    assert validate_text(user_registry, "Given I can fly\n", config=default_config) == []


def test_unresolved_produced_state_contributes_nothing(default_config):
    registry = StepRegistry([
        make_definition("an opaque step", produces=None, line=1),
        make_definition("the name is known", requires={StepKind.GIVEN: ["name"]}, line=2),
    ])

    diagnostics = validate_text(
        registry, "Given an opaque step\nAnd the name is known\n", config=default_config
    )

    assert [d.code for d in diagnostics] == [MISSING_DEPENDENCY]


def test_unparsable_document_yields_nothing(user_registry, default_config):
    assert validate_text(user_registry, "Feature: a\nFeature: b\nGiven I can fly\n", config=default_config) == []


def test_end_to_end_with_extracted_steps(make_project):
    root = make_project({"features/user_steps.py": USER_STEPS})
    config = StepForgeConfig(config_file=str(root / "pyproject.toml"))
    registry = StepRegistry()
    registry.replace_files(parse_step_files(config.find_step_files(), config))

    good = "Given I have a user named Alice\nAnd an existing user\n"
    bad = "Given an existing user\n"

    assert validate_text(registry, good, config=config) == []
    (diagnostic,) = validate_text(registry, bad, config=config)
    assert diagnostic.code == MISSING_DEPENDENCY
    assert "Given: name" in diagnostic.message
