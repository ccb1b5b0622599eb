"""
Automated tests for the step-forge pylint checker.

Tests for rules:
- W9101: step-forge-unparsable-pattern
- W9102: step-forge-missing-register
- W9103: step-forge-invalid-dependencies
- W9104: step-forge-unknown-chain-stage
- W9105: step-forge-unresolved-produced-state
- W9106: step-forge-duplicate-pattern
"""

from step_forge_analysis.config import StepForgeConfig, set_config

from tests.test_harness.base import StepDeclarationTestCase, msg


class TestWellFormedSteps(StepDeclarationTestCase):
    """Valid declarations should not produce messages."""

    def test_sample_declarations(self):
        code = """
        GivenBuilder(lambda name: f"I have a user named {name}").step(
            lambda ctx: {"name": ctx.variables[0]}
        ).register()

        GivenBuilder("an existing user").dependencies(
            {"given": {"name": "required"}}
        ).step(lambda ctx: {"user": {"name": ctx.given["name"]}}).register()
        """
        self.assert_no_messages(code)

    def test_unrelated_calls_are_ignored(self):
        code = """
        def GivenBuilder_helper():
            return print("GivenBuilder('x')")

        GivenBuilder_helper()
        """
        self.assert_no_messages(code)


class TestUnparsablePattern(StepDeclarationTestCase):
    """Tests for W9101: step-forge-unparsable-pattern"""

    def test_computed_pattern(self):
        code = """
        TEXT = "I have"
        GivenBuilder(TEXT + " a user").step(lambda ctx: {}).register()  # Line 4
        """
        self.assert_adds_messages(code, msg("step-forge-unparsable-pattern", line=4))


class TestMissingRegister(StepDeclarationTestCase):
    """Tests for W9102: step-forge-missing-register"""

    def test_chain_without_register(self):
        code = """
        WhenBuilder("I save the user").step(lambda ctx: {})  # Line 3
        """
        self.assert_adds_messages(code, msg("step-forge-missing-register", line=3))


class TestInvalidDependencies(StepDeclarationTestCase):
    """Tests for W9103: step-forge-invalid-dependencies"""

    def test_bad_requirement_value(self):
        code = """
        GivenBuilder("x").dependencies({"given": {"name": "maybe"}}).step(lambda ctx: {}).register()
        """
        self.assert_adds_messages(code, msg("step-forge-invalid-dependencies", line=3))

    def test_non_literal_dependencies(self):
        code = """
        DEPS = {"given": {"name": "required"}}
        GivenBuilder("x").dependencies(DEPS).step(lambda ctx: {}).register()  # Line 4
        """
        self.assert_adds_messages(code, msg("step-forge-invalid-dependencies", line=4))


class TestUnknownChainStage(StepDeclarationTestCase):
    """Tests for W9104: step-forge-unknown-chain-stage"""

    def test_unknown_stage(self):
        code = """
        GivenBuilder("x").tagged("slow").step(lambda ctx: {}).register()
        """
        self.assert_adds_messages(code, msg("step-forge-unknown-chain-stage", line=3))


class TestUnresolvedProducedState(StepDeclarationTestCase):
    """Tests for W9105: step-forge-unresolved-produced-state"""

    def test_opaque_return(self):
        code = """
        def body(ctx):
            return make_state(ctx)

        GivenBuilder("x").step(body).register()  # Line 6
        """
        self.assert_adds_messages(code, msg("step-forge-unresolved-produced-state", line=6))

    def test_declared_schema_is_enough(self):
        code = """
        def body(ctx):
            return make_state(ctx)

        GivenBuilder("x").produces(token=str).step(body).register()
        """
        self.assert_no_messages(code)


class TestDuplicatePattern(StepDeclarationTestCase):
    """Tests for W9106: step-forge-duplicate-pattern"""

    def test_same_kind_and_pattern(self):
        code = """
        GivenBuilder("an existing user").step(lambda ctx: {}).register()
        GivenBuilder("an existing user").step(lambda ctx: {}).register()  # Line 4
        """
        self.assert_adds_messages(code, msg("step-forge-duplicate-pattern", line=4))

    def test_other_kind_is_not_a_duplicate(self):
        code = """
        GivenBuilder("the user exists").step(lambda ctx: {}).register()
        ThenBuilder("the user exists").step(lambda ctx: {}).register()
        """
        self.assert_no_messages(code)

    def test_duplicates_across_modules(self):
        first = """
        WhenBuilder("I save the user").step(lambda ctx: {}).register()
        """
        self.lint(first, module_name="features.first")
        self.linter.release_messages()

        self.assert_adds_messages(first, msg("step-forge-duplicate-pattern", line=3), module_name="features.second")


class TestDisabledRules(StepDeclarationTestCase):
    def test_disabled_rule_is_silent(self, tmp_path):
        config = StepForgeConfig(config_file=str(tmp_path / "pyproject.toml"))
        config.disabled_rules.add("step-forge-missing-register")
        set_config(config)

        self.assert_no_messages('WhenBuilder("x").step(lambda ctx: {})\n')
