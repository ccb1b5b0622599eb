"""
step-forge-analysis: static analysis for step-forge behaviour specifications.

Step definitions are declared in Python with GivenBuilder/WhenBuilder/
ThenBuilder chains. This package extracts them without running any step
code (using astroid's inference engine) and validates Gherkin scenarios
against them:
- every step text must match exactly one declared pattern
- every required state property must be produced by an earlier step

It also ships as a Pylint plugin that reports malformed step declarations.

Usage:
    step-forge-check features/
    pylint --load-plugins=step_forge_analysis features/
"""

from typing import TYPE_CHECKING

from step_forge_analysis.checkers import StepDeclarationChecker

if TYPE_CHECKING:
    from pylint.lint import PyLinter


def register(linter: "PyLinter") -> None:
    """Register the step-forge checker with Pylint.

    This function is called by Pylint when loading the plugin.

    Args:
        linter: The Pylint linter instance
    """
    linter.register_checker(StepDeclarationChecker(linter))


__version__ = "0.1.0"
__all__ = ["register", "StepDeclarationChecker"]
