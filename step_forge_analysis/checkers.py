"""
Pylint checker for step declaration files.

Runs the step extractor on every call pylint visits and reports the
problems found in builder chains. Duplicate patterns are tracked across all
modules of a pylint run.
"""

from typing import Dict, Optional, Tuple, TYPE_CHECKING

from astroid import nodes
from pylint.checkers import BaseChecker

from step_forge_analysis.config import StepForgeConfig, get_config
from step_forge_analysis.extractor import StepExtractor
from step_forge_analysis.messages import MESSAGES
from step_forge_analysis.models import SourceLocation, StepKind

if TYPE_CHECKING:
    from pylint.lint import PyLinter

DUPLICATE_PATTERN = "step-forge-duplicate-pattern"


class StepDeclarationChecker(BaseChecker):
    """Pylint checker for GivenBuilder/WhenBuilder/ThenBuilder chains."""

    name = "step-forge"
    msgs = MESSAGES

    def __init__(self, linter: "PyLinter"):
        super().__init__(linter)
        self._extractor: Optional[StepExtractor] = None
        # (kind, pattern) -> where it was first declared in this run
        self._declared: Dict[Tuple[StepKind, str], SourceLocation] = {}

    @property
    def config_instance(self) -> StepForgeConfig:
        return get_config()

    @property
    def extractor(self) -> StepExtractor:
        if self._extractor is None:
            self._extractor = StepExtractor(self.config_instance.builder_modules)
        return self._extractor

    def open(self) -> None:
        self._extractor = None
        self._declared = {}

    def _report(self, symbol: str, node: nodes.NodeNG, args: Tuple = ()) -> None:
        if self.config_instance.is_rule_disabled(symbol):
            return
        self.add_message(symbol, node=node, args=args or None)

    def visit_call(self, node: nodes.Call) -> None:
        analysis = self.extractor.analyze_chain(node, node.root().file)
        if analysis is None:
            return

        for issue in analysis.issues:
            self._report(issue.symbol, issue.node, issue.args)

        definition = analysis.definition
        if definition is None:
            return
        key = (definition.kind, definition.pattern)
        first = self._declared.get(key)
        if first is None:
            self._declared[key] = definition.location
        else:
            self._report(
                DUPLICATE_PATTERN,
                node,
                (definition.kind.value.capitalize(), definition.pattern, str(first)),
            )
