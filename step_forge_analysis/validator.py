"""
Scenario validator.

Walks every scenario of a document in order, keeping the set of state
property names produced so far, and reports:

- ``undefined-step``: no definition matches the step text;
- ``missing-dependency``: the single matching definition requires
  properties no earlier step of the scenario produced;
- ``ambiguous-step``: several definitions match (the state is then left
  unchanged, since it is unknown which one would run).

State never carries over from one scenario to the next; only what a
Background produced is where each scenario starts.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Union

from step_forge_analysis.config import StepForgeConfig, get_config
from step_forge_analysis.gherkin import GherkinParseError, ParsedFeature, ParsedStep, parse_feature
from step_forge_analysis.models import Diagnostic, DiagnosticSeverity, Range, StepDefinition, StepKind
from step_forge_analysis.registry import RegistrySnapshot, StepRegistry

UNDEFINED_STEP = "undefined-step"
MISSING_DEPENDENCY = "missing-dependency"
AMBIGUOUS_STEP = "ambiguous-step"

MISSING_HEADER = "Scenario state is missing required properties.\n"
MISSING_FOOTER = (
    "\nThese properties must be set by previous steps, "
    "but no steps in this scenario set them."
)


@dataclass
class StepTrace:
    """What the validator saw at one step."""
    step: ParsedStep
    matches: List[StepDefinition]
    state_before: FrozenSet[str]
    state_after: FrozenSet[str]


@dataclass
class ValidationResult:
    diagnostics: List[Diagnostic] = field(default_factory=list)
    traces: List[StepTrace] = field(default_factory=list)

    def codes(self) -> List[str]:
        return [diagnostic.code for diagnostic in self.diagnostics]


def step_range(step: ParsedStep) -> Range:
    """Range of the whole step line, keyword included, trimmed of whitespace."""
    return Range.on_line(step.line, step.column, step.end_column)


def missing_dependencies(definition: StepDefinition, state: FrozenSet[str]) -> Dict[StepKind, List[str]]:
    """Required properties of a definition absent from the state, per phase."""
    missing: Dict[StepKind, List[str]] = {}
    for phase, names in definition.required_dependencies().items():
        absent = [name for name in names if name not in state]
        if absent:
            missing[phase] = absent
    return missing


def format_missing_message(missing: Dict[StepKind, List[str]]) -> str:
    lines = [MISSING_HEADER]
    for phase, names in missing.items():
        lines.append(f"{phase.value.capitalize()}: {', '.join(names)}")
    lines.append(MISSING_FOOTER)
    return "\n".join(lines)


class ScenarioValidator:
    """Validates parsed documents against a registry snapshot."""

    def __init__(
        self,
        registry: Union[StepRegistry, RegistrySnapshot],
        config: Optional[StepForgeConfig] = None,
    ):
        if isinstance(registry, StepRegistry):
            registry = registry.snapshot()
        self.snapshot = registry
        self.config = config or get_config()

    def _enabled(self, code: str) -> bool:
        if self.config.is_rule_disabled(code):
            return False
        if code == AMBIGUOUS_STEP:
            return self.config.report_ambiguous_steps
        return True

    def validate_feature(self, feature: ParsedFeature) -> ValidationResult:
        """Validate every scenario of a parsed document.

        A Background runs before each scenario that follows it in the same
        Feature or Rule, so scenarios start from the state it produced. A
        Rule-level Background continues from the Feature-level one.
        """
        result = ValidationResult()
        # Enclosing Rule line (None for the Feature) -> state after its Background
        background_state: Dict[Optional[int], FrozenSet[str]] = {}
        for scenario in feature.scenarios:
            state = background_state.get(scenario.rule)
            if state is None:
                state = background_state.get(None, frozenset())
            for step in scenario.steps:
                state = self._validate_step(step, state, result)
            if scenario.is_background:
                background_state[scenario.rule] = state
        return result

    def validate_text(self, text: str, uri: str = "") -> ValidationResult:
        """Validate a document; a document that cannot be split yields nothing."""
        try:
            feature = parse_feature(text, uri)
        except GherkinParseError as e:
            logging.warning(f"Could not parse {uri or 'document'}: {e}")
            return ValidationResult()
        return self.validate_feature(feature)

    def _validate_step(
        self, step: ParsedStep, state: FrozenSet[str], result: ValidationResult
    ) -> FrozenSet[str]:
        if step.kind is None:
            logging.debug(f"Skipping '{step.keyword} {step.text}' on line {step.line + 1}: no preceding step")
            return state

        matches = self.snapshot.find_by_kind_and_text(step.kind, step.text)
        after = state

        if not matches:
            if self._enabled(UNDEFINED_STEP):
                result.diagnostics.append(
                    Diagnostic(
                        range=step_range(step),
                        message=f'No step definition found for: "{step.text}"',
                        code=UNDEFINED_STEP,
                        severity=DiagnosticSeverity.ERROR,
                        data={"kind": step.kind.value, "text": step.text},
                    )
                )
        elif len(matches) == 1:
            definition = matches[0]
            missing = missing_dependencies(definition, state)
            if missing and self._enabled(MISSING_DEPENDENCY):
                result.diagnostics.append(
                    Diagnostic(
                        range=step_range(step),
                        message=format_missing_message(missing),
                        code=MISSING_DEPENDENCY,
                        severity=DiagnosticSeverity.ERROR,
                        data={
                            "missing": {phase.value: names for phase, names in missing.items()},
                            "definition": str(definition.location),
                        },
                    )
                )
            after = state | definition.produced_keys
        elif self._enabled(AMBIGUOUS_STEP):
            candidates = [f"{d.pattern} ({d.location})" for d in matches]
            result.diagnostics.append(
                Diagnostic(
                    range=step_range(step),
                    message=f'Step "{step.text}" matches {len(matches)} step definitions:\n'
                    + "\n".join(candidates),
                    code=AMBIGUOUS_STEP,
                    severity=DiagnosticSeverity.ERROR,
                    data={"candidates": [str(d.location) for d in matches]},
                )
            )

        result.traces.append(StepTrace(step, matches, state, after))
        return after


def validate_text(
    registry: Union[StepRegistry, RegistrySnapshot],
    text: str,
    uri: str = "",
    config: Optional[StepForgeConfig] = None,
) -> List[Diagnostic]:
    """Diagnostics for one document."""
    return ScenarioValidator(registry, config).validate_text(text, uri).diagnostics
