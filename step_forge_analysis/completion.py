"""
Completion and go-to-definition support for specification documents.
"""

from typing import List, Optional, Union

from step_forge_analysis.gherkin import step_kind_at, typed_step_text
from step_forge_analysis.models import CompletionCandidate, SourceLocation, StepKind
from step_forge_analysis.patterns import compile_pattern
from step_forge_analysis.registry import RegistrySnapshot, StepRegistry

Registry = Union[StepRegistry, RegistrySnapshot]


def complete(registry: Registry, partial_text: str, kind: StepKind) -> List[CompletionCandidate]:
    """Candidates for every definition of a kind whose pattern starts with the typed text."""
    candidates = []
    for definition in registry.find_by_kind_and_text(kind, partial_text, exact=False):
        location = definition.location
        candidates.append(
            CompletionCandidate(
                label=definition.pattern,
                insert_text=compile_pattern(definition.pattern).snippet(),
                detail=f"{kind.value} step from {location.file}:{location.line}",
                definition=definition,
            )
        )
    return candidates


def completions_at(
    registry: Registry, document_text: str, line: int, character: int
) -> List[CompletionCandidate]:
    """Candidates for the cursor position in a document.

    Args:
        registry: Registry or snapshot to look in
        document_text: Full document contents
        line: 0-based cursor line
        character: 0-based cursor column

    Returns:
        Completion candidates, empty if the cursor is not on a step line
    """
    lines = document_text.splitlines()
    if line < 0 or line >= len(lines):
        return []
    typed = typed_step_text(lines[line], character)
    kind = step_kind_at(lines, line)
    if typed is None or kind is None:
        return []
    return complete(registry, typed[0], kind)


def find_definition(registry: Registry, kind: StepKind, text: str) -> Optional[SourceLocation]:
    """Location of the first definition (in registration order) matching a step text."""
    matches = registry.find_by_kind_and_text(kind, text, exact=True)
    if not matches:
        return None
    return matches[0].location


def definition_at(registry: Registry, document_text: str, line: int) -> Optional[SourceLocation]:
    """Definition location for the step written on a document line."""
    lines = document_text.splitlines()
    if line < 0 or line >= len(lines):
        return None
    typed = typed_step_text(lines[line].rstrip())
    kind = step_kind_at(lines, line)
    if typed is None or kind is None or not typed[0]:
        return None
    return find_definition(registry, kind, typed[0])
