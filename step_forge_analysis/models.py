"""Core data models shared by the extractor, registry and validator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class StepKind(Enum):
    """Step kinds, which double as the three world-state phases."""
    GIVEN = "given"
    WHEN = "when"
    THEN = "then"

    @classmethod
    def from_keyword(cls, keyword: str) -> Optional["StepKind"]:
        """Map a primary Gherkin keyword (Given/When/Then) to a kind."""
        try:
            return cls(keyword.strip().lower())
        except ValueError:
            return None


class Requirement(Enum):
    """How strongly a step depends on a state property."""
    REQUIRED = "required"
    OPTIONAL = "optional"


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class SourceLocation:
    """Where a step definition was declared (1-based line and column)."""
    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class PropertyShape:
    """Type description of one produced state property."""
    type: str
    optional: bool = False


@dataclass(frozen=True)
class StepDefinition:
    """A registered step pattern with its kind, dependencies and output shape."""
    pattern: str
    kind: StepKind
    location: SourceLocation
    # Only declared phases are present; a degraded phase maps to {}
    dependencies: Dict[StepKind, Dict[str, Requirement]] = field(default_factory=dict)
    # None means the produced state could not be resolved
    produced_state: Optional[Dict[str, PropertyShape]] = None

    @property
    def source_file(self) -> str:
        return self.location.file

    @property
    def produced_keys(self) -> FrozenSet[str]:
        """Names this step adds to the scenario state."""
        if self.produced_state is None:
            return frozenset()
        return frozenset(self.produced_state)

    def required_dependencies(self) -> Dict[StepKind, List[str]]:
        """Required property names per phase, in declaration order."""
        required: Dict[StepKind, List[str]] = {}
        for phase in StepKind:
            names = [
                name
                for name, requirement in self.dependencies.get(phase, {}).items()
                if requirement is Requirement.REQUIRED
            ]
            if names:
                required[phase] = names
        return required


@dataclass(frozen=True)
class Position:
    """Zero-based position in a text document."""
    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Zero-based, end-exclusive range in a text document."""
    start: Position
    end: Position

    @classmethod
    def on_line(cls, line: int, start: int, end: int) -> "Range":
        return cls(Position(line, start), Position(line, end))


@dataclass
class Diagnostic:
    """A finding reported against a specification document."""
    range: Range
    message: str
    code: str
    severity: DiagnosticSeverity = DiagnosticSeverity.ERROR
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletionCandidate:
    """A completion entry offered for a partially typed step."""
    label: str
    insert_text: str
    detail: str
    definition: Optional[StepDefinition] = None
