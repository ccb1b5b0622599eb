"""
Step registry: all known step definitions, grouped by source file.

Readers always work on an immutable ``RegistrySnapshot``. Every write builds
a complete new snapshot and publishes it with a single attribute swap, so a
reparse of many files is observed either entirely or not at all.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from step_forge_analysis.models import StepDefinition, StepKind
from step_forge_analysis.patterns import compile_pattern


@dataclass(frozen=True)
class RegistrySnapshot:
    """A frozen view of the registry at one version."""
    version: int
    definitions: Tuple[StepDefinition, ...] = ()

    def __len__(self) -> int:
        return len(self.definitions)

    def all(self) -> List[StepDefinition]:
        return list(self.definitions)

    def files(self) -> List[str]:
        """Source files that contributed definitions, in registration order."""
        seen: Dict[str, None] = {}
        for definition in self.definitions:
            seen.setdefault(definition.source_file, None)
        return list(seen)

    def find_by_kind_and_text(
        self, kind: StepKind, text: str, exact: bool = True
    ) -> List[StepDefinition]:
        """Definitions of a kind whose pattern matches a step text.

        Args:
            kind: The step kind to look at
            text: Full step text (exact) or typed prefix (not exact)
            exact: Use the exact matcher instead of the prefix matcher

        Returns:
            Matching definitions in registration order
        """
        found = []
        for definition in self.definitions:
            if definition.kind is not kind:
                continue
            compiled = compile_pattern(definition.pattern)
            if exact:
                if compiled.matches(text):
                    found.append(definition)
            elif compiled.matches_prefix(text):
                found.append(definition)
        return found

    def find_at_location(
        self, file: str, line: int, column: Optional[int] = None
    ) -> Optional[StepDefinition]:
        """Definition whose builder-root call starts at a location."""
        for definition in self.definitions:
            location = definition.location
            if location.file != file or location.line != line:
                continue
            if column is None or location.column == column:
                return definition
        return None


class StepRegistry:
    """Mutable handle around the current registry snapshot."""

    def __init__(self, definitions: Iterable[StepDefinition] = ()):
        self._snapshot = RegistrySnapshot(version=0, definitions=tuple(definitions))

    def __len__(self) -> int:
        return len(self._snapshot)

    @property
    def version(self) -> int:
        return self._snapshot.version

    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def _publish(self, definitions: Iterable[StepDefinition]) -> RegistrySnapshot:
        self._snapshot = RegistrySnapshot(
            version=self._snapshot.version + 1, definitions=tuple(definitions)
        )
        logging.debug(
            f"Step registry v{self._snapshot.version}: {len(self._snapshot)} definition(s)"
        )
        return self._snapshot

    def replace_file(self, file: str, definitions: Iterable[StepDefinition]) -> RegistrySnapshot:
        """Replace every definition that came from one file."""
        return self.replace_files({file: list(definitions)})

    def replace_files(self, by_file: Dict[str, List[StepDefinition]]) -> RegistrySnapshot:
        """Replace the definitions of several files in one step.

        Definitions from files not named are kept in place; the new
        definitions are appended in the order given.

        Args:
            by_file: New definitions per source file (an empty list removes the file)

        Returns:
            The published snapshot
        """
        kept = [d for d in self._snapshot.definitions if d.source_file not in by_file]
        for file, definitions in by_file.items():
            for definition in definitions:
                if definition.source_file != file:
                    raise ValueError(
                        f"Definition at {definition.location} does not belong to {file}"
                    )
            kept.extend(definitions)
        return self._publish(kept)

    def remove_file(self, file: str) -> RegistrySnapshot:
        return self.replace_files({file: []})

    def clear(self) -> RegistrySnapshot:
        return self._publish(())

    def all(self) -> List[StepDefinition]:
        return self._snapshot.all()

    def find_by_kind_and_text(
        self, kind: StepKind, text: str, exact: bool = True
    ) -> List[StepDefinition]:
        return self._snapshot.find_by_kind_and_text(kind, text, exact)

    def find_at_location(
        self, file: str, line: int, column: Optional[int] = None
    ) -> Optional[StepDefinition]:
        return self._snapshot.find_at_location(file, line, column)
