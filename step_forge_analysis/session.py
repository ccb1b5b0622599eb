"""
Analysis session: the state a host (editor integration, CLI) keeps between
events.

The host reports step-file changes and document lifecycle events; after
every event the session re-validates all open documents and replaces their
diagnostic lists. Everything runs synchronously on the calling thread.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from step_forge_analysis.completion import completions_at, definition_at
from step_forge_analysis.config import StepForgeConfig, load_project_config
from step_forge_analysis.extractor import parse_step_files
from step_forge_analysis.models import CompletionCandidate, Diagnostic, SourceLocation
from step_forge_analysis.registry import StepRegistry
from step_forge_analysis.validator import ScenarioValidator

PublishCallback = Callable[[str, List[Diagnostic]], None]


class AnalysisSession:
    """Registry, open documents and their diagnostics for one project."""

    def __init__(
        self,
        start_dir: Optional[Path] = None,
        publish: Optional[PublishCallback] = None,
        config_file: Optional[Path] = None,
    ):
        self.start_dir = start_dir
        self.config_file = config_file
        self.publish = publish
        self.registry = StepRegistry()
        self.config: Optional[StepForgeConfig] = None
        self.documents: Dict[str, str] = {}
        self.diagnostics: Dict[str, List[Diagnostic]] = {}

    def _load_config(self) -> StepForgeConfig:
        """Load the project configuration for an extraction pass.

        Raises:
            ProjectConfigError: If pyproject.toml is missing or unreadable
        """
        self.config = load_project_config(self.start_dir, self.config_file)
        return self.config

    def _extract(self, paths: Iterable[Path]) -> None:
        config = self._load_config()
        self.registry.replace_files(parse_step_files(paths, config))

    def load_all(self) -> None:
        """Rebuild the registry from every configured step file."""
        config = self._load_config()
        paths = config.find_step_files()
        logging.debug(f"Loading {len(paths)} step file(s) from {config.project_root}")
        # Files that disappeared since the last pass are dropped too
        by_file = {file: [] for file in self.registry.snapshot().files()}
        by_file.update(parse_step_files(paths, config))
        self.registry.replace_files(by_file)
        self.revalidate()

    def step_file_changed(self, path: Path) -> None:
        self._extract([path])
        self.revalidate()

    def step_files_changed(self, paths: Iterable[Path]) -> None:
        self._extract(paths)
        self.revalidate()

    def step_file_deleted(self, path: Path) -> None:
        self.registry.remove_file(str(Path(path).resolve()))
        self.revalidate()

    def document_opened(self, uri: str, text: str) -> None:
        self.documents[uri] = text
        self.revalidate()

    def document_changed(self, uri: str, text: str) -> None:
        self.documents[uri] = text
        self.revalidate()

    def document_closed(self, uri: str) -> None:
        self.documents.pop(uri, None)
        self.diagnostics.pop(uri, None)
        if self.publish is not None:
            self.publish(uri, [])

    def revalidate(self) -> None:
        """Validate every open document against the current registry snapshot."""
        validator = ScenarioValidator(self.registry.snapshot(), self.config)
        for uri, text in self.documents.items():
            diagnostics = validator.validate_text(text, uri).diagnostics
            self.diagnostics[uri] = diagnostics
            if self.publish is not None:
                self.publish(uri, diagnostics)

    def completions(self, uri: str, line: int, character: int) -> List[CompletionCandidate]:
        text = self.documents.get(uri)
        if text is None:
            return []
        return completions_at(self.registry.snapshot(), text, line, character)

    def definition(self, uri: str, line: int) -> Optional[SourceLocation]:
        text = self.documents.get(uri)
        if text is None:
            return None
        return definition_at(self.registry.snapshot(), text, line)
