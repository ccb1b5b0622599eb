"""Command-line interface for step-forge-analysis."""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from step_forge_analysis.config import ProjectConfigError, StepForgeConfig, load_project_config
from step_forge_analysis.models import Diagnostic, DiagnosticSeverity, StepDefinition
from step_forge_analysis.session import AnalysisSession
from step_forge_analysis.validator import ScenarioValidator

Finding = Tuple[str, Diagnostic]


class TerminalReporter:
    """Reports diagnostics to the terminal."""

    COLORS = {
        "red": "\033[91m",
        "yellow": "\033[93m",
        "blue": "\033[94m",
        "green": "\033[92m",
        "reset": "\033[0m",
    }

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors and sys.stdout.isatty()

    def report(self, findings: List[Finding]) -> None:
        """Report diagnostics grouped by document."""
        if not findings:
            self._print_success("All scenarios are valid!")
            return

        by_file: Dict[str, List[Diagnostic]] = {}
        for file_path, diagnostic in findings:
            by_file.setdefault(file_path, []).append(diagnostic)

        for file_path, diagnostics in sorted(by_file.items()):
            self._print_file_header(file_path)
            for diagnostic in sorted(diagnostics, key=lambda d: d.range.start.line):
                self._print_diagnostic(diagnostic)

        self._print_summary(findings)

    def report_steps(self, definitions: List[StepDefinition]) -> None:
        """List registered step definitions."""
        if not definitions:
            self._print_colored("No step definitions found.", "yellow")
            return
        for definition in definitions:
            self._print_colored(f"{definition.kind.value.capitalize():<5} {definition.pattern}", "blue")
            print(f"      {definition.location}")
            for phase, names in definition.required_dependencies().items():
                print(f"      requires {phase.value}: {', '.join(names)}")
            if definition.produced_state is None:
                print("      produces: (unknown)")
            elif definition.produced_state:
                print(f"      produces: {', '.join(definition.produced_state)}")

    def _print_file_header(self, file_path: str) -> None:
        if self.use_colors:
            print(f"\n{self.COLORS['blue']}{file_path}{self.COLORS['reset']}")
        else:
            print(f"\n{file_path}")

    def _print_diagnostic(self, diagnostic: Diagnostic) -> None:
        """Print a single diagnostic."""
        if diagnostic.severity == DiagnosticSeverity.ERROR:
            color = "red"
            prefix = "ERROR"
        elif diagnostic.severity == DiagnosticSeverity.WARNING:
            color = "yellow"
            prefix = "WARN "
        else:
            color = "blue"
            prefix = "INFO "

        # Editors count from 0, people from 1
        start = diagnostic.range.start
        location = f"{start.line + 1}:{start.character + 1}"
        lines = diagnostic.message.splitlines() or [""]

        if self.use_colors:
            print(
                f"  {location:>7} {self.COLORS[color]}{prefix}{self.COLORS['reset']} "
                f"{lines[0]} [{diagnostic.code}]"
            )
        else:
            print(f"  {location:>7} {prefix} {lines[0]} [{diagnostic.code}]")
        for line in lines[1:]:
            if line:
                print(f"                {line}")

    def _print_success(self, message: str) -> None:
        if self.use_colors:
            print(f"{self.COLORS['green']}✓ {message}{self.COLORS['reset']}")
        else:
            print(f"✓ {message}")

    def _print_summary(self, findings: List[Finding]) -> None:
        """Print summary of diagnostics."""
        counts: Dict[str, int] = {}
        for _, diagnostic in findings:
            counts[diagnostic.code] = counts.get(diagnostic.code, 0) + 1

        print(f"\n{'-' * 60}")
        print(f"Found {len(findings)} issue(s):")
        for code, count in sorted(counts.items()):
            self._print_colored(f"  {count} {code}", "red")

    def _print_colored(self, message: str, color: str) -> None:
        if self.use_colors:
            print(f"{self.COLORS[color]}{message}{self.COLORS['reset']}")
        else:
            print(message)


class JSONReporter:
    """Reports diagnostics in JSON format."""

    def report(self, findings: List[Finding]) -> str:
        diagnostics_data = [
            {
                "file": file_path,
                "line": d.range.start.line + 1,
                "column": d.range.start.character + 1,
                "end_column": d.range.end.character + 1,
                "severity": d.severity.value,
                "code": d.code,
                "message": d.message,
                "data": d.data,
            }
            for file_path, d in findings
        ]
        return json.dumps(
            {"diagnostics": diagnostics_data, "total": len(findings)}, indent=2
        )

    def report_steps(self, definitions: List[StepDefinition]) -> str:
        steps_data = [
            {
                "kind": d.kind.value,
                "pattern": d.pattern,
                "file": d.location.file,
                "line": d.location.line,
                "column": d.location.column,
                "dependencies": {
                    phase.value: {name: req.value for name, req in entries.items()}
                    for phase, entries in d.dependencies.items()
                },
                "produces": None
                if d.produced_state is None
                else {
                    name: {"type": shape.type, "optional": shape.optional}
                    for name, shape in d.produced_state.items()
                },
            }
            for d in definitions
        ]
        return json.dumps({"steps": steps_data, "total": len(definitions)}, indent=2)


def collect_documents(paths: List[Path], config: StepForgeConfig) -> List[Path]:
    """Feature files named on the command line, or the configured ones.

    Raises:
        FileNotFoundError: If a named path does not exist
    """
    if not paths:
        return config.find_feature_files()

    documents: List[Path] = []
    for path in paths:
        if path.is_file():
            documents.append(path)
        elif path.is_dir():
            documents.extend(sorted(path.rglob("*.feature")))
        else:
            raise FileNotFoundError(f"{path} is not a file or directory")
    return documents


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 = all scenarios valid, 1 = diagnostics found, 2 = error)
    """
    parser = argparse.ArgumentParser(
        description="step-forge-check: validate Gherkin scenarios against step-forge step definitions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        help="Feature files or directories (default: feature-files from pyproject.toml)",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to pyproject.toml",
    )

    parser.add_argument(
        "--format",
        choices=["terminal", "json"],
        default="terminal",
        help="Output format",
    )

    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output file for JSON (default: stdout)",
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    parser.add_argument(
        "--list-steps",
        action="store_true",
        help="List the extracted step definitions and exit",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")

    start_dir = None
    if args.paths:
        start_dir = args.paths[0] if args.paths[0].is_dir() else args.paths[0].parent

    try:
        session = AnalysisSession(start_dir=start_dir, config_file=args.config)
        session.load_all()

        if args.list_steps:
            definitions = session.registry.all()
            if args.format == "json":
                _emit(JSONReporter().report_steps(definitions), args.output)
            else:
                TerminalReporter(use_colors=not args.no_color).report_steps(definitions)
            return 0

        config = session.config or load_project_config(start_dir, args.config)
        validator = ScenarioValidator(session.registry.snapshot(), config)
        findings: List[Finding] = []
        for document in collect_documents(args.paths, config):
            try:
                text = document.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logging.warning(f"Could not read feature file {document}: {e}")
                continue
            for diagnostic in validator.validate_text(text, str(document)).diagnostics:
                findings.append((str(document), diagnostic))

        if args.format == "terminal":
            TerminalReporter(use_colors=not args.no_color).report(findings)
        else:
            _emit(JSONReporter().report(findings), args.output)

        has_errors = any(d.severity == DiagnosticSeverity.ERROR for _, d in findings)
        return 1 if has_errors else 0

    except (ProjectConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        return 2


def _emit(output: str, destination: Optional[Path]) -> None:
    if destination:
        destination.write_text(output)
    else:
        print(output)


if __name__ == "__main__":
    sys.exit(main())
