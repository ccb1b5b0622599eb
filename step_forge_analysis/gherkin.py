"""
Line-oriented splitter for Gherkin specification documents.

Only what validation needs is recognised: block headers (Feature, Rule,
Background, Scenario, Scenario Outline/Template, Example) and step lines.
Tags, comments, tables, doc strings, descriptions and Examples blocks are
skipped. Steps that appear before any scenario header form an implicit,
unnamed scenario so that bare step lists can be validated too.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from step_forge_analysis.models import StepKind

STEP_RE = re.compile(r"^(\s*)(Given|When|Then|And|But|\*)\s+(.+?)\s*$")
STEP_PREFIX_RE = re.compile(r"^(\s*)(Given|When|Then|And|But|\*)(\s+)(.*)$")
HEADER_RE = re.compile(
    r"^\s*(Feature|Rule|Background|Scenario Outline|Scenario Template|Scenario"
    r"|Examples|Scenarios|Example):\s*(.*?)\s*$"
)

SCENARIO_KEYWORDS = {"Background", "Scenario", "Scenario Outline", "Scenario Template", "Example"}
EXAMPLES_KEYWORDS = {"Examples", "Scenarios"}
CONTINUATION_KEYWORDS = {"And", "But", "*"}
DOC_STRING_DELIMITERS = ('"""', "```")


class GherkinParseError(Exception):
    """Raised for documents that cannot be split into scenarios."""

    def __init__(self, message: str, line: int):
        self.line = line
        super().__init__(f"Line {line + 1}: {message}")


@dataclass
class ParsedStep:
    """A step line. ``line`` and ``column`` are 0-based; ``column`` is the keyword start."""
    keyword: str
    text: str
    line: int
    column: int
    # Effective kind after resolving And/But/*; None if nothing precedes it
    kind: Optional[StepKind]
    length: int

    @property
    def end_column(self) -> int:
        return self.column + self.length


@dataclass
class ParsedScenario:
    name: str
    line: int
    keyword: str = ""
    # Line of the enclosing Rule header; None at feature level
    rule: Optional[int] = None
    steps: List[ParsedStep] = field(default_factory=list)

    @property
    def is_background(self) -> bool:
        return self.keyword == "Background"


@dataclass
class ParsedFeature:
    uri: str = ""
    name: Optional[str] = None
    scenarios: List[ParsedScenario] = field(default_factory=list)

    def steps(self) -> List[ParsedStep]:
        return [step for scenario in self.scenarios for step in scenario.steps]


def parse_feature(text: str, uri: str = "") -> ParsedFeature:
    """Split a document into scenarios and steps.

    Args:
        text: Document contents
        uri: Identifier recorded in the result

    Returns:
        The parsed feature

    Raises:
        GherkinParseError: If the document has more than one Feature header
            or an unterminated doc string
    """
    feature = ParsedFeature(uri=uri)
    current: Optional[ParsedScenario] = None
    current_rule: Optional[int] = None
    last_primary: Optional[StepKind] = None
    in_examples = False
    doc_string: Optional[Tuple[str, int]] = None

    for index, raw in enumerate(text.splitlines()):
        stripped = raw.strip()

        if doc_string is not None:
            if stripped.startswith(doc_string[0]):
                doc_string = None
            continue
        if stripped.startswith(DOC_STRING_DELIMITERS):
            doc_string = (stripped[:3], index)
            continue
        if not stripped or stripped.startswith(("#", "@", "|")):
            continue

        header = HEADER_RE.match(raw)
        if header:
            keyword, name = header.group(1), header.group(2)
            if keyword == "Feature":
                if feature.name is not None:
                    raise GherkinParseError("more than one Feature header", index)
                feature.name = name
                current = None
                current_rule = None
            elif keyword in EXAMPLES_KEYWORDS:
                in_examples = True
                continue
            elif keyword == "Rule":
                current = None
                current_rule = index
            else:
                current = ParsedScenario(name=name, line=index, keyword=keyword, rule=current_rule)
                feature.scenarios.append(current)
            in_examples = False
            last_primary = None
            continue

        step = STEP_RE.match(raw)
        if step is None or in_examples:
            # Free-form description text
            continue

        indent, keyword, step_text = step.groups()
        if current is None:
            current = ParsedScenario(name="", line=index, rule=current_rule)
            feature.scenarios.append(current)
            last_primary = None

        if keyword not in CONTINUATION_KEYWORDS:
            last_primary = StepKind.from_keyword(keyword)
        current.steps.append(
            ParsedStep(
                keyword=keyword,
                text=step_text,
                line=index,
                column=len(indent),
                kind=last_primary,
                length=len(stripped),
            )
        )

    if doc_string is not None:
        raise GherkinParseError("unterminated doc string", doc_string[1])
    return feature


def step_kind_at(lines: List[str], line: int) -> Optional[StepKind]:
    """Effective kind of the step written on a line.

    And/But/* look backwards for the nearest Given/When/Then, without
    crossing a block header.
    """
    if line < 0 or line >= len(lines):
        return None
    for index in range(line, -1, -1):
        text = lines[index]
        if index != line and HEADER_RE.match(text):
            return None
        prefix = STEP_PREFIX_RE.match(text)
        if prefix is None:
            if index == line:
                return None
            continue
        keyword = prefix.group(2)
        if keyword not in CONTINUATION_KEYWORDS:
            return StepKind.from_keyword(keyword)
    return None


def typed_step_text(line_text: str, character: Optional[int] = None) -> Optional[Tuple[str, int]]:
    """Step text typed on a line up to a cursor position.

    Returns:
        (typed text, 0-based column where the text starts), or None if the
        line is not a step line
    """
    if character is not None:
        line_text = line_text[:character]
    prefix = STEP_PREFIX_RE.match(line_text)
    if prefix is None:
        return None
    indent, keyword, spacing, typed = prefix.groups()
    return typed, len(indent) + len(keyword) + len(spacing)
