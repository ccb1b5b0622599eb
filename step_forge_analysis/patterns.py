"""
Pattern engine for step texts.

A step pattern is literal text with optional placeholders, either
``{name}`` or ``{name:type}``. Each pattern compiles into:

- an exact matcher, anchored at both ends and case-insensitive, where every
  placeholder captures one or more characters;
- a prefix matcher used for completion, which checks whether the pattern
  (with placeholders replaced by a fixed token) starts with what the user
  has typed so far.

The two matchers deliberately look in opposite directions: the exact matcher
tests the step text against the pattern, the prefix matcher tests the pattern
against the typed text. That is what allows completions to be offered before
any argument values are known.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

# Any brace-delimited slot counts as a placeholder for matching purposes
PLACEHOLDER_RE = re.compile(r"\{[^}]+\}")

PREFIX_TOKEN = "value"

PLACEHOLDER_DEFAULTS = {
    "number": "0",
    "int": "0",
    "integer": "0",
    "string": "example",
    "str": "example",
    "boolean": "true",
    "bool": "true",
}


@dataclass(frozen=True)
class Placeholder:
    """A slot in a step pattern."""
    name: str
    type: Optional[str] = None

    @classmethod
    def parse(cls, slot: str) -> "Placeholder":
        """Parse the text between the braces of a placeholder."""
        name, _, type_name = slot.partition(":")
        return cls(name=name.strip(), type=type_name.strip() or None)

    @property
    def default_value(self) -> str:
        """Value inserted for this slot when completing a step."""
        if self.type:
            default = PLACEHOLDER_DEFAULTS.get(self.type.lower())
            if default is not None:
                return default
        return self.name


class CompiledPattern:
    """A step pattern compiled into exact and prefix matchers."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.placeholders: List[Placeholder] = [
            Placeholder.parse(m.group(0)[1:-1]) for m in PLACEHOLDER_RE.finditer(pattern)
        ]
        self.exact_regex = re.compile(_exact_source(pattern), re.IGNORECASE)
        self.prefix_text = PLACEHOLDER_RE.sub(PREFIX_TOKEN, pattern)

    def __repr__(self) -> str:
        return f"CompiledPattern({self.pattern!r})"

    def match(self, text: str) -> Optional[Tuple[str, ...]]:
        """Match a full step text.

        Args:
            text: Step text without its keyword

        Returns:
            The captured placeholder values in order, or None if no match
        """
        found = self.exact_regex.match(text)
        if found is None:
            return None
        return found.groups()

    def matches(self, text: str) -> bool:
        return self.exact_regex.match(text) is not None

    def matches_prefix(self, typed: str) -> bool:
        """Check whether this pattern begins with the typed text.

        Args:
            typed: The partially typed step text

        Returns:
            True if the placeholder-substituted pattern starts with ``typed``
        """
        typed_regex = re.compile("^" + re.escape(typed), re.IGNORECASE)
        return typed_regex.match(self.prefix_text) is not None

    def render(self, *values: str) -> str:
        """Substitute values into the placeholders, in order."""
        if len(values) != len(self.placeholders):
            raise ValueError(
                f"Pattern {self.pattern!r} has {len(self.placeholders)} "
                f"placeholder(s), got {len(values)} value(s)"
            )
        parts = PLACEHOLDER_RE.split(self.pattern)
        rendered = [parts[0]]
        for value, literal in zip(values, parts[1:]):
            rendered.append(value)
            rendered.append(literal)
        return "".join(rendered)

    def snippet(self) -> str:
        """Render the pattern as an editor snippet with numbered slots.

        ``{count:int}`` becomes ``${1:0}``, ``{name}`` becomes ``${2:name}``.
        """
        counter = iter(range(1, len(self.placeholders) + 2))

        def _slot(found: "re.Match[str]") -> str:
            placeholder = Placeholder.parse(found.group(0)[1:-1])
            return f"${{{next(counter)}:{placeholder.default_value}}}"

        return PLACEHOLDER_RE.sub(_slot, self.pattern)


def _exact_source(pattern: str) -> str:
    """Build the anchored regex source for a pattern."""
    literals = PLACEHOLDER_RE.split(pattern)
    return "^" + "(.+)".join(re.escape(literal) for literal in literals) + r"\Z"


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> CompiledPattern:
    """Compile (and cache) a step pattern."""
    return CompiledPattern(pattern)


def matches_exactly(text: str, pattern: str) -> bool:
    """Check whether a step text matches a pattern exactly."""
    return compile_pattern(pattern).matches(text)


def matches_prefix(typed: str, pattern: str) -> bool:
    """Check whether a pattern starts with the typed text."""
    return compile_pattern(pattern).matches_prefix(typed)
