"""
Message definitions for the step-forge pylint checker.

All messages concern step declaration files, i.e. modules that register
steps with GivenBuilder/WhenBuilder/ThenBuilder chains.
"""

# Pylint message format: (message-text, message-symbol, help-text)
MESSAGES = {
    "W9101": (
        "Step pattern of %s() cannot be determined statically.",
        "step-forge-unparsable-pattern",
        "The pattern must be a string literal, or a lambda or function whose body "
        "(or first return) is a string literal or an f-string. Any other form hides "
        "the step from completion, definition lookup and scenario validation.",
    ),
    "W9102": (
        "Step chain started by %s() is never registered.",
        "step-forge-missing-register",
        "A builder chain that does not end with .register() declares a step that is "
        "never added to the step collection, so no scenario can use it.",
    ),
    "W9103": (
        "Invalid step dependencies: %s.",
        "step-forge-invalid-dependencies",
        "Dependencies must be a dict literal (or given=/when=/then= keyword arguments) "
        "mapping each phase to a dict literal of property names and 'required' or "
        "'optional'. A malformed phase is treated as declaring no dependencies.",
    ),
    "W9104": (
        "Unexpected '%s' stage in step builder chain.",
        "step-forge-unknown-chain-stage",
        "Builder chains may only use .dependencies(), .produces(), .step() and "
        ".register(), each at most once and in that order. Chains of any other shape "
        "are ignored by the analyzer.",
    ),
    "W9105": (
        "Produced state of this step cannot be determined: %s.",
        "step-forge-unresolved-produced-state",
        "Later steps relying on properties set here will be reported as missing "
        "dependencies. Return a dict literal, annotate the step function with a "
        "TypedDict or dataclass, or declare the output with .produces({...}).",
    ),
    "W9106": (
        "%s step pattern '%s' is already declared at %s.",
        "step-forge-duplicate-pattern",
        "Two definitions with the same kind and pattern make every matching step "
        "ambiguous.",
    ),
}
