"""
World state model: the three phase buckets steps read from and merge into.

Merge contract (``merge_state``):
- lists concatenate (a non-list value merged into a list is appended);
- dicts merge recursively;
- a previously set, non-None scalar that meets a different value is a
  conflict and raises ``MergeConflictError``;
- re-asserting an identical value is a no-op.

The static validator mirrors this only as name membership: after a step
runs, every key it returned is present in its phase.
"""

from typing import Any, Dict, Iterator, Mapping, Optional

from step_forge_analysis.models import StepKind


class MergeConflictError(Exception):
    """Raised when a merge would overwrite a previously set value."""

    def __init__(self, path: str, existing: Any, new: Any):
        self.path = path
        self.existing = existing
        self.new = new
        super().__init__(
            f"Merge would have destroyed previous value {existing!r} "
            f"with {new!r} at '{path}'"
        )


class MissingDependencyError(Exception):
    """Raised when a step runs without a property it requires."""

    def __init__(self, phase: StepKind, key: str):
        self.phase = phase
        self.key = key
        super().__init__(f"Key {key} is required in {phase.value} state")


def _merge_value(path: str, existing: Any, new: Any) -> Any:
    if isinstance(existing, list):
        if isinstance(new, list):
            return existing + new
        return existing + [new]
    if isinstance(existing, dict):
        if isinstance(new, dict):
            return merge_state(existing, new, _path=path)
        raise MergeConflictError(path, existing, new)
    if existing is not None and existing != new:
        raise MergeConflictError(path, existing, new)
    if isinstance(new, (dict, list)):
        return _copy(new)
    return new


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy(item) for item in value]
    return value


def merge_state(
    current: Mapping[str, Any], update: Mapping[str, Any], _path: str = ""
) -> Dict[str, Any]:
    """Merge ``update`` into ``current`` and return the result as a new dict.

    Neither input is modified.

    Args:
        current: Existing state
        update: Values produced by a step

    Returns:
        The merged state

    Raises:
        MergeConflictError: If a set scalar would be overwritten
    """
    merged = {key: _copy(value) for key, value in current.items()}
    for key, new in update.items():
        path = f"{_path}.{key}" if _path else key
        if key in merged:
            merged[key] = _merge_value(path, merged[key], new)
        else:
            merged[key] = _copy(new)
    return merged


class PhaseState(Mapping[str, Any]):
    """Read-only view of one phase bucket that can be merged into."""

    def __init__(self, phase: StepKind, values: Optional[Mapping[str, Any]] = None):
        self.phase = phase
        self._values: Dict[str, Any] = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"PhaseState({self.phase.value}, {self._values!r})"

    def merge(self, update: Mapping[str, Any]) -> None:
        """Merge step output into this phase (the stored dict is replaced)."""
        self._values = merge_state(self._values, update)

    def narrowed(self, keys) -> Dict[str, Any]:
        """Copy of the values for the given keys that are present."""
        return {key: self._values[key] for key in keys if key in self._values}

    def require(self, key: str) -> Any:
        """Value of a required property.

        Raises:
            MissingDependencyError: If the property is absent or None
        """
        if self._values.get(key) is None:
            raise MissingDependencyError(self.phase, key)
        return self._values[key]


class World:
    """Shared state of one scenario run, split into given/when/then."""

    def __init__(self):
        self._phases: Dict[StepKind, PhaseState] = {kind: PhaseState(kind) for kind in StepKind}

    @property
    def given(self) -> PhaseState:
        return self._phases[StepKind.GIVEN]

    @property
    def when(self) -> PhaseState:
        return self._phases[StepKind.WHEN]

    @property
    def then(self) -> PhaseState:
        return self._phases[StepKind.THEN]

    def phase(self, kind: StepKind) -> PhaseState:
        return self._phases[kind]

    def merge(self, kind: StepKind, update: Mapping[str, Any]) -> None:
        """Merge step output into the bucket of the given phase."""
        self._phases[kind].merge(update)
