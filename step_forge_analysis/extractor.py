"""
Step extractor: reconstructs step definitions from builder chains.

A registration is a single expression statement of the shape

    GivenBuilder(<pattern>)[.dependencies(...)][.produces(...)].step(<body>).register()

The extractor never runs user code. Each module is parsed with astroid and
every call is checked for being a builder root (``GivenBuilder``,
``WhenBuilder`` or ``ThenBuilder`` imported from one of the configured
builder modules). From there the enclosing stage calls are walked upward.
The set of stages is closed: anything unexpected discards the chain.

Extraction is permissive. A chain that cannot be understood contributes no
definition, and a part that cannot be resolved (dependencies, produced
state) degrades to "unknown" instead of raising. Everything that went wrong
is kept as ``ChainIssue``s so the pylint checker can report it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import astroid
from astroid import nodes
from astroid.exceptions import AstroidBuildingError
from pylint.lint.utils import augmented_sys_path

from step_forge_analysis.config import StepForgeConfig, get_config
from step_forge_analysis.models import (
    PropertyShape,
    Requirement,
    SourceLocation,
    StepDefinition,
    StepKind,
)
from step_forge_analysis.runtime.builders import ALLOWED_PHASES
from step_forge_analysis.utils import (
    FunctionNode,
    describe_value_type,
    dict_string_items,
    first_return,
    import_origin,
    in_modules,
    module_name_for,
    resolve_function,
    returns_of,
    safe_infer,
    string_constant,
    subscript_parts,
    template_text,
)

BUILDER_KINDS = {
    "GivenBuilder": StepKind.GIVEN,
    "WhenBuilder": StepKind.WHEN,
    "ThenBuilder": StepKind.THEN,
}

# Stage name -> position in the chain; stages sharing a position may come in any order
CHAIN_STAGES = {
    "dependencies": 0,
    "produces": 0,
    "step": 1,
    "register": 2,
}

# Return annotation wrappers whose last argument is the produced type
AWAITABLE_WRAPPERS = {"Awaitable", "Coroutine", "Future", "Task"}

# Classes from these modules describe containers, not step outputs
OPAQUE_CLASS_MODULES = {"builtins", "typing", "typing_extensions", "collections.abc", "_collections_abc"}

MAX_UNWRAP_DEPTH = 5

# Issue symbols, shared with the pylint messages
UNPARSABLE_PATTERN = "step-forge-unparsable-pattern"
MISSING_REGISTER = "step-forge-missing-register"
INVALID_DEPENDENCIES = "step-forge-invalid-dependencies"
UNKNOWN_CHAIN_STAGE = "step-forge-unknown-chain-stage"
UNRESOLVED_PRODUCED_STATE = "step-forge-unresolved-produced-state"


@dataclass
class ChainIssue:
    """Something the extractor could not make sense of in a chain."""
    symbol: str
    node: nodes.NodeNG
    args: Tuple[Any, ...] = ()


@dataclass
class ChainAnalysis:
    """Everything learned from one builder chain."""
    root: nodes.Call
    kind: StepKind
    stages: Dict[str, nodes.Call] = field(default_factory=dict)
    pattern: Optional[str] = None
    dependencies: Optional[Dict[StepKind, Dict[str, Requirement]]] = None
    produced_state: Optional[Dict[str, PropertyShape]] = None
    issues: List[ChainIssue] = field(default_factory=list)
    broken: bool = False
    definition: Optional[StepDefinition] = None

    def add_issue(self, symbol: str, node: nodes.NodeNG, *args: Any) -> None:
        self.issues.append(ChainIssue(symbol, node, tuple(args)))

    @property
    def body(self) -> Optional[nodes.NodeNG]:
        """The argument passed to ``.step()``, if any."""
        call = self.stages.get("step")
        if call is None or not call.args:
            return None
        return call.args[0]


class StepExtractor:
    """Finds builder chains in astroid modules and turns them into definitions."""

    def __init__(self, builder_modules: Optional[Iterable[str]] = None):
        if builder_modules is None:
            builder_modules = get_config().builder_modules
        self.builder_modules = set(builder_modules)

    def builder_kind(self, call: nodes.Call) -> Optional[StepKind]:
        """Step kind of a builder-root call, None for any other call.

        The callee must resolve to one of the builder symbols of a configured
        builder module; a local function with the same name does not count.
        """
        func = call.func
        if not isinstance(func, (nodes.Name, nodes.Attribute)):
            return None

        inferred = safe_infer(func)
        if isinstance(inferred, (nodes.FunctionDef, nodes.ClassDef)):
            kind = BUILDER_KINDS.get(inferred.name)
            if kind is None:
                return None
            module = inferred.root().name
            return kind if in_modules(module, self.builder_modules) else None

        # The builder module may not be importable from here; trust the import
        origin = import_origin(func)
        if origin is None:
            return None
        module, real_name = origin
        kind = BUILDER_KINDS.get(real_name)
        if kind is not None and in_modules(module, self.builder_modules):
            logging.debug(f"Builder {real_name} resolved through its import from {module}")
            return kind
        return None

    def analyze_chain(self, root: nodes.Call, file: Optional[str] = None) -> Optional[ChainAnalysis]:
        """Analyse the chain rooted at a call.

        Args:
            root: A call node, possibly a builder root
            file: Path recorded in the definition location

        Returns:
            The analysis, or None if the call is not a builder root
        """
        kind = self.builder_kind(root)
        if kind is None:
            return None

        analysis = ChainAnalysis(root=root, kind=kind)
        self._walk_stages(analysis)
        if analysis.broken:
            return analysis

        analysis.pattern = self._extract_pattern(root, analysis)

        dependencies_call = analysis.stages.get("dependencies")
        if dependencies_call is not None:
            analysis.dependencies = self._extract_dependencies(dependencies_call, analysis)

        analysis.produced_state = self._extract_produced_state(analysis)

        if "register" not in analysis.stages:
            analysis.add_issue(MISSING_REGISTER, root, root.func.as_string())

        analysis.definition = self._build_definition(analysis, file)
        return analysis

    def extract(self, module: nodes.Module, file: Optional[str] = None) -> List[StepDefinition]:
        """All step definitions declared in a module, in source order."""
        file = file or module.file or module.name
        definitions = []
        for call in module.nodes_of_class(nodes.Call):
            analysis = self.analyze_chain(call, file)
            if analysis is not None and analysis.definition is not None:
                definitions.append(analysis.definition)
        return definitions

    def _walk_stages(self, analysis: ChainAnalysis) -> None:
        """Collect the stage calls enclosing the root call."""
        current: nodes.NodeNG = analysis.root
        position = -1
        while True:
            attribute = current.parent
            if not isinstance(attribute, nodes.Attribute) or attribute.expr is not current:
                return
            call = attribute.parent
            name = attribute.attrname
            if not isinstance(call, nodes.Call) or call.func is not attribute:
                analysis.add_issue(UNKNOWN_CHAIN_STAGE, attribute, name)
                analysis.broken = True
                return
            stage_position = CHAIN_STAGES.get(name)
            if stage_position is None or name in analysis.stages or stage_position < position:
                analysis.add_issue(UNKNOWN_CHAIN_STAGE, call, name)
                analysis.broken = True
                return
            analysis.stages[name] = call
            position = stage_position
            current = call

    def _extract_pattern(self, root: nodes.Call, analysis: ChainAnalysis) -> Optional[str]:
        if len(root.args) != 1 or root.keywords:
            analysis.add_issue(UNPARSABLE_PATTERN, root, root.func.as_string())
            return None

        argument = root.args[0]
        pattern = template_text(argument)
        if pattern is None:
            function = resolve_function(argument)
            if isinstance(function, nodes.FunctionDef):
                returned = first_return(function)
                pattern = template_text(returned.value if returned is not None else None)
            elif isinstance(function, nodes.Lambda):
                pattern = template_text(function.body)

        if pattern is None:
            analysis.add_issue(UNPARSABLE_PATTERN, argument, root.func.as_string())
        return pattern

    def _extract_dependencies(
        self, call: nodes.Call, analysis: ChainAnalysis
    ) -> Optional[Dict[StepKind, Dict[str, Requirement]]]:
        """Read a ``.dependencies(...)`` declaration.

        Returns:
            Requirements per declared phase, or None if the declaration is not
            a dict literal (or keyword arguments)
        """
        if call.args and (call.keywords or len(call.args) > 1):
            analysis.add_issue(INVALID_DEPENDENCIES, call, "expected a single dict literal")
            return None

        if call.args:
            argument = call.args[0]
            if not isinstance(argument, nodes.Dict):
                analysis.add_issue(INVALID_DEPENDENCIES, argument, "expected a dict literal")
                return None
            phases = dict_string_items(argument)
            if phases is None:
                analysis.add_issue(INVALID_DEPENDENCIES, argument, "phase names must be string literals")
                return None
        else:
            phases = []
            for keyword in call.keywords or []:
                if keyword.arg is None:
                    analysis.add_issue(INVALID_DEPENDENCIES, keyword, "'**' arguments are not supported")
                    return None
                phases.append((keyword.arg, keyword.value))

        dependencies: Dict[StepKind, Dict[str, Requirement]] = {}
        for phase_name, value in phases:
            try:
                phase = StepKind(phase_name)
            except ValueError:
                analysis.add_issue(INVALID_DEPENDENCIES, value, f"unknown phase '{phase_name}'")
                continue
            if phase not in ALLOWED_PHASES[analysis.kind]:
                analysis.add_issue(
                    INVALID_DEPENDENCIES,
                    value,
                    f"a {analysis.kind.value} step cannot depend on {phase.value} state",
                )
            dependencies[phase] = self._phase_requirements(phase, value, analysis)
        return dependencies

    def _phase_requirements(
        self, phase: StepKind, value: nodes.NodeNG, analysis: ChainAnalysis
    ) -> Dict[str, Requirement]:
        """Entries of one phase; any malformed entry empties the whole phase."""
        if not isinstance(value, nodes.Dict):
            analysis.add_issue(INVALID_DEPENDENCIES, value, f"'{phase.value}' must be a dict literal")
            return {}
        items = dict_string_items(value)
        if items is None:
            analysis.add_issue(
                INVALID_DEPENDENCIES, value, f"'{phase.value}' keys must be string literals"
            )
            return {}

        requirements: Dict[str, Requirement] = {}
        for name, requirement in items:
            text = string_constant(requirement)
            try:
                requirements[name] = Requirement(text)
            except ValueError:
                analysis.add_issue(
                    INVALID_DEPENDENCIES,
                    requirement,
                    f"'{name}' must be 'required' or 'optional'",
                )
                return {}
        return requirements

    def _extract_produced_state(self, analysis: ChainAnalysis) -> Optional[Dict[str, PropertyShape]]:
        produces_call = analysis.stages.get("produces")
        if produces_call is not None:
            shape = self._declared_schema(produces_call)
            if shape is None:
                analysis.add_issue(UNRESOLVED_PRODUCED_STATE, produces_call, "invalid produces() schema")
            return shape

        body = analysis.body
        if body is None:
            return None

        function = resolve_function(body)
        if function is None:
            analysis.add_issue(UNRESOLVED_PRODUCED_STATE, body, "step body is not a function")
            return None

        if isinstance(function, nodes.FunctionDef) and function.returns is not None:
            shape = self._shape_from_annotation(function.returns)
            if shape is not None:
                return shape

        shape = self._shape_from_returns(function)
        if shape is None:
            analysis.add_issue(UNRESOLVED_PRODUCED_STATE, body, "returned value is not a dict literal")
        return shape

    def _declared_schema(self, call: nodes.Call) -> Optional[Dict[str, PropertyShape]]:
        """Schema declared with ``.produces({"name": str})`` or ``.produces(name=str)``."""
        items: List[Tuple[str, nodes.NodeNG]] = []
        if len(call.args) > 1:
            return None
        if call.args:
            argument = call.args[0]
            if not isinstance(argument, nodes.Dict):
                return None
            declared = dict_string_items(argument)
            if declared is None:
                return None
            items.extend(declared)
        for keyword in call.keywords or []:
            if keyword.arg is None:
                return None
            items.append((keyword.arg, keyword.value))

        return {name: _annotation_shape(value, optional=False) for name, value in items}

    def _shape_from_annotation(self, annotation: nodes.NodeNG) -> Optional[Dict[str, PropertyShape]]:
        """Fields of the class a return annotation names, if it names one."""
        node = annotation
        for _ in range(MAX_UNWRAP_DEPTH):
            parts = subscript_parts(node)
            if parts is None or parts[0] not in AWAITABLE_WRAPPERS or not parts[1]:
                break
            node = parts[1][-1]

        inferred = safe_infer(node)
        if not isinstance(inferred, nodes.ClassDef):
            return None
        if inferred.root().name in OPAQUE_CLASS_MODULES:
            return None
        return _class_fields(inferred)

    def _shape_from_returns(self, function: FunctionNode) -> Optional[Dict[str, PropertyShape]]:
        """Keys of the dict literals a step body returns.

        A key missing from some return paths is optional. A bare ``return``
        (or ``return None``) contributes no keys.
        """
        if isinstance(function, nodes.FunctionDef):
            values = [statement.value for statement in returns_of(function)]
        else:
            values = [function.body]

        returned: List[Dict[str, nodes.NodeNG]] = []
        for value in values:
            if value is None or (isinstance(value, nodes.Const) and value.value is None):
                returned.append({})
                continue
            literal = value if isinstance(value, nodes.Dict) else safe_infer(value)
            if not isinstance(literal, nodes.Dict):
                return None
            items = dict_string_items(literal)
            if items is None:
                return None
            returned.append(dict(items))

        shape: Dict[str, PropertyShape] = {}
        for keys in returned:
            for name in keys:
                if name in shape:
                    continue
                present = [candidate[name] for candidate in returned if name in candidate]
                shape[name] = PropertyShape(
                    type=describe_value_type(present[0]),
                    optional=len(present) < len(returned),
                )
        return shape

    def _build_definition(self, analysis: ChainAnalysis, file: Optional[str]) -> Optional[StepDefinition]:
        root = analysis.root
        if analysis.pattern is None:
            logging.debug(f"Discarding builder chain at line {root.lineno}: no pattern")
            return None
        if analysis.body is None and analysis.dependencies is None:
            logging.debug(
                f"Discarding builder chain '{analysis.pattern}' at line {root.lineno}: "
                f"neither a step body nor dependencies"
            )
            return None

        location = SourceLocation(
            file=file or root.root().file or root.root().name,
            line=root.lineno,
            column=root.col_offset + 1,
        )
        return StepDefinition(
            pattern=analysis.pattern,
            kind=analysis.kind,
            location=location,
            dependencies=analysis.dependencies or {},
            produced_state=analysis.produced_state,
        )


def _annotation_shape(annotation: nodes.NodeNG, optional: bool) -> PropertyShape:
    """Shape of a field from its annotation (``NotRequired``/``Required`` aware)."""
    parts = subscript_parts(annotation)
    if parts is not None and parts[0] in ("NotRequired", "Required") and parts[1]:
        return PropertyShape(type=_type_text(parts[1][0]), optional=parts[0] == "NotRequired")
    return PropertyShape(type=_type_text(annotation), optional=optional)


def _type_text(annotation: nodes.NodeNG) -> str:
    literal = string_constant(annotation)
    if literal is not None:
        return literal
    return annotation.as_string()


def _class_total(klass: nodes.ClassDef) -> bool:
    for keyword in klass.keywords or []:
        if keyword.arg == "total" and isinstance(keyword.value, nodes.Const):
            return bool(keyword.value.value)
    return True


def _class_fields(klass: nodes.ClassDef) -> Dict[str, PropertyShape]:
    """Annotated fields of a class and its user-defined bases."""
    lineage = [klass] + [
        ancestor
        for ancestor in klass.ancestors()
        if ancestor.root().name not in OPAQUE_CLASS_MODULES
    ]
    fields: Dict[str, PropertyShape] = {}
    for cls in reversed(lineage):
        optional = not _class_total(cls)
        for statement in cls.body:
            if not isinstance(statement, nodes.AnnAssign):
                continue
            if not isinstance(statement.target, nodes.AssignName):
                continue
            parts = subscript_parts(statement.annotation)
            if parts is not None and parts[0] == "ClassVar":
                continue
            fields[statement.target.name] = _annotation_shape(statement.annotation, optional)
    return fields


def extract_definitions(
    module: nodes.Module, file: Optional[str] = None, builder_modules: Optional[Iterable[str]] = None
) -> List[StepDefinition]:
    """Convenience wrapper around ``StepExtractor.extract``."""
    return StepExtractor(builder_modules).extract(module, file)


def parse_step_file(
    path: Path, extractor: StepExtractor, roots: List[str]
) -> List[StepDefinition]:
    """Parse one step file; unreadable or invalid files yield no definitions."""
    file = str(Path(path).resolve())
    try:
        source = Path(file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logging.warning(f"Could not read step file {file}: {e}")
        return []

    try:
        module = astroid.parse(source, module_name=module_name_for(file, roots), path=file)
    except AstroidBuildingError as e:
        logging.warning(f"Could not parse step file {file}: {e}")
        return []

    definitions = extractor.extract(module, file)
    logging.debug(f"Extracted {len(definitions)} step definition(s) from {file}")
    return definitions


def parse_step_files(
    paths: Iterable[Path], config: Optional[StepForgeConfig] = None
) -> Dict[str, List[StepDefinition]]:
    """Extract definitions from several files, one file after the other.

    The project root is put on the import path so that step files can
    import each other (and the builder modules) during inference.

    Args:
        paths: Step files to parse
        config: Project configuration (default: the global one)

    Returns:
        Definitions per resolved file path, in the order the files were given
    """
    config = config or get_config()
    extractor = StepExtractor(config.builder_modules)
    roots = [str(config.project_root)]

    # Step files may have changed on disk since the last pass
    astroid.MANAGER.clear_cache()

    results: Dict[str, List[StepDefinition]] = {}
    with augmented_sys_path(roots):
        for path in paths:
            results[str(Path(path).resolve())] = parse_step_file(path, extractor, roots)
    return results
