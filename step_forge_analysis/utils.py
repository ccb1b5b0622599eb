"""
Astroid helpers used by the step extractor and the pylint checker.
"""

from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple, Union

from astroid import nodes, Uninferable, InferenceError
from astroid.exceptions import AttributeInferenceError

FunctionNode = Union[nodes.Lambda, nodes.FunctionDef]

# Guards against cycles such as ``A = B; B = A`` when following re-bindings
MAX_REBIND_DEPTH = 5


def safe_infer(node: nodes.NodeNG) -> Optional[nodes.NodeNG]:
    """Return the first successfully inferred value of a node, if any."""
    try:
        for inferred in node.infer():
            if inferred is not Uninferable:
                return inferred
    except (InferenceError, AttributeError, StopIteration, RecursionError):
        return None
    return None


def string_constant(node: Optional[nodes.NodeNG]) -> Optional[str]:
    """Value of a string literal node, None for anything else."""
    if isinstance(node, nodes.Const) and isinstance(node.value, str):
        return node.value
    return None


def template_text(node: Optional[nodes.NodeNG]) -> Optional[str]:
    """Statically evaluate a string literal or an f-string.

    Literal segments are kept; every embedded expression becomes a
    ``{<expression source>}`` placeholder.

    Args:
        node: The expression node

    Returns:
        The template text, or None if the node is neither form
    """
    literal = string_constant(node)
    if literal is not None:
        return literal

    if not isinstance(node, nodes.JoinedStr):
        return None

    parts: List[str] = []
    for value in node.values:
        if isinstance(value, nodes.FormattedValue):
            parts.append("{" + value.value.as_string() + "}")
        else:
            text = string_constant(value)
            if text is None:
                return None
            parts.append(text)
    return "".join(parts)


def first_return(func: nodes.FunctionDef) -> Optional[nodes.Return]:
    """First top-level return statement of a function body."""
    for statement in func.body:
        if isinstance(statement, nodes.Return):
            return statement
    return None


def returns_of(func: nodes.FunctionDef) -> Iterator[nodes.Return]:
    """All return statements of a function, excluding nested scopes."""
    for child in func.get_children():
        if isinstance(child, (nodes.FunctionDef, nodes.Lambda, nodes.ClassDef)):
            continue
        yield from child.nodes_of_class(
            nodes.Return, skip_klass=(nodes.FunctionDef, nodes.Lambda, nodes.ClassDef)
        )


def resolve_function(node: Optional[nodes.NodeNG]) -> Optional[FunctionNode]:
    """Resolve an argument to the lambda or function definition it denotes."""
    if node is None:
        return None
    if isinstance(node, (nodes.Lambda, nodes.FunctionDef)):
        return node
    if isinstance(node, (nodes.Name, nodes.Attribute)):
        inferred = safe_infer(node)
        if isinstance(inferred, (nodes.Lambda, nodes.FunctionDef)):
            return inferred
    return None


def import_origin(node: nodes.NodeNG, depth: int = 0) -> Optional[Tuple[str, str]]:
    """Follow a name back to the import that bound it, without loading modules.

    Handles ``from pkg import Name``, ``from pkg import Name as Alias``,
    ``import pkg`` followed by ``pkg.Name`` and simple re-bindings such as
    ``Alias = Name``.

    Args:
        node: A Name or Attribute node used as a callee
        depth: Current re-binding depth

    Returns:
        (module name, real symbol name) or None if not bound by an import
    """
    if depth > MAX_REBIND_DEPTH:
        return None

    if isinstance(node, nodes.Attribute):
        if isinstance(node.expr, nodes.Name):
            module = _imported_module_name(node.expr)
            if module is not None:
                return module, node.attrname
        return None

    if not isinstance(node, nodes.Name):
        return None

    try:
        _, assignments = node.lookup(node.name)
    except (AttributeError, KeyError):
        return None

    for assignment in reversed(assignments):
        if isinstance(assignment, nodes.ImportFrom):
            try:
                real_name = assignment.real_name(node.name)
            except AttributeInferenceError:
                real_name = node.name
            module = assignment.modname or ""
            if assignment.level:
                module = _resolve_relative(assignment, module)
            return module, real_name
        if isinstance(assignment, nodes.AssignName) and isinstance(
            assignment.parent, nodes.Assign
        ):
            value = assignment.parent.value
            if isinstance(value, (nodes.Name, nodes.Attribute)):
                return import_origin(value, depth + 1)
    return None


def _imported_module_name(name: nodes.Name) -> Optional[str]:
    """Module bound to a name by a plain ``import`` statement."""
    try:
        _, assignments = name.lookup(name.name)
    except (AttributeError, KeyError):
        return None
    for assignment in reversed(assignments):
        if isinstance(assignment, nodes.Import):
            for module, alias in assignment.names:
                if (alias or module.split(".")[0]) == name.name:
                    return module if alias else module.split(".")[0]
    return None


def _resolve_relative(import_node: nodes.ImportFrom, module: str) -> str:
    """Turn ``from ..pkg import x`` into an absolute module name."""
    package = import_node.root().name.split(".")
    if not import_node.root().package:
        package = package[:-1]
    if import_node.level > 1:
        package = package[: len(package) - (import_node.level - 1)]
    return ".".join([p for p in package if p] + ([module] if module else []))


def subscript_parts(node: nodes.NodeNG) -> Optional[Tuple[str, List[nodes.NodeNG]]]:
    """Split ``Wrapper[A, B]`` into ('Wrapper', [A, B]).

    The wrapper name is the last dotted component (``typing.Awaitable`` gives
    'Awaitable'). String annotations are not evaluated.
    """
    if not isinstance(node, nodes.Subscript):
        return None
    wrapper = node.value
    if isinstance(wrapper, nodes.Name):
        name = wrapper.name
    elif isinstance(wrapper, nodes.Attribute):
        name = wrapper.attrname
    else:
        return None
    arguments = node.slice
    if isinstance(arguments, nodes.Tuple):
        return name, list(arguments.elts)
    return name, [arguments]


def describe_value_type(node: nodes.NodeNG) -> str:
    """Textual type of an expression, as far as astroid can infer it."""
    inferred = safe_infer(node)
    if inferred is None:
        return "Any"
    if isinstance(inferred, nodes.Const):
        return "None" if inferred.value is None else type(inferred.value).__name__
    try:
        pytype = inferred.pytype()
    except (AttributeError, InferenceError):
        return "Any"
    return pytype.rsplit(".", 1)[-1]


def dict_string_items(node: nodes.Dict) -> Optional[List[Tuple[str, nodes.NodeNG]]]:
    """Items of a dict literal whose keys are all string literals.

    Returns:
        (key, value node) pairs, or None if any key is not a string literal
    """
    items: List[Tuple[str, nodes.NodeNG]] = []
    for key, value in node.items:
        name = string_constant(key)
        if name is None:
            return None
        items.append((name, value))
    return items


def module_name_for(path: str, roots: List[str]) -> str:
    """Dotted module name of a file relative to the first matching root."""
    file_path = Path(path).resolve()
    for root in roots:
        try:
            relative = file_path.relative_to(Path(root).resolve())
        except ValueError:
            continue
        parts = list(relative.with_suffix("").parts)
        if parts and parts[-1] == "__init__":
            parts = parts[:-1]
        if parts:
            return ".".join(parts)
    return file_path.stem


def in_modules(qname: str, modules: Set[str]) -> bool:
    """Check whether a dotted name lives in (or under) one of the modules."""
    return any(qname == module or qname.startswith(module + ".") for module in modules)
