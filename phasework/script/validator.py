"""
Inline script validation.

An inline action body is parsed with Python's `ast` module and then checked
before anything is scheduled:

1. Syntax - a body that does not parse is a build-time error.
2. Reserved constructs - `stage`, `parallel` and `node` declare phases,
   parallel composition and execution agents. Those belong to the engine, so
   any call to them inside an inline body fails the run. Every distinct name
   found is reported, in the order listed in RESERVED_CONSTRUCTS.
3. Static guard pass - node kinds the evaluator does not support (imports,
   definitions, comprehensions, try/while, ...) and underscore attribute
   names are rejected up front.
"""

import ast
from dataclasses import dataclass
from typing import Iterable, Optional

from phasework.errors import InlineScriptError, SecurityViolation

RESERVED_CONSTRUCTS: tuple[str, ...] = ("stage", "parallel", "node")

ILLEGAL_STEPS_PREFIX = "Illegal Pipeline steps used in inline Pipeline - "

# Statement kinds the evaluator executes
SUPPORTED_STATEMENTS: tuple[type, ...] = (
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.For,
    ast.With,
    ast.Pass,
    ast.Break,
    ast.Continue,
)

# Expression kinds the evaluator evaluates
SUPPORTED_EXPRESSIONS: tuple[type, ...] = (
    ast.Constant,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Call,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.IfExp,
    ast.List,
    ast.Tuple,
    ast.Dict,
)

# Structural helper nodes that ast.walk also yields
SUPPORTED_HELPERS: tuple[type, ...] = (
    ast.Module,
    ast.keyword,
    ast.withitem,
    ast.expr_context,
    ast.operator,
    ast.cmpop,
    ast.boolop,
    ast.unaryop,
)

# Arithmetic operators the evaluator implements
SUPPORTED_OPERATORS: tuple[type, ...] = (
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
)


@dataclass(frozen=True)
class ParsedScript:
    """An inline body that passed validation, with its syntax tree."""
    action: str
    body: str
    tree: ast.Module


def illegal_steps_message(names: Iterable[str]) -> str:
    """Build the reserved-construct failure message."""
    return ILLEGAL_STEPS_PREFIX + ", ".join(names)


def parse_inline(action_name: str, body: str) -> ast.Module:
    """
    Parse an inline body.

    Raises:
        InlineScriptError: If the body is not valid syntax
    """
    try:
        return ast.parse(body, filename=f"<inline:{action_name}>", mode="exec")
    except SyntaxError as e:
        location = f" (line {e.lineno})" if e.lineno else ""
        raise InlineScriptError(
            action_name,
            f"Invalid inline Pipeline code in action '{action_name}': {e.msg}{location}",
        ) from e


def find_reserved_constructs(
    tree: ast.AST,
    reserved: tuple[str, ...] = RESERVED_CONSTRUCTS,
) -> tuple[str, ...]:
    """
    Find every call to a reserved construct in a tree.

    Only calls count; the same names used as plain variables are ordinary
    identifiers.

    Returns:
        Distinct names, ordered as in `reserved`
    """
    found = {
        node.func.id
        for node in ast.walk(tree)
        if isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in reserved
    }
    return tuple(name for name in reserved if name in found)


def check_supported(tree: ast.AST) -> None:
    """
    Reject node kinds and member names the evaluator will never permit.

    Raises:
        SecurityViolation: On the first unsupported node, in walk order
    """
    allowed = SUPPORTED_STATEMENTS + SUPPORTED_EXPRESSIONS + SUPPORTED_HELPERS
    for node in ast.walk(tree):
        if not isinstance(node, allowed):
            raise SecurityViolation(f"{type(node).__name__} (line {getattr(node, 'lineno', '?')})")
        if isinstance(node, ast.operator) and not isinstance(node, SUPPORTED_OPERATORS):
            raise SecurityViolation(f"operator {type(node).__name__}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise SecurityViolation(f"attribute '{node.attr}'")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise SecurityViolation(f"name '{node.id}'")


def validate_inline(
    action_name: str,
    body: str,
    reserved: Optional[tuple[str, ...]] = None,
) -> ParsedScript:
    """
    Validate an inline action body.

    Args:
        action_name: Name of the action (for error messages)
        body: Raw script text
        reserved: Reserved construct names (defaults to RESERVED_CONSTRUCTS)

    Returns:
        ParsedScript ready for evaluation

    Raises:
        InlineScriptError: Syntax error, or reserved constructs used
        SecurityViolation: Unsupported node kinds or underscore member names
    """
    tree = parse_inline(action_name, body)

    names = find_reserved_constructs(tree, reserved or RESERVED_CONSTRUCTS)
    if names:
        raise InlineScriptError(action_name, illegal_steps_message(names), names=names)

    check_supported(tree)
    return ParsedScript(action=action_name, body=body, tree=tree)
