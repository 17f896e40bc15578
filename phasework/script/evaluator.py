"""
Inline script evaluator.

A small tree-walking evaluator over the `ast` of a validated inline body.
It is a capability object: the only callables a script can reach are the
bindings handed to the constructor, and every binding name is checked with
the allow-list guard at construction time. Member reads and method calls on
runtime values go through the guard as they happen, so names that only show
up during evaluation are still rejected before they run.
"""

import ast
import logging
import operator
from collections.abc import Mapping
from contextlib import ExitStack
from typing import Any, Optional

from phasework.errors import ActionFailure, SecurityViolation
from phasework.guard import AllowListGuard, DEFAULT_GUARD
from phasework.script.validator import ParsedScript

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 100_000

BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

UNARY_OPERATORS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

# Largest str/list/tuple an arithmetic operator or range() may produce
MAX_SEQUENCE_LENGTH = 1_000_000

# Largest int a multiplication may produce, in bits
MAX_INT_BITS = 4096

# Receivers that may be subscripted
SUBSCRIPTABLE = (Mapping, list, tuple, str)


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class ScriptEvaluator:
    """
    Evaluate inline scripts against a fixed set of bindings.

    Usage:
        evaluator = ScriptEvaluator({"echo": echo, "env": env_view})
        evaluator.run(validate_inline("greet", 'echo("hello")'))

    Args:
        bindings: Names visible to the script (checked against the guard)
        guard: Allow-list guard (defaults to the shared default guard)
        max_steps: Budget of evaluated statements and loop iterations
    """

    def __init__(
        self,
        bindings: Mapping[str, Any],
        guard: Optional[AllowListGuard] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        self._guard = guard or DEFAULT_GUARD
        for name in bindings:
            self._guard.check_binding(name)
        self._bindings = dict(bindings)
        self._callables = [v for v in self._bindings.values() if callable(v)]
        self._locals: dict[str, Any] = {}
        self._max_steps = max_steps
        self._steps = 0

    @property
    def variables(self) -> dict[str, Any]:
        """Names assigned by the script so far."""
        return dict(self._locals)

    def run(self, script: ParsedScript | ast.Module) -> None:
        """
        Execute a parsed script.

        Raises:
            ActionFailure: Raised by bindings, or when the step budget runs out
            SecurityViolation: On any operation outside the allow-list
            Exception: Errors from the script's own operations propagate
        """
        tree = script.tree if isinstance(script, ParsedScript) else script
        self._exec_body(tree.body)

    # -----------------------------------------------------------------
    # Statements
    # -----------------------------------------------------------------

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self._max_steps:
            raise ActionFailure(f"Inline Pipeline exceeded {self._max_steps} evaluation steps")

    def _exec_body(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self._exec(stmt)

    def _exec(self, node: ast.stmt) -> None:
        self._tick()
        if isinstance(node, ast.Expr):
            self._eval(node.value)
        elif isinstance(node, ast.Assign):
            value = self._eval(node.value)
            for target in node.targets:
                self._assign(target, value)
        elif isinstance(node, ast.AugAssign):
            op = BINARY_OPERATORS.get(type(node.op))
            if op is None:
                raise SecurityViolation(f"operator {type(node.op).__name__}")
            current = self._eval(_as_load(node.target))
            value = self._eval(node.value)
            _check_operands(node.op, current, value)
            self._assign(node.target, op(current, value))
        elif isinstance(node, ast.If):
            if self._eval(node.test):
                self._exec_body(node.body)
            else:
                self._exec_body(node.orelse)
        elif isinstance(node, ast.For):
            self._exec_for(node)
        elif isinstance(node, ast.With):
            self._exec_with(node)
        elif isinstance(node, ast.Pass):
            pass
        elif isinstance(node, ast.Break):
            raise _Break()
        elif isinstance(node, ast.Continue):
            raise _Continue()
        else:
            raise SecurityViolation(f"{type(node).__name__} (line {node.lineno})")

    def _exec_for(self, node: ast.For) -> None:
        iterable = self._eval(node.iter)
        broke = False
        for item in iterable:
            self._tick()
            self._assign(node.target, item)
            try:
                self._exec_body(node.body)
            except _Continue:
                continue
            except _Break:
                broke = True
                break
        if not broke:
            self._exec_body(node.orelse)

    def _exec_with(self, node: ast.With) -> None:
        with ExitStack() as stack:
            for item in node.items:
                manager = self._eval(item.context_expr)
                if not (hasattr(manager, "__enter__") and hasattr(manager, "__exit__")):
                    raise TypeError(f"{type(manager).__name__} is not a context manager")
                value = stack.enter_context(manager)
                if item.optional_vars is not None:
                    self._assign(item.optional_vars, value)
            self._exec_body(node.body)

    def _assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self._locals[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            values = list(value)
            if len(values) != len(target.elts):
                raise ValueError(
                    f"Cannot unpack {len(values)} values into {len(target.elts)} names"
                )
            for elt, item in zip(target.elts, values):
                self._assign(elt, item)
        elif isinstance(target, ast.Subscript):
            container = self._eval(target.value)
            if not isinstance(container, (dict, list)):
                raise SecurityViolation(f"item assignment on {type(container).__name__}")
            container[self._eval(target.slice)] = value
        else:
            raise SecurityViolation(f"assignment to {type(target).__name__}")

    # -----------------------------------------------------------------
    # Expressions
    # -----------------------------------------------------------------

    def _eval(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return self._lookup(node.id)
        if isinstance(node, ast.Attribute):
            receiver = self._eval(node.value)
            self._guard.check_attribute(receiver, node.attr)
            return getattr(receiver, node.attr)
        if isinstance(node, ast.Subscript):
            receiver = self._eval(node.value)
            if not isinstance(receiver, SUBSCRIPTABLE):
                raise SecurityViolation(f"subscript of {type(receiver).__name__}")
            return receiver[self._eval(node.slice)]
        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower) if node.lower else None,
                self._eval(node.upper) if node.upper else None,
                self._eval(node.step) if node.step else None,
            )
        if isinstance(node, ast.Call):
            return self._call(node)
        if isinstance(node, ast.JoinedStr):
            return "".join(self._format_part(part) for part in node.values)
        if isinstance(node, ast.BinOp):
            op = BINARY_OPERATORS.get(type(node.op))
            if op is None:
                raise SecurityViolation(f"operator {type(node.op).__name__}")
            left, right = self._eval(node.left), self._eval(node.right)
            _check_operands(node.op, left, right)
            return op(left, right)
        if isinstance(node, ast.UnaryOp):
            return UNARY_OPERATORS[type(node.op)](self._eval(node.operand))
        if isinstance(node, ast.BoolOp):
            return self._eval_boolop(node)
        if isinstance(node, ast.Compare):
            return self._eval_compare(node)
        if isinstance(node, ast.IfExp):
            return self._eval(node.body) if self._eval(node.test) else self._eval(node.orelse)
        if isinstance(node, ast.List):
            return [self._eval(e) for e in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self._eval(e) for e in node.elts)
        if isinstance(node, ast.Dict):
            result = {}
            for key, value in zip(node.keys, node.values):
                if key is None:
                    result.update(self._eval(value))
                else:
                    result[self._eval(key)] = self._eval(value)
            return result
        raise SecurityViolation(f"{type(node).__name__} (line {getattr(node, 'lineno', '?')})")

    def _lookup(self, name: str) -> Any:
        if name in self._locals:
            return self._locals[name]
        if name in self._bindings:
            return self._bindings[name]
        # Unresolved names are only known here; anything outside the
        # allow-list is a violation, an allow-listed but unbound name is not.
        self._guard.check_binding(name)
        raise ActionFailure(f"Name '{name}' is not available in this action")

    def _call(self, node: ast.Call) -> Any:
        args = [self._eval(a) for a in node.args]
        kwargs: dict[str, Any] = {}
        for kw in node.keywords:
            if kw.arg is None:
                kwargs.update(self._eval(kw.value))
            else:
                kwargs[kw.arg] = self._eval(kw.value)

        if isinstance(node.func, ast.Attribute):
            receiver = self._eval(node.func.value)
            self._guard.check_call(receiver, node.func.attr)
            return getattr(receiver, node.func.attr)(*args, **kwargs)

        if isinstance(node.func, ast.Name):
            target = self._lookup(node.func.id)
            if not any(target is c for c in self._callables):
                raise SecurityViolation(f"call of {type(target).__name__} '{node.func.id}'")
            return target(*args, **kwargs)

        raise SecurityViolation(f"call of {type(node.func).__name__}")

    def _format_part(self, node: ast.expr) -> str:
        if isinstance(node, ast.Constant):
            return str(node.value)
        if isinstance(node, ast.FormattedValue):
            value = self._eval(node.value)
            if node.conversion == ord("r"):
                value = repr(value)
            elif node.conversion == ord("a"):
                value = ascii(value)
            elif node.conversion == ord("s"):
                value = str(value)
            spec = self._eval(node.format_spec) if node.format_spec is not None else ""
            return format(value, spec)
        return str(self._eval(node))

    def _eval_boolop(self, node: ast.BoolOp) -> Any:
        result: Any = None
        if isinstance(node.op, ast.And):
            for value in node.values:
                result = self._eval(value)
                if not result:
                    return result
            return result
        for value in node.values:
            result = self._eval(value)
            if result:
                return result
        return result

    def _eval_compare(self, node: ast.Compare) -> bool:
        left = self._eval(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator)
            if not COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True


def _as_load(target: ast.expr) -> ast.expr:
    """Load-context copy of an assignment target, for augmented assignment."""
    if isinstance(target, ast.Name):
        return ast.Name(id=target.id, ctx=ast.Load())
    if isinstance(target, ast.Subscript):
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())
    raise SecurityViolation(f"augmented assignment to {type(target).__name__}")


def _check_operands(op: ast.operator, left: Any, right: Any) -> None:
    """Reject sequence repetition, concatenation or int products past the size limits."""
    sequences = (str, list, tuple)
    if isinstance(op, ast.Mult):
        if isinstance(left, int) and isinstance(right, sequences):
            left, right = right, left
        if isinstance(left, sequences) and isinstance(right, int):
            size = len(left) * max(right, 0)
            if size > MAX_SEQUENCE_LENGTH:
                raise ActionFailure(
                    f"Inline Pipeline value too large: {size} items (limit {MAX_SEQUENCE_LENGTH})"
                )
        elif isinstance(left, int) and isinstance(right, int):
            bits = left.bit_length() + right.bit_length()
            if bits > MAX_INT_BITS:
                raise ActionFailure(
                    f"Inline Pipeline value too large: {bits}-bit integer (limit {MAX_INT_BITS})"
                )
    elif isinstance(op, ast.Add):
        if isinstance(left, sequences) and isinstance(right, sequences):
            size = len(left) + len(right)
            if size > MAX_SEQUENCE_LENGTH:
                raise ActionFailure(
                    f"Inline Pipeline value too large: {size} items (limit {MAX_SEQUENCE_LENGTH})"
                )
