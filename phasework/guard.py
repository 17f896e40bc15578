"""
Allow-list guard for dynamic operations.

Every member read and method call that the property bridge or the inline
script evaluator performs on a runtime value goes through this guard, as does
every name bound into an evaluator. The guard is an allow-list: anything not
enumerated here is rejected with a SecurityViolation before it runs.

The default list covers:
- mapping / sequence accessors
- a handful of string helpers
- severity comparison and combination
- read-only model properties (used by the property bridge)
- the bindings an inline script receives (text output, failure signalling,
  environment scoping, step invocation)
"""

import logging
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from phasework.errors import SecurityViolation
from phasework.schemas import (
    Action,
    InlineScript,
    NamedStep,
    Phase,
    PipelineSpec,
    Severity,
)

logger = logging.getLogger(__name__)


# Method calls permitted per receiver type. str.format is deliberately absent:
# format fields can walk attributes of their arguments.
DEFAULT_METHODS: dict[type, frozenset[str]] = {
    Mapping: frozenset({"get", "keys", "values", "items"}),
    list: frozenset({"index", "count", "append", "extend"}),
    tuple: frozenset({"index", "count"}),
    str: frozenset({
        "upper", "lower", "strip", "split", "join",
        "startswith", "endswith", "replace",
    }),
    Severity: frozenset({"combine", "is_better_than", "is_worse_than", "from_string"}),
}

# Attribute reads permitted per receiver type
DEFAULT_ATTRIBUTES: dict[type, frozenset[str]] = {
    Severity: frozenset({"name", "value", "SUCCESS", "UNSTABLE", "FAILURE", "ABORTED"}),
    PipelineSpec: frozenset({"options", "phases", "clean", "phase_names"}),
    Phase: frozenset({"name", "actions", "concurrency"}),
    Action: frozenset({"name", "step", "script", "is_inline"}),
    NamedStep: frozenset({"ref", "params"}),
    InlineScript: frozenset({"body"}),
}

# Names an evaluator may bind
DEFAULT_BINDINGS: frozenset[str] = frozenset({
    # text output and outcome signalling
    "echo", "error", "unstable",
    # composition
    "with_env", "sleep", "step",
    # read-only views
    "env", "options",
    # severity scale
    "Severity",
    # value helpers
    "len", "str", "int", "range", "sorted",
})


def _lookup(table: dict[type, frozenset[str]], obj: Any) -> frozenset[str]:
    """Union of the allowed names of every table type the object is an instance of."""
    allowed: set[str] = set()
    for kind, names in table.items():
        # Class receivers (Severity.FAILURE, str.join) use their own entry
        if isinstance(obj, kind) or obj is kind:
            allowed |= names
    return frozenset(allowed)


def _describe(obj: Any) -> str:
    return obj.__name__ if isinstance(obj, type) else type(obj).__name__


class AllowListGuard:
    """
    Closed set of permitted dynamic operations.

    Usage:
        guard = AllowListGuard()
        guard.check_call({"a": 1}, "get")         # ok
        guard.check_attribute(spec, "options")    # ok
        guard.check_call("x", "format")           # SecurityViolation
        guard.check_binding("open")               # SecurityViolation

    The tables can be narrowed (or extended) per instance; the defaults are
    the ones every inline script runs under.
    """

    def __init__(
        self,
        methods: Optional[dict[type, Iterable[str]]] = None,
        attributes: Optional[dict[type, Iterable[str]]] = None,
        bindings: Optional[Iterable[str]] = None,
    ) -> None:
        self._methods = {
            k: frozenset(v) for k, v in (methods if methods is not None else DEFAULT_METHODS).items()
        }
        self._attributes = {
            k: frozenset(v)
            for k, v in (attributes if attributes is not None else DEFAULT_ATTRIBUTES).items()
        }
        self._bindings = frozenset(bindings if bindings is not None else DEFAULT_BINDINGS)

    @property
    def bindings(self) -> frozenset[str]:
        return self._bindings

    def is_binding_allowed(self, name: str) -> bool:
        return not name.startswith("_") and name in self._bindings

    def is_attribute_allowed(self, obj: Any, name: str) -> bool:
        if name.startswith("_"):
            return False
        return name in _lookup(self._attributes, obj)

    def is_call_allowed(self, obj: Any, name: str) -> bool:
        if name.startswith("_"):
            return False
        return name in _lookup(self._methods, obj)

    def check_binding(self, name: str) -> None:
        """Reject a binding name outside the allow-list."""
        if not self.is_binding_allowed(name):
            logger.warning(f"Rejected binding: {name}")
            raise SecurityViolation(f"binding '{name}'")

    def check_attribute(self, obj: Any, name: str) -> None:
        """Reject an attribute read outside the allow-list."""
        if not self.is_attribute_allowed(obj, name):
            logger.warning(f"Rejected attribute read: {_describe(obj)}.{name}")
            raise SecurityViolation(f"attribute {_describe(obj)}.{name}")

    def check_call(self, obj: Any, name: str) -> None:
        """Reject a method call outside the allow-list."""
        if not self.is_call_allowed(obj, name):
            logger.warning(f"Rejected method call: {_describe(obj)}.{name}()")
            raise SecurityViolation(f"method {_describe(obj)}.{name}()")


DEFAULT_GUARD = AllowListGuard()
