"""
Property bridge - named, no-argument reads into the resolved model.

Templated values elsewhere in a document refer to the model with dotted
paths, e.g. "${options.env.FOO}" or "${phases.0.name}". The bridge resolves
those paths by:
- mapping key lookup
- integer index into tuples/lists
- attribute reads, each one checked against the allow-list guard

It never invokes anything: a path segment can only name a key, an index, or
an allow-listed property.
"""

import re
from collections.abc import Mapping
from typing import Any, Optional

from phasework.errors import PropertyLookupError
from phasework.guard import AllowListGuard, DEFAULT_GUARD
from phasework.schemas import PipelineSpec

# ${path.to.value} placeholders
TEMPLATE_PATTERN = re.compile(r"\$\{\s*([a-zA-Z_][a-zA-Z0-9_.\-]*)\s*\}")


class PropertyBridge:
    """
    Typed property lookup over a PipelineSpec.

    Usage:
        bridge = PropertyBridge(spec)
        bridge.get("options.region")          # -> "eu-west-1"
        bridge.get("phases.0.name")           # -> "build"
        bridge.render("deploy to ${options.region}")
    """

    def __init__(self, spec: PipelineSpec, guard: Optional[AllowListGuard] = None) -> None:
        self._spec = spec
        self._guard = guard or DEFAULT_GUARD

    def get(self, path: str) -> Any:
        """
        Resolve a dotted property path.

        Args:
            path: Dot-separated path, rooted at the spec

        Returns:
            The resolved value

        Raises:
            PropertyLookupError: If a segment does not resolve
            SecurityViolation: If a segment names a property outside the allow-list
        """
        if not path:
            raise PropertyLookupError("Empty property path")

        current: Any = self._spec
        for part in path.split("."):
            current = self._step(current, part, path)
        return current

    def _step(self, current: Any, part: str, path: str) -> Any:
        if isinstance(current, Mapping):
            if part in current:
                return current[part]
            raise PropertyLookupError(f"Property path not found: {path} (missing '{part}')")

        if isinstance(current, (list, tuple)):
            if part.isdigit() and int(part) < len(current):
                return current[int(part)]
            raise PropertyLookupError(f"Property path not found: {path} (bad index '{part}')")

        if current is None or isinstance(current, (str, int, float, bool)):
            raise PropertyLookupError(
                f"Cannot navigate into {type(current).__name__} at '{part}' in {path}"
            )

        self._guard.check_attribute(current, part)
        return getattr(current, part)

    def has(self, path: str) -> bool:
        """True if the path resolves. Security violations still raise."""
        try:
            self.get(path)
        except PropertyLookupError:
            return False
        return True

    def render(self, value: Any) -> Any:
        """
        Replace ${path} placeholders using the bridge.

        A string that is exactly one placeholder resolves to the raw value
        (keeping its type); placeholders embedded in longer text are
        substituted as strings. Mappings and sequences are rendered
        recursively.
        """
        if isinstance(value, str):
            full = TEMPLATE_PATTERN.fullmatch(value)
            if full:
                return self.get(full.group(1))
            return TEMPLATE_PATTERN.sub(lambda m: str(self.get(m.group(1))), value)
        elif isinstance(value, Mapping):
            return {k: self.render(v) for k, v in value.items()}
        elif isinstance(value, (list, tuple)):
            return [self.render(v) for v in value]
        return value
