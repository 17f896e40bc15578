"""
Error classes for phasework.

These error types split failures into the two tiers the engine cares about:
- BuildError: detected before (or independent of) execution side effects.
  Never retried; the run fails with FAILURE before any main phase runs.
- ActionFailure: raised while an action executes. Recorded as that action's
  severity; sibling actions keep running.

Error handling contract:
- Build-time errors carry a message that is surfaced verbatim as the run's
  failure reason
- Errors are exceptions, not values
- ActionResult/PhaseResult/RunResult are the values
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from phasework.schemas.severity import Severity


class PhaseworkError(Exception):
    """Base exception for phasework."""
    pass


class BuildError(PhaseworkError):
    """
    Build-time error - never retried.

    Examples:
    - Malformed pipeline document
    - Action with neither a step reference nor inline code
    - Reserved constructs inside an inline script
    - Reference to an unregistered step contributor
    - Operation outside the allow-list

    The scheduler turns a BuildError into a FAILURE run before any main
    phase executes. The clean section is still attempted.
    """
    pass


class TranslationError(BuildError):
    """Raised when a raw document cannot be turned into a PipelineSpec."""

    def __init__(self, message: str, path: str = ""):
        self.message = message
        self.path = path
        super().__init__(message)

    def describe(self) -> str:
        """Message prefixed with the offending field path."""
        if not self.path:
            return self.message
        return f"{self.path}: {self.message}"


class InlineScriptError(BuildError):
    """Raised when an inline script fails parsing or uses reserved constructs."""

    def __init__(self, action: str, message: str, names: tuple[str, ...] = ()):
        self.action = action
        self.names = names
        super().__init__(message)


class UnknownContributorError(BuildError):
    """Raised when a named step does not resolve in the contributor registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown step contributor: {name}")


class SecurityViolation(BuildError):
    """
    Raised when an operation falls outside the allow-list.

    Always raised before the rejected operation has any effect. A violation
    found while a script is evaluating still escalates to a build-time
    failure of the whole run.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation not permitted: {operation}")


class PropertyLookupError(PhaseworkError):
    """Raised when a property path does not resolve against the model."""
    pass


class ConfigError(PhaseworkError):
    """Configuration validation error."""
    pass


class ActionFailure(PhaseworkError):
    """
    Run-time failure of a single action.

    Raised by step contributors and by the inline `error()`/`unstable()`
    bindings. The severity defaults to FAILURE.
    """

    def __init__(self, message: str, severity: Optional["Severity"] = None):
        from phasework.schemas.severity import Severity

        self.severity = severity if severity is not None else Severity.FAILURE
        super().__init__(message)
