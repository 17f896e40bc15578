"""
Bindings - the closed set of names an inline script receives.

Each binding closes over the running action's context, so a script can only
affect its own action: write to its log, mark its severity, overlay its
environment, and invoke registered steps on its behalf.
"""

from typing import Any, Callable

from phasework.context import ActionContext
from phasework.errors import ActionFailure
from phasework.schemas import Severity
from phasework.script.evaluator import MAX_SEQUENCE_LENGTH


def bounded_range(*args: int) -> range:
    """range() that refuses to span more than MAX_SEQUENCE_LENGTH items."""
    values = range(*args)
    if len(values) > MAX_SEQUENCE_LENGTH:
        raise ActionFailure(
            f"Inline Pipeline value too large: range of {len(values)} items "
            f"(limit {MAX_SEQUENCE_LENGTH})"
        )
    return values


# Plain value helpers handed to every script
VALUE_HELPERS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "range": bounded_range,
    "sorted": sorted,
}


def build_bindings(context: ActionContext) -> dict[str, Any]:
    """
    Build the bindings for one inline action.

    Args:
        context: The running action's context

    Returns:
        Mapping of binding name to value, ready for ScriptEvaluator
    """

    def echo(*values: Any) -> None:
        context.log(" ".join(str(v) for v in values))

    def error(message: Any = "Error signalled by inline Pipeline") -> None:
        raise ActionFailure(str(message))

    def unstable(message: Any = None) -> None:
        if message is not None:
            context.log(str(message))
        context.mark(Severity.UNSTABLE)

    def step(ref: str, **params: Any) -> Severity:
        return context.run_step(ref, params)

    bindings: dict[str, Any] = {
        "echo": echo,
        "error": error,
        "unstable": unstable,
        "with_env": context.scoped_env,
        "sleep": context.sleep,
        "step": step,
        "env": context.env,
        "options": context.options,
        "Severity": Severity,
    }
    bindings.update(VALUE_HELPERS)
    return bindings
