"""
ActionContext - what a running action can see and do.

One context is created per action execution. It carries the action's
identity (phase, name, log ref), a read-only view of the run options, the
action's environment, and the collaborators a step needs: the run log, the
contributor registry and the property bridge.

The environment starts from `options.env` and is private to the action;
`scoped_env()` overlays values for the duration of a block and restores the
previous values afterwards.
"""

import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, TYPE_CHECKING

from phasework.errors import ActionFailure
from phasework.runlog import RunLog
from phasework.schemas import Severity

if TYPE_CHECKING:
    from phasework.bridge import PropertyBridge
    from phasework.contributors import ContributorRegistry


class ActionContext:
    """
    Runtime context of a single action.

    Args:
        phase: Name of the phase the action belongs to
        action: Action name
        options: Run options (read-only)
        sink: RunLog of the run
        registry: Contributor registry, for nested step() calls
        bridge: Property bridge, for rendering step params
        cancel_event: Set when the run is cancelled
    """

    def __init__(
        self,
        phase: str,
        action: str,
        options: Mapping[str, Any],
        sink: RunLog,
        registry: "ContributorRegistry",
        bridge: "PropertyBridge",
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.phase = phase
        self.action = action
        self.options = options
        self._sink = sink
        self._registry = registry
        self._bridge = bridge
        self._cancel_event = cancel_event or threading.Event()
        self._severity = Severity.SUCCESS

        base_env = options.get("env") or {}
        self._env: dict[str, str] = {str(k): str(v) for k, v in base_env.items()}
        self._env_view = MappingProxyType(self._env)

    @property
    def log_ref(self) -> str:
        return f"{self.phase}/{self.action}"

    @property
    def env(self) -> Mapping[str, str]:
        """Read-only view of the current environment (reflects active overlays)."""
        return self._env_view

    @property
    def severity(self) -> Severity:
        """Severity marked so far (SUCCESS until something degrades it)."""
        return self._severity

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def log(self, text: str) -> None:
        """Write text to this action's section of the run log."""
        self._sink.write(text, ref=self.log_ref)

    def mark(self, severity: Severity) -> None:
        """Degrade the action's severity (never improves it)."""
        self._severity = self._severity.combine(severity)

    @contextmanager
    def scoped_env(self, overlay: Mapping[str, Any]) -> Iterator[Mapping[str, str]]:
        """Overlay environment values for the duration of a block."""
        if not isinstance(overlay, Mapping):
            raise ActionFailure(f"with_env expects a mapping, got {type(overlay).__name__}")

        saved = dict(self._env)
        self._env.update({str(k): str(v) for k, v in overlay.items()})
        try:
            yield self._env_view
        finally:
            self._env.clear()
            self._env.update(saved)

    def sleep(self, seconds: float) -> None:
        """
        Wait, waking early if the run is cancelled.

        Raises:
            ActionFailure: ABORTED if the run was cancelled while waiting
        """
        if self._cancel_event.wait(float(seconds)):
            raise ActionFailure("Run cancelled", Severity.ABORTED)

    def run_step(self, ref: str, params: Optional[Mapping[str, Any]] = None) -> Severity:
        """
        Invoke a registered contributor inside this action.

        Params are rendered through the property bridge first. The step's
        severity is folded into the action's.

        Raises:
            UnknownContributorError: If ref is not registered
            ActionFailure: If the step fails
        """
        contributor = self._registry.get(ref)
        rendered = self._bridge.render(dict(params or {}))
        severity = contributor.execute(self, rendered) or Severity.SUCCESS
        self.mark(severity)
        return severity

    def __repr__(self) -> str:
        return f"ActionContext(log_ref={self.log_ref!r}, severity={self._severity.value})"
