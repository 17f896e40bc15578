"""
Result schemas - outcomes of actions, phases, and runs.

ActionResult is produced once per executed action.
PhaseResult folds the ActionResults of one phase.
RunResult folds the PhaseResults of a run plus the clean section.

All three are immutable; aggregation builds new values instead of updating
existing ones.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .severity import Severity


@dataclass(frozen=True)
class ActionResult:
    """
    The outcome of executing a single action.

    Attributes:
        phase: Name of the phase the action belongs to
        action: Action name
        severity: Outcome severity
        log_ref: Opaque key of the action's lines in the run log
        error: Error text if the action did not succeed
        started_at: When the action started
        completed_at: When the action finished
    """
    phase: str
    action: str
    severity: Severity
    log_ref: str
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> Optional[int]:
        """Execution duration in milliseconds if both timestamps present."""
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "action": self.action,
            "severity": self.severity.value,
            "log_ref": self.log_ref,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        return result


@dataclass(frozen=True)
class PhaseResult:
    """Severity of a phase = combine over its action severities."""
    name: str
    severity: Severity
    action_results: tuple[ActionResult, ...] = field(default_factory=tuple)

    def get_action_result(self, action: str) -> Optional[ActionResult]:
        for result in self.action_results:
            if result.action == action:
                return result
        return None

    def get_failed_actions(self) -> tuple[ActionResult, ...]:
        """Action results that did not succeed."""
        return tuple(r for r in self.action_results if r.severity != Severity.SUCCESS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity.value,
            "actions": [r.to_dict() for r in self.action_results],
        }


@dataclass(frozen=True)
class RunResult:
    """
    The aggregated outcome of a run.

    Attributes:
        severity: combine over executed phase results and the clean result
        phase_results: Results of main phases that executed, in order
        clean_result: Result of the clean section, if one ran
        skipped_phases: Main phases that never started
        failure_reason: Build-time error message, verbatim
        log: Every line written to the run log, in append order
    """
    severity: Severity
    phase_results: tuple[PhaseResult, ...] = field(default_factory=tuple)
    clean_result: Optional[PhaseResult] = None
    skipped_phases: tuple[str, ...] = field(default_factory=tuple)
    failure_reason: Optional[str] = None
    log: tuple[str, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.severity == Severity.SUCCESS

    @property
    def log_text(self) -> str:
        return "\n".join(self.log)

    def get_phase_result(self, name: str) -> Optional[PhaseResult]:
        for result in self.phase_results:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "phases": [p.to_dict() for p in self.phase_results],
        }
        if self.clean_result is not None:
            result["clean"] = self.clean_result.to_dict()
        if self.skipped_phases:
            result["skipped_phases"] = list(self.skipped_phases)
        if self.failure_reason is not None:
            result["failure_reason"] = self.failure_reason
        return result
