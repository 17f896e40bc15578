"""
Result aggregation - severity-ordered combination of outcomes.

Used at action -> phase and phase -> run granularity. The ordering on
Severity is the single source of truth for which failure wins; everything
here is a fold of Severity.combine starting from SUCCESS (the identity).
"""

from functools import reduce
from typing import Iterable, Optional

from phasework.schemas import ActionResult, PhaseResult, Severity


def combine(a: Severity, b: Severity) -> Severity:
    """Associative, commutative combination with SUCCESS as identity."""
    return a.combine(b)


def combine_all(severities: Iterable[Severity], start: Severity = Severity.SUCCESS) -> Severity:
    """Fold any number of severities."""
    return reduce(combine, severities, start)


def phase_result(name: str, action_results: Iterable[ActionResult]) -> PhaseResult:
    """Build a PhaseResult from the ActionResults of one phase."""
    results = tuple(action_results)
    return PhaseResult(
        name=name,
        severity=combine_all(r.severity for r in results),
        action_results=results,
    )


def run_severity(
    phase_results: Iterable[PhaseResult],
    clean_result: Optional[PhaseResult] = None,
) -> Severity:
    """Severity of a run: every executed phase plus the clean section."""
    severity = combine_all(p.severity for p in phase_results)
    if clean_result is not None:
        severity = combine(severity, clean_result.severity)
    return severity


def is_fatal(severity: Severity, threshold: Severity = Severity.FAILURE) -> bool:
    """True if the severity reaches the run-fatal threshold."""
    return severity >= threshold
