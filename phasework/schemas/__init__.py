"""
phasework.schemas - Data structures for the engine.

PipelineSpec -> Phase -> Action -> ActionResult -> PhaseResult -> RunResult

Lifecycle:
1. PipelineSpec: built by the translator from a raw document, immutable
2. Phase / Action: ordered stages and their units of work
3. ActionResult: produced once per executed action
4. PhaseResult: severity-combination of a phase's ActionResults
5. RunResult: severity-combination of all PhaseResults plus clean
"""

from .severity import Severity
from .spec import (
    PipelineSpec,
    Phase,
    Action,
    NamedStep,
    InlineScript,
    CLEAN_PHASE_NAME,
    NO_ACTION_MESSAGE,
    BOTH_ACTION_MESSAGE,
    freeze,
    thaw,
)
from .results import (
    ActionResult,
    PhaseResult,
    RunResult,
)

__all__ = [
    # Severity
    "Severity",
    # Model
    "PipelineSpec",
    "Phase",
    "Action",
    "NamedStep",
    "InlineScript",
    "CLEAN_PHASE_NAME",
    "NO_ACTION_MESSAGE",
    "BOTH_ACTION_MESSAGE",
    "freeze",
    "thaw",
    # Results
    "ActionResult",
    "PhaseResult",
    "RunResult",
]
