"""
Pipeline model - the validated, immutable form of a pipeline document.

PipelineSpec -> Phase -> Action -> (NamedStep | InlineScript)

A PipelineSpec is built once per run by the translator, validated, executed,
and discarded. Nothing here is mutated after construction: mappings are
wrapped in read-only proxies and sequences are tuples.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from phasework.errors import TranslationError

NO_ACTION_MESSAGE = "No action or Pipeline code specified"
BOTH_ACTION_MESSAGE = "Both action and Pipeline code specified"

CLEAN_PHASE_NAME = "clean"


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze(), for serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class NamedStep:
    """
    Reference to an externally registered step contributor.

    Attributes:
        ref: Registered contributor name
        params: Parameters passed to the contributor, may contain ${...} templates
    """
    ref: str
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        if not isinstance(self.params, MappingProxyType):
            object.__setattr__(self, "params", freeze(self.params))


@dataclass(frozen=True)
class InlineScript:
    """Raw inline script text, evaluated directly by the engine."""
    body: str


ActionKind = Union[NamedStep, InlineScript]


@dataclass(frozen=True)
class Action:
    """
    A unit of work within a phase.

    Exactly one of step/script is populated.
    """
    name: str
    step: Optional[NamedStep] = None
    script: Optional[InlineScript] = None

    def __post_init__(self):
        if self.step is None and self.script is None:
            raise TranslationError(NO_ACTION_MESSAGE)
        if self.step is not None and self.script is not None:
            raise TranslationError(BOTH_ACTION_MESSAGE)

    @property
    def kind(self) -> ActionKind:
        return self.step if self.step is not None else self.script

    @property
    def is_inline(self) -> bool:
        return self.script is not None

    def to_dict(self) -> dict[str, Any]:
        if self.step is not None:
            return {
                "name": self.name,
                "action": {"step": self.step.ref, "params": thaw(self.step.params)},
            }
        return {"name": self.name, "pipeline": self.script.body}


@dataclass(frozen=True)
class Phase:
    """
    A named stage of a run.

    Attributes:
        name: Unique within the spec
        actions: Actions in declaration order (names unique within the phase)
        concurrency: Max simultaneously running actions, None = unlimited
    """
    name: str
    actions: tuple[Action, ...] = field(default_factory=tuple)
    concurrency: Optional[int] = None

    def __post_init__(self):
        if self.concurrency is not None and self.concurrency < 1:
            raise TranslationError(
                f"Phase '{self.name}': concurrency must be >= 1, got {self.concurrency}"
            )
        names = [a.name for a in self.actions]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise TranslationError(
                f"Phase '{self.name}': duplicate action names: {', '.join(duplicates)}"
            )

    def get_action(self, name: str) -> Optional[Action]:
        """Get an action by name."""
        for action in self.actions:
            if action.name == name:
                return action
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "actions": [a.to_dict() for a in self.actions],
        }
        if self.concurrency is not None:
            result["concurrency"] = self.concurrency
        return result


@dataclass(frozen=True)
class PipelineSpec:
    """
    The validated pipeline model.

    Attributes:
        options: Free-form global configuration (read-only)
        phases: Main phases in execution order
        clean: Optional finalizer phase, run last
    """
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    phases: tuple[Phase, ...] = field(default_factory=tuple)
    clean: Optional[Phase] = None

    def __post_init__(self):
        if not isinstance(self.options, MappingProxyType):
            object.__setattr__(self, "options", freeze(self.options))
        names = [p.name for p in self.phases]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise TranslationError(f"Duplicate phase names: {', '.join(duplicates)}")

    @property
    def phase_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases)

    def get_phase(self, name: str) -> Optional[Phase]:
        """Get a main phase by name."""
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def all_phases(self) -> tuple[Phase, ...]:
        """Main phases followed by the clean section, if any."""
        if self.clean is None:
            return self.phases
        return self.phases + (self.clean,)

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the document shape."""
        result: dict[str, Any] = {
            "options": thaw(self.options),
            "phases": [p.to_dict() for p in self.phases],
        }
        if self.clean is not None:
            clean = self.clean.to_dict()
            if clean["name"] == CLEAN_PHASE_NAME:
                del clean["name"]
            result["clean"] = clean
        return result
