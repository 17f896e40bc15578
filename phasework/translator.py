"""
Translator - Transform a raw pipeline document into a PipelineSpec.

The translator checks:
- required keys per phase and action
- uniqueness of phase names and of action names within a phase
- the "exactly one of action / pipeline" rule
- concurrency limits (int >= 1)

Checks run in document order and the first violation is raised as a
TranslationError carrying the offending field path, e.g.
"phases[1].actions[0].pipeline". The translator is a pure function: it never
executes anything and never touches the contributor registry.
"""

from typing import Any, Optional

from phasework.errors import TranslationError
from phasework.schemas import (
    Action,
    InlineScript,
    NamedStep,
    Phase,
    PipelineSpec,
    CLEAN_PHASE_NAME,
    NO_ACTION_MESSAGE,
    BOTH_ACTION_MESSAGE,
)

TOP_LEVEL_KEYS = ("options", "phases", "clean")
PHASE_KEYS = ("name", "concurrency", "actions")
ACTION_KEYS = ("name", "action", "pipeline")
STEP_KEYS = ("step", "params")


def _require_mapping(value: Any, path: str) -> dict:
    if not isinstance(value, dict):
        raise TranslationError(f"Expected a mapping, got {type(value).__name__}", path)
    return value


def _require_name(data: dict, path: str) -> str:
    name = data.get("name")
    if name is None:
        raise TranslationError("Missing required key 'name'", path)
    if not isinstance(name, str) or not name.strip():
        raise TranslationError("'name' must be a non-empty string", f"{path}.name")
    return name


def _check_unknown_keys(data: dict, allowed: tuple[str, ...], path: str) -> None:
    for key in data:
        if key not in allowed:
            raise TranslationError(
                f"Unknown key '{key}' (allowed: {', '.join(allowed)})",
                f"{path}.{key}" if path else str(key),
            )


def _translate_step(value: Any, path: str) -> NamedStep:
    """
    Translate the `action` value of an action.

    Accepts either a bare contributor name or {step: <name>, params: {...}}.
    """
    if isinstance(value, str):
        if not value.strip():
            raise TranslationError("Step reference must be a non-empty string", path)
        return NamedStep(ref=value)

    data = _require_mapping(value, path)
    _check_unknown_keys(data, STEP_KEYS, path)

    ref = data.get("step")
    if not isinstance(ref, str) or not ref.strip():
        raise TranslationError("Missing step reference ('step')", f"{path}.step")

    params = data.get("params", {})
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise TranslationError(
            f"Expected a mapping, got {type(params).__name__}", f"{path}.params"
        )
    return NamedStep(ref=ref, params=params)


def _translate_action(value: Any, path: str) -> Action:
    data = _require_mapping(value, path)
    name = _require_name(data, path)
    _check_unknown_keys(data, ACTION_KEYS, path)

    has_step = data.get("action") is not None
    has_script = data.get("pipeline") is not None

    if not has_step and not has_script:
        raise TranslationError(NO_ACTION_MESSAGE, path)
    if has_step and has_script:
        raise TranslationError(BOTH_ACTION_MESSAGE, path)

    if has_step:
        return Action(name=name, step=_translate_step(data["action"], f"{path}.action"))

    body = data["pipeline"]
    if not isinstance(body, str):
        raise TranslationError(
            f"Inline Pipeline code must be text, got {type(body).__name__}",
            f"{path}.pipeline",
        )
    return Action(name=name, script=InlineScript(body=body))


def _translate_concurrency(value: Any, path: str) -> Optional[int]:
    if value is None:
        return None
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise TranslationError(
            f"concurrency must be an integer, got {type(value).__name__}", path
        )
    if value < 1:
        raise TranslationError(f"concurrency must be >= 1, got {value}", path)
    return value


def _translate_phase(value: Any, path: str, default_name: Optional[str] = None) -> Phase:
    data = _require_mapping(value, path)
    if default_name is not None and "name" not in data:
        name = default_name
    else:
        name = _require_name(data, path)
    _check_unknown_keys(data, PHASE_KEYS, path)

    concurrency = _translate_concurrency(data.get("concurrency"), f"{path}.concurrency")

    raw_actions = data.get("actions")
    if raw_actions is None:
        raise TranslationError("Missing required key 'actions'", path)
    if not isinstance(raw_actions, list) or not raw_actions:
        raise TranslationError("'actions' must be a non-empty list", f"{path}.actions")

    actions: list[Action] = []
    seen: set[str] = set()
    for i, raw_action in enumerate(raw_actions):
        action_path = f"{path}.actions[{i}]"
        action = _translate_action(raw_action, action_path)
        if action.name in seen:
            raise TranslationError(
                f"Duplicate action name '{action.name}' in phase '{name}'",
                f"{action_path}.name",
            )
        seen.add(action.name)
        actions.append(action)

    return Phase(name=name, actions=tuple(actions), concurrency=concurrency)


def translate(document: Any) -> PipelineSpec:
    """
    Translate a raw document into a validated PipelineSpec.

    Args:
        document: Nested mapping/list structure (e.g. from yaml.safe_load)

    Returns:
        The immutable PipelineSpec

    Raises:
        TranslationError: On the first structural violation, in document order
    """
    if document is None:
        raise TranslationError("Pipeline document is empty")
    data = _require_mapping(document, "")
    _check_unknown_keys(data, TOP_LEVEL_KEYS, "")

    options = data.get("options", {})
    if options is None:
        options = {}
    if not isinstance(options, dict):
        raise TranslationError(
            f"Expected a mapping, got {type(options).__name__}", "options"
        )

    raw_phases = data.get("phases")
    if raw_phases is None:
        raise TranslationError("Missing required key 'phases'")
    if not isinstance(raw_phases, list) or not raw_phases:
        raise TranslationError("'phases' must be a non-empty list", "phases")

    phases: list[Phase] = []
    seen: set[str] = set()
    for i, raw_phase in enumerate(raw_phases):
        phase_path = f"phases[{i}]"
        phase = _translate_phase(raw_phase, phase_path)
        if phase.name in seen:
            raise TranslationError(
                f"Duplicate phase name '{phase.name}'", f"{phase_path}.name"
            )
        seen.add(phase.name)
        phases.append(phase)

    clean = None
    if data.get("clean") is not None:
        clean = _translate_phase(data["clean"], "clean", default_name=CLEAN_PHASE_NAME)
        if clean.name in seen:
            raise TranslationError(
                f"Duplicate phase name '{clean.name}'", "clean.name"
            )

    return PipelineSpec(options=options, phases=tuple(phases), clean=clean)


def translate_clean(document: Any) -> Optional[Phase]:
    """
    Translate only the clean section of a document.

    Lets the scheduler still attempt clean when the rest of the document is
    rejected.

    Returns:
        The clean Phase, or None if the document has no clean section

    Raises:
        TranslationError: If the clean section itself is invalid
    """
    data = _require_mapping(document, "")
    if data.get("clean") is None:
        return None
    return _translate_phase(data["clean"], "clean", default_name=CLEAN_PHASE_NAME)
