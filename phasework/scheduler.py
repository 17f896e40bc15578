"""
Scheduler - runs a validated PipelineSpec.

A run goes through these steps:
1. Eager resolution of every action (main phases and clean): named steps
   against the contributor registry, inline scripts through the validator.
   The first build-time error fails the run with FAILURE before any main
   phase executes; the clean section is still attempted with the actions
   that did resolve.
2. Main phases, strictly in declared order. Each phase gets a worker pool
   sized by its concurrency limit (all actions at once when unlimited).
   Actions are submitted in declaration order, so a capped phase starts them
   in that order as slots free.
3. A join barrier per phase. Siblings of a failed action are never
   cancelled. The phase severity is the combine of its action severities;
   at or above the configured fatal severity, remaining phases are skipped.
4. The clean section, last, under the same rules. Its severity is folded
   into the run.

Cancellation (a threading.Event) is checked before every main phase and
wakes actions blocked in sleep(); the run then ends ABORTED after clean.

Usage:
    scheduler = Scheduler(ContributorRegistry.create_default())
    result = scheduler.run_document(yaml.safe_load(text))
    print(result.severity, result.log_text)
"""

import ast
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Optional, Union

from phasework.aggregator import combine, is_fatal, phase_result, run_severity
from phasework.bridge import PropertyBridge
from phasework.config import EngineConfig
from phasework.context import ActionContext
from phasework.contributors import ContributorRegistry, StepContributor
from phasework.errors import ActionFailure, BuildError, TranslationError
from phasework.guard import AllowListGuard, DEFAULT_GUARD
from phasework.runlog import RunLog
from phasework.schemas import (
    CLEAN_PHASE_NAME,
    Action,
    ActionResult,
    Phase,
    PhaseResult,
    PipelineSpec,
    RunResult,
    Severity,
)
from phasework.script import ParsedScript, ScriptEvaluator, build_bindings, validate_inline
from phasework.translator import translate, translate_clean

logger = logging.getLogger(__name__)

CONCURRENCY_MARKER = "Multiple actions running concurrently in phase '{phase}'"

ResolvedAction = Union[StepContributor, ParsedScript]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _literal_step_refs(tree: ast.AST) -> list[str]:
    """Refs of step("name", ...) calls whose name is a literal string."""
    refs = []
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "step"
            and node.args
            and isinstance(node.args[0], ast.Constant)
            and isinstance(node.args[0].value, str)
        ):
            refs.append(node.args[0].value)
    return refs


class _PhaseState:
    """Accumulator shared by the workers of one phase."""

    def __init__(self, name: str, log: RunLog) -> None:
        self.name = name
        self._log = log
        self._lock = threading.Lock()
        self._running = 0
        self._marker_logged = False
        self._results: dict[str, ActionResult] = {}
        self.fatal_error: Optional[BuildError] = None

    def action_started(self) -> None:
        with self._lock:
            self._running += 1
            emit = self._running > 1 and not self._marker_logged
            if emit:
                self._marker_logged = True
        if emit:
            self._log.write(CONCURRENCY_MARKER.format(phase=self.name))

    def action_finished(self, result: ActionResult, fatal: Optional[BuildError] = None) -> None:
        with self._lock:
            self._running -= 1
            self._results[result.action] = result
            if fatal is not None and self.fatal_error is None:
                self.fatal_error = fatal

    def ordered_results(self, actions: list[Action]) -> list[ActionResult]:
        with self._lock:
            return [self._results[a.name] for a in actions if a.name in self._results]


class _Run:
    """Per-run collaborators handed to each phase."""

    def __init__(self, spec: PipelineSpec, log: RunLog, bridge: PropertyBridge) -> None:
        self.spec = spec
        self.log = log
        self.bridge = bridge
        self.resolved: dict[tuple[str, str], ResolvedAction] = {}


class Scheduler:
    """
    Execution engine for PipelineSpecs.

    Args:
        registry: Contributor registry (defaults to the built-ins)
        config: Engine configuration (fatal severity threshold)
        guard: Allow-list guard for inline scripts and the property bridge
    """

    def __init__(
        self,
        registry: Optional[ContributorRegistry] = None,
        config: Optional[EngineConfig] = None,
        guard: Optional[AllowListGuard] = None,
    ) -> None:
        self._registry = registry or ContributorRegistry.create_default()
        self._config = config or EngineConfig()
        self._guard = guard or DEFAULT_GUARD

    @property
    def registry(self) -> ContributorRegistry:
        return self._registry

    # -----------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------

    def _resolve_action(self, action: Action) -> ResolvedAction:
        if action.step is not None:
            return self._registry.get(action.step.ref)

        parsed = validate_inline(action.name, action.script.body)
        for ref in _literal_step_refs(parsed.tree):
            self._registry.get(ref)
        return parsed

    def _resolve(
        self, spec: PipelineSpec
    ) -> tuple[dict[tuple[str, str], ResolvedAction], Optional[BuildError]]:
        """Resolve every action; return what resolved and the first error, in order."""
        resolved: dict[tuple[str, str], ResolvedAction] = {}
        first_error: Optional[BuildError] = None
        for phase in spec.all_phases():
            for action in phase.actions:
                try:
                    resolved[(phase.name, action.name)] = self._resolve_action(action)
                except BuildError as e:
                    logger.error(f"  {phase.name}/{action.name}: {e}")
                    if first_error is None:
                        first_error = e
        return resolved, first_error

    def check(self, spec: PipelineSpec) -> None:
        """
        Run every build-time check without executing anything.

        Raises:
            BuildError: The first error, in document order
        """
        _, error = self._resolve(spec)
        if error is not None:
            raise error

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def run_document(
        self,
        document: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        """
        Translate a raw document and run it.

        A document that does not translate fails the run with FAILURE and no
        main phase executes. The translation message is the failure reason
        and the first log line. When the error lies outside the clean
        section, clean is translated on its own and still attempted.
        """
        try:
            spec = translate(document)
        except TranslationError as e:
            logger.error(f"Pipeline document rejected: {e.describe()}")
            return self._run_rejected(document, e)
        return self.run(spec, cancel_event=cancel_event)

    def _salvage_clean(self, document: Any, error: TranslationError) -> Optional[PipelineSpec]:
        """Best-effort model holding only the clean section of a rejected document."""
        if error.path.startswith(CLEAN_PHASE_NAME) or not isinstance(document, dict):
            return None
        try:
            clean = translate_clean(document)
        except TranslationError as e:
            logger.warning(f"  Clean section not attempted: {e.describe()}")
            return None
        if clean is None:
            return None

        options = document.get("options")
        return PipelineSpec(options=options if isinstance(options, dict) else {}, clean=clean)

    def _run_rejected(self, document: Any, error: TranslationError) -> RunResult:
        log = RunLog()
        log.write(str(error))

        clean_result: Optional[PhaseResult] = None
        spec = self._salvage_clean(document, error)
        if spec is not None:
            run = _Run(spec, log, PropertyBridge(spec, self._guard))
            run.resolved, _ = self._resolve(spec)
            clean_result, _ = self._run_phase(spec.clean, run, threading.Event())

        return RunResult(
            severity=run_severity([], clean_result).combine(Severity.FAILURE),
            clean_result=clean_result,
            failure_reason=str(error),
            log=log.lines,
        )

    def run(
        self,
        spec: PipelineSpec,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        """
        Run a PipelineSpec.

        Args:
            spec: The validated model
            cancel_event: Set externally to cancel the run

        Returns:
            RunResult with every executed phase, the clean result and the log
        """
        cancel_event = cancel_event or threading.Event()
        run = _Run(spec, RunLog(), PropertyBridge(spec, self._guard))

        logger.info(
            f"Starting run: {len(spec.phases)} phases"
            + (", with clean" if spec.clean is not None else "")
        )
        start_time = time.time()

        phase_results: list[PhaseResult] = []
        skipped: list[str] = []
        failure_reason: Optional[str] = None

        run.resolved, build_error = self._resolve(spec)

        if build_error is not None:
            failure_reason = str(build_error)
            run.log.write(failure_reason)
            logger.error(f"Build failed: {failure_reason}")
            skipped = list(spec.phase_names)
        else:
            for i, phase in enumerate(spec.phases):
                if cancel_event.is_set():
                    skipped = list(spec.phase_names[i:])
                    run.log.write("Run cancelled")
                    logger.warning(f"  Run cancelled, skipping {', '.join(skipped)}")
                    break

                result, fatal = self._run_phase(phase, run, cancel_event)
                if result is not None:
                    phase_results.append(result)

                if fatal is not None:
                    failure_reason = str(fatal)
                    run.log.write(failure_reason)
                    skipped = list(spec.phase_names[i + 1:])
                    logger.error(f"  Phase {phase.name} raised a build-time error, stopping run")
                    break

                if result is not None and is_fatal(result.severity, self._config.fatal_severity):
                    skipped = list(spec.phase_names[i + 1:])
                    logger.error(f"  Phase {phase.name} {result.severity.value}, stopping run")
                    break

        for name in skipped:
            run.log.write(f"Phase '{name}' skipped")

        clean_result: Optional[PhaseResult] = None
        if spec.clean is not None:
            # Clean runs on its own event so cancellation does not cut it short
            clean_result, clean_fatal = self._run_phase(spec.clean, run, threading.Event())
            if clean_fatal is not None and failure_reason is None:
                failure_reason = str(clean_fatal)
                run.log.write(failure_reason)

        severity = run_severity(phase_results, clean_result)
        if failure_reason is not None:
            severity = combine(severity, Severity.FAILURE)
        if cancel_event.is_set():
            severity = combine(severity, Severity.ABORTED)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Run finished: severity={severity.value}, phases={len(phase_results)}, "
            f"skipped={len(skipped)}, duration={duration_ms}ms"
        )

        return RunResult(
            severity=severity,
            phase_results=tuple(phase_results),
            clean_result=clean_result,
            skipped_phases=tuple(skipped),
            failure_reason=failure_reason,
            log=run.log.lines,
        )

    def _run_phase(
        self,
        phase: Phase,
        run: _Run,
        cancel_event: threading.Event,
    ) -> tuple[Optional[PhaseResult], Optional[BuildError]]:
        """Fan out one phase and wait for all of its actions."""
        actions = [a for a in phase.actions if (phase.name, a.name) in run.resolved]
        if not actions:
            logger.warning(f"  Phase {phase.name}: no runnable actions")
            return None, None

        max_workers = phase.concurrency or len(actions)
        state = _PhaseState(phase.name, run.log)

        logger.info(f"  Phase: {phase.name} ({len(actions)} actions, max {max_workers} concurrent)")
        run.log.write(f"Phase '{phase.name}' started")

        with ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"phasework-{phase.name}",
        ) as executor:
            futures = [
                executor.submit(self._run_action, phase, action, run, state, cancel_event)
                for action in actions
            ]
            wait(futures)

        result = phase_result(phase.name, state.ordered_results(actions))
        run.log.write(f"Phase '{phase.name}' finished: {result.severity.value.upper()}")
        return result, state.fatal_error

    def _run_action(
        self,
        phase: Phase,
        action: Action,
        run: _Run,
        state: _PhaseState,
        cancel_event: threading.Event,
    ) -> ActionResult:
        """Execute one action. Never raises; every outcome becomes an ActionResult."""
        target = run.resolved[(phase.name, action.name)]
        context = ActionContext(
            phase=phase.name,
            action=action.name,
            options=run.spec.options,
            sink=run.log,
            registry=self._registry,
            bridge=run.bridge,
            cancel_event=cancel_event,
        )

        state.action_started()
        started_at = _utcnow()
        error: Optional[str] = None
        fatal: Optional[BuildError] = None

        try:
            if isinstance(target, ParsedScript):
                ScriptEvaluator(build_bindings(context), guard=self._guard).run(target)
            else:
                params = run.bridge.render(action.step.params)
                context.mark(target.execute(context, params) or Severity.SUCCESS)
            severity = context.severity

        except BuildError as e:
            # Security violations and unknown steps found during evaluation
            # fail the whole run.
            severity = Severity.FAILURE
            error = str(e)
            fatal = e
            context.log(f"ERROR: {e}")

        except ActionFailure as e:
            severity = context.severity.combine(e.severity)
            error = str(e)
            context.log(f"ERROR: {e}")

        except Exception as e:
            severity = Severity.FAILURE
            error = f"{type(e).__name__}: {e}"
            context.log(f"ERROR: {error}")

        result = ActionResult(
            phase=phase.name,
            action=action.name,
            severity=severity,
            log_ref=context.log_ref,
            error=error,
            started_at=started_at,
            completed_at=_utcnow(),
        )
        state.action_finished(result, fatal)

        if severity == Severity.SUCCESS:
            logger.info(f"    ok {context.log_ref} ({result.duration_ms}ms)")
        else:
            logger.error(f"    {severity.value.upper()} {context.log_ref}: {error or 'marked'}")
        return result
