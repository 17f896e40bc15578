"""Tests for the inline script evaluator.

Tests cover:
- Statements and expressions the evaluator supports
- Bind-time rejection of bindings outside the allow-list
- Run-time guard checks on attribute reads, method calls and names
- The evaluation step budget
- Size limits on values built by a single expression
"""

from contextlib import contextmanager

import pytest

from phasework.errors import ActionFailure, SecurityViolation
from phasework.schemas import Severity
from phasework.script import ScriptEvaluator, validate_inline
from phasework.script.bindings import bounded_range
from phasework.script.evaluator import MAX_SEQUENCE_LENGTH


class Recorder:
    """Collects echo() output."""

    def __init__(self):
        self.lines = []

    def echo(self, *values):
        self.lines.append(" ".join(str(v) for v in values))


def run(body, **extra):
    """Evaluate a body with echo plus extra bindings; return (lines, evaluator)."""
    recorder = Recorder()
    bindings = {"echo": recorder.echo, "len": len, "range": range, "str": str, "sorted": sorted}
    bindings.update(extra)
    evaluator = ScriptEvaluator(bindings)
    evaluator.run(validate_inline("test", body))
    return recorder.lines, evaluator


class TestStatements:
    """Supported statements."""

    def test_echo(self):
        lines, _ = run('echo("hello")')
        assert lines == ["hello"]

    def test_assignment_and_fstring(self):
        lines, evaluator = run('name = "world"\necho(f"hello {name}")')
        assert lines == ["hello world"]
        assert evaluator.variables == {"name": "world"}

    def test_fstring_conversions_and_spec(self):
        lines, _ = run('x = "a"\nn = 3\necho(f"{x!r}|{n:>3}|{n * 2}")')
        assert lines == ["'a'|  3|6"]

    def test_tuple_unpacking(self):
        lines, _ = run("a, b = 1, 2\necho(a + b)")
        assert lines == ["3"]

    def test_augmented_assignment(self):
        lines, _ = run("total = 1\ntotal += 4\ntotal *= 2\necho(total)")
        assert lines == ["10"]

    def test_if_elif_else(self):
        body = (
            "for n in range(3):\n"
            "    if n == 0:\n"
            "        echo('zero')\n"
            "    elif n == 1:\n"
            "        echo('one')\n"
            "    else:\n"
            "        echo('many')\n"
        )
        lines, _ = run(body)
        assert lines == ["zero", "one", "many"]

    def test_for_break_continue_else(self):
        body = (
            "for n in range(10):\n"
            "    if n == 1:\n"
            "        continue\n"
            "    if n == 3:\n"
            "        break\n"
            "    echo(n)\n"
            "else:\n"
            "    echo('not reached')\n"
            "for n in range(1):\n"
            "    pass\n"
            "else:\n"
            "    echo('done')\n"
        )
        lines, _ = run(body)
        assert lines == ["0", "2", "done"]

    def test_with_context_manager(self):
        state = {}

        @contextmanager
        def with_env(overlay):
            state.update(overlay)
            yield state
            state.clear()

        lines, _ = run(
            'with with_env({"A": "1"}) as e:\n    echo(e["A"])\necho(len(env))',
            with_env=with_env,
            env=state,
        )
        assert lines == ["1", "0"]

    def test_with_requires_context_manager(self):
        with pytest.raises(TypeError, match="not a context manager"):
            run("with 5:\n    pass")

    def test_subscript_assignment(self):
        lines, _ = run('d = {"a": 1}\nd["b"] = 2\nitems = [0]\nitems[0] = 9\necho(d["b"], items[0])')
        assert lines == ["2 9"]


class TestExpressions:
    """Supported expressions."""

    def test_arithmetic(self):
        lines, _ = run("echo(7 // 2, 7 % 2, 7 / 2, -3, 2 * 3 - 1)")
        assert lines == ["3 1 3.5 -3 5"]

    def test_comparisons(self):
        lines, _ = run("echo(1 < 2 < 3, 1 < 3 < 2, 'a' in 'abc', 2 not in [1], None is None)")
        assert lines == ["True False True True True"]

    def test_boolean_logic_short_circuits(self):
        lines, _ = run("x = 0 or 'default'\ny = 0 and error()\necho(x, y, not x)")
        assert lines == ["default 0 False"]

    def test_conditional_expression(self):
        lines, _ = run("echo('yes' if len('ab') == 2 else 'no')")
        assert lines == ["yes"]

    def test_containers(self):
        lines, _ = run("echo([1, 2], (3,), {'k': 'v'}, sorted([3, 1, 2]))")
        assert lines == ["[1, 2] (3,) {'k': 'v'} [1, 2, 3]"]

    def test_slices(self):
        lines, _ = run("s = 'abcdef'\necho(s[1:3], s[::2], [1, 2, 3][-1])")
        assert lines == ["bc ace 3"]

    def test_allowed_methods(self):
        body = (
            "parts = 'a,b'.split(',')\n"
            "parts.append('c')\n"
            "echo('-'.join(parts).upper(), {'k': 1}.get('k'), options.get('region'))"
        )
        lines, _ = run(body, options={"region": "eu"})
        assert lines == ["A-B-C 1 eu"]

    def test_severity_binding(self):
        body = (
            "worst = Severity.UNSTABLE.combine(Severity.FAILURE)\n"
            "echo(worst.value, Severity.from_string('aborted').name)"
        )
        lines, _ = run(body, Severity=Severity)
        assert lines == ["failure ABORTED"]


class TestBindTimeRejection:
    """Bindings are checked when the evaluator is constructed."""

    def test_disallowed_binding(self):
        with pytest.raises(SecurityViolation, match="binding 'open'"):
            ScriptEvaluator({"echo": print, "open": open})

    def test_underscore_binding(self):
        with pytest.raises(SecurityViolation):
            ScriptEvaluator({"__import__": __import__})


class TestRunTimeGuard:
    """Guard checks that only happen during evaluation."""

    def test_method_outside_allow_list(self):
        with pytest.raises(SecurityViolation, match="dict.copy"):
            run("options.copy()", options={"a": 1})

    def test_str_format_rejected(self):
        with pytest.raises(SecurityViolation, match="str.format"):
            run('"{0.__class__}".format(1)')

    def test_method_reference_without_call(self):
        with pytest.raises(SecurityViolation):
            run("f = options.get", options={})

    def test_unknown_name_outside_allow_list(self):
        with pytest.raises(SecurityViolation, match="binding 'compile'"):
            run("compile('x', 'y', 'exec')")

    def test_allow_listed_but_unbound_name(self):
        with pytest.raises(ActionFailure, match="Name 'step' is not available"):
            run('step("echo")')

    def test_call_of_non_binding_value(self):
        with pytest.raises(SecurityViolation):
            run("x = 'text'\nx()")

    def test_subscript_of_unsupported_receiver(self):
        with pytest.raises(SecurityViolation):
            run("Severity['FAILURE']", Severity=Severity)

    def test_attribute_outside_allow_list(self):
        with pytest.raises(SecurityViolation):
            run("echo(Severity.SUCCESS.ordinal)", Severity=Severity)

    def test_side_effect_does_not_happen(self):
        lines = []
        with pytest.raises(SecurityViolation):
            run('echo("before")\noptions.clear()\necho("after")', options={"a": 1}, echo=lines.append)
        assert lines == ["before"]


class TestStepBudget:
    """Long-running scripts are stopped."""

    def test_budget_exceeded(self):
        evaluator = ScriptEvaluator({"range": range}, max_steps=50)
        with pytest.raises(ActionFailure, match="exceeded 50 evaluation steps"):
            evaluator.run(validate_inline("spin", "for i in range(1000):\n    pass"))

    def test_within_budget(self):
        evaluator = ScriptEvaluator({"range": range}, max_steps=50)
        evaluator.run(validate_inline("short", "for i in range(5):\n    pass"))
        assert evaluator.variables["i"] == 4

    def test_binding_errors_propagate(self):
        def error(message):
            raise ActionFailure(message, Severity.UNSTABLE)

        evaluator = ScriptEvaluator({"error": error})
        with pytest.raises(ActionFailure) as exc_info:
            evaluator.run(validate_inline("fail", 'error("bad")'))
        assert exc_info.value.severity == Severity.UNSTABLE


class TestValueLimits:
    """A single expression cannot build an unbounded value."""

    def test_string_repetition_rejected(self):
        with pytest.raises(ActionFailure, match="value too large"):
            run('x = "x" * 10000000000')

    def test_repetition_with_int_on_left(self):
        with pytest.raises(ActionFailure, match="value too large"):
            run("x = 10000000000 * [0]")

    def test_augmented_repetition_rejected(self):
        with pytest.raises(ActionFailure, match="value too large"):
            run('s = "ab"\nfor i in range(40):\n    s += s')

    def test_concatenation_doubling_rejected(self):
        with pytest.raises(ActionFailure, match="value too large"):
            run("items = [0]\nfor i in range(40):\n    items = items + items")

    def test_integer_product_rejected(self):
        with pytest.raises(ActionFailure, match="bit integer"):
            run("n = 3\nfor i in range(40):\n    n = n * n")

    def test_small_repetition_allowed(self):
        lines, _ = run('echo("ab" * 3, [0] * 2, 3 * "-")')
        assert lines == ["ababab [0, 0] ---"]

    def test_repetition_at_limit_allowed(self):
        _, evaluator = run(f'x = "y" * {MAX_SEQUENCE_LENGTH}')
        assert len(evaluator.variables["x"]) == MAX_SEQUENCE_LENGTH

    def test_bounded_range_rejects_huge_span(self):
        with pytest.raises(ActionFailure, match="range of 1000000000 items"):
            run("sorted(range(1000000000))", range=bounded_range)

    def test_bounded_range_allows_normal_use(self):
        lines, _ = run("echo(sorted(range(3, 0, -1)))", range=bounded_range)
        assert lines == ["[1, 2, 3]"]
