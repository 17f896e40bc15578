"""Tests for Severity and the result aggregator.

Tests cover:
- Total ordering SUCCESS < UNSTABLE < FAILURE < ABORTED
- combine: associative, commutative, SUCCESS identity
- Folding action results into phase and run severities
"""

import itertools

import pytest

from phasework.aggregator import combine, combine_all, is_fatal, phase_result, run_severity
from phasework.schemas import ActionResult, PhaseResult, Severity


ALL = list(Severity)


def _action(name: str, severity: Severity) -> ActionResult:
    return ActionResult(phase="p", action=name, severity=severity, log_ref=f"p/{name}")


class TestSeverityOrdering:
    """Tests for the severity scale."""

    def test_order(self):
        assert Severity.SUCCESS < Severity.UNSTABLE < Severity.FAILURE < Severity.ABORTED

    def test_sorted(self):
        shuffled = [Severity.FAILURE, Severity.SUCCESS, Severity.ABORTED, Severity.UNSTABLE]
        assert sorted(shuffled) == ALL

    def test_max_is_worst(self):
        assert max(Severity.UNSTABLE, Severity.FAILURE) == Severity.FAILURE

    def test_is_better_and_worse(self):
        assert Severity.SUCCESS.is_better_than(Severity.UNSTABLE)
        assert Severity.ABORTED.is_worse_than(Severity.FAILURE)
        assert not Severity.FAILURE.is_worse_than(Severity.FAILURE)

    def test_ordinal(self):
        assert [s.ordinal for s in ALL] == [0, 1, 2, 3]

    def test_comparison_with_other_types(self):
        with pytest.raises(TypeError):
            Severity.SUCCESS < 1


class TestFromString:
    """Tests for Severity.from_string()."""

    @pytest.mark.parametrize("text,expected", [
        ("success", Severity.SUCCESS),
        ("UNSTABLE", Severity.UNSTABLE),
        (" Failure ", Severity.FAILURE),
        ("aborted", Severity.ABORTED),
    ])
    def test_parses(self, text, expected):
        assert Severity.from_string(text) == expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown severity"):
            Severity.from_string("broken")


class TestCombine:
    """Algebraic properties of combine."""

    def test_identity(self):
        for s in ALL:
            assert combine(Severity.SUCCESS, s) == s
            assert combine(s, Severity.SUCCESS) == s

    def test_commutative(self):
        for a, b in itertools.product(ALL, repeat=2):
            assert combine(a, b) == combine(b, a)

    def test_associative(self):
        for a, b, c in itertools.product(ALL, repeat=3):
            assert combine(combine(a, b), c) == combine(a, combine(b, c))

    def test_idempotent(self):
        for s in ALL:
            assert combine(s, s) == s

    def test_method_matches_function(self):
        assert Severity.UNSTABLE.combine(Severity.FAILURE) == Severity.FAILURE

    def test_combine_all_empty_is_success(self):
        assert combine_all([]) == Severity.SUCCESS

    def test_combine_all(self):
        assert combine_all([Severity.UNSTABLE, Severity.SUCCESS, Severity.FAILURE]) == Severity.FAILURE

    def test_combine_all_start(self):
        assert combine_all([Severity.SUCCESS], start=Severity.ABORTED) == Severity.ABORTED


class TestAggregation:
    """Tests for phase and run folding."""

    def test_phase_result(self):
        result = phase_result("build", [
            _action("a", Severity.SUCCESS),
            _action("b", Severity.UNSTABLE),
        ])
        assert result.name == "build"
        assert result.severity == Severity.UNSTABLE
        assert [r.action for r in result.action_results] == ["a", "b"]
        assert [r.action for r in result.get_failed_actions()] == ["b"]

    def test_empty_phase_is_success(self):
        assert phase_result("empty", []).severity == Severity.SUCCESS

    def test_run_severity_includes_clean(self):
        phases = [PhaseResult("a", Severity.SUCCESS), PhaseResult("b", Severity.UNSTABLE)]
        clean = PhaseResult("clean", Severity.FAILURE)
        assert run_severity(phases) == Severity.UNSTABLE
        assert run_severity(phases, clean) == Severity.FAILURE

    def test_is_fatal_default_threshold(self):
        assert not is_fatal(Severity.UNSTABLE)
        assert is_fatal(Severity.FAILURE)
        assert is_fatal(Severity.ABORTED)

    def test_is_fatal_custom_threshold(self):
        assert is_fatal(Severity.UNSTABLE, threshold=Severity.UNSTABLE)
        assert not is_fatal(Severity.FAILURE, threshold=Severity.ABORTED)

    def test_results_are_immutable(self):
        result = _action("a", Severity.SUCCESS)
        with pytest.raises(Exception):
            result.severity = Severity.FAILURE
