"""Tests for phasework error classes.

Tests cover:
- The BuildError / ActionFailure split
- Messages that are surfaced verbatim as failure reasons
- Field paths on TranslationError
"""

import pytest

from phasework.errors import (
    ActionFailure,
    BuildError,
    ConfigError,
    InlineScriptError,
    PhaseworkError,
    PropertyLookupError,
    SecurityViolation,
    TranslationError,
    UnknownContributorError,
)
from phasework.schemas import Severity


class TestHierarchy:
    """Which errors are build-time and which are run-time."""

    @pytest.mark.parametrize("error_cls", [
        TranslationError,
        InlineScriptError,
        UnknownContributorError,
        SecurityViolation,
    ])
    def test_build_errors(self, error_cls):
        assert issubclass(error_cls, BuildError)
        assert issubclass(error_cls, PhaseworkError)

    @pytest.mark.parametrize("error_cls", [ActionFailure, ConfigError, PropertyLookupError])
    def test_not_build_errors(self, error_cls):
        assert not issubclass(error_cls, BuildError)
        assert issubclass(error_cls, PhaseworkError)

    def test_build_error_can_be_caught_as_base(self):
        with pytest.raises(PhaseworkError):
            raise UnknownContributorError("x")


class TestMessages:
    """Messages surfaced to users."""

    def test_unknown_contributor(self):
        error = UnknownContributorError("deploy")
        assert str(error) == "Unknown step contributor: deploy"
        assert error.name == "deploy"

    def test_security_violation(self):
        error = SecurityViolation("method str.format()")
        assert str(error) == "Operation not permitted: method str.format()"
        assert error.operation == "method str.format()"

    def test_inline_script_error(self):
        error = InlineScriptError("nested", "bad code", names=("stage",))
        assert str(error) == "bad code"
        assert error.action == "nested"
        assert error.names == ("stage",)


class TestTranslationError:
    """Field paths."""

    def test_message_excludes_path(self):
        error = TranslationError("No action or Pipeline code specified", "phases[0].actions[1]")
        assert str(error) == "No action or Pipeline code specified"

    def test_describe_includes_path(self):
        error = TranslationError("Missing required key 'name'", "phases[2]")
        assert error.describe() == "phases[2]: Missing required key 'name'"

    def test_describe_without_path(self):
        assert TranslationError("Pipeline document is empty").describe() == "Pipeline document is empty"


class TestActionFailure:
    """Severity carried by a run-time failure."""

    def test_defaults_to_failure(self):
        assert ActionFailure("boom").severity == Severity.FAILURE

    def test_explicit_severity(self):
        error = ActionFailure("Run cancelled", Severity.ABORTED)
        assert error.severity == Severity.ABORTED
        assert str(error) == "Run cancelled"
