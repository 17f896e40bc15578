"""Tests for the property bridge.

Tests cover:
- Dotted path lookup through mappings, indices and allow-listed properties
- Lookup failures and security violations
- ${path} template rendering
"""

import pytest

from phasework.bridge import PropertyBridge
from phasework.errors import PropertyLookupError, SecurityViolation
from phasework.translator import translate


@pytest.fixture
def spec():
    return translate({
        "options": {
            "region": "eu-west-1",
            "count": 3,
            "env": {"FOO": "bar"},
            "targets": ["web", "db"],
        },
        "phases": [
            {"name": "build", "actions": [
                {"name": "greet", "action": {"step": "echo", "params": {"message": "hi"}}},
                {"name": "script", "pipeline": "pass"},
            ]},
            {"name": "deploy", "concurrency": 2, "actions": [{"name": "ship", "action": "sh"}]},
        ],
    })


@pytest.fixture
def bridge(spec):
    return PropertyBridge(spec)


class TestGet:
    """Tests for PropertyBridge.get()."""

    def test_option(self, bridge):
        assert bridge.get("options.region") == "eu-west-1"

    def test_nested_option(self, bridge):
        assert bridge.get("options.env.FOO") == "bar"

    def test_index(self, bridge):
        assert bridge.get("options.targets.1") == "db"

    def test_phase_names(self, bridge):
        assert bridge.get("phase_names") == ("build", "deploy")

    def test_model_path(self, bridge):
        assert bridge.get("phases.0.actions.0.step.ref") == "echo"
        assert bridge.get("phases.0.actions.0.step.params.message") == "hi"
        assert bridge.get("phases.1.concurrency") == 2

    def test_missing_key(self, bridge):
        with pytest.raises(PropertyLookupError, match="missing 'zone'"):
            bridge.get("options.zone")

    def test_bad_index(self, bridge):
        with pytest.raises(PropertyLookupError, match="bad index"):
            bridge.get("phases.5")

    def test_navigate_into_scalar(self, bridge):
        with pytest.raises(PropertyLookupError, match="Cannot navigate into str"):
            bridge.get("options.region.upper")

    def test_empty_path(self, bridge):
        with pytest.raises(PropertyLookupError):
            bridge.get("")

    def test_method_is_not_a_property(self, bridge):
        with pytest.raises(SecurityViolation):
            bridge.get("phases.0.get_action")

    def test_underscore_rejected(self, bridge):
        with pytest.raises(SecurityViolation):
            bridge.get("phases.0.__class__")

    def test_has(self, bridge):
        assert bridge.has("options.count")
        assert not bridge.has("options.nope")


class TestRender:
    """Tests for PropertyBridge.render()."""

    def test_embedded_placeholder(self, bridge):
        assert bridge.render("deploy to ${options.region}") == "deploy to eu-west-1"

    def test_whole_placeholder_keeps_type(self, bridge):
        assert bridge.render("${options.count}") == 3

    def test_whitespace_in_placeholder(self, bridge):
        assert bridge.render("${ options.env.FOO }") == "bar"

    def test_multiple_placeholders(self, bridge):
        assert bridge.render("${options.env.FOO}-${options.count}") == "bar-3"

    def test_recursive(self, bridge):
        rendered = bridge.render({
            "message": "in ${options.region}",
            "items": ["${phase_names}", "plain"],
        })
        assert rendered == {"message": "in eu-west-1", "items": [("build", "deploy"), "plain"]}

    def test_non_strings_untouched(self, bridge):
        assert bridge.render(5) == 5
        assert bridge.render(None) is None

    def test_unknown_placeholder_raises(self, bridge):
        with pytest.raises(PropertyLookupError):
            bridge.render("${options.missing}")
