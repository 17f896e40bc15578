"""
Inline scripts - validation and evaluation of action-supplied code.

Usage:
    from phasework.script import validate_inline, ScriptEvaluator, build_bindings

    parsed = validate_inline("greet", 'echo("hello")')
    ScriptEvaluator(build_bindings(context)).run(parsed)
"""

from phasework.script.bindings import build_bindings
from phasework.script.evaluator import ScriptEvaluator
from phasework.script.validator import (
    ParsedScript,
    RESERVED_CONSTRUCTS,
    find_reserved_constructs,
    illegal_steps_message,
    validate_inline,
)

__all__ = [
    "build_bindings",
    "ScriptEvaluator",
    "ParsedScript",
    "RESERVED_CONSTRUCTS",
    "find_reserved_constructs",
    "illegal_steps_message",
    "validate_inline",
]
