"""
Step contributors - the implementations behind named steps.

Usage:
    from phasework.contributors import ContributorRegistry

    registry = ContributorRegistry.create_default()
    registry.register(MyContributor())
"""

from phasework.contributors.base import StepContributor
from phasework.contributors.builtin import (
    EchoContributor,
    MarkContributor,
    ShellContributor,
)
from phasework.contributors.registry import ContributorRegistry

__all__ = [
    "StepContributor",
    "EchoContributor",
    "MarkContributor",
    "ShellContributor",
    "ContributorRegistry",
]
