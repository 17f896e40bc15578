"""
Base step contributor protocol.

A step contributor is the implementation behind a named step. Actions refer
to contributors by name ("action: {step: echo, ...}") and the scheduler
resolves those names against a ContributorRegistry before anything runs.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, TYPE_CHECKING

from phasework.schemas import Severity

if TYPE_CHECKING:
    from phasework.context import ActionContext


class StepContributor(ABC):
    """
    Abstract base class for step contributors.

    Contributors receive the action's context and its rendered params. They
    write output through context.log() and report their outcome either by
    returning a Severity (None means SUCCESS) or by raising ActionFailure.
    Any other exception is recorded as FAILURE.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def execute(self, context: "ActionContext", params: dict[str, Any]) -> Optional[Severity]:
        """
        Execute the step.

        Args:
            context: The running action's context
            params: Params with ${...} placeholders already rendered

        Returns:
            Severity of the step, or None for SUCCESS

        Raises:
            ActionFailure: If the step fails
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
