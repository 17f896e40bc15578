"""
Contributor Registry for resolving named steps.

The registry maps step names to StepContributor instances. It is built once
at start (built-ins plus any configured plugins), injected into the
Scheduler, and only read while a run is in progress.
"""

import importlib
import logging
from typing import Iterable, Optional

from phasework.contributors.base import StepContributor
from phasework.errors import ConfigError, UnknownContributorError

logger = logging.getLogger(__name__)


class ContributorRegistry:
    """
    Registry of step contributors by name.

    Usage:
        registry = ContributorRegistry()
        registry.register(EchoContributor())

        # Resolve a named step
        contributor = registry.get("echo")

        # Or use factory with the built-ins
        registry = ContributorRegistry.create_default()
    """

    def __init__(self) -> None:
        """Initialize an empty contributor registry."""
        self._contributors: dict[str, StepContributor] = {}

    def register(self, contributor: StepContributor, name: Optional[str] = None) -> None:
        """
        Register a contributor.

        Args:
            contributor: StepContributor instance
            name: Name to register under (defaults to contributor.name)

        Raises:
            ValueError: If no name is available
        """
        key = name or contributor.name
        if not key:
            raise ValueError(f"Contributor {contributor!r} has no name")
        if key in self._contributors:
            logger.warning(f"Replacing step contributor: {key}")
        self._contributors[key] = contributor

    def get(self, name: str) -> StepContributor:
        """
        Get the contributor registered under a name.

        Raises:
            UnknownContributorError: If nothing is registered under the name
        """
        contributor = self._contributors.get(name)
        if contributor is None:
            raise UnknownContributorError(name)
        return contributor

    def lookup(self, name: str) -> Optional[StepContributor]:
        """Get the contributor for a name, or None if absent."""
        return self._contributors.get(name)

    def has(self, name: str) -> bool:
        return name in self._contributors

    def list_names(self) -> list[str]:
        """
        List all registered step names.

        Returns:
            Sorted list of names
        """
        return sorted(self._contributors)

    def items(self) -> list[tuple[str, StepContributor]]:
        return sorted(self._contributors.items())

    def load_plugins(self, modules: Iterable[str]) -> None:
        """
        Import plugin modules and let each register its contributors.

        Each module must define `register(registry)`.

        Raises:
            ConfigError: If a module cannot be imported or has no register()
        """
        for module_name in modules:
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                raise ConfigError(f"Cannot import plugin '{module_name}': {e}") from e

            register = getattr(module, "register", None)
            if not callable(register):
                raise ConfigError(f"Plugin '{module_name}' has no register(registry) function")

            register(self)
            logger.debug(f"Loaded plugin: {module_name}")

    @classmethod
    def create_default(cls, plugins: Iterable[str] = ()) -> "ContributorRegistry":
        """
        Create a registry with the built-in contributors (echo, sh, mark).

        Args:
            plugins: Plugin module names to load after the built-ins

        Returns:
            Configured ContributorRegistry
        """
        from phasework.contributors.builtin import BUILTIN_CONTRIBUTORS

        registry = cls()
        for contributor_cls in BUILTIN_CONTRIBUTORS:
            registry.register(contributor_cls())
        registry.load_plugins(plugins)
        return registry
