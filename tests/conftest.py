import logging
import threading
from typing import Any, Optional

import pytest
import yaml

from phasework.contributors import ContributorRegistry, StepContributor
from phasework.errors import ActionFailure
from phasework.scheduler import Scheduler
from phasework.schemas import Severity


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point PHASEWORK_HOME at an empty directory and clear env overrides."""
    home = tmp_path / "phasework_home"
    monkeypatch.setenv("PHASEWORK_HOME", str(home))
    monkeypatch.delenv("PHASEWORK_LOG_LEVEL", raising=False)
    yield home
    logging.getLogger("phasework").handlers = []


class RendezvousContributor(StepContributor):
    """Blocks until `parties` actions have reached it at the same time."""

    name = "rendezvous"
    description = "Wait for sibling actions"

    def __init__(self, parties: int = 2, timeout: float = 5.0):
        self.barrier = threading.Barrier(parties, timeout=timeout)

    def execute(self, context, params: dict[str, Any]) -> Optional[Severity]:
        try:
            self.barrier.wait()
        except threading.BrokenBarrierError:
            raise ActionFailure("siblings never arrived")
        context.log(f"met {params.get('tag', context.action)}")
        return None


class ExplodingContributor(StepContributor):
    """Raises an unexpected exception."""

    name = "explode"
    description = "Raise RuntimeError"

    def execute(self, context, params: dict[str, Any]) -> Optional[Severity]:
        raise RuntimeError(params.get("message", "boom"))


@pytest.fixture
def registry():
    registry = ContributorRegistry.create_default()
    registry.register(RendezvousContributor())
    registry.register(ExplodingContributor())
    return registry


@pytest.fixture
def scheduler(registry):
    return Scheduler(registry)


@pytest.fixture
def run_yaml(scheduler):
    """Run a YAML document text through the scheduler."""

    def _run(text: str, **kwargs):
        return scheduler.run_document(yaml.safe_load(text), **kwargs)

    return _run
