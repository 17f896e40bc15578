"""
phasework - Declarative pipeline engine

Runs documents describing ordered phases of named actions. Actions within a
phase run concurrently (optionally capped); phases run strictly in order and
a clean section runs last. Outcomes fold into a single run severity.
"""

__version__ = "0.1.0"


__all__ = ["EngineConfig", "load_config", "get_phasework_home"]

from .config import EngineConfig, load_config, get_phasework_home
