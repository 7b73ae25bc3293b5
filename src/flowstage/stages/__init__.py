"""Stage implementations.

Stages are instantiated directly by their host; there is no discovery
registry.
"""

from flowstage.stages.base import BaseStage, ProcessContext, StageInitializationContext
from flowstage.stages.sample import SampleStage

__all__ = [
    "BaseStage",
    "ProcessContext",
    "SampleStage",
    "StageInitializationContext",
]
