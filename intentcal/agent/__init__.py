"""
Intent extraction & resolution pipeline
"""

from .llm_provider import ModelGateway
from .normalizer import normalize
from .orchestrator import IntentApplier, IntentPipeline
from .resolve_event_target import resolve

__all__ = [
    "ModelGateway",
    "normalize",
    "IntentApplier",
    "IntentPipeline",
    "resolve",
]
