"""
Recall Knowledge - Pathfinder 2e Recall Knowledge resolution engine for virtual tabletops.
"""

from .config import RecallKnowledgeSettings, load_settings
from .exceptions import *
from .models import *
from .orchestrator import LearnedInformationView, RecallKnowledgeOrchestrator, RecallOutcome, RecallStatus
from .store import InMemoryKeyValueStore, JsonFileKeyValueStore

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("recall-knowledge")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable
__all__ = [
    "RecallKnowledgeSettings",
    "load_settings",
    "RecallKnowledgeOrchestrator",
    "RecallOutcome",
    "RecallStatus",
    "LearnedInformationView",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
