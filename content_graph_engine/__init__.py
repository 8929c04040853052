"""
Content Graph Engine
====================

Relationship graph for learning content:
- Typed, weighted links between content units
- Prerequisite status, trees, cycles and learning sequences
- Ranked, explained next-content recommendations
- Force-directed layouts and knowledge maps for visualization
"""

from .main import ContentGraphEngine, EngineConfig
from .errors import (
    GraphEngineError,
    ValidationError,
    NotFoundError,
    StorageError,
    LayoutCancelledError
)

__version__ = "0.1.0"
__all__ = [
    "ContentGraphEngine",
    "EngineConfig",
    "GraphEngineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "LayoutCancelledError"
]
