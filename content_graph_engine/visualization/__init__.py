"""Layout and knowledge map module for the Content Graph Engine."""

from .layout_engine import CancellationToken, ForceDirectedLayout, LayoutProgress
from .knowledge_map import build_knowledge_map, export_knowledge_map, to_networkx

__all__ = [
    'CancellationToken',
    'ForceDirectedLayout',
    'LayoutProgress',
    'build_knowledge_map',
    'export_knowledge_map',
    'to_networkx'
]
