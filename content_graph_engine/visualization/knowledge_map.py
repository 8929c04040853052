"""
Knowledge Map

Assembles a renderable knowledge map from the catalog, the relationship
set and a learner's progress. Rendering hints (sizes, colors, line
styles) are computed here; drawing is left to the caller.
"""

import json
import logging
from typing import Dict, Iterable, List, Optional

import networkx as nx
from matplotlib.colors import to_hex, to_rgba

from ..data.catalog import ContentCatalog
from ..data.dependency_analyzer import DependencyAnalyzer
from ..data.graph_store import GraphStore
from ..data.schemas import (
    KnowledgeMap, KnowledgeMapConnection, KnowledgeMapNode, LayoutKind,
    NodeStatus, Position, RelationshipType
)
from .layout_engine import ForceDirectedLayout

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    NodeStatus.COMPLETED: '#22c55e',  # green
    NodeStatus.CURRENT: '#3b82f6',  # blue
    NodeStatus.AVAILABLE: '#f59e0b',  # amber
    NodeStatus.LOCKED: '#9ca3af',  # gray
}

CONNECTION_STYLES = {
    RelationshipType.PREREQUISITE: 'solid',
    RelationshipType.DEPENDENT: 'solid',
    RelationshipType.SEQUENCE: 'solid',
    RelationshipType.RELATED: 'dashed',
    RelationshipType.SIMILAR: 'dashed',
    RelationshipType.REFERENCE: 'dotted',
    RelationshipType.EXAMPLE: 'dotted',
    RelationshipType.PRACTICE: 'dotted',
}

CONNECTION_COLORS = {
    RelationshipType.PREREQUISITE: '#ef4444',  # red
    RelationshipType.DEPENDENT: '#f56565',  # light red
    RelationshipType.SEQUENCE: '#3b82f6',  # blue
    RelationshipType.RELATED: '#6b7280',  # gray
    RelationshipType.SIMILAR: '#a855f7',  # purple
    RelationshipType.REFERENCE: '#22c55e',  # green
    RelationshipType.EXAMPLE: '#fbbf24',  # yellow
    RelationshipType.PRACTICE: '#f97316',  # orange
}

PATH_COLOR = '#ff6b6b'
DIMMED_ALPHA = 0.3


def with_alpha(color: str, alpha: float) -> str:
    """Hex RGBA string (#rrggbbaa) for a color at the given alpha."""
    return to_hex(to_rgba(color, alpha=alpha), keep_alpha=True)


def connection_style(link_type: RelationshipType) -> str:
    return CONNECTION_STYLES[link_type]


def connection_color(link_type: RelationshipType, strength: float) -> str:
    return with_alpha(CONNECTION_COLORS[link_type], max(DIMMED_ALPHA, strength))


def node_size(difficulty_rank: int) -> float:
    return float(min(50, 20 + 3 * difficulty_rank))


def build_knowledge_map(
    catalog: ContentCatalog,
    store: GraphStore,
    analyzer: DependencyAnalyzer,
    completed: Iterable[str] = (),
    current_id: Optional[str] = None,
    layout: LayoutKind = LayoutKind.FORCE_DIRECTED,
    width: float = 1000.0,
    height: float = 800.0,
    highlight_targets: Optional[Iterable[str]] = None,
    layout_engine: Optional[ForceDirectedLayout] = None
) -> KnowledgeMap:
    """
    Build the knowledge map for a learner.

    Args:
        completed: ids the learner has finished
        current_id: unit the learner is on
        layout: placement algorithm
        highlight_targets: if given, the learning sequence towards these
            ids is highlighted and everything else is dimmed

    Returns:
        KnowledgeMap with positioned, styled nodes and connections
    """
    completed = set(completed)
    layout = LayoutKind(layout)
    layout_engine = layout_engine or ForceDirectedLayout()

    ids = catalog.ids()
    links = [
        link for link in store.all_links()
        if link.source_id in catalog and link.target_id in catalog
    ]
    levels = analyzer.get_depths() if layout is LayoutKind.HIERARCHICAL else None
    positions = layout_engine.apply_layout(layout, ids, links, width, height, levels=levels)

    nodes = []
    for descriptor in catalog:
        status = analyzer.compute_status(descriptor.id, completed, current_id)
        nodes.append(KnowledgeMapNode(
            id=descriptor.id,
            title=descriptor.title,
            status=status,
            position=positions.get(descriptor.id, Position(width / 2, height / 2)),
            size=node_size(descriptor.difficulty_rank),
            color=with_alpha(STATUS_COLORS[status], 1.0),
            difficulty_rank=descriptor.difficulty_rank,
            tags=sorted(descriptor.tags)
        ))

    connections = [
        KnowledgeMapConnection(
            id=link.id,
            source_id=link.source_id,
            target_id=link.target_id,
            type=link.type,
            strength=link.strength,
            style=connection_style(link.type),
            color=connection_color(link.type, link.strength)
        )
        for link in links
    ]

    knowledge_map = KnowledgeMap(
        nodes=nodes,
        connections=connections,
        layout=layout,
        width=width,
        height=height
    )

    if highlight_targets:
        path = analyzer.get_learning_sequence(highlight_targets, completed)
        highlight_path(knowledge_map, path)

    logger.info(f"Built knowledge map: {len(nodes)} nodes, {len(connections)} connections")
    return knowledge_map


def highlight_path(knowledge_map: KnowledgeMap, path: List[str]):
    """Dim nodes off the path and recolor connections between path nodes."""
    on_path = set(path)
    knowledge_map.highlighted_path = list(path)
    for node in knowledge_map.nodes:
        alpha = 1.0 if node.id in on_path else DIMMED_ALPHA
        node.color = with_alpha(node.color, alpha)
    for connection in knowledge_map.connections:
        if connection.source_id in on_path and connection.target_id in on_path:
            connection.color = with_alpha(PATH_COLOR, 1.0)


def to_networkx(knowledge_map: KnowledgeMap) -> nx.MultiDiGraph:
    """Knowledge map as a MultiDiGraph keyed by connection id."""
    G = nx.MultiDiGraph()
    for node in knowledge_map.nodes:
        G.add_node(
            node.id,
            name=node.title,
            status=node.status.value,
            x=node.position.x,
            y=node.position.y,
            size=node.size,
            color=node.color,
            difficulty_rank=node.difficulty_rank,
            tags=";".join(node.tags),
            highlighted=node.id in knowledge_map.highlighted_path
        )
    for connection in knowledge_map.connections:
        G.add_edge(
            connection.source_id,
            connection.target_id,
            key=connection.id,
            type=connection.type.value,
            strength=connection.strength,
            style=connection.style,
            color=connection.color
        )
    return G


def export_knowledge_map(knowledge_map: KnowledgeMap, fmt: str = "json") -> str:
    """Serialize a knowledge map as `json`, `graphml` or `cytoscape` JSON."""
    if fmt == "json":
        return json.dumps(knowledge_map.to_dict(), indent=2)
    if fmt == "graphml":
        return "\n".join(nx.generate_graphml(to_networkx(knowledge_map)))
    if fmt == "cytoscape":
        return json.dumps(nx.cytoscape_data(to_networkx(knowledge_map)), indent=2)
    raise ValueError(f"Unsupported export format: {fmt}")


def summarize_statuses(knowledge_map: KnowledgeMap) -> Dict[str, int]:
    counts = {status.value: 0 for status in NodeStatus}
    for node in knowledge_map.nodes:
        counts[node.status.value] += 1
    return counts
