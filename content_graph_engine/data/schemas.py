"""
Data Schemas for the Content Relationship Graph

Captures:
- Content descriptors supplied by the content catalog
- Typed, weighted relationships between content units
- Derived structures (dependency chains, tree nodes, recommendations)
- Knowledge map output consumed by rendering code
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Set, Iterable
from enum import Enum
from datetime import datetime


class RelationshipType(Enum):
    PREREQUISITE = "prerequisite"  # source must be completed before target
    SEQUENCE = "sequence"  # source comes before target in a sequence
    RELATED = "related"
    SIMILAR = "similar"
    PRACTICE = "practice"  # source is practised by target
    DEPENDENT = "dependent"
    REFERENCE = "reference"
    EXAMPLE = "example"


# Relationship types that gate access and order learning
ORDERING_TYPES = frozenset({RelationshipType.PREREQUISITE, RelationshipType.SEQUENCE})


class NodeStatus(Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    CURRENT = "current"
    COMPLETED = "completed"


class RecommendationCategory(Enum):
    NEXT_IN_SEQUENCE = "next-in-sequence"
    RELATED_TOPIC = "related-topic"
    PRACTICE = "practice"
    SIMILAR_DIFFICULTY = "similar-difficulty"
    REVIEW = "review"


class LayoutKind(Enum):
    FORCE_DIRECTED = "force-directed"
    CIRCULAR = "circular"
    GRID = "grid"
    HIERARCHICAL = "hierarchical"


@dataclass
class ContentDescriptor:
    """A content unit (lesson, module) owned by the content catalog"""
    id: str
    title: str
    tags: Set[str] = field(default_factory=set)
    difficulty_rank: int = 1
    declared_prerequisites: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "tags": sorted(self.tags),
            "difficulty_rank": self.difficulty_rank,
            "declared_prerequisites": list(self.declared_prerequisites)
        }


@dataclass
class LinkMetadata:
    created: datetime = field(default_factory=datetime.now)
    automatic: bool = False
    description: str = ""
    created_by: str = "user"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created.isoformat(),
            "automatic": self.automatic,
            "description": self.description,
            "created_by": self.created_by
        }


@dataclass
class Relationship:
    """Directed, typed, weighted edge between two content units"""
    id: str
    source_id: str
    target_id: str
    type: RelationshipType
    strength: float = 1.0  # 0-1
    metadata: LinkMetadata = field(default_factory=LinkMetadata)
    seq: int = 0  # creation ordinal assigned by the graph store

    @property
    def is_ordering(self) -> bool:
        return self.type in ORDERING_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength,
            "metadata": self.metadata.to_dict(),
            "seq": self.seq
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Relationship":
        meta = record.get("metadata", {})
        created = meta.get("created")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return cls(
            id=record["id"],
            source_id=record["source_id"],
            target_id=record["target_id"],
            type=RelationshipType(record["type"]),
            strength=float(record.get("strength", 1.0)),
            metadata=LinkMetadata(
                created=created or datetime.now(),
                automatic=bool(meta.get("automatic", False)),
                description=meta.get("description", ""),
                created_by=meta.get("created_by", "user")
            ),
            seq=int(record.get("seq", 0))
        )


@dataclass
class LinkFilter:
    """Criteria for GraphStore.find_links; unset fields match everything"""
    source_ids: Optional[Iterable[str]] = None
    target_ids: Optional[Iterable[str]] = None
    types: Optional[Iterable[RelationshipType]] = None
    strength_range: Optional[tuple] = None  # (min, max)
    automatic: Optional[bool] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None

    def matches(self, link: Relationship) -> bool:
        if self.source_ids is not None and link.source_id not in set(self.source_ids):
            return False
        if self.target_ids is not None and link.target_id not in set(self.target_ids):
            return False
        if self.types is not None and link.type not in set(self.types):
            return False
        if self.strength_range is not None:
            low, high = self.strength_range
            if link.strength < low or link.strength > high:
                return False
        if self.automatic is not None and link.metadata.automatic != self.automatic:
            return False
        if self.created_after is not None and link.metadata.created < self.created_after:
            return False
        if self.created_before is not None and link.metadata.created > self.created_before:
            return False
        return True


@dataclass
class LinkAnalytics:
    """Aggregate statistics about the relationship set"""
    total_links: int
    links_by_type: Dict[RelationshipType, int]
    average_strength: float
    automatic_count: int
    manual_count: int
    most_connected_nodes: List[tuple]  # (node_id, connection_count)
    weakest_links: List[Relationship]
    strongest_links: List[Relationship]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_links": self.total_links,
            "links_by_type": {k.value: v for k, v in self.links_by_type.items()},
            "average_strength": self.average_strength,
            "automatic_vs_manual": {"automatic": self.automatic_count, "manual": self.manual_count},
            "most_connected_nodes": [
                {"id": node_id, "connection_count": count}
                for node_id, count in self.most_connected_nodes
            ],
            "weakest_links": [link.id for link in self.weakest_links],
            "strongest_links": [link.id for link in self.strongest_links]
        }


@dataclass
class DependencyChain:
    """Aggregate dependency view of a single content unit (derived)"""
    content_id: str
    prerequisites: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    depth: int = 0
    can_access: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id": self.content_id,
            "prerequisites": self.prerequisites,
            "dependents": self.dependents,
            "depth": self.depth,
            "can_access": self.can_access
        }


@dataclass
class ChainNode:
    """Tree node for prerequisite/dependent trees; children never point back"""
    id: str
    title: str
    level: int
    status: NodeStatus
    children: List["ChainNode"] = field(default_factory=list)
    is_circular: bool = False
    link_type: Optional[RelationshipType] = None
    link_strength: Optional[float] = None

    def iter_nodes(self):
        """Depth-first iteration over this node and all descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "level": self.level,
            "status": self.status.value,
            "is_circular": self.is_circular,
            "link_type": self.link_type.value if self.link_type else None,
            "link_strength": self.link_strength,
            "children": [child.to_dict() for child in self.children]
        }


@dataclass
class AccessCheck:
    content_id: str
    can_access: bool
    missing_prerequisites: List[str] = field(default_factory=list)


@dataclass
class ContentCluster:
    """Nodes sharing a dominant tag, anchored on their most connected member"""
    id: str
    tag: str
    nodes: List[str]
    centroid_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tag": self.tag,
            "nodes": self.nodes,
            "centroid_id": self.centroid_id
        }


@dataclass
class CycleResolution:
    """Weakest links whose removal would break a cycle"""
    cycle: List[str]
    suggested_removals: List[Relationship] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "suggested_removals": [link.id for link in self.suggested_removals]
        }


@dataclass
class RecommendationReason:
    kind: str  # "tag-overlap", "difficulty-match", "next-in-sequence", "practice", "review"
    weight: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "weight": self.weight, "description": self.description}


@dataclass
class Recommendation:
    """Scored, explained suggestion of a relationship to add"""
    source_id: Optional[str]
    target_id: str
    category: RecommendationCategory
    score: float  # 0-1
    reasons: List[RecommendationReason] = field(default_factory=list)

    @property
    def relationship_type(self) -> RelationshipType:
        if self.category is RecommendationCategory.NEXT_IN_SEQUENCE:
            return RelationshipType.SEQUENCE
        if self.category is RecommendationCategory.SIMILAR_DIFFICULTY:
            return RelationshipType.SIMILAR
        if self.category is RecommendationCategory.PRACTICE:
            return RelationshipType.PRACTICE
        return RelationshipType.RELATED

    @property
    def strength(self) -> float:
        return self.score

    @property
    def confidence(self) -> float:
        return self.score

    @property
    def reason(self) -> str:
        return "; ".join(r.description for r in self.reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.category.value,
            "relationship_type": self.relationship_type.value,
            "score": self.score,
            "strength": self.strength,
            "confidence": self.confidence,
            "reason": self.reason,
            "reasons": [r.to_dict() for r in self.reasons]
        }


# Knowledge map output
@dataclass
class Position:
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class KnowledgeMapNode:
    id: str
    title: str
    status: NodeStatus
    position: Position
    size: float
    color: str
    difficulty_rank: int = 1
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "position": self.position.to_dict(),
            "size": self.size,
            "color": self.color,
            "difficulty_rank": self.difficulty_rank,
            "tags": self.tags
        }


@dataclass
class KnowledgeMapConnection:
    id: str
    source_id: str
    target_id: str
    type: RelationshipType
    strength: float
    style: str  # solid, dashed, dotted
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength,
            "style": self.style,
            "color": self.color
        }


@dataclass
class KnowledgeMap:
    nodes: List[KnowledgeMapNode] = field(default_factory=list)
    connections: List[KnowledgeMapConnection] = field(default_factory=list)
    layout: LayoutKind = LayoutKind.FORCE_DIRECTED
    width: float = 1000.0
    height: float = 800.0
    highlighted_path: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "layout": self.layout.value,
            "width": self.width,
            "height": self.height,
            "highlighted_path": self.highlighted_path
        }
