"""
Content Graph Engine - Main Orchestration Service

Wires together the relationship graph components:
- Graph Store (typed, weighted links between content units)
- Dependency Analyzer (status, trees, cycles, chains, paths, clusters)
- Recommendation Engine (ranked, explained next-content suggestions)
- Layout Engine and knowledge map assembly
"""

import logging
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .data.catalog import ContentCatalog
from .data.dependency_analyzer import DependencyAnalyzer
from .data.graph_store import GraphStore
from .data.schemas import (
    ChainNode, ContentCluster, CycleResolution, DependencyChain, KnowledgeMap,
    LayoutKind, NodeStatus, Position, Recommendation, Relationship, RelationshipType
)
from .data.storage import KeyValueStore
from .recommendation.recommendation_engine import RecommendationEngine
from .visualization.knowledge_map import build_knowledge_map
from .visualization.layout_engine import CancellationToken, ForceDirectedLayout

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for the Content Graph Engine"""
    # Trees
    default_max_depth: int = 5

    # Force-directed layout
    layout_iterations: int = 100
    layout_batch_size: int = 10
    repulsion: float = 2000.0
    attraction: float = 0.01
    damping: float = 0.85
    centering: float = 0.01
    node_radius: float = 20.0
    max_displacement: float = 50.0
    layout_time_budget: Optional[float] = None  # seconds

    # Recommendation scoring
    tag_weight: float = 0.4
    difficulty_weight: float = 0.3
    sequence_bonus: float = 0.9
    practice_bonus: float = 0.5
    max_difficulty_span: Optional[int] = None  # defaults to the catalog's rank range
    default_top_n: int = 5

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {unknown}")
        return cls(**{k: v for k, v in values.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ContentGraphEngine:
    """
    Main entry point for hosts of the relationship graph.

    Integrates:
    1. GraphStore over an injected key-value store
    2. DependencyAnalyzer
    3. RecommendationEngine
    4. ForceDirectedLayout and knowledge maps
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: Optional[KeyValueStore] = None,
        config: Optional[EngineConfig] = None
    ):
        self.config = config or EngineConfig()
        self.catalog = catalog

        self.graph_store = GraphStore(catalog, store)
        self.analyzer = DependencyAnalyzer(catalog, self.graph_store)
        self.recommender = RecommendationEngine(
            catalog,
            self.graph_store,
            tag_weight=self.config.tag_weight,
            difficulty_weight=self.config.difficulty_weight,
            sequence_bonus=self.config.sequence_bonus,
            practice_bonus=self.config.practice_bonus,
            max_difficulty_span=self.config.max_difficulty_span,
            default_top_n=self.config.default_top_n
        )
        self.layout_engine = ForceDirectedLayout(
            iterations=self.config.layout_iterations,
            repulsion=self.config.repulsion,
            attraction=self.config.attraction,
            damping=self.config.damping,
            centering=self.config.centering,
            node_radius=self.config.node_radius,
            max_displacement=self.config.max_displacement,
            batch_size=self.config.layout_batch_size,
            time_budget=self.config.layout_time_budget
        )

        logger.info(f"Initialized content graph engine over {len(catalog)} content units")

    # Graph store

    def create_link(
        self,
        source_id: str,
        target_id: str,
        link_type: RelationshipType = RelationshipType.RELATED,
        strength: float = 1.0,
        description: str = "",
        automatic: bool = False
    ) -> Relationship:
        return self.graph_store.create_link(source_id, target_id, link_type, strength, description, automatic)

    def update_link(self, link_id: str, **patch) -> Relationship:
        return self.graph_store.update_link(link_id, **patch)

    def delete_link(self, link_id: str) -> bool:
        return self.graph_store.delete_link(link_id)

    def get_outgoing_links(self, node_id: str) -> List[Relationship]:
        return self.graph_store.get_outgoing_links(node_id)

    def get_incoming_links(self, node_id: str) -> List[Relationship]:
        return self.graph_store.get_incoming_links(node_id)

    # Dependency analysis

    def compute_status(self, node_id: str, completed: Iterable[str], current_id: Optional[str] = None) -> NodeStatus:
        return self.analyzer.compute_status(node_id, completed, current_id)

    def build_prerequisite_tree(
        self,
        node_id: str,
        max_depth: Optional[int] = None,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> Optional[ChainNode]:
        max_depth = self.config.default_max_depth if max_depth is None else max_depth
        return self.analyzer.build_prerequisite_tree(node_id, max_depth, completed, current_id)

    def build_dependent_tree(
        self,
        node_id: str,
        max_depth: Optional[int] = None,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> Optional[ChainNode]:
        max_depth = self.config.default_max_depth if max_depth is None else max_depth
        return self.analyzer.build_dependent_tree(node_id, max_depth, completed, current_id)

    def analyze_dependency_chain(
        self,
        node_id: str,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> DependencyChain:
        return self.analyzer.analyze_dependency_chain(node_id, completed, current_id)

    def find_circular_dependencies(self) -> List[List[str]]:
        return self.analyzer.find_circular_dependencies()

    def suggest_cycle_resolutions(self) -> List[CycleResolution]:
        return self.analyzer.suggest_cycle_resolutions()

    def find_optimal_path(self, current_id: str, completed: Iterable[str] = ()) -> List[str]:
        return self.analyzer.find_optimal_path(current_id, completed)

    def detect_clusters(self) -> List[ContentCluster]:
        return self.analyzer.detect_clusters()

    def analyze_relationships(self, top_k: int = 10) -> Dict[str, Any]:
        """
        Whole-graph relationship report

        Returns:
            Strongest links, tag clusters, critical path, isolated nodes,
            cycles with suggested removals and suggested new links
        """
        analytics = self.graph_store.get_analytics(top_k=top_k)
        return {
            'strongest_connections': [
                {'link_id': link.id, 'source_id': link.source_id,
                 'target_id': link.target_id, 'strength': link.strength}
                for link in analytics.strongest_links
            ],
            'clusters': [c.to_dict() for c in self.detect_clusters()],
            'critical_path': self.analyzer.find_critical_path(),
            'isolated_nodes': self.analyzer.find_isolated_nodes(),
            'circular_dependencies': [r.to_dict() for r in self.suggest_cycle_resolutions()],
            'recommended_links': [r.to_dict() for r in self.recommender.suggest_links()]
        }

    # Recommendations

    def generate_recommendations(
        self,
        completed: Iterable[str],
        current_id: Optional[str],
        catalog: Optional[ContentCatalog] = None,
        top_n: Optional[int] = None
    ) -> List[Recommendation]:
        return self.recommender.generate_recommendations(completed, current_id, catalog, top_n)

    def accept_recommendation(self, recommendation: Recommendation) -> Relationship:
        return self.recommender.accept_recommendation(recommendation)

    # Layout and maps

    def compute_layout(
        self,
        width: float = 1000.0,
        height: float = 800.0,
        iterations: Optional[int] = None,
        token: Optional[CancellationToken] = None
    ) -> Dict[str, Position]:
        """Force-directed layout of every catalog node over all resolvable links."""
        links = [
            link for link in self.graph_store.all_links()
            if link.source_id in self.catalog and link.target_id in self.catalog
        ]
        return self.layout_engine.compute_layout(self.catalog.ids(), links, width, height, iterations, token)

    def build_knowledge_map(
        self,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None,
        layout: LayoutKind = LayoutKind.FORCE_DIRECTED,
        width: float = 1000.0,
        height: float = 800.0,
        highlight_targets: Optional[Iterable[str]] = None
    ) -> KnowledgeMap:
        return build_knowledge_map(
            self.catalog,
            self.graph_store,
            self.analyzer,
            completed,
            current_id,
            layout=layout,
            width=width,
            height=height,
            highlight_targets=highlight_targets,
            layout_engine=self.layout_engine
        )

    def get_learning_overview(self, completed: Iterable[str], current_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a learner-facing overview

        Returns:
            Status counts, access check, ranked next content and review
            suggestions for the learner
        """
        completed = set(completed)
        statuses = {node_id: self.compute_status(node_id, completed, current_id) for node_id in self.catalog.ids()}
        recommendations = self.generate_recommendations(completed, current_id)

        overview = {
            'current_id': current_id,
            'summary': {
                status.value: sum(1 for s in statuses.values() if s == status)
                for status in NodeStatus
            },
            'available': [n for n, s in statuses.items() if s == NodeStatus.AVAILABLE],
            'next_steps': [r.to_dict() for r in recommendations],
            'review': [r.to_dict() for r in self.recommender.generate_review_suggestions(completed)],
            'circular_dependencies': self.find_circular_dependencies()
        }
        if current_id is not None:
            access = self.analyzer.check_access(current_id, completed)
            overview['access'] = {
                'can_access': access.can_access,
                'missing_prerequisites': access.missing_prerequisites
            }
        return overview

    def to_dataframes(self) -> Dict[str, pd.DataFrame]:
        """Catalog, links and per-node chain metrics as DataFrames."""
        depths = self.analyzer.get_depths()
        G = self.analyzer.ordering_graph()
        nodes = pd.DataFrame(
            [
                {
                    'id': node_id,
                    'depth': depths.get(node_id, 0),
                    'prerequisite_count': G.in_degree(node_id),
                    'dependent_count': G.out_degree(node_id)
                }
                for node_id in self.catalog.ids()
            ],
            columns=['id', 'depth', 'prerequisite_count', 'dependent_count']
        )
        return {
            'catalog': self.catalog.to_dataframe(),
            'links': self.graph_store.to_dataframe(),
            'nodes': nodes
        }
