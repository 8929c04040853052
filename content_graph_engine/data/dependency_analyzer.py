"""
Dependency Analyzer

Derives learner-facing structure from prerequisite and sequence links:
node status, prerequisite/dependent trees, cycles and their suggested
repairs, chain summaries, learning sequences, optimal paths and tag
clusters.
"""

import heapq
import logging
import math
from collections import defaultdict, deque
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx

from .catalog import ContentCatalog
from .graph_store import GraphStore
from .schemas import (
    AccessCheck, ChainNode, ContentCluster, ContentDescriptor, CycleResolution,
    DependencyChain, NodeStatus, ORDERING_TYPES
)

logger = logging.getLogger(__name__)

WHITE, GREY, BLACK = 0, 1, 2


class DependencyAnalyzer:
    """
    Read-only analyses over the ordering subgraph.

    An edge `source -> target` means the source comes before the target.
    Links touching ids unknown to the catalog are skipped. Derived graphs
    are rebuilt only when the store or catalog version changes.
    """

    def __init__(self, catalog: ContentCatalog, store: GraphStore):
        self.catalog = catalog
        self.store = store
        self._cache_key: Optional[Tuple[int, int]] = None
        self._cache: Dict[str, Any] = {}

    # Derived graphs

    def _cached(self, name: str, build):
        key = (self.store.version, self.catalog.version)
        if key != self._cache_key:
            self._cache = {}
            self._cache_key = key
        if name not in self._cache:
            self._cache[name] = build()
        return self._cache[name]

    def ordering_graph(self) -> nx.DiGraph:
        """
        Prerequisite/sequence DiGraph; each edge keeps its earliest link.

        The graph is shared with later queries, so it is frozen: callers
        that need to edit it should take `nx.DiGraph(G)` first.
        """
        return self._cached("ordering", self._build_ordering_graph)

    def _build_ordering_graph(self) -> nx.DiGraph:
        G = nx.DiGraph()
        for descriptor in self.catalog:
            G.add_node(descriptor.id)

        skipped = 0
        for link in self.store.all_links():
            if link.type not in ORDERING_TYPES:
                continue
            if link.source_id not in G or link.target_id not in G:
                skipped += 1
                continue
            if not G.has_edge(link.source_id, link.target_id):
                G.add_edge(link.source_id, link.target_id, link=link)

        if skipped:
            logger.warning(f"Skipped {skipped} dangling ordering links")
        logger.debug(f"Built ordering graph: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges")
        return nx.freeze(G)

    def _circular_edges(self) -> Set[Tuple[str, str]]:
        def build():
            edges = set()
            for cycle in self._cycles():
                for i, node in enumerate(cycle):
                    edges.add((node, cycle[(i + 1) % len(cycle)]))
            return edges
        return self._cached("circular_edges", build)

    def _depths(self) -> Dict[str, int]:
        def build():
            G = self.ordering_graph()
            C = nx.condensation(G)
            mapping = C.graph["mapping"]
            component_depth: Dict[int, int] = {}
            for component in nx.topological_sort(C):
                preds = list(C.predecessors(component))
                component_depth[component] = max((component_depth[p] + 1 for p in preds), default=0)
            return {node: component_depth[mapping[node]] for node in G}
        return self._cached("depths", build)

    def get_depths(self) -> Dict[str, int]:
        """Longest ordering chain ending at each node, on the SCC condensation."""
        return dict(self._depths())

    # Status

    def compute_status(
        self,
        node_id: str,
        completed: Iterable[str],
        current_id: Optional[str] = None
    ) -> NodeStatus:
        """
        Status of a node for a learner.

        Completed wins over current; a node with no declared prerequisites
        (or one unknown to the catalog) is never locked.
        """
        completed = completed if isinstance(completed, (set, frozenset)) else set(completed)
        if node_id in completed:
            return NodeStatus.COMPLETED
        if node_id == current_id:
            return NodeStatus.CURRENT
        descriptor = self.catalog.get(node_id)
        prereqs = descriptor.declared_prerequisites if descriptor else []
        if all(p in completed for p in prereqs):
            return NodeStatus.AVAILABLE
        return NodeStatus.LOCKED

    def check_access(self, node_id: str, completed: Iterable[str]) -> AccessCheck:
        completed = set(completed)
        descriptor = self.catalog.get(node_id)
        prereqs = descriptor.declared_prerequisites if descriptor else []
        missing = [p for p in prereqs if p not in completed]
        return AccessCheck(content_id=node_id, can_access=not missing, missing_prerequisites=missing)

    # Trees

    def build_prerequisite_tree(
        self,
        node_id: str,
        max_depth: int,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> Optional[ChainNode]:
        """Tree of everything that comes before `node_id`, root at level 0."""
        return self._build_tree(node_id, max_depth, completed, current_id, reverse=True)

    def build_dependent_tree(
        self,
        node_id: str,
        max_depth: int,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> Optional[ChainNode]:
        """Tree of everything that builds on `node_id`, root at level 0."""
        return self._build_tree(node_id, max_depth, completed, current_id, reverse=False)

    def _build_tree(
        self,
        node_id: str,
        max_depth: int,
        completed: Iterable[str],
        current_id: Optional[str],
        reverse: bool
    ) -> Optional[ChainNode]:
        if node_id not in self.catalog or max_depth < 0:
            return None

        G = self.ordering_graph()
        circular_edges = self._circular_edges()
        completed = set(completed)
        neighbours = G.predecessors if reverse else G.successors

        def make_node(content_id: str, level: int) -> ChainNode:
            return ChainNode(
                id=content_id,
                title=self.catalog.get(content_id).title,
                level=level,
                status=self.compute_status(content_id, completed, current_id)
            )

        # Visited set is per path: diamonds expand on every leg
        def expand(parent: ChainNode, path: Set[str]):
            if parent.level >= max_depth:
                return
            for other in neighbours(parent.id):
                edge = (other, parent.id) if reverse else (parent.id, other)
                link = G.edges[edge]["link"]
                child = make_node(other, parent.level + 1)
                child.link_type = link.type
                child.link_strength = link.strength
                child.is_circular = edge in circular_edges
                parent.children.append(child)
                if other not in path:
                    expand(child, path | {other})

        root = make_node(node_id, 0)
        expand(root, {node_id})
        return root

    def get_prerequisite_chains(self, node_id: str, max_depth: int = 5) -> List[List[str]]:
        """
        Get all prerequisite chains leading to a node.

        Each chain is a list of ids ending at the node. A chain starts at
        a root, or at the point where every remaining prerequisite is
        already on the chain (a cycle).
        """
        if node_id not in self.catalog:
            return []
        G = self.ordering_graph()
        chains = []

        def dfs(current_id: str, current_chain: List[str], depth: int):
            if depth > max_depth:
                return
            prereqs = [p for p in G.predecessors(current_id) if p not in current_chain]
            if not prereqs:
                chains.append(list(reversed(current_chain)))
                return
            for prereq_id in prereqs:
                dfs(prereq_id, current_chain + [prereq_id], depth + 1)

        dfs(node_id, [node_id], 0)
        return chains

    # Cycles

    def find_circular_dependencies(self) -> List[List[str]]:
        """
        Find cycles over prerequisite/sequence links.

        Iterative white/grey/black DFS in catalog order. Every back edge to
        a node on the current path yields the path slice from that node.
        """
        return [list(cycle) for cycle in self._cycles()]

    def _cycles(self) -> List[List[str]]:
        return self._cached("cycles", self._find_cycles)

    def _find_cycles(self) -> List[List[str]]:
        G = self.ordering_graph()
        color = {node: WHITE for node in G}
        cycles: List[List[str]] = []

        for start in G:
            if color[start] != WHITE:
                continue
            color[start] = GREY
            path = [start]
            position = {start: 0}
            stack = [(start, iter(G.successors(start)))]

            while stack:
                node, successors = stack[-1]
                for nxt in successors:
                    if color[nxt] == WHITE:
                        color[nxt] = GREY
                        position[nxt] = len(path)
                        path.append(nxt)
                        stack.append((nxt, iter(G.successors(nxt))))
                        break
                    if color[nxt] == GREY:
                        cycles.append(path[position[nxt]:])
                else:
                    stack.pop()
                    path.pop()
                    del position[node]
                    color[node] = BLACK

        if cycles:
            logger.warning(f"Found {len(cycles)} circular dependencies")
        return cycles

    # Chain summaries

    def analyze_dependency_chain(
        self,
        node_id: str,
        completed: Iterable[str] = (),
        current_id: Optional[str] = None
    ) -> DependencyChain:
        if node_id not in self.catalog:
            return DependencyChain(content_id=node_id)

        G = self.ordering_graph()
        prerequisites = [n for n in nx.bfs_tree(G, node_id, reverse=True) if n != node_id]
        dependents = [n for n in nx.bfs_tree(G, node_id) if n != node_id]
        status = self.compute_status(node_id, completed, current_id)

        return DependencyChain(
            content_id=node_id,
            prerequisites=prerequisites,
            dependents=dependents,
            depth=self._depths()[node_id],
            can_access=status != NodeStatus.LOCKED
        )

    def get_learning_sequence(
        self,
        target_ids: Iterable[str],
        completed: Iterable[str] = ()
    ) -> List[str]:
        """
        Order targets and their outstanding prerequisites for study.

        Topological order, ties broken by difficulty rank then catalog
        order. Nodes held up by a cycle are appended in catalog order.
        """
        G = self.ordering_graph()
        completed = set(completed)
        order = {node: i for i, node in enumerate(G)}

        required = set()
        to_process = deque(t for t in target_ids if t in G)
        while to_process:
            current = to_process.popleft()
            if current in required:
                continue
            required.add(current)
            to_process.extend(p for p in G.predecessors(current) if p not in required)
        required -= completed

        def priority(node_id: str) -> Tuple[int, int]:
            return (self.catalog.get(node_id).difficulty_rank, order[node_id])

        in_degree = {n: sum(1 for p in G.predecessors(n) if p in required) for n in required}
        queue = [(priority(n), n) for n in required if in_degree[n] == 0]
        heapq.heapify(queue)
        sequence = []
        while queue:
            _, current = heapq.heappop(queue)
            sequence.append(current)
            for succ in G.successors(current):
                if succ in in_degree:
                    in_degree[succ] -= 1
                    if in_degree[succ] == 0:
                        heapq.heappush(queue, (priority(succ), succ))

        stuck = sorted(required - set(sequence), key=order.get)
        if stuck:
            logger.warning(f"{len(stuck)} nodes in learning sequence are on cycles")
        return sequence + stuck

    def find_critical_path(self) -> List[str]:
        """Longest ordering path; strongly connected groups expand in catalog order."""
        G = self.ordering_graph()
        if G.number_of_nodes() == 0:
            return []
        C = nx.condensation(G)
        order = {node: i for i, node in enumerate(G)}
        path = []
        for component in nx.dag_longest_path(C):
            path.extend(sorted(C.nodes[component]["members"], key=order.get))
        return path

    def find_isolated_nodes(self) -> List[str]:
        """Catalog ids that touch no relationship with two known endpoints."""
        connected = set()
        for link in self.store.all_links():
            if link.source_id in self.catalog and link.target_id in self.catalog:
                connected.add(link.source_id)
                connected.add(link.target_id)
        return [node_id for node_id in self.catalog.ids() if node_id not in connected]

    # Paths, clusters and cycle repair

    def find_optimal_path(self, current_id: str, completed: Iterable[str] = ()) -> List[str]:
        """
        Highest-value path forward from the current node.

        Breadth-first over outgoing prerequisite/sequence links, skipping
        completed nodes and nodes whose declared prerequisites are unmet.
        Each step adds the target's learning value times the link strength;
        the path to the best-scoring node wins, ties going to the node
        reached first. Unknown ids give an empty path.
        """
        if current_id not in self.catalog:
            return []
        G = self.ordering_graph()
        completed = set(completed)
        max_rank = max(1, max(d.difficulty_rank for d in self.catalog))

        best_path, best_value = [current_id], 0.0
        visited = {current_id}
        queue = deque([(current_id, [current_id], 0.0)])
        while queue:
            node_id, path, value = queue.popleft()
            if value > best_value:
                best_path, best_value = path, value
            for target in G.successors(node_id):
                if target in visited or target in completed:
                    continue
                if not self.check_access(target, completed).can_access:
                    continue
                visited.add(target)
                gain = learning_value(self.catalog.get(target), max_rank) * G.edges[node_id, target]["link"].strength
                queue.append((target, path + [target], value + gain))

        logger.debug(f"Optimal path from {current_id}: {best_path} (value {best_value:.3f})")
        return best_path

    def detect_clusters(self, min_size: int = 2) -> List[ContentCluster]:
        """
        Group content by dominant tag.

        A node's dominant tag is the one it shares with the most catalog
        nodes, ties broken alphabetically; untagged nodes join no cluster.
        Groups of at least `min_size` nodes become clusters, largest first,
        each centred on its most connected member (catalog order on ties).
        """
        tag_counts: Dict[str, int] = defaultdict(int)
        for descriptor in self.catalog:
            for tag in descriptor.tags:
                tag_counts[tag] += 1

        groups: Dict[str, List[str]] = defaultdict(list)
        for descriptor in self.catalog:
            if descriptor.tags:
                dominant = min(descriptor.tags, key=lambda tag: (-tag_counts[tag], tag))
                groups[dominant].append(descriptor.id)

        connections: Dict[str, int] = defaultdict(int)
        for link in self.store.all_links():
            if link.source_id in self.catalog and link.target_id in self.catalog:
                connections[link.source_id] += 1
                connections[link.target_id] += 1

        clusters = []
        for tag in sorted(groups, key=lambda t: (-len(groups[t]), t)):
            members = groups[tag]
            if len(members) < min_size:
                continue
            clusters.append(ContentCluster(
                id=f"cluster-{len(clusters)}",
                tag=tag,
                nodes=members,
                centroid_id=max(members, key=lambda n: connections[n])
            ))
        return clusters

    def suggest_cycle_resolutions(self) -> List[CycleResolution]:
        """
        Suggest links to remove so each cycle is broken.

        Every prerequisite/sequence link along a cycle's edges is a
        candidate; the weaker half (rounded up) is suggested, weakest
        first with ties in creation order.
        """
        resolutions = []
        for cycle in self._cycles():
            links = []
            for i, node in enumerate(cycle):
                nxt = cycle[(i + 1) % len(cycle)]
                links.extend(
                    link for link in self.store.get_outgoing_links(node)
                    if link.target_id == nxt and link.is_ordering
                )
            links.sort(key=lambda link: (link.strength, link.seq))
            resolutions.append(CycleResolution(
                cycle=list(cycle),
                suggested_removals=links[:math.ceil(len(links) / 2)]
            ))
        return resolutions


def learning_value(descriptor: ContentDescriptor, max_rank: int) -> float:
    """Relative difficulty blended with tag specificity, in [0, 1]."""
    difficulty = min(descriptor.difficulty_rank / max_rank, 1.0)
    specificity = min(len(descriptor.tags) / 5, 1.0)
    return (difficulty + specificity) / 2
