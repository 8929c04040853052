"""Tests for the dependency analyzer."""

import networkx as nx
import pytest

from content_graph_engine.data.dependency_analyzer import DependencyAnalyzer
from content_graph_engine.data.graph_store import GraphStore
from content_graph_engine.data.schemas import NodeStatus, RelationshipType


def cycle_edges(cycle):
    return {(cycle[i], cycle[(i + 1) % len(cycle)]) for i in range(len(cycle))}


class TestStatus:
    """Test status computation from declared prerequisites."""

    @pytest.fixture
    def status_analyzer(self, catalog_factory):
        catalog = catalog_factory(("A", (), 1, []), ("B", (), 1, ["A"]), ("C", (), 1, ["A", "B"]))
        return DependencyAnalyzer(catalog, GraphStore(catalog))

    def test_nothing_completed(self, status_analyzer):
        assert status_analyzer.compute_status("A", set()) == NodeStatus.AVAILABLE
        assert status_analyzer.compute_status("B", set()) == NodeStatus.LOCKED
        assert status_analyzer.compute_status("C", set()) == NodeStatus.LOCKED

    def test_partial_progress(self, status_analyzer):
        completed = {"A"}
        assert status_analyzer.compute_status("A", completed) == NodeStatus.COMPLETED
        assert status_analyzer.compute_status("B", completed) == NodeStatus.AVAILABLE
        assert status_analyzer.compute_status("C", completed) == NodeStatus.LOCKED

    def test_current_and_completed_precedence(self, status_analyzer):
        assert status_analyzer.compute_status("B", {"A"}, current_id="B") == NodeStatus.CURRENT
        assert status_analyzer.compute_status("A", {"A"}, current_id="A") == NodeStatus.COMPLETED

    def test_no_declared_prerequisites_never_locked(self, analyzer):
        for node_id in "ABCD":
            assert analyzer.compute_status(node_id, []) != NodeStatus.LOCKED

    def test_unknown_node_available(self, status_analyzer):
        assert status_analyzer.compute_status("ghost", set()) == NodeStatus.AVAILABLE

    def test_check_access(self, status_analyzer):
        check = status_analyzer.check_access("C", {"A"})
        assert check.can_access is False
        assert check.missing_prerequisites == ["B"]
        assert status_analyzer.check_access("C", {"A", "B"}).can_access is True


class TestTrees:
    """Test prerequisite and dependent trees."""

    def test_diamond_expands_both_legs(self, diamond):
        tree = diamond.build_prerequisite_tree("D", 3)

        assert tree.id == "D" and tree.level == 0
        assert [c.id for c in tree.children] == ["B", "C"]
        for child in tree.children:
            assert child.level == 1
            assert child.link_type == RelationshipType.PREREQUISITE
            assert [g.id for g in child.children] == ["A"]
            assert child.children[0].level == 2

    def test_dependent_tree(self, diamond):
        tree = diamond.build_dependent_tree("A", 5)
        assert [c.id for c in tree.children] == ["B", "C"]
        assert [g.id for g in tree.children[0].children] == ["D"]

    def test_depth_bound(self, diamond):
        tree = diamond.build_prerequisite_tree("D", 1)
        assert [c.id for c in tree.children] == ["B", "C"]
        assert all(c.children == [] for c in tree.children)

        assert diamond.build_prerequisite_tree("D", 0).children == []

    def test_invalid_inputs_return_none(self, diamond):
        assert diamond.build_prerequisite_tree("missing", 3) is None
        assert diamond.build_prerequisite_tree("D", -1) is None
        assert diamond.build_dependent_tree("missing", 3) is None

    def test_tree_statuses(self, diamond):
        tree = diamond.build_prerequisite_tree("D", 3, completed={"A"}, current_id="B")
        statuses = {n.id: n.status for n in tree.iter_nodes()}
        assert statuses["A"] == NodeStatus.COMPLETED
        assert statuses["B"] == NodeStatus.CURRENT

    def test_only_ordering_links_are_walked(self, store, analyzer):
        store.create_link("A", "B", "related")
        store.create_link("C", "B", "sequence", 0.4)
        tree = analyzer.build_prerequisite_tree("B", 2)
        assert [c.id for c in tree.children] == ["C"]
        assert tree.children[0].link_strength == 0.4

    def test_cycle_marks_circular_and_terminates(self, store, analyzer):
        for source, target in [("A", "B"), ("B", "C"), ("C", "A")]:
            store.create_link(source, target, "prerequisite")
        store.create_link("D", "A", "prerequisite")

        tree = analyzer.build_prerequisite_tree("A", 10)
        children = {c.id: c for c in tree.children}
        assert children["C"].is_circular is True
        assert children["D"].is_circular is False

        # A reappears below B as a leaf since it is already on the path
        b_node = children["C"].children[0]
        assert b_node.id == "B"
        leaf = b_node.children[0]
        assert leaf.id == "A" and leaf.children == []

    def test_tree_to_dict(self, diamond):
        data = diamond.build_prerequisite_tree("D", 1).to_dict()
        assert data["children"][0]["link_type"] == "prerequisite"


class TestCycles:
    """Test circular dependency detection."""

    def test_triangle(self, store, analyzer):
        for source, target in [("A", "B"), ("B", "C"), ("C", "A")]:
            store.create_link(source, target, "prerequisite")

        cycles = analyzer.find_circular_dependencies()
        assert len(cycles) == 1
        assert set(cycles[0]) == {"A", "B", "C"}

    def test_reported_edges_exist(self, store, analyzer):
        store.create_link("A", "B", "sequence")
        store.create_link("B", "C", "prerequisite")
        store.create_link("C", "B", "sequence")
        store.create_link("C", "A", "prerequisite")

        edges = {(l.source_id, l.target_id) for l in store.all_links()}
        cycles = analyzer.find_circular_dependencies()
        assert cycles
        for cycle in cycles:
            assert cycle_edges(cycle) <= edges

    def test_disjoint_cycles(self, catalog_factory):
        catalog = catalog_factory(*[(n,) for n in "ABCDEF"])
        store = GraphStore(catalog)
        for source, target in [("A", "B"), ("B", "A"), ("D", "E"), ("E", "F"), ("F", "D")]:
            store.create_link(source, target, "prerequisite")

        cycles = DependencyAnalyzer(catalog, store).find_circular_dependencies()
        assert sorted(sorted(c) for c in cycles) == [["A", "B"], ["D", "E", "F"]]

    def test_complete_graph(self, store, analyzer):
        nodes = "ABCD"
        for source in nodes:
            for target in nodes:
                if source != target:
                    store.create_link(source, target, "prerequisite")

        edges = {(l.source_id, l.target_id) for l in store.all_links()}
        cycles = analyzer.find_circular_dependencies()
        assert cycles
        for cycle in cycles:
            assert len(set(cycle)) == len(cycle)
            assert cycle_edges(cycle) <= edges

    def test_non_ordering_links_ignored(self, store, analyzer):
        store.create_link("A", "B", "related")
        store.create_link("B", "A", "related")
        assert analyzer.find_circular_dependencies() == []

    def test_long_chain_has_no_recursion_limit(self, catalog_factory):
        ids = [f"n{i}" for i in range(3000)]
        catalog = catalog_factory(*[(i,) for i in ids])
        store = GraphStore(catalog)
        for source, target in zip(ids, ids[1:]):
            store.create_link(source, target, "sequence")
        store.create_link(ids[-1], ids[0], "sequence")

        cycles = DependencyAnalyzer(catalog, store).find_circular_dependencies()
        assert len(cycles) == 1 and len(cycles[0]) == 3000


class TestChains:
    """Test chain summaries, sequences and memoization."""

    def test_chain_summary(self, diamond):
        chain = diamond.analyze_dependency_chain("D", completed={"A", "B"})
        assert chain.prerequisites == ["B", "C", "A"]
        assert chain.dependents == []
        assert chain.depth == 2
        assert chain.can_access is True

        root = diamond.analyze_dependency_chain("A")
        assert set(root.dependents) == {"B", "C", "D"}
        assert root.depth == 0

    def test_unknown_chain_is_empty(self, diamond):
        chain = diamond.analyze_dependency_chain("ghost")
        assert chain.prerequisites == [] and chain.dependents == []
        assert chain.can_access is True

    def test_depth_not_inflated_by_cycle(self, store, analyzer):
        for source, target in [("A", "B"), ("B", "C"), ("C", "B"), ("C", "D")]:
            store.create_link(source, target, "prerequisite")
        assert analyzer.analyze_dependency_chain("D").depth == 2

    def test_learning_sequence(self, catalog_factory):
        catalog = catalog_factory(("A", (), 2), ("B", (), 1), ("C", (), 1), ("D", (), 3))
        store = GraphStore(catalog)
        store.create_link("A", "D", "prerequisite")
        store.create_link("B", "C", "prerequisite")
        store.create_link("C", "D", "prerequisite")

        analyzer = DependencyAnalyzer(catalog, store)
        assert analyzer.get_learning_sequence(["D"]) == ["B", "C", "A", "D"]
        assert analyzer.get_learning_sequence(["D"], completed={"B"}) == ["C", "A", "D"]

    def test_learning_sequence_appends_cycles(self, store, analyzer):
        store.create_link("A", "B", "prerequisite")
        store.create_link("B", "A", "prerequisite")
        store.create_link("C", "D", "prerequisite")
        assert analyzer.get_learning_sequence(["A", "D"]) == ["C", "D", "A", "B"]

    def test_prerequisite_chains(self, diamond):
        assert diamond.get_prerequisite_chains("D") == [["A", "B", "D"], ["A", "C", "D"]]
        assert diamond.get_prerequisite_chains("ghost") == []

    def test_prerequisite_chains_through_cycle(self, store, analyzer):
        store.create_link("A", "B", "prerequisite")
        store.create_link("B", "A", "prerequisite")
        store.create_link("B", "C", "prerequisite")

        assert analyzer.get_prerequisite_chains("A") == [["B", "A"]]
        assert analyzer.get_prerequisite_chains("C") == [["A", "B", "C"]]

    def test_critical_path_and_isolated(self, diamond, store):
        path = diamond.find_critical_path()
        assert len(path) == 3
        assert path[0] == "A" and path[-1] == "D"
        assert diamond.find_isolated_nodes() == []

    def test_isolated_nodes(self, store, analyzer):
        store.create_link("A", "B", "related")
        assert analyzer.find_isolated_nodes() == ["C", "D"]

    def test_graph_rebuilt_after_mutation(self, store, analyzer):
        first = analyzer.ordering_graph()
        assert analyzer.ordering_graph() is first

        link = store.create_link("A", "B", "prerequisite")
        assert analyzer.ordering_graph().has_edge("A", "B")
        store.delete_link(link.id)
        assert not analyzer.ordering_graph().has_edge("A", "B")

    def test_results_do_not_share_cached_state(self, store, analyzer):
        store.create_link("A", "B", "prerequisite")
        store.create_link("B", "A", "prerequisite")
        store.create_link("B", "C", "prerequisite")

        analyzer.find_circular_dependencies().clear()
        cycles = analyzer.find_circular_dependencies()
        assert len(cycles) == 1

        cycles[0].append("D")
        assert "D" not in analyzer.find_circular_dependencies()[0]

        depths = analyzer.get_depths()
        depths["C"] = 99
        assert analyzer.analyze_dependency_chain("C").depth == 1
        assert analyzer.get_depths()["C"] == 1

        with pytest.raises(nx.NetworkXError):
            analyzer.ordering_graph().add_edge("C", "D")
        assert not analyzer.ordering_graph().has_edge("C", "D")

    def test_dangling_links_excluded(self, abc_catalog, store, analyzer):
        store.create_link("A", "B", "prerequisite")
        store.create_link("B", "C", "prerequisite")
        abc_catalog.remove("B")

        assert analyzer.find_circular_dependencies() == []
        assert analyzer.analyze_dependency_chain("C").prerequisites == []
        assert "B" not in analyzer.ordering_graph()


class TestGraphAnalyses:
    """Test optimal paths, tag clusters and cycle repair suggestions."""

    @pytest.fixture
    def course_analyzer(self, engine):
        """Course graph where the weaker first step leads further."""
        engine.create_link("intro", "loops", "sequence", 0.5)
        engine.create_link("intro", "functions", "prerequisite", 1.0)
        engine.create_link("functions", "recursion", "prerequisite", 1.0)
        engine.create_link("loops", "sql", "sequence", 1.0)
        return engine.analyzer

    def test_optimal_path_maximizes_value(self, course_analyzer):
        assert course_analyzer.find_optimal_path("intro", {"intro"}) == ["intro", "loops", "sql"]

    def test_optimal_path_skips_completed_and_locked(self, course_analyzer):
        # recursion stays locked until functions is completed
        assert course_analyzer.find_optimal_path("intro", {"intro", "loops"}) == ["intro", "functions"]
        assert course_analyzer.find_optimal_path("functions", {"intro", "functions"}) == ["functions", "recursion"]

    def test_optimal_path_edges(self, course_analyzer):
        assert course_analyzer.find_optimal_path("sql", {"intro"}) == ["sql"]
        assert course_analyzer.find_optimal_path("ghost") == []

    def test_clusters_by_dominant_tag(self, engine):
        clusters = engine.analyzer.detect_clusters()
        assert len(clusters) == 1
        assert clusters[0].tag == "python"
        assert clusters[0].nodes == ["intro", "loops", "functions"]
        assert clusters[0].centroid_id == "intro"

    def test_cluster_centroid_is_most_connected(self, course_analyzer):
        course_analyzer.store.create_link("functions", "drills", "practice")
        clusters = course_analyzer.detect_clusters(min_size=1)
        assert [c.tag for c in clusters] == ["python", "databases", "functions", "practice"]
        assert [c.id for c in clusters] == ["cluster-0", "cluster-1", "cluster-2", "cluster-3"]
        assert clusters[0].centroid_id == "functions"
        assert clusters[2].nodes == ["recursion"]

    def test_cycle_resolution_suggests_weakest_half(self, store, analyzer):
        store.create_link("A", "B", "prerequisite", 0.9)
        store.create_link("B", "C", "prerequisite", 0.3)
        store.create_link("C", "A", "sequence", 0.5)
        store.create_link("A", "B", "sequence", 0.2)
        store.create_link("C", "A", "related", 0.1)

        resolutions = analyzer.suggest_cycle_resolutions()
        assert len(resolutions) == 1
        assert resolutions[0].cycle == ["A", "B", "C"]
        removals = [(l.source_id, l.target_id, l.type, l.strength) for l in resolutions[0].suggested_removals]
        assert removals == [
            ("A", "B", RelationshipType.SEQUENCE, 0.2),
            ("B", "C", RelationshipType.PREREQUISITE, 0.3),
        ]
        assert resolutions[0].to_dict()["suggested_removals"] == [l.id for l in resolutions[0].suggested_removals]

    def test_no_cycles_no_resolutions(self, diamond):
        assert diamond.suggest_cycle_resolutions() == []
