"""Tests for the engine facade, configuration and analysis runner."""

import json
import logging

from content_graph_engine import ContentGraphEngine, EngineConfig
from content_graph_engine.data.schemas import NodeStatus
from content_graph_engine.run_analysis import main


class TestEngineConfig:
    """Test configuration defaults and loading."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.default_max_depth == 5
        assert config.damping == 0.85
        assert config.tag_weight == 0.4
        assert config.layout_time_budget is None

    def test_from_dict_ignores_unknown(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = EngineConfig.from_dict({"layout_iterations": 20, "colour": "red"})
        assert config.layout_iterations == 20
        assert "colour" in caplog.text
        assert config.to_dict()["layout_iterations"] == 20


class TestEngine:
    """Test the facade wiring."""

    def test_config_flows_to_components(self, course_catalog):
        engine = ContentGraphEngine(course_catalog, config=EngineConfig(layout_iterations=7, sequence_bonus=0.1))
        assert engine.layout_engine.iterations == 7
        assert engine.recommender.sequence_bonus == 0.1

    def test_default_tree_depth(self, engine):
        engine.create_link("intro", "functions", "prerequisite")
        engine.create_link("functions", "recursion", "prerequisite")
        tree = engine.build_prerequisite_tree("recursion")
        assert tree.children[0].children[0].id == "intro"
        assert engine.build_dependent_tree("intro").children[0].id == "functions"

    def test_crud_passthrough(self, engine):
        link = engine.create_link("intro", "loops", "sequence")
        assert engine.get_outgoing_links("intro") == [link]
        assert engine.get_incoming_links("loops") == [link]
        assert engine.update_link(link.id, strength=0.5).strength == 0.5
        assert engine.delete_link(link.id) is True
        assert engine.get_outgoing_links("intro") == []

    def test_compute_layout_covers_catalog(self, engine):
        engine.create_link("intro", "loops", "sequence")
        positions = engine.compute_layout(400, 300, iterations=10)
        assert set(positions) == set(engine.catalog.ids())

    def test_learning_overview(self, engine):
        overview = engine.get_learning_overview({"intro"}, "functions")
        assert overview["summary"]["completed"] == 1
        assert overview["access"]["can_access"] is True
        assert overview["next_steps"]
        assert overview["review"][0]["target_id"] == "intro"
        assert engine.compute_status("recursion", {"intro"}) == NodeStatus.LOCKED

    def test_to_dataframes(self, engine):
        engine.create_link("intro", "functions", "prerequisite")
        frames = engine.to_dataframes()
        assert set(frames) == {"catalog", "links", "nodes"}
        nodes = frames["nodes"].set_index("id")
        assert nodes.loc["functions", "depth"] == 1
        assert nodes.loc["intro", "dependent_count"] == 1
        assert len(frames["links"]) == 1

    def test_overview_cycles_are_independent_copies(self, engine):
        engine.create_link("intro", "loops", "sequence")
        engine.create_link("loops", "intro", "sequence")

        overview = engine.get_learning_overview({"intro"}, "loops")
        overview["circular_dependencies"][0].append("sql")
        assert sorted(engine.find_circular_dependencies()[0]) == ["intro", "loops"]

    def test_analyze_relationships(self, engine):
        engine.create_link("intro", "loops", "sequence", 0.4)
        engine.create_link("loops", "intro", "prerequisite", 0.8)
        engine.create_link("intro", "functions", "prerequisite", 0.9)

        report = engine.analyze_relationships()
        assert set(report) == {
            "strongest_connections", "clusters", "critical_path",
            "isolated_nodes", "circular_dependencies", "recommended_links"
        }
        assert [c["strength"] for c in report["strongest_connections"]] == [0.9, 0.8, 0.4]
        assert report["clusters"][0]["tag"] == "python"
        assert report["isolated_nodes"] == ["recursion", "drills", "sql"]
        assert len(report["circular_dependencies"]) == 1
        assert len(report["circular_dependencies"][0]["suggested_removals"]) == 1
        assert engine.find_optimal_path("intro", {"intro"}) == ["intro", "functions"]


class TestRunAnalysis:
    """Test the command-line runner."""

    def test_sample_run(self, capsys):
        engine = main([])
        out = capsys.readouterr().out
        assert "ANALYSIS COMPLETE" in out
        assert len(engine.graph_store) == 8

    def test_csv_run_with_export(self, tmp_path, course_catalog, capsys):
        catalog_path = tmp_path / "catalog.csv"
        links_path = tmp_path / "links.csv"
        output = tmp_path / "map.json"
        course_catalog.to_dataframe().to_csv(catalog_path, index=False)
        links_path.write_text("source_id,target_id,type,strength\nintro,loops,sequence,0.7\nloops,ghost,related,\n")

        engine = main([
            "--catalog", str(catalog_path),
            "--links", str(links_path),
            "--completed", "intro",
            "--current", "loops",
            "--export", "json",
            "--output", str(output),
        ])
        assert len(engine.graph_store) == 1
        data = json.loads(output.read_text())
        assert len(data["nodes"]) == 6
