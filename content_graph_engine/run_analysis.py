"""
Analysis Runner for the Content Graph Engine

Loads a content catalog (and optionally a links CSV), then prints
status, dependency, cycle and recommendation summaries for a learner.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from content_graph_engine.data.catalog import ContentCatalog
from content_graph_engine.data.schemas import ContentDescriptor, LayoutKind
from content_graph_engine.main import ContentGraphEngine, EngineConfig
from content_graph_engine.visualization.knowledge_map import export_knowledge_map, summarize_statuses

logger = logging.getLogger(__name__)


def sample_catalog() -> ContentCatalog:
    """Small arithmetic-to-algebra catalog used when no CSV is given."""
    return ContentCatalog([
        ContentDescriptor("numbers", "Number Line", {"arithmetic"}, 1),
        ContentDescriptor("addition", "Addition", {"arithmetic", "operations"}, 1, ["numbers"]),
        ContentDescriptor("multiplication", "Multiplication", {"arithmetic", "operations"}, 2, ["addition"]),
        ContentDescriptor("fractions", "Fractions", {"arithmetic", "fractions"}, 3, ["multiplication"]),
        ContentDescriptor("variables", "Variables", {"algebra"}, 3, ["multiplication"]),
        ContentDescriptor("equations", "Linear Equations", {"algebra", "equations"}, 4, ["variables", "fractions"]),
        ContentDescriptor("equation-drills", "Equation Drills", {"algebra", "practice"}, 4),
    ])


def sample_links(engine: ContentGraphEngine):
    engine.graph_store.create_links_batch([
        {"source_id": "numbers", "target_id": "addition", "type": "prerequisite"},
        {"source_id": "addition", "target_id": "multiplication", "type": "prerequisite"},
        {"source_id": "multiplication", "target_id": "fractions", "type": "prerequisite"},
        {"source_id": "multiplication", "target_id": "variables", "type": "sequence", "strength": 0.8},
        {"source_id": "variables", "target_id": "equations", "type": "prerequisite"},
        {"source_id": "fractions", "target_id": "equations", "type": "prerequisite", "strength": 0.7},
        {"source_id": "variables", "target_id": "equation-drills", "type": "practice", "strength": 0.6},
        {"source_id": "fractions", "target_id": "variables", "type": "related", "strength": 0.4},
    ])


def load_links(engine: ContentGraphEngine, path: Path):
    df = pd.read_csv(path, dtype={"source_id": str, "target_id": str})
    records = [
        {key: value for key, value in record.items() if pd.notna(value)}
        for record in df.to_dict(orient="records")
    ]
    created = engine.graph_store.create_links_batch(records)
    logger.info(f"Loaded {len(created)}/{len(df)} links from {path}")


class AnalysisRunner:
    """
    Runs a learner-centred analysis over a catalog and its links.
    """

    def __init__(self, engine: ContentGraphEngine):
        self.engine = engine

    def run(self, completed: List[str], current_id: Optional[str]) -> None:
        """Print analysis results."""
        engine = self.engine
        print("\n" + "=" * 70)
        print("CONTENT GRAPH ANALYSIS")
        print("=" * 70)

        print(f"\n1. LINK ANALYTICS")
        print("-" * 40)
        analytics = engine.graph_store.get_analytics()
        print(f"   Total links: {analytics.total_links}")
        print(f"   Average strength: {analytics.average_strength:.2f}")
        for link_type, count in analytics.links_by_type.items():
            if count:
                print(f"     - {link_type.value}: {count}")

        print(f"\n2. DEPENDENCIES")
        print("-" * 40)
        cycles = engine.find_circular_dependencies()
        print(f"   Circular dependencies: {len(cycles)}")
        for resolution in engine.suggest_cycle_resolutions():
            cycle = resolution.cycle
            print(f"     - {' -> '.join(cycle + cycle[:1])}")
            for link in resolution.suggested_removals:
                print(f"       consider removing {link.source_id} -> {link.target_id} ({link.strength:.2f})")
        print(f"   Critical path: {' -> '.join(engine.analyzer.find_critical_path())}")
        isolated = engine.analyzer.find_isolated_nodes()
        if isolated:
            print(f"   Isolated content: {', '.join(isolated)}")
        for cluster in engine.detect_clusters():
            print(f"   Cluster '{cluster.tag}': {', '.join(cluster.nodes)} (centre {cluster.centroid_id})")

        if current_id is not None:
            print(f"\n3. LEARNER POSITION: {current_id}")
            print("-" * 40)
            chain = engine.analyze_dependency_chain(current_id, completed, current_id)
            print(f"   Depth: {chain.depth}")
            print(f"   Prerequisites: {chain.prerequisites}")
            print(f"   Unlocks: {chain.dependents}")
            print(f"   Best path forward: {' -> '.join(engine.find_optimal_path(current_id, completed))}")
            tree = engine.build_prerequisite_tree(current_id, completed=completed, current_id=current_id)
            if tree is not None:
                for node in tree.iter_nodes():
                    marker = " (circular)" if node.is_circular else ""
                    print(f"   {'  ' * node.level}{node.title} [{node.status.value}]{marker}")

        print(f"\n4. RECOMMENDATIONS")
        print("-" * 40)
        for rec in engine.generate_recommendations(completed, current_id):
            print(f"   {rec.target_id}: {rec.score:.2f} [{rec.category.value}] {rec.reason}")
        for rec in engine.recommender.generate_review_suggestions(completed):
            print(f"   review {rec.target_id}: {rec.score:.2f}")

        print(f"\n5. KNOWLEDGE MAP")
        print("-" * 40)
        knowledge_map = engine.build_knowledge_map(completed, current_id)
        for status, count in summarize_statuses(knowledge_map).items():
            print(f"   {status}: {count}")

        print("\n" + "=" * 70)
        print("ANALYSIS COMPLETE")
        print("=" * 70)


def main(argv: Optional[List[str]] = None):
    """Main entry point for running an analysis."""
    parser = argparse.ArgumentParser(description="Analyze a content relationship graph")
    parser.add_argument("--catalog", type=Path, help="Catalog CSV (id,title,tags,difficulty_rank,declared_prerequisites)")
    parser.add_argument("--links", type=Path, help="Links CSV (source_id,target_id,type,strength)")
    parser.add_argument("--completed", default="", help="Semicolon-separated completed ids")
    parser.add_argument("--current", default=None, help="Id of the learner's current content")
    parser.add_argument("--export", choices=["json", "graphml", "cytoscape"], help="Export the knowledge map")
    parser.add_argument("--layout", default=LayoutKind.FORCE_DIRECTED.value,
                        choices=[kind.value for kind in LayoutKind])
    parser.add_argument("--output", type=Path, help="File for the exported map (stdout if omitted)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    catalog = ContentCatalog.from_csv(args.catalog) if args.catalog else sample_catalog()
    engine = ContentGraphEngine(catalog, config=EngineConfig())
    if args.links:
        load_links(engine, args.links)
    elif not args.catalog:
        sample_links(engine)

    completed = [c.strip() for c in args.completed.split(";") if c.strip()]
    if not args.catalog and not completed and args.current is None:
        completed, current_id = ["numbers", "addition"], "multiplication"
    else:
        current_id = args.current

    AnalysisRunner(engine).run(completed, current_id)

    if args.export:
        knowledge_map = engine.build_knowledge_map(completed, current_id, layout=LayoutKind(args.layout))
        text = export_knowledge_map(knowledge_map, args.export)
        if args.output:
            args.output.write_text(text)
            logger.info(f"Knowledge map written to {args.output}")
        else:
            print(text)

    return engine


if __name__ == "__main__":
    main()
