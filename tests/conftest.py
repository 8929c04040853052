"""Pytest fixtures for the Content Graph Engine tests."""

import pytest

from content_graph_engine.data.catalog import ContentCatalog
from content_graph_engine.data.dependency_analyzer import DependencyAnalyzer
from content_graph_engine.data.graph_store import GraphStore
from content_graph_engine.data.schemas import ContentDescriptor
from content_graph_engine.main import ContentGraphEngine


def make_catalog(*rows):
    """Catalog from (id, tags, rank, declared_prerequisites) tuples."""
    descriptors = []
    for row in rows:
        node_id, tags, rank, prereqs = tuple(row) + ((), 1, ())[len(row) - 1:]
        descriptors.append(ContentDescriptor(
            id=node_id,
            title=node_id.upper(),
            tags=set(tags),
            difficulty_rank=rank,
            declared_prerequisites=list(prereqs)
        ))
    return ContentCatalog(descriptors)


@pytest.fixture
def catalog_factory():
    """Return the make_catalog helper."""
    return make_catalog


@pytest.fixture
def abc_catalog():
    """Return catalog with A, B, C, D and no declared prerequisites."""
    return make_catalog(("A",), ("B",), ("C",), ("D",))


@pytest.fixture
def store(abc_catalog):
    """Return an empty graph store over abc_catalog."""
    return GraphStore(abc_catalog)


@pytest.fixture
def analyzer(abc_catalog, store):
    """Return a dependency analyzer over abc_catalog and store."""
    return DependencyAnalyzer(abc_catalog, store)


@pytest.fixture
def diamond(abc_catalog, store, analyzer):
    """A -> B -> D and A -> C -> D prerequisite links."""
    for source, target in [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]:
        store.create_link(source, target, "prerequisite")
    return analyzer


@pytest.fixture
def course_catalog():
    """Return a small course catalog with tags, ranks and prerequisites."""
    return make_catalog(
        ("intro", {"python", "basics"}, 1, []),
        ("loops", {"python", "control-flow"}, 2, ["intro"]),
        ("functions", {"python", "functions"}, 2, ["intro"]),
        ("recursion", {"functions", "algorithms"}, 4, ["functions"]),
        ("drills", {"practice"}, 3, []),
        ("sql", {"databases"}, 5, []),
    )


@pytest.fixture
def engine(course_catalog):
    """Return an engine over course_catalog."""
    return ContentGraphEngine(course_catalog)
