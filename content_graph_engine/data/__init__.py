"""Data Schemas, Catalog and Relationship Storage"""
from .schemas import (
    ContentDescriptor,
    Relationship,
    RelationshipType,
    LinkMetadata,
    LinkFilter,
    LinkAnalytics,
    NodeStatus,
    ChainNode,
    DependencyChain,
    AccessCheck,
    ContentCluster,
    CycleResolution
)
from .catalog import ContentCatalog
from .storage import KeyValueStore, InMemoryKeyValueStore
from .graph_store import GraphStore
from .dependency_analyzer import DependencyAnalyzer

__all__ = [
    "ContentDescriptor",
    "Relationship",
    "RelationshipType",
    "LinkMetadata",
    "LinkFilter",
    "LinkAnalytics",
    "NodeStatus",
    "ChainNode",
    "DependencyChain",
    "AccessCheck",
    "ContentCluster",
    "CycleResolution",
    "ContentCatalog",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "GraphStore",
    "DependencyAnalyzer"
]
