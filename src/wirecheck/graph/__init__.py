"""Persistent call-graph store and in-memory graph views."""

from wirecheck.graph._internal import Database, SnapshotStats
from wirecheck.graph.store import GraphReader, GraphStore
from wirecheck.graph.view import FunctionNode, GraphView

__all__ = [
    "Database",
    "SnapshotStats",
    "GraphReader",
    "GraphStore",
    "FunctionNode",
    "GraphView",
]
