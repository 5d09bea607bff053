"""
MeetGraph - Event Networking Query Engine.

This package contains the core functionality for:
- The networking graph (people, events, attendance, meetings)
- Embedding records and semantic search
- The hybrid natural-language query engine
- Utility functions
"""

from meetgraph.knowledge import GraphStore, Neo4jGraphStore, NetworkDirectory, VectorStore
from meetgraph.query import CypherPipeline, QueryEngine, RagPipeline

__version__ = "0.1.0"

__all__ = [
    # Knowledge
    "VectorStore",
    "GraphStore",
    "Neo4jGraphStore",
    "NetworkDirectory",
    # Query
    "QueryEngine",
    "RagPipeline",
    "CypherPipeline",
]
