"""
Test suite for MeetGraph.

Organized by module:
- test_knowledge.py - Vector/graph store integration
- test_embeddings.py - Embedding provider and embedded text
- test_directory.py - Joining events, meetings, profile upkeep
- test_safety.py - Traversal statement validation
- test_rag.py - Semantic retrieval pipeline
- test_cypher.py - Graph retrieval pipeline
- test_planner.py - Mode selection and fallback
- test_neo4j.py - Neo4j graph store (needs a server)
- test_llm_factory.py - Model construction and generation wrapper
- test_api.py - FastAPI endpoint tests
"""

# Test fixtures are provided in conftest.py
