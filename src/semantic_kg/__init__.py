"""
semantic_kg: An in-memory semantic knowledge graph.

Content nodes joined by symmetric, untyped edges, each optionally carrying a
dense embedding, queried by similarity, traversal, or both.

Public API
----------
Primary entry point::

    from semantic_kg import KnowledgeGraph, Node

    graph = KnowledgeGraph(gateway=embed_fn)
    ml = await graph.add_node(Node("machine learning", "topic"))
    await graph.add_node(ml, Node("neural networks", "topic"))

    hits = await graph.semantic_search("deep nets", top_k=3)
    near = graph.get_nodes_within_steps(ml, steps=2)
    both = graph.get_nodes_intersection([ml, hits[0]], steps=1)
    mixed = await graph.query_by_content("deep nets", top_k=3, steps=1)

Embedding gateways::

    from semantic_kg import EmbeddingGateway, CallableGateway, SentenceTransformerGateway

Content splitting::

    from semantic_kg import split

Result / config / error types::

    from semantic_kg import GraphStats, GraphConfig, GraphError
"""

import logging

__version__ = "0.1.0"

from semantic_kg.chunker import split
from semantic_kg.config import GraphConfig
from semantic_kg.embedding import (
    CallableGateway,
    EmbeddingGateway,
    SentenceTransformerGateway,
    as_gateway,
    cosine_distance,
    cosine_similarity,
)
from semantic_kg.errors import (
    ConfigurationError,
    EmbeddingContractError,
    GraphError,
    InvalidChunkingError,
    NodeNotFoundError,
    UsageError,
)
from semantic_kg.graph import GraphStats, KnowledgeGraph
from semantic_kg.node import Node, node_id

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # primitives
    "Node",
    "node_id",
    "split",
    # gateways
    "EmbeddingGateway",
    "CallableGateway",
    "SentenceTransformerGateway",
    "as_gateway",
    "cosine_similarity",
    "cosine_distance",
    # graph
    "KnowledgeGraph",
    "GraphStats",
    "GraphConfig",
    # errors
    "GraphError",
    "ConfigurationError",
    "EmbeddingContractError",
    "UsageError",
    "InvalidChunkingError",
    "NodeNotFoundError",
]
