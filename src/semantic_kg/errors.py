#!/usr/bin/env python3
"""
errors.py

Exception taxonomy for the semantic knowledge graph.

Lookups that find nothing return ``None``; everything here is reserved for
misconfiguration, gateway contract breaches and malformed input.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base exception for knowledge graph operations."""


class ConfigurationError(GraphError):
    """Raised when an embedding gateway is required but none is configured."""


class EmbeddingContractError(GraphError):
    """
    Raised when an embedding gateway breaks its contract.

    Either the number of vectors returned differs from the number of texts
    sent, or a vector has an unexpected dimensionality.
    """


class UsageError(GraphError, ValueError):
    """Raised synchronously for invalid arguments, before any work is done."""


class InvalidChunkingError(UsageError):
    """Raised for a non-positive chunk size or an overlap that would not advance."""


class NodeNotFoundError(UsageError):
    """Raised when an operation names a node that is not in the graph."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id!r}")
