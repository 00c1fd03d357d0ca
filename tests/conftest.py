"""
conftest.py

Shared fixtures: a deterministic table-driven embedding gateway and a graph
wired to it.
"""

from __future__ import annotations

import pytest

from semantic_kg.embedding import EmbeddingGateway
from semantic_kg.graph import KnowledgeGraph

# 3-d vectors chosen so cosine scores are easy to reason about
TOPIC_VECTORS = {
    "machine learning": [1.0, 0.0, 0.0],
    "neural networks": [0.8, 0.6, 0.0],
    "deep learning": [0.6, 0.8, 0.0],
    "cooking": [0.0, 0.0, 1.0],
    "baking": [0.0, 0.6, 0.8],
}


class FakeGateway(EmbeddingGateway):
    """Looks texts up in a table; unknown texts get ``default``. Records calls."""

    def __init__(self, table: dict | None = None, default=(0.0, 1.0, 0.0)) -> None:
        self.table = dict(TOPIC_VECTORS if table is None else table)
        self.default = list(default)
        self.calls: list[list[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        return [list(self.table.get(t, self.default)) for t in texts]


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def graph(gateway) -> KnowledgeGraph:
    return KnowledgeGraph(gateway=gateway)
