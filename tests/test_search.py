"""
test_search.py

Tests for KnowledgeGraph.semantic_search and the hybrid query_by_content.
"""

from __future__ import annotations

import pytest
from conftest import FakeGateway

from semantic_kg.errors import (
    ConfigurationError,
    EmbeddingContractError,
    NodeNotFoundError,
    UsageError,
)
from semantic_kg.graph import KnowledgeGraph
from semantic_kg.node import Node


async def _topics(graph: KnowledgeGraph) -> dict:
    """ML hub linked to NN and DL; cooking linked to baking; DL linked to baking."""
    ml = await graph.add_node(Node("machine learning", "topic"))
    await graph.add_node(ml, Node("neural networks", "topic"))
    dl = await graph.add_node(Node("deep learning", "field"))
    cook = await graph.add_node(Node("cooking", "hobby"))
    bake = await graph.add_node(Node("baking", "hobby"))
    await graph.add_node(ml, dl)
    await graph.add_node(cook, bake)
    await graph.add_node(dl, bake)
    return {
        "ml": ml,
        "nn": graph.find_node("neural networks", "topic"),
        "dl": dl,
        "cook": cook,
        "bake": bake,
    }


# ---------------------------------------------------------------------------
# semantic_search — ranking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_ranks_by_descending_score(graph):
    t = await _topics(graph)
    hits = await graph.search_with_scores("machine learning", top_k=3)
    assert [n for n, _ in hits] == [t["ml"], t["nn"], t["dl"]]
    assert [s for _, s in hits] == pytest.approx([1.0, 0.8, 0.6])


@pytest.mark.asyncio
async def test_search_is_deterministic(graph):
    await _topics(graph)
    first = await graph.semantic_search("deep learning")
    second = await graph.semantic_search("deep learning")
    assert [n.id for n in first] == [n.id for n in second]


@pytest.mark.asyncio
async def test_search_ties_keep_insertion_order():
    graph = KnowledgeGraph(FakeGateway(table={"q": [1.0, 0.0]}))
    for name in ("c", "a", "b"):
        await graph.add_node(Node(name, "x", embedding=[2.0, 0.0]))
    hits = await graph.semantic_search("q")
    assert [n.content for n in hits] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_threshold_is_inclusive(graph):
    t = await _topics(graph)
    exact = await graph.semantic_search("machine learning", threshold=1.0)
    assert exact == [t["ml"]]
    # orthogonal nodes score exactly 0.0
    zero = await graph.semantic_search("machine learning", threshold=0.0)
    assert t["cook"] in zero
    assert len(zero) == 5


@pytest.mark.asyncio
async def test_threshold_excludes_below(graph):
    t = await _topics(graph)
    hits = await graph.semantic_search("machine learning", threshold=0.7)
    assert hits == [t["ml"], t["nn"]]


@pytest.mark.asyncio
async def test_top_k_limits_results(graph):
    await _topics(graph)
    assert len(await graph.semantic_search("machine learning", top_k=2)) == 2


@pytest.mark.parametrize("top_k", [0, -3])
@pytest.mark.asyncio
async def test_non_positive_top_k_returns_empty_without_embedding(graph, gateway, top_k):
    await _topics(graph)
    calls = len(gateway.calls)
    assert await graph.semantic_search("machine learning", top_k=top_k) == []
    assert len(gateway.calls) == calls


@pytest.mark.asyncio
async def test_constraint_labels_restrict_candidates(graph):
    t = await _topics(graph)
    hits = await graph.semantic_search("machine learning", constraint_labels=["hobby", "field"])
    assert hits[0] == t["dl"]
    assert {n.label for n in hits} <= {"hobby", "field"}


@pytest.mark.asyncio
async def test_empty_constraint_matches_nothing(graph):
    await _topics(graph)
    assert await graph.semantic_search("machine learning", constraint_labels=[]) == []


@pytest.mark.asyncio
async def test_empty_graph_returns_empty(graph, gateway):
    assert await graph.semantic_search("machine learning") == []
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unembedded_nodes_are_skipped():
    graph = KnowledgeGraph()
    await graph.add_node(Node("no vector", "x"))
    await graph.add_node(Node("vector", "x", embedding=[1.0, 0.0]))
    graph.gateway = FakeGateway(table={"q": [0.0, 1.0]})
    hits = await graph.search_with_scores("q")
    assert [(n.content, s) for n, s in hits] == [("vector", 0.0)]


@pytest.mark.asyncio
async def test_search_by_embedded_node_needs_no_gateway():
    graph = KnowledgeGraph()
    target = await graph.add_node(Node("a", "x", embedding=[1.0, 0.0]))
    await graph.add_node(Node("b", "x", embedding=[0.0, 1.0]))
    hits = await graph.semantic_search(Node("lookup", "x", embedding=[1.0, 0.1]), top_k=1)
    assert hits == [target]


@pytest.mark.asyncio
async def test_search_without_gateway_is_configuration_error():
    graph = KnowledgeGraph()
    await graph.add_node(Node("a", "x", embedding=[1.0, 0.0]))
    with pytest.raises(ConfigurationError):
        await graph.semantic_search("a")


@pytest.mark.asyncio
async def test_query_vector_dimension_mismatch(graph):
    await _topics(graph)
    graph.gateway = lambda texts: [[1.0, 0.0] for _ in texts]
    with pytest.raises(EmbeddingContractError):
        await graph.semantic_search("machine learning")


@pytest.mark.asyncio
async def test_search_rejects_non_text_query(graph):
    await _topics(graph)
    with pytest.raises(UsageError):
        await graph.semantic_search(42)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_chunk_embeddings_lift_node_score():
    gw = FakeGateway(
        table={"whole document": [0.0, 1.0], "part one": [0.0, 1.0], "part two": [1.0, 0.0], "q": [1.0, 0.0]}
    )
    graph = KnowledgeGraph(gw)
    doc = Node("whole document", "doc")
    doc.chunks = ["part one", "part two"]
    other = Node("other", "doc", embedding=[0.7, 0.7])
    await graph.add_node(doc)
    await graph.add_node(other)
    assert len(doc.chunk_embeddings) == 2
    hits = await graph.search_with_scores("q")
    assert hits[0][0] == doc
    assert hits[0][1] == pytest.approx(1.0)
    assert len(hits) == 2


@pytest.mark.asyncio
async def test_get_node_by_content(graph):
    t = await _topics(graph)
    assert await graph.get_node_by_content("deep learning") == t["dl"]
    graph.gateway = FakeGateway(table={"unrelated": [1.0, 1.0, 1.0]})
    assert await graph.get_node_by_content("unrelated") is None


# ---------------------------------------------------------------------------
# query_by_content — hybrid
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hybrid_seeds_first_then_discovered(graph):
    t = await _topics(graph)
    result = await graph.query_by_content("machine learning", top_k=1, steps=1)
    assert result == [t["ml"], t["dl"], t["nn"]]


@pytest.mark.asyncio
async def test_hybrid_deduplicates_across_seeds(graph):
    await _topics(graph)
    result = await graph.query_by_content("machine learning", top_k=3, steps=1)
    ids = [n.id for n in result]
    assert len(ids) == len(set(ids))
    assert [n.content for n in result[:3]] == ["machine learning", "neural networks", "deep learning"]
    assert result[3].content == "baking"


@pytest.mark.asyncio
async def test_hybrid_constraint_filters_seeds_and_expansion(graph):
    t = await _topics(graph)
    result = await graph.query_by_content(
        "machine learning", top_k=1, steps=2, constraint_labels=["hobby"]
    )
    # ML is a non-matching seed; baking is reached via DL without blocking
    assert result == [t["bake"]]


@pytest.mark.asyncio
async def test_hybrid_block_cuts_paths(graph):
    await _topics(graph)
    result = await graph.query_by_content(
        "machine learning", top_k=1, steps=2, constraint_labels=["hobby"], block=True
    )
    assert result == []


@pytest.mark.asyncio
async def test_hybrid_threshold_and_max_nodes(graph):
    t = await _topics(graph)
    result = await graph.query_by_content(
        "machine learning", top_k=5, steps=1, similarity_threshold=0.99, max_nodes=2
    )
    assert result == [t["ml"], t["dl"]]


@pytest.mark.asyncio
async def test_hybrid_multiple_queries_merge(graph):
    t = await _topics(graph)
    result = await graph.query_by_content(["machine learning", "cooking"], top_k=1, steps=0)
    assert result == [t["ml"], t["cook"]]


@pytest.mark.asyncio
async def test_hybrid_uses_config_defaults(graph):
    await _topics(graph)
    result = await graph.query_by_content("cooking")
    # default top_k=5 seeds every node
    assert len(result) == 5


@pytest.mark.asyncio
async def test_hybrid_empty_graph(graph):
    assert await graph.query_by_content("anything") == []


@pytest.mark.asyncio
async def test_query_by_node_matches_traversal(graph):
    t = await _topics(graph)
    assert graph.query_by_node(t["ml"], 1) == graph.get_nodes_within_steps(t["ml"], 1)


@pytest.mark.asyncio
async def test_hybrid_negative_steps_rejected_before_search(graph, gateway):
    with pytest.raises(UsageError):
        await graph.query_by_content("machine learning", steps=-1)
    assert gateway.calls == []


# ---------------------------------------------------------------------------
# Single label string
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_accepts_single_label_string(graph):
    t = await _topics(graph)
    hits = await graph.semantic_search("cooking", constraint_labels="hobby")
    assert hits == [t["cook"], t["bake"]]


@pytest.mark.asyncio
async def test_hybrid_accepts_single_label_string(graph):
    t = await _topics(graph)
    result = await graph.query_by_content(
        "machine learning", top_k=1, steps=2, constraint_labels="hobby"
    )
    assert result == [t["bake"]]


# ---------------------------------------------------------------------------
# Distance to a constraint node
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_by_node_distance_filter(graph):
    t = await _topics(graph)
    # DL sits at distance 0.04 from NN
    assert graph.query_by_node(
        t["ml"], 1, constraint_node=t["nn"], constraint_distance=0.01
    ) == [t["nn"]]
    assert graph.query_by_node(
        t["ml"], 1, constraint_node=t["nn"].id, constraint_distance=0.05
    ) == [t["dl"], t["nn"]]


@pytest.mark.asyncio
async def test_query_by_node_distance_filter_drops_unembedded():
    graph = KnowledgeGraph()
    a = await graph.add_node(Node("a", "x", embedding=[1.0, 0.0]), Node("b", "x"))
    assert graph.query_by_node(a, 1) == [graph.find_node("b", "x")]
    assert graph.query_by_node(a, 1, constraint_node=a, constraint_distance=2.0) == []


@pytest.mark.asyncio
async def test_constraint_node_needs_embedding():
    graph = KnowledgeGraph()
    a = await graph.add_node(Node("a", "x", embedding=[1.0, 0.0]), Node("b", "x"))
    with pytest.raises(UsageError):
        graph.query_by_node(a, 1, constraint_node=graph.find_node("b", "x"))


@pytest.mark.asyncio
async def test_hybrid_distance_filter_keeps_seeds(graph):
    t = await _topics(graph)
    result = await graph.query_by_content(
        "machine learning", top_k=1, steps=1, constraint_node=t["nn"], constraint_distance=0.01
    )
    assert result == [t["ml"], t["nn"]]


@pytest.mark.asyncio
async def test_hybrid_unknown_constraint_node(graph, gateway):
    await _topics(graph)
    calls = len(gateway.calls)
    with pytest.raises(NodeNotFoundError):
        await graph.query_by_content("machine learning", constraint_node="missing")
    assert len(gateway.calls) == calls
