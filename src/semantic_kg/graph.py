#!/usr/bin/env python3
"""
graph.py

KnowledgeGraph — in-memory semantic knowledge graph.

Owns the node table, an insertion-ordered label index and the embedding
gateway, and exposes mutation plus four query modes:

* :meth:`KnowledgeGraph.semantic_search` — exact cosine ranking
* :meth:`KnowledgeGraph.get_nodes_within_steps` — constrained BFS
* :meth:`KnowledgeGraph.query_by_content` — search, then expand
* :meth:`KnowledgeGraph.get_nodes_intersection` — multi-seed intersection

Also defines the :class:`GraphStats` result type.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from semantic_kg.config import GraphConfig
from semantic_kg.embedding import (
    EmbedFn,
    EmbeddingGateway,
    Vector,
    as_gateway,
    check_vectors,
    cosine_distance,
    cosine_scores,
)
from semantic_kg.errors import (
    ConfigurationError,
    EmbeddingContractError,
    NodeNotFoundError,
    UsageError,
)
from semantic_kg.node import Node

logger = logging.getLogger(__name__)

NodeRef = Union[Node, str]

# Threshold used by get_node_by_content() to treat a hit as the same content
_SAME_CONTENT_THRESHOLD = 0.999

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class GraphStats:
    """
    Summary returned by :meth:`KnowledgeGraph.stats`.

    :param total_nodes: Number of nodes in the graph.
    :param total_edges: Number of undirected edges.
    :param label_counts: Node counts broken down by label.
    :param nodes_with_embeddings: Nodes carrying a vector.
    :param avg_neighbors: Mean node degree.
    :param dim: Embedding dimensionality (``None`` until the first vector).
    """

    total_nodes: int
    total_edges: int
    label_counts: dict[str, int]
    nodes_with_embeddings: int
    avg_neighbors: float
    dim: int | None = None

    def to_dict(self) -> dict:
        return {
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "label_counts": self.label_counts,
            "nodes_with_embeddings": self.nodes_with_embeddings,
            "avg_neighbors": self.avg_neighbors,
            "dim": self.dim,
        }

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def __str__(self) -> str:
        lines = [
            f"nodes       : {self.total_nodes}  {self.label_counts}",
            f"edges       : {self.total_edges}  avg_neighbors={self.avg_neighbors:.2f}",
            f"embedded    : {self.nodes_with_embeddings}  dim={self.dim}",
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# KnowledgeGraph
# ---------------------------------------------------------------------------


class KnowledgeGraph:
    """
    In-memory graph of content nodes joined by symmetric, untyped edges.

    Structural mutation is serialised by a single :class:`asyncio.Lock`; the
    embedding gateway call is the only suspension point.  New nodes are
    embedded *before* anything is inserted, so a failed gateway call leaves
    the graph untouched and readers never observe a half-linked node.

    Example::

        graph = KnowledgeGraph(gateway=my_embed_fn)
        ml = await graph.add_node(Node("machine learning", "topic"))
        await graph.add_node(ml, Node("neural networks", "topic"))

        hits = await graph.semantic_search("deep nets", top_k=3)
        near = graph.get_nodes_within_steps(ml, steps=2)
        both = graph.get_nodes_intersection([hits[0], ml], steps=1)

    :param gateway: Embedding gateway, or a plain ``texts -> vectors``
                    callable (sync or async).
    :param config: Settings; defaults to :class:`GraphConfig`.
    """

    def __init__(
        self,
        gateway: Union[EmbeddingGateway, EmbedFn, None] = None,
        *,
        config: Optional[GraphConfig] = None,
    ) -> None:
        self.config = config or GraphConfig()
        self._gateway: Optional[EmbeddingGateway] = as_gateway(gateway)
        self._nodes: Dict[str, Node] = {}
        self._seq: Dict[str, int] = {}
        self._label_index: Dict[str, List[str]] = {}
        self.dim: Optional[int] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    @property
    def gateway(self) -> Optional[EmbeddingGateway]:
        return self._gateway

    @gateway.setter
    def gateway(self, value: Union[EmbeddingGateway, EmbedFn, None]) -> None:
        self._gateway = as_gateway(value)

    def set_embedding_function(self, fn: Union[EmbeddingGateway, EmbedFn]) -> None:
        """Install *fn* (a gateway or callable) as the embedding gateway."""
        self.gateway = fn

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Node):
            return item.id in self._nodes
        return item in self._nodes

    def size(self) -> int:
        return len(self._nodes)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Optional[Node]:
        """Return the node with *node_id*, or ``None``."""
        return self._nodes.get(node_id)

    def find_node(self, content: str, label: str) -> Optional[Node]:
        """
        Return the first node whose content and label both match exactly.

        :return: The node, or ``None`` if absent.
        """
        for nid in self._label_index.get(label, ()):
            node = self._nodes[nid]
            if node.content == content:
                return node
        return None

    def all_nodes(self) -> List[Node]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    def nodes_by_labels(self, labels: Iterable[str]) -> List[Node]:
        """
        Nodes whose label is in *labels*, in insertion order.

        :param labels: Labels to select.
        """
        ids: Set[str] = set()
        for label in _label_list(labels) or ():
            ids.update(self._label_index.get(label, ()))
        return [self._nodes[nid] for nid in sorted(ids, key=self._seq.__getitem__)]

    def neighbors_of(self, node: NodeRef) -> List[Node]:
        """Neighbours of *node* in deterministic (content, id) order."""
        return self._sorted_neighbors(self._require(node))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def add_node(self, node: Node, neighbor: Optional[Node] = None) -> Node:
        """
        Insert *node* and, optionally, link it to *neighbor*.

        Nodes already present (by id, then by content + label) are reused;
        new nodes lacking an embedding are embedded in one gateway batch
        before insertion.  Re-adding an existing node or edge is a no-op.

        :param node: Node to insert.
        :param neighbor: Optional node to connect with a symmetric edge.
        :return: The graph-resident node for *node*.
        :raises ConfigurationError: If embeddings are required and no gateway
                                    is configured.
        :raises EmbeddingContractError: If the gateway breaks its contract or
                                        a supplied vector has the wrong size.
        """
        return await self._insert(node, [] if neighbor is None else [neighbor])

    async def add_nodes(self, node: Node, neighbors: Optional[Sequence[Node]] = None) -> Node:
        """
        Insert *node* and link it to every node in *neighbors*.

        All new nodes are embedded in a single gateway batch.

        :return: The graph-resident node for *node*.
        """
        return await self._insert(node, list(neighbors or []))

    def chunk(self, node: Node) -> List[str]:
        """Split *node* with the configured chunk size and overlap."""
        return node.split_into_chunks(self.config.chunk_size, self.config.chunk_overlap)

    async def load_records(
        self,
        records: Iterable[Mapping],
        edges: Iterable[Tuple[str, str]] = (),
    ) -> List[Node]:
        """
        Import flat node records and re-link them.

        Records carry no adjacency, so edges are passed separately as id
        pairs (e.g. from :meth:`edge_pairs`).

        :param records: Records as produced by :meth:`Node.to_dict`.
        :param edges: ``(id_a, id_b)`` pairs to connect.
        :return: Resident nodes, one per record.
        :raises NodeNotFoundError: If an edge names an unknown id.
        """
        nodes = [Node.from_dict(r) for r in records]
        async with self._lock:
            resolved, fresh = self._resolve_batch(nodes)
            by_record_id = {n.id: r for n, r in zip(nodes, resolved)}
            staged = {n.id: n for n in fresh}

            def lookup(nid: str) -> Node:
                found = by_record_id.get(nid) or self._nodes.get(nid) or staged.get(nid)
                if found is None:
                    raise NodeNotFoundError(nid)
                return found

            pairs = [(lookup(a), lookup(b)) for a, b in edges]
            dim = await self._prepare(fresh)
            self._commit(fresh, pairs, dim)
        logger.info("Loaded %d records (%d new), %d edges", len(nodes), len(fresh), len(pairs))
        return resolved

    async def clear(self) -> None:
        """Drop all nodes and indexes."""
        async with self._lock:
            for n in self._nodes.values():
                n._owner = None
            self._nodes = {}
            self._seq = {}
            self._label_index = {}
            self.dim = None
        logger.info("Knowledge graph cleared")

    @staticmethod
    async def batch_embedding(
        nodes: Sequence[Node],
        gateway: Union[EmbeddingGateway, EmbedFn, None],
        *,
        batch_size: Optional[int] = None,
        dim: Optional[int] = None,
    ) -> List[Node]:
        """
        Embed every node lacking a vector (and any unembedded chunks).

        Texts are sent in one gateway call, or in ``batch_size`` slices when
        given; vectors are assigned back in order only after the whole
        response has been validated.

        :param nodes: Nodes to embed; already-embedded ones are skipped.
        :param gateway: Gateway or callable to use.
        :param batch_size: Max texts per call (``None`` = single call).
        :param dim: Required dimensionality, if already fixed.
        :return: The input nodes.
        :raises ConfigurationError: If *gateway* is ``None``.
        :raises EmbeddingContractError: On a count or dimension mismatch.
        """
        gw = as_gateway(gateway)
        if gw is None:
            raise ConfigurationError("No embedding gateway configured")

        texts: List[str] = []
        slots: List[Tuple[Node, Optional[int]]] = []
        seen: Set[str] = set()
        for n in nodes:
            if n.id in seen:
                continue
            seen.add(n.id)
            if n.embedding is None:
                texts.append(n.content)
                slots.append((n, None))
            if n.needs_chunk_embeddings:
                for i, chunk in enumerate(n.chunks):
                    texts.append(chunk)
                    slots.append((n, i))

        if not texts:
            return list(nodes)

        step = batch_size if batch_size and batch_size > 0 else len(texts)
        vectors: List[Vector] = []
        for start in range(0, len(texts), step):
            batch = texts[start : start + step]
            logger.debug(
                "Embedding texts %d to %d of %d", start, start + len(batch), len(texts)
            )
            try:
                out = await gw.embed(batch)
            except Exception:
                logger.warning("Embedding gateway failed on a batch of %d texts", len(batch))
                raise
            dim = check_vectors(out, len(batch), dim)
            vectors.extend([float(x) for x in v] for v in out)

        check_vectors(vectors, len(texts), dim)

        chunk_vectors: Dict[str, List[Vector]] = {}
        for (n, chunk_idx), vec in zip(slots, vectors):
            if chunk_idx is None:
                n.embedding = vec
            else:
                chunk_vectors.setdefault(n.id, []).append(vec)
        for n, _ in slots:
            if n.id in chunk_vectors:
                n.chunk_embeddings = chunk_vectors[n.id]
        return list(nodes)

    async def _insert(self, node: Node, neighbors: List[Node]) -> Node:
        for n in (node, *neighbors):
            if not isinstance(n, Node):
                raise TypeError(f"Expected Node, got {type(n).__name__}")
        async with self._lock:
            resolved, fresh = self._resolve_batch([node, *neighbors])
            head = resolved[0]
            dim = await self._prepare(fresh)
            self._commit(fresh, [(head, other) for other in resolved[1:]], dim)
            return head

    def _resolve_batch(self, nodes: Sequence[Node]) -> Tuple[List[Node], List[Node]]:
        """Map each node to its resident (or staged) instance; collect new ones."""
        staged: Dict[str, Node] = {}
        resolved: List[Node] = []
        fresh: List[Node] = []
        for n in nodes:
            found = self._resolve(n)
            if found is None:
                found = staged.get(n.id) or next(
                    (s for s in fresh if s.content == n.content and s.label == n.label),
                    None,
                )
            if found is None:
                if n._owner is not None and n._owner is not self:
                    # held by another graph; its adjacency there stays intact
                    n = _detached(n)
                staged[n.id] = n
                fresh.append(n)
                found = n
            resolved.append(found)
        return resolved, fresh

    async def _prepare(self, fresh: List[Node]) -> Optional[int]:
        """Embed new nodes and check dimensionality; touches no graph state."""
        preset = [v for n in fresh for v in _vectors_of(n)]
        dim = check_vectors(preset, len(preset), self.dim)

        pending = [n for n in fresh if n.embedding is None or n.needs_chunk_embeddings]
        if not pending:
            return dim
        if self._gateway is None:
            if self.config.require_embeddings:
                raise ConfigurationError(
                    f"No embedding gateway configured; {len(pending)} node(s) need embeddings"
                )
            logger.debug("No gateway configured; inserting %d node(s) unembedded", len(pending))
            return dim

        await self.batch_embedding(
            pending, self._gateway, batch_size=self.config.embed_batch_size, dim=dim
        )
        vectors = [v for n in fresh for v in _vectors_of(n)]
        return check_vectors(vectors, len(vectors), self.dim)

    def _commit(
        self,
        fresh: List[Node],
        edges: Sequence[Tuple[Node, Node]],
        dim: Optional[int],
    ) -> None:
        """Insert and link synchronously; no suspension between steps."""
        if self.dim is None:
            self.dim = dim
        for n in fresh:
            n.neighbors = set()
            n._owner = self
            self._seq[n.id] = len(self._seq)
            self._nodes[n.id] = n
            self._label_index.setdefault(n.label, []).append(n.id)
        linked = 0
        for a, b in edges:
            if a.id == b.id or b.id in a.neighbors:
                continue
            a.neighbors.add(b.id)
            b.neighbors.add(a.id)
            linked += 1
        if fresh or linked:
            logger.debug("Inserted %d node(s), created %d edge(s)", len(fresh), linked)

    def _resolve(self, node: Node) -> Optional[Node]:
        found = self._nodes.get(node.id)
        if found is None:
            found = self.find_node(node.content, node.label)
        return found

    def _require(self, ref: NodeRef) -> Node:
        if isinstance(ref, Node):
            found = self._resolve(ref)
            if found is None:
                raise NodeNotFoundError(ref.id)
            return found
        found = self._nodes.get(ref)
        if found is None:
            raise NodeNotFoundError(ref)
        return found

    # ------------------------------------------------------------------
    # Semantic search
    # ------------------------------------------------------------------

    async def semantic_search(
        self,
        query: Union[str, Node],
        threshold: float = 0.0,
        top_k: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
    ) -> List[Node]:
        """
        Rank embedded nodes by cosine similarity to *query*.

        :param query: Query text, or a node that already has an embedding.
        :param threshold: Inclusive minimum score.
        :param top_k: Max results (``None`` = unlimited, ``<= 0`` = none).
        :param constraint_labels: Restrict candidates to these labels.
        :return: Nodes by descending score, ties in insertion order.
        :raises ConfigurationError: If *query* must be embedded and no
                                    gateway is configured.
        """
        hits = await self.search_with_scores(query, threshold, top_k, constraint_labels)
        return [n for n, _ in hits]

    async def search_with_scores(
        self,
        query: Union[str, Node],
        threshold: float = 0.0,
        top_k: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
    ) -> List[Tuple[Node, float]]:
        """Like :meth:`semantic_search`, returning ``(node, score)`` pairs."""
        if top_k is not None and top_k <= 0:
            return []
        labels = _label_list(constraint_labels)

        needs_gateway = not (isinstance(query, Node) and query.embedding is not None)
        if needs_gateway and self._gateway is None:
            raise ConfigurationError("No embedding gateway configured for query embedding")
        if not self._embedded_candidates(labels):
            return []

        qvec = await self._query_vector(query)
        hits = self._rank(qvec, threshold, top_k, labels)
        logger.debug("Semantic search returned %d hit(s)", len(hits))
        return hits

    async def get_node_by_content(self, content: str) -> Optional[Node]:
        """Return the node whose embedding essentially matches *content*, or ``None``."""
        hits = await self.semantic_search(content, _SAME_CONTENT_THRESHOLD, 1)
        return hits[0] if hits else None

    async def _query_vector(self, query: Union[str, Node]) -> Vector:
        if isinstance(query, Node):
            if query.embedding is not None:
                vec = query.embedding
            else:
                vec = await self._gateway.embed_query(query.content)  # type: ignore[union-attr]
        elif isinstance(query, str):
            vec = await self._gateway.embed_query(query)  # type: ignore[union-attr]
        else:
            raise UsageError(f"query must be a str or Node, got {type(query).__name__}")
        if self.dim is not None and len(vec) != self.dim:
            raise EmbeddingContractError(
                f"Query vector has dimension {len(vec)}, graph uses {self.dim}"
            )
        return vec

    def _embedded_candidates(self, labels: Optional[List[str]]) -> List[Node]:
        pool = self.all_nodes() if labels is None else self.nodes_by_labels(labels)
        return [n for n in pool if n.embedding is not None]

    def _rank(
        self,
        qvec: Vector,
        threshold: float,
        top_k: Optional[int],
        labels: Optional[List[str]],
    ) -> List[Tuple[Node, float]]:
        candidates = self._embedded_candidates(labels)
        if not candidates:
            return []

        rows: List[Vector] = []
        owners: List[int] = []
        for i, n in enumerate(candidates):
            rows.append(n.embedding)  # type: ignore[arg-type]
            owners.append(i)
            for vec in n.chunk_embeddings:
                rows.append(vec)
                owners.append(i)

        scores = cosine_scores(qvec, np.asarray(rows, dtype="float64"))
        # a node scores as its best-matching row (whole content or chunk)
        best = np.full(len(candidates), -np.inf)
        np.maximum.at(best, np.asarray(owners), scores)

        hits = [
            (candidates[i], float(best[i]))
            for i in range(len(candidates))
            if best[i] >= threshold
        ]
        hits.sort(key=lambda h: h[1], reverse=True)
        return hits if top_k is None else hits[:top_k]

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def get_nodes_within_steps(
        self,
        start: NodeRef,
        steps: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
        block: bool = False,
        include_start: bool = False,
    ) -> List[Node]:
        """
        Breadth-first traversal up to *steps* hops from *start*.

        With ``block=False`` every reachable node is visited and
        *constraint_labels* only filters the result.  With ``block=True`` a
        node whose label is not allowed is neither returned nor expanded, so
        paths through it are cut.

        The start node is always expanded and never revisited; it is left
        out of the result unless *include_start* is set.

        :param start: Start node or its id.
        :param steps: Max hops (default from config).
        :param constraint_labels: Allowed labels (``None`` = any).
        :param block: Apply the constraint during traversal.
        :param include_start: Put the start node first in the result.
        :return: Nodes in discovery order.
        :raises NodeNotFoundError: If *start* is not in the graph.
        :raises UsageError: If *steps* is negative.
        """
        steps = self.config.default_steps if steps is None else steps
        if steps < 0:
            raise UsageError(f"steps must be >= 0, got {steps}")
        origin = self._require(start)
        labels = _label_list(constraint_labels)
        allowed = None if labels is None else set(labels)

        visited: Set[str] = {origin.id}
        found: List[Node] = [origin] if include_start else []
        frontier = [origin]
        for _ in range(steps):
            nxt: List[Node] = []
            for current in frontier:
                for nb in self._sorted_neighbors(current):
                    if nb.id in visited:
                        continue
                    if block and allowed is not None and nb.label not in allowed:
                        continue
                    visited.add(nb.id)
                    found.append(nb)
                    nxt.append(nb)
            if not nxt:
                break
            frontier = nxt

        if allowed is not None:
            found = [n for n in found if n.label in allowed]
        return found

    def query_by_node(
        self,
        node: NodeRef,
        steps: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
        block: bool = False,
        constraint_node: Optional[NodeRef] = None,
        constraint_distance: float = 0.0,
    ) -> List[Node]:
        """
        Graph half of :meth:`query_by_content` for a single seed.

        With *constraint_node* set, only discovered nodes whose cosine
        distance to it is at most *constraint_distance* are kept; nodes
        without an embedding are dropped.

        :param node: Start node or its id.
        :param steps: Max hops (default from config).
        :param constraint_labels: Allowed labels (``None`` = any).
        :param block: Apply the label constraint during traversal.
        :param constraint_node: Anchor node (or id) for the distance filter.
        :param constraint_distance: Inclusive max cosine distance to the anchor.
        :raises UsageError: If the anchor has no embedding.
        """
        anchor = None if constraint_node is None else self._anchor(constraint_node)
        found = self.get_nodes_within_steps(node, steps, constraint_labels, block)
        if anchor is None:
            return found
        return self._within_distance(found, anchor, constraint_distance)

    def _anchor(self, ref: NodeRef) -> Node:
        anchor = ref if isinstance(ref, Node) else self._require(ref)
        if anchor.embedding is None:
            raise UsageError(f"Constraint node {anchor.id!r} has no embedding")
        return anchor

    def _within_distance(self, nodes: List[Node], anchor: Node, max_distance: float) -> List[Node]:
        return [
            n
            for n in nodes
            if n.embedding is not None and self.distance(n, anchor) <= max_distance
        ]

    def _sorted_neighbors(self, node: Node) -> List[Node]:
        nbs = [self._nodes[nid] for nid in node.neighbors if nid in self._nodes]
        nbs.sort(key=lambda n: (n.content, n.id))
        return nbs

    # ------------------------------------------------------------------
    # Hybrid query
    # ------------------------------------------------------------------

    async def query_by_content(
        self,
        query: Union[str, Sequence[str]],
        top_k: Optional[int] = None,
        steps: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
        similarity_threshold: float = 0.0,
        block: bool = False,
        max_nodes: Optional[int] = None,
        constraint_node: Optional[NodeRef] = None,
        constraint_distance: float = 0.0,
    ) -> List[Node]:
        """
        Hybrid query: semantic seeding + structural expansion.

        Seeds satisfying *constraint_labels* come first in rank order,
        followed by newly discovered nodes in discovery order, deduplicated
        by id.  Several queries are processed in turn and merged.

        :param query: Query text or list of query texts.
        :param top_k: Semantic seeds per query (default from config).
        :param steps: Expansion hops (default from config).
        :param constraint_labels: Allowed labels for the returned nodes.
        :param similarity_threshold: Inclusive minimum seed score.
        :param block: Apply the constraint during expansion.
        :param max_nodes: Cap on the returned list (``None`` = no cap).
        :param constraint_node: Anchor for the distance filter on expanded
                                nodes; seeds are not filtered.
        :param constraint_distance: Inclusive max cosine distance to the anchor.
        :return: Ordered list of nodes.
        :raises UsageError: On negative *steps* or an anchor without an embedding.
        """
        top_k = self.config.default_top_k if top_k is None else top_k
        steps = self.config.default_steps if steps is None else steps
        if steps < 0:
            raise UsageError(f"steps must be >= 0, got {steps}")
        queries = [query] if isinstance(query, str) else list(query)
        labels = _label_list(constraint_labels)
        allowed = None if labels is None else set(labels)
        anchor = None if constraint_node is None else self._anchor(constraint_node)

        result: Dict[str, Node] = {}
        for q in queries:
            seeds = await self.semantic_search(q, similarity_threshold, top_k)
            for seed in seeds:
                if allowed is None or seed.label in allowed:
                    result.setdefault(seed.id, seed)
            for seed in seeds:
                found = self.get_nodes_within_steps(seed, steps, labels, block)
                if anchor is not None:
                    found = self._within_distance(found, anchor, constraint_distance)
                for n in found:
                    result.setdefault(n.id, n)

        nodes = list(result.values())
        return nodes if max_nodes is None else nodes[:max_nodes]

    # ------------------------------------------------------------------
    # Intersection
    # ------------------------------------------------------------------

    def get_nodes_intersection(
        self,
        nodes: Sequence[NodeRef],
        steps: Optional[int] = None,
        constraint_labels: Optional[Iterable[str]] = None,
        block: bool = False,
    ) -> List[Node]:
        """
        Nodes reachable within *steps* from **every** seed in *nodes*.

        :param nodes: At least two seed nodes (or ids).
        :param steps: Max hops per seed (default from config).
        :param constraint_labels: Filter applied to the intersection.
        :param block: Also gate each traversal by *constraint_labels*.
        :return: Common nodes in the first seed's discovery order.
        :raises UsageError: If fewer than two seeds are given.
        :raises NodeNotFoundError: If a seed is not in the graph.
        """
        if len(nodes) < 2:
            raise UsageError(f"Intersection needs at least 2 seeds, got {len(nodes)}")
        seeds = [self._require(n) for n in nodes]
        labels = _label_list(constraint_labels)
        gate = labels if block else None

        common: Optional[List[Node]] = None
        for seed in seeds:
            reach = self.get_nodes_within_steps(seed, steps, gate, block)
            common = reach if common is None else self.intersection(common, reach)
            if not common:
                return []

        if labels is not None:
            common = self.filter_labels(common, labels)  # type: ignore[arg-type]
        return common or []

    @staticmethod
    def intersection(nodes1: Sequence[Node], nodes2: Sequence[Node]) -> List[Node]:
        """Nodes of *nodes1* whose id also appears in *nodes2*, order kept."""
        ids2 = {n.id for n in nodes2}
        return [n for n in nodes1 if n.id in ids2]

    @staticmethod
    def difference(nodes1: Sequence[Node], nodes2: Sequence[Node]) -> List[Node]:
        """Symmetric difference by id: only-in-1 followed by only-in-2."""
        ids1 = {n.id for n in nodes1}
        ids2 = {n.id for n in nodes2}
        return [n for n in nodes1 if n.id not in ids2] + [n for n in nodes2 if n.id not in ids1]

    @staticmethod
    def filter_labels(nodes: Sequence[Node], labels: Iterable[str]) -> List[Node]:
        allowed = set(_label_list(labels) or ())
        return [n for n in nodes if n.label in allowed]

    def distance(self, node1: Node, node2: Node) -> float:
        """
        Cosine distance between two nodes' embeddings.

        :raises UsageError: If either node has no embedding.
        """
        if node1.embedding is None or node2.embedding is None:
            raise UsageError("Both nodes must have embeddings")
        return cosine_distance(node1.embedding, node2.embedding)

    # ------------------------------------------------------------------
    # Export / stats
    # ------------------------------------------------------------------

    def to_records(self) -> List[dict]:
        """Flat node records in insertion order (no adjacency)."""
        return [n.to_dict() for n in self._nodes.values()]

    def edge_pairs(self) -> List[Tuple[str, str]]:
        """Every undirected edge once, as a sorted ``(id_a, id_b)`` pair."""
        pairs = {
            (min(n.id, nid), max(n.id, nid))
            for n in self._nodes.values()
            for nid in n.neighbors
        }
        return sorted(pairs)

    def stats(self) -> GraphStats:
        """Return node, edge, label and embedding counts."""
        degree = sum(len(n.neighbors) for n in self._nodes.values())
        total = len(self._nodes)
        labels: Counter = Counter(n.label for n in self._nodes.values())
        return GraphStats(
            total_nodes=total,
            total_edges=degree // 2,
            label_counts=dict(labels),
            nodes_with_embeddings=sum(1 for n in self._nodes.values() if n.embedding is not None),
            avg_neighbors=degree / total if total else 0.0,
            dim=self.dim,
        )

    def __repr__(self) -> str:
        return f"KnowledgeGraph(nodes={len(self._nodes)}, edges={len(self.edge_pairs())})"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _vectors_of(node: Node) -> List[Vector]:
    vecs = [] if node.embedding is None else [node.embedding]
    return vecs + list(node.chunk_embeddings)


def _label_list(labels: Union[str, Iterable[str], None]) -> Optional[List[str]]:
    """A single label string means that one label, not its characters."""
    if labels is None:
        return None
    if isinstance(labels, str):
        return [labels]
    return list(labels)


def _detached(node: Node) -> Node:
    """Unlinked copy of *node* with its own chunk lists."""
    return replace(
        node,
        neighbors=set(),
        chunks=list(node.chunks),
        chunk_embeddings=[list(v) for v in node.chunk_embeddings],
    )
