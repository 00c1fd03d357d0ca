#!/usr/bin/env python3
"""
embedding.py

EmbeddingGateway — the single extension point for turning text into vectors,
plus the cosine math the graph ranks with.

The graph never knows how embeddings are produced; it only awaits
:meth:`EmbeddingGateway.embed` on batches of strings.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Sequence, Union

import numpy as np

from semantic_kg.errors import EmbeddingContractError

Vector = List[float]
EmbedFn = Callable[[List[str]], Union[Sequence[Sequence[float]], Awaitable[Sequence[Sequence[float]]]]]

# ---------------------------------------------------------------------------
# Gateway interface (pluggable)
# ---------------------------------------------------------------------------


class EmbeddingGateway:
    """
    Abstract embedding backend.

    Subclass and implement :meth:`embed` to plug in any model or remote API.
    One vector per input string, same order, fixed length across all calls
    from one instance.  Retry policy, if any, belongs here rather than in the
    graph.
    """

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        """
        Embed a batch of strings.

        :param texts: Input strings.
        :return: List of float vectors, one per input.
        """
        raise NotImplementedError

    async def embed_query(self, text: str) -> Vector:
        """
        Embed a single string.

        Default implementation calls :meth:`embed` with a one-element batch.
        """
        vectors = await self.embed([text])
        check_vectors(vectors, 1)
        return vectors[0]


class CallableGateway(EmbeddingGateway):
    """
    Adapt a plain function into a gateway.

    The function takes a list of strings and returns a list of vectors; it
    may be a coroutine function or a regular one.

    :param fn: Embedding function.
    """

    def __init__(self, fn: EmbedFn) -> None:
        self.fn = fn

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        result = self.fn(list(texts))
        if inspect.isawaitable(result):
            result = await result
        return [[float(x) for x in v] for v in result]

    def __repr__(self) -> str:
        name = getattr(self.fn, "__qualname__", type(self.fn).__name__)
        return f"CallableGateway(fn={name})"


class SentenceTransformerGateway(EmbeddingGateway):
    """
    Local embedding via ``sentence-transformers``.

    Encoding runs on a worker thread so the event loop is not blocked.

    :param model_name: HuggingFace model name or local path.
                       Defaults to ``"all-MiniLM-L6-v2"``.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        from sentence_transformers import SentenceTransformer

        self.model = SentenceTransformer(model_name)
        self.model_name = model_name
        self.dim: int = self.model.get_sentence_embedding_dimension()

    def _encode(self, texts: List[str]) -> List[Vector]:
        vecs = self.model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        return [np.asarray(v, dtype="float32").tolist() for v in vecs]

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        return await asyncio.to_thread(self._encode, list(texts))

    def __repr__(self) -> str:
        return f"SentenceTransformerGateway(model={self.model_name!r}, dim={self.dim})"


def as_gateway(obj: Union[EmbeddingGateway, EmbedFn, None]) -> Optional[EmbeddingGateway]:
    """
    Coerce *obj* into a gateway.

    Gateways pass through unchanged, callables are wrapped in
    :class:`CallableGateway`, ``None`` stays ``None``.

    :raises TypeError: If *obj* is neither.
    """
    if obj is None or isinstance(obj, EmbeddingGateway):
        return obj
    if callable(obj):
        return CallableGateway(obj)
    raise TypeError(f"Expected an EmbeddingGateway or callable, got {type(obj).__name__}")


# ---------------------------------------------------------------------------
# Contract checks
# ---------------------------------------------------------------------------


def check_vectors(
    vectors: Sequence[Sequence[float]],
    expected_count: int,
    dim: Optional[int] = None,
) -> Optional[int]:
    """
    Validate a gateway response.

    :param vectors: Vectors returned by the gateway.
    :param expected_count: Number of texts that were sent.
    :param dim: Required dimensionality, if already known.
    :return: The common dimensionality (``dim`` when no vectors were returned).
    :raises EmbeddingContractError: On a count or dimensionality mismatch.
    """
    if len(vectors) != expected_count:
        raise EmbeddingContractError(
            f"Gateway returned {len(vectors)} vectors for {expected_count} texts"
        )
    for i, v in enumerate(vectors):
        if dim is None:
            dim = len(v)
        if len(v) != dim:
            raise EmbeddingContractError(
                f"Vector {i} has dimension {len(v)}, expected {dim}"
            )
    return dim


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors; ``0.0`` if either has zero norm.

    :raises EmbeddingContractError: If the dimensions differ.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape:
        raise EmbeddingContractError(
            f"Vectors must have the same dimension, got {va.shape[0]} and {vb.shape[0]}"
        )
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """``1 - cosine_similarity(a, b)``."""
    return 1.0 - cosine_similarity(a, b)


def cosine_scores(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of *query* against every row of *matrix*.

    Rows (or a query) with zero norm score ``0.0``.

    :param query: Query vector of length ``d``.
    :param matrix: ``(n, d)`` array of candidate vectors.
    :return: ``(n,)`` array of scores.
    """
    q = np.asarray(query, dtype="float64")
    if matrix.shape[0] == 0:
        return np.zeros((0,), dtype="float64")
    if matrix.shape[1] != q.shape[0]:
        raise EmbeddingContractError(
            f"Query has dimension {q.shape[0]}, index has {matrix.shape[1]}"
        )
    row_norms = np.linalg.norm(matrix, axis=1)
    q_norm = np.linalg.norm(q)
    denom = row_norms * q_norm
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0.0, dots / np.where(denom > 0.0, denom, 1.0), 0.0)
    return scores
