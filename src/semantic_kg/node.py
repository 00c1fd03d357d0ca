#!/usr/bin/env python3
"""
node.py

Node — the atomic record of the semantic knowledge graph.

A node carries identity, content, a free-form label, an optional embedding,
an opaque appendix and the ids of its neighbours.  Nodes are created
standalone and only become graph members through
:meth:`KnowledgeGraph.add_node <semantic_kg.graph.KnowledgeGraph.add_node>`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Set

from semantic_kg import chunker
from semantic_kg.config import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE
from semantic_kg.errors import UsageError

# Namespace for deterministic node ids
NODE_NAMESPACE = uuid.NAMESPACE_DNS

# Fields fixed while a graph owns the node; they key the id and label index
_IDENTITY_FIELDS = ("content", "label", "id")

# Opaque payload; the graph never inspects it
Appendix = Any


def node_id(content: str, label: str) -> str:
    """
    Deterministic node id derived from *label* and *content*.

    :param content: Node content.
    :param label: Node label.
    :return: UUIDv5 string.
    """
    return str(uuid.uuid5(NODE_NAMESPACE, f"{label}\x1f{content}"))


@dataclass(eq=False)
class Node:
    """
    Graph node.

    :param content: Textual payload used for embedding and display.
    :param label: Category tag used for filtering; not unique.
    :param embedding: Optional vector; ``None`` until computed.
    :param appendix: Opaque payload carried alongside the node.
    :param id: Stable identifier; derived from label + content if omitted.

    While a :class:`~semantic_kg.graph.KnowledgeGraph` holds the node,
    ``content``, ``label`` and ``id`` cannot be reassigned.
    """

    content: str
    label: str = ""
    embedding: Optional[List[float]] = None
    appendix: Appendix = None
    id: str = ""
    neighbors: Set[str] = field(default_factory=set, repr=False)
    chunks: List[str] = field(default_factory=list, repr=False)
    chunk_embeddings: List[List[float]] = field(default_factory=list, repr=False)
    # Graph currently holding this node, if any
    _owner: Any = field(default=None, init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _IDENTITY_FIELDS and self._owner is not None:
            raise UsageError(f"Cannot change {name!r} of node {self.id!r} while it is in a graph")
        super().__setattr__(name, value)

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        if not self.id:
            self.id = node_id(self.content, self.label)
        if self.embedding is not None:
            self.embedding = [float(x) for x in self.embedding]

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------

    def split_into_chunks(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> List[str]:
        """
        Split :attr:`content` into windows stored on :attr:`chunks`.

        Any previous chunk embeddings are discarded, so the graph embeds the
        new chunks the next time the node is batch-embedded.

        :param chunk_size: Window length.
        :param overlap: Characters shared by consecutive windows.
        :return: The new chunk list.
        """
        self.chunks = chunker.split(self.content, chunk_size, overlap)
        self.chunk_embeddings = []
        return self.chunks

    @property
    def needs_chunk_embeddings(self) -> bool:
        return bool(self.chunks) and not self.chunk_embeddings

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """
        Flat, transport-safe record.

        Neighbours and chunks are excluded: edges are graph-level
        relationships and must be re-added after import.
        """
        return {
            "id": self.id,
            "content": self.content,
            "label": self.label,
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "appendix": self.appendix,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Node:
        """
        Rebuild a node from a :meth:`to_dict` record.

        :param data: Record with at least ``content``.
        :return: A new, unlinked node.
        """
        embedding = data.get("embedding")
        return cls(
            content=data["content"],
            label=data.get("label") or "",
            embedding=list(embedding) if embedding is not None else None,
            appendix=data.get("appendix"),
            id=data.get("id") or "",
        )

    def __repr__(self) -> str:
        return (
            f"Node(id={self.id!r}, label={self.label!r}, "
            f"content={self.content[:100]!r}, neighbors={sorted(self.neighbors)!r})"
        )
