#!/usr/bin/env python3
"""
chunker.py

Sliding-window content splitter used to embed long documents at a finer
granularity than the whole text.
"""

from __future__ import annotations

from typing import List

from semantic_kg.errors import InvalidChunkingError


def split(content: str, chunk_size: int, overlap: int = 0) -> List[str]:
    """
    Split *content* into ordered, possibly overlapping windows.

    Windows start at offset 0 and advance by ``chunk_size - overlap``.  Every
    window is ``chunk_size`` long except possibly the last, which is truncated
    to the remaining tail and always kept.  Content no longer than
    ``chunk_size`` yields exactly one chunk equal to the content.

    Example::

        >>> split("AAAABBBBCCCC", 4, 2)
        ['AAAA', 'AABB', 'BBBB', 'BBCC', 'CCCC']

    :param content: Text to split.
    :param chunk_size: Window length; must be positive.
    :param overlap: Characters shared by consecutive windows;
                    ``0 <= overlap < chunk_size``.
    :return: List of chunks.
    :raises InvalidChunkingError: On invalid ``chunk_size`` / ``overlap``.
    """
    if chunk_size <= 0:
        raise InvalidChunkingError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise InvalidChunkingError(
            f"overlap must satisfy 0 <= overlap < chunk_size, "
            f"got overlap={overlap}, chunk_size={chunk_size}"
        )

    if len(content) <= chunk_size:
        return [content]

    step = chunk_size - overlap
    chunks: List[str] = []
    start = 0
    while True:
        chunks.append(content[start : start + chunk_size])
        # last window reached the tail
        if start + chunk_size >= len(content):
            break
        start += step
    return chunks


def unique_spans(chunks: List[str], overlap: int) -> List[str]:
    """
    Strip the leading overlap from every chunk after the first.

    Joining the result reconstructs the content passed to :func:`split`.

    :param chunks: Output of :func:`split`.
    :param overlap: The overlap used to produce *chunks*.
    """
    return [c if i == 0 else c[overlap:] for i, c in enumerate(chunks)]
