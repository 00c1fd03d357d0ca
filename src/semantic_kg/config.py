#!/usr/bin/env python3
"""
config.py

GraphConfig — tunables for :class:`~semantic_kg.graph.KnowledgeGraph`.

Defaults live in module constants; :meth:`GraphConfig.from_env` lets a
deployment override them through ``SEMANTIC_KG_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_TOP_K = 5
DEFAULT_STEPS = 1
DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 0

_ENV_PREFIX = "SEMANTIC_KG_"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class GraphConfig:
    """
    Knowledge graph settings.

    :param embed_batch_size: Max texts per gateway call; ``None`` sends every
                             pending text in a single call.
    :param require_embeddings: If ``True``, inserting an unembedded node with
                               no gateway configured raises
                               :class:`~semantic_kg.errors.ConfigurationError`
                               instead of storing it without a vector.
    :param default_top_k: Seed count used by hybrid queries.
    :param default_steps: Hop count used by traversal and hybrid queries.
    :param chunk_size: Window length for content chunking.
    :param chunk_overlap: Characters shared by consecutive windows.
    """

    embed_batch_size: Optional[int] = None
    require_embeddings: bool = False
    default_top_k: int = DEFAULT_TOP_K
    default_steps: int = DEFAULT_STEPS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> GraphConfig:
        """
        Build a config from ``SEMANTIC_KG_*`` environment variables.

        Unset variables keep their defaults; unparsable ones are logged and
        ignored.

        :param environ: Mapping to read instead of :data:`os.environ`.
        """
        env = os.environ if environ is None else environ
        base = cls()
        return cls(
            embed_batch_size=_env_int(env, "EMBED_BATCH_SIZE", base.embed_batch_size),
            require_embeddings=_env_bool(env, "REQUIRE_EMBEDDINGS", base.require_embeddings),
            default_top_k=_env_int(env, "TOP_K", base.default_top_k),
            default_steps=_env_int(env, "STEPS", base.default_steps),
            chunk_size=_env_int(env, "CHUNK_SIZE", base.chunk_size),
            chunk_overlap=_env_int(env, "CHUNK_OVERLAP", base.chunk_overlap),
        )


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s%s=%r, using %r", _ENV_PREFIX, name, raw, default)
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Invalid %s%s=%r, using %r", _ENV_PREFIX, name, raw, default)
    return default
