"""Similarity Index — query-time nearest neighbours over stored embeddings.

There is no stored edge list. "Related" is a threshold over cosine
similarity, evaluated against whatever the store holds right now.
"""

import logging
from uuid import UUID
import numpy as np
from argument_ledger.config import SIMILARITY_RELATED
from argument_ledger.models import ClaimKind, SimilarClaim

logger = logging.getLogger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity; 0.0 for zero vectors or mismatched dimensions."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class SimilarityIndex:
    def __init__(self, store):
        self._store = store

    async def find_similar(
        self,
        vector: list[float],
        kind: ClaimKind,
        limit: int = 10,
        exclude_id: UUID | None = None,
        min_similarity: float = SIMILARITY_RELATED,
    ) -> list[SimilarClaim]:
        if not vector:
            return []

        try:
            if kind == ClaimKind.ARGUMENT:
                candidates = await self._store.embedded_arguments(exclude_id=exclude_id)
            else:
                candidates = await self._store.embedded_facts(exclude_id=exclude_id)
        except Exception:
            # No similar claims is a normal answer; callers carry on without neighbours
            logger.warning("Similarity lookup failed for %s", kind.value, exc_info=True)
            return []

        matches = []
        for c in candidates:
            if not c.embedding or c.id == exclude_id:
                continue
            similarity = cosine_similarity(vector, c.embedding)
            if similarity >= min_similarity:
                matches.append(SimilarClaim(
                    id=c.id, content=c.content, confidence=c.confidence, similarity=similarity,
                ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]
