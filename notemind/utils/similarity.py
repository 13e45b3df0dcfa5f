"""Vector similarity helpers (numpy)."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns ``0.0`` when either vector has zero norm (or the lengths
    differ) instead of raising.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_scores(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> list[float]:
    """Cosine similarity of *query* against every row of *matrix*.

    One matrix product for all rows; zero-norm rows (or a zero query)
    score ``0.0``.
    """
    rows = np.asarray(matrix, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    if rows.size == 0 or rows.ndim != 2 or rows.shape[1] != q.shape[0]:
        return [0.0] * len(matrix)
    norms = np.linalg.norm(rows, axis=1) * np.linalg.norm(q)
    dots = rows @ q
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return scores.tolist()
