from __future__ import annotations

from enum import Enum
from typing import Mapping

import numpy as np
from scipy import sparse

from resampling.errors import ConfigError, ContractViolation
from resampling.stages.conflicts import ConflictSet
from resampling.utils import get_logger

logger = get_logger(__name__)

_EDGE_CHUNK = 100_000


class Metric(str, Enum):
    BRAY = "bray"
    SORENSEN = "sorensen"
    JACCARD = "jaccard"
    SIMPSON = "simpson"

    @property
    def binary(self) -> bool:
        """Whether weights are reduced to presence before scoring."""
        return self is not Metric.BRAY

    @classmethod
    def parse(cls, value) -> "Metric":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigError(
                f"Unknown similarity metric: {value!r} (expected one of {', '.join(m.value for m in cls)})"
            ) from None


# ---------- Pair formulas ----------
# Presence metrics take s = shared categories, u/v = categories unique to each side.

def bray_curtis(sum_a, sum_b, shared_min):
    # sum |x - y| == sum_a + sum_b - 2 * sum min(x, y)
    total = sum_a + sum_b
    return 1.0 - (total - 2.0 * shared_min) / total


def sorensen(s, u, v):
    return 1.0 - (u + v) / (2.0 * s + u + v)


def jaccard(s, u, v):
    return 1.0 - (u + v) / (s + u + v)


def simpson(s, u, v):
    m = np.minimum(u, v)
    return 1.0 - m / (m + s)


_PRESENCE_FORMULAS = {
    Metric.SORENSEN: sorensen,
    Metric.JACCARD: jaccard,
    Metric.SIMPSON: simpson,
}


def pair_similarity(metric, x: Mapping[str, float], y: Mapping[str, float]) -> float:
    """Similarity of two sparse composition vectors given as mappings."""
    metric = Metric.parse(metric)
    if not x or not y:
        raise ContractViolation("similarity requested for an empty composition")
    if metric is Metric.BRAY:
        shared_min = sum(min(x[k], y[k]) for k in x.keys() & y.keys())
        return float(bray_curtis(float(sum(x.values())), float(sum(y.values())), float(shared_min)))
    s = float(len(x.keys() & y.keys()))
    u = float(len(x) - s)
    v = float(len(y) - s)
    return float(_PRESENCE_FORMULAS[metric](s, u, v))


# ---------- Sparse, edge-restricted evaluation ----------

def prepare_matrix(matrix: sparse.spmatrix, metric: Metric) -> sparse.csr_matrix:
    """Restrict a group's composition rows to the categories present and binarize if needed."""
    metric = Metric.parse(metric)
    X = sparse.csr_matrix(matrix, dtype=float, copy=True)
    X.sum_duplicates()
    cols = np.unique(X.indices)
    X = X[:, cols]
    if metric.binary:
        X.data[:] = 1.0
    counts = np.diff(X.indptr)
    if np.any(counts == 0):
        bad = np.flatnonzero(counts == 0)[:5].tolist()
        raise ContractViolation(f"records without composition reached similarity (local rows {bad})")
    if not metric.binary and np.any(np.asarray(X.sum(axis=1)).ravel() <= 0):
        raise ContractViolation("non-positive total weight under bray similarity")
    return X


def score_edges(X: sparse.csr_matrix, edges: np.ndarray, metric: Metric) -> np.ndarray:
    """Score each ``(a, b)`` row of ``edges`` (local row indices of ``X``).

    ``X`` must come from ``prepare_matrix`` so presence metrics see 0/1 data.
    """
    metric = Metric.parse(metric)
    k = edges.shape[0]
    out = np.empty(k, dtype=float)
    if k == 0:
        return out

    if metric is Metric.BRAY:
        totals = np.asarray(X.sum(axis=1)).ravel()
    else:
        counts = np.diff(X.indptr).astype(float)

    for start in range(0, k, _EDGE_CHUNK):
        stop = min(k, start + _EDGE_CHUNK)
        ea = edges[start:stop, 0]
        eb = edges[start:stop, 1]
        A = X[ea]
        B = X[eb]
        if metric is Metric.BRAY:
            shared_min = np.asarray(A.minimum(B).sum(axis=1)).ravel()
            out[start:stop] = bray_curtis(totals[ea], totals[eb], shared_min)
        else:
            s = np.asarray(A.multiply(B).sum(axis=1)).ravel()
            out[start:stop] = _PRESENCE_FORMULAS[metric](s, counts[ea] - s, counts[eb] - s)
    return out


def find_conflicts(
    members: np.ndarray,
    pairs: np.ndarray,
    matrix: sparse.spmatrix,
    metric: Metric,
    threshold: float,
) -> ConflictSet:
    """Conflict edges among one group's neighbor pairs.

    ``members`` are the group's compact ids (ascending) and ``matrix`` holds
    their composition rows in the same order. ``pairs`` are neighbor pairs in
    compact ids with ``a < b``; the smaller id is the lower-priority endpoint.
    """
    metric = Metric.parse(metric)
    if pairs.shape[0] == 0:
        return ConflictSet.empty()
    X = prepare_matrix(matrix, metric)
    if X.shape[0] != members.shape[0]:
        raise ContractViolation("composition rows do not match group members")

    local = np.searchsorted(members, pairs)
    if np.any(members[np.minimum(local, members.size - 1)] != pairs):
        raise ContractViolation("neighbor pair references a record outside its group")

    scores = score_edges(X, local, metric)
    hit = scores > threshold
    logger.debug("similarity.edges: members=%d pairs=%d conflicts=%d (%s>%g)", members.size, pairs.shape[0], int(hit.sum()), metric.value, threshold)
    return ConflictSet(pairs[hit, 0], pairs[hit, 1], scores[hit])
