from __future__ import annotations

from typing import List

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from resampling.utils import get_logger

logger = get_logger(__name__)


def component_labels(n: int, pairs: np.ndarray) -> np.ndarray:
    """Label every record with the connected component it belongs to."""
    if n == 0:
        return np.zeros((0,), dtype=np.int64)
    if pairs.size == 0:
        return np.arange(n, dtype=np.int64)
    data = np.ones(pairs.shape[0], dtype=np.int8)
    graph = coo_matrix((data, (pairs[:, 0], pairs[:, 1])), shape=(n, n))
    _, labels = connected_components(graph, directed=False, return_labels=True)
    return labels.astype(np.int64, copy=False)


def split_groups(labels: np.ndarray, *, min_size: int = 2) -> List[np.ndarray]:
    """Member ids of every component with at least ``min_size`` records.

    Members are sorted ascending; groups are returned in label order.
    """
    if labels.size == 0:
        return []
    order = np.argsort(labels, kind="stable")
    sorted_labels = labels[order]
    bounds = np.flatnonzero(np.diff(sorted_labels)) + 1
    groups = np.split(order, bounds)
    return [g for g in groups if g.size >= min_size]


def partition(n: int, pairs: np.ndarray):
    labels = component_labels(n, pairs)
    groups = split_groups(labels)
    n_components = int(labels.max()) + 1 if labels.size else 0
    logger.info(
        "grouping.components: records=%d components=%d nontrivial=%d largest=%d",
        n,
        n_components,
        len(groups),
        max((g.size for g in groups), default=1 if n else 0),
    )
    return labels, groups
