from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple

import numpy as np

from resampling.errors import ContractViolation
from resampling.utils import get_logger

logger = get_logger(__name__)


class ConflictEdge(NamedTuple):
    low: int
    high: int
    score: float


@dataclass
class ConflictSet:
    """Conflict edges of one group as parallel arrays.

    ``low`` holds the lower-priority endpoint (smaller compact id) of every
    edge, ``high`` the other one.
    """

    low: np.ndarray
    high: np.ndarray
    score: np.ndarray

    def __post_init__(self):
        self.low = np.asarray(self.low, dtype=np.int64)
        self.high = np.asarray(self.high, dtype=np.int64)
        self.score = np.asarray(self.score, dtype=float)
        if not (self.low.shape == self.high.shape == self.score.shape):
            raise ContractViolation("conflict arrays must have equal length")
        if np.any(self.low >= self.high):
            raise ContractViolation("conflict edges must be oriented (low-priority id, high-priority id)")

    def __len__(self) -> int:
        return int(self.low.shape[0])

    def __iter__(self):
        for lo, hi, s in zip(self.low.tolist(), self.high.tolist(), self.score.tolist()):
            yield ConflictEdge(lo, hi, s)

    @classmethod
    def empty(cls) -> "ConflictSet":
        return cls(np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64), np.zeros(0, dtype=float))

    @classmethod
    def from_edges(cls, edges: Iterable[ConflictEdge]) -> "ConflictSet":
        edges = list(edges)
        if not edges:
            return cls.empty()
        lo, hi, s = zip(*edges)
        return cls(np.array(lo), np.array(hi), np.array(s))


def removal_sequence(conflicts: ConflictSet) -> np.ndarray:
    """Order in which edges are considered: score descending, then (low, high)."""
    return np.lexsort((conflicts.high, conflicts.low, -conflicts.score))


def resolve_conflicts(conflicts: ConflictSet) -> List[int]:
    """Greedy elimination of conflict edges.

    Repeatedly takes the highest-scoring remaining edge, blacklists its
    lower-priority endpoint and drops every edge touching that endpoint.
    Scores never change while resolving, so a single sorted sweep that skips
    edges with an already blacklisted endpoint visits the same maxima a
    lazily-pruned max-heap would.

    Returns blacklisted ids in removal order.
    """
    if len(conflicts) == 0:
        return []

    order = removal_sequence(conflicts)
    low = conflicts.low[order].tolist()
    high = conflicts.high[order].tolist()

    removed = set()
    blacklist: List[int] = []
    for lo, hi in zip(low, high):
        if lo in removed or hi in removed:
            continue
        removed.add(lo)
        blacklist.append(lo)

    logger.debug("conflicts.resolve: edges=%d removed=%d", len(conflicts), len(blacklist))
    return blacklist
