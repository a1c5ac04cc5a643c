from __future__ import annotations

from enum import Enum
from typing import Optional

import numpy as np

from resampling.errors import ConfigError, ContractViolation
from resampling.utils import get_logger

logger = get_logger(__name__)


class RemovalPolicy(str, Enum):
    RANDOM = "random"
    LESS_DIVERSE = "less_diverse"
    MORE_DIVERSE = "more_diverse"
    LOWER_VALUE = "lower_value"
    HIGHER_VALUE = "higher_value"

    @property
    def needs_ranking_attribute(self) -> bool:
        return self in (RemovalPolicy.LOWER_VALUE, RemovalPolicy.HIGHER_VALUE)

    @property
    def needs_diversity(self) -> bool:
        return self in (RemovalPolicy.LESS_DIVERSE, RemovalPolicy.MORE_DIVERSE)

    @classmethod
    def parse(cls, value) -> "RemovalPolicy":
        if isinstance(value, cls):
            return value
        # accept spaced/dashed spellings ("less diverse", "lower var.value", "higher-value-first")
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        key = key.removesuffix("_first")
        key = key.replace("var.value", "value").replace("ranking_attribute", "value")
        try:
            return cls(key)
        except ValueError:
            raise ConfigError(
                f"Unknown removal policy: {value!r} (expected one of {', '.join(p.value for p in cls)})"
            ) from None


def priority_order(
    n: int,
    policy: RemovalPolicy,
    rng: np.random.Generator,
    *,
    diversity: Optional[np.ndarray] = None,
    ranking: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Permutation of record rows, lowest priority first.

    Position ``i`` of the result is the input row that receives compact id
    ``i``. When two records conflict, the one with the smaller compact id is
    removed. Every policy starts from a seeded random permutation, so ties in
    diversity or ranking value are broken reproducibly by ``rng``.
    """
    policy = RemovalPolicy.parse(policy)
    perm = rng.permutation(n)

    if policy is RemovalPolicy.RANDOM:
        return perm

    if policy.needs_diversity:
        if diversity is None or len(diversity) != n:
            raise ContractViolation("diversity counts required for diversity-based removal")
        counts = np.asarray(diversity)[perm]
        key = counts if policy is RemovalPolicy.LESS_DIVERSE else -counts
        return perm[np.argsort(key, kind="stable")]

    if ranking is None or len(ranking) != n:
        raise ContractViolation("ranking values required for value-based removal")
    values = np.asarray(ranking, dtype=float)[perm]
    present = ~np.isnan(values)
    key = np.where(present, values, 0.0)
    if policy is RemovalPolicy.HIGHER_VALUE:
        key = -key
    # lexsort is stable; last key is primary so missing values come first
    return perm[np.lexsort((key, present))]


def compact_ids(order: np.ndarray) -> np.ndarray:
    """Inverse of ``order``: compact id for every input row."""
    ids = np.empty_like(order)
    ids[order] = np.arange(order.shape[0], dtype=order.dtype)
    return ids
