from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from pydantic import BaseModel
from scipy import sparse
from tqdm import tqdm

from resampling.config import ResampleSettings
from resampling.stages.conflicts import resolve_conflicts
from resampling.stages.grouping import partition
from resampling.stages.neighbors import find_neighbors
from resampling.stages.ordering import compact_ids, priority_order
from resampling.stages.similarity import Metric, find_conflicts
from resampling.utils import format_elapsed, get_logger
from resampling.validation import validate_inputs

logger = get_logger(__name__)


class ResampleSummary(BaseModel):
    total: int
    removed: int
    kept: int
    removed_pct: float
    groups: int
    nontrivial_groups: int
    largest_group: int
    neighbor_pairs: int
    conflict_edges: int
    elapsed_seconds: float
    settings: Dict[str, Any] = {}


@dataclass
class ResampleResult:
    records: pd.DataFrame
    removed_keys: List[str]
    summary: ResampleSummary


def _composition_matrix(
    composition: pd.DataFrame,
    row_ids: Dict[str, int],
    n: int,
    settings: ResampleSettings,
) -> sparse.csr_matrix:
    c = settings.columns
    ids = composition[c.key].astype(str).map(row_ids).to_numpy(dtype=np.int64)
    cat_codes, cats = pd.factorize(composition[c.category].astype(str))
    weights = composition[c.weight].to_numpy(dtype=float)
    # duplicate (record, category) rows are summed by the COO -> CSR conversion
    m = sparse.coo_matrix((weights, (ids, cat_codes)), shape=(n, len(cats))).tocsr()
    if settings.metric.binary:
        m.data[:] = 1.0
    return m


def _group_task(
    members: np.ndarray,
    pairs: np.ndarray,
    matrix: sparse.csr_matrix,
    metric: Metric,
    threshold: float,
) -> Tuple[List[int], int]:
    conflicts = find_conflicts(members, pairs, matrix, metric, threshold)
    return resolve_conflicts(conflicts), len(conflicts)


def _pairs_by_group(pairs: np.ndarray, labels: np.ndarray, groups: List[np.ndarray]) -> List[np.ndarray]:
    if pairs.shape[0] == 0:
        return [pairs for _ in groups]
    pair_labels = labels[pairs[:, 0]]
    order = np.argsort(pair_labels, kind="stable")
    sorted_labels = pair_labels[order]
    out = []
    for g in groups:
        lb = labels[g[0]]
        lo = np.searchsorted(sorted_labels, lb, side="left")
        hi = np.searchsorted(sorted_labels, lb, side="right")
        out.append(pairs[order[lo:hi]])
    return out


def eliminate(
    coords: np.ndarray,
    matrix: sparse.csr_matrix,
    settings: ResampleSettings,
    *,
    strata: Optional[np.ndarray] = None,
    stats: Optional[Dict[str, int]] = None,
) -> np.ndarray:
    """Blacklist of compact ids for records already laid out in priority order.

    Row ``i`` of ``coords``/``matrix``/``strata`` is the record with compact
    id ``i``; of two conflicting records the smaller id is removed.
    """
    n = coords.shape[0]
    pairs = find_neighbors(coords, settings.dist_threshold, longlat=settings.longlat, strata=strata)
    labels, groups = partition(n, pairs)
    group_pairs = _pairs_by_group(pairs, labels, groups)

    # largest groups first so a few huge components do not trail the pool
    schedule = sorted(range(len(groups)), key=lambda i: -groups[i].size)
    tasks = (
        delayed(_group_task)(groups[i], group_pairs[i], matrix[groups[i]], settings.metric, settings.sim_threshold)
        for i in schedule
    )
    results = Parallel(n_jobs=settings.n_jobs, return_as="generator")(tasks)

    blacklist: List[int] = []
    n_conflicts = 0
    for removed, k in tqdm(results, total=len(schedule), desc="resampling groups", disable=not settings.progress):
        blacklist.extend(removed)
        n_conflicts += k

    if stats is not None:
        stats.update(
            groups=int(labels.max()) + 1 if n else 0,
            nontrivial_groups=len(groups),
            largest_group=max((g.size for g in groups), default=1 if n else 0),
            neighbor_pairs=int(pairs.shape[0]),
            conflict_edges=n_conflicts,
        )
    return np.sort(np.asarray(blacklist, dtype=np.int64))


def resample(records: pd.DataFrame, composition: pd.DataFrame, settings: ResampleSettings) -> ResampleResult:
    """Thin ``records`` so no two survivors are both close and compositionally similar.

    Returns the surviving records (original columns and row order), the keys
    that were removed and a run summary.
    """
    t0 = time.monotonic()
    validate_inputs(records, composition, settings)
    c = settings.columns
    n = len(records)

    keys = records[c.key].astype(str).to_numpy()
    rng = np.random.default_rng(settings.seed)

    diversity = None
    if settings.policy.needs_diversity:
        per_key = composition.groupby(composition[c.key].astype(str))[c.category].nunique()
        diversity = per_key.reindex(keys).to_numpy(dtype=np.int64)
    ranking = None
    if settings.policy.needs_ranking_attribute:
        ranking = pd.to_numeric(records[settings.ranking_attribute]).to_numpy(dtype=float)

    order = priority_order(n, settings.policy, rng, diversity=diversity, ranking=ranking)
    ids = compact_ids(order)
    logger.info("ordering.priority: records=%d policy=%s seed=%d", n, settings.policy.value, settings.seed)

    coords = records[[c.x, c.y]].to_numpy(dtype=float)[order]
    strata = records[settings.strata].to_numpy(dtype=object)[order] if settings.strata else None
    matrix = _composition_matrix(composition, dict(zip(keys, ids.tolist())), n, settings)

    stats: Dict[str, int] = {}
    blacklist = eliminate(coords, matrix, settings, strata=strata, stats=stats)

    removed_rows = np.sort(order[blacklist])
    keep = np.ones(n, dtype=bool)
    keep[removed_rows] = False
    filtered = records.loc[keep]

    elapsed = time.monotonic() - t0
    removed = int(blacklist.size)
    pct = removed / n * 100 if n else 0.0
    logger.info("Removed %.1f%% of records (%d out of %d)", pct, removed, n)
    logger.info("Elapsed time %s", format_elapsed(elapsed))

    summary = ResampleSummary(
        total=n,
        removed=removed,
        kept=n - removed,
        removed_pct=round(pct, 3),
        elapsed_seconds=round(elapsed, 3),
        settings=settings.describe(),
        **stats,
    )
    return ResampleResult(records=filtered, removed_keys=keys[removed_rows].tolist(), summary=summary)
