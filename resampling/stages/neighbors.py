from __future__ import annotations

from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.neighbors import BallTree, KDTree

from resampling.utils import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0088
_QUERY_CHUNK = 20_000


def _empty_pairs() -> np.ndarray:
    return np.zeros((0, 2), dtype=np.int64)


def _build_tree(coords: np.ndarray, longlat: bool):
    if longlat:
        # haversine expects (lat, lon) in radians; coords are (lon, lat) degrees
        points = np.radians(coords[:, ::-1])
        return BallTree(points, metric="haversine"), points
    return KDTree(coords, metric="euclidean"), coords


def _radius_pairs(coords: np.ndarray, radius: float, longlat: bool) -> np.ndarray:
    n = coords.shape[0]
    if n < 2 or radius <= 0:
        return _empty_pairs()

    tree, points = _build_tree(coords, longlat)
    r = radius / EARTH_RADIUS_KM if longlat else radius

    chunks: List[np.ndarray] = []
    for start in range(0, n, _QUERY_CHUNK):
        stop = min(n, start + _QUERY_CHUNK)
        ind, dist = tree.query_radius(points[start:stop], r=r, return_distance=True)
        counts = np.fromiter((len(x) for x in ind), dtype=np.int64, count=len(ind))
        if counts.sum() == 0:
            continue
        src = np.repeat(np.arange(start, stop, dtype=np.int64), counts)
        dst = np.concatenate(ind).astype(np.int64, copy=False)
        d = np.concatenate(dist)
        # query_radius is inclusive; the neighbor relation is [0, radius)
        mask = (dst > src) & (d < r)
        if mask.any():
            chunks.append(np.stack([src[mask], dst[mask]], axis=1))

    if not chunks:
        return _empty_pairs()
    return np.concatenate(chunks, axis=0)


def _sort_pairs(pairs: np.ndarray) -> np.ndarray:
    if pairs.shape[0] == 0:
        return pairs
    order = np.lexsort((pairs[:, 1], pairs[:, 0]))
    return pairs[order]


def find_neighbors(
    coords: np.ndarray,
    radius: float,
    *,
    longlat: bool = False,
    strata: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Return every unordered pair of points closer than ``radius``.

    ``coords`` is an ``(n, 2)`` array of x/y values. With ``longlat`` the
    columns are longitude/latitude in degrees and ``radius`` is a great-circle
    distance in kilometres. When ``strata`` is given, pairs are only formed
    between points sharing a stratum value (missing values form one stratum).

    The result is an ``(k, 2)`` int64 array with ``a < b`` in every row,
    sorted lexicographically and free of duplicates.
    """
    coords = np.asarray(coords, dtype=float)
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise ValueError("coords must be an (n, 2) array")

    if strata is None:
        pairs = _radius_pairs(coords, radius, longlat)
        logger.info("neighbors.search: points=%d pairs=%d (radius=%g longlat=%s)", coords.shape[0], pairs.shape[0], radius, longlat)
        return _sort_pairs(pairs)

    strata = np.asarray(strata, dtype=object)
    if strata.shape[0] != coords.shape[0]:
        raise ValueError("strata/coords length mismatch")
    codes, uniques = pd.factorize(strata, use_na_sentinel=False)

    chunks: List[np.ndarray] = []
    for code in range(len(uniques)):
        idx = np.flatnonzero(codes == code)
        if idx.size < 2:
            continue
        local = _radius_pairs(coords[idx], radius, longlat)
        if local.shape[0]:
            # idx is ascending, so local a < b stays a < b globally
            chunks.append(idx[local])

    pairs = np.concatenate(chunks, axis=0) if chunks else _empty_pairs()
    logger.info(
        "neighbors.search: points=%d strata=%d pairs=%d (radius=%g longlat=%s)",
        coords.shape[0],
        len(uniques),
        pairs.shape[0],
        radius,
        longlat,
    )
    return _sort_pairs(pairs)


def pair_distance(p: np.ndarray, q: np.ndarray, *, longlat: bool = False) -> float:
    """Distance between two points under the same convention as ``find_neighbors``."""
    p = np.asarray(p, dtype=float)
    q = np.asarray(q, dtype=float)
    if not longlat:
        return float(np.hypot(*(p - q)))
    lon1, lat1, lon2, lat2 = np.radians([p[0], p[1], q[0], q[1]])
    a = np.sin((lat2 - lat1) / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2.0) ** 2
    return float(2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(a)))
