import itertools

import numpy as np
import pandas as pd
import pytest

from resampling.config import ResampleSettings
from resampling.pipeline import resample
from resampling.stages.neighbors import pair_distance
from resampling.stages.similarity import pair_similarity


def make_tables(points, **extra):
    """points: list of (key, x, y, {category: weight})."""
    records = pd.DataFrame(
        {
            "PlotObservationID": [p[0] for p in points],
            "X": [float(p[1]) for p in points],
            "Y": [float(p[2]) for p in points],
            **extra,
        }
    )
    composition = pd.DataFrame(
        [(p[0], cat, float(w)) for p in points for cat, w in p[3].items()],
        columns=["PlotObservationID", "Taxon_name", "cover"],
    )
    return records, composition


def assert_sound(result, composition, settings):
    kept = result.records
    comps = {
        k: dict(zip(g["Taxon_name"], g["cover"]))
        for k, g in composition.groupby("PlotObservationID")
    }
    strata = kept[settings.strata].tolist() if settings.strata else [None] * len(kept)
    rows = list(zip(kept["PlotObservationID"], kept["X"], kept["Y"], strata))
    for (ka, xa, ya, sa), (kb, xb, yb, sb) in itertools.combinations(rows, 2):
        if settings.strata and sa != sb:
            continue
        close = pair_distance((xa, ya), (xb, yb), longlat=settings.longlat) < settings.dist_threshold
        similar = pair_similarity(settings.metric, comps[ka], comps[kb]) > settings.sim_threshold
        assert not (close and similar), (ka, kb)


def random_tables(seed, n=80, extent=100.0, species=6):
    rng = np.random.default_rng(seed)
    points = []
    for i in range(n):
        k = int(rng.integers(1, species + 1))
        cats = rng.choice(species, size=k, replace=False)
        comp = {f"sp{c}": float(rng.integers(1, 50)) for c in cats}
        points.append((f"p{i}", *rng.uniform(0, extent, size=2), comp))
    return make_tables(points)


def test_scenario_pair_and_isolated_record():
    records, composition = make_tables(
        [
            ("A", 0, 0, {"x": 1, "y": 1}),
            ("B", 10, 0, {"x": 1, "y": 1}),
            ("C", 1000, 0, {"x": 1}),
        ]
    )
    settings = ResampleSettings(dist_threshold=50, sim_threshold=0.5, metric="jaccard", policy="random", seed=1)
    result = resample(records, composition, settings)

    kept = set(result.records["PlotObservationID"])
    assert len(result.records) == 2
    assert "C" in kept
    assert len(kept & {"A", "B"}) == 1
    assert result.summary.removed == 1
    assert result.summary.conflict_edges == 1


@pytest.mark.parametrize("seed", [1, 2, 3, 42, 1234])
def test_scenario_collinear_identical_points(seed):
    records, composition = make_tables([(f"p{i}", 10 * i, 0, {"a": 1, "b": 2}) for i in range(5)])
    settings = ResampleSettings(dist_threshold=25, sim_threshold=0.5, metric="jaccard", seed=seed)
    result = resample(records, composition, settings)

    assert 1 <= len(result.records) <= 2
    assert_sound(result, composition, settings)


def test_scenario_strata_keep_clusters_apart():
    records, composition = make_tables(
        [
            ("P1", 0, 0, {"a": 1}),
            ("P2", 1, 0, {"b": 1}),
            ("Q1", 0, 0, {"a": 1}),
            ("Q2", 1, 0, {"b": 1}),
        ],
        stratum=["s1", "s1", "s2", "s2"],
    )
    stratified = ResampleSettings(dist_threshold=50, sim_threshold=0.5, metric="jaccard", strata="stratum")
    result = resample(records, composition, stratified)
    assert len(result.records) == 4
    assert result.summary.conflict_edges == 0

    pooled = ResampleSettings(dist_threshold=50, sim_threshold=0.5, metric="jaccard")
    result = resample(records, composition, pooled)
    kept = set(result.records["PlotObservationID"])
    assert len(kept) == 2
    assert len(kept & {"P1", "Q1"}) == 1
    assert len(kept & {"P2", "Q2"}) == 1


@pytest.mark.parametrize("metric", ["simpson", "sorensen", "jaccard", "bray"])
def test_survivors_are_sound(metric):
    records, composition = random_tables(seed=5)
    settings = ResampleSettings(dist_threshold=15, sim_threshold=0.5, metric=metric, seed=9)
    result = resample(records, composition, settings)
    assert result.summary.removed > 0
    assert_sound(result, composition, settings)


def test_rerun_on_survivors_removes_nothing():
    records, composition = random_tables(seed=8)
    settings = ResampleSettings(dist_threshold=20, sim_threshold=0.4, metric="sorensen", seed=3)
    first = resample(records, composition, settings)

    kept_keys = set(first.records["PlotObservationID"])
    second = resample(
        first.records,
        composition[composition["PlotObservationID"].isin(kept_keys)],
        settings,
    )
    assert second.summary.removed == 0
    assert len(second.records) == len(first.records)


def test_result_independent_of_worker_count():
    records, composition = random_tables(seed=13, n=120)
    serial = resample(records, composition, ResampleSettings(dist_threshold=15, sim_threshold=0.3, seed=21))
    pooled = resample(records, composition, ResampleSettings(dist_threshold=15, sim_threshold=0.3, seed=21, n_jobs=2))
    again = resample(records, composition, ResampleSettings(dist_threshold=15, sim_threshold=0.3, seed=21))
    assert serial.removed_keys == pooled.removed_keys == again.removed_keys


def test_thresholds_grow_the_blacklist():
    records, composition = make_tables([(f"p{i}", 10 * i, 0, {"a": 1}) for i in range(5)])

    def removed(dist, sim):
        settings = ResampleSettings(dist_threshold=dist, sim_threshold=sim, metric="jaccard", seed=4)
        return resample(records, composition, settings).summary.removed

    assert removed(5, 0.5) == 0
    assert removed(5, 0.5) <= removed(25, 0.5) <= removed(100, 0.5) == 4
    assert removed(100, 1.0) == 0
    assert removed(100, 1.0) <= removed(100, 0.5)


@pytest.mark.parametrize("seed", range(5))
def test_less_diverse_record_is_removed(seed):
    records, composition = make_tables(
        [
            ("rich", 0, 0, {"a": 1, "b": 1, "c": 1}),
            ("poor", 1, 0, {"a": 1, "b": 1}),
        ]
    )
    less = ResampleSettings(dist_threshold=10, sim_threshold=0.5, policy="less_diverse", seed=seed)
    more = ResampleSettings(dist_threshold=10, sim_threshold=0.5, policy="more_diverse", seed=seed)
    assert resample(records, composition, less).removed_keys == ["poor"]
    assert resample(records, composition, more).removed_keys == ["rich"]


def test_ranking_attribute_policies():
    records, composition = make_tables(
        [("A", 0, 0, {"a": 1}), ("B", 1, 0, {"a": 1})],
        year=[2001.0, 2015.0],
    )
    lower = ResampleSettings(dist_threshold=10, sim_threshold=0.5, policy="lower_value", ranking_attribute="year")
    higher = ResampleSettings(dist_threshold=10, sim_threshold=0.5, policy="higher_value", ranking_attribute="year")
    assert resample(records, composition, lower).removed_keys == ["A"]
    assert resample(records, composition, higher).removed_keys == ["B"]

    records["year"] = [2001.0, np.nan]
    assert resample(records, composition, lower).removed_keys == ["B"]
    assert resample(records, composition, higher).removed_keys == ["B"]


def test_output_keeps_columns_and_row_order():
    records, composition = random_tables(seed=2)
    records["elevation"] = np.arange(len(records))
    result = resample(records, composition, ResampleSettings(dist_threshold=15, sim_threshold=0.3))
    assert list(result.records.columns) == list(records.columns)
    assert result.records["elevation"].is_monotonic_increasing
    assert set(result.removed_keys).isdisjoint(result.records["PlotObservationID"])
    assert len(result.removed_keys) + len(result.records) == len(records)


def test_geographic_mode():
    records, composition = make_tables(
        [
            ("A", 14.40, 50.08, {"a": 1}),
            ("B", 14.41, 50.08, {"a": 1}),
            ("C", 16.60, 49.19, {"a": 1}),
        ]
    )
    settings = ResampleSettings(dist_threshold=5, sim_threshold=0.5, longlat=True)
    result = resample(records, composition, settings)
    kept = set(result.records["PlotObservationID"])
    assert "C" in kept and len(kept) == 2
