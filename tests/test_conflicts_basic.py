import numpy as np
import pytest

from resampling.errors import ContractViolation
from resampling.stages.conflicts import ConflictEdge, ConflictSet, resolve_conflicts


def _resolve(*edges):
    return resolve_conflicts(ConflictSet.from_edges(ConflictEdge(*e) for e in edges))


def test_resolve_empty():
    assert resolve_conflicts(ConflictSet.empty()) == []


def test_resolve_removes_lower_priority_endpoint():
    assert _resolve((0, 1, 0.9)) == [0]


def test_resolve_highest_score_first():
    # removing 1 first discards (0, 1), so 0 survives
    assert _resolve((0, 1, 0.8), (1, 2, 0.9)) == [1]
    assert _resolve((0, 1, 0.9), (1, 2, 0.8)) == [0, 1]


def test_surviving_endpoint_stays_a_candidate():
    # 2 wins against 0 but is still in conflict with 1
    assert _resolve((0, 2, 0.9), (1, 2, 0.8)) == [0, 1]


def test_ties_break_on_id_pair():
    assert _resolve((2, 3, 0.9), (0, 1, 0.9)) == [0, 2]
    assert _resolve((1, 2, 0.9), (0, 2, 0.9)) == [0, 1]


def test_conflict_set_requires_orientation():
    with pytest.raises(ContractViolation):
        ConflictSet(np.array([2]), np.array([1]), np.array([0.5]))


def test_resolution_is_sound_on_random_graphs():
    rng = np.random.default_rng(11)
    for _ in range(20):
        n = 30
        raw = rng.integers(0, n, size=(60, 2))
        raw = raw[raw[:, 0] != raw[:, 1]]
        pairs = np.unique(np.sort(raw, axis=1), axis=0)
        scores = rng.choice([0.6, 0.7, 0.8, 0.9], size=pairs.shape[0])
        conflicts = ConflictSet(pairs[:, 0], pairs[:, 1], scores)

        blacklist = resolve_conflicts(conflicts)
        removed = set(blacklist)
        assert len(removed) == len(blacklist)
        assert removed <= set(pairs[:, 0].tolist())
        for lo, hi, _ in conflicts:
            assert lo in removed or hi in removed
