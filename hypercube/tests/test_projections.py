import itertools

import pytest
import numpy as np
from hypercube.core import projections as pj
from hypercube.exceptions import InvalidSpecError

LEVEL_CASES = [[3], [4, 4], [2, 3], [2, 3, 2]]

# ---------------------------------------------------------------------
# Unit Tests: Atomic projectors
# ---------------------------------------------------------------------

def test_factor_projection_pair():
    mean, dev = pj.factor_projection_pair(4)
    assert np.allclose(mean, 0.25)
    assert np.allclose(mean + dev, np.eye(4))
    assert np.allclose(mean @ dev, 0.0)
    assert np.allclose(dev @ dev, dev)
    assert np.linalg.matrix_rank(mean) == 1
    assert np.linalg.matrix_rank(dev) == 3

def test_factor_projection_pair_rejects_bad_levels():
    with pytest.raises(InvalidSpecError):
        pj.factor_projection_pair(0)
    with pytest.raises(InvalidSpecError):
        pj.factor_projection_pair(2.5)

# ---------------------------------------------------------------------
# Property Tests: Orthogonal ANOVA decomposition
# ---------------------------------------------------------------------

@pytest.mark.parametrize("levels", LEVEL_CASES)
def test_collection_sums_to_identity(levels):
    coll = pj.build_projection_collection(levels)
    p = int(np.prod(levels))
    assert coll.dim == p
    assert len(coll) == 2 ** len(levels)
    total = sum(coll.components.values())
    assert np.allclose(total, np.eye(p))

@pytest.mark.parametrize("levels", LEVEL_CASES)
def test_collection_orthogonal_idempotent(levels):
    coll = pj.build_projection_collection(levels)
    mats = list(coll.components.values())
    for P in mats:
        assert np.allclose(P, P.T)
        assert np.allclose(P @ P, P)
    for P, Q in itertools.combinations(mats, 2):
        assert np.allclose(P @ Q, 0.0)

def test_component_ranks_two_factors():
    coll = pj.build_projection_collection([4, 3])
    ranks = {coll.label(t): int(round(np.trace(P))) for t, P in coll.components.items()}
    assert ranks == {"(mean)": 1, "A": 3, "B": 2, "A:B": 6}

def test_component_order_and_labels():
    coll = pj.build_projection_collection([4, 4])
    assert coll.tags == ((0, 0), (1, 0), (0, 1), (1, 1))
    assert coll.labels == ("(mean)", "A", "B", "A:B")
    named = pj.build_projection_collection([2, 3, 2], factor_names=["dose", "site", "sex"])
    assert named.labels[:4] == ("(mean)", "dose", "site", "sex")
    assert named.labels[-1] == "dose:site:sex"

def test_first_factor_varies_slowest():
    coll = pj.build_projection_collection([2, 3])
    # main effect of A averages over B within each A level
    PA = coll["A"]
    cell_means = np.array([1.0, 1.0, 1.0, 5.0, 5.0, 5.0])
    assert np.allclose(PA @ cell_means, [-2.0, -2.0, -2.0, 2.0, 2.0, 2.0])

def test_collection_is_read_only():
    coll = pj.build_projection_collection([2, 2])
    with pytest.raises(TypeError):
        coll.components[(0, 0)] = np.eye(4)
    with pytest.raises(ValueError):
        coll[(0, 0)][0, 0] = 5.0

@pytest.mark.parametrize(
    "levels",
    [[], [0, 2], [2, -1], [2.5], "ab", [2] * (pj.MAX_FACTORS + 1)],
)
def test_build_rejects_invalid_levels(levels):
    with pytest.raises(InvalidSpecError):
        pj.build_projection_collection(levels)

def test_build_rejects_bad_factor_names():
    with pytest.raises(InvalidSpecError, match="unique"):
        pj.build_projection_collection([2, 2], factor_names=["A", "A"])
    with pytest.raises(InvalidSpecError):
        pj.build_projection_collection([2, 2], factor_names=["A"])

# ---------------------------------------------------------------------
# Unit Tests: Component selection
# ---------------------------------------------------------------------

def test_select_components_by_tags_and_labels():
    coll = pj.build_projection_collection([3, 2])
    sub = pj.select_components(coll, [(1, 1), (0, 0)])
    assert sub.tags == ((1, 1), (0, 0))
    assert sub.levels == coll.levels
    assert sub.factor_names == coll.factor_names
    assert sub.dim == coll.dim
    by_label = pj.select_components(coll, ["A:B", "(mean)"])
    assert by_label.tags == sub.tags
    assert np.allclose(sub[(1, 1)], coll[(1, 1)])

@pytest.mark.parametrize(
    "spec, match",
    [
        ([], "empty"),
        ([(1, 0, 1)], "length"),
        ([(2, 0)], "only 0"),
        ([(1, 0), (1, 0)], "Duplicate"),
        ([(1, 0), "A"], "Duplicate"),
        (["C"], "Unknown"),
    ],
)
def test_select_components_rejects_bad_specs(spec, match):
    coll = pj.build_projection_collection([3, 2])
    with pytest.raises(InvalidSpecError, match=match):
        pj.select_components(coll, spec)

def test_select_missing_component_from_subset():
    coll = pj.build_projection_collection([3, 2])
    sub = pj.select_components(coll, [(0, 0), (1, 0)])
    with pytest.raises(InvalidSpecError, match="not in the collection"):
        pj.select_components(sub, [(1, 1)])

# ---------------------------------------------------------------------
# Unit Tests: Weighted sums
# ---------------------------------------------------------------------

@pytest.mark.parametrize("levels", LEVEL_CASES)
def test_weighted_sum_defaults_to_identity(levels):
    coll = pj.build_projection_collection(levels)
    ws = pj.weighted_sum(coll)
    assert np.allclose(ws.matrix, np.eye(coll.dim))
    assert np.allclose(ws.weights, 1.0)
    assert ws.components == coll.tags

def test_weighted_sum_subset_and_weights():
    coll = pj.build_projection_collection([3, 3])
    ws = pj.weighted_sum(coll, ["A", "B"], [0.25, 0.5])
    expected = 0.25 * coll["A"] + 0.5 * coll["B"]
    assert np.allclose(ws.matrix, expected)
    assert ws.labels == ("A", "B")
    assert np.allclose(ws.weights, [0.25, 0.5])

def test_weighted_sum_rejects_wrong_weight_count():
    coll = pj.build_projection_collection([3, 3])
    with pytest.raises(InvalidSpecError, match="Expected 4 weights"):
        pj.weighted_sum(coll, weights=[1.0, 1.0])
    with pytest.raises(InvalidSpecError, match="finite"):
        pj.weighted_sum(coll, weights=[1.0, np.nan, 1.0, 1.0])

@pytest.mark.parametrize("levels", LEVEL_CASES)
def test_weighted_sum_function_all_ones_is_identity(levels):
    coll = pj.build_projection_collection(levels)
    f = pj.weighted_sum_function(coll)
    assert len(f) == len(coll)
    assert np.allclose(f(np.ones(len(coll))), np.eye(coll.dim))

def test_weighted_sum_function_matches_weighted_sum():
    coll = pj.build_projection_collection([2, 3, 2])
    rng = np.random.default_rng(0)
    f = pj.weighted_sum_function(coll)
    for _ in range(3):
        w = rng.uniform(size=len(coll))
        assert np.allclose(f(w), pj.weighted_sum(coll, weights=w).matrix)
    with pytest.raises(InvalidSpecError):
        f(np.ones(3))

def test_weighted_sum_function_output_is_admissible():
    from hypercube.core import linalg as la
    coll = pj.build_projection_collection([4, 4])
    f = pj.weighted_sum_function(coll)
    V = f([0.9, 0.1, 0.6, 0.0])
    assert la.is_admissible(V)

def test_weighted_sum_function_carries_metadata():
    coll = pj.build_projection_collection([3, 2], factor_names=["row", "col"])
    f = pj.weighted_sum_function(coll, ["row", "row:col"])
    assert f.components == ((1, 0), (1, 1))
    assert f.labels == ("row", "row:col")
    assert f.factor_names == ("row", "col")
    assert f.levels == (3, 2)
    assert f.dim == 6

def test_additive_projection():
    coll = pj.build_projection_collection([3, 4])
    P_add = pj.additive_projection(coll)
    expected = coll["(mean)"] + coll["A"] + coll["B"]
    assert np.allclose(P_add, expected)
    assert np.allclose(pj.additive_projection([3, 4]), expected)
    # rank: 1 + (3 - 1) + (4 - 1)
    assert int(round(np.trace(P_add))) == 6

def test_select_components_flat_tuple_is_one_component():
    coll = pj.build_projection_collection([3, 2])
    by_tuple = pj.select_components(coll, (1, 0))
    by_array = pj.select_components(coll, np.array([1, 0]))
    assert by_tuple.tags == ((1, 0),)
    assert by_array.tags == by_tuple.tags
    ws = pj.weighted_sum(coll, (1, 1), [0.5])
    assert np.allclose(ws.matrix, 0.5 * coll["A:B"])
    # tuples of labels or of tag vectors still list several components
    assert pj.select_components(coll, ("A", "B")).tags == ((1, 0), (0, 1))
    assert pj.select_components(coll, ((0, 0), (1, 1))).tags == ((0, 0), (1, 1))

def test_coerce_levels():
    assert pj.coerce_levels([3, 2.0]) == (3, 2)
    with pytest.raises(InvalidSpecError, match="integer"):
        pj.coerce_levels([2.5, 2])
    with pytest.raises(InvalidSpecError, match="sequence"):
        pj.coerce_levels(3)
