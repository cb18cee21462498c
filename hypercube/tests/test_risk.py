import pytest
import numpy as np
from hypercube.core import linalg as la
from hypercube.core.projections import build_projection_collection
from hypercube.core.risk import estimated_risk, estimated_variance
from hypercube.estimators.hypercube import hypercube_operator
from hypercube.exceptions import InvalidSpecError, VarianceUnavailableError
from hypercube.sim.montecarlo import simulate_two_factor_data
from hypercube.utils.design import cell_means_design

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def rng():
    return np.random.default_rng(2024)

@pytest.fixture
def data_regression(rng):
    X = rng.standard_normal((40, 4))
    y = X @ np.array([1.0, -2.0, 0.5, 0.0]) + rng.standard_normal(40)
    return X, y

@pytest.fixture
def saturated_two_factor():
    df = simulate_two_factor_data(levels=(4, 4), n_obs=16, seed=5)
    return cell_means_design(df, "y", ["A", "B"])

# ---------------------------------------------------------------------
# Unit Tests: Variance estimation
# ---------------------------------------------------------------------

def test_variance_from_ols_residuals(data_regression):
    X, y = data_regression
    est = estimated_variance(X, y)
    beta = np.linalg.lstsq(X, y, rcond=None)[0]
    resid = y - X @ beta
    assert est.source == "ols"
    assert est.df == 36
    assert est.variance == pytest.approx(resid @ resid / 36)
    assert np.allclose(est.fitted, X @ beta)

def test_variance_rank_deficient_design(data_regression):
    X, y = data_regression
    X_bad = np.column_stack([X, X[:, 0] - X[:, 1]])
    est = estimated_variance(X_bad, y)
    # rank is still 4
    assert est.df == 36
    assert est.variance == pytest.approx(estimated_variance(X, y).variance)

def test_variance_single_factor_saturated_raises():
    X = np.eye(5)[[3, 0, 4, 1, 2]]
    y = np.arange(5.0)
    with pytest.raises(VarianceUnavailableError, match="only one factor"):
        estimated_variance(X, y, [5])
    with pytest.raises(VarianceUnavailableError, match="no factor structure"):
        estimated_variance(X, y)

def test_variance_additive_fallback(saturated_two_factor):
    design = saturated_two_factor
    est = estimated_variance(design.X, design.y, design.levels)
    assert est.source == "additive"
    # n - (1 + 3 + 3)
    assert est.df == 9
    # one observation per cell: additive fit = row mean + column mean - grand mean
    cells = design.X.argmax(axis=1)
    table = np.empty(16)
    table[cells] = design.y
    table = table.reshape(4, 4)
    fit_table = table.mean(axis=1, keepdims=True) + table.mean(axis=0, keepdims=True) - table.mean()
    expected_fit = fit_table.reshape(-1)[cells]
    assert np.allclose(est.fitted, expected_fit)
    resid = design.y - expected_fit
    assert est.variance == pytest.approx(resid @ resid / 9)

def test_variance_additive_fallback_accepts_collection(saturated_two_factor):
    design = saturated_two_factor
    coll = build_projection_collection(design.levels)
    a = estimated_variance(design.X, design.y, coll)
    b = estimated_variance(design.X, design.y, design.levels)
    assert a.variance == pytest.approx(b.variance)

def test_variance_level_mismatch(saturated_two_factor):
    design = saturated_two_factor
    with pytest.raises(ValueError, match="cells"):
        estimated_variance(design.X, design.y, [3, 4])

# ---------------------------------------------------------------------
# Unit Tests: Risk estimation
# ---------------------------------------------------------------------

def test_risk_formula(data_regression, rng):
    X, y = data_regression
    V = np.diag(rng.uniform(size=4))
    A = hypercube_operator(X, V)
    s2 = 0.8
    r = estimated_risk(X, y, A, s2)
    resid = y - A @ y
    assert r == pytest.approx((resid @ resid + (2 * np.trace(A) - 40) * s2) / 4)

def test_risk_null_fit(data_regression):
    X, y = data_regression
    A = np.zeros((40, 40))
    assert estimated_risk(X, y, A, 1.0) == pytest.approx((y @ y - 40.0) / 4)

def test_risk_passes_through_negative_and_nan(data_regression):
    X, y = data_regression
    A = hypercube_operator(X, np.eye(4))
    # tiny residual sum of squares, huge negative penalty
    assert estimated_risk(X, y, A, 1e6) < 0.0
    assert np.isnan(estimated_risk(X, y, A, np.nan))

def test_risk_row_permutation_invariance(data_regression, rng):
    X, y = data_regression
    V = np.diag([0.9, 0.2, 0.5, 1.0])
    perm = rng.permutation(X.shape[0])
    r0 = estimated_risk(X, y, hypercube_operator(X, V), 1.3)
    r1 = estimated_risk(X[perm], y[perm], hypercube_operator(X[perm], V), 1.3)
    assert r0 == pytest.approx(r1)

def test_risk_rejects_wrong_operator_shape(data_regression):
    X, y = data_regression
    with pytest.raises(ValueError, match="40 x 40"):
        estimated_risk(X, y, np.eye(4), 1.0)

def test_ols_risk_equals_variance_for_full_rank(data_regression):
    X, y = data_regression
    est = estimated_variance(X, y)
    A = hypercube_operator(X, np.eye(4))
    # RSS = df * s2, tr(A) = p  =>  risk = (df*s2 + (2p - n)*s2)/p = s2
    assert estimated_risk(X, y, A, est.variance) == pytest.approx(est.variance)
    assert la.trace(A) == pytest.approx(4.0)

# ---------------------------------------------------------------------
# Unit Tests: Factor-structure validation and saturated fallback
# ---------------------------------------------------------------------

@pytest.mark.parametrize("levels", [[2.5, 2], 3, "ab", [3, 0]])
def test_variance_rejects_malformed_levels(levels):
    X = np.eye(3)
    y = np.arange(3.0)
    with pytest.raises(InvalidSpecError):
        estimated_variance(X, y, levels)

def test_variance_rejects_malformed_levels_with_residual_df(data_regression):
    X, y = data_regression
    # validated even when the OLS residual variance would suffice
    with pytest.raises(InvalidSpecError, match="integer"):
        estimated_variance(X, y, [2.5, 2])

def test_variance_additive_submodel_also_saturated():
    X = np.eye(3)
    y = np.array([1.0, 4.0, 2.0])
    # the second factor has one level, so the additive fit is already saturated
    with pytest.raises(VarianceUnavailableError, match="both"):
        estimated_variance(X, y, [3, 1])
