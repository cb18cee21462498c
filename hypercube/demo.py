"""Demonstration of the hypercube estimator.

Runs the three canonical scenarios on simulated data: difference-penalty
shrinkage of a single 45-level factor, risk-optimal projection weights for an
unbalanced 4 x 4 layout, and the unit-weight fit that reproduces least
squares.
"""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np

from .core import linalg as la
from .core.projections import build_projection_collection, weighted_sum
from .estimators import HypercubeEstimator, fit, fit_with_risk
from .exceptions import HypercubeError
from .output import hypercube_summary
from .sim.montecarlo import simulate_one_factor_data, simulate_two_factor_data
from .utils.design import cell_means_design

_LOGGER = logging.getLogger(__name__)
SOFT_FAILURE_EXCEPTIONS: tuple[type[Exception], ...] = (
    HypercubeError,
    RuntimeError,
    ValueError,
    np.linalg.LinAlgError,
)


def _run_demo_block(label: str, func: Callable[[], None]) -> None:
    """Execute a demonstration function, logging any soft failures."""
    try:
        func()
    except SOFT_FAILURE_EXCEPTIONS as exc:
        _LOGGER.debug("%s demo failed: %s", label, exc)
        print(f"\n[{label} demo failed: {exc}]")


def demo_difference_penalty():
    """Shrink 45 level means toward a smooth curve with a 5th-order penalty."""
    print("\n" + "=" * 70)
    print(" 1. DIFFERENCE-PENALTY SHRINKAGE (one factor, 45 levels)")
    print("=" * 70)
    df = simulate_one_factor_data(levels=45, reps=3)
    design = cell_means_design(df, "y", ["x"])
    D = la.difference_matrix(design.X.shape[1], order=5)
    for nu in (0.0, 1e2, 1e5, 1e8, 1e11):
        V = la.symmetric_inverse_sqrt(la.difference_penalty(design.X.shape[1], 5, nu))
        res = fit_with_risk(design.X, design.y, V, design.levels)
        rough = np.linalg.norm(D @ res.coef)
        print(f"  nu={nu:8.0e}  risk={res.risk:8.4f}  edf={res.edf:7.3f}  |D b|={rough:9.5f}")


def demo_optimal_weights():
    """Optimize ANOVA projection weights for an unbalanced 4 x 4 layout."""
    print("\n" + "=" * 70)
    print(" 2. RISK-OPTIMAL PROJECTION WEIGHTS (4 x 4, 61 rows)")
    print("=" * 70)
    df = simulate_two_factor_data(levels=(4, 4), n_obs=61)
    model = HypercubeEstimator.from_formula("y ~ A * B", df)
    opt = model.optimize()
    print(hypercube_summary(opt))


def demo_least_squares():
    """Unit weights on every component reproduce least squares."""
    print("\n" + "=" * 70)
    print(" 3. UNIT WEIGHTS REPRODUCE LEAST SQUARES")
    print("=" * 70)
    df = simulate_two_factor_data(levels=(4, 4), n_obs=61)
    design = cell_means_design(df, "y", ["A", "B"])
    coll = build_projection_collection(design.levels, design.factor_names)
    V = weighted_sum(coll).matrix
    res = fit(design.X, design.y, V)
    beta_ls = np.linalg.lstsq(design.X, design.y, rcond=None)[0]
    print(f"  max |b_hypercube - b_ls| = {np.max(np.abs(res.coef - beta_ls)):.3e}")


def main():
    _run_demo_block("Difference penalty", demo_difference_penalty)
    _run_demo_block("Optimal weights", demo_optimal_weights)
    _run_demo_block("Least squares", demo_least_squares)


if __name__ == "__main__":
    main()
