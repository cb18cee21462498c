"""Simulated factorial data for the hypercube estimator.

Provides small-sample data generation for one- and two-factor layouts and a
Monte Carlo check of the estimated risk against the realized loss.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from hypercube.core import linalg as la
from hypercube.core.projections import build_projection_collection, weighted_sum
from hypercube.estimators.hypercube import fit_with_risk
from hypercube.utils.design import cell_means_design


def simulate_one_factor_data(levels=45, reps=3, sigma=0.5, seed: int | None = 42):
    """Simulates a balanced single-factor layout with a smooth mean curve.

    Level ``j`` (1-based) has mean ``sin(2 pi j / levels) + j / levels``;
    each level is observed ``reps`` times.
    """
    rng = np.random.default_rng(seed)
    x = np.repeat(np.arange(1, levels + 1), reps)
    mu = np.sin(2.0 * np.pi * x / levels) + x / levels
    y = mu + sigma * rng.standard_normal(x.size)
    return pd.DataFrame({"x": x, "y": y})


def simulate_two_factor_data(levels=(4, 4), n_obs=61, sigma=1.0, seed: int | None = 123):
    """Simulates an unbalanced two-factor layout.

    Every cell receives one observation; the remaining ``n_obs - prod(levels)``
    rows are assigned to cells uniformly at random. Cell means combine two
    strong main effects with a weak interaction. With ``n_obs ==
    prod(levels)`` the layout is saturated (one observation per cell).
    """
    ka, kb = (int(k) for k in levels)
    n_cells = ka * kb
    if n_obs < n_cells:
        raise ValueError(f"n_obs must be at least {n_cells} so every cell is observed.")
    rng = np.random.default_rng(seed)
    cells = np.concatenate(
        [np.arange(n_cells), rng.integers(0, n_cells, size=n_obs - n_cells)],
    )
    rng.shuffle(cells)
    a, b = np.unravel_index(cells, (ka, kb))
    alpha = np.linspace(-1.5, 1.5, ka)
    beta = np.linspace(1.0, -1.0, kb)
    gamma = 0.3 * rng.standard_normal((ka, kb))
    mu = 5.0 + alpha[a] + beta[b] + gamma[a, b]
    y = mu + sigma * rng.standard_normal(n_obs)
    return pd.DataFrame(
        {
            "A": pd.Categorical([f"a{i + 1}" for i in a]),
            "B": pd.Categorical([f"b{j + 1}" for j in b]),
            "y": y,
        },
    )


def monte_carlo_risk(weights=(1.0, 0.7, 0.7, 0.3), n_rep=200, seed: int | None = 7):
    """Average estimated risk and realized loss of a fixed-weight fit.

    Replicates :func:`simulate_two_factor_data` with a fixed mean and returns
    ``(mean_estimated_risk, mean_loss)``, both normalized by the number of
    cells. The two agree in expectation.
    """
    base = simulate_two_factor_data(seed=seed)
    design = cell_means_design(base, "y", ["A", "B"])
    X = design.X
    coll = build_projection_collection(design.levels, design.factor_names)
    V = weighted_sum(coll, weights=weights).matrix
    rng = np.random.default_rng(seed)
    mu = X @ np.linspace(4.0, 6.0, X.shape[1])
    risks = np.empty(n_rep)
    losses = np.empty(n_rep)
    for r in range(n_rep):
        y = mu + rng.standard_normal(mu.size)
        res = fit_with_risk(X, y, V, design.levels)
        risks[r] = res.risk
        losses[r] = la.squared_norm(res.fitted - mu) / X.shape[1]
    return float(risks.mean()), float(losses.mean())
