"""Text summaries of hypercube fits and risk optimizations."""

from __future__ import annotations

from typing import Union, cast

import numpy as np
import pandas as pd
from tabulate import tabulate

from hypercube.estimators.base import FittedEstimator, OptimizationResult

__all__ = ["hypercube_summary", "projection_weights_table"]

Result = Union[FittedEstimator, OptimizationResult]


def _fmt(x: float | None, digits: int) -> str:
    if x is None:
        return ""
    if not np.isfinite(x):
        return str(x)
    return f"{float(x):.{digits}f}"


def projection_weights_table(result: OptimizationResult) -> pd.DataFrame:
    """Return component labels, tag vectors and optimal weights as a DataFrame."""
    return pd.DataFrame(
        {
            "component": list(result.labels),
            "tags": ["".join(str(t) for t in tags) for tags in result.components],
            "weight": np.array(result.weights),
        },
    )


def hypercube_summary(result: Result, *, digits: int = 4, tablefmt: str = "simple") -> str:
    """Render a fit or an optimization result as a plain-text table.

    Coefficients come first, then fit diagnostics (observations, effective
    degrees of freedom, and for risk fits the variance and estimated risk),
    then the projection weights for optimization results.
    """
    opt = result if isinstance(result, OptimizationResult) else None
    fit = opt.fit if opt is not None else cast("FittedEstimator", result)
    if not isinstance(fit, FittedEstimator):
        raise TypeError(f"Expected FittedEstimator or OptimizationResult; got {type(result).__name__}.")

    params = fit.params
    coef_rows = [[name, _fmt(val, digits)] for name, val in params.items()]
    blocks = [tabulate(coef_rows, headers=["", "coef"], stralign="center", tablefmt=tablefmt)]

    info_rows = [
        ["Fit", fit.kind],
        ["N", str(fit.n_obs)],
        ["Effective df", _fmt(fit.edf, digits)],
    ]
    if fit.has_risk:
        info_rows += [
            ["Variance", _fmt(fit.variance, digits)],
            ["Variance source", str(fit.variance_source)],
            ["Estimated risk", _fmt(fit.risk, digits)],
        ]
    blocks.append(tabulate(info_rows, stralign="center", tablefmt=tablefmt))

    if opt is not None:
        tbl = projection_weights_table(opt)
        weight_rows = [
            [row.component, row.tags, _fmt(row.weight, digits)] for row in tbl.itertuples()
        ]
        blocks.append(
            tabulate(weight_rows, headers=["component", "tags", "weight"], stralign="center", tablefmt=tablefmt),
        )
        blocks.append(
            tabulate(
                [
                    ["Converged", str(opt.converged)],
                    ["Evaluations", str(opt.n_evaluations)],
                ],
                stralign="center",
                tablefmt=tablefmt,
            ),
        )
    return "\n\n".join(blocks)
