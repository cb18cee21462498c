"""Cell-means designs from categorical data.

This is the model-specification layer in front of the numeric core: it turns
a DataFrame and a formula such as ``"y ~ A * B"`` into the indicator design
matrix (one column per factor-level combination), the response vector and
the factor level counts. Formula terms only name factors; main effects and
interactions are all represented by the cell-means columns, and the ANOVA
structure is supplied separately by the projection collection.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import patsy

from hypercube.exceptions import InvalidSpecError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from collections.abc import Sequence

    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

_C_PAT = re.compile(r"^C\(\s*(?P<var>[A-Za-z_][A-Za-z0-9_]*)\s*\)$")

__all__ = [
    "CellMeansDesign",
    "cell_means_design",
    "design_from_formula",
    "parse_factor_formula",
]


@dataclass(frozen=True, eq=False)
class CellMeansDesign:
    """Design matrix, response and factor structure of a cell-means model."""

    X: NDArray[np.float64] = field(repr=False)
    y: NDArray[np.float64] = field(repr=False)
    response: str
    factor_names: tuple[str, ...]
    levels: tuple[int, ...]
    categories: tuple[tuple[object, ...], ...] = field(repr=False)
    column_names: tuple[str, ...] = field(repr=False)
    n_dropped: int = 0

    @property
    def n_obs(self) -> int:
        return int(self.X.shape[0])


def _factor_name(code: str) -> str:
    code = code.strip()
    m = _C_PAT.match(code)
    if m is not None:
        return m.group("var")
    if code.isidentifier():
        return code
    raise InvalidSpecError(
        f"Formula term {code!r} is not a plain factor name; transformations are not supported.",
    )


def parse_factor_formula(formula: str) -> tuple[str, tuple[str, ...]]:
    """Return ``(response, factor_names)`` for a factor formula.

    >>> parse_factor_formula("y ~ A * B")
    ('y', ('A', 'B'))
    """
    try:
        desc = patsy.ModelDesc.from_formula(formula)
    except patsy.PatsyError as exc:
        raise InvalidSpecError(f"Cannot parse formula {formula!r}: {exc}") from exc
    lhs = [f for term in desc.lhs_termlist for f in term.factors]
    if len(lhs) != 1:
        raise InvalidSpecError(f"Formula {formula!r} must have exactly one response variable.")
    response = _factor_name(lhs[0].code)
    factors: list[str] = []
    for term in desc.rhs_termlist:
        for f in term.factors:
            name = _factor_name(f.code)
            if name not in factors:
                factors.append(name)
    if not factors:
        raise InvalidSpecError(f"Formula {formula!r} names no factors on the right-hand side.")
    if response in factors:
        raise InvalidSpecError(f"Response {response!r} also appears as a factor.")
    return response, tuple(factors)


def cell_means_design(
    data: pd.DataFrame, response: str, factors: Sequence[str],
) -> CellMeansDesign:
    """Build the cell-means indicator design for ``factors``.

    Rows with missing values in the response or any factor are dropped.
    Levels are the observed categories of each factor (sorted, or in the
    category order of a pandas ``Categorical``). Columns are ordered with the
    first factor varying slowest, matching the projection collection.
    """
    factors = tuple(str(f) for f in factors)
    if not factors:
        raise InvalidSpecError("At least one factor is required.")
    if len(set(factors)) != len(factors):
        raise InvalidSpecError(f"Factor names must be unique; got {list(factors)}.")
    cols = [response, *factors]
    missing = [c for c in cols if c not in data.columns]
    if missing:
        raise InvalidSpecError(f"Columns not found in data: {missing}.")

    df = data.loc[:, cols]
    n_total = len(df)
    df = df.dropna()
    n_dropped = n_total - len(df)
    if n_dropped:
        LOGGER.debug("Dropped %d of %d rows with missing values.", n_dropped, n_total)
    if df.empty:
        raise ValueError("No complete observations remain after dropping missing values.")

    cats = [pd.Categorical(df[f]).remove_unused_categories() for f in factors]
    levels = tuple(len(c.categories) for c in cats)
    p = int(np.prod(levels))
    codes = tuple(np.asarray(c.codes, dtype=np.int64) for c in cats)
    cells = np.ravel_multi_index(codes, levels)

    n = len(df)
    X = np.zeros((n, p), dtype=np.float64)
    X[np.arange(n), cells] = 1.0
    y = pd.to_numeric(df[response], errors="raise").to_numpy(dtype=np.float64)

    categories = tuple(tuple(c.categories) for c in cats)
    column_names = tuple(
        ":".join(f"{f}[{lev}]" for f, lev in zip(factors, combo))
        for combo in itertools.product(*categories)
    )
    empty = int(p - np.unique(cells).size)
    if empty:
        LOGGER.debug("%d of %d cells have no observations.", empty, p)
    return CellMeansDesign(
        X=X,
        y=y,
        response=str(response),
        factor_names=factors,
        levels=levels,
        categories=categories,
        column_names=column_names,
        n_dropped=int(n_dropped),
    )


def design_from_formula(formula: str, data: pd.DataFrame) -> CellMeansDesign:
    """Parse ``formula`` and build its cell-means design from ``data``."""
    response, factors = parse_factor_formula(formula)
    return cell_means_design(data, response, factors)
