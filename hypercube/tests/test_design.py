import pytest
import numpy as np
import pandas as pd
from hypercube.exceptions import InvalidSpecError
from hypercube.sim.montecarlo import simulate_one_factor_data, simulate_two_factor_data
from hypercube.utils.design import cell_means_design, design_from_formula, parse_factor_formula

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def small_frame():
    return pd.DataFrame(
        {
            "A": ["b", "a", "a", "b", None],
            "B": ["x", "y", "x", "y", "x"],
            "y": [1.0, 2.0, 3.0, 4.0, 5.0],
        },
    )

# ---------------------------------------------------------------------
# Unit Tests: Formula parsing
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "formula, expected",
    [
        ("y ~ A * B", ("y", ("A", "B"))),
        ("y ~ A + B", ("y", ("A", "B"))),
        ("y ~ B + A + A:B", ("y", ("B", "A"))),
        ("y ~ C(A) + C(B)", ("y", ("A", "B"))),
        ("resp ~ 0 + dose", ("resp", ("dose",))),
    ],
)
def test_parse_factor_formula(formula, expected):
    assert parse_factor_formula(formula) == expected

@pytest.mark.parametrize(
    "formula, match",
    [
        ("~ A", "one response"),
        ("y ~ 1", "no factors"),
        ("y ~ y + A", "also appears"),
        ("y ~ np.log(A)", "not a plain factor"),
        ("y ~ (A", "Cannot parse"),
    ],
)
def test_parse_factor_formula_errors(formula, match):
    with pytest.raises(InvalidSpecError, match=match):
        parse_factor_formula(formula)

# ---------------------------------------------------------------------
# Unit Tests: Cell-means design
# ---------------------------------------------------------------------

def test_cell_means_design_layout(small_frame):
    design = cell_means_design(small_frame, "y", ["A", "B"])
    assert design.n_dropped == 1
    assert design.n_obs == 4
    assert design.levels == (2, 2)
    assert design.categories == (("a", "b"), ("x", "y"))
    assert design.column_names == ("A[a]:B[x]", "A[a]:B[y]", "A[b]:B[x]", "A[b]:B[y]")
    # first factor varies slowest
    assert design.X.argmax(axis=1).tolist() == [2, 1, 0, 3]
    assert np.allclose(design.X.sum(axis=1), 1.0)
    assert np.allclose(design.y, [1.0, 2.0, 3.0, 4.0])

def test_cell_means_design_keeps_categorical_order():
    df = pd.DataFrame(
        {
            "g": pd.Categorical(["lo", "hi", "lo"], categories=["lo", "mid", "hi"]),
            "y": [1.0, 2.0, 3.0],
        },
    )
    design = cell_means_design(df, "y", ["g"])
    # unused category dropped, declared order kept
    assert design.categories == (("lo", "hi"),)
    assert design.levels == (2,)
    assert design.X.argmax(axis=1).tolist() == [0, 1, 0]

def test_cell_means_design_integer_levels():
    df = simulate_one_factor_data(levels=6, reps=2)
    design = cell_means_design(df, "y", ["x"])
    assert design.levels == (6,)
    assert design.column_names[0] == "x[1]"
    assert design.X.shape == (12, 6)

def test_cell_means_design_errors(small_frame):
    with pytest.raises(InvalidSpecError, match="not found"):
        cell_means_design(small_frame, "y", ["A", "C"])
    with pytest.raises(InvalidSpecError, match="unique"):
        cell_means_design(small_frame, "y", ["A", "A"])
    with pytest.raises(InvalidSpecError, match="At least one"):
        cell_means_design(small_frame, "y", [])
    empty = small_frame.assign(y=np.nan)
    with pytest.raises(ValueError, match="No complete"):
        cell_means_design(empty, "y", ["A", "B"])

def test_design_from_formula():
    df = simulate_two_factor_data(levels=(3, 4), n_obs=40, seed=1)
    design = design_from_formula("y ~ A * B", df)
    assert design.response == "y"
    assert design.factor_names == ("A", "B")
    assert design.levels == (3, 4)
    assert design.X.shape == (40, 12)
    # every cell observed
    assert np.all(design.X.sum(axis=0) >= 1.0)
