# hypercube/utils/__init__.py
"""Utility functions module."""
from .design import (
    CellMeansDesign,
    cell_means_design,
    design_from_formula,
    parse_factor_formula,
)

__all__ = [
    "CellMeansDesign",
    "cell_means_design",
    "design_from_formula",
    "parse_factor_formula",
]
