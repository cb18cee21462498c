# hypercube/core/__init__.py
"""Core computational modules for hypercube."""
from . import linalg, projections, risk

__all__ = ["linalg", "projections", "risk"]
