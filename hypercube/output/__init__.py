# hypercube/output/__init__.py
"""Output module for hypercube fits."""
from .summary import hypercube_summary, projection_weights_table

__all__ = [
    "hypercube_summary",
    "projection_weights_table",
]
