"""Exception types raised by the hypercube estimator.

All errors derive from :class:`HypercubeError`. Each concrete error also
subclasses the built-in exception that the rest of the library historically
raised for the same condition, so ``except ValueError`` and
``except numpy.linalg.LinAlgError`` keep working.
"""
from __future__ import annotations

import numpy as np

__all__ = [
    "HypercubeError",
    "InvalidSpecError",
    "NumericalError",
    "VarianceUnavailableError",
]


class HypercubeError(Exception):
    """Base class for errors raised by :mod:`hypercube`."""


class NumericalError(HypercubeError, np.linalg.LinAlgError):
    """A matrix square root, inverse or risk evaluation failed numerically."""


class InvalidSpecError(HypercubeError, ValueError):
    """A factor or component specification is malformed or out of range."""


class VarianceUnavailableError(HypercubeError, ValueError):
    """Noise variance cannot be estimated from the data.

    Raised when the residual degrees of freedom are zero and there is no
    secondary factor structure to fall back on. Supply the variance
    explicitly instead.
    """
