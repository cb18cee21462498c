"""ANOVA projection algebra for categorical factors.

For a factor with ``k`` levels the k x k "mean" projector averages over the
levels and the "deviation" projector is its orthogonal complement. For ``m``
factors, every choice of mean/deviation per factor gives one Kronecker
product; the 2^m products are symmetric idempotent matrices that are mutually
orthogonal and sum to the identity (the orthogonal ANOVA decomposition of the
cell-means space). Weighted sums of these projections with weights in [0, 1]
are admissible hypercube shrinkage matrices.

Component identifiers are tuples of binary tags, one per factor, with
``MEAN = 0`` and ``DEVIATION = 1``. The column index of the cell-means space
lets the first factor vary slowest, matching ``numpy.kron``.

Building a collection costs O(2^m p^2) with p the product of level counts, so
the number of factors is capped at :data:`MAX_FACTORS`.
"""

from __future__ import annotations

import itertools
import logging
import numbers
import string
from dataclasses import dataclass, field
from functools import reduce
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Union

import numpy as np

from hypercube.exceptions import InvalidSpecError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

MEAN = 0
DEVIATION = 1
MAX_FACTORS = 8
MEAN_LABEL = "(mean)"

Tags = tuple[int, ...]
ComponentKey = Union[str, "Sequence[int]"]

__all__ = [
    "DEVIATION",
    "MAX_FACTORS",
    "MEAN",
    "ProjectionCollection",
    "ProjectionFunction",
    "WeightedProjection",
    "additive_projection",
    "build_projection_collection",
    "coerce_levels",
    "factor_projection_pair",
    "select_components",
    "weighted_sum",
    "weighted_sum_function",
]


def _readonly(a: NDArray[np.float64]) -> NDArray[np.float64]:
    a.setflags(write=False)
    return a


def _component_label(factor_names: Sequence[str], tags: Tags) -> str:
    devs = [name for name, t in zip(factor_names, tags) if t == DEVIATION]
    return ":".join(devs) if devs else MEAN_LABEL


def _component_order(m: int) -> list[Tags]:
    # grand mean, main effects in factor order, then higher-order interactions
    return sorted(
        itertools.product((MEAN, DEVIATION), repeat=m),
        key=lambda t: (sum(t), tuple(-x for x in t)),
    )


@dataclass(frozen=True, eq=False)
class ProjectionCollection:
    """Ordered set of orthogonal ANOVA projections for a factor specification.

    Attributes
    ----------
    factor_names : tuple of str
        Factor names in Kronecker order.
    levels : tuple of int
        Level count of each factor.
    dim : int
        Matrix dimension, the product of ``levels``.
    components : Mapping[tuple[int, ...], ndarray]
        Read-only mapping from tag tuple to a ``dim x dim`` projection.

    """

    factor_names: tuple[str, ...]
    levels: tuple[int, ...]
    dim: int
    components: Mapping[Tags, NDArray[np.float64]] = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))

    @property
    def n_factors(self) -> int:
        return len(self.levels)

    @property
    def tags(self) -> tuple[Tags, ...]:
        return tuple(self.components)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self.label(t) for t in self.components)

    def label(self, tags: Sequence[int]) -> str:
        """Readable name of a component, e.g. ``"(mean)"``, ``"A"``, ``"A:B"``."""
        return _component_label(self.factor_names, tuple(int(t) for t in tags))

    def __len__(self) -> int:
        return len(self.components)

    def __iter__(self) -> Iterator[Tags]:
        return iter(self.components)

    def __getitem__(self, key: ComponentKey) -> NDArray[np.float64]:
        return self.components[_resolve_key(self, key)]

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (
            f"ProjectionCollection(factors={list(self.factor_names)}, "
            f"levels={list(self.levels)}, dim={self.dim}, "
            f"components={list(self.labels)})"
        )


@dataclass(frozen=True, eq=False)
class WeightedProjection:
    """A weighted sum of projections together with the weights that built it."""

    matrix: NDArray[np.float64] = field(repr=False)
    weights: NDArray[np.float64]
    components: tuple[Tags, ...]
    labels: tuple[str, ...]


@dataclass(frozen=True, eq=False)
class ProjectionFunction:
    """Callable ``weights -> sum_i weights[i] * P_i`` over fixed components.

    The component matrices are stacked once at construction, so each call is
    a single tensor contraction.
    """

    components: tuple[Tags, ...]
    labels: tuple[str, ...]
    factor_names: tuple[str, ...]
    levels: tuple[int, ...]
    dim: int
    _stack: NDArray[np.float64] = field(repr=False)

    def __len__(self) -> int:
        return len(self.components)

    def __call__(self, weights: Sequence[float] | NDArray[np.float64]) -> NDArray[np.float64]:
        w = _coerce_weights(weights, len(self.components))
        return np.tensordot(w, self._stack, axes=1)


def coerce_levels(levels: Sequence[int]) -> tuple[int, ...]:
    """Validate factor level counts; malformed input raises ``InvalidSpecError``."""
    if isinstance(levels, (str, bytes)) or not hasattr(levels, "__iter__"):
        raise InvalidSpecError(f"levels must be a sequence of level counts; got {levels!r}.")
    out: list[int] = []
    for j, k in enumerate(levels):
        if isinstance(k, bool) or not isinstance(k, numbers.Integral):
            if isinstance(k, numbers.Real) and float(k).is_integer():
                k = int(k)
            else:
                raise InvalidSpecError(f"Level count of factor {j} must be an integer; got {k!r}.")
        if int(k) < 1:
            raise InvalidSpecError(f"Level count of factor {j} must be >= 1; got {k}.")
        out.append(int(k))
    if not out:
        raise InvalidSpecError("At least one factor is required.")
    if len(out) > MAX_FACTORS:
        raise InvalidSpecError(
            f"{len(out)} factors requested; the projection algebra enumerates 2^m "
            f"components and supports at most {MAX_FACTORS} factors.",
        )
    return tuple(out)


def _coerce_factor_names(names: Sequence[str] | None, m: int) -> tuple[str, ...]:
    if names is None:
        return tuple(string.ascii_uppercase[j] for j in range(m))
    out = tuple(str(n) for n in names)
    if len(out) != m:
        raise InvalidSpecError(f"Got {len(out)} factor names for {m} factors.")
    if len(set(out)) != m:
        raise InvalidSpecError(f"Factor names must be unique; got {list(out)}.")
    if MEAN_LABEL in out or any(":" in n for n in out):
        raise InvalidSpecError(f"Factor names may not contain ':' or equal {MEAN_LABEL!r}.")
    return out


def _coerce_weights(weights: Any, k: int) -> NDArray[np.float64]:
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.size != k:
        raise InvalidSpecError(f"Expected {k} weights, one per component; got {w.size}.")
    if not np.all(np.isfinite(w)):
        raise InvalidSpecError(f"Weights must be finite; got {w.tolist()}.")
    return w


def _resolve_key(collection: ProjectionCollection, key: ComponentKey) -> Tags:
    """Map a label or tag vector to a tag tuple present in ``collection``."""
    if isinstance(key, str):
        lookup = {collection.label(t): t for t in collection.components}
        if key not in lookup:
            raise InvalidSpecError(
                f"Unknown component {key!r}; available: {list(lookup)}.",
            )
        return lookup[key]
    try:
        raw = list(np.asarray(key).reshape(-1))
    except (TypeError, ValueError) as exc:
        raise InvalidSpecError(f"Cannot interpret component specification {key!r}.") from exc
    m = collection.n_factors
    if len(raw) != m:
        raise InvalidSpecError(
            f"Tag vector {key!r} has length {len(raw)}; expected {m} (one per factor).",
        )
    if any(x not in (MEAN, DEVIATION) for x in raw):
        raise InvalidSpecError(f"Tag vector {key!r} must contain only 0 (mean) or 1 (deviation).")
    tags = tuple(int(x) for x in raw)
    if tags not in collection.components:
        raise InvalidSpecError(
            f"Component {tags} ({collection.label(tags)}) is not in the collection; "
            f"available: {list(collection.labels)}.",
        )
    return tags


def _resolve_spec(
    collection: ProjectionCollection, spec: Sequence[ComponentKey] | ComponentKey | None,
) -> list[Tags]:
    if spec is None:
        return list(collection.components)
    if isinstance(spec, str):
        spec = [spec]
    elif isinstance(spec, np.ndarray) and spec.ndim == 1:
        spec = [spec]
    elif isinstance(spec, tuple) and spec and all(
        isinstance(x, numbers.Integral) for x in spec
    ):
        # a flat tuple of ints is one tag vector, like a 1-D array
        spec = [spec]
    entries = list(spec)
    if not entries:
        raise InvalidSpecError("Component specification is empty.")
    resolved = [_resolve_key(collection, e) for e in entries]
    if len(set(resolved)) != len(resolved):
        dupes = sorted({collection.label(t) for t in resolved if resolved.count(t) > 1})
        raise InvalidSpecError(f"Duplicate components in specification: {dupes}.")
    return resolved


def factor_projection_pair(k: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return the (mean, deviation) projectors of a factor with ``k`` levels."""
    (k,) = coerce_levels([k])
    mean = np.full((k, k), 1.0 / k, dtype=np.float64)
    dev = np.eye(k, dtype=np.float64) - mean
    return mean, dev


def _kron_component(
    pairs: Sequence[tuple[NDArray[np.float64], NDArray[np.float64]]], tags: Tags,
) -> NDArray[np.float64]:
    return reduce(np.kron, (pairs[j][t] for j, t in enumerate(tags)), np.ones((1, 1)))


def build_projection_collection(
    levels: Sequence[int], factor_names: Sequence[str] | None = None,
) -> ProjectionCollection:
    """Build the full orthogonal ANOVA projection collection.

    Parameters
    ----------
    levels : sequence of int
        Level count of each factor, in the order the cell-means columns are
        laid out (first factor slowest).
    factor_names : sequence of str, optional
        Factor names used in component labels. Defaults to ``A, B, C, ...``.

    Returns
    -------
    ProjectionCollection
        2^m components ordered grand mean, main effects, then interactions.

    Examples
    --------
    >>> coll = build_projection_collection([4, 4])
    >>> coll.labels
    ('(mean)', 'A', 'B', 'A:B')

    """
    lv = coerce_levels(levels)
    names = _coerce_factor_names(factor_names, len(lv))
    pairs = [factor_projection_pair(k) for k in lv]
    components = {
        tags: _readonly(_kron_component(pairs, tags)) for tags in _component_order(len(lv))
    }
    dim = int(np.prod(lv))
    LOGGER.debug(
        "Built projection collection: factors=%s levels=%s dim=%d components=%d",
        names, lv, dim, len(components),
    )
    return ProjectionCollection(factor_names=names, levels=lv, dim=dim, components=components)


def select_components(
    collection: ProjectionCollection, spec: Sequence[ComponentKey] | ComponentKey,
) -> ProjectionCollection:
    """Restrict ``collection`` to the components named by ``spec``.

    Each entry of ``spec`` is a binary tag vector (one entry per factor) or a
    component label such as ``"A:B"``. The order of ``spec`` is preserved. A
    single label, a 1-D integer array or a flat tuple of ints such as ``(1, 0)``
    names one component.
    """
    resolved = _resolve_spec(collection, spec)
    return ProjectionCollection(
        factor_names=collection.factor_names,
        levels=collection.levels,
        dim=collection.dim,
        components={t: collection.components[t] for t in resolved},
    )


def weighted_sum(
    collection: ProjectionCollection,
    spec: Sequence[ComponentKey] | ComponentKey | None = None,
    weights: Sequence[float] | NDArray[np.float64] | None = None,
) -> WeightedProjection:
    """Compute ``sum_i weights[i] * P_i`` over the selected components.

    ``spec`` defaults to every component and ``weights`` to all ones, so
    ``weighted_sum(collection).matrix`` is the identity for a full collection.
    """
    resolved = _resolve_spec(collection, spec)
    w = np.ones(len(resolved)) if weights is None else _coerce_weights(weights, len(resolved))
    matrix = np.zeros((collection.dim, collection.dim), dtype=np.float64)
    for wi, t in zip(w, resolved):
        matrix += wi * collection.components[t]
    return WeightedProjection(
        matrix=matrix,
        weights=_readonly(w.copy()),
        components=tuple(resolved),
        labels=tuple(collection.label(t) for t in resolved),
    )


def weighted_sum_function(
    collection: ProjectionCollection,
    spec: Sequence[ComponentKey] | ComponentKey | None = None,
) -> ProjectionFunction:
    """Return a reusable ``weights -> matrix`` function over the selected components."""
    resolved = _resolve_spec(collection, spec)
    stack = np.stack([collection.components[t] for t in resolved], axis=0)
    return ProjectionFunction(
        components=tuple(resolved),
        labels=tuple(collection.label(t) for t in resolved),
        factor_names=collection.factor_names,
        levels=collection.levels,
        dim=collection.dim,
        _stack=_readonly(stack),
    )


def additive_projection(levels: ProjectionCollection | Sequence[int]) -> NDArray[np.float64]:
    """Projection onto the additive submodel: grand mean plus main effects.

    Interaction components are excluded. Accepts level counts or a
    collection (whose level counts are used, whatever its selected subset).
    """
    lv = levels.levels if isinstance(levels, ProjectionCollection) else coerce_levels(levels)
    pairs = [factor_projection_pair(k) for k in lv]
    dim = int(np.prod(lv))
    out = np.zeros((dim, dim), dtype=np.float64)
    for tags in _component_order(len(lv)):
        if sum(tags) <= 1:
            out += _kron_component(pairs, tags)
    return out
