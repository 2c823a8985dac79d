"""Neighborhood weight matrices for areal models.

Provides tools for:
- Binary contiguity weights from polygon geometry (queen or rook)
- Weights from precomputed adjacency lists or matrices
- Row standardization with the companion symmetry-condition diagonal
- Admissible CAR dependence interval for a weight matrix
"""

import logging
import warnings
from collections.abc import Mapping, Sequence
from typing import Literal, Optional, Union

import numpy as np

from spatialsmith.objects.polygonset import PolygonSet
from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.utils.errors import (
    IsolatedUnitWarning,
    raise_parameter_error,
    raise_validation_error,
)
from spatialsmith.utils.optional_imports import optional_import_single, require

logger = logging.getLogger(__name__)

SHAPELY_AVAILABLE, _ = optional_import_single("shapely", "STRtree")
if SHAPELY_AVAILABLE:
    from shapely import Polygon, STRtree  # type: ignore
else:
    Polygon = None  # type: ignore
    STRtree = None  # type: ignore

Adjacency = Union[Mapping[int, Sequence[int]], Sequence[Sequence[int]]]


def _neighbors_from_matrix(weights: np.ndarray) -> dict[int, list[int]]:
    return {i: np.flatnonzero(weights[i] > 0).tolist() for i in range(weights.shape[0])}


def weights_from_adjacency(
    adjacency: Adjacency,
    n: Optional[int] = None,
    ids: Optional[list] = None,
) -> SpatialWeights:
    """Create binary weights from an adjacency list.

    Args:
        adjacency: Mapping or sequence where entry ``i`` lists the indices of
            the units sharing a boundary with unit ``i``.
        n: Number of units; defaults to the length of ``adjacency``. Units
            missing from a mapping have no neighbors.
        ids: Optional unit identifiers.

    Returns:
        SpatialWeights with 0/1 entries.

    Raises:
        InvalidInputError: If indices are out of range, a unit lists itself,
            or the adjacency is not symmetric.
    """
    items = adjacency.items() if isinstance(adjacency, Mapping) else enumerate(adjacency)
    items = [(int(i), [int(j) for j in nbrs]) for i, nbrs in items]
    if n is None:
        n = len(adjacency)

    weights = np.zeros((n, n))
    for i, nbrs in items:
        for j in nbrs:
            if not (0 <= i < n and 0 <= j < n):
                raise_validation_error(
                    f"Adjacency index out of range: ({i}, {j})",
                    expected=f"indices in [0, {n})",
                )
            if i == j:
                raise_validation_error(f"Unit {i} lists itself as a neighbor")
            weights[i, j] = 1.0

    asymmetric = np.argwhere(weights != weights.T)
    if asymmetric.size:
        i, j = asymmetric[0]
        raise_validation_error(
            f"Adjacency is not symmetric: {i} lists {j} but not the reverse",
            suggestion="List every shared boundary from both sides",
        )

    return SpatialWeights(
        weights=weights,
        neighbors=_neighbors_from_matrix(weights),
        weights_type="adjacency",
        ids=ids,
    )


def weights_from_matrix(weights: np.ndarray, ids: Optional[list] = None) -> SpatialWeights:
    """Wrap a precomputed symmetric weight matrix.

    Raises:
        InvalidInputError: If the matrix is not square, symmetric,
            non-negative with zero diagonal.
    """
    try:
        return SpatialWeights(
            weights=np.asarray(weights, dtype=float),
            neighbors=_neighbors_from_matrix(np.asarray(weights, dtype=float)),
            weights_type="matrix",
            ids=ids,
        )
    except (ValueError, IndexError) as exc:
        raise_validation_error(f"Invalid weight matrix: {exc}")


def weights_from_polygons(
    polygons: PolygonSet,
    contiguity: Literal["queen", "rook"] = "queen",
) -> SpatialWeights:
    """Create contiguity weights from polygon boundaries.

    Queen contiguity links polygons sharing any boundary point; rook
    contiguity requires a shared boundary segment of positive length.

    Args:
        polygons: PolygonSet with polygon geometries.
        contiguity: 'queen' or 'rook'.

    Returns:
        SpatialWeights object with binary contiguity weights.
    """
    require(SHAPELY_AVAILABLE, "shapely", "geometry")
    if contiguity not in ("queen", "rook"):
        raise_parameter_error("contiguity", contiguity, valid_values=["queen", "rook"])

    geoms = [Polygon(ring) for ring in polygons.rings]
    tree = STRtree(geoms)
    n = len(geoms)
    weights = np.zeros((n, n))

    for i, geom in enumerate(geoms):
        for j in tree.query(geom, predicate="intersects"):
            j = int(j)
            if j <= i:
                continue
            if contiguity == "rook":
                shared = geom.boundary.intersection(geoms[j].boundary)
                if shared.length <= 0:
                    continue
            weights[i, j] = 1.0
            weights[j, i] = 1.0

    result = SpatialWeights(
        weights=weights,
        neighbors=_neighbors_from_matrix(weights),
        weights_type=contiguity,
        ids=polygons.ids,
    )
    logger.debug(f"Built {contiguity} weights: {result!r}")
    return result


def as_weights(
    weights: Union[SpatialWeights, PolygonSet, Adjacency, np.ndarray],
    n: Optional[int] = None,
) -> SpatialWeights:
    """Coerce a neighborhood description to SpatialWeights.

    Accepts SpatialWeights as is, builds queen weights from a PolygonSet,
    wraps a 2D array as a weight matrix and reads anything else as an
    adjacency list over ``n`` units.

    Raises:
        InvalidInputError: If the structure does not describe ``n`` units.
    """
    if isinstance(weights, SpatialWeights):
        result = weights
    elif isinstance(weights, PolygonSet):
        result = weights_from_polygons(weights)
    elif isinstance(weights, np.ndarray) and weights.ndim == 2:
        result = weights_from_matrix(weights)
    else:
        result = weights_from_adjacency(weights, n=n)

    if n is not None and result.n_observations != n:
        raise_validation_error(
            "Neighborhood structure must have one unit per observation",
            expected=str(n),
            received=str(result.n_observations),
        )
    return result


def row_standardize(
    weights: Union[SpatialWeights, np.ndarray], warn: bool = True
) -> tuple[np.ndarray, np.ndarray]:
    """Row-standardize a weight matrix.

    Each row with at least one neighbor is divided by its row sum so it sums
    to one. Rows without neighbors stay all zero and are reported with an
    IsolatedUnitWarning.

    Args:
        weights: SpatialWeights or (n, n) weight matrix.
        warn: Whether to emit IsolatedUnitWarning for empty rows.

    Returns:
        Tuple of (standardized matrix, m) where ``m`` is the diagonal of the
        symmetry-condition matrix M (``1 / row_sum``; 0 for isolated rows).
        ``diag(m)^-1 (I - rho W_st)`` is symmetric.
    """
    matrix = weights.weights if isinstance(weights, SpatialWeights) else np.asarray(weights, dtype=float)
    row_sums = matrix.sum(axis=1)
    isolated = row_sums == 0

    if isolated.any() and warn:
        warnings.warn(
            f"{int(isolated.sum())} unit(s) have no neighbors "
            f"(indices {np.flatnonzero(isolated).tolist()}); they are given "
            f"their own independent variance",
            IsolatedUnitWarning,
            stacklevel=2,
        )

    safe_sums = np.where(isolated, 1.0, row_sums)
    standardized = matrix / safe_sums[:, np.newaxis]
    m_diag = np.where(isolated, 0.0, 1.0 / safe_sums)
    return standardized, m_diag


def car_rho_bounds(
    weights: SpatialWeights, row_standardized: bool = True
) -> tuple[float, float]:
    """Interval of rho keeping the CAR precision matrix positive definite.

    Computed as (1 / lambda_min, 1 / lambda_max) over units with at least
    one neighbor, using the symmetric matrix ``D^-1/2 W D^-1/2`` when
    row-standardized (same spectrum as ``D^-1 W``) and ``W`` otherwise.

    Raises:
        InvalidInputError: If no unit has a neighbor.
    """
    connected = weights.neighbor_counts > 0
    if not connected.any():
        raise_validation_error(
            "CAR model needs at least one pair of neighboring units",
            suggestion="Check the polygon topology or adjacency list",
        )
    w_connected = weights.weights[np.ix_(connected, connected)]
    if row_standardized:
        scale = 1.0 / np.sqrt(w_connected.sum(axis=1))
        w_connected = w_connected * scale[:, None] * scale[None, :]
    eigenvalues = np.linalg.eigvalsh(w_connected)
    return 1.0 / eigenvalues.min(), 1.0 / eigenvalues.max()
