"""Empirical semivariogram and semivariogram-based parameter fitting.

The empirical semivariogram bins all distinct pairs of observations by
distance and reports, for every non-empty bin,

    gamma(h) = sum((y_i - y_j)^2) / (2 |N(h)|)

together with the mean pair distance and the pair count.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.objects.spcov import CovarianceFamily, CovarianceParams
from spatialsmith.primitives.covariance import evaluate_kernel
from spatialsmith.primitives.optimize import geostatistical_space, minimize_in_space
from spatialsmith.utils.errors import raise_parameter_error, raise_validation_error

logger = logging.getLogger(__name__)


class SemivariogramBin(NamedTuple):
    """One non-empty distance bin of an empirical semivariogram."""

    bin: str
    dist: float
    gamma: float
    n_pairs: int


@dataclass(frozen=True)
class EmpiricalSemivariogram:
    """Empirical semivariogram, ordered by distance.

    Attributes:
        bins: Interval label of each non-empty bin.
        dist: Mean pair distance within each bin.
        gamma: Empirical semivariance of each bin.
        n_pairs: Number of pairs in each bin.
        bin_edges: All bin edges, including those of empty bins.
    """

    bins: tuple[str, ...]
    dist: np.ndarray
    gamma: np.ndarray
    n_pairs: np.ndarray
    bin_edges: np.ndarray

    def __iter__(self) -> Iterator[SemivariogramBin]:
        for label, dist, gamma, n_pairs in zip(
            self.bins, self.dist, self.gamma, self.n_pairs
        ):
            yield SemivariogramBin(label, float(dist), float(gamma), int(n_pairs))

    def __len__(self) -> int:
        return len(self.bins)

    def to_frame(self) -> pd.DataFrame:
        """Bins as a DataFrame with columns bin, dist, gamma, n_pairs."""
        return pd.DataFrame(
            {
                "bin": list(self.bins),
                "dist": self.dist,
                "gamma": self.gamma,
                "n_pairs": self.n_pairs,
            }
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"EmpiricalSemivariogram(n_bins={len(self)}, "
            f"n_pairs={int(self.n_pairs.sum())})"
        )


def _bin_labels(edges: np.ndarray, occupied: np.ndarray) -> tuple[str, ...]:
    labels = []
    for k in occupied:
        left = "[" if k == 0 else "("
        labels.append(f"{left}{edges[k]:.4g}, {edges[k + 1]:.4g}]")
    return tuple(labels)


def _residualize(values: np.ndarray, predictors: np.ndarray) -> np.ndarray:
    X = np.column_stack([np.ones(values.shape[0]), predictors])
    if np.linalg.matrix_rank(X) < X.shape[1]:
        raise_validation_error(
            "Predictors are collinear; cannot adjust the response",
            suggestion="Remove redundant predictor columns",
        )
    beta, *_ = np.linalg.lstsq(X, values, rcond=None)
    return values - X @ beta


def compute_empirical_semivariogram(
    values: np.ndarray,
    points: Union[PointSet, np.ndarray],
    n_bins: int = 15,
    cutoff: Optional[float] = None,
    bin_edges: Optional[np.ndarray] = None,
    predictors: Optional[Union[np.ndarray, pd.DataFrame]] = None,
) -> EmpiricalSemivariogram:
    """Compute the empirical semivariogram of a response.

    Self-pairs are excluded. Bins are equal-width intervals spanning
    [0, cutoff], closed on the right with the first bin also closed on the
    left, so the pair at the cutoff distance is counted. Empty bins are
    omitted. Missing responses (NaN) are dropped.

    Args:
        values: Response values (n,).
        points: PointSet or (n, 2) coordinates.
        n_bins: Number of equal-width bins.
        cutoff: Largest distance considered (default: largest pair distance).
        bin_edges: Explicit increasing bin edges; overrides n_bins and cutoff.
        predictors: Optional (n, p) predictors; when given, the semivariogram
            is computed on residuals of an ordinary least squares fit with
            intercept.

    Returns:
        EmpiricalSemivariogram with one entry per non-empty bin.

    Raises:
        InvalidInputError: If lengths differ or bin specification is invalid.

    Example:
        >>> coords = np.array([[1, 1], [1, 2], [2, 1], [2, 2]])
        >>> esv = compute_empirical_semivariogram(np.array([9, 7, 6, 1]), coords)
        >>> [round(b.gamma, 2) for b in esv]
        [9.25, 16.25]
    """
    values = np.asarray(values, dtype=float).ravel()
    points = as_pointset(points)
    if points.n_points != values.shape[0]:
        raise_validation_error(
            "Coordinates and values must have same length",
            expected=str(values.shape[0]),
            received=str(points.n_points),
        )

    observed = ~np.isnan(values)
    coordinates = points.coordinates[observed]
    values = values[observed]

    if predictors is not None:
        predictors = np.asarray(predictors, dtype=float)
        if predictors.ndim == 1:
            predictors = predictors[:, np.newaxis]
        if predictors.shape[0] != observed.shape[0]:
            raise_validation_error(
                "Predictors and values must have same length",
                expected=str(observed.shape[0]),
                received=str(predictors.shape[0]),
            )
        values = _residualize(values, predictors[observed])

    if values.shape[0] > 1:
        distances = pdist(coordinates)
        half_sq_diffs = 0.5 * pdist(values.reshape(-1, 1), "sqeuclidean")
    else:
        distances = half_sq_diffs = np.empty(0)

    esv = _bin_pairs(distances, half_sq_diffs, n_bins, cutoff, bin_edges)
    logger.debug(f"Computed {esv!r} from {values.shape[0]} observations")
    return esv


def semivariogram_from_distances(
    values: np.ndarray,
    distances: np.ndarray,
    n_bins: int = 15,
    cutoff: Optional[float] = None,
) -> EmpiricalSemivariogram:
    """Empirical semivariogram from a precomputed (n, n) distance matrix."""
    values = np.asarray(values, dtype=float).ravel()
    upper = np.triu_indices(values.shape[0], k=1)
    half_sq_diffs = 0.5 * (values[upper[0]] - values[upper[1]]) ** 2
    return _bin_pairs(np.asarray(distances)[upper], half_sq_diffs, n_bins, cutoff, None)


def _bin_pairs(
    distances: np.ndarray,
    half_sq_diffs: np.ndarray,
    n_bins: int,
    cutoff: Optional[float],
    bin_edges: Optional[np.ndarray],
) -> EmpiricalSemivariogram:
    if bin_edges is not None:
        edges = np.asarray(bin_edges, dtype=float)
        if edges.ndim != 1 or edges.size < 2 or np.any(np.diff(edges) <= 0) or edges[0] < 0:
            raise_validation_error(
                "bin_edges must be a strictly increasing, non-negative sequence "
                "of at least two values"
            )
    else:
        if n_bins < 1:
            raise_parameter_error("n_bins", n_bins, constraint="n_bins >= 1")
        if cutoff is None:
            cutoff = float(distances.max()) if distances.size else 0.0
        elif cutoff <= 0:
            raise_parameter_error("cutoff", cutoff, constraint="cutoff > 0")
        edges = np.linspace(0.0, cutoff, n_bins + 1)

    n_total_bins = edges.size - 1
    keep = (distances >= edges[0]) & (distances <= edges[-1])
    bin_index = np.maximum(np.searchsorted(edges, distances[keep], side="left") - 1, 0)

    counts = np.bincount(bin_index, minlength=n_total_bins)
    gamma_sums = np.bincount(bin_index, weights=half_sq_diffs[keep], minlength=n_total_bins)
    dist_sums = np.bincount(bin_index, weights=distances[keep], minlength=n_total_bins)

    occupied = np.flatnonzero(counts > 0)
    return EmpiricalSemivariogram(
        bins=_bin_labels(edges, occupied),
        dist=dist_sums[occupied] / counts[occupied],
        gamma=gamma_sums[occupied] / counts[occupied],
        n_pairs=counts[occupied],
        bin_edges=edges,
    )


# Public short name
semivariogram = compute_empirical_semivariogram


def semivariogram_model(params: CovarianceParams, distances: np.ndarray) -> np.ndarray:
    """Theoretical semivariogram ie + de - C(h) implied by covariance params."""
    return params.ie + params.de - evaluate_kernel(params, distances)


@dataclass(frozen=True)
class SemivariogramFit:
    """Covariance parameters fitted to an empirical semivariogram.

    Attributes:
        params: Fitted covariance parameters.
        objective: Weighted sum of squares at the optimum.
        n_iter: Optimizer iterations.
    """

    params: CovarianceParams
    objective: float
    n_iter: int


def fit_semivariogram_wls(
    esv: EmpiricalSemivariogram,
    family: Union[str, CovarianceFamily] = "exponential",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    initial: Optional[Mapping[str, float]] = None,
) -> SemivariogramFit:
    """Fit covariance parameters to an empirical semivariogram.

    Minimizes sum(w_k (gamma_k - gamma_model(h_k))^2) with Cressie weights
    w_k = n_pairs_k / gamma_model(h_k)^2.

    Args:
        esv: Empirical semivariogram.
        family: Point-referenced covariance family.
        known: Parameters held fixed.
        max_iter: Iteration bound for the optimizer.
        initial: Starting values overriding the defaults.

    Returns:
        SemivariogramFit with fitted parameters.

    Raises:
        ParameterError: If the family is areal.
        InvalidInputError: If there are fewer bins than free parameters.
        NonConvergenceError: If the optimizer does not converge.
    """
    family = CovarianceFamily.parse(family)
    if family.is_areal:
        raise_parameter_error(
            "family", family.value, constraint="semivariogram fitting needs a point-referenced family"
        )

    variance = float(np.max(esv.gamma)) if len(esv) else 0.0
    if not variance > 0:
        raise_validation_error("Empirical semivariogram is identically zero")

    if family is CovarianceFamily.NONE:
        # Flat semivariogram: weighted mean of gamma with weights n_pairs
        ie = float(np.average(esv.gamma, weights=esv.n_pairs))
        params = CovarianceParams(family=family, de=0.0, ie=ie)
        return SemivariogramFit(params=params, objective=0.0, n_iter=0)

    max_distance = float(np.max(esv.dist)) if np.max(esv.dist) > 0 else 1.0
    space = geostatistical_space(family, variance, max_distance, known, initial)
    if len(esv) < space.n_free:
        raise_validation_error(
            f"Need at least {space.n_free} non-empty bins to fit {family.value}, got {len(esv)}",
            suggestion="Increase n_bins or the cutoff",
        )

    def objective(values: dict[str, float]) -> float:
        params = CovarianceParams(family=family, **values)
        fitted = semivariogram_model(params, esv.dist)
        fitted = np.maximum(fitted, 1e-12 * variance)
        weights = esv.n_pairs / fitted**2
        return float(np.sum(weights * (esv.gamma - fitted) ** 2))

    result = minimize_in_space(objective, space, max_iter, label=f"{family.value} semivariogram")
    params = CovarianceParams(family=family, **result.values)
    logger.info(f"Fitted {family.value} semivariogram by WLS: {params!r}")
    return SemivariogramFit(params=params, objective=result.objective, n_iter=result.n_iter)
