"""Covariance parameter estimation for spatial linear models.

Point-referenced models: Sigma = ie * I + de * R(H; range, extra).
CAR models: Sigma^-1 = M^-1 (I - rho W_st) / de over connected units,
with an independent variance ``extra`` for units without neighbors.

Parameters are estimated by restricted maximum likelihood (REML, default),
maximum likelihood (ML), or weighted least squares on the empirical
semivariogram of ordinary least squares residuals (sv-wls).
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.objects.spcov import CovarianceFamily, CovarianceParams, EstimationMethod
from spatialsmith.primitives.covariance import car_covariance_matrix, covariance_matrix
from spatialsmith.primitives.distance import validate_distance_matrix
from spatialsmith.primitives.likelihood import gls
from spatialsmith.primitives.neighborhood import car_rho_bounds
from spatialsmith.primitives.optimize import (
    car_space,
    geostatistical_space,
    minimize_in_space,
    validate_known,
)
from spatialsmith.primitives.variogram import (
    fit_semivariogram_wls,
    semivariogram_from_distances,
)
from spatialsmith.utils.errors import (
    SingularCovarianceError,
    raise_parameter_error,
    raise_validation_error,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EstimationResult:
    """Estimated covariance parameters and optimization diagnostics.

    Attributes:
        params: Estimated covariance parameters.
        method: Estimation method used.
        minus2loglik: Minus twice the (restricted) log-likelihood at the
            estimate; NaN for sv-wls.
        estimated: Names of the covariance parameters that were estimated;
            parameters held fixed are not listed.
        n_iter: Optimizer iterations (0 for closed-form solutions).
        rho_bounds: Admissible rho interval for CAR models.
    """

    params: CovarianceParams
    method: EstimationMethod
    minus2loglik: float
    estimated: tuple[str, ...]
    n_iter: int
    rho_bounds: Optional[tuple[float, float]] = None

    @property
    def n_estimated(self) -> int:
        return len(self.estimated)


def validate_design(X: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Validate a design matrix and response for estimation.

    Raises:
        InvalidInputError: On mismatched lengths, non-finite values, fewer
            observations than coefficients, rank deficiency, or a constant
            response.
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    if X.ndim != 2:
        raise_validation_error("Design matrix must be 2-dimensional", received=str(X.shape))
    if X.shape[0] != y.shape[0]:
        raise_validation_error(
            "Design matrix and response must have same length",
            expected=str(y.shape[0]),
            received=str(X.shape[0]),
        )
    if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
        raise_validation_error("Design matrix and response must be finite")
    n, p = X.shape
    if n <= p:
        raise_validation_error(
            f"Need more observations than coefficients, got n={n}, p={p}"
        )
    rank = np.linalg.matrix_rank(X)
    if rank < p:
        raise_validation_error(
            f"Design matrix is rank deficient (rank {rank} < {p} columns)",
            suggestion="Remove collinear predictor columns",
        )
    if np.ptp(y) == 0:
        raise_validation_error(
            "Response has zero variance; covariance parameters are not identifiable"
        )
    return X, y


def ols_residuals(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Ordinary least squares residuals."""
    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    return y - X @ beta


def _residual_variance(X: np.ndarray, y: np.ndarray) -> float:
    residuals = ols_residuals(X, y)
    variance = float(residuals @ residuals) / (X.shape[0] - X.shape[1])
    if not variance > 1e-12 * max(float(np.var(y)), 1e-300):
        raise_validation_error(
            "Predictors fit the response exactly; residual variance is zero"
        )
    return variance


def _minus2loglik(
    X: np.ndarray, y: np.ndarray, sigma: np.ndarray, method: EstimationMethod
) -> float:
    try:
        return gls(X, y, sigma).minus2loglik(method)
    except SingularCovarianceError:
        return np.inf


def estimate_geostatistical_parameters(
    X: np.ndarray,
    y: np.ndarray,
    distances: np.ndarray,
    family: Union[str, CovarianceFamily] = "exponential",
    method: Union[str, EstimationMethod] = "reml",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    initial: Optional[Mapping[str, float]] = None,
) -> EstimationResult:
    """Estimate point-referenced covariance parameters.

    The distance matrix is computed once by the caller and reused for every
    candidate parameter set.

    Args:
        X: Design matrix (n, p) with full column rank.
        y: Response (n,).
        distances: Distance matrix (n, n) among the observations.
        family: Point-referenced covariance family.
        method: 'reml', 'ml' or 'sv-wls'.
        known: Parameters held fixed, e.g. ``{"ie": 0.0}``.
        max_iter: Iteration bound for the optimizer.
        initial: Starting values overriding the defaults.

    Returns:
        EstimationResult.

    Raises:
        InvalidInputError: For degenerate inputs.
        NonConvergenceError: If the optimizer fails to converge.
        SingularCovarianceError: If the covariance at the estimate is singular.
    """
    family = CovarianceFamily.parse(family)
    method = EstimationMethod.parse(method)
    if family.is_areal:
        raise_parameter_error(
            "family", family.value, constraint="use estimate_car_parameters for areal models"
        )
    X, y = validate_design(X, y)
    distances = validate_distance_matrix(distances)
    if distances.shape[0] != y.shape[0]:
        raise_validation_error(
            "Distance matrix and response must have same length",
            expected=str(y.shape[0]),
            received=str(distances.shape[0]),
        )
    known = validate_known(family, known)
    variance = _residual_variance(X, y)
    n, p = X.shape

    if family is CovarianceFamily.NONE:
        return _estimate_independent(X, y, method, known)

    max_distance = float(distances.max())
    if max_distance == 0:
        raise_validation_error(
            "All locations coincide; spatial covariance is not identifiable",
            suggestion="Use family='none' or supply distinct coordinates",
        )
    duplicates = int(np.count_nonzero(distances == 0) - n) // 2
    if duplicates and known.get("ie") == 0:
        raise SingularCovarianceError(
            f"{duplicates} pair(s) of observations share a location and the "
            f"nugget is fixed at zero; the covariance matrix is singular",
            suggestion="Leave ie free or fix it at a positive value",
            details={"duplicate_pairs": duplicates},
        )

    if method is EstimationMethod.SV_WLS:
        esv = semivariogram_from_distances(
            ols_residuals(X, y), distances, cutoff=max_distance / 2.0
        )
        fit = fit_semivariogram_wls(esv, family, known, max_iter, initial)
        result = EstimationResult(
            params=fit.params,
            method=method,
            minus2loglik=np.nan,
            estimated=tuple(name for name in family.parameter_names if name not in known),
            n_iter=fit.n_iter,
        )
        # Fail early if the fitted covariance cannot support GLS
        gls(X, y, covariance_matrix(fit.params, distances))
        return result

    space = geostatistical_space(family, variance, max_distance, known, initial)

    def objective(values: dict[str, float]) -> float:
        params = CovarianceParams(family=family, **values)
        return _minus2loglik(X, y, covariance_matrix(params, distances), method)

    optimum = minimize_in_space(
        objective, space, max_iter, label=f"{family.value} {method.value}"
    )
    params = CovarianceParams(family=family, **optimum.values)
    minus2loglik = gls(X, y, covariance_matrix(params, distances)).minus2loglik(method)

    logger.info(
        f"Estimated {family.value} parameters by {method.value} "
        f"(n={n}, p={p}, iterations={optimum.n_iter}): {params!r}"
    )
    return EstimationResult(
        params=params,
        method=method,
        minus2loglik=minus2loglik,
        estimated=tuple(space.free),
        n_iter=optimum.n_iter,
    )


def _estimate_independent(
    X: np.ndarray, y: np.ndarray, method: EstimationMethod, known: dict[str, float]
) -> EstimationResult:
    """Closed-form variance for the independent-error model."""
    n, p = X.shape
    residuals = ols_residuals(X, y)
    rss = float(residuals @ residuals)
    if "ie" in known:
        ie = known["ie"]
    else:
        ie = rss / n if method is EstimationMethod.ML else rss / (n - p)
    params = CovarianceParams(family=CovarianceFamily.NONE, de=0.0, ie=ie)

    minus2loglik = np.nan
    if method.is_likelihood:
        minus2loglik = gls(X, y, ie * np.eye(n)).minus2loglik(method)

    logger.info(f"Estimated independent-error variance by {method.value}: ie={ie:.6g}")
    return EstimationResult(
        params=params,
        method=method,
        minus2loglik=minus2loglik,
        estimated=() if "ie" in known else ("ie",),
        n_iter=0,
    )


def estimate_car_parameters(
    X: np.ndarray,
    y: np.ndarray,
    weights: SpatialWeights,
    observed: Optional[np.ndarray] = None,
    row_standardized: bool = True,
    method: Union[str, EstimationMethod] = "reml",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    estimate_ie: bool = False,
) -> EstimationResult:
    """Estimate CAR covariance parameters.

    The covariance is built over every unit of ``weights`` (units without a
    response still shape the neighborhood structure) and the likelihood is
    evaluated on the observed units.

    Args:
        X: Design matrix (n_observed, p).
        y: Response (n_observed,).
        weights: Binary neighborhood structure over all units.
        observed: Boolean mask over all units marking those with a response;
            defaults to all units.
        row_standardized: Whether to row-standardize the weights.
        method: 'reml' or 'ml'.
        known: Parameters held fixed (de, ie, rho, extra).
        max_iter: Iteration bound for the optimizer.
        estimate_ie: Estimate a nugget; otherwise ie is fixed at zero.

    Returns:
        EstimationResult including the admissible rho interval.

    Raises:
        InvalidInputError: For degenerate inputs.
        SingularCovarianceError: If a fixed rho lies outside the admissible
            interval.
        NonConvergenceError: If the optimizer fails to converge.
    """
    family = CovarianceFamily.CAR
    method = EstimationMethod.parse(method)
    if not method.is_likelihood:
        raise_parameter_error(
            "method", method.value, valid_values=["reml", "ml"],
            constraint="CAR models are estimated by likelihood",
        )
    X, y = validate_design(X, y)
    n_units = weights.n_observations
    observed = np.ones(n_units, dtype=bool) if observed is None else np.asarray(observed, dtype=bool)
    if observed.shape[0] != n_units or int(observed.sum()) != y.shape[0]:
        raise_validation_error(
            "Observed mask must cover every unit and match the response length",
            expected=f"{n_units} units with {y.shape[0]} observed",
            received=f"{observed.shape[0]} units with {int(observed.sum())} observed",
        )

    known = validate_known(family, known)
    bounds = car_rho_bounds(weights, row_standardized)
    if "rho" in known and not bounds[0] < known["rho"] < bounds[1]:
        raise SingularCovarianceError(
            f"rho={known['rho']:.6g} outside admissible interval "
            f"({bounds[0]:.6g}, {bounds[1]:.6g})",
            details={"rho": known["rho"], "bounds": bounds},
        )

    variance = _residual_variance(X, y)
    isolated_observed = bool(np.any((weights.neighbor_counts == 0) & observed))
    space = car_space(variance, bounds, isolated_observed, known, estimate_ie)
    index = np.flatnonzero(observed)

    def build(values: dict[str, float]) -> np.ndarray:
        params = CovarianceParams(family=family, **values)
        sigma = car_covariance_matrix(weights, params, row_standardized, bounds)
        return sigma[np.ix_(index, index)]

    def objective(values: dict[str, float]) -> float:
        try:
            sigma = build(values)
        except SingularCovarianceError:
            return np.inf
        return _minus2loglik(X, y, sigma, method)

    optimum = minimize_in_space(objective, space, max_iter, label=f"car {method.value}")
    params = CovarianceParams(family=family, **optimum.values)
    minus2loglik = gls(X, y, build(optimum.values)).minus2loglik(method)

    logger.info(
        f"Estimated car parameters by {method.value} "
        f"(units={n_units}, observed={index.size}, "
        f"row_standardized={row_standardized}): {params!r}"
    )
    return EstimationResult(
        params=params,
        method=method,
        minus2loglik=minus2loglik,
        estimated=tuple(space.free),
        n_iter=optimum.n_iter,
        rho_bounds=bounds,
    )
