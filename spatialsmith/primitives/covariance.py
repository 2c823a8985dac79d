"""Parametric spatial covariance kernels and covariance matrix assembly.

Every kernel maps a distance array ``h`` to covariance values for the
spatially dependent error component only. At ``h = 0`` each kernel returns
exactly the partial sill ``de``; the nugget ``ie`` is added by
:func:`covariance_matrix` on the diagonal, never inside a kernel.

Kernels (``phi`` = range, ``nu`` = extra):

- exponential: de * exp(-h / phi)
- gaussian: de * exp(-(h / phi)^2)
- spherical: de * (1 - 1.5 h/phi + 0.5 (h/phi)^3) for h <= phi, else 0
- triangular: de * (1 - h/phi) for h <= phi, else 0
- matern: de * 2^(1-nu) / Gamma(nu) * u^nu * K_nu(u), u = 2 sqrt(nu) h / phi
- cauchy: de * (1 + (h/phi)^2)^(-nu)
- none: de at h = 0, else 0
"""

import logging
from typing import Callable, Optional

import numpy as np
from scipy.linalg import cho_factor, cho_solve
from scipy.special import gamma, kv

from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.objects.spcov import CovarianceFamily, CovarianceParams
from spatialsmith.primitives.neighborhood import car_rho_bounds, row_standardize
from spatialsmith.utils.errors import SingularCovarianceError, raise_validation_error

logger = logging.getLogger(__name__)


def _check_distances(h: np.ndarray) -> np.ndarray:
    h = np.asarray(h, dtype=float)
    if np.any(h < 0):
        raise_validation_error(
            "Distances must be non-negative", received=f"min={np.min(h):.4g}"
        )
    return h


def exponential_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Exponential covariance kernel."""
    h = _check_distances(h)
    return de * np.exp(-h / range_param)


def gaussian_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Gaussian covariance kernel."""
    h = _check_distances(h)
    return de * np.exp(-((h / range_param) ** 2))


def spherical_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Spherical covariance kernel, zero beyond the range."""
    h = _check_distances(h)
    h_scaled = h / range_param
    cov = de * (1.0 - 1.5 * h_scaled + 0.5 * h_scaled**3)
    return np.where(h_scaled <= 1.0, cov, 0.0)


def triangular_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Triangular (tent) covariance kernel, zero beyond the range."""
    h = _check_distances(h)
    h_scaled = h / range_param
    return np.where(h_scaled <= 1.0, de * (1.0 - h_scaled), 0.0)


def matern_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Matérn covariance kernel with smoothness ``extra``.

    Uses the modified Bessel function of the second kind. ``extra = 0.5``
    gives an exponential kernel with range ``range_param / sqrt(2)``;
    large ``extra`` approaches the gaussian shape.
    """
    if extra is None or extra <= 0:
        raise ValueError(f"Matérn smoothness must be positive, got {extra}")
    h = _check_distances(h)
    u = 2.0 * np.sqrt(extra) * h / range_param
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        cov = de * (2.0 ** (1.0 - extra) / gamma(extra)) * u**extra * kv(extra, u)
    # K_nu(u) is infinite at u = 0; the limit is de
    cov = np.where(u == 0.0, de, cov)
    return np.where(np.isfinite(cov), cov, 0.0)


def cauchy_kernel(
    h: np.ndarray, de: float, range_param: float, extra: Optional[float] = None
) -> np.ndarray:
    """Cauchy covariance kernel with shape ``extra``."""
    if extra is None or extra <= 0:
        raise ValueError(f"Cauchy shape must be positive, got {extra}")
    h = _check_distances(h)
    return de * (1.0 + (h / range_param) ** 2) ** (-extra)


def none_kernel(
    h: np.ndarray, de: float, range_param: Optional[float] = None, extra: Optional[float] = None
) -> np.ndarray:
    """Independent-error kernel: ``de`` at zero distance, zero elsewhere."""
    h = _check_distances(h)
    return np.where(h == 0.0, de, 0.0)


# Kernel registry
COVARIANCE_KERNELS: dict[CovarianceFamily, Callable] = {
    CovarianceFamily.NONE: none_kernel,
    CovarianceFamily.EXPONENTIAL: exponential_kernel,
    CovarianceFamily.SPHERICAL: spherical_kernel,
    CovarianceFamily.GAUSSIAN: gaussian_kernel,
    CovarianceFamily.TRIANGULAR: triangular_kernel,
    CovarianceFamily.MATERN: matern_kernel,
    CovarianceFamily.CAUCHY: cauchy_kernel,
}


def evaluate_kernel(params: CovarianceParams, distances: np.ndarray) -> np.ndarray:
    """Evaluate the dependent-error covariance at the given distances.

    Args:
        params: Covariance parameters of a point-referenced family.
        distances: Distance array of any shape.

    Returns:
        Covariance values with the same shape as ``distances``.
    """
    if params.family.is_areal:
        raise ValueError(
            f"{params.family.value} covariance is defined on a weight matrix, "
            f"not on distances; use car_covariance_matrix"
        )
    kernel = COVARIANCE_KERNELS[params.family]
    return kernel(distances, params.de, params.range, params.extra)


def covariance_matrix(params: CovarianceParams, distances: np.ndarray) -> np.ndarray:
    """Covariance matrix among observed locations.

    Sigma = ie * I + kernel(H). The nugget sits on the diagonal only, so
    distinct observations at duplicate coordinates share ``de`` but not
    ``ie``.
    """
    sigma = evaluate_kernel(params, distances)
    sigma[np.diag_indices_from(sigma)] += params.ie
    return sigma


def cross_covariance(params: CovarianceParams, distances: np.ndarray) -> np.ndarray:
    """Covariance between observed and new locations (no nugget)."""
    return evaluate_kernel(params, distances)


def car_covariance_matrix(
    weights: SpatialWeights,
    params: CovarianceParams,
    row_standardized: bool = True,
    rho_bounds: Optional[tuple[float, float]] = None,
) -> np.ndarray:
    """Covariance matrix of a conditional autoregressive model.

    Over units with at least one neighbor the precision matrix is
    ``M^-1 (I - rho W_st) / de``, where ``W_st`` is the (optionally
    row-standardized) weight matrix and ``M`` is the symmetry-condition
    diagonal (``1 / n_neighbors`` when standardized, identity otherwise).
    Units without neighbors get an independent variance ``extra``. The
    nugget ``ie`` is added to the whole diagonal.

    Args:
        weights: Binary neighborhood structure.
        params: CAR covariance parameters.
        row_standardized: Whether to row-standardize the weights.
        rho_bounds: Precomputed admissible rho interval, if available.

    Returns:
        Dense (n, n) covariance matrix.

    Raises:
        SingularCovarianceError: If rho lies outside the interval that keeps
            the precision matrix positive definite.

    Isolated units get a NaN variance when ``params.extra`` is None.
    """
    n = weights.n_observations
    counts = weights.neighbor_counts
    connected = counts > 0
    sigma = np.zeros((n, n))

    if connected.any():
        if rho_bounds is None:
            rho_bounds = car_rho_bounds(weights, row_standardized)
        lower, upper = rho_bounds
        if not lower < params.rho < upper:
            raise SingularCovarianceError(
                f"rho={params.rho:.6g} outside ({lower:.6g}, {upper:.6g}); "
                f"precision matrix is not positive definite",
                details={"rho": params.rho, "bounds": rho_bounds},
            )
        w_connected = weights.weights[np.ix_(connected, connected)]
        if row_standardized:
            w_st, m_diag = row_standardize(w_connected, warn=False)
        else:
            w_st, m_diag = w_connected, np.ones(w_connected.shape[0])
        precision = (np.eye(w_st.shape[0]) - params.rho * w_st) / m_diag[:, None]
        precision = 0.5 * (precision + precision.T)
        try:
            factor = cho_factor(precision, lower=True)
        except np.linalg.LinAlgError as exc:
            raise SingularCovarianceError(
                f"CAR precision matrix is not positive definite at rho={params.rho:.6g}"
            ) from exc
        block = params.de * cho_solve(factor, np.eye(w_st.shape[0]))
        sigma[np.ix_(connected, connected)] = 0.5 * (block + block.T)

    isolated = np.flatnonzero(~connected)
    if isolated.size:
        # extra is None when no isolated unit has a response to estimate it from
        sigma[isolated, isolated] = np.nan if params.extra is None else params.extra

    sigma[np.diag_indices(n)] += params.ie
    return sigma
