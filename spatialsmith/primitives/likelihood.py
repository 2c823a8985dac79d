"""Generalized least squares and Gaussian log-likelihoods.

All solves go through Cholesky factors. Each factorization is checked for
near-singularity through its pivots before it is used for a solve.
"""

from dataclasses import dataclass
from typing import Union

import numpy as np
from scipy.linalg import cho_factor, cho_solve, solve_triangular

from spatialsmith.objects.spcov import EstimationMethod
from spatialsmith.utils.errors import SingularCovarianceError

LOG_2PI = np.log(2.0 * np.pi)

# Squared ratio of smallest to largest Cholesky pivot; a cheap lower
# bound proxy for the reciprocal condition number.
PIVOT_TOLERANCE = 1e-13


def cholesky_factor(
    matrix: np.ndarray, name: str = "covariance matrix"
) -> tuple[np.ndarray, bool]:
    """Lower Cholesky factor of a symmetric positive definite matrix.

    Args:
        matrix: Symmetric (n, n) matrix.
        name: Matrix name used in error messages.

    Returns:
        Factor tuple accepted by ``scipy.linalg.cho_solve``.

    Raises:
        SingularCovarianceError: If the matrix has non-finite entries, is
            not positive definite, or its pivots indicate near-singularity.
    """
    if not np.all(np.isfinite(matrix)):
        raise SingularCovarianceError(f"{name} has non-finite entries")
    try:
        factor = cho_factor(matrix, lower=True, check_finite=False)
    except np.linalg.LinAlgError as exc:
        raise SingularCovarianceError(
            f"{name} is not positive definite",
            suggestion="Duplicate locations need a positive nugget (ie > 0)",
        ) from exc

    pivots = np.abs(np.diag(factor[0]))
    ratio = (pivots.min() / pivots.max()) ** 2 if pivots.max() > 0 else 0.0
    if not ratio > PIVOT_TOLERANCE:
        raise SingularCovarianceError(
            f"{name} is numerically singular (pivot ratio {ratio:.3g})",
            suggestion="Duplicate locations need a positive nugget (ie > 0)",
            details={"pivot_ratio": ratio},
        )
    return factor


def _log_det(factor: tuple[np.ndarray, bool]) -> float:
    return float(2.0 * np.sum(np.log(np.diag(factor[0]))))


@dataclass(frozen=True)
class GLSFit:
    """Generalized least squares solution for a fixed covariance matrix.

    Attributes:
        beta: Coefficient estimates (p,).
        vcov: Coefficient covariance (X' Sigma^-1 X)^-1 (p, p).
        residuals: Raw residuals y - X beta (n,).
        sigma_factor: Cholesky factor of Sigma.
        xtsix_factor: Cholesky factor of X' Sigma^-1 X.
        sigma_inv_x: Sigma^-1 X (n, p).
        quad_form: r' Sigma^-1 r.
    """

    beta: np.ndarray
    vcov: np.ndarray
    residuals: np.ndarray
    sigma_factor: tuple[np.ndarray, bool]
    xtsix_factor: tuple[np.ndarray, bool]
    sigma_inv_x: np.ndarray
    quad_form: float

    @property
    def n_obs(self) -> int:
        return int(self.residuals.shape[0])

    @property
    def n_coef(self) -> int:
        return int(self.beta.shape[0])

    @property
    def log_det_sigma(self) -> float:
        return _log_det(self.sigma_factor)

    @property
    def log_det_xtsix(self) -> float:
        return _log_det(self.xtsix_factor)

    def minus2loglik(self, method: Union[str, EstimationMethod] = "reml") -> float:
        """Minus twice the (restricted) Gaussian log-likelihood.

        REML: log|S| + log|X'S^-1X| + r'S^-1r + (n - p) log(2 pi)
        ML:   log|S| + r'S^-1r + n log(2 pi)
        """
        method = EstimationMethod.parse(method)
        if method is EstimationMethod.REML:
            return (
                self.log_det_sigma
                + self.log_det_xtsix
                + self.quad_form
                + (self.n_obs - self.n_coef) * LOG_2PI
            )
        if method is EstimationMethod.ML:
            return self.log_det_sigma + self.quad_form + self.n_obs * LOG_2PI
        raise ValueError(f"No likelihood is defined for method {method.value}")

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        """Sigma^-1 rhs."""
        return cho_solve(self.sigma_factor, rhs, check_finite=False)

    def whiten(self, rhs: np.ndarray) -> np.ndarray:
        """L^-1 rhs, with Sigma = L L'."""
        return solve_triangular(self.sigma_factor[0], rhs, lower=True, check_finite=False)


def gls(X: np.ndarray, y: np.ndarray, sigma: np.ndarray) -> GLSFit:
    """Solve the generalized least squares problem.

    beta = (X' Sigma^-1 X)^-1 X' Sigma^-1 y

    Args:
        X: Design matrix (n, p).
        y: Response (n,).
        sigma: Error covariance matrix (n, n).

    Returns:
        GLSFit with estimates and the factors needed for likelihoods and
        prediction.

    Raises:
        SingularCovarianceError: If Sigma or X' Sigma^-1 X is singular.
    """
    sigma_factor = cholesky_factor(sigma)
    sigma_inv_x = cho_solve(sigma_factor, X, check_finite=False)
    xtsix = X.T @ sigma_inv_x
    xtsix = 0.5 * (xtsix + xtsix.T)
    xtsix_factor = cholesky_factor(xtsix, name="X' Sigma^-1 X")

    beta = cho_solve(xtsix_factor, sigma_inv_x.T @ y, check_finite=False)
    vcov = cho_solve(xtsix_factor, np.eye(X.shape[1]), check_finite=False)
    residuals = y - X @ beta
    quad_form = float(residuals @ cho_solve(sigma_factor, residuals, check_finite=False))

    return GLSFit(
        beta=beta,
        vcov=0.5 * (vcov + vcov.T),
        residuals=residuals,
        sigma_factor=sigma_factor,
        xtsix_factor=xtsix_factor,
        sigma_inv_x=sigma_inv_x,
        quad_form=quad_form,
    )
