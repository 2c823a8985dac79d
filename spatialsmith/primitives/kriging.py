"""Best linear unbiased prediction (universal kriging) primitives.

Given a GLS solution for the observed data, predictions at new locations
combine the estimated mean with the covariance-weighted residuals:

    y0 = x0' beta + c0' Sigma^-1 (y - X beta)

with prediction variance

    sigma0^2 - c0' Sigma^-1 c0 + d' (X' Sigma^-1 X)^-1 d,   d = x0 - X' Sigma^-1 c0.

The same formulas serve point-referenced and areal models; only the way
``c0`` and ``sigma0^2`` are built differs.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.stats import norm

from spatialsmith.primitives.likelihood import GLSFit
from spatialsmith.utils.errors import raise_parameter_error, raise_validation_error


@dataclass
class KrigingResult:
    """Container for predictions and their uncertainty.

    Attributes:
        predictions: Predicted values at new locations (m,).
        variance: Prediction variance of a new observation (m,).
        mean_variance: Variance of the estimated mean x0' beta (m,).
        weights: Optional kriging weights Sigma^-1 c0 (n, m).
    """

    predictions: np.ndarray
    variance: np.ndarray
    mean_variance: np.ndarray
    weights: Optional[np.ndarray] = None

    def interval(self, kind: str = "prediction", level: float = 0.95) -> tuple[np.ndarray, np.ndarray]:
        """Symmetric normal interval around the predictions.

        Args:
            kind: 'prediction' uses the prediction variance, 'confidence'
                the variance of the estimated mean.
            level: Coverage level in (0, 1).

        Returns:
            Tuple (lower, upper).
        """
        if not 0 < level < 1:
            raise_parameter_error("level", level, constraint="0 < level < 1")
        if kind == "prediction":
            se = np.sqrt(self.variance)
        elif kind == "confidence":
            se = np.sqrt(self.mean_variance)
        else:
            raise_parameter_error(
                "interval", kind, valid_values=["confidence", "prediction"]
            )
        z = norm.ppf(0.5 + level / 2.0)
        return self.predictions - z * se, self.predictions + z * se

    def __repr__(self) -> str:
        """String representation."""
        if len(self.predictions) == 0:
            return "KrigingResult(n_predictions=0)"
        return (
            f"KrigingResult(n_predictions={len(self.predictions)}, "
            f"mean_prediction={self.predictions.mean():.4f}, "
            f"mean_variance={self.variance.mean():.4f})"
        )


def blup(
    fit: GLSFit,
    cross_cov: np.ndarray,
    new_X: np.ndarray,
    new_variance: np.ndarray,
    return_weights: bool = False,
) -> KrigingResult:
    """Best linear unbiased prediction at new locations.

    Args:
        fit: GLS solution for the observed data.
        cross_cov: Covariance between observed and new locations (n, m).
        new_X: Design rows of the new locations (m, p).
        new_variance: Marginal variance of a new observation (m,).
        return_weights: Keep Sigma^-1 c0 in the result.

    Returns:
        KrigingResult with predictions and variances.

    Raises:
        InvalidInputError: If array shapes are inconsistent.
    """
    cross_cov = np.asarray(cross_cov, dtype=float)
    new_X = np.atleast_2d(np.asarray(new_X, dtype=float))
    new_variance = np.asarray(new_variance, dtype=float).ravel()
    n, p = fit.n_obs, fit.n_coef
    m = new_X.shape[0]

    if cross_cov.shape != (n, m):
        raise_validation_error(
            "Cross-covariance has wrong shape",
            expected=str((n, m)),
            received=str(cross_cov.shape),
        )
    if new_X.shape[1] != p:
        raise_validation_error(
            "New design rows must have one column per coefficient",
            expected=str(p),
            received=str(new_X.shape[1]),
        )
    if new_variance.shape[0] != m:
        raise_validation_error(
            "Need one marginal variance per new location",
            expected=str(m),
            received=str(new_variance.shape[0]),
        )

    weights = fit.solve(cross_cov)
    predictions = new_X @ fit.beta + weights.T @ fit.residuals

    # d = x0 - X' Sigma^-1 c0, one row per new location
    d = new_X - cross_cov.T @ fit.sigma_inv_x
    variance = (
        new_variance
        - np.sum(cross_cov * weights, axis=0)
        + np.sum((d @ fit.vcov) * d, axis=1)
    )
    mean_variance = np.sum((new_X @ fit.vcov) * new_X, axis=1)

    return KrigingResult(
        predictions=predictions,
        variance=np.maximum(variance, 0.0),
        mean_variance=np.maximum(mean_variance, 0.0),
        weights=weights if return_weights else None,
    )
