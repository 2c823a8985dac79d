"""Cross-validation for fitted spatial linear models.

Covariance parameters stay at their fitted values; the coefficients are
re-estimated by GLS without the held-out observations before they are
predicted.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from spatialsmith.primitives.kriging import blup
from spatialsmith.primitives.likelihood import gls
from spatialsmith.utils.errors import raise_parameter_error, raise_validation_error
from spatialsmith.utils.optional_imports import optional_import_single, require

SKLEARN_AVAILABLE, KFold = optional_import_single("sklearn.model_selection", "KFold")

logger = logging.getLogger(__name__)


@dataclass
class CrossValidationResult:
    """Results from cross-validation.

    Attributes:
        predictions: Cross-validated predictions (n_samples,).
        variance: Prediction variance of each held-out observation.
        errors: Prediction errors (observed - predicted).
        mae: Mean Absolute Error.
        rmspe: Root Mean Squared Prediction Error.
        r2: Coefficient of determination (R²).
        mean_error: Mean error (bias).
        std_error: Standard deviation of errors.
    """

    predictions: np.ndarray
    variance: np.ndarray
    errors: np.ndarray
    mae: float
    rmspe: float
    r2: float
    mean_error: float
    std_error: float

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"CrossValidationResult(MAE={self.mae:.4f}, RMSPE={self.rmspe:.4f}, "
            f"R²={self.r2:.4f}, Bias={self.mean_error:.4f})"
        )


def _summarize(
    y: np.ndarray, predictions: np.ndarray, variance: np.ndarray
) -> CrossValidationResult:
    errors = y - predictions

    ss_res = np.sum(errors**2)
    ss_tot = np.sum((y - np.mean(y)) ** 2)
    r2 = float(1.0 - (ss_res / ss_tot)) if ss_tot > 0 else 0.0

    return CrossValidationResult(
        predictions=predictions,
        variance=variance,
        errors=errors,
        mae=float(np.mean(np.abs(errors))),
        rmspe=float(np.sqrt(np.mean(errors**2))),
        r2=r2,
        mean_error=float(np.mean(errors)),
        std_error=float(np.std(errors)),
    )


def _predict_held_out(
    X: np.ndarray, y: np.ndarray, sigma: np.ndarray, test: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    train = np.ones(X.shape[0], dtype=bool)
    train[test] = False

    fit = gls(X[train], y[train], sigma[np.ix_(train, train)])
    result = blup(
        fit,
        sigma[np.ix_(train, test)],
        X[test],
        np.diag(sigma)[test],
    )
    return result.predictions, result.variance


def _validated(X, y, sigma, n_held_out: int):
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    sigma = np.asarray(sigma, dtype=float)
    n_samples, n_coef = X.shape

    if sigma.shape != (n_samples, n_samples) or y.shape[0] != n_samples:
        raise_validation_error(
            "Design, response and covariance sizes differ",
            expected=f"{n_samples} observations",
            received=f"y: {y.shape[0]}, sigma: {sigma.shape}",
        )
    if n_samples - n_held_out < n_coef + 1:
        raise_validation_error(
            f"Need at least {n_coef + n_held_out + 1} observations for "
            f"cross-validation, got {n_samples}"
        )
    return X, y, sigma


def leave_one_out_cross_validation(
    X: np.ndarray, y: np.ndarray, sigma: np.ndarray
) -> CrossValidationResult:
    """Perform leave-one-out cross-validation under a fixed covariance.

    For each observation, solve GLS on all other observations and predict
    the held-out one with its BLUP.

    Args:
        X: Design matrix (n, p).
        y: Response (n,).
        sigma: Covariance matrix of the observations (n, n).

    Returns:
        CrossValidationResult with metrics and predictions.

    Raises:
        InvalidInputError: If there are too few observations to hold one out.
    """
    X, y, sigma = _validated(X, y, sigma, n_held_out=1)
    n_samples = X.shape[0]

    predictions = np.zeros(n_samples)
    variance = np.zeros(n_samples)

    # Leave-one-out: predict each observation using all others
    for i in range(n_samples):
        test = np.array([i])
        predictions[test], variance[test] = _predict_held_out(X, y, sigma, test)

    result = _summarize(y, predictions, variance)
    logger.info(
        f"Leave-one-out cross-validation on {n_samples} observations: "
        f"RMSPE={result.rmspe:.4g}, R²={result.r2:.4f}"
    )
    return result


def k_fold_cross_validation(
    X: np.ndarray,
    y: np.ndarray,
    sigma: np.ndarray,
    n_folds: int = 5,
    random_state: Optional[int] = None,
) -> CrossValidationResult:
    """Perform k-fold cross-validation under a fixed covariance.

    Splits observations into shuffled folds; each fold is predicted jointly
    from a GLS fit on the remaining folds. Cheaper than leave-one-out for
    large data sets since only ``n_folds`` factorizations are needed.

    Args:
        X: Design matrix (n, p).
        y: Response (n,).
        sigma: Covariance matrix of the observations (n, n).
        n_folds: Number of folds (default: 5).
        random_state: Random seed for fold splitting.

    Returns:
        CrossValidationResult with metrics and predictions.

    Raises:
        DependencyError: If scikit-learn is not available.
        ParameterError: If n_folds is smaller than 2.
        InvalidInputError: If a training split would be too small.
    """
    require(SKLEARN_AVAILABLE, "scikit-learn", "cv")

    if n_folds < 2:
        raise_parameter_error("n_folds", n_folds, constraint="at least 2")
    n_samples = np.asarray(y).size
    if n_samples < n_folds:
        raise_validation_error(
            f"Need at least {n_folds} samples for {n_folds}-fold CV, got {n_samples}"
        )
    X, y, sigma = _validated(X, y, sigma, n_held_out=-(-n_samples // n_folds))

    predictions = np.zeros(n_samples)
    variance = np.zeros(n_samples)

    kf = KFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    for _, test_idx in kf.split(X):
        predictions[test_idx], variance[test_idx] = _predict_held_out(X, y, sigma, test_idx)

    result = _summarize(y, predictions, variance)
    logger.info(
        f"{n_folds}-fold cross-validation on {n_samples} observations: "
        f"RMSPE={result.rmspe:.4g}, R²={result.r2:.4f}"
    )
    return result


def loocv(model) -> CrossValidationResult:
    """Leave-one-out cross-validation of a fitted SpatialLinearModel.

    Example:
        >>> cv = loocv(model)
        >>> print(f"RMSPE: {cv.rmspe:.2f}, R²: {cv.r2:.3f}")
    """
    return leave_one_out_cross_validation(model.X, model.y, model.sigma)


def kfold_cv(
    model, n_folds: int = 5, random_state: Optional[int] = None
) -> CrossValidationResult:
    """k-fold cross-validation of a fitted SpatialLinearModel."""
    return k_fold_cross_validation(
        model.X, model.y, model.sigma, n_folds=n_folds, random_state=random_state
    )
