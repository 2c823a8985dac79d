"""Spatial linear models with correlated errors.

Layer 3: Tasks - User intent translation.

A spatial linear model is y = X beta + e with e ~ N(0, Sigma), where Sigma is
built from a parametric covariance family over point locations
(geostatistical models) or from a neighborhood structure (CAR models).
Covariance parameters are estimated first; beta then follows by generalized
least squares.
"""

import logging
import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Optional, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.objects.spcov import CovarianceFamily, CovarianceParams, EstimationMethod
from spatialsmith.primitives.covariance import car_covariance_matrix, covariance_matrix
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.primitives.estimation import (
    EstimationResult,
    estimate_car_parameters,
    estimate_geostatistical_parameters,
)
from spatialsmith.primitives.likelihood import GLSFit, gls
from spatialsmith.primitives.neighborhood import as_weights
from spatialsmith.tasks.config import SpatialModelConfig
from spatialsmith.utils.errors import (
    IsolatedUnitWarning,
    raise_parameter_error,
    raise_validation_error,
)

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"

ArrayOrFrame = Union[np.ndarray, pd.DataFrame]


@dataclass(frozen=True)
class DesignInfo:
    """How a design matrix was built from DataFrame columns.

    Attributes:
        predictors: Predictor column names in the source DataFrame.
        categories: Levels of every categorical predictor, in coding order.
        add_intercept: Whether an intercept column leads the design.
        coordinates: Coordinate column names, when fit from a config.
    """

    predictors: tuple[str, ...]
    categories: dict[str, list] = field(default_factory=dict)
    add_intercept: bool = True
    coordinates: Optional[tuple[str, str]] = None


def build_design_frame(
    data: pd.DataFrame,
    predictors: Sequence[str],
    add_intercept: bool = True,
    categories: Optional[Mapping[str, list]] = None,
) -> tuple[pd.DataFrame, dict[str, list]]:
    """Build a numeric design matrix from DataFrame columns.

    Non-numeric columns are treatment coded: one indicator column per level
    except the first. When ``categories`` is given (prediction), the levels
    seen at fit time are reused so new rows line up with the fitted
    coefficients.

    Args:
        data: Source DataFrame.
        predictors: Predictor column names.
        add_intercept: Prepend an ``(Intercept)`` column of ones.
        categories: Levels per categorical column from a previous call.

    Returns:
        Tuple of (design DataFrame, categories).

    Raises:
        InvalidInputError: If columns are missing, contain missing values,
            or contain levels not seen when fitting.
    """
    predictors = list(predictors)
    missing = [c for c in predictors if c not in data.columns]
    if missing:
        raise_validation_error(f"Predictor columns not found in data: {missing}")

    frame = data.loc[:, predictors].copy()
    incomplete = [c for c in predictors if frame[c].isna().any()]
    if incomplete:
        raise_validation_error(
            f"Predictor columns contain missing values: {incomplete}",
            suggestion="Drop or impute rows with missing predictors",
        )

    if categories is None:
        categories = {
            name: list(pd.Categorical(frame[name]).categories)
            for name in predictors
            if not pd.api.types.is_numeric_dtype(frame[name])
        }
    else:
        categories = dict(categories)

    for name, levels in categories.items():
        coded = pd.Categorical(frame[name], categories=levels)
        unseen = pd.isna(coded)
        if unseen.any():
            new_levels = sorted(set(frame[name][unseen].astype(str)))
            raise_validation_error(
                f"Column {name!r} has levels not seen when fitting: {new_levels}"
            )
        frame[name] = coded

    if categories:
        frame = pd.get_dummies(frame, columns=list(categories), drop_first=True, dtype=float)
    try:
        frame = frame.astype(float)
    except (TypeError, ValueError) as exc:
        raise_validation_error(f"Predictor columns must be numeric or categorical: {exc}")

    if add_intercept:
        frame.insert(0, INTERCEPT, 1.0)
    return frame, categories


def prepare_design(
    X: Optional[ArrayOrFrame],
    n: int,
    add_intercept: bool,
    coefficient_names: Optional[Sequence[str]],
) -> tuple[np.ndarray, tuple[str, ...], Optional[DesignInfo]]:
    """Design matrix, column names and DataFrame coding info for predictors."""
    if isinstance(X, pd.DataFrame):
        frame, categories = build_design_frame(X, X.columns, add_intercept)
        info = DesignInfo(
            predictors=tuple(X.columns),
            categories=categories,
            add_intercept=add_intercept,
        )
        design, names = frame.to_numpy(dtype=float), tuple(frame.columns)
    else:
        info = None
        if X is None:
            design = np.empty((n, 0))
        else:
            design = np.asarray(X, dtype=float)
            if design.ndim == 1:
                design = design[:, np.newaxis]
        if design.ndim != 2:
            raise_validation_error(
                "Predictors must be a 2-dimensional array", received=str(design.shape)
            )
        if coefficient_names is None:
            names = tuple(f"x{j + 1}" for j in range(design.shape[1]))
        else:
            names = tuple(coefficient_names)
            if len(names) != design.shape[1]:
                raise_validation_error(
                    "Need one coefficient name per predictor column",
                    expected=str(design.shape[1]),
                    received=str(len(names)),
                )
        if add_intercept:
            design = np.column_stack([np.ones(design.shape[0]), design])
            names = (INTERCEPT,) + names

    if design.shape[0] != n:
        raise_validation_error(
            "Predictors and response must have same length",
            expected=str(n),
            received=str(design.shape[0]),
        )
    if design.shape[1] == 0:
        raise_parameter_error(
            "add_intercept", add_intercept, constraint="the model needs at least one column"
        )
    return design, names, info


def prepare_response(y: Union[np.ndarray, pd.Series, Sequence[float]]) -> np.ndarray:
    """Response as a float vector; NaN marks rows to predict."""
    try:
        response = np.asarray(y, dtype=float).ravel()
    except (TypeError, ValueError) as exc:
        raise_validation_error(f"Response must be numeric: {exc}")
    if np.any(np.isinf(response)):
        raise_validation_error("Response must be finite or NaN (missing)")
    return response


@dataclass(frozen=True)
class SpatialLinearModel:
    """Fitted spatial linear model.

    Holds the data, the estimated covariance and the GLS solution. Derived
    quantities are computed on first access and cached.

    Attributes:
        design: Design matrix of every row, including rows with a missing
            response (n_rows, p).
        response: Response of every row; NaN marks rows to predict.
        observed: Boolean mask of rows with a response.
        coefficient_names: Names of the design columns.
        estimation: Covariance parameter estimation result.
        sigma: Error covariance among observed rows.
        gls_fit: GLS solution under ``sigma``.
        locations: Coordinates of every row (geostatistical models).
        weights: Neighborhood structure over every row (CAR models).
        row_standardized: Whether CAR weights were row-standardized.
        known: Covariance parameters held fixed by the caller.
        design_info: How the design was built from a DataFrame, if it was.
        row_labels: Index of the source DataFrame, if any.
        config: Configuration used by ``fit_spatial_model``.

    Example:
        >>> model = fit_geostatistical(X, y, coords, family="exponential")
        >>> model.coefficient_table
        >>> model.aic, model.aicc
    """

    design: np.ndarray
    response: np.ndarray
    observed: np.ndarray
    coefficient_names: tuple[str, ...]
    estimation: EstimationResult
    sigma: np.ndarray
    gls_fit: GLSFit
    locations: Optional[PointSet] = None
    weights: Optional[SpatialWeights] = None
    row_standardized: bool = True
    known: dict[str, float] = field(default_factory=dict)
    design_info: Optional[DesignInfo] = None
    row_labels: Optional[pd.Index] = None
    config: Optional[SpatialModelConfig] = None

    # Model identity

    @property
    def params(self) -> CovarianceParams:
        return self.estimation.params

    @property
    def family(self) -> CovarianceFamily:
        return self.estimation.params.family

    @property
    def estmethod(self) -> EstimationMethod:
        return self.estimation.method

    @property
    def is_areal(self) -> bool:
        return self.family.is_areal

    @property
    def X(self) -> np.ndarray:
        """Design matrix of the observed rows."""
        return self.design[self.observed]

    @property
    def y(self) -> np.ndarray:
        """Observed response."""
        return self.response[self.observed]

    @property
    def n_obs(self) -> int:
        return int(self.observed.sum())

    @property
    def n_coef(self) -> int:
        return len(self.coefficient_names)

    @property
    def has_missing(self) -> bool:
        return not bool(self.observed.all())

    # Coefficients

    @cached_property
    def coefficients(self) -> pd.Series:
        """GLS coefficient estimates."""
        return pd.Series(self.gls_fit.beta, index=list(self.coefficient_names), name="estimate")

    @cached_property
    def vcov(self) -> pd.DataFrame:
        """Coefficient covariance (X' Sigma^-1 X)^-1."""
        names = list(self.coefficient_names)
        return pd.DataFrame(self.gls_fit.vcov, index=names, columns=names)

    @cached_property
    def coefficient_table(self) -> pd.DataFrame:
        """Coefficient estimates with standard errors and z tests.

        The statistic is estimate / std_error and the p-value is two-sided
        against a standard normal. Both are large-sample approximations that
        ignore uncertainty in the covariance parameters; treat them with
        caution in small samples.
        """
        estimate = self.gls_fit.beta
        std_error = np.sqrt(np.diag(self.gls_fit.vcov))
        statistic = estimate / std_error
        return pd.DataFrame(
            {
                "estimate": estimate,
                "std_error": std_error,
                "statistic": statistic,
                "p_value": 2.0 * norm.sf(np.abs(statistic)),
            },
            index=list(self.coefficient_names),
        )

    @cached_property
    def covariance_table(self) -> pd.DataFrame:
        """Covariance parameter values and whether each was estimated."""
        table = self.params.to_frame()
        table["estimated"] = table["parameter"].isin(self.estimation.estimated)
        return table

    # Fitted values and residual diagnostics

    @cached_property
    def fitted_values(self) -> np.ndarray:
        """Estimated mean X beta of the observed rows."""
        return self.X @ self.gls_fit.beta

    @property
    def residuals(self) -> np.ndarray:
        """Raw residuals y - X beta."""
        return self.gls_fit.residuals

    @cached_property
    def pearson_residuals(self) -> np.ndarray:
        """Residuals decorrelated by the Cholesky factor of Sigma."""
        return self.gls_fit.whiten(self.gls_fit.residuals)

    @cached_property
    def hat_values(self) -> np.ndarray:
        """Leverage of each observation in the decorrelated regression."""
        whitened = self.gls_fit.whiten(self.X)
        return np.sum((whitened @ self.gls_fit.vcov) * whitened, axis=1)

    @cached_property
    def standardized_residuals(self) -> np.ndarray:
        """Decorrelated residuals scaled to unit variance."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return self.pearson_residuals / np.sqrt(1.0 - self.hat_values)

    @cached_property
    def cooks_distance(self) -> np.ndarray:
        """Cook's distance of each observation."""
        h = self.hat_values
        with np.errstate(divide="ignore", invalid="ignore"):
            return self.standardized_residuals**2 * h / (self.n_coef * (1.0 - h))

    # Fit statistics

    @property
    def minus2loglik(self) -> float:
        return self.estimation.minus2loglik

    @property
    def log_likelihood(self) -> float:
        """Maximized (restricted) log-likelihood; NaN for sv-wls fits."""
        return -0.5 * self.minus2loglik

    @property
    def n_params(self) -> int:
        """Parameter count k used by AIC.

        Estimated covariance parameters, plus the coefficients under ML.
        """
        k = self.estimation.n_estimated
        if self.estmethod is EstimationMethod.ML:
            k += self.n_coef
        return k

    @property
    def n_effective(self) -> int:
        """Sample size used by AICc: n - p under REML, n otherwise."""
        if self.estmethod is EstimationMethod.REML:
            return self.n_obs - self.n_coef
        return self.n_obs

    @property
    def aic(self) -> float:
        """-2 logLik + 2k."""
        return self.minus2loglik + 2.0 * self.n_params

    @property
    def aicc(self) -> float:
        """AIC with small-sample correction 2k(k+1) / (n_eff - k - 1)."""
        if not self.estmethod.is_likelihood:
            return np.nan
        k = self.n_params
        denominator = self.n_effective - k - 1
        if denominator <= 0:
            return np.inf
        return self.aic + 2.0 * k * (k + 1) / denominator

    def summary(self) -> str:
        """Text summary of coefficients, covariance parameters and fit."""
        lines = [
            f"Spatial linear model: {self.family.value} covariance, "
            f"{self.estmethod.value} estimation",
            f"Observations: {self.n_obs}  Coefficients: {self.n_coef}",
        ]
        if self.has_missing:
            lines.append(f"Missing responses (predictable): {int((~self.observed).sum())}")
        lines += [
            "",
            "Coefficients (large-sample normal approximation):",
            self.coefficient_table.to_string(float_format=lambda v: f"{v:.4g}"),
            "",
            "Covariance parameters:",
            self.covariance_table.to_string(index=False, float_format=lambda v: f"{v:.4g}"),
            "",
            f"logLik: {self.log_likelihood:.4f}  AIC: {self.aic:.4f}  "
            f"AICc: {self.aicc:.4f}  k: {self.n_params}",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SpatialLinearModel(family={self.family.value}, "
            f"estmethod={self.estmethod.value}, n={self.n_obs}, p={self.n_coef}, "
            f"AIC={self.aic:.4f})"
        )


def fit_geostatistical(
    X: Optional[ArrayOrFrame],
    y: Union[np.ndarray, pd.Series],
    coordinates: Union[PointSet, np.ndarray],
    family: Union[str, CovarianceFamily] = "exponential",
    estmethod: Union[str, EstimationMethod] = "reml",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    add_intercept: bool = True,
    coefficient_names: Optional[Sequence[str]] = None,
    initial: Optional[Mapping[str, float]] = None,
) -> SpatialLinearModel:
    """Fit a spatial linear model for point-referenced data.

    Rows with a missing (NaN) response are left out of estimation and kept
    on the model so ``predict(model)`` can predict them.

    Args:
        X: Predictors (n, q) as an array or DataFrame; None for an
            intercept-only model.
        y: Response (n,); NaN marks rows to predict.
        coordinates: PointSet or (n, 2) coordinates.
        family: Covariance family ('exponential', 'spherical', 'gaussian',
            'triangular', 'matern', 'cauchy' or 'none').
        estmethod: 'reml' (default), 'ml' or 'sv-wls'.
        known: Covariance parameters held fixed, e.g. ``{"ie": 0.0}``.
        max_iter: Iteration bound for the optimizer.
        add_intercept: Prepend an intercept column.
        coefficient_names: Names of the columns of an array ``X``.
        initial: Starting values for the optimizer.

    Returns:
        Fitted SpatialLinearModel.

    Raises:
        InvalidInputError: For mismatched lengths or degenerate data.
        ParameterError: For an areal or unknown family.
        NonConvergenceError: If estimation does not converge.
        SingularCovarianceError: If the fitted covariance is singular.

    Example:
        >>> rng = np.random.default_rng(0)
        >>> coords = rng.uniform(0, 10, size=(50, 2))
        >>> y = rng.normal(size=50)
        >>> model = fit_geostatistical(None, y, coords, family="exponential")
        >>> model.params.range > 0
        True
    """
    family = CovarianceFamily.parse(family)
    if family.is_areal:
        raise_parameter_error(
            "family", family.value, constraint="use fit_areal for areal models"
        )
    response = prepare_response(y)
    design, names, info = prepare_design(X, response.shape[0], add_intercept, coefficient_names)
    try:
        points = as_pointset(coordinates, n_expected=response.shape[0])
    except ValueError as exc:
        raise_validation_error(f"Invalid coordinates: {exc}")

    observed = ~np.isnan(response)
    distances = pairwise_distances(points.subset(observed))

    return fit_from_distances(
        design,
        response,
        names,
        points,
        distances,
        family=family,
        estmethod=estmethod,
        known=known,
        max_iter=max_iter,
        initial=initial,
        design_info=info,
        row_labels=X.index if isinstance(X, pd.DataFrame) else None,
    )


def fit_from_distances(
    design: np.ndarray,
    response: np.ndarray,
    coefficient_names: tuple[str, ...],
    locations: PointSet,
    distances: np.ndarray,
    family: Union[str, CovarianceFamily] = "exponential",
    estmethod: Union[str, EstimationMethod] = "reml",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    initial: Optional[Mapping[str, float]] = None,
    design_info: Optional[DesignInfo] = None,
    row_labels: Optional[pd.Index] = None,
) -> SpatialLinearModel:
    """Fit a geostatistical model from a prepared design and distance matrix.

    ``distances`` covers the observed rows only (those with a non-NaN
    response), so one matrix can be shared by fits of several families.
    """
    observed = ~np.isnan(response)
    X_obs, y_obs = design[observed], response[observed]

    estimation = estimate_geostatistical_parameters(
        X_obs, y_obs, distances, family, estmethod, known, max_iter, initial
    )
    sigma = covariance_matrix(estimation.params, distances)

    model = SpatialLinearModel(
        design=design,
        response=response,
        observed=observed,
        coefficient_names=tuple(coefficient_names),
        estimation=estimation,
        sigma=sigma,
        gls_fit=gls(X_obs, y_obs, sigma),
        locations=locations,
        known=dict(known or {}),
        design_info=design_info,
        row_labels=row_labels,
    )
    logger.info(f"Fitted {model!r}")
    return model


def fit_areal(
    X: Optional[ArrayOrFrame],
    y: Union[np.ndarray, pd.Series],
    weights,
    family: Union[str, CovarianceFamily] = "car",
    estmethod: Union[str, EstimationMethod] = "reml",
    row_standardize: bool = True,
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    add_intercept: bool = True,
    coefficient_names: Optional[Sequence[str]] = None,
    estimate_ie: bool = False,
) -> SpatialLinearModel:
    """Fit a conditional autoregressive (CAR) model for areal data.

    Every row is one areal unit. Units with a missing (NaN) response still
    shape the neighborhood structure and can be predicted afterwards.
    Units without neighbors trigger an IsolatedUnitWarning and receive
    their own independent variance ``extra``.

    Args:
        X: Predictors (n, q) as an array or DataFrame; None for an
            intercept-only model.
        y: Response (n,); NaN marks units to predict.
        weights: SpatialWeights, PolygonSet (queen contiguity), adjacency
            list or 0/1 matrix over the n units.
        family: 'car'.
        estmethod: 'reml' (default) or 'ml'.
        row_standardize: Row-standardize the weights.
        known: Covariance parameters held fixed (de, ie, rho, extra).
        max_iter: Iteration bound for the optimizer.
        add_intercept: Prepend an intercept column.
        coefficient_names: Names of the columns of an array ``X``.
        estimate_ie: Estimate a nugget; otherwise ie is fixed at zero.

    Returns:
        Fitted SpatialLinearModel.

    Raises:
        InvalidInputError: For mismatched lengths, asymmetric adjacency or
            degenerate data.
        ParameterError: For a family other than 'car'.
        SingularCovarianceError: If a fixed rho is outside its admissible
            interval.
        NonConvergenceError: If estimation does not converge.
    """
    if str(getattr(family, "value", family)).lower() == "sar":
        raise_parameter_error(
            "family", "sar", valid_values=["car"],
            constraint="simultaneous autoregressive models are not supported",
        )
    family = CovarianceFamily.parse(family)
    if not family.is_areal:
        raise_parameter_error(
            "family", family.value, valid_values=["car"],
            constraint="use fit_geostatistical for point-referenced families",
        )

    response = prepare_response(y)
    n_units = response.shape[0]
    design, names, info = prepare_design(X, n_units, add_intercept, coefficient_names)
    weights = as_weights(weights, n=n_units)
    if weights.has_isolated:
        warnings.warn(
            f"{weights.isolated.size} unit(s) have no neighbors "
            f"(indices {weights.isolated.tolist()}); they are given their own "
            f"independent variance",
            IsolatedUnitWarning,
            stacklevel=2,
        )

    observed = ~np.isnan(response)
    X_obs, y_obs = design[observed], response[observed]
    estimation = estimate_car_parameters(
        X_obs,
        y_obs,
        weights,
        observed=observed,
        row_standardized=row_standardize,
        method=estmethod,
        known=known,
        max_iter=max_iter,
        estimate_ie=estimate_ie,
    )
    unit_sigma = car_covariance_matrix(
        weights, estimation.params, row_standardize, estimation.rho_bounds
    )
    sigma = unit_sigma[np.ix_(observed, observed)]

    model = SpatialLinearModel(
        design=design,
        response=response,
        observed=observed,
        coefficient_names=names,
        estimation=estimation,
        sigma=sigma,
        gls_fit=gls(X_obs, y_obs, sigma),
        weights=weights,
        row_standardized=row_standardize,
        known=dict(known or {}),
        design_info=info,
        row_labels=X.index if isinstance(X, pd.DataFrame) else None,
    )
    logger.info(f"Fitted {model!r}")
    return model


def fit_spatial_model(data: pd.DataFrame, config: SpatialModelConfig) -> SpatialLinearModel:
    """Fit a spatial linear model to DataFrame columns named by a config.

    Args:
        data: One row per observation (or areal unit).
        config: Validated model configuration.

    Returns:
        Fitted SpatialLinearModel carrying the config for ``predict_frame``.

    Raises:
        InvalidInputError: If named columns are missing or invalid.

    Example:
        >>> config = SpatialModelConfig(
        ...     response="y", predictors=("x",), coordinates=("east", "north")
        ... )
        >>> model = fit_spatial_model(df, config)
    """
    if config.response not in data.columns:
        raise_validation_error(f"Response column not found in data: {config.response!r}")
    predictors = list(config.predictors or ())
    missing = [c for c in predictors if c not in data.columns]
    if missing:
        raise_validation_error(f"Predictor columns not found in data: {missing}")
    X = data.loc[:, predictors]
    y = data[config.response]

    if config.family.is_areal:
        model = fit_areal(
            X,
            y,
            as_weights(config.weights, n=len(data)),
            family=config.family,
            estmethod=config.estmethod,
            row_standardize=config.row_standardize,
            known=config.known,
            max_iter=config.max_iter,
            add_intercept=config.add_intercept,
            estimate_ie=config.estimate_ie,
        )
    else:
        try:
            points = PointSet.from_frame(data, config.coordinates)
        except ValueError as exc:
            raise_validation_error(str(exc))
        model = fit_geostatistical(
            X,
            y,
            points,
            family=config.family,
            estmethod=config.estmethod,
            known=config.known,
            max_iter=config.max_iter,
            add_intercept=config.add_intercept,
        )

    info = replace(model.design_info, coordinates=config.coordinates)
    return replace(model, design_info=info, row_labels=data.index, config=config)
