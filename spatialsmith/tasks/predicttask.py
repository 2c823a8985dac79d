"""Prediction from fitted spatial linear models.

Layer 3: Tasks - User intent translation.
"""

import logging
from collections.abc import Sequence
from typing import Optional, Union

import numpy as np
import pandas as pd

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.primitives.covariance import car_covariance_matrix, cross_covariance
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.primitives.kriging import KrigingResult, blup
from spatialsmith.primitives.likelihood import gls
from spatialsmith.primitives.neighborhood import weights_from_matrix
from spatialsmith.tasks.config import INTERVAL_TYPES, SpatialModelConfig
from spatialsmith.tasks.spatialmodeltask import SpatialLinearModel, build_design_frame
from spatialsmith.utils.errors import raise_parameter_error, raise_validation_error

logger = logging.getLogger(__name__)


def _new_design(
    model: SpatialLinearModel,
    new_predictors: Optional[Union[np.ndarray, pd.DataFrame]],
    n_new: Optional[int],
) -> np.ndarray:
    """Design rows for new locations, aligned to the fitted coefficients."""
    add_intercept = model.coefficient_names[:1] == ("(Intercept)",)
    n_columns = model.n_coef - int(add_intercept)

    if new_predictors is None:
        if n_columns:
            raise_validation_error(
                "new_predictors is required for a model with predictors",
                expected=f"{n_columns} predictor column(s)",
            )
        return np.ones((n_new, 1))

    if isinstance(new_predictors, pd.DataFrame) and model.design_info is not None:
        info = model.design_info
        frame, _ = build_design_frame(
            new_predictors, info.predictors, info.add_intercept, info.categories
        )
        missing = [c for c in model.coefficient_names if c not in frame.columns]
        if missing:
            raise_validation_error(f"New data lacks design columns: {missing}")
        return frame.loc[:, list(model.coefficient_names)].to_numpy(dtype=float)

    design = np.asarray(new_predictors, dtype=float)
    if design.ndim == 1:
        design = design[:, np.newaxis] if n_columns == 1 else design[np.newaxis, :]
    if design.ndim != 2 or design.shape[1] != n_columns:
        raise_validation_error(
            "New predictors must have one column per fitted predictor",
            expected=str(n_columns),
            received=str(design.shape),
        )
    if add_intercept:
        design = np.column_stack([np.ones(design.shape[0]), design])
    return design


def _predict_missing(model: SpatialLinearModel) -> tuple[np.ndarray, np.ndarray]:
    if not model.has_missing:
        raise_validation_error(
            "No new data given and the model has no missing responses to predict",
            suggestion="Pass new_predictors and new_locations",
        )
    return model.design[~model.observed], np.flatnonzero(~model.observed)


def _predict_geostatistical(
    model: SpatialLinearModel,
    new_predictors: Optional[Union[np.ndarray, pd.DataFrame]],
    new_locations: Optional[Union[PointSet, np.ndarray]],
) -> tuple[KrigingResult, np.ndarray]:
    if new_locations is None:
        if new_predictors is not None:
            raise_validation_error("new_locations is required with new_predictors")
        new_X, rows = _predict_missing(model)
        new_points = model.locations.subset(~model.observed)
    else:
        try:
            new_points = as_pointset(new_locations)
        except ValueError as exc:
            raise_validation_error(f"Invalid new locations: {exc}")
        new_X = _new_design(model, new_predictors, new_points.n_points)
        rows = np.arange(new_points.n_points)
        if new_X.shape[0] != new_points.n_points:
            raise_validation_error(
                "New predictors and new locations must have same length",
                expected=str(new_points.n_points),
                received=str(new_X.shape[0]),
            )

    if not np.all(np.isfinite(new_X)):
        raise_validation_error("New predictor values must be finite")

    params = model.params
    distances = pairwise_distances(model.locations.subset(model.observed), new_points)
    result = blup(
        model.gls_fit,
        cross_covariance(params, distances),
        new_X,
        np.full(new_X.shape[0], params.sill),
    )
    return result, rows


def _extend_weights(model: SpatialLinearModel, adjacency: Sequence[Sequence[int]]):
    """Weight matrix over fitted units followed by new units.

    Entry ``k`` of ``adjacency`` lists the neighbors of new unit ``k``:
    indices below the number of fitted units refer to fitted units, larger
    indices to other new units.
    """
    n_fitted = model.weights.n_observations
    n_new = len(adjacency)
    n_total = n_fitted + n_new
    extended = np.zeros((n_total, n_total))
    extended[:n_fitted, :n_fitted] = model.weights.weights

    for k, neighbors in enumerate(adjacency):
        unit = n_fitted + k
        for j in neighbors:
            j = int(j)
            if not 0 <= j < n_total or j == unit:
                raise_validation_error(
                    f"Invalid neighbor {j} for new unit {k}",
                    expected=f"indices in [0, {n_total}) other than {unit}",
                )
            extended[unit, j] = extended[j, unit] = 1.0
    return weights_from_matrix(extended)


def _predict_areal(
    model: SpatialLinearModel,
    new_predictors: Optional[Union[np.ndarray, pd.DataFrame]],
    new_locations: Optional[Sequence[Sequence[int]]],
) -> tuple[KrigingResult, np.ndarray]:
    observed_units = np.flatnonzero(model.observed)
    if new_locations is None:
        if new_predictors is not None:
            raise_validation_error(
                "new_locations (adjacency of the new units) is required with new_predictors"
            )
        new_X, rows = _predict_missing(model)
        weights = model.weights
        target_units = rows
    else:
        weights = _extend_weights(model, new_locations)
        n_new = len(new_locations)
        new_X = _new_design(model, new_predictors, n_new)
        if new_X.shape[0] != n_new:
            raise_validation_error(
                "New predictors and new units must have same length",
                expected=str(n_new),
                received=str(new_X.shape[0]),
            )
        rows = np.arange(n_new)
        target_units = model.weights.n_observations + rows

    if not np.all(np.isfinite(new_X)):
        raise_validation_error("New predictor values must be finite")

    unit_sigma = car_covariance_matrix(
        weights,
        model.params,
        model.row_standardized,
        model.estimation.rho_bounds if weights is model.weights else None,
    )
    sigma = unit_sigma[np.ix_(observed_units, observed_units)]
    fit = model.gls_fit if weights is model.weights else gls(model.X, model.y, sigma)

    new_variance = np.diag(unit_sigma)[target_units].copy()
    # Units without an estimated variance get the largest fitted one
    unsupported = np.isnan(new_variance)
    if unsupported.any():
        new_variance[unsupported] = np.nanmax(np.diag(unit_sigma))
        logger.info(
            f"{int(unsupported.sum())} predicted unit(s) have no neighbors and no "
            f"estimated isolated-unit variance; using the largest fitted variance"
        )

    result = blup(
        fit,
        unit_sigma[np.ix_(observed_units, target_units)],
        new_X,
        new_variance,
    )
    return result, rows


def predict(
    model: SpatialLinearModel,
    new_predictors: Optional[Union[np.ndarray, pd.DataFrame]] = None,
    new_locations=None,
    interval: str = "none",
    level: float = 0.95,
    se_fit: bool = False,
) -> pd.DataFrame:
    """Best linear unbiased prediction from a fitted model.

    With no new data, predicts the rows whose response was missing at fit
    time. Otherwise:

    - geostatistical models take ``new_locations`` as a PointSet or (m, 2)
      coordinates;
    - CAR models take ``new_locations`` as an adjacency list, one entry per
      new unit, listing neighbors by fitted-unit index (indices past the
      fitted units refer to other new units). The covariance is rebuilt on
      the extended weight matrix with the fitted parameters. A new unit
      without neighbors is predicted by the mean alone with the largest
      available variance.

    Args:
        model: Fitted SpatialLinearModel.
        new_predictors: Predictor values of the new locations, without the
            intercept; a DataFrame for models fit from a DataFrame. May be
            None for intercept-only models.
        new_locations: New locations or new-unit adjacency.
        interval: 'none', 'confidence' (for the mean x0' beta) or
            'prediction' (for a new observation).
        level: Interval coverage level.
        se_fit: Include the standard error matching the interval type.

    Returns:
        DataFrame with column ``fit`` and, when requested, ``se_fit``,
        ``lower`` and ``upper``.

    Raises:
        InvalidInputError: If new data are inconsistent with the model.
        ParameterError: For an invalid interval type or level.
        SingularCovarianceError: If the rebuilt CAR covariance is not
            positive definite.

    Example:
        >>> predict(model, new_X, new_coords, interval="prediction", level=0.9)
    """
    if interval not in INTERVAL_TYPES:
        raise_parameter_error("interval", interval, valid_values=list(INTERVAL_TYPES))
    if not 0 < level < 1:
        raise_parameter_error("level", level, constraint="0 < level < 1")

    if model.is_areal:
        result, rows = _predict_areal(model, new_predictors, new_locations)
    else:
        result, rows = _predict_geostatistical(model, new_predictors, new_locations)

    if new_locations is None:
        index = model.row_labels[rows] if model.row_labels is not None else pd.Index(rows)
    elif isinstance(new_predictors, pd.DataFrame):
        index = new_predictors.index
    else:
        index = pd.RangeIndex(len(rows))

    frame = pd.DataFrame({"fit": result.predictions}, index=index)
    if se_fit:
        variance = result.mean_variance if interval == "confidence" else result.variance
        frame["se_fit"] = np.sqrt(variance)
    if interval != "none":
        lower, upper = result.interval(interval, level)
        frame["lower"] = lower
        frame["upper"] = upper

    logger.debug(f"Predicted {len(frame)} location(s) from {model!r}")
    return frame


def predict_frame(
    model: SpatialLinearModel,
    newdata: pd.DataFrame,
    config: Optional[SpatialModelConfig] = None,
    new_locations=None,
    se_fit: bool = False,
) -> pd.DataFrame:
    """Predict new DataFrame rows with the columns named by a config.

    Coordinates are read from the config's coordinate columns for
    geostatistical models. CAR models need ``new_locations`` (adjacency of
    the new units). Interval type and level come from the config.

    Args:
        model: Model fit by ``fit_spatial_model``.
        newdata: New rows with the predictor (and coordinate) columns.
        config: Configuration; defaults to the one stored on the model.
        new_locations: Overrides the locations read from ``newdata``.
        se_fit: Include standard errors.

    Returns:
        Prediction DataFrame indexed like ``newdata``.
    """
    config = config or model.config
    if config is None or model.design_info is None:
        raise_validation_error(
            "Model was not fit from a DataFrame",
            suggestion="Fit with fit_spatial_model or call predict with arrays",
        )

    if new_locations is None:
        if model.is_areal:
            raise_validation_error("new_locations (adjacency of the new units) is required")
        try:
            new_locations = PointSet.from_frame(newdata, config.coordinates)
        except ValueError as exc:
            raise_validation_error(str(exc))

    return predict(
        model,
        newdata,
        new_locations,
        interval=config.interval,
        level=config.level,
        se_fit=se_fit,
    )
