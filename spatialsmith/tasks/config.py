"""Model configuration for DataFrame-based fitting.

Layer 3: Tasks - User intent translation.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from spatialsmith.objects.polygonset import PolygonSet
from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.objects.spcov import CovarianceFamily, EstimationMethod
from spatialsmith.primitives.optimize import validate_known
from spatialsmith.utils.errors import raise_parameter_error

WeightsSpec = Union[SpatialWeights, PolygonSet, Mapping, Sequence, np.ndarray]

INTERVAL_TYPES = ("none", "confidence", "prediction")


@dataclass(frozen=True)
class SpatialModelConfig:
    """Configuration for fitting a spatial linear model to a DataFrame.

    Attributes:
        response: Name of the response column. Rows with a missing response
            are kept for prediction.
        predictors: Predictor column names; categorical columns are expanded
            to indicator columns. None fits an intercept-only model.
        family: Covariance family name or CovarianceFamily.
        coordinates: Pair of coordinate column names (point-referenced
            families).
        weights: Neighborhood structure for 'car' (SpatialWeights, PolygonSet,
            adjacency list or 0/1 matrix), one unit per DataFrame row.
        estmethod: 'reml', 'ml' or 'sv-wls'.
        row_standardize: Row-standardize CAR weights.
        known: Covariance parameters held fixed, e.g. ``{"ie": 0.0}``.
        max_iter: Iteration bound for the optimizer.
        interval: Default interval type for ``predict_frame``.
        level: Default interval coverage level.
        add_intercept: Include an intercept column.
        estimate_ie: Estimate a nugget for CAR models.

    Example:
        >>> config = SpatialModelConfig(
        ...     response="log_trend",
        ...     predictors=("elevation",),
        ...     family="exponential",
        ...     coordinates=("easting", "northing"),
        ... )
    """

    response: str
    predictors: Optional[tuple[str, ...]] = None
    family: Union[str, CovarianceFamily] = "exponential"
    coordinates: Optional[tuple[str, str]] = None
    weights: Optional[WeightsSpec] = None
    estmethod: Union[str, EstimationMethod] = "reml"
    row_standardize: bool = True
    known: Optional[Mapping[str, float]] = None
    max_iter: int = 2000
    interval: str = "none"
    level: float = 0.95
    add_intercept: bool = True
    estimate_ie: bool = False

    def __post_init__(self) -> None:
        """Validate SpatialModelConfig."""
        family = CovarianceFamily.parse(self.family)
        estmethod = EstimationMethod.parse(self.estmethod)
        object.__setattr__(self, "family", family)
        object.__setattr__(self, "estmethod", estmethod)

        if not isinstance(self.response, str) or not self.response:
            raise_parameter_error("response", self.response, constraint="non-empty column name")

        if self.predictors is not None:
            predictors = (
                (self.predictors,) if isinstance(self.predictors, str) else tuple(self.predictors)
            )
            if self.response in predictors:
                raise_parameter_error(
                    "predictors", list(predictors), constraint="must not contain the response"
                )
            if len(set(predictors)) != len(predictors):
                raise_parameter_error(
                    "predictors", list(predictors), constraint="column names must be unique"
                )
            object.__setattr__(self, "predictors", predictors)

        if family.is_areal:
            if self.weights is None:
                raise_parameter_error(
                    "weights", None, constraint=f"required for family '{family.value}'"
                )
            if self.coordinates is not None:
                raise_parameter_error(
                    "coordinates",
                    self.coordinates,
                    constraint=f"not used by family '{family.value}'; pass weights only",
                )
            if not estmethod.is_likelihood:
                raise_parameter_error(
                    "estmethod",
                    estmethod.value,
                    valid_values=["reml", "ml"],
                    constraint="CAR models are estimated by likelihood",
                )
        else:
            if self.coordinates is None:
                raise_parameter_error(
                    "coordinates", None, constraint=f"required for family '{family.value}'"
                )
            if self.weights is not None:
                raise_parameter_error(
                    "weights",
                    type(self.weights).__name__,
                    constraint=f"not used by family '{family.value}'",
                )
            coordinates = tuple(self.coordinates)
            if len(coordinates) != 2:
                raise_parameter_error(
                    "coordinates", coordinates, constraint="exactly two column names"
                )
            object.__setattr__(self, "coordinates", coordinates)

        if self.known is not None:
            object.__setattr__(self, "known", validate_known(family, self.known))

        if isinstance(self.max_iter, bool) or not isinstance(self.max_iter, (int, np.integer)) or self.max_iter < 1:
            raise_parameter_error("max_iter", self.max_iter, constraint="positive integer")
        if self.interval not in INTERVAL_TYPES:
            raise_parameter_error("interval", self.interval, valid_values=list(INTERVAL_TYPES))
        if not 0 < self.level < 1:
            raise_parameter_error("level", self.level, constraint="0 < level < 1")
