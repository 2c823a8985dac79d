"""Layer 3: Tasks - User intent translation.

Tasks translate user intent into object creation, primitive calls, and model
fits: fitting spatial linear models from arrays or DataFrames and predicting
from them.
"""

from spatialsmith.tasks.config import SpatialModelConfig
from spatialsmith.tasks.predicttask import predict, predict_frame
from spatialsmith.tasks.spatialmodeltask import (
    INTERCEPT,
    DesignInfo,
    SpatialLinearModel,
    build_design_frame,
    fit_areal,
    fit_from_distances,
    fit_geostatistical,
    fit_spatial_model,
)

__all__ = [
    "INTERCEPT",
    "DesignInfo",
    "SpatialLinearModel",
    "SpatialModelConfig",
    "build_design_frame",
    "fit_areal",
    "fit_from_distances",
    "fit_geostatistical",
    "fit_spatial_model",
    "predict",
    "predict_frame",
]
