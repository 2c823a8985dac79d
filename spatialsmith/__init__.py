"""SpatialSmith: spatial linear models with correlated errors.

Geostatistical (point-referenced) and areal (CAR) linear models with
REML-estimated covariance, GLS inference, empirical semivariograms and
kriging prediction.

Example:
    >>> import numpy as np
    >>> from spatialsmith import fit_geostatistical, predict
    >>> rng = np.random.default_rng(1)
    >>> coords = rng.uniform(0, 10, size=(60, 2))
    >>> y = np.sin(coords[:, 0]) + rng.normal(scale=0.2, size=60)
    >>> model = fit_geostatistical(None, y, coords, family="exponential")
    >>> predict(model, None, [[5.0, 5.0]], interval="prediction")
"""

from spatialsmith.objects import (
    GEOSTATISTICAL_FAMILIES,
    CovarianceFamily,
    CovarianceParams,
    EstimationMethod,
    PointSet,
    PolygonSet,
    SpatialWeights,
)
from spatialsmith.primitives import (
    CrossValidationResult,
    EmpiricalSemivariogram,
    car_rho_bounds,
    compute_empirical_semivariogram,
    fit_semivariogram_wls,
    kfold_cv,
    loocv,
    pairwise_distances,
    row_standardize,
    semivariogram,
    weights_from_adjacency,
    weights_from_matrix,
    weights_from_polygons,
)
from spatialsmith.tasks import (
    SpatialLinearModel,
    SpatialModelConfig,
    fit_areal,
    fit_geostatistical,
    fit_spatial_model,
    predict,
    predict_frame,
)
from spatialsmith.utils.errors import (
    DependencyError,
    InvalidInputError,
    IsolatedUnitWarning,
    NonConvergenceError,
    ParameterError,
    SingularCovarianceError,
    SpatialSmithError,
)
from spatialsmith.workflows import compare_models, fit_many

__version__ = "0.1.0"

__all__ = [
    # Objects
    "CovarianceFamily",
    "CovarianceParams",
    "EstimationMethod",
    "GEOSTATISTICAL_FAMILIES",
    "PointSet",
    "PolygonSet",
    "SpatialWeights",
    # Primitives
    "CrossValidationResult",
    "EmpiricalSemivariogram",
    "car_rho_bounds",
    "compute_empirical_semivariogram",
    "fit_semivariogram_wls",
    "kfold_cv",
    "loocv",
    "pairwise_distances",
    "row_standardize",
    "semivariogram",
    "weights_from_adjacency",
    "weights_from_matrix",
    "weights_from_polygons",
    # Tasks
    "SpatialLinearModel",
    "SpatialModelConfig",
    "fit_areal",
    "fit_geostatistical",
    "fit_spatial_model",
    "predict",
    "predict_frame",
    # Workflows
    "compare_models",
    "fit_many",
    # Errors
    "DependencyError",
    "InvalidInputError",
    "IsolatedUnitWarning",
    "NonConvergenceError",
    "ParameterError",
    "SingularCovarianceError",
    "SpatialSmithError",
]
