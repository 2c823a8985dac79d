"""Layer 2: Primitives - Algorithm interfaces and pure operations.

This layer holds pure numerical operations on Layer 1 objects: distances,
covariance kernels, semivariograms, neighborhood weights, likelihoods,
parameter estimation and prediction algebra. It can import numpy, scipy and
pandas, and optionally shapely behind a clean dependency error. No file I/O
or plotting.
"""

from spatialsmith.primitives.covariance import (
    COVARIANCE_KERNELS,
    car_covariance_matrix,
    cauchy_kernel,
    covariance_matrix,
    cross_covariance,
    evaluate_kernel,
    exponential_kernel,
    gaussian_kernel,
    matern_kernel,
    none_kernel,
    spherical_kernel,
    triangular_kernel,
)
from spatialsmith.primitives.distance import pairwise_distances, validate_distance_matrix
from spatialsmith.primitives.estimation import (
    EstimationResult,
    estimate_car_parameters,
    estimate_geostatistical_parameters,
    validate_design,
)
from spatialsmith.primitives.kriging import KrigingResult, blup
from spatialsmith.primitives.kriging_cv import (
    CrossValidationResult,
    k_fold_cross_validation,
    kfold_cv,
    leave_one_out_cross_validation,
    loocv,
)
from spatialsmith.primitives.likelihood import GLSFit, cholesky_factor, gls
from spatialsmith.primitives.neighborhood import (
    SHAPELY_AVAILABLE,
    as_weights,
    car_rho_bounds,
    row_standardize,
    weights_from_adjacency,
    weights_from_matrix,
    weights_from_polygons,
)
from spatialsmith.primitives.variogram import (
    EmpiricalSemivariogram,
    SemivariogramBin,
    SemivariogramFit,
    compute_empirical_semivariogram,
    fit_semivariogram_wls,
    semivariogram,
    semivariogram_from_distances,
    semivariogram_model,
)

__all__ = [
    # Distances
    "pairwise_distances",
    "validate_distance_matrix",
    # Covariance
    "COVARIANCE_KERNELS",
    "car_covariance_matrix",
    "cauchy_kernel",
    "covariance_matrix",
    "cross_covariance",
    "evaluate_kernel",
    "exponential_kernel",
    "gaussian_kernel",
    "matern_kernel",
    "none_kernel",
    "spherical_kernel",
    "triangular_kernel",
    # Semivariogram
    "EmpiricalSemivariogram",
    "SemivariogramBin",
    "SemivariogramFit",
    "compute_empirical_semivariogram",
    "fit_semivariogram_wls",
    "semivariogram",
    "semivariogram_from_distances",
    "semivariogram_model",
    # Neighborhoods
    "SHAPELY_AVAILABLE",
    "as_weights",
    "car_rho_bounds",
    "row_standardize",
    "weights_from_adjacency",
    "weights_from_matrix",
    "weights_from_polygons",
    # Estimation
    "EstimationResult",
    "GLSFit",
    "cholesky_factor",
    "estimate_car_parameters",
    "estimate_geostatistical_parameters",
    "gls",
    "validate_design",
    # Prediction
    "CrossValidationResult",
    "KrigingResult",
    "blup",
    "k_fold_cross_validation",
    "kfold_cv",
    "leave_one_out_cross_validation",
    "loocv",
]
