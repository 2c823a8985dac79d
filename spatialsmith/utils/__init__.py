"""Utility modules for SpatialSmith."""

from spatialsmith.utils.errors import (
    DependencyError,
    InvalidInputError,
    IsolatedUnitWarning,
    NonConvergenceError,
    ParameterError,
    SingularCovarianceError,
    SpatialSmithError,
    format_dependency_error,
    format_parameter_error,
    format_validation_error,
    raise_dependency_error,
    raise_parameter_error,
    raise_validation_error,
)
from spatialsmith.utils.optional_imports import (
    optional_import,
    optional_import_single,
    require,
)

__all__ = [
    "optional_import",
    "optional_import_single",
    "require",
    "SpatialSmithError",
    "InvalidInputError",
    "ParameterError",
    "NonConvergenceError",
    "SingularCovarianceError",
    "DependencyError",
    "IsolatedUnitWarning",
    "format_validation_error",
    "format_parameter_error",
    "format_dependency_error",
    "raise_validation_error",
    "raise_parameter_error",
    "raise_dependency_error",
]
