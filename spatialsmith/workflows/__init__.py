"""Layer 4: Workflows - Public entry points.

Workflows combine tasks into multi-model runs: batch fitting of covariance
families and model comparison tables.
"""

from spatialsmith.workflows.comparison import compare_models, fit_many

__all__ = ["compare_models", "fit_many"]
