"""Batch fitting and comparison of covariance families.

Provides high-level entry points for model selection:
- Fit one spatial linear model per covariance family, optionally in parallel
- Tabulate fit statistics sorted by AIC or AICc
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.objects.spcov import (
    GEOSTATISTICAL_FAMILIES,
    CovarianceFamily,
    EstimationMethod,
)
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.tasks.spatialmodeltask import (
    SpatialLinearModel,
    fit_from_distances,
    prepare_design,
    prepare_response,
)
from spatialsmith.utils.errors import raise_parameter_error, raise_validation_error

logger = logging.getLogger(__name__)

SORT_COLUMNS = ("AIC", "AICc")


def fit_many(
    X: Optional[Union[np.ndarray, pd.DataFrame]],
    y: Union[np.ndarray, pd.Series],
    coordinates: Union[PointSet, np.ndarray],
    families: Sequence[Union[str, CovarianceFamily]] = GEOSTATISTICAL_FAMILIES,
    estmethod: Union[str, EstimationMethod] = "reml",
    known: Optional[Mapping[str, float]] = None,
    max_iter: int = 2000,
    add_intercept: bool = True,
    coefficient_names: Optional[Sequence[str]] = None,
    n_jobs: int = 1,
) -> list[SpatialLinearModel]:
    """Fit the same data under several covariance families.

    Design and distance matrices are built once and shared. Each family is
    an independent fit dispatched through joblib; results follow the order
    of ``families``. An estimation failure in any family is raised.

    Args:
        X: Predictors (n, q), or None for an intercept-only model.
        y: Response (n,); NaN marks rows to predict.
        coordinates: PointSet or (n, 2) coordinates.
        families: Point-referenced covariance families to fit.
        estmethod: Estimation method shared by all fits.
        known: Fixed parameter values; each family uses the entries that
            name one of its parameters.
        max_iter: Iteration bound for each optimizer run.
        add_intercept: Prepend an intercept column.
        coefficient_names: Names of the columns of an array ``X``.
        n_jobs: Number of parallel jobs (-1 for all cores).

    Returns:
        One fitted SpatialLinearModel per family.

    Example:
        >>> models = fit_many(X, y, coords, ["none", "exponential", "spherical"])
        >>> compare_models(models)
    """
    families = [CovarianceFamily.parse(f) for f in families]
    if not families:
        raise_parameter_error("families", [], constraint="at least one family")
    areal = [f.value for f in families if f.is_areal]
    if areal:
        raise_parameter_error(
            "families", areal, constraint="fit_many fits point-referenced families only"
        )

    response = prepare_response(y)
    design, names, info = prepare_design(X, response.shape[0], add_intercept, coefficient_names)
    try:
        points = as_pointset(coordinates, n_expected=response.shape[0])
    except ValueError as exc:
        raise_validation_error(f"Invalid coordinates: {exc}")
    distances = pairwise_distances(points.subset(~np.isnan(response)))
    row_labels = X.index if isinstance(X, pd.DataFrame) else None
    known = dict(known or {})

    logger.info(
        f"Fitting {len(families)} covariance families "
        f"({', '.join(f.value for f in families)}) with n_jobs={n_jobs}"
    )
    models = Parallel(n_jobs=n_jobs)(
        delayed(fit_from_distances)(
            design,
            response,
            names,
            points,
            distances,
            family=family,
            estmethod=estmethod,
            known={k: v for k, v in known.items() if k in family.parameter_names},
            max_iter=max_iter,
            design_info=info,
            row_labels=row_labels,
        )
        for family in families
    )
    return list(models)


def compare_models(
    models: Union[Sequence[SpatialLinearModel], Mapping[str, SpatialLinearModel]],
    sort_by: str = "AICc",
) -> pd.DataFrame:
    """Tabulate fit statistics of models fit to the same data.

    Models fit by sv-wls have no likelihood; their AIC and AICc are NaN and
    they sort last.

    Args:
        models: Fitted models, or a mapping from label to model.
        sort_by: 'AIC' or 'AICc'.

    Returns:
        DataFrame with one row per model (columns model, family, estmethod,
        n, p, k, logLik, AIC, AICc), sorted ascending by ``sort_by``.

    Raises:
        InvalidInputError: If models were fit to different responses, or
            REML fits use different design matrices (their restricted
            likelihoods are not comparable).
    """
    if sort_by not in SORT_COLUMNS:
        raise_parameter_error("sort_by", sort_by, valid_values=list(SORT_COLUMNS))
    if isinstance(models, Mapping):
        labels, models = list(models.keys()), list(models.values())
    else:
        models = list(models)
        labels = [m.family.value for m in models]
    if not models:
        raise_validation_error("Need at least one model to compare")

    reference = models[0]
    for model in models[1:]:
        if model.n_obs != reference.n_obs or not np.array_equal(model.y, reference.y):
            raise_validation_error(
                "Models must be fit to the same response to be compared"
            )
        reml = EstimationMethod.REML in (model.estmethod, reference.estmethod)
        if reml and (
            model.X.shape != reference.X.shape or not np.allclose(model.X, reference.X)
        ):
            raise_validation_error(
                "REML fits with different predictors cannot be compared by AIC",
                suggestion="Refit with estmethod='ml' to compare fixed effects",
            )

    table = pd.DataFrame(
        {
            "model": labels,
            "family": [m.family.value for m in models],
            "estmethod": [m.estmethod.value for m in models],
            "n": [m.n_obs for m in models],
            "p": [m.n_coef for m in models],
            "k": [m.n_params for m in models],
            "logLik": [m.log_likelihood for m in models],
            "AIC": [m.aic for m in models],
            "AICc": [m.aicc for m in models],
        }
    )
    return table.sort_values(sort_by, na_position="last", kind="stable").reset_index(drop=True)
