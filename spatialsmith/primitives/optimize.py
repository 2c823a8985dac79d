"""Transformed parameter spaces and bounded optimization.

Covariance parameters are optimized on an unconstrained-looking internal
scale: variances and ranges on the log scale, bounded shape parameters and
the CAR dependence coefficient through a scaled logit. Box bounds on the
internal scale keep every candidate inside its admissible region.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

import numpy as np
from scipy.optimize import minimize
from scipy.special import expit, logit

from spatialsmith.objects.spcov import CovarianceFamily
from spatialsmith.utils.errors import NonConvergenceError, raise_parameter_error

logger = logging.getLogger(__name__)

# Admissible shape-parameter intervals
EXTRA_BOUNDS: dict[CovarianceFamily, tuple[float, float]] = {
    CovarianceFamily.MATERN: (0.2, 5.0),
    CovarianceFamily.CAUCHY: (0.1, 10.0),
}

LOGIT_LIMIT = 12.0

# Initial simplex edge length on the internal scale
SIMPLEX_STEP = 0.5


@dataclass(frozen=True)
class Transform:
    """Map between a natural parameter value and its internal scale.

    Attributes:
        kind: 'log' for positive parameters, 'interval' for parameters
            constrained to the open interval (lower, upper).
        lower: Natural-scale lower bound.
        upper: Natural-scale upper bound.
    """

    kind: Literal["log", "interval"]
    lower: float
    upper: float

    def to_internal(self, value: float) -> float:
        if self.kind == "log":
            value = min(max(value, self.lower), self.upper)
            return float(np.log(value))
        p = (value - self.lower) / (self.upper - self.lower)
        return float(np.clip(logit(np.clip(p, 1e-6, 1 - 1e-6)), -LOGIT_LIMIT, LOGIT_LIMIT))

    def to_natural(self, value: float) -> float:
        if self.kind == "log":
            return float(np.exp(value))
        return float(self.lower + (self.upper - self.lower) * expit(value))

    @property
    def internal_bounds(self) -> tuple[float, float]:
        if self.kind == "log":
            return float(np.log(self.lower)), float(np.log(self.upper))
        return -LOGIT_LIMIT, LOGIT_LIMIT


@dataclass
class ParameterSpace:
    """Free and fixed covariance parameters of one model.

    Attributes:
        family: Covariance family.
        transforms: Transform for every free parameter, in optimization order.
        initial: Natural-scale starting values of the free parameters.
        fixed: Values of parameters held fixed during optimization.
    """

    family: CovarianceFamily
    transforms: dict[str, Transform]
    initial: dict[str, float]
    fixed: dict[str, float] = field(default_factory=dict)

    @property
    def free(self) -> list[str]:
        return list(self.transforms)

    @property
    def n_free(self) -> int:
        return len(self.transforms)

    def pack(self, values: Mapping[str, float]) -> np.ndarray:
        return np.array([self.transforms[n].to_internal(values[n]) for n in self.free])

    def unpack(self, theta: np.ndarray) -> dict[str, float]:
        values = dict(self.fixed)
        for name, value in zip(self.free, theta):
            values[name] = self.transforms[name].to_natural(value)
        return values

    @property
    def bounds(self) -> list[tuple[float, float]]:
        return [self.transforms[n].internal_bounds for n in self.free]


def validate_known(
    family: CovarianceFamily, known: Optional[Mapping[str, float]]
) -> dict[str, float]:
    """Check that fixed parameter names and values suit the family."""
    known = dict(known or {})
    for name, value in known.items():
        if name not in family.parameter_names:
            raise_parameter_error(
                "known",
                name,
                valid_values=list(family.parameter_names),
                constraint=f"parameters of the {family.value} family",
            )
        if value is None or not np.isfinite(value):
            raise_parameter_error(f"known[{name!r}]", value, constraint="finite number")
        if name in ("range", "extra") and value <= 0:
            raise_parameter_error(f"known[{name!r}]", value, constraint="positive")
        if name != "rho" and value < 0:
            raise_parameter_error(f"known[{name!r}]", value, constraint="non-negative")
    return known


def geostatistical_space(
    family: CovarianceFamily,
    variance: float,
    max_distance: float,
    known: Optional[Mapping[str, float]] = None,
    initial: Optional[Mapping[str, float]] = None,
) -> ParameterSpace:
    """Parameter space for a point-referenced covariance family.

    Args:
        family: Point-referenced covariance family (not 'none').
        variance: Scale of the response variance, used for bounds and
            starting values of ``de`` and ``ie``.
        max_distance: Largest pairwise distance, used for the range.
        known: Parameters held fixed.
        initial: Starting values overriding the defaults.
    """
    known = validate_known(family, known)
    starts = {
        "de": variance / 2.0,
        "ie": variance / 2.0,
        "range": max_distance / 2.0,
    }
    if family.has_extra:
        starts["extra"] = 1.0
    starts.update(initial or {})

    transforms = {
        "de": Transform("log", variance * 1e-8, variance * 1e3),
        "ie": Transform("log", variance * 1e-8, variance * 1e3),
        "range": Transform("log", max_distance * 1e-4, max_distance * 1e2),
    }
    if family.has_extra:
        transforms["extra"] = Transform("interval", *EXTRA_BOUNDS[family])

    free = {n: t for n, t in transforms.items() if n not in known}
    return ParameterSpace(
        family=family,
        transforms=free,
        initial={n: starts[n] for n in free},
        fixed=known,
    )


def car_space(
    variance: float,
    rho_bounds: tuple[float, float],
    has_isolated: bool,
    known: Optional[Mapping[str, float]] = None,
    estimate_ie: bool = False,
) -> ParameterSpace:
    """Parameter space for a CAR model.

    The nugget is fixed at zero unless ``estimate_ie`` is set or a value is
    supplied in ``known``. The isolated-unit variance ``extra`` is only a
    parameter when some unit has no neighbors.
    """
    family = CovarianceFamily.CAR
    known = validate_known(family, known)
    if not estimate_ie:
        known.setdefault("ie", 0.0)
    if not has_isolated:
        known.pop("extra", None)

    lower, upper = rho_bounds
    starts = {"de": variance, "ie": variance / 10.0, "rho": 0.0, "extra": variance}
    transforms = {
        "de": Transform("log", variance * 1e-8, variance * 1e3),
        "ie": Transform("log", variance * 1e-8, variance * 1e3),
        "rho": Transform("interval", lower, upper),
    }
    if has_isolated:
        transforms["extra"] = Transform("log", variance * 1e-8, variance * 1e3)

    free = {n: t for n, t in transforms.items() if n not in known}
    return ParameterSpace(
        family=family,
        transforms=free,
        initial={n: starts[n] for n in free},
        fixed=known,
    )


def initial_simplex(
    start: np.ndarray,
    bounds: list[tuple[float, float]],
    step: float = SIMPLEX_STEP,
) -> np.ndarray:
    """Nelder-Mead starting simplex with a fixed step along each axis.

    Vertex ``i + 1`` moves coordinate ``i`` by ``step``, or by ``-step`` when
    that would leave the upper bound. The step does not depend on the
    magnitude of the start, so a coordinate starting at zero is explored.
    """
    start = np.asarray(start, dtype=float)
    simplex = np.tile(start, (start.size + 1, 1))
    for i, (lower, upper) in enumerate(bounds):
        moved = start[i] + step
        if moved > upper:
            moved = max(start[i] - step, lower)
        simplex[i + 1, i] = moved
    return simplex


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of a bounded minimization."""

    values: dict[str, float]
    objective: float
    n_iter: int


def minimize_in_space(
    objective: Callable[[dict[str, float]], float],
    space: ParameterSpace,
    max_iter: int = 2000,
    label: str = "covariance parameters",
) -> OptimizationResult:
    """Minimize an objective over a parameter space with Nelder-Mead.

    Args:
        objective: Function of natural-scale parameter values.
        space: Parameter space with starting values.
        max_iter: Iteration bound for the optimizer.
        label: Description used in log and error messages.

    Returns:
        OptimizationResult with the natural-scale optimum.

    Raises:
        NonConvergenceError: If the stopping criterion is not met within
            ``max_iter`` iterations or the optimum is not finite.
    """
    if space.n_free == 0:
        values = space.unpack(np.empty(0))
        return OptimizationResult(values=values, objective=objective(values), n_iter=0)

    def internal_objective(theta: np.ndarray) -> float:
        return objective(space.unpack(theta))

    start = space.pack(space.initial)
    bounds = space.bounds
    result = minimize(
        internal_objective,
        start,
        method="Nelder-Mead",
        bounds=bounds,
        options={
            "maxiter": max_iter,
            "initial_simplex": initial_simplex(start, bounds),
            "xatol": 1e-6,
            "fatol": 1e-8,
            "adaptive": space.n_free > 2,
        },
    )
    logger.debug(
        f"Optimized {label}: nit={result.nit}, fun={result.fun:.6g}, "
        f"message={result.message}"
    )

    if not result.success or not np.isfinite(result.fun):
        raise NonConvergenceError(
            f"Optimizer did not converge for {label} after {result.nit} "
            f"iterations: {result.message}",
            suggestion="Increase max_iter or supply starting values",
            details={"n_iter": int(result.nit), "objective": float(result.fun)},
        )

    return OptimizationResult(
        values=space.unpack(result.x),
        objective=float(result.fun),
        n_iter=int(result.nit),
    )
