"""Covariance families, estimation methods and covariance parameter sets."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np
import pandas as pd

from spatialsmith.utils.errors import raise_parameter_error


class CovarianceFamily(str, Enum):
    """Closed set of supported spatial covariance families."""

    NONE = "none"
    EXPONENTIAL = "exponential"
    SPHERICAL = "spherical"
    GAUSSIAN = "gaussian"
    TRIANGULAR = "triangular"
    MATERN = "matern"
    CAUCHY = "cauchy"
    CAR = "car"

    @classmethod
    def parse(cls, value: Union[str, "CovarianceFamily"]) -> "CovarianceFamily":
        """Coerce a string or member to a CovarianceFamily.

        Raises:
            ParameterError: If the value does not name a supported family.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise_parameter_error(
                "family", value, valid_values=[member.value for member in cls]
            )

    @property
    def is_areal(self) -> bool:
        """True for families defined on a neighborhood structure."""
        return self is CovarianceFamily.CAR

    @property
    def has_extra(self) -> bool:
        """True for point-referenced families with a shape parameter."""
        return self in (CovarianceFamily.MATERN, CovarianceFamily.CAUCHY)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Names of the covariance parameters this family can estimate."""
        if self is CovarianceFamily.NONE:
            return ("ie",)
        if self is CovarianceFamily.CAR:
            return ("de", "ie", "rho", "extra")
        if self.has_extra:
            return ("de", "ie", "range", "extra")
        return ("de", "ie", "range")


GEOSTATISTICAL_FAMILIES = tuple(f for f in CovarianceFamily if not f.is_areal)


class EstimationMethod(str, Enum):
    """Covariance parameter estimation methods."""

    REML = "reml"
    ML = "ml"
    SV_WLS = "sv-wls"

    @classmethod
    def parse(cls, value: Union[str, "EstimationMethod"]) -> "EstimationMethod":
        """Coerce a string or member to an EstimationMethod."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise_parameter_error(
                "estmethod", value, valid_values=[member.value for member in cls]
            )

    @property
    def is_likelihood(self) -> bool:
        return self is not EstimationMethod.SV_WLS


@dataclass(frozen=True)
class CovarianceParams:
    """Immutable set of covariance parameters for one fitted model.

    Attributes:
        family: Covariance family the parameters belong to.
        de: Dependent (spatial) error variance, the partial sill.
        ie: Independent error variance, the nugget.
        range: Distance-decay parameter (point-referenced families).
        extra: Matérn smoothness or cauchy shape; for CAR models the
            variance of units without neighbors.
        rho: CAR spatial dependence coefficient.
    """

    family: CovarianceFamily
    de: float
    ie: float
    range: Optional[float] = None
    extra: Optional[float] = None
    rho: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate CovarianceParams."""
        object.__setattr__(self, "family", CovarianceFamily.parse(self.family))

        for name in ("de", "ie"):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be finite and non-negative, got {value}")

        family = self.family
        if family.is_areal:
            if self.rho is None or not np.isfinite(self.rho):
                raise ValueError(f"rho must be finite for {family.value} models")
        elif family is not CovarianceFamily.NONE:
            if self.range is None or not self.range > 0 or not np.isfinite(self.range):
                raise ValueError(
                    f"range must be positive for {family.value} model, got {self.range}"
                )

        if family.has_extra and self.extra is None:
            raise ValueError(f"extra is required for {family.value} model")
        if self.extra is not None and (not np.isfinite(self.extra) or self.extra < 0):
            raise ValueError(f"extra must be finite and non-negative, got {self.extra}")

    @property
    def sill(self) -> float:
        """Total variance at a single location (de + ie)."""
        return self.de + self.ie

    def as_dict(self) -> dict[str, float]:
        """Parameter values keyed by name, omitting unused parameters."""
        values = asdict(self)
        values.pop("family")
        return {k: v for k, v in values.items() if v is not None}

    def replace(self, **changes: float) -> "CovarianceParams":
        """Return a copy with some parameter values changed."""
        values = {**asdict(self), **changes}
        return CovarianceParams(**values)

    def to_frame(self) -> pd.DataFrame:
        """Parameter table with one row per parameter."""
        values = self.as_dict()
        return pd.DataFrame(
            {"parameter": list(values.keys()), "estimate": list(values.values())}
        )

    def __repr__(self) -> str:
        """String representation."""
        body = ", ".join(f"{k}={v:.4g}" for k, v in self.as_dict().items())
        return f"CovarianceParams(family={self.family.value}, {body})"
