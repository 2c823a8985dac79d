"""Layer 1: Objects - Immutable data representations.

This layer contains only data structures. No optimization, no geometry
libraries, no plotting. Only standard library + numpy + pandas.
"""

from spatialsmith.objects.pointset import PointSet, as_pointset
from spatialsmith.objects.polygonset import PolygonSet
from spatialsmith.objects.spatialweights import SpatialWeights
from spatialsmith.objects.spcov import (
    GEOSTATISTICAL_FAMILIES,
    CovarianceFamily,
    CovarianceParams,
    EstimationMethod,
)

__all__ = [
    "CovarianceFamily",
    "CovarianceParams",
    "EstimationMethod",
    "GEOSTATISTICAL_FAMILIES",
    "PointSet",
    "PolygonSet",
    "SpatialWeights",
    "as_pointset",
]
