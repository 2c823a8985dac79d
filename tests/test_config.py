"""Tests for SpatialModelConfig validation."""

import pytest

from spatialsmith import SpatialModelConfig
from spatialsmith.objects.spcov import CovarianceFamily, EstimationMethod
from spatialsmith.primitives.neighborhood import weights_from_adjacency
from spatialsmith.utils.errors import ParameterError

WEIGHTS = weights_from_adjacency([[1], [0]])


class TestSpatialModelConfig:
    """Tests for SpatialModelConfig."""

    def test_defaults(self):
        """Test defaults of a point-referenced config."""
        config = SpatialModelConfig(response="y", coordinates=["east", "north"])
        assert config.family is CovarianceFamily.EXPONENTIAL
        assert config.estmethod is EstimationMethod.REML
        assert config.coordinates == ("east", "north")
        assert config.predictors is None
        assert config.interval == "none"

    def test_single_predictor_string(self):
        """Test that a single predictor name becomes a tuple."""
        config = SpatialModelConfig(response="y", predictors="x", coordinates=("a", "b"))
        assert config.predictors == ("x",)

    def test_car_config(self):
        """Test a valid CAR config."""
        config = SpatialModelConfig(response="y", family="CAR", weights=WEIGHTS, estmethod="ml")
        assert config.family is CovarianceFamily.CAR
        assert config.estmethod is EstimationMethod.ML

    @pytest.mark.parametrize(
        "kwargs, parameter",
        [
            ({"family": "car"}, "weights"),
            ({"family": "car", "weights": WEIGHTS, "coordinates": ("a", "b")}, "coordinates"),
            ({"family": "car", "weights": WEIGHTS, "estmethod": "sv-wls"}, "estmethod"),
            ({}, "coordinates"),
            ({"coordinates": ("a", "b"), "weights": WEIGHTS}, "weights"),
            ({"coordinates": ("a", "b", "c")}, "coordinates"),
            ({"coordinates": ("a", "b"), "predictors": ("y",)}, "predictors"),
            ({"coordinates": ("a", "b"), "predictors": ("x", "x")}, "predictors"),
            ({"coordinates": ("a", "b"), "max_iter": 0}, "max_iter"),
            ({"coordinates": ("a", "b"), "interval": "tolerance"}, "interval"),
            ({"coordinates": ("a", "b"), "level": 1.0}, "level"),
            ({"coordinates": ("a", "b"), "known": {"rho": 0.1}}, "known"),
            ({"coordinates": ("a", "b"), "family": "sar"}, "family"),
        ],
    )
    def test_invalid(self, kwargs, parameter):
        """Test that invalid combinations raise ParameterError naming the option."""
        with pytest.raises(ParameterError) as excinfo:
            SpatialModelConfig(response="y", **kwargs)
        assert excinfo.value.details["parameter"] == parameter

    def test_frozen(self):
        """Test that configs are immutable."""
        config = SpatialModelConfig(response="y", coordinates=("a", "b"))
        with pytest.raises(AttributeError):
            config.family = "gaussian"
