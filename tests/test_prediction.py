"""Tests for kriging, areal prediction and cross-validation."""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm

from spatialsmith import (
    SpatialModelConfig,
    fit_areal,
    fit_geostatistical,
    fit_spatial_model,
    loocv,
    predict,
    predict_frame,
)
from spatialsmith.objects.spcov import CovarianceParams
from spatialsmith.primitives.covariance import covariance_matrix
from spatialsmith.primitives.distance import pairwise_distances
from spatialsmith.primitives.kriging import KrigingResult, blup
from spatialsmith.primitives.kriging_cv import (
    SKLEARN_AVAILABLE,
    k_fold_cross_validation,
    kfold_cv,
    leave_one_out_cross_validation,
)
from spatialsmith.primitives.likelihood import gls
from spatialsmith.utils.errors import InvalidInputError, ParameterError


class TestBLUP:
    """Tests for the blup primitive."""

    def setup_method(self):
        rng = np.random.default_rng(11)
        self.coords = rng.uniform(0.0, 5.0, size=(15, 2))
        self.params = CovarianceParams("exponential", de=1.0, ie=0.0, range=1.5)
        self.sigma = covariance_matrix(self.params, pairwise_distances(self.coords))
        self.X = np.ones((15, 1))
        self.y = rng.normal(size=15)
        self.fit = gls(self.X, self.y, self.sigma)

    def test_exact_interpolation_without_nugget(self):
        """Test that kriging at an observed site returns the observation."""
        result = blup(self.fit, self.sigma[:, :3], self.X[:3], np.ones(3))
        np.testing.assert_allclose(result.predictions, self.y[:3], atol=1e-8)
        np.testing.assert_allclose(result.variance, 0.0, atol=1e-8)

    def test_far_location_predicts_mean(self):
        """Test that a location beyond all correlation gets the GLS mean."""
        result = blup(self.fit, np.zeros((15, 1)), np.ones((1, 1)), np.ones(1))
        assert result.predictions[0] == pytest.approx(self.fit.beta[0])
        assert result.variance[0] == pytest.approx(1.0 + self.fit.vcov[0, 0])
        assert result.mean_variance[0] == pytest.approx(self.fit.vcov[0, 0])

    def test_variance_never_exceeds_unconditional(self):
        """Test that prediction variance is below sill plus mean uncertainty."""
        new = np.array([[2.5, 2.5], [0.1, 4.9]])
        cross = covariance_matrix(self.params, pairwise_distances(self.coords, new))
        result = blup(self.fit, cross, np.ones((2, 1)), np.ones(2), return_weights=True)
        assert np.all(result.variance <= 1.0 + self.fit.vcov[0, 0] + 1e-12)
        assert result.weights.shape == (15, 2)

    def test_shape_checks(self):
        """Test that inconsistent shapes are rejected."""
        with pytest.raises(InvalidInputError, match="Cross-covariance"):
            blup(self.fit, np.zeros((14, 1)), np.ones((1, 1)), np.ones(1))
        with pytest.raises(InvalidInputError, match="one column per coefficient"):
            blup(self.fit, np.zeros((15, 1)), np.ones((1, 2)), np.ones(1))

    def test_interval(self):
        """Test normal intervals around predictions."""
        result = KrigingResult(
            predictions=np.array([1.0]),
            variance=np.array([4.0]),
            mean_variance=np.array([1.0]),
        )
        z = norm.ppf(0.95)
        lower, upper = result.interval("prediction", 0.9)
        assert lower[0] == pytest.approx(1.0 - 2.0 * z)
        lower, upper = result.interval("confidence", 0.9)
        assert upper[0] == pytest.approx(1.0 + z)
        with pytest.raises(ParameterError):
            result.interval("tolerance")


class TestGeostatisticalPrediction:
    """Tests for predict on point-referenced models."""

    def test_prediction_interval_columns(self, exponential_data):
        """Test the prediction frame with intervals and standard errors."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"]
        )
        frame = predict(
            model,
            np.array([0.0, 1.0]),
            np.array([[5.0, 5.0], [1.0, 9.0]]),
            interval="prediction",
            se_fit=True,
        )
        assert list(frame.columns) == ["fit", "se_fit", "lower", "upper"]
        assert np.all(frame["lower"] < frame["fit"])
        assert np.all(frame["fit"] < frame["upper"])
        assert isinstance(frame.index, pd.RangeIndex)

    def test_zero_nugget_fit_interpolates_observations(self, exponential_data):
        """Test that a fitted model without nugget reproduces observed values."""
        model = fit_geostatistical(
            exponential_data["x"],
            exponential_data["y"],
            exponential_data["coords"],
            known={"ie": 0.0},
        )
        idx = np.array([0, 13, 41, 79])
        frame = predict(
            model,
            exponential_data["x"][idx],
            exponential_data["coords"][idx],
            interval="prediction",
            se_fit=True,
        )
        np.testing.assert_allclose(
            frame["fit"], exponential_data["y"][idx], rtol=1e-6, atol=1e-6
        )
        np.testing.assert_allclose(frame["se_fit"], 0.0, atol=1e-4)
        np.testing.assert_allclose(frame["upper"] - frame["lower"], 0.0, atol=1e-3)

    def test_confidence_narrower_than_prediction(self, exponential_data):
        """Test that mean intervals are narrower than prediction intervals."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"]
        )
        args = (model, np.array([0.5]), np.array([[3.0, 3.0]]))
        conf = predict(*args, interval="confidence")
        pred = predict(*args, interval="prediction")
        assert (conf["upper"] - conf["lower"]).iloc[0] < (pred["upper"] - pred["lower"]).iloc[0]

    def test_missing_rows_predicted(self, exponential_data):
        """Test that rows with NaN responses are predicted by default."""
        y = exponential_data["y"].copy()
        y[[4, 20]] = np.nan
        model = fit_geostatistical(
            exponential_data["x"], y, exponential_data["coords"], known={"ie": 0.2}
        )
        frame = predict(model)
        assert list(frame.index) == [4, 20]
        assert np.all(np.isfinite(frame["fit"]))

    def test_nothing_to_predict(self, exponential_data):
        """Test that a complete model needs new data."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"],
            family="none",
        )
        with pytest.raises(InvalidInputError, match="no missing responses"):
            predict(model)

    def test_predictor_count_mismatch(self, exponential_data):
        """Test that new predictors must match the fitted columns."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"],
            family="none",
        )
        with pytest.raises(InvalidInputError, match="one column per fitted predictor"):
            predict(model, np.ones((1, 2)), np.array([[1.0, 1.0]]))

    def test_invalid_interval(self, exponential_data):
        """Test that unknown interval types are rejected."""
        model = fit_geostatistical(
            None, exponential_data["y"], exponential_data["coords"], family="none"
        )
        with pytest.raises(ParameterError, match="interval"):
            predict(model, None, np.array([[1.0, 1.0]]), interval="tolerance")

    def test_predict_frame(self, exponential_data):
        """Test DataFrame prediction using the stored config."""
        data = pd.DataFrame(
            {
                "east": exponential_data["coords"][:, 0],
                "north": exponential_data["coords"][:, 1],
                "x": exponential_data["x"],
                "y": exponential_data["y"],
            }
        )
        config = SpatialModelConfig(
            response="y",
            predictors=("x",),
            coordinates=("east", "north"),
            interval="prediction",
            level=0.9,
        )
        model = fit_spatial_model(data, config)
        newdata = pd.DataFrame(
            {"east": [2.0, 8.0], "north": [2.0, 8.0], "x": [0.0, 1.0]}, index=["a", "b"]
        )
        frame = predict_frame(model, newdata, se_fit=True)

        assert list(frame.index) == ["a", "b"]
        z = norm.ppf(0.95)
        np.testing.assert_allclose(frame["upper"] - frame["fit"], z * frame["se_fit"])


class TestArealPrediction:
    """Tests for predict on CAR models."""

    def test_missing_units_predicted(self, car_data):
        """Test prediction of units with a missing response."""
        y = car_data["y"].copy()
        y[[0, 14]] = np.nan
        model = fit_areal(car_data["x"], y, car_data["weights"])
        frame = predict(model, interval="prediction")
        assert list(frame.index) == [0, 14]
        assert np.all(frame["lower"] < frame["upper"])

    def test_new_units(self, car_data):
        """Test prediction of new units attached to the fitted lattice."""
        model = fit_areal(car_data["x"], car_data["y"], car_data["weights"])
        frame = predict(model, np.array([0.0, 1.0]), [[0, 1], [5, 36]], se_fit=True)
        assert len(frame) == 2
        assert np.all(np.isfinite(frame["fit"]))
        assert np.all(frame["se_fit"] > 0)

    def test_isolated_new_unit_is_maximally_uncertain(self, car_data):
        """Test that a new unit without neighbors gets the mean and a large variance."""
        model = fit_areal(car_data["x"], car_data["y"], car_data["weights"])
        frame = predict(model, np.array([1.0]), [[]], se_fit=True)

        beta = model.coefficients.to_numpy()
        x0 = np.array([1.0, 1.0])
        expected_variance = np.max(np.diag(model.sigma)) + x0 @ model.gls_fit.vcov @ x0
        assert frame["fit"].iloc[0] == pytest.approx(beta[0] + beta[1])
        assert frame["se_fit"].iloc[0] ** 2 == pytest.approx(expected_variance)

    def test_invalid_new_neighbor(self, car_data):
        """Test that neighbor indices must exist."""
        model = fit_areal(car_data["x"], car_data["y"], car_data["weights"])
        with pytest.raises(InvalidInputError, match="Invalid neighbor"):
            predict(model, np.array([0.0]), [[100]])

    def test_predict_frame_needs_adjacency(self, car_data):
        """Test that areal DataFrame prediction needs new-unit adjacency."""
        data = pd.DataFrame({"x": car_data["x"], "y": car_data["y"]})
        config = SpatialModelConfig(
            response="y", predictors=("x",), family="car", weights=car_data["weights"]
        )
        model = fit_spatial_model(data, config)
        with pytest.raises(InvalidInputError, match="adjacency"):
            predict_frame(model, pd.DataFrame({"x": [0.0]}))
        frame = predict_frame(model, pd.DataFrame({"x": [0.0]}), new_locations=[[0, 1]])
        assert len(frame) == 1


class TestCrossValidation:
    """Tests for cross-validation under the fitted covariance."""

    def test_loocv_metrics(self, exponential_data):
        """Test that cross-validation metrics are consistent."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"]
        )
        cv = loocv(model)
        assert cv.predictions.shape == (80,)
        assert cv.rmspe == pytest.approx(np.sqrt(np.mean(cv.errors**2)))
        assert cv.mae <= cv.rmspe
        assert np.all(cv.variance > 0)

    def test_independent_errors_match_ols_leave_one_out(self):
        """Test LOOCV under independence against explicit OLS refits."""
        rng = np.random.default_rng(5)
        X = np.column_stack([np.ones(12), rng.normal(size=12)])
        y = X @ np.array([1.0, -1.0]) + rng.normal(size=12)
        cv = leave_one_out_cross_validation(X, y, np.eye(12))

        keep = np.arange(12) != 3
        beta, *_ = np.linalg.lstsq(X[keep], y[keep], rcond=None)
        assert cv.predictions[3] == pytest.approx(X[3] @ beta)

    def test_too_few_observations(self):
        """Test that cross-validation needs n >= p + 2."""
        with pytest.raises(InvalidInputError, match="at least 4"):
            leave_one_out_cross_validation(np.ones((3, 2)), np.arange(3.0), np.eye(3))


@pytest.mark.skipif(not SKLEARN_AVAILABLE, reason="scikit-learn not available")
class TestKFoldCrossValidation:
    """Tests for k-fold cross-validation."""

    def test_one_fold_per_observation_matches_leave_one_out(self, exponential_data):
        """Test that n folds reproduce leave-one-out predictions."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"]
        )
        loo = loocv(model)
        cv = kfold_cv(model, n_folds=80, random_state=0)
        np.testing.assert_allclose(cv.predictions, loo.predictions, rtol=1e-8)
        assert cv.rmspe == pytest.approx(loo.rmspe)

    def test_every_observation_predicted_once(self, exponential_data):
        """Test that folds cover all observations."""
        model = fit_geostatistical(
            exponential_data["x"], exponential_data["y"], exponential_data["coords"]
        )
        cv = kfold_cv(model, n_folds=5, random_state=1)
        assert cv.predictions.shape == (80,)
        assert np.all(np.isfinite(cv.predictions))
        assert np.all(cv.variance > 0)
        np.testing.assert_allclose(cv.errors, model.y - cv.predictions)

    def test_reproducible_with_seed(self):
        """Test that a fixed random_state gives identical folds."""
        rng = np.random.default_rng(8)
        X = np.column_stack([np.ones(20), rng.normal(size=20)])
        y = rng.normal(size=20)
        first = k_fold_cross_validation(X, y, np.eye(20), n_folds=4, random_state=3)
        second = k_fold_cross_validation(X, y, np.eye(20), n_folds=4, random_state=3)
        np.testing.assert_array_equal(first.predictions, second.predictions)

    def test_invalid_fold_count(self):
        """Test that fewer than two folds is rejected."""
        with pytest.raises(ParameterError, match="n_folds"):
            k_fold_cross_validation(np.ones((10, 1)), np.arange(10.0), np.eye(10), n_folds=1)

    def test_more_folds_than_observations(self):
        """Test that n_folds above the sample size is rejected."""
        with pytest.raises(InvalidInputError, match="at least 6 samples"):
            k_fold_cross_validation(np.ones((5, 1)), np.arange(5.0), np.eye(5), n_folds=6)
