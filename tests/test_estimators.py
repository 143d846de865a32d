import numpy as np
import pytest

from glider_calibration.estimators import (EstimationError, SensorLagEstimator, SolverOptions,
                                           ThermalLagEstimator, find_sensor_lag_params,
                                           find_thermal_lag_params)
from glider_calibration.options import ConfigurationError

from conftest import LAG


# Recover the lag of the synthetic temperature sensor.
def test_sensor_lag_recovery(sensor_lag_casts):
    params, converged, residual = SensorLagEstimator().estimate(*sensor_lag_casts)
    assert converged
    assert params.shape == (1,)
    assert np.isclose(params[0], LAG, atol=0.1)
    assert residual < 0.5


def test_find_sensor_lag_params(sensor_lag_casts):
    params, converged, residual = find_sensor_lag_params(*sensor_lag_casts, upper=8.)
    assert converged
    assert np.isclose(params[0], LAG, atol=0.1)


def test_sensor_lag_variable_flow(sensor_lag_casts):
    casts = [c + (np.full(c[0].shape, 0.4),) for c in sensor_lag_casts]
    estimator = SensorLagEstimator(constant_flow=False)
    params, converged, residual = estimator.estimate(*casts)
    assert params.shape == (2,)
    assert np.all(params >= [0, 0]) and np.all(params <= [16, 7.5])
    # with a constant flow only the total time constant is determined
    assert np.isclose(params[0] + params[1] / 0.4, LAG, atol=0.2)


def test_sensor_lag_bounds(sensor_lag_casts):
    params, _, _ = SensorLagEstimator(lower=0., upper=1.).estimate(*sensor_lag_casts)
    assert 0 <= params[0] <= 1
    assert np.isclose(params[0], 1, atol=0.01)


# A timeout returns the best parameters so far, which after a single evaluation is the guess.
def test_timeout_returns_guess(sensor_lag_casts):
    estimator = SensorLagEstimator(guess=0.7, solver=dict(timeout=0))
    params, converged, residual = estimator.estimate(*sensor_lag_casts)
    assert not converged
    assert np.allclose(params, [0.7])
    assert np.isfinite(residual)


def test_guess_clipped_to_bounds(sensor_lag_casts):
    estimator = SensorLagEstimator(guess=20., solver=dict(timeout=0))
    params, _, _ = estimator.estimate(*sensor_lag_casts)
    assert np.allclose(params, [16.])


def test_too_few_points():
    cast1 = (np.array([1.]), np.array([1.]), np.array([10.]))
    cast2 = (np.array([2., 3.]), np.array([2., 1.]), np.array([10., 11.]))
    with pytest.raises(EstimationError):
        SensorLagEstimator().estimate(cast1, cast2)


def test_no_common_depth_range():
    cast1 = (np.array([1., 2., 3.]), np.array([0., 1., 2.]), np.array([10., 11., 12.]))
    cast2 = (np.array([4., 5., 6.]), np.array([9., 8., 7.]), np.array([10., 11., 12.]))
    with pytest.raises(EstimationError):
        SensorLagEstimator().estimate(cast1, cast2)


def test_arity_errors():
    with pytest.raises(ConfigurationError):
        SensorLagEstimator(guess=[1., 2.])
    with pytest.raises(ConfigurationError):
        ThermalLagEstimator(upper=[1., 2., 3.])
    with pytest.raises(ConfigurationError):
        ThermalLagEstimator(lower=[1., 1.], upper=[0.5, 2.])
    assert SensorLagEstimator(constant_flow=False).n_parameters == 2
    assert ThermalLagEstimator().n_parameters == 2
    assert ThermalLagEstimator(constant_flow=False).n_parameters == 4


def test_solver_options():
    with pytest.raises(ConfigurationError):
        SolverOptions(method="CG")
    with pytest.raises(ConfigurationError):
        SolverOptions.from_dict(dict(tolerance=1e-3))
    assert SolverOptions(method="Nelder-Mead").minimize_options() == dict(xatol=1e-5, fatol=1e-4, maxiter=1000)
    assert "maxfun" in SolverOptions(method="TNC").minimize_options()


def test_thermal_lag_default_bounds(thermal_lag_casts):
    estimator = ThermalLagEstimator()
    casts = [estimator.prepare_cast(c) for c in thermal_lag_casts]
    duration = min(np.ptp(c.time) for c in casts)
    lower, upper = estimator.get_bounds(*casts)
    assert np.allclose(lower, [0, 0])
    assert np.allclose(upper, [4, 2.5 * duration])
    estimator = ThermalLagEstimator(constant_flow=False)
    casts = [estimator.prepare_cast(c + (np.full(c[0].shape, 0.4),)) for c in thermal_lag_casts]
    lower, upper = estimator.get_bounds(*casts)
    assert np.allclose(lower, 0)
    assert np.allclose(upper, [2, 1, duration, duration / 2])


# Without thermal lag in the data, the estimated parameters reduce the area below the one of the guess.
def test_thermal_lag_estimate(thermal_lag_casts):
    estimator = ThermalLagEstimator(solver=dict(maxiter=50))
    params, converged, residual = estimator.estimate(*thermal_lag_casts)
    assert params.shape == (2,)
    assert np.all(params >= 0)
    assert np.isfinite(residual)
    casts = [estimator.prepare_cast(c) for c in thermal_lag_casts]
    assert residual <= estimator.cost_function(estimator.default_guess(), *casts)


def test_find_thermal_lag_params(thermal_lag_casts):
    params, converged, residual = find_thermal_lag_params(*thermal_lag_casts, solver=dict(timeout=0))
    assert np.allclose(params, [0.0677, 11.1431])
    assert not converged
