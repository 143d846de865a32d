'''
Estimation of lag parameters from a pair of casts.

A down cast and the neighbouring up cast are assumed to sample the same
water column. Any difference between both profiles that is caused by a
lagged sensor response encloses an area between the profiles, which is
minimised with respect to the parameters of the correction model.

Provides:
      SolverOptions()
      EstimatorOptions()
      SensorLagEstimator()
      ThermalLagEstimator()
      find_sensor_lag_params()
      find_thermal_lag_params()

'''
from collections import namedtuple
from functools import partial
import logging
import time as _time

import numpy as np
from scipy.optimize import minimize, minimize_scalar

from glider_calibration.area import profile_area
from glider_calibration.filters import correct_sensor_lag, correct_thermal_lag
from glider_calibration.options import ConfigurationError, Options
from glider_calibration.seawater import density, salinity

logger = logging.getLogger(__name__)

EstimationResult = namedtuple("EstimationResult", "parameters converged residual")

SensorLagCast = namedtuple("SensorLagCast", "time depth value flow")
ThermalLagCast = namedtuple("ThermalLagCast", "time depth conductivity temperature pressure flow")


class EstimationError(RuntimeError):
    '''Raised when the cost function cannot be evaluated for a cast pair.'''
    pass


class SolverTimeout(Exception):
    pass


class SolverOptions(Options):
    '''Settings of the minimisation algorithm

    Parameters
    ----------
    method : str {"L-BFGS-B", "Powell", "Nelder-Mead", "TNC", "SLSQP"}
        minimisation method of scipy.optimize.minimize, used for more than
        one parameter. A single parameter is always found with the bounded
        scalar minimiser.
    xtol : float {1e-5}
        tolerance on the parameters
    ftol : float {1e-4}
        tolerance on the cost function
    maxiter : int {1000}
        maximum number of iterations
    timeout : float or None
        maximum time (s) spent in a single minimisation. When exceeded, the
        best parameters evaluated so far are returned as not converged.
    '''
    METHODS = ("L-BFGS-B", "Powell", "Nelder-Mead", "TNC", "SLSQP")

    def __init__(self, method="L-BFGS-B", xtol=1e-5, ftol=1e-4, maxiter=1000, timeout=None):
        if method not in self.METHODS:
            raise ConfigurationError("Unsupported minimisation method {} (choose from {}).".format(
                method, ", ".join(self.METHODS)))
        if timeout is not None and timeout < 0:
            raise ConfigurationError("timeout should be non-negative (got {}).".format(timeout))
        self.method = method
        self.xtol = xtol
        self.ftol = ftol
        self.maxiter = int(maxiter)
        self.timeout = timeout

    def minimize_options(self):
        ''' Returns the options dictionary for scipy.optimize.minimize '''
        if self.method == "L-BFGS-B":
            return dict(ftol=self.ftol, maxiter=self.maxiter)
        elif self.method == "Powell":
            return dict(xtol=self.xtol, ftol=self.ftol, maxiter=self.maxiter)
        elif self.method == "Nelder-Mead":
            return dict(xatol=self.xtol, fatol=self.ftol, maxiter=self.maxiter)
        elif self.method == "TNC":
            return dict(xtol=self.xtol, ftol=self.ftol, maxfun=self.maxiter)
        else:
            return dict(ftol=self.ftol, maxiter=self.maxiter)

    def scalar_options(self):
        ''' Returns the options dictionary for scipy.optimize.minimize_scalar '''
        return dict(xatol=self.xtol, maxiter=self.maxiter)


class EstimatorOptions(Options):
    '''Configuration of a parameter estimator

    Parameters
    ----------
    constant_flow : bool {True}
        if True, the parameters are constant. Otherwise they depend on the flow
        speed through the sensor, and offset and slope are estimated for each.
    guess : float, array of float or None
        initial guess. None selects the default of the estimator.
    lower, upper : float, array of float or None
        bounds of the parameters. A scalar applies to all parameters. None
        selects the default of the estimator.
    solver : SolverOptions, dict or None
        settings of the minimisation algorithm
    '''
    def __init__(self, constant_flow=True, guess=None, lower=None, upper=None, solver=None):
        self.constant_flow = bool(constant_flow)
        self.guess = guess
        self.lower = lower
        self.upper = upper
        if isinstance(solver, SolverOptions):
            self.solver = solver
        else:
            self.solver = SolverOptions.from_dict(solver)


class _Objective(object):
    ''' Wraps a cost function, keeping track of the best evaluation '''
    def __init__(self, fun, lower, upper, timeout=None):
        self.fun = fun
        self.lower = lower
        self.upper = upper
        self.timeout = timeout
        self.best_x = None
        self.best_cost = np.inf
        self.nfev = 0
        self.t0 = _time.monotonic()

    def __call__(self, x):
        if self.timeout is not None and self.best_x is not None:
            if _time.monotonic() - self.t0 >= self.timeout:
                raise SolverTimeout()
        x = np.clip(np.atleast_1d(np.asarray(x, float)), self.lower, self.upper)
        cost = self.fun(x)
        self.nfev += 1
        if not np.isfinite(cost):
            raise EstimationError("Cost function not finite for parameters {}.".format(x))
        if cost < self.best_cost:
            self.best_cost = cost
            self.best_x = x.copy()
        return cost


class ParameterEstimator(object):
    ''' Base class of the parameter estimators

    Subclasses define the number of parameters for constant and variable
    flow, the default guess and bounds, how a cast is prepared and the cost
    function.

    Parameters
    ----------
    options : EstimatorOptions or None
        configuration of the estimator. If None, it is created from kwds.
    **kwds : keywords passed on to :obj:`EstimatorOptions`
    '''
    N_PARAMETERS = {True: 1, False: 1}

    def __init__(self, options=None, **kwds):
        if options is None:
            options = EstimatorOptions(**kwds)
        elif kwds:
            raise TypeError("Specify either options or keywords, not both.")
        self.options = options
        self.constant_flow = options.constant_flow
        self.n_parameters = self.N_PARAMETERS[self.constant_flow]
        self.guess = self._check_vector(options.guess, "guess")
        self.lower = self._check_vector(options.lower, "lower")
        self.upper = self._check_vector(options.upper, "upper")
        if self.lower is not None and self.upper is not None and np.any(self.lower > self.upper):
            raise ConfigurationError("Lower bounds {} exceed upper bounds {}.".format(self.lower, self.upper))

    def _check_vector(self, v, name):
        if v is None:
            return None
        v = np.atleast_1d(np.asarray(v, float)).ravel()
        if v.size == 1:
            v = np.full(self.n_parameters, v[0])
        if v.size != self.n_parameters:
            raise ConfigurationError("{} should have {} values (got {}).".format(name, self.n_parameters, v.size))
        return v

    def default_guess(self):
        raise NotImplementedError

    def default_bounds(self, cast1, cast2):
        raise NotImplementedError

    def prepare_cast(self, cast):
        raise NotImplementedError

    def cost_function(self, params, cast1, cast2):
        raise NotImplementedError

    def align(self, cast1, cast2):
        return cast1, cast2

    def get_bounds(self, cast1, cast2):
        lower = self.lower
        upper = self.upper
        if lower is None or upper is None:
            default_lower, default_upper = self.default_bounds(cast1, cast2)
            lower = default_lower if lower is None else lower
            upper = default_upper if upper is None else upper
        return lower, upper

    def estimate(self, cast1, cast2):
        ''' Estimates the parameters that minimise the area between two casts

        Parameters
        ----------
        cast1, cast2 : tuples of arrays
            data of both casts, see the subclass documentation.

        Returns
        -------
        EstimationResult
            namedtuple with the parameters, a flag whether the minimisation
            converged and the residual area.

        Raises
        ------
        EstimationError
            if the cost function cannot be evaluated
        '''
        cast1, cast2 = self.align(self.prepare_cast(cast1), self.prepare_cast(cast2))
        lower, upper = self.get_bounds(cast1, cast2)
        guess = self.default_guess() if self.guess is None else self.guess
        guess = np.clip(guess, lower, upper)
        fun = partial(self.cost_function, cast1=cast1, cast2=cast2)
        objective = _Objective(fun, lower, upper, self.options.solver.timeout)
        return self.minimize(objective, guess, lower, upper)

    def minimize(self, objective, guess, lower, upper):
        solver = self.options.solver
        objective(guess)
        try:
            if self.n_parameters == 1:
                result = minimize_scalar(objective, bounds=(lower[0], upper[0]), method="bounded",
                                         options=solver.scalar_options())
            else:
                result = minimize(objective, guess, method=solver.method, bounds=list(zip(lower, upper)),
                                  options=solver.minimize_options())
        except SolverTimeout:
            logger.debug("Minimisation timed out after %d evaluations.", objective.nfev)
            converged = False
        else:
            converged = bool(result.success)
            if not converged:
                logger.debug("Minimisation did not converge: %s", result.message)
        return EstimationResult(objective.best_x, converged, objective.best_cost)


def _common_range(z1, z2):
    ''' Returns slices selecting the part of two sequences within their common range

    The slices run from the first to the last row that falls inside the common range.
    '''
    z_min = max(np.nanmin(z1), np.nanmin(z2))
    z_max = min(np.nanmax(z1), np.nanmax(z2))
    slices = []
    for z in (z1, z2):
        with np.errstate(invalid='ignore'):
            idx = np.flatnonzero((z >= z_min) & (z <= z_max))
        if idx.size < 2:
            raise EstimationError("Less than 2 points within the common range [{}, {}].".format(z_min, z_max))
        slices.append(slice(idx[0], idx[-1] + 1))
    return slices


class SensorLagEstimator(ParameterEstimator):
    ''' Estimator of the sensor lag time constant

    A cast is given as a tuple (time, depth, value) for constant flow, or
    (time, depth, value, flow) for variable flow. The cost function is the
    area between the corrected value profiles, over the depth range common to
    both casts.

    For constant flow, one parameter is estimated (the time constant, default
    guess 0.5 s, bounds [0, 16]); for variable flow two (offset and slope of the
    time constant with respect to the inverse flow speed, default guess (0.3568,
    0.07), bounds [(0, 0), (16, 7.5)]).

    Example
    -------

    >>> estimator = SensorLagEstimator()
    >>> params, converged, residual = estimator.estimate((t1, z1, T1), (t2, z2, T2))
    '''
    N_PARAMETERS = {True: 1, False: 2}

    def default_guess(self):
        if self.constant_flow:
            return np.array([0.5])
        return np.array([0.3568, 0.07])

    def default_bounds(self, cast1, cast2):
        if self.constant_flow:
            return np.array([0.]), np.array([16.])
        return np.array([0., 0.]), np.array([16., 7.5])

    def prepare_cast(self, cast):
        if self.constant_flow:
            if len(cast) < 3:
                raise ValueError("A cast should be given as (time, depth, value).")
            time, depth, value = cast[:3]
            flow = None
        else:
            if len(cast) < 4:
                raise ValueError("A cast should be given as (time, depth, value, flow) for variable flow.")
            time, depth, value, flow = cast[:4]
        time = np.asarray(time, float).ravel()
        depth = np.asarray(depth, float).ravel()
        value = np.asarray(value, float).ravel()
        with np.errstate(invalid='ignore'):
            valid = (time > 0) & ~np.isnan(depth) & ~np.isnan(value)
        if flow is not None:
            flow = np.asarray(flow, float).ravel()
            valid &= ~np.isnan(flow)
            flow = flow[valid]
        if np.count_nonzero(valid) < 2:
            raise EstimationError("Less than 2 valid points in cast.")
        return SensorLagCast(time[valid], depth[valid], value[valid], flow)

    def align(self, cast1, cast2):
        s1, s2 = _common_range(cast1.depth, cast2.depth)
        return self._select(cast1, s1), self._select(cast2, s2)

    def _select(self, cast, s):
        flow = None if cast.flow is None else cast.flow[s]
        return SensorLagCast(cast.time[s], cast.depth[s], cast.value[s], flow)

    def cost_function(self, params, cast1, cast2):
        corrected = []
        for cast in (cast1, cast2):
            try:
                corrected.append(correct_sensor_lag(cast.time, cast.value, params, cast.flow))
            except ValueError as e:
                raise EstimationError(str(e))
        return profile_area(corrected[0], cast1.depth, corrected[1], cast2.depth)


class ThermalLagEstimator(ParameterEstimator):
    ''' Estimator of the thermal lag parameters

    A cast is given as a tuple (time, depth, conductivity, temperature,
    pressure) for constant flow, or (time, depth, conductivity, temperature,
    pressure, flow) for variable flow. Conductivity is in S/m.

    The cost function corrects the temperature for thermal lag, computes
    salinity from conductivity, corrected temperature and pressure, and
    density from salinity, corrected temperature and pressure. Both casts
    are restricted to their common density range, and the area between the
    casts in the diagram of salinity against temperature is returned.

    For constant flow, error magnitude and error time are estimated (default
    guess (0.0677, 11.1431), bounds [(0, 0), (4, 2.5 duration)]); for variable
    flow offset and slope of both (default guess (0.0135, 0.0264, 7.1499,
    2.7858), bounds [0, (2, 1, duration, duration/2)]). The duration is the
    time span of the shorter cast.
    '''
    N_PARAMETERS = {True: 2, False: 4}

    def default_guess(self):
        if self.constant_flow:
            return np.array([0.0677, 11.1431])
        return np.array([0.0135, 0.0264, 7.1499, 2.7858])

    def default_bounds(self, cast1, cast2):
        duration = min(np.ptp(cast1.time), np.ptp(cast2.time))
        if self.constant_flow:
            return np.array([0., 0.]), np.array([4., 2.5 * duration])
        return np.zeros(4), np.array([2., 1., duration, duration / 2.])

    def prepare_cast(self, cast):
        if self.constant_flow:
            if len(cast) < 5:
                raise ValueError("A cast should be given as (time, depth, conductivity, temperature, pressure).")
            columns = list(cast[:5]) + [None]
        else:
            if len(cast) < 6:
                raise ValueError("A cast should be given as (time, depth, conductivity, temperature, "
                                 "pressure, flow) for variable flow.")
            columns = list(cast[:6])
        columns = [c if c is None else np.asarray(c, float).ravel() for c in columns]
        time = columns[0]
        with np.errstate(invalid='ignore'):
            valid = time > 0
        for c in columns[1:]:
            if c is not None:
                valid &= ~np.isnan(c)
        if np.count_nonzero(valid) < 2:
            raise EstimationError("Less than 2 valid points in cast.")
        return ThermalLagCast(*[c if c is None else c[valid] for c in columns])

    def cost_function(self, params, cast1, cast2):
        S = []
        rho = []
        for cast in (cast1, cast2):
            try:
                T_inside, _ = correct_thermal_lag(cast.time, cast.conductivity, cast.temperature,
                                                  params, cast.flow)
            except ValueError as e:
                raise EstimationError(str(e))
            _S = salinity(cast.conductivity, T_inside, cast.pressure)
            S.append(_S)
            rho.append(density(_S, T_inside, cast.pressure))
        if np.all(np.isnan(rho[0])) or np.all(np.isnan(rho[1])):
            raise EstimationError("No valid density for parameters {}.".format(params))
        s1, s2 = _common_range(rho[0], rho[1])
        return profile_area(S[0][s1], cast1.temperature[s1], S[1][s2], cast2.temperature[s2])


def find_sensor_lag_params(cast1, cast2, **kwds):
    ''' Finds the sensor lag parameters for a pair of casts

    Parameters
    ----------
    cast1, cast2 : tuples of arrays
        (time, depth, value[, flow]) of each cast
    **kwds : keywords passed on to :obj:`EstimatorOptions`

    Returns
    -------
    (array of float, bool, float)
        parameters, convergence flag and residual area
    '''
    return tuple(SensorLagEstimator(**kwds).estimate(cast1, cast2))


def find_thermal_lag_params(cast1, cast2, **kwds):
    ''' Finds the thermal lag parameters for a pair of casts

    Parameters
    ----------
    cast1, cast2 : tuples of arrays
        (time, depth, conductivity, temperature, pressure[, flow]) of each cast
    **kwds : keywords passed on to :obj:`EstimatorOptions`

    Returns
    -------
    (array of float, bool, float)
        parameters, convergence flag and residual area
    '''
    return tuple(ThermalLagEstimator(**kwds).estimate(cast1, cast2))
